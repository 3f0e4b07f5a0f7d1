# src/cargoci/dsl.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .model import (
    DEFAULT_RUNNER,
    CargoStep,
    CheckoutStep,
    Job,
    Pipeline,
    RunStep,
    Step,
    ToolchainStep,
    Trigger,
)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def checkout(name: str = "Check out code", *, ref: str | None = None) -> CheckoutStep:
    """Check out the repository at the pushed commit."""
    return CheckoutStep(name=name, ref=ref)


def toolchain(
    channel: str,
    *,
    override: bool = False,
    name: str = "Set up Rust",
    profile: str | None = None,
    components: Sequence[str] = (),
) -> ToolchainStep:
    """Install a Rust toolchain channel, optionally forcing it as the active one."""
    return ToolchainStep(
        name=name,
        toolchain=channel,
        override=override,
        profile=profile,
        components=tuple(components),
    )


def cargo(command: str, args: str = "", *, name: str | None = None) -> CargoStep:
    return CargoStep(name=name or f"Run cargo {command}", command=command, args=args)


def sh(name: str, cmd: str, *, cwd: str | None = None) -> RunStep:
    """Create a shell step."""
    return RunStep(name=name, run=cmd, working_directory=cwd)


# ---------------------------------------------------------------------
# Job / pipeline helpers
# ---------------------------------------------------------------------

def job(
    id: str,
    *steps: Step,
    name: Optional[str] = None,
    runs_on: str = DEFAULT_RUNNER,
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    timeout_minutes: Optional[int] = None,
    continue_on_error: bool = False,
) -> Job:
    if not steps:
        raise ValueError(f"job({id!r}) must have at least one step")

    return Job(
        id=id,
        name=name or id,
        steps=tuple(steps),
        runs_on=runs_on,
        needs=tuple(needs or ()),
        # force values to str, they end up in a process environment
        env={k: str(v) for k, v in (env or {}).items()},
        timeout_minutes=timeout_minutes,
        continue_on_error=continue_on_error,
    )


class Matrix:
    """
    Minimal matrix expander.

    Example:
        matrix("toolchain", ["stable", "nightly"]).jobs(
            lambda ch: job(f"test-{ch}", checkout(), toolchain(ch), cargo("test"))
        )
    """
    def __init__(self, key: str, values: Iterable[Any]):
        self.key = key
        self.values = list(values)

    def jobs(self, builder: Callable[[Any], Job]) -> List[Job]:
        return [builder(v) for v in self.values]


def matrix(key: str, values: Iterable[Any]) -> Matrix:
    return Matrix(key, values)


def pipeline(
    name: str,
    *jobs: Job,
    branches: Sequence[str] = ("**",),
    branches_ignore: Sequence[str] = (),
) -> Pipeline:
    return Pipeline(
        name=name,
        trigger=Trigger(branches=tuple(branches), branches_ignore=tuple(branches_ignore)),
        jobs=tuple(jobs),
    )


# ---------------------------------------------------------------------
# The stock "Build and Test" workflow
# ---------------------------------------------------------------------

TEST_ARGS = "--all-features --all"


def _test_job(channel: str) -> Job:
    # stable keeps the runner default; any other channel is forced active
    return job(
        "test" if channel == "stable" else f"test-{channel}",
        checkout(),
        toolchain(channel, override=channel != "stable"),
        cargo("test", TEST_ARGS),
        name=f"Build and Test ({channel})",
    )


def build_and_test(channels: Sequence[str] = ("stable", "nightly")) -> Pipeline:
    """Push to any branch runs `cargo test --all-features --all` once per channel."""
    return pipeline(
        "Build and Test",
        *matrix("toolchain", channels).jobs(_test_job),
    )
