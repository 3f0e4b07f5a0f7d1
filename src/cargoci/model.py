# model.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .errors import WorkflowError
from .patterns import branch_name, match_filters

CHECKOUT_ACTION = "actions/checkout"
TOOLCHAIN_ACTION = "actions-rs/toolchain"
CARGO_ACTION = "actions-rs/cargo"

DEFAULT_RUNNER = "ubuntu-latest"

CHANNELS = ("stable", "beta", "nightly")

# stable | beta | nightly, optionally dated, or an explicit release number
_CHANNEL_RE = re.compile(
    r"^(?:(?:stable|beta|nightly)(?:-\d{4}-\d{2}-\d{2})?|\d+\.\d+(?:\.\d+)?)$"
)


def is_valid_channel(channel: str) -> bool:
    return bool(channel) and _CHANNEL_RE.match(channel) is not None


# job ids double as workspace directory names
_JOB_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*\Z")


def is_valid_job_id(job_id: str) -> bool:
    return _JOB_ID_RE.match(job_id) is not None


@dataclass(frozen=True)
class Trigger:
    """Condition under which the pipeline activates."""
    event: str = "push"
    branches: Tuple[str, ...] = ("**",)
    branches_ignore: Tuple[str, ...] = ()

    def matches(self, branch: str) -> bool:
        name = branch_name(branch)
        if self.branches_ignore and match_filters(name, self.branches_ignore):
            return False
        return match_filters(name, self.branches)


@dataclass(frozen=True)
class Step:
    """A single action inside a CI job."""
    name: str

    kind = "step"


@dataclass(frozen=True)
class CheckoutStep(Step):
    uses: str = f"{CHECKOUT_ACTION}@v2"
    ref: Optional[str] = None
    fetch_depth: Optional[int] = None

    kind = "checkout"


@dataclass(frozen=True)
class ToolchainStep(Step):
    toolchain: str = "stable"
    override: bool = False
    uses: str = f"{TOOLCHAIN_ACTION}@v1"
    profile: Optional[str] = None
    components: Tuple[str, ...] = ()

    kind = "toolchain"


@dataclass(frozen=True)
class CargoStep(Step):
    command: str = "test"
    args: str = ""
    uses: str = f"{CARGO_ACTION}@v1"
    # explicit +toolchain for this invocation only
    toolchain: Optional[str] = None

    kind = "cargo"


@dataclass(frozen=True)
class RunStep(Step):
    run: str = ""
    working_directory: Optional[str] = None

    kind = "run"


@dataclass(frozen=True)
class Job:
    """
    A CI job: an ordered sequence of steps executed on one runner.

    Steps run sequentially; the job fails at the first failing step.
    """
    id: str
    name: str
    steps: Tuple[Step, ...]
    runs_on: str = DEFAULT_RUNNER
    needs: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)
    timeout_minutes: Optional[int] = None
    continue_on_error: bool = False

    def step_kinds(self) -> Tuple[str, ...]:
        return tuple(s.kind for s in self.steps)

    @property
    def toolchain(self) -> Optional[str]:
        for s in self.steps:
            if isinstance(s, ToolchainStep):
                return s.toolchain
        return None


@dataclass(frozen=True)
class Pipeline:
    name: str
    trigger: Trigger
    jobs: Tuple[Job, ...]

    def job_ids(self) -> Tuple[str, ...]:
        return tuple(j.id for j in self.jobs)

    def job(self, job_id: str) -> Job:
        for j in self.jobs:
            if j.id == job_id:
                return j
        raise WorkflowError(
            f"unknown job {job_id!r}; known jobs: {', '.join(self.job_ids()) or '(none)'}",
            path=f"jobs.{job_id}",
        )
