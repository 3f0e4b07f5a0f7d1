# step_workflows/__init__.py
# Typed steps -> concrete commands. The runner only ever sees Commands.
from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..model import CargoStep, CheckoutStep, RunStep, Step, ToolchainStep
from ..settings import Settings


@dataclass(frozen=True)
class Command:
    argv: Tuple[str, ...]
    cwd: Path
    env: Dict[str, str] = field(default_factory=dict)

    def display(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class JobContext:
    """Where and how one job's steps run."""
    workspace: Path
    source: str
    # directory every job workspace must live under
    root: Optional[Path] = None
    sha: Optional[str] = None
    settings: Settings = field(default_factory=Settings)
    env: Dict[str, str] = field(default_factory=dict)


def compile_step(step: Step, ctx: JobContext) -> List[Command]:
    from .checkout import compile_checkout
    from .rust import compile_cargo, compile_toolchain
    from .shell import compile_run

    if isinstance(step, CheckoutStep):
        return compile_checkout(step, ctx)
    if isinstance(step, ToolchainStep):
        return compile_toolchain(step, ctx)
    if isinstance(step, CargoStep):
        return compile_cargo(step, ctx)
    if isinstance(step, RunStep):
        return compile_run(step, ctx)
    raise ValueError(f"Unknown step kind: {step.kind!r}")
