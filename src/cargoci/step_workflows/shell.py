# step_workflows/shell.py
from __future__ import annotations

from typing import List

from ..model import RunStep
from . import Command, JobContext


def compile_run(step: RunStep, ctx: JobContext) -> List[Command]:
    cwd = ctx.workspace / step.working_directory if step.working_directory else ctx.workspace
    return [Command(argv=(ctx.settings.shell, "-e", "-c", step.run), cwd=cwd)]
