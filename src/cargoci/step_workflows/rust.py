# step_workflows/rust.py
from __future__ import annotations

import shlex
from typing import List

from ..model import CargoStep, ToolchainStep
from . import Command, JobContext


def compile_toolchain(step: ToolchainStep, ctx: JobContext) -> List[Command]:
    """
    Install the channel; with `override` also pin it for the workspace so
    every later cargo call in this job picks it up.
    """
    rustup = ctx.settings.rustup
    install = [rustup, "toolchain", "install", step.toolchain, "--profile", step.profile or "minimal"]
    for component in step.components:
        install += ["--component", component]

    out = [Command(argv=tuple(install), cwd=ctx.workspace)]
    if step.override:
        out.append(Command(argv=(rustup, "override", "set", step.toolchain), cwd=ctx.workspace))
    return out


def compile_cargo(step: CargoStep, ctx: JobContext) -> List[Command]:
    argv = [ctx.settings.cargo]
    if step.toolchain:
        argv.append(f"+{step.toolchain}")
    argv.append(step.command)
    argv += shlex.split(step.args)
    return [Command(argv=tuple(argv), cwd=ctx.workspace)]
