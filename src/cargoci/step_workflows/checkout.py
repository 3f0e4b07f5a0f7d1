# step_workflows/checkout.py
from __future__ import annotations

from pathlib import Path
from typing import List

from ..model import CheckoutStep
from . import Command, JobContext


def compile_checkout(step: CheckoutStep, ctx: JobContext) -> List[Command]:
    """
    Clone the source repository into the job's (empty) workspace and move to
    the pushed commit.

    An explicit `ref` on the step wins over the event's sha; with neither the
    clone stays on the source's current HEAD.
    """
    git = ctx.settings.git
    parent = ctx.workspace.parent

    source = ctx.source
    clone = [git, "clone", "--quiet", "--no-hardlinks"]
    if step.fetch_depth:
        # git only honours --depth on local clones given as a URL
        if "://" not in source and Path(source).exists():
            source = Path(source).resolve().as_uri()
        clone += ["--depth", str(step.fetch_depth)]
    clone += [source, str(ctx.workspace)]

    out = [Command(argv=tuple(clone), cwd=parent)]

    target = step.ref or ctx.sha
    if target:
        out.append(Command(argv=(git, "checkout", "--quiet", target), cwd=ctx.workspace))
    return out
