# validate.py
from __future__ import annotations

import shlex
from dataclasses import dataclass, fields
from typing import Any, List

from .dag import stages
from .errors import ValidationError
from .model import CargoStep, CheckoutStep, Job, Pipeline, ToolchainStep, is_valid_channel, is_valid_job_id
from .patterns import check_patterns

ERROR = "error"
WARNING = "warning"


@dataclass(frozen=True)
class Issue:
    level: str
    location: str
    message: str

    def __str__(self) -> str:
        return f"{self.level}: {self.location}: {self.message}"


def _check_job(job: Job) -> List[Issue]:
    issues: List[Issue] = []
    where = f"jobs.{job.id}"

    if not job.steps:
        issues.append(Issue(ERROR, where, "job has no steps"))
    if not job.runs_on:
        issues.append(Issue(ERROR, f"{where}.runs-on", "runner label is empty"))
    if job.timeout_minutes is not None and job.timeout_minutes <= 0:
        issues.append(Issue(ERROR, f"{where}.timeout-minutes", "must be positive"))

    seen_checkout = False
    seen_toolchain = False
    for i, step in enumerate(job.steps):
        at = f"{where}.steps[{i}]"
        if isinstance(step, CheckoutStep):
            seen_checkout = True
        elif isinstance(step, ToolchainStep):
            seen_toolchain = True
            if not is_valid_channel(step.toolchain):
                issues.append(Issue(ERROR, at, f"unknown toolchain channel {step.toolchain!r}"))
        elif isinstance(step, CargoStep):
            if not step.command.strip():
                issues.append(Issue(ERROR, at, "cargo command is empty"))
            try:
                shlex.split(step.args)
            except ValueError as e:
                issues.append(Issue(ERROR, at, f"cannot parse cargo args {step.args!r}: {e}"))
            if step.toolchain is not None and not is_valid_channel(step.toolchain):
                issues.append(Issue(ERROR, at, f"unknown toolchain channel {step.toolchain!r}"))
            if not seen_checkout:
                issues.append(Issue(WARNING, at, "cargo runs before the repository is checked out"))
            if not seen_toolchain and step.toolchain is None:
                issues.append(Issue(WARNING, at, "cargo runs before any toolchain is set up"))

    return issues


def validate(pipeline: Pipeline) -> List[Issue]:
    """Collect every structural problem in the pipeline, errors and warnings alike."""
    issues: List[Issue] = []

    if not pipeline.jobs:
        issues.append(Issue(ERROR, "jobs", "workflow defines no jobs"))

    for msg in check_patterns(pipeline.trigger.branches):
        issues.append(Issue(ERROR, "on.push.branches", msg))
    for msg in check_patterns(pipeline.trigger.branches_ignore):
        issues.append(Issue(ERROR, "on.push.branches-ignore", msg))
    if pipeline.trigger.branches_ignore and pipeline.trigger.branches != ("**",):
        issues.append(Issue(ERROR, "on.push", "'branches' and 'branches-ignore' cannot be combined"))

    for job in pipeline.jobs:
        if not is_valid_job_id(job.id):
            issues.append(Issue(ERROR, f"jobs.{job.id}", f"invalid job id {job.id!r}"))
        issues.extend(_check_job(job))

    try:
        stages(pipeline.jobs)
    except ValueError as e:
        issues.append(Issue(ERROR, "jobs", str(e)))

    return issues


def errors(issues: List[Issue]) -> List[Issue]:
    return [i for i in issues if i.level == ERROR]


def check(pipeline: Pipeline) -> Pipeline:
    """Raise ValidationError when the pipeline has any error-level issue."""
    bad = errors(validate(pipeline))
    if bad:
        raise ValidationError(bad)
    return pipeline


# ---------------------------------------------------------------------
# Job comparison
# ---------------------------------------------------------------------

_IGNORED_JOB_FIELDS = ("id", "name")


def _diff(a: Any, b: Any, path: str, out: List[str]) -> None:
    if type(a) is not type(b):
        out.append(path or "<root>")
        return

    if isinstance(a, (tuple, list)):
        for i in range(max(len(a), len(b))):
            sub = f"{path}[{i}]"
            if i >= len(a) or i >= len(b):
                out.append(sub)
            else:
                _diff(a[i], b[i], sub, out)
        return

    if isinstance(a, dict):
        for k in sorted(set(a) | set(b), key=str):
            sub = f"{path}.{k}" if path else str(k)
            if k not in a or k not in b:
                out.append(sub)
            else:
                _diff(a[k], b[k], sub, out)
        return

    if hasattr(a, "__dataclass_fields__"):
        for f in fields(a):
            if not path and f.name in _IGNORED_JOB_FIELDS:
                continue
            sub = f"{path}.{f.name}" if path else f.name
            _diff(getattr(a, f.name), getattr(b, f.name), sub, out)
        return

    if a != b:
        out.append(path or "<root>")


def diff_jobs(a: Job, b: Job) -> List[str]:
    """
    Dotted paths of the fields that differ between two jobs.

    The id and display name are labels and are not compared.
    """
    out: List[str] = []
    _diff(a, b, "", out)
    return out
