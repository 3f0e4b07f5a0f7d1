# planner.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .dag import stages
from .model import Job, Pipeline
from .patterns import branch_name


@dataclass(frozen=True)
class PushEvent:
    """A push of `sha` to `ref` (branch name or refs/heads/<name>)."""
    ref: str
    sha: Optional[str] = None

    @property
    def branch(self) -> str:
        return branch_name(self.ref)


@dataclass(frozen=True)
class Plan:
    event: PushEvent
    jobs: Tuple[Job, ...] = ()
    stages: Tuple[Tuple[str, ...], ...] = ()
    skipped: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def triggered(self) -> bool:
        return bool(self.jobs)

    def job_ids(self) -> List[str]:
        return [j.id for j in self.jobs]


def plan(pipeline: Pipeline, event: PushEvent, only: Optional[List[str]] = None) -> Plan:
    """
    Decide which jobs a push activates and in which stages they run.

    The trigger is all-or-nothing: either every job activates or none does.
    `only` narrows the activated jobs to the given ids plus whatever they need.
    """
    if not pipeline.trigger.matches(event.branch):
        return Plan(event=event, skipped=pipeline.job_ids())

    jobs = list(pipeline.jobs)
    if only:
        for job_id in only:
            pipeline.job(job_id)  # raises on unknown ids
        wanted = _with_needs(pipeline, only)
        jobs = [j for j in jobs if j.id in wanted]

    levels = stages(jobs)
    selected = {j.id for j in jobs}
    return Plan(
        event=event,
        jobs=tuple(jobs),
        stages=tuple(tuple(level) for level in levels),
        skipped=tuple(i for i in pipeline.job_ids() if i not in selected),
    )


def _with_needs(pipeline: Pipeline, ids: List[str]) -> set[str]:
    wanted: set[str] = set()
    todo = list(ids)
    while todo:
        job_id = todo.pop()
        if job_id in wanted:
            continue
        wanted.add(job_id)
        todo.extend(pipeline.job(job_id).needs)
    return wanted
