# runner.py
from __future__ import annotations

import os
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .dag import build_dag
from .model import Job, Pipeline, Step
from .planner import Plan, PushEvent, plan
from .settings import Settings
from .step_workflows import Command, JobContext, compile_step
from .ui.console import get_console

# push ---> plan ---> one workspace per job ---> steps in order


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"


TOOL_HINTS = {
    "git": "Install Git or fix PATH.",
    "rustup": "Install rustup from https://rustup.rs or fix PATH.",
    "cargo": "Install a Rust toolchain with rustup or fix PATH.",
    "bash": "Install bash or set CARGOCI_SHELL to another POSIX shell.",
}

TIMEOUT_EXIT_CODE = 124
OUTPUT_TAIL = 4000

OK = "ok"
FAILED = "failed"
SKIPPED = "skipped"


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

Executor = Callable[[Command, Optional[float]], subprocess.CompletedProcess]


def subprocess_executor(cmd: Command, timeout: Optional[float]) -> subprocess.CompletedProcess:
    env = os.environ.copy()
    env.update(cmd.env)
    return subprocess.run(
        list(cmd.argv),
        cwd=str(cmd.cwd),
        env=env,
        text=True,
        capture_output=True,   # so we can show output on failure
        timeout=timeout,
    )


def _run_command(job: Job, step: Step, cmd: Command, executor: Executor) -> None:
    timeout = job.timeout_minutes * 60 if job.timeout_minutes else None
    try:
        proc = executor(cmd, timeout)
    except FileNotFoundError as e:
        tool = Path(cmd.argv[0]).name
        raise CIError(
            kind="missing_tool",
            job=job.id,
            step=step.name,
            message=f"'{tool}' was not found",
            details={"hint": TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")},
        ) from e
    except subprocess.TimeoutExpired as e:
        raise StepFailure(
            job=job.id,
            step=step.name,
            cmd=cmd.display(),
            exit_code=TIMEOUT_EXIT_CODE,
            stderr=f"timed out after {job.timeout_minutes} minute(s)",
        ) from e

    if proc.returncode != 0:
        raise StepFailure(
            job=job.id,
            step=step.name,
            cmd=cmd.display(),
            exit_code=proc.returncode,
            stdout=(proc.stdout or "")[-OUTPUT_TAIL:],
            stderr=(proc.stderr or "")[-OUTPUT_TAIL:],
        )


def _prepare_workspace(job: Job, ctx: JobContext) -> None:
    workspace = ctx.workspace
    if ctx.root is not None:
        root = ctx.root.resolve()
        if root not in workspace.resolve().parents:
            raise CIError(
                kind="unsafe_workspace",
                job=job.id,
                step=None,
                message=f"workspace {workspace} is not inside {root}",
            )
    # every job starts from an empty directory
    if workspace.exists():
        shutil.rmtree(workspace)
    workspace.mkdir(parents=True)


def _run_job(job: Job, ctx: JobContext, executor: Executor) -> str:
    """
    Run the steps of one job strictly in order.

    Returns "ok"; raises StepFailure / CIError at the first failing step,
    leaving the remaining steps unrun.
    """
    console = get_console()
    console.print_job_start(job.id)
    _prepare_workspace(job, ctx)

    env = {"CI": "true", "CARGOCI_JOB": job.id, **job.env, **ctx.env}
    for step in job.steps:
        console.print_step(job.id, step.name)
        try:
            cmds = compile_step(step, ctx)
        except ValueError as e:
            raise CIError(
                kind="invalid_step",
                job=job.id,
                step=step.name,
                message=str(e),
            ) from e
        for cmd in cmds:
            cmd = Command(argv=cmd.argv, cwd=cmd.cwd, env={**env, **cmd.env})
            console.print_debug(f"[{job.id}] $ {cmd.display()}")
            _run_command(job, step, cmd, executor)

    return OK


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

@dataclass
class RunResult:
    plan: Plan
    results: Dict[str, str] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)
    # jobs whose failure does not fail the run
    tolerated: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.plan.triggered:
            return SKIPPED
        for job_id, status in self.results.items():
            if status == FAILED and job_id not in self.tolerated:
                return "failure"
        return "success"

    @property
    def ok(self) -> bool:
        return self.status != "failure"


def run_pipeline(
    pipeline: Pipeline,
    *,
    event: PushEvent,
    source: str | Path = ".",
    workdir: str | Path | None = None,
    max_workers: int | None = None,
    fail_fast: bool = False,
    only: Optional[List[str]] = None,
    executor: Executor | None = None,
    settings: Settings | None = None,
) -> RunResult:
    """
    Run every job the push activates, each in its own workspace.

    Jobs whose `needs` are satisfied run in parallel. A failed dependency
    marks its dependents "skipped". With fail_fast, no new job is started
    after the first failure and unstarted jobs are reported "skipped".
    """
    settings = settings or Settings.from_env()
    executor = executor or subprocess_executor
    console = get_console()

    the_plan = plan(pipeline, event, only=only)
    result = RunResult(plan=the_plan)
    if not the_plan.triggered:
        console.print_info(f"push to '{event.branch}' does not match the trigger; nothing to run")
        return result

    jobs = list(the_plan.jobs)
    by_id = {j.id: j for j in jobs}
    result.tolerated = [j.id for j in jobs if j.continue_on_error]
    adj, indeg = build_dag(jobs)

    root = Path(workdir or settings.workdir).resolve()
    source_s = str(Path(source).resolve()) if "://" not in str(source) else str(source)

    def context_for(job: Job) -> JobContext:
        return JobContext(
            workspace=root / job.id,
            source=source_s,
            root=root,
            sha=event.sha,
            settings=settings,
            env={"CARGOCI_REF": event.ref, **({"CARGOCI_SHA": event.sha} if event.sha else {})},
        )

    if max_workers is None:
        max_workers = settings.max_workers or max(1, len(jobs))

    ready: List[str] = sorted(n for n, d in indeg.items() if d == 0)
    in_flight: Dict = {}
    stop = False

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while ready or in_flight:
            # schedule all currently ready
            while ready and not stop:
                job_id = ready.pop(0)
                fut = pool.submit(_run_job, by_id[job_id], context_for(by_id[job_id]), executor)
                in_flight[fut] = job_id

            if not in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready jobs
            fut = next(as_completed(list(in_flight.keys())))
            job_id = in_flight.pop(fut)

            try:
                result.results[job_id] = fut.result()
                console.print_success(job_id)
            except (StepFailure, CIError, OSError) as e:
                result.results[job_id] = FAILED
                result.errors[job_id] = e
                console.print_job_failure(job_id, e)
                if fail_fast and job_id not in result.tolerated:
                    stop = True

            # unlock dependents on success or tolerated failure
            if result.results[job_id] == OK or job_id in result.tolerated:
                for nxt in sorted(adj[job_id]):
                    indeg[nxt] -= 1
                    if indeg[nxt] == 0:
                        ready.append(nxt)

    for j in jobs:
        result.results.setdefault(j.id, SKIPPED)

    return result
