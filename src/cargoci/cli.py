# cli.py
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import click

from cargoci.dsl import build_and_test
from cargoci.errors import WorkflowError
from cargoci.git_facts.git import current_branch, get_remote_url, head_sha, is_dirty
from cargoci.loader import dumps_pipeline, load_pipeline
from cargoci.planner import PushEvent, plan
from cargoci.runner import run_pipeline
from cargoci.settings import DEFAULT_WORKFLOW, WORKFLOWS_DIR, Settings
from cargoci.ui.console import Console, get_console, set_console
from cargoci.validate import ERROR, diff_jobs, validate


def find_workflow_files(root: Path = Path(".")) -> list[Path]:
    """All *.yml / *.yaml files under .github/workflows."""
    wf_dir = root / WORKFLOWS_DIR
    if not wf_dir.is_dir():
        return []
    return sorted([*wf_dir.glob("*.yml"), *wf_dir.glob("*.yaml")])


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create one with:\n  cargoci init",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", f"  {WORKFLOWS_DIR}/*.yml", f"  {WORKFLOWS_DIR}/*.yaml"],
            suggestion="Create the default workflow:\n  cargoci init\n\nOr specify one explicitly:\n  cargoci run --workflow path/to/workflow.yml",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  cargoci run --workflow {workflow_files[0]}",
        )
        sys.exit(1)

    return workflow_files[0]


def _load(workflow: str | None):
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return workflow_path, load_pipeline(workflow_path)
    except WorkflowError as e:
        console.print_error(
            "Invalid workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        sys.exit(1)


def _default_branch() -> str:
    try:
        return current_branch()
    except (subprocess.CalledProcessError, FileNotFoundError):
        get_console().print_debug("not inside a git repository; assuming branch 'main'")
        return "main"


workflow_option = click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to the single file in {WORKFLOWS_DIR})",
)
branch_option = click.option(
    "--branch",
    default=None,
    help="Branch the push goes to (defaults to the current git branch)",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces, commands and full output)",
)
@click.pass_context
def cli(ctx, debug):
    """cargo-ci: model, check and run push-triggered Rust CI workflows locally."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--path", "path", default=DEFAULT_WORKFLOW, show_default=True, help="Where to write the workflow")
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file")
def init(path, force):
    """Write the stock Build and Test workflow (stable + nightly)."""
    console = get_console()
    target = Path(path)
    if target.exists() and not force:
        console.print_error(
            "Workflow already exists",
            f"{target} already exists.",
            suggestion="Pass --force to overwrite it.",
        )
        sys.exit(1)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(dumps_pipeline(build_and_test()), encoding="utf-8")
    console.print_info(f"Wrote {target}")


@cli.command()
@workflow_option
@click.pass_context
def show(ctx, workflow):
    """Print the jobs and steps of a workflow."""
    console = get_console()
    workflow_path, pipeline = _load(workflow)

    console.print_header(f"{pipeline.name} ({workflow_path})")
    trigger = pipeline.trigger
    filters = ", ".join(trigger.branches)
    if trigger.branches_ignore:
        filters += f" (ignoring {', '.join(trigger.branches_ignore)})"
    console.print_info(f"on {trigger.event}: {filters}")
    for job in pipeline.jobs:
        console.print_info(f"\n{job.id}: {job.name} [runs-on {job.runs_on}]")
        if job.needs:
            console.print_info(f"  needs: {', '.join(job.needs)}")
        for i, step in enumerate(job.steps):
            console.print_info(f"  {i + 1}. {step.kind:<9} {step.name}")


@cli.command(name="validate")
@workflow_option
@click.pass_context
def validate_cmd(ctx, workflow):
    """Check a workflow for structural problems."""
    console = get_console()
    workflow_path, pipeline = _load(workflow)

    issues = validate(pipeline)
    if not issues:
        console.print_info(f"{workflow_path}: OK ({len(pipeline.jobs)} job(s))")
        return

    console.print_info(f"{workflow_path}:")
    console.print_issues(issues)
    if any(i.level == ERROR for i in issues):
        sys.exit(1)


@cli.command(name="plan")
@workflow_option
@branch_option
@click.option("--job", "jobs", multiple=True, help="Only plan these job ids (and what they need)")
@click.pass_context
def plan_cmd(ctx, workflow, branch, jobs):
    """Show which jobs a push to BRANCH would run."""
    console = get_console()
    _path, pipeline = _load(workflow)
    branch = branch or _default_branch()

    try:
        the_plan = plan(pipeline, PushEvent(ref=branch), only=list(jobs) or None)
    except (WorkflowError, ValueError) as e:
        console.print_exception(e)
        sys.exit(1)

    if not the_plan.triggered:
        console.print_info(f"push to '{the_plan.event.branch}': no jobs triggered")
        return
    console.print_info(f"push to '{the_plan.event.branch}': {len(the_plan.jobs)} job(s)")
    console.print_plan(the_plan.stages, the_plan.skipped)


@cli.command(name="diff")
@click.argument("job_a")
@click.argument("job_b")
@workflow_option
@click.pass_context
def diff_cmd(ctx, job_a, job_b, workflow):
    """List the fields that differ between two jobs."""
    console = get_console()
    _path, pipeline = _load(workflow)
    try:
        a, b = pipeline.job(job_a), pipeline.job(job_b)
    except WorkflowError as e:
        console.print_exception(e)
        sys.exit(1)

    changed = diff_jobs(a, b)
    if not changed:
        console.print_info(f"{job_a} and {job_b} are identical")
        return
    for path in changed:
        console.print_info(path)


@cli.command()
@workflow_option
@branch_option
@click.option("--job", "jobs", multiple=True, help="Only run these job ids (and what they need)")
@click.option("--workers", default=None, type=int, help="Number of parallel jobs")
@click.option("--workdir", default=None, help="Directory for job workspaces")
@click.option("--fail-fast/--no-fail-fast", default=False, help="Stop starting new jobs after the first failure")
@click.pass_context
def run(ctx, workflow, branch, jobs, workers, workdir, fail_fast):
    """Run a workflow locally as if BRANCH had just been pushed."""
    console = get_console()
    workflow_path, pipeline = _load(workflow)
    settings = Settings.from_env()

    try:
        try:
            repo_url = get_remote_url("origin")
            repo_name = repo_url.rstrip("/").split("/")[-1].replace(".git", "")
        except (subprocess.CalledProcessError, FileNotFoundError):
            repo_name = Path(".").resolve().name

        try:
            sha = head_sha()
            if is_dirty():
                console.print_info("Note: uncommitted changes are not part of the run")
        except (subprocess.CalledProcessError, FileNotFoundError):
            sha = None

        event = PushEvent(ref=branch or _default_branch(), sha=sha)
        console.print_run_started(
            repository=repo_name,
            workflow=workflow_path.name,
            branch=event.branch,
            job_count=len(pipeline.jobs),
        )

        result = run_pipeline(
            pipeline,
            event=event,
            source=".",
            workdir=workdir,
            max_workers=workers,
            fail_fast=fail_fast,
            only=list(jobs) or None,
            settings=settings,
        )

        if result.results:
            console.print_results(result.results)
        if not result.ok:
            sys.exit(1)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except (WorkflowError, ValueError, OSError) as e:
        console.print_exception(e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
