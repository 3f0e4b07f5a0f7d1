# loader.py
# GitHub Actions workflow YAML <-> Pipeline.
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from .errors import WorkflowError
from .model import (
    CARGO_ACTION,
    CHECKOUT_ACTION,
    TOOLCHAIN_ACTION,
    CargoStep,
    CheckoutStep,
    Job,
    Pipeline,
    RunStep,
    Step,
    ToolchainStep,
    Trigger,
    is_valid_job_id,
)

DEFAULT_WORKFLOW_NAME = "workflow"
DEFAULT_BRANCHES = ("**",)


# ----------------------------------------------------------------------
# Small coercion helpers
# ----------------------------------------------------------------------

def _as_bool(value: Any, path: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise WorkflowError(f"expected a boolean, got {value!r}", path=path)


def _as_str_list(value: Any, path: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise WorkflowError(f"expected a string or a list of strings, got {value!r}", path=path)


def _as_mapping(value: Any, path: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise WorkflowError(f"expected a mapping, got {type(value).__name__}", path=path)
    return value


def _as_count(value: Any, path: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise WorkflowError(f"expected a non-negative integer, got {value!r}", path=path)
    return value


def _split_uses(uses: str) -> tuple[str, str | None]:
    action, _, version = uses.partition("@")
    return action, version or None


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def _parse_trigger(on: Any) -> Trigger:
    if on is None:
        raise WorkflowError("workflow has no 'on' trigger", path="on")

    if isinstance(on, str):
        on = [on]
    if isinstance(on, list):
        if "push" not in on:
            raise WorkflowError(f"no push trigger in {on!r}", path="on")
        return Trigger()

    on = _as_mapping(on, "on")
    if "push" not in on:
        raise WorkflowError(f"no push trigger in {sorted(on)!r}", path="on")

    push = _as_mapping(on["push"], "on.push")
    branches = _as_str_list(push.get("branches"), "on.push.branches")
    ignore = _as_str_list(push.get("branches-ignore"), "on.push.branches-ignore")
    if "branches" in push and "branches-ignore" in push:
        raise WorkflowError("'branches' and 'branches-ignore' cannot be combined", path="on.push")
    if "branches" in push and not branches:
        raise WorkflowError("'branches' must not be empty", path="on.push.branches")

    return Trigger(branches=branches or DEFAULT_BRANCHES, branches_ignore=ignore)


def _parse_step(raw: Any, path: str) -> Step:
    raw = _as_mapping(raw, path)
    uses = raw.get("uses")
    run = raw.get("run")
    if uses is not None and run is not None:
        raise WorkflowError("a step cannot have both 'uses' and 'run'", path=path)

    if run is not None:
        if not isinstance(run, str):
            raise WorkflowError("'run' must be a string", path=f"{path}.run")
        first_line = run.strip().splitlines()[0] if run.strip() else ""
        return RunStep(
            name=raw.get("name") or f"Run {first_line}",
            run=run,
            working_directory=raw.get("working-directory"),
        )

    if not isinstance(uses, str) or not uses:
        raise WorkflowError("a step needs either 'uses' or 'run'", path=path)

    name = raw.get("name") or f"Run {uses}"
    inputs = _as_mapping(raw.get("with"), f"{path}.with")
    action, _version = _split_uses(uses)

    if action == CHECKOUT_ACTION:
        depth = inputs.get("fetch-depth")
        if depth is not None:
            depth = _as_count(depth, f"{path}.with.fetch-depth")
        return CheckoutStep(
            name=name,
            uses=uses,
            ref=inputs.get("ref"),
            fetch_depth=depth,
        )

    if action == TOOLCHAIN_ACTION:
        channel = inputs.get("toolchain")
        if not channel:
            raise WorkflowError("toolchain step needs a 'toolchain' input", path=f"{path}.with")
        components = inputs.get("components") or ""
        return ToolchainStep(
            name=name,
            uses=uses,
            toolchain=str(channel),
            override=_as_bool(inputs.get("override", False), f"{path}.with.override"),
            profile=inputs.get("profile"),
            components=tuple(c.strip() for c in str(components).split(",") if c.strip()),
        )

    if action == CARGO_ACTION:
        command = inputs.get("command")
        if not command:
            raise WorkflowError("cargo step needs a 'command' input", path=f"{path}.with")
        toolchain = inputs.get("toolchain")
        return CargoStep(
            name=name,
            uses=uses,
            command=str(command),
            args=str(inputs.get("args") or ""),
            toolchain=str(toolchain) if toolchain else None,
        )

    raise WorkflowError(f"unsupported action {uses!r}", path=path)


def _parse_job(job_id: str, raw: Any) -> Job:
    path = f"jobs.{job_id}"
    if not is_valid_job_id(job_id):
        raise WorkflowError(
            "job id must start with a letter or '_' and contain only letters, digits, '_' and '-'",
            path=path,
        )
    raw = _as_mapping(raw, path)

    runs_on = raw.get("runs-on")
    if not isinstance(runs_on, str) or not runs_on:
        raise WorkflowError("'runs-on' must be a non-empty string", path=f"{path}.runs-on")

    raw_steps = raw.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise WorkflowError("job has no steps", path=f"{path}.steps")
    steps = tuple(_parse_step(s, f"{path}.steps[{i}]") for i, s in enumerate(raw_steps))

    env = _as_mapping(raw.get("env"), f"{path}.env")
    timeout = raw.get("timeout-minutes")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
        raise WorkflowError(f"expected a positive number, got {timeout!r}", path=f"{path}.timeout-minutes")

    return Job(
        id=job_id,
        name=raw.get("name") or job_id,
        steps=steps,
        runs_on=runs_on,
        needs=_as_str_list(raw.get("needs"), f"{path}.needs"),
        env={str(k): str(v) for k, v in env.items()},
        timeout_minutes=timeout,
        continue_on_error=_as_bool(raw.get("continue-on-error", False), f"{path}.continue-on-error"),
    )


def parse_pipeline(data: Any) -> Pipeline:
    """Build a Pipeline from an already-decoded workflow mapping."""
    if not isinstance(data, dict):
        raise WorkflowError("workflow must be a mapping")

    # YAML 1.1 reads a bare `on` key as the boolean True
    on = data["on"] if "on" in data else data.get(True)
    trigger = _parse_trigger(on)

    raw_jobs = data.get("jobs")
    if not isinstance(raw_jobs, dict) or not raw_jobs:
        raise WorkflowError("workflow defines no jobs", path="jobs")

    jobs = tuple(_parse_job(str(job_id), raw) for job_id, raw in raw_jobs.items())
    return Pipeline(
        name=str(data.get("name") or DEFAULT_WORKFLOW_NAME),
        trigger=trigger,
        jobs=jobs,
    )


def loads_pipeline(text: str) -> Pipeline:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise WorkflowError(f"invalid YAML: {e}") from e
    return parse_pipeline(data)


def load_pipeline(path: str | Path) -> Pipeline:
    """Load a workflow from a .yml/.yaml file."""
    wf_path = Path(path).expanduser()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix not in (".yml", ".yaml"):
        raise WorkflowError(f"workflow must be a .yml or .yaml file, got: {wf_path.name}")
    with wf_path.open(encoding="utf-8") as f:
        return loads_pipeline(f.read())


# ----------------------------------------------------------------------
# Dumping
# ----------------------------------------------------------------------

def _dump_step(step: Step) -> Dict[str, Any]:
    out: Dict[str, Any] = {"name": step.name}

    if isinstance(step, RunStep):
        out["run"] = step.run
        if step.working_directory:
            out["working-directory"] = step.working_directory
        return out

    inputs: Dict[str, Any] = {}
    if isinstance(step, CheckoutStep):
        if step.ref:
            inputs["ref"] = step.ref
        if step.fetch_depth is not None:
            inputs["fetch-depth"] = step.fetch_depth
    elif isinstance(step, ToolchainStep):
        inputs["toolchain"] = step.toolchain
        if step.override:
            inputs["override"] = True
        if step.profile:
            inputs["profile"] = step.profile
        if step.components:
            inputs["components"] = ", ".join(step.components)
    elif isinstance(step, CargoStep):
        if step.toolchain:
            inputs["toolchain"] = step.toolchain
        inputs["command"] = step.command
        if step.args:
            inputs["args"] = step.args
    else:
        raise WorkflowError(f"cannot serialise step of type {type(step).__name__}")

    out["uses"] = step.uses
    if inputs:
        out["with"] = inputs
    return out


def _dump_job(job: Job) -> Dict[str, Any]:
    out: Dict[str, Any] = {"name": job.name, "runs-on": job.runs_on}
    if job.needs:
        out["needs"] = list(job.needs)
    if job.env:
        out["env"] = dict(job.env)
    if job.timeout_minutes is not None:
        out["timeout-minutes"] = job.timeout_minutes
    if job.continue_on_error:
        out["continue-on-error"] = True
    out["steps"] = [_dump_step(s) for s in job.steps]
    return out


def dump_pipeline(pipeline: Pipeline) -> Dict[str, Any]:
    trigger = pipeline.trigger
    push: Dict[str, Any] = {}
    # both filters are written when both are set, so loading it back fails loudly
    if not trigger.branches_ignore or trigger.branches != DEFAULT_BRANCHES:
        push["branches"] = list(trigger.branches)
    if trigger.branches_ignore:
        push["branches-ignore"] = list(trigger.branches_ignore)

    jobs: Dict[str, Any] = {}
    for j in pipeline.jobs:
        jobs[j.id] = _dump_job(j)

    return {
        "name": pipeline.name,
        "on": {trigger.event: push},
        "jobs": jobs,
    }


class _OnKey(str):
    """The workflow's `on` key."""


class _WorkflowDumper(yaml.SafeDumper):
    pass


def _represent_on_key(dumper: yaml.SafeDumper, data: _OnKey) -> yaml.ScalarNode:
    # tagged as the boolean it resolves to, so the emitter writes it bare
    return dumper.represent_scalar("tag:yaml.org,2002:bool", str(data))


_WorkflowDumper.add_representer(_OnKey, _represent_on_key)


def dumps_pipeline(pipeline: Pipeline) -> str:
    data = {(_OnKey(k) if k == "on" else k): v for k, v in dump_pipeline(pipeline).items()}
    return yaml.dump(
        data,
        Dumper=_WorkflowDumper,
        sort_keys=False,
        default_flow_style=False,
    )
