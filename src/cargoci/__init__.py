from .dsl import build_and_test, cargo, checkout, job, matrix, pipeline, sh, toolchain
from .errors import PatternError, ValidationError, WorkflowError
from .loader import dump_pipeline, dumps_pipeline, load_pipeline, loads_pipeline, parse_pipeline
from .model import CargoStep, CheckoutStep, Job, Pipeline, RunStep, Step, ToolchainStep, Trigger
from .planner import Plan, PushEvent, plan
from .runner import CIError, RunResult, StepFailure, run_pipeline
from .validate import Issue, check, diff_jobs, validate

__all__ = [
    "build_and_test", "cargo", "checkout", "job", "matrix", "pipeline", "sh", "toolchain",
    "PatternError", "ValidationError", "WorkflowError",
    "dump_pipeline", "dumps_pipeline", "load_pipeline", "loads_pipeline", "parse_pipeline",
    "CargoStep", "CheckoutStep", "Job", "Pipeline", "RunStep", "Step", "ToolchainStep", "Trigger",
    "Plan", "PushEvent", "plan",
    "CIError", "RunResult", "StepFailure", "run_pipeline",
    "Issue", "check", "diff_jobs", "validate",
]
