import subprocess
import threading

import pytest

from cargoci.dsl import build_and_test, cargo, checkout, job, pipeline, sh, toolchain
from cargoci.planner import PushEvent
from cargoci.runner import TIMEOUT_EXIT_CODE, CIError, StepFailure, run_pipeline
from cargoci.settings import Settings


class FakeExecutor:
    """Records every command; fails the ones `fail` says should fail."""

    def __init__(self, fail=None, raises=None):
        self.calls = []
        self.fail = fail or (lambda cmd: False)
        self.raises = raises or (lambda cmd: None)
        self._lock = threading.Lock()

    def __call__(self, cmd, timeout):
        with self._lock:
            self.calls.append((cmd, timeout))
        exc = self.raises(cmd)
        if exc is not None:
            raise exc
        code = 1 if self.fail(cmd) else 0
        return subprocess.CompletedProcess(list(cmd.argv), code, stdout="out", stderr="boom" if code else "")


def _run(p, tmp_path, executor, ref="main", **kw):
    return run_pipeline(
        p,
        event=PushEvent(ref=ref, sha="abc123"),
        source=str(tmp_path),
        workdir=tmp_path / "work",
        executor=executor,
        settings=Settings(),
        **kw,
    )


def test_stock_pipeline_runs_both_jobs(tmp_path):
    ex = FakeExecutor()
    result = _run(build_and_test(), tmp_path, ex, ref="feature/x")

    assert result.status == "success"
    assert result.ok
    assert result.results == {"test": "ok", "test-nightly": "ok"}

    argvs = [c.argv for c, _ in ex.calls]
    assert ("rustup", "override", "set", "nightly") in argvs
    assert ("rustup", "override", "set", "stable") not in argvs
    assert argvs.count(("cargo", "test", "--all-features", "--all")) == 2


def test_each_job_gets_its_own_workspace_and_env(tmp_path):
    ex = FakeExecutor()
    _run(build_and_test(), tmp_path, ex)

    cargo_calls = [c for c, _ in ex.calls if c.argv[0] == "cargo"]
    assert sorted(c.cwd.name for c in cargo_calls) == ["test", "test-nightly"]
    for c in cargo_calls:
        assert c.env["CARGOCI_JOB"] == c.cwd.name
        assert c.env["CARGOCI_SHA"] == "abc123"
        assert c.env["CI"] == "true"
    assert (tmp_path / "work" / "test").is_dir()


def test_steps_run_in_order(tmp_path):
    ex = FakeExecutor()
    _run(pipeline("p", build_and_test().job("test")), tmp_path, ex)
    kinds = [c.argv[:2] for c, _ in ex.calls]
    assert kinds == [
        ("git", "clone"),
        ("git", "checkout"),
        ("rustup", "toolchain"),
        ("cargo", "test"),
    ]


def test_first_failing_step_aborts_job_only(tmp_path):
    # nightly toolchain install fails; stable must still finish
    ex = FakeExecutor(fail=lambda cmd: cmd.argv[:4] == ("rustup", "toolchain", "install", "nightly"))
    result = _run(build_and_test(), tmp_path, ex)

    assert result.results == {"test": "ok", "test-nightly": "failed"}
    assert result.status == "failure"
    err = result.errors["test-nightly"]
    assert isinstance(err, StepFailure)
    assert err.step == "Set up Rust"
    assert err.exit_code == 1
    assert err.stderr == "boom"

    nightly_cargo = [c for c, _ in ex.calls if c.argv[0] == "cargo" and c.cwd.name == "test-nightly"]
    assert nightly_cargo == []


def test_non_matching_push_runs_nothing(tmp_path):
    ex = FakeExecutor()
    p = pipeline("p", job("a", sh("s", "true")), branches=["main"])
    result = _run(p, tmp_path, ex, ref="dev")
    assert result.status == "skipped"
    assert result.results == {}
    assert ex.calls == []


def test_failed_dependency_skips_dependents(tmp_path):
    ex = FakeExecutor(fail=lambda cmd: cmd.argv[-1] == "make build")
    p = pipeline(
        "p",
        job("build", sh("b", "make build")),
        job("test", sh("t", "make test"), needs=["build"]),
    )
    result = _run(p, tmp_path, ex)
    assert result.results == {"build": "failed", "test": "skipped"}


def test_continue_on_error_does_not_fail_run(tmp_path):
    ex = FakeExecutor(fail=lambda cmd: cmd.argv[-1] == "flaky")
    p = pipeline(
        "p",
        job("lint", sh("l", "flaky"), continue_on_error=True),
        job("test", sh("t", "make test"), needs=["lint"]),
    )
    result = _run(p, tmp_path, ex)
    assert result.results == {"lint": "failed", "test": "ok"}
    assert result.status == "success"


def test_fail_fast_ignores_tolerated_failures(tmp_path):
    ex = FakeExecutor(fail=lambda cmd: cmd.argv[-1] == "flaky")
    p = pipeline(
        "p",
        job("lint", sh("l", "flaky"), continue_on_error=True),
        job("test", sh("t", "make test"), needs=["lint"]),
    )
    result = _run(p, tmp_path, ex, max_workers=1, fail_fast=True)
    assert result.results == {"lint": "failed", "test": "ok"}


def test_missing_tool_becomes_ci_error(tmp_path):
    ex = FakeExecutor(raises=lambda cmd: FileNotFoundError(cmd.argv[0]) if cmd.argv[0] == "rustup" else None)
    result = _run(pipeline("p", build_and_test().job("test")), tmp_path, ex)
    err = result.errors["test"]
    assert isinstance(err, CIError)
    assert err.kind == "missing_tool"
    assert "rustup.rs" in err.details["hint"]


def test_timeout_is_step_failure(tmp_path):
    ex = FakeExecutor(raises=lambda cmd: subprocess.TimeoutExpired(list(cmd.argv), 60))
    p = pipeline("p", job("slow", sh("s", "sleep 999"), timeout_minutes=1))
    result = _run(p, tmp_path, ex)
    err = result.errors["slow"]
    assert isinstance(err, StepFailure)
    assert err.exit_code == TIMEOUT_EXIT_CODE
    assert ex.calls[0][1] == 60


def test_only_runs_selected_job(tmp_path):
    ex = FakeExecutor()
    result = _run(build_and_test(), tmp_path, ex, only=["test-nightly"])
    assert result.results == {"test-nightly": "ok"}


def test_stale_workspace_is_replaced(tmp_path):
    stale = tmp_path / "work" / "a" / "leftover.txt"
    stale.parent.mkdir(parents=True)
    stale.write_text("x")
    _run(pipeline("p", job("a", sh("s", "true"))), tmp_path, FakeExecutor())
    assert not stale.exists()


class BarrierExecutor(FakeExecutor):
    """Holds every cargo command until `parties` of them are running at once."""

    def __init__(self, parties=2, timeout=5):
        super().__init__()
        self.barrier = threading.Barrier(parties, timeout=timeout)

    def __call__(self, cmd, timeout):
        proc = super().__call__(cmd, timeout)
        if cmd.argv[0] != "cargo":
            return proc
        try:
            self.barrier.wait()
        except threading.BrokenBarrierError:
            return subprocess.CompletedProcess(list(cmd.argv), 1, stdout="", stderr="ran alone")
        return proc


def test_both_jobs_run_at_the_same_time(tmp_path):
    result = _run(build_and_test(), tmp_path, BarrierExecutor())
    assert result.results == {"test": "ok", "test-nightly": "ok"}


def test_single_worker_cannot_overlap_jobs(tmp_path):
    result = _run(build_and_test(), tmp_path, BarrierExecutor(timeout=0.5), max_workers=1)
    assert result.results == {"test": "failed", "test-nightly": "failed"}


def test_unparseable_cargo_args_fail_only_that_job(tmp_path):
    p = pipeline(
        "p",
        job("good", sh("s", "true")),
        job("bad", checkout(), toolchain("stable"), cargo("test", '--features "a')),
    )
    ex = FakeExecutor()
    result = _run(p, tmp_path, ex)

    assert result.results == {"good": "ok", "bad": "failed"}
    err = result.errors["bad"]
    assert isinstance(err, CIError)
    assert err.kind == "invalid_step"
    assert err.step == "Run cargo test"
    assert not any(c.argv[0] == "cargo" for c, _ in ex.calls)


@pytest.mark.parametrize("job_id", ["..", "../.."])
def test_workspace_outside_workdir_is_refused(tmp_path, job_id):
    precious = tmp_path / "precious.txt"
    precious.write_text("keep me")
    (tmp_path / "work").mkdir()

    ex = FakeExecutor()
    result = _run(pipeline("p", job(job_id, sh("s", "true"))), tmp_path, ex)

    assert result.results == {job_id: "failed"}
    err = result.errors[job_id]
    assert isinstance(err, CIError)
    assert err.kind == "unsafe_workspace"
    assert precious.read_text() == "keep me"
    assert ex.calls == []
