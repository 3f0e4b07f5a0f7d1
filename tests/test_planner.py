import pytest

from cargoci.dag import build_dag, stages, topo_levels
from cargoci.dsl import build_and_test, job, pipeline, sh
from cargoci.errors import WorkflowError
from cargoci.planner import PushEvent, plan


def _step():
    return sh("s", "true")


@pytest.mark.parametrize("ref", ["feature/x", "main", "refs/heads/main", "release/1.0/rc"])
def test_every_push_activates_both_jobs(ref):
    p = plan(build_and_test(), PushEvent(ref=ref))
    assert p.triggered
    assert p.job_ids() == ["test", "test-nightly"]
    # independent jobs run side by side
    assert p.stages == (("test", "test-nightly"),)
    assert p.skipped == ()


def test_push_event_branch():
    assert PushEvent(ref="refs/heads/feature/x", sha="abc").branch == "feature/x"


def test_non_matching_branch_activates_nothing():
    p = pipeline("p", job("a", _step()), branches=["main"])
    result = plan(p, PushEvent(ref="feature/x"))
    assert not result.triggered
    assert result.jobs == ()
    assert result.skipped == ("a",)


def test_only_pulls_in_needs():
    p = pipeline(
        "p",
        job("build", _step()),
        job("test", _step(), needs=["build"]),
        job("docs", _step()),
    )
    result = plan(p, PushEvent(ref="main"), only=["test"])
    assert result.job_ids() == ["build", "test"]
    assert result.stages == (("build",), ("test",))
    assert result.skipped == ("docs",)


def test_only_unknown_job():
    with pytest.raises(WorkflowError):
        plan(build_and_test(), PushEvent(ref="main"), only=["nope"])


def test_levels_follow_needs():
    jobs = [
        job("c", _step(), needs=["a", "b"]),
        job("a", _step()),
        job("b", _step(), needs=["a"]),
    ]
    adj, indeg = build_dag(jobs)
    assert indeg == {"a": 0, "b": 1, "c": 2}
    assert topo_levels(adj, indeg) == [["a"], ["b"], ["c"]]


def test_cycle_is_rejected():
    with pytest.raises(ValueError, match="cycle"):
        stages([job("a", _step(), needs=["b"]), job("b", _step(), needs=["a"])])


def test_missing_need_is_rejected():
    with pytest.raises(ValueError, match="missing"):
        build_dag([job("a", _step(), needs=["zzz"])])
