import pytest

from cargoci.dsl import build_and_test, cargo, checkout, job, pipeline, sh, toolchain
from cargoci.errors import ValidationError
from cargoci.model import Pipeline, Trigger
from cargoci.validate import ERROR, WARNING, check, diff_jobs, validate


def _levels(issues):
    return sorted((i.level, i.location) for i in issues)


def test_stock_pipeline_is_clean(repo_pipeline):
    assert validate(build_and_test()) == []
    assert validate(repo_pipeline) == []
    assert check(repo_pipeline) is repo_pipeline


def test_no_jobs():
    p = Pipeline(name="p", trigger=Trigger(), jobs=())
    assert _levels(validate(p)) == [(ERROR, "jobs")]


def test_bad_channel_and_empty_command():
    p = pipeline("p", job("a", checkout(), toolchain("unstable"), cargo(" ")))
    issues = validate(p)
    assert _levels(issues) == [(ERROR, "jobs.a.steps[1]"), (ERROR, "jobs.a.steps[2]")]


def test_cargo_order_warnings():
    p = pipeline("p", job("a", cargo("test"), checkout(), toolchain("stable")))
    issues = validate(p)
    assert {i.level for i in issues} == {WARNING}
    assert len(issues) == 2
    check(p)  # warnings alone do not fail


def test_dependency_problems():
    p = pipeline(
        "p",
        job("a", sh("s", "true"), needs=["b"]),
        job("b", sh("s", "true"), needs=["a"]),
    )
    issues = validate(p)
    assert any("cycle" in i.message for i in issues)

    p = pipeline("p", job("a", sh("s", "true"), needs=["ghost"]))
    assert any("ghost" in i.message for i in validate(p))

    p = pipeline("p", job("a", sh("s", "true")), job("a", sh("s", "true")))
    assert any("Duplicate" in i.message for i in validate(p))


def test_bad_trigger_pattern():
    p = pipeline("p", job("a", sh("s", "true")), branches=["release/[0-9"])
    assert _levels(validate(p)) == [(ERROR, "on.push.branches")]


def test_check_raises_with_all_errors():
    p = pipeline("p", job("a", toolchain("x"), toolchain("y")))
    with pytest.raises(ValidationError) as exc:
        check(p)
    assert len(exc.value.issues) == 2
    assert "2 error(s)" in str(exc.value)


def test_diff_ignores_labels():
    a = job("a", checkout(), name="A")
    b = job("b", checkout(), name="B")
    assert diff_jobs(a, b) == []


def test_diff_reports_extra_steps_and_env():
    a = job("a", checkout(), env={"X": "1"})
    b = job("b", checkout(), cargo("test"), env={"X": "2", "Y": "3"}, runs_on="macos-latest")
    assert diff_jobs(a, b) == ["steps[1]", "runs_on", "env.X", "env.Y"]


def test_diff_step_kind_change():
    a = job("a", checkout())
    b = job("b", sh("s", "git clone"))
    assert diff_jobs(a, b) == ["steps[0]"]


def test_job_id_that_is_not_a_plain_name():
    p = pipeline("p", job("../..", sh("s", "true")), job("ok_1", sh("s", "true")))
    assert _levels(validate(p)) == [(ERROR, "jobs.../..")]


def test_unbalanced_quote_in_cargo_args():
    p = pipeline("p", job("bad", checkout(), toolchain("stable"), cargo("test", '--features "a')))
    issues = validate(p)
    assert _levels(issues) == [(ERROR, "jobs.bad.steps[2]")]
    assert "cannot parse cargo args" in issues[0].message


def test_branch_filters_cannot_be_combined():
    p = pipeline("p", job("a", sh("s", "true")), branches=["main"], branches_ignore=["gh-pages"])
    assert _levels(validate(p)) == [(ERROR, "on.push")]

    p = pipeline("p", job("a", sh("s", "true")), branches_ignore=["gh-pages"])
    assert validate(p) == []
