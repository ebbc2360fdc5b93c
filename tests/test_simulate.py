from pipelint.builder import build_pipeline
from pipelint.dag import resolve
from pipelint.document import from_python
from pipelint.dsl import job, matrix, pipeline, script, stage
from pipelint.expressions import CANCELED, FAILED, SKIPPED, SUCCEEDED, SUCCEEDED_WITH_ISSUES, DependencyResult
from pipelint.model import PlanEntry
from pipelint.simulate import combine, simulate


def _run(doc, outcomes=None, **kw):
    p = build_pipeline(from_python(doc))
    return simulate(p, resolve(p), outcomes, **kw)


ROLLBACK = pipeline(
    stage("Build", job("B", script("make"))),
    stage("Deploy", job("D", script("deploy")), depends_on="Build"),
    stage("Rollback", job("R", script("rollback")), depends_on="Deploy", condition="failed()"),
)


def test_everything_succeeds_by_default():
    result = _run(pipeline(job("A", script("a")), job("B", script("b"), depends_on="A")))
    assert result.status("__default", "A") == SUCCEEDED
    assert result.status("__default", "B") == SUCCEEDED
    assert result.status("__default") == SUCCEEDED


def test_failed_condition_stage_is_skipped_when_everything_succeeds():
    result = _run(ROLLBACK)
    assert result.status("Rollback") == SKIPPED
    assert result.status("Rollback", "R") == SKIPPED
    assert result.skipped() == [PlanEntry("Rollback", "R")]


def test_failed_condition_stage_runs_when_a_dependency_fails():
    result = _run(ROLLBACK, {"Deploy.D": FAILED})
    assert result.status("Deploy") == FAILED
    assert result.status("Rollback") == SUCCEEDED
    assert result.status("Rollback", "R") == SUCCEEDED


def test_failure_skips_dependents_but_not_siblings():
    doc = pipeline(
        job("A", script("a")),
        job("B", script("b")),
        job("C", script("c"), depends_on="A"),
        job("Report", script("r"), depends_on=["A", "B"], condition="always()"),
    )
    result = _run(doc, {"A": FAILED})
    assert result.status("__default", "B") == SUCCEEDED
    assert result.status("__default", "C") == SKIPPED
    assert result.status("__default", "Report") == SUCCEEDED
    assert result.status("__default") == FAILED


def test_skipped_stage_skips_all_its_jobs_and_later_stages():
    doc = pipeline(
        stage("One", job("A", script("a"))),
        stage("Two", job("B", script("b")), job("C", script("c"))),
        stage("Three", job("D", script("d"))),
    )
    result = _run(doc, {"One.A": FAILED})
    assert result.status("Two") == SKIPPED
    assert [result.status("Two", j) for j in ("B", "C")] == [SKIPPED, SKIPPED]
    assert result.status("Three") == SKIPPED


def test_continue_on_error_turns_failure_into_issues():
    doc = pipeline(job("A", script("a")), job("B", script("b"), depends_on="A"))
    doc["jobs"][0]["continueOnError"] = True
    result = _run(doc, {"A": FAILED})
    assert result.status("__default", "A") == SUCCEEDED_WITH_ISSUES
    assert result.status("__default", "B") == SUCCEEDED


def test_condition_on_output_variable():
    doc = pipeline(
        job("Check", script("echo '##vso[task.setvariable variable=changed;isOutput=true]yes'", name="diff")),
        job("Build", script("make"), depends_on="Check",
            condition="eq(dependencies.Check.outputs['diff.changed'], 'yes')"),
    )
    ran = _run(doc, {"Check": DependencyResult(SUCCEEDED, {"diff.changed": "yes"})})
    assert ran.status("__default", "Build") == SUCCEEDED
    skipped = _run(doc, {"Check": DependencyResult(SUCCEEDED, {"diff.changed": "no"})})
    assert skipped.status("__default", "Build") == SKIPPED


def test_condition_on_variables():
    doc = pipeline(job("Publish", script("publish"),
                       condition="and(succeeded(), eq(variables['Build.SourceBranch'], 'refs/heads/main'))"))
    assert _run(doc, variables={"Build.SourceBranch": "refs/heads/main"}).ran() == [PlanEntry("__default", "Publish")]
    assert _run(doc, variables={"Build.SourceBranch": "refs/heads/dev"}).ran() == []


def test_matrix_cells_are_simulated_separately():
    doc = pipeline(
        job("T", script("pytest"), strategy=matrix({"linux": {}, "mac": {}})),
        job("Next", script("n"), depends_on="T"),
    )
    result = _run(doc, {"T_mac": FAILED})
    assert result.status("__default", "T_linux") == SUCCEEDED
    assert result.status("__default", "T_mac") == FAILED
    assert result.status("__default", "Next") == SKIPPED


def test_canceled_run_only_runs_always_jobs():
    doc = pipeline(job("A", script("a")), job("Cleanup", script("c"), condition="always()"))
    result = _run(doc, canceled=True)
    assert result.status("__default", "A") == SKIPPED
    assert result.status("__default", "Cleanup") == SUCCEEDED


def test_combine():
    assert combine([]) == SKIPPED
    assert combine([SKIPPED, SUCCEEDED]) == SUCCEEDED
    assert combine([SUCCEEDED, SUCCEEDED_WITH_ISSUES]) == SUCCEEDED_WITH_ISSUES
    assert combine([CANCELED, SUCCEEDED]) == CANCELED
    assert combine([CANCELED, FAILED]) == FAILED
