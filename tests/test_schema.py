from pipelint.document import from_python
from pipelint.dsl import job, matrix, pipeline, script, stage, task
from pipelint.schema import ERROR, WARNING, SchemaValidator


def _validate(data, kind="pipeline", workers=1):
    return SchemaValidator(workers=workers).validate(from_python(data), kind)


def _codes(result):
    return [f.code for f in result]


def test_valid_pipeline_has_no_findings():
    doc = pipeline(
        stage("Build", job("Compile", script("make"), task("PublishTestResults@2", {"testResultsFiles": "**/*.xml"}))),
        stage("Deploy", job("Ship", script("./ship")), depends_on="Build", condition="succeeded()"),
    )
    result = _validate(doc)
    assert result.ok
    assert list(result) == []


def test_pipeline_needs_a_body():
    result = _validate({"name": "x"})
    assert _codes(result) == ["missing-key"]
    assert result.findings[0].path == "<root>"


def test_unknown_keys_are_warnings_not_errors():
    doc = pipeline(job("A", script("a")))
    doc["jobs"][0]["colour"] = "blue"
    result = _validate(doc)
    assert result.ok
    assert [(f.severity, f.code, f.path) for f in result] == [(WARNING, "unknown-key", "jobs[0].colour")]


def test_step_needs_exactly_one_kind():
    doc = pipeline(job("A", {"displayName": "nothing"}, {"script": "a", "bash": "b"}))
    result = _validate(doc)
    assert _codes(result) == ["missing-key", "conflicting-keys"]
    assert [f.path for f in result] == ["jobs[0].steps[0]", "jobs[0].steps[1]"]


def test_missing_steps_and_bad_names():
    doc = {"jobs": [{"job": "1st"}]}
    result = _validate(doc)
    assert set(_codes(result)) == {"invalid-name", "missing-key"}
    assert all(f.severity == ERROR for f in result)


def test_duplicate_names_and_unknown_dependencies():
    doc = pipeline(
        stage("A", job("J", script("a"))),
        stage("A", job("J", script("a"))),
        stage("B", job("J", script("b")), depends_on=["Missing"]),
    )
    result = _validate(doc)
    assert _codes(result) == ["duplicate-name", "unknown-dependency"]
    assert result.findings[0].path == "stages[1]"
    assert result.findings[1].path == "stages[2].dependsOn"


def test_duplicate_job_names_within_a_stage():
    doc = pipeline(job("A", script("a")), job("A", script("b")))
    assert _codes(_validate(doc)) == ["duplicate-name"]


def test_condition_is_statically_checked():
    doc = pipeline(
        job("A", script("a"), condition="and(succeeded(), nope())"),
        job("B", script("b"), condition="eq(1)"),
        job("C", script("c"), condition="eq(1,"),
    )
    result = _validate(doc)
    assert _codes(result) == ["unknown-function", "arity-mismatch", "expression-syntax"]
    assert [f.path for f in result] == ["jobs[0].condition", "jobs[1].condition", "jobs[2].condition"]


def test_depends_on_must_be_names():
    doc = pipeline(job("A", script("a")), job("B", script("b")))
    doc["jobs"][1]["dependsOn"] = {"A": True}
    assert _codes(_validate(doc)) == ["type"]


def test_matrix_shape():
    doc = pipeline(job("T", script("t"), strategy=matrix({"linux": {"os": "ubuntu"}})))
    assert _validate(doc).ok
    doc["jobs"][0]["strategy"]["matrix"] = {"bad-cell": "x"}
    assert _codes(_validate(doc)) == ["invalid-name", "type"]
    doc["jobs"][0]["strategy"]["matrix"] = "$[ variables.cells ]"
    result = _validate(doc)
    assert result.ok
    assert _codes(result) == ["matrix-runtime"]


def test_task_without_version_is_a_warning():
    result = _validate(pipeline(job("A", task("Npm"))))
    assert result.ok
    assert _codes(result) == ["task-version"]


def test_deployment_job():
    deploy = {
        "deployment": "Web",
        "environment": "prod",
        "strategy": {"runOnce": {"deploy": {"steps": [{"script": "./deploy"}]}}},
    }
    assert _validate({"jobs": [deploy]}).ok
    broken = {"deployment": "Web", "strategy": {"runOnce": {}, "canary": {}}}
    assert _codes(_validate({"jobs": [broken]})) == ["missing-key", "missing-key"]


def test_template_references_are_checked_as_calls():
    doc = {"steps": [{"template": "steps/build.yml", "parameters": ["not", "a", "mapping"]}]}
    assert _codes(_validate(doc)) == ["type"]


def test_directives_are_looked_through():
    doc = {
        "steps": [
            {"${{ if eq(parameters.x, 'y') }}": [{"script": "a"}, {"nope": 1}]},
            "${{ parameters.extraSteps }}",
        ]
    }
    result = _validate(doc)
    assert _codes(result) == ["missing-key"]
    assert result.findings[0].path == "steps[0].${{ if eq(parameters.x, 'y') }}[1]"


def test_parameter_declarations():
    doc = pipeline(job("A", script("a")), parameters=[
        {"name": "env", "type": "string", "values": ["dev", "prod"]},
        {"name": "env", "type": "strnig"},
    ])
    assert _codes(_validate(doc)) == ["duplicate-name", "type"]


def test_validation_kinds():
    assert _validate({"script": "a"}, kind="step").ok
    assert not _validate({"job": "A"}, kind="job").ok


def test_workers_give_the_same_findings_as_sequential():
    stages = [
        stage(f"S{i}", job("J", script("x"), condition="nope()" if i % 2 else None))
        for i in range(12)
    ]
    stages.append(stage("S3", job("J", script("x"))))
    doc = pipeline(*stages)
    assert _validate(doc, workers=4).findings == _validate(doc, workers=1).findings
    assert len(_validate(doc, workers=4)) == 7


def test_if_and_else_branches_may_define_the_same_job():
    doc = {"jobs": [
        {"${{ if eq(parameters.mode, 'a') }}": [{"job": "Build", "steps": [{"script": "a"}]}]},
        {"${{ else }}": [{"job": "Build", "steps": [{"script": "b"}]}]},
        {"job": "Test", "dependsOn": "Build", "steps": [{"script": "t"}]},
    ]}
    assert _validate(doc).ok


def test_scope_checks_can_be_left_to_a_later_pass():
    doc = pipeline(job("A", script("a")), job("A", script("b"), depends_on="Nope"))
    assert _codes(_validate(doc)) == ["duplicate-name", "unknown-dependency"]
    result = SchemaValidator(scope_checks=False).validate(from_python(doc))
    assert result.ok
