import pytest

from pipelint.document import from_python
from pipelint.errors import (
    InvalidParameter,
    MissingParameter,
    PhaseError,
    RuntimeReferenceError,
    TemplateCycle,
    TemplateDepthExceeded,
    TemplateLoadError,
    TemplateNotFound,
    UnexpectedParameter,
)
from pipelint.templates import TemplateExpander, bind_parameters, parameter_specs


def expand(doc, bindings=None, source=None, max_depth=64, collect=False):
    return TemplateExpander(source or {}, max_depth=max_depth).expand(from_python(doc), bindings, collect=collect)


ENV_DOC = {
    "parameters": [{"name": "env", "type": "string"}],
    "steps": [{"script": "deploy ${{ parameters.env }}"}],
}


def test_missing_parameter_without_default():
    with pytest.raises(MissingParameter) as exc:
        expand(ENV_DOC)
    assert exc.value.name == "env"


def test_default_suppresses_missing_parameter():
    doc = {
        "parameters": [{"name": "env", "type": "string", "default": "dev"}],
        "steps": [{"script": "deploy ${{ parameters.env }}"}],
    }
    assert expand(doc).document.to_python() == {"steps": [{"script": "deploy dev"}]}
    assert expand(doc, {"env": "prod"}).document.to_python() == {"steps": [{"script": "deploy prod"}]}


def test_expansion_is_deterministic():
    source = {"steps/build.yml": {"parameters": [{"name": "config", "default": "Debug"}],
                                  "steps": [{"script": "make ${{ parameters.config }}"}]}}
    doc = {"steps": [{"template": "steps/build.yml", "parameters": {"config": "Release"}}]}
    first = expand(doc, source=source)
    second = expand(doc, source=source)
    assert first.document == second.document
    assert repr(first.document) == repr(second.document)


def test_step_template_is_spliced_in_place():
    source = {"steps/build.yml": {"parameters": [{"name": "config", "default": "Debug"}],
                                  "steps": [{"script": "make ${{ parameters.config }}"}, {"script": "make check"}]}}
    doc = {"steps": [
        {"script": "before"},
        {"template": "steps/build.yml", "parameters": {"config": "Release"}},
        {"script": "after"},
    ]}
    expanded = expand(doc, source=source)
    assert expanded.document.to_python() == {"steps": [
        {"script": "before"},
        {"script": "make Release"},
        {"script": "make check"},
        {"script": "after"},
    ]}
    assert expanded.templates == ("steps/build.yml",)


def test_job_template_and_relative_paths():
    source = {
        "jobs/test.yml": {
            "parameters": [{"name": "name"}],
            "jobs": [{"job": "${{ parameters.name }}", "steps": [{"template": "steps.yml"}]}],
        },
        "jobs/steps.yml": {"steps": [{"script": "pytest"}]},
    }
    doc = {"jobs": [{"template": "jobs/test.yml", "parameters": {"name": "Unit"}}]}
    assert expand(doc, source=source).document.to_python() == {
        "jobs": [{"job": "Unit", "steps": [{"script": "pytest"}]}]
    }


def test_template_cycle_names_the_chain():
    source = {
        "a.yml": {"steps": [{"template": "b.yml"}]},
        "b.yml": {"steps": [{"template": "a.yml"}]},
    }
    with pytest.raises(TemplateCycle) as exc:
        expand({"steps": [{"template": "a.yml"}]}, source=source)
    assert exc.value.chain == ["a.yml", "b.yml", "a.yml"]


def test_template_depth_limit():
    source = {
        "t1.yml": {"steps": [{"template": "t2.yml"}]},
        "t2.yml": {"steps": [{"template": "t3.yml"}]},
        "t3.yml": {"steps": [{"script": "deep"}]},
    }
    doc = {"steps": [{"template": "t1.yml"}]}
    with pytest.raises(TemplateDepthExceeded) as exc:
        expand(doc, source=source, max_depth=2)
    assert exc.value.limit == 2
    assert expand(doc, source=source, max_depth=3).document.to_python() == {"steps": [{"script": "deep"}]}


def test_unknown_and_cross_repo_templates():
    with pytest.raises(TemplateNotFound):
        expand({"steps": [{"template": "nope.yml"}]})
    with pytest.raises(TemplateNotFound):
        expand({"steps": [{"template": "build.yml@tools"}]}, source={"build.yml": {"steps": []}})


def test_template_parameters_are_checked():
    source = {"t.yml": {"parameters": [{"name": "mode", "values": ["fast", "full"], "default": "fast"}],
                        "steps": [{"script": "${{ parameters.mode }}"}]}}
    with pytest.raises(UnexpectedParameter):
        expand({"steps": [{"template": "t.yml", "parameters": {"other": 1}}]}, source=source)
    with pytest.raises(InvalidParameter, match="not one of"):
        expand({"steps": [{"template": "t.yml", "parameters": {"mode": "slow"}}]}, source=source)


def test_if_elseif_else():
    doc = {
        "parameters": [{"name": "mode", "type": "string", "default": "a"}],
        "steps": [
            {"script": "always"},
            {"${{ if eq(parameters.mode, 'a') }}": [{"script": "A"}]},
            {"${{ elseif eq(parameters.mode, 'b') }}": [{"script": "B"}]},
            {"${{ else }}": [{"script": "other"}]},
        ],
    }

    def scripts(mode):
        return [s["script"] for s in expand(doc, {"mode": mode}).document.to_python()["steps"]]

    assert scripts("a") == ["always", "A"]
    assert scripts("b") == ["always", "B"]
    assert scripts("c") == ["always", "other"]


def test_if_inside_a_mapping():
    doc = {
        "parameters": [{"name": "debug", "type": "boolean", "default": False}],
        "variables": {
            "config": "Release",
            "${{ if parameters.debug }}": {"verbosity": "diag"},
        },
        "steps": [{"script": "x"}],
    }
    assert expand(doc).document.to_python()["variables"] == {"config": "Release"}
    assert expand(doc, {"debug": "true"}).document.to_python()["variables"] == {
        "config": "Release",
        "verbosity": "diag",
    }


def test_each_over_a_list_parameter():
    doc = {
        "parameters": [{"name": "envs", "type": "object", "default": ["dev", "prod"]}],
        "stages": [{
            "${{ each env in parameters.envs }}": [
                {"stage": "Deploy_${{ env }}", "jobs": [{"job": "D", "steps": [{"script": "deploy ${{ env }}"}]}]},
            ],
        }],
    }
    stages = expand(doc).document.to_python()["stages"]
    assert [s["stage"] for s in stages] == ["Deploy_dev", "Deploy_prod"]
    assert stages[1]["jobs"][0]["steps"][0]["script"] == "deploy prod"


def test_extends_with_step_list_parameter():
    source = {"base.yml": {
        "parameters": [{"name": "userSteps", "type": "stepList", "default": []}],
        "steps": [{"script": "pre"}, "${{ parameters.userSteps }}", {"script": "post"}],
    }}
    doc = {"extends": {"template": "base.yml", "parameters": {"userSteps": [{"script": "mine"}]}}}
    expanded = expand(doc, source=source)
    assert expanded.document.to_python() == {"steps": [{"script": "pre"}, {"script": "mine"}, {"script": "post"}]}


def test_whole_expression_keeps_type():
    doc = {
        "parameters": [{"name": "retries", "type": "number", "default": 3}],
        "steps": [{"script": "x", "retryCountOnTaskFailure": "${{ parameters.retries }}"}],
    }
    assert expand(doc).document.to_python()["steps"][0]["retryCountOnTaskFailure"] == 3


def test_runtime_variable_in_compile_time_expression():
    doc = {"steps": [
        {"script": "echo '##vso[task.setvariable variable=version]1.0'"},
        {"script": "echo ${{ variables.version }}"},
    ]}
    with pytest.raises(RuntimeReferenceError) as exc:
        expand(doc)
    assert exc.value.variable == "version"


def test_status_function_in_compile_time_expression():
    with pytest.raises(PhaseError):
        expand({"steps": [{"script": "${{ succeeded() }}"}]})


def test_collect_mode_skips_only_the_failing_subtree():
    doc = {"steps": [{"template": "missing.yml"}, {"script": "ok"}]}
    expanded = expand(doc, collect=True)
    assert not expanded.ok
    assert expanded.document.to_python() == {"steps": [{"script": "ok"}]}
    [(path, error)] = expanded.errors
    assert path == "steps[0]"
    assert isinstance(error, TemplateNotFound)


def test_bind_parameters_coerces_declared_types():
    specs = parameter_specs(from_python([
        {"name": "count", "type": "number"},
        {"name": "flag", "type": "boolean", "default": False},
    ]))
    assert bind_parameters(specs, {"count": "2"}) == {"count": 2, "flag": False}
    with pytest.raises(InvalidParameter):
        bind_parameters(specs, {"count": "two"})


def test_undeclared_parameter_reference():
    with pytest.raises(MissingParameter) as exc:
        expand({"steps": [{"script": "deploy ${{ parameters.env }}"}]})
    assert exc.value.name == "env"
    collected = expand({"steps": [{"script": "deploy ${{ parameters.env }}"}]}, collect=True)
    assert [type(e) for _, e in collected.errors] == [MissingParameter]


def test_source_failures_become_template_load_errors():
    class Broken(dict):
        def __getitem__(self, name):
            raise ValueError("unreadable")

    with pytest.raises(TemplateLoadError, match="unreadable"):
        expand({"steps": [{"template": "t.yml"}]}, source=Broken({"t.yml": None}))
    with pytest.raises(TemplateLoadError, match="mapping"):
        expand({"steps": [{"template": "t.yml"}]}, source={"t.yml": "just text"})
