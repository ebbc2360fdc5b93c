import pytest

from pipelint.document import Mapping, Scalar, from_python
from pipelint.loader import DirectoryTemplateSource, LoadError, load_document
from pipelint.settings import LintSettings


def test_load_document(tmp_path):
    path = tmp_path / "azure-pipelines.yml"
    path.write_text("jobs:\n  - job: A\n    steps:\n      - script: echo hi\n", encoding="utf-8")
    doc = load_document(path)
    assert isinstance(doc, Mapping)
    assert doc.to_python() == {"jobs": [{"job": "A", "steps": [{"script": "echo hi"}]}]}


def test_load_document_rejects_non_mappings_and_bad_yaml(tmp_path):
    listy = tmp_path / "list.yml"
    listy.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(LoadError, match="mapping"):
        load_document(listy)
    broken = tmp_path / "broken.yml"
    broken.write_text("jobs: [\n", encoding="utf-8")
    with pytest.raises(LoadError, match="Invalid YAML"):
        load_document(broken)
    with pytest.raises(FileNotFoundError):
        load_document(tmp_path / "missing.yml")
    latin = tmp_path / "latin.yml"
    latin.write_bytes(b"steps:\n  - script: caf\xe9\n")
    with pytest.raises(LoadError, match="(?i)utf-8"):
        load_document(latin)


def test_directory_template_source(tmp_path):
    (tmp_path / "steps").mkdir()
    (tmp_path / "steps" / "build.yml").write_text("steps:\n  - script: make\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("not a template", encoding="utf-8")
    source = DirectoryTemplateSource(tmp_path)

    assert "steps/build.yml" in source
    assert "notes.txt" not in source
    assert "steps/build.yml@other" not in source
    assert "../outside.yml" not in source
    assert list(source) == ["steps/build.yml"]
    assert len(source) == 1
    assert source["steps/build.yml"].get("steps").items[0].get("script") == Scalar("make")
    assert source["steps/build.yml"] is source["steps/build.yml"]
    with pytest.raises(KeyError):
        source["nope.yml"]


def test_empty_document_is_an_empty_mapping(tmp_path):
    path = tmp_path / "empty.yml"
    path.write_text("", encoding="utf-8")
    assert load_document(path) == from_python({})


def test_settings_defaults_and_env():
    defaults = LintSettings.from_env({})
    assert defaults.max_template_depth == 64
    assert defaults.workers == 1
    assert not defaults.strict

    env = {"PIPELINT_MAX_TEMPLATE_DEPTH": "8", "PIPELINT_STRICT": "yes", "PIPELINT_WORKERS": "3"}
    settings = LintSettings.from_env(env)
    assert (settings.max_template_depth, settings.strict, settings.workers) == (8, True, 3)

    overridden = LintSettings.from_env(env, workers=1, strict=None)
    assert overridden.workers == 1
    assert overridden.strict


def test_settings_validation():
    with pytest.raises(ValueError):
        LintSettings(workers=0)
    with pytest.raises(ValueError):
        LintSettings.from_env({"PIPELINT_MAX_TEMPLATE_DEPTH": "0"})
