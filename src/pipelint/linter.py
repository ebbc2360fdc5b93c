# linter.py
"""
parse -> validate -> expand -> build -> resolve, as one call.

Every stage reports into the same ValidationResult. Later stages only run
when the earlier ones left something usable: no model is built from a
tree with schema errors, and no plan is produced for a cyclic graph.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .builder import build_pipeline
from .dag import resolve
from .document import ROOT, Node, from_python
from .errors import DependencyError, SchemaError
from .model import ExecutionPlan, Pipeline
from .schema import ValidationResult, SchemaValidator
from .settings import LintSettings
from .templates import ExpandedDocument, TemplateExpander, TemplateSource

logger = logging.getLogger(__name__)


@dataclass
class LintReport:
    result: ValidationResult
    expanded: Optional[ExpandedDocument] = None
    pipeline: Optional[Pipeline] = None
    plan: Optional[ExecutionPlan] = None

    @property
    def ok(self) -> bool:
        return self.result.ok

    def failed(self, strict: bool = False) -> bool:
        return not self.result.ok or (strict and bool(self.result.warnings))


def _merge(into: ValidationResult, other: ValidationResult) -> None:
    """
    Add the findings of `other` that `into` does not already report.

    Findings are matched without their path: a spliced-in template shifts
    the index of every root item after it.
    """
    pending = Counter((f.severity, f.code, f.message) for f in into)
    for finding in other:
        key = (finding.severity, finding.code, finding.message)
        if pending[key]:
            pending[key] -= 1
            continue
        into.findings.append(finding)


def lint(
    document: Any,
    bindings: Optional[Dict[str, Any]] = None,
    templates: Optional[TemplateSource] = None,
    settings: Optional[LintSettings] = None,
) -> LintReport:
    """
    Check a pipeline document end to end.

    document may be a Document tree or plain parsed YAML. bindings are the
    runtime parameter values; templates maps template paths to documents.
    """
    settings = settings or LintSettings()
    node: Node = from_python(document)
    # the document as written; template bodies and name scopes are checked after expansion
    result = SchemaValidator(workers=settings.workers, scope_checks=False).validate(node, "pipeline")
    report = LintReport(result=result)

    expander = TemplateExpander(templates, max_depth=settings.max_template_depth)
    expanded = expander.expand(node, bindings, collect=True)
    report.expanded = expanded
    for path, exc in expanded.errors:
        result.add_exception(exc, path)

    _merge(result, SchemaValidator(workers=settings.workers).validate(expanded.document, "pipeline", ROOT))

    if not result.ok:
        logger.debug("lint stopped before model build: %d error(s)", len(result.errors))
        return report

    try:
        report.pipeline = build_pipeline(
            expanded.document,
            expanded.parameters,
            implicit_stage=settings.implicit_stage_name,
            implicit_job=settings.implicit_job_name,
        )
    except SchemaError as e:
        result.add_exception(e, e.path or ROOT)
        return report

    try:
        report.plan = resolve(report.pipeline)
    except DependencyError as e:
        result.add_exception(e, ROOT)
    except ValueError as e:
        # two job instances ending up with the same name (e.g. a matrix cell)
        result.error("duplicate-name", str(e), ROOT)

    return report
