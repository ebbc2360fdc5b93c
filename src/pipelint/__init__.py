from .document import from_python
from .dsl import job, matrix, pipeline, script, stage, task, template
from .expressions import evaluate_condition, evaluate_template, parse
from .dag import resolve, resolve_jobs, resolve_stages
from .linter import LintReport, lint
from .model import ExecutionPlan, Job, Pipeline, PlanEntry, Stage
from .schema import SchemaValidator, ValidationResult
from .settings import LintSettings
from .simulate import simulate
from .templates import TemplateExpander

__all__ = [
    "from_python",
    "job", "matrix", "pipeline", "script", "stage", "task", "template",
    "evaluate_condition", "evaluate_template", "parse",
    "resolve", "resolve_jobs", "resolve_stages",
    "LintReport", "lint",
    "ExecutionPlan", "Job", "Pipeline", "PlanEntry", "Stage",
    "SchemaValidator", "ValidationResult",
    "LintSettings",
    "simulate",
    "TemplateExpander",
]
