# schema.py
"""
Structural validation of a pipeline document.

The validator walks the tree once and collects every problem it finds:
unknown keys are warnings (newer service features should not break old
tooling), missing or mistyped keys are errors. Nothing is raised; the
caller gets a `ValidationResult` with findings in document order.
"""
from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set

from . import expressions
from .document import ROOT, Mapping, Node, NodePath, Scalar, Sequence, kind_of
from .errors import ExpressionSyntaxError, PipelintError

logger = logging.getLogger(__name__)

ERROR = "error"
WARNING = "warning"

NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# ---------------------------------------------------------------------
# Recognized keys per node kind
# ---------------------------------------------------------------------

PIPELINE_KEYS = {
    "name", "trigger", "pr", "schedules", "resources", "parameters", "variables",
    "pool", "stages", "jobs", "steps", "extends", "lockBehavior",
    "appendCommitMessageToRunName", "workspace", "container", "services",
    "strategy", "timeoutInMinutes", "continueOnError",
}
PIPELINE_BODY_KEYS = ("stages", "jobs", "steps", "extends")

STAGE_KEYS = {
    "stage", "displayName", "dependsOn", "condition", "variables", "jobs", "pool",
    "lockBehavior", "templateContext", "isSkippable", "trigger",
}

JOB_KEYS = {
    "job", "displayName", "dependsOn", "condition", "strategy", "continueOnError",
    "pool", "workspace", "container", "timeoutInMinutes", "cancelTimeoutInMinutes",
    "variables", "steps", "services", "uses", "templateContext",
}
DEPLOYMENT_KEYS = {
    "deployment", "displayName", "dependsOn", "condition", "strategy",
    "continueOnError", "pool", "workspace", "container", "timeoutInMinutes",
    "cancelTimeoutInMinutes", "variables", "environment", "services", "uses",
    "templateContext",
}

TEMPLATE_CALL_KEYS = {"template", "parameters"}

STEP_KINDS = ("script", "bash", "pwsh", "powershell", "task", "template", "download", "checkout", "publish")
STEP_COMMON_KEYS = {
    "displayName", "name", "condition", "continueOnError", "enabled", "env",
    "timeoutInMinutes", "retryCountOnTaskFailure", "target",
}
STEP_KIND_KEYS = {
    "script": {"workingDirectory", "failOnStderr"},
    "bash": {"workingDirectory", "failOnStderr"},
    "pwsh": {"workingDirectory", "failOnStderr", "errorActionPreference", "ignoreLASTEXITCODE"},
    "powershell": {"workingDirectory", "failOnStderr", "errorActionPreference", "ignoreLASTEXITCODE"},
    "task": {"inputs"},
    "template": {"parameters"},
    "download": {"artifact", "patterns"},
    "checkout": {"clean", "fetchDepth", "fetchTags", "lfs", "submodules", "path", "persistCredentials"},
    "publish": {"artifact"},
}

JOB_STRATEGY_KEYS = {"matrix", "maxParallel", "parallel"}
DEPLOYMENT_STRATEGIES = ("runOnce", "rolling", "canary")
DEPLOYMENT_HOOKS = ("preDeploy", "deploy", "routeTraffic", "postRouteTraffic", "on")
DEPLOYMENT_STRATEGY_KEYS = {
    "runOnce": set(DEPLOYMENT_HOOKS),
    "rolling": set(DEPLOYMENT_HOOKS) | {"maxParallel"},
    "canary": set(DEPLOYMENT_HOOKS) | {"increments"},
}

PARAMETER_KEYS = {"name", "displayName", "type", "default", "values"}
PARAMETER_TYPES = {
    "string", "number", "boolean", "object", "step", "stepList", "job", "jobList",
    "deployment", "deploymentList", "stage", "stageList", "filePath", "container",
    "containerList", "environment", "pool",
}

VARIABLE_ITEM_KEYS = {"name", "value", "readonly", "group", "template", "parameters"}


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Finding:
    severity: str  # error | warning
    code: str
    message: str
    path: str

    def __str__(self) -> str:
        return f"{self.severity}: {self.path}: {self.message}"


@dataclass
class ValidationResult:
    """Every finding from one pass, in the order they were found."""
    findings: List[Finding] = field(default_factory=list)

    def add(self, severity: str, code: str, message: str, path: NodePath | str) -> None:
        self.findings.append(Finding(severity, code, message, str(path)))

    def error(self, code: str, message: str, path: NodePath | str) -> None:
        self.add(ERROR, code, message, path)

    def warning(self, code: str, message: str, path: NodePath | str) -> None:
        self.add(WARNING, code, message, path)

    def add_exception(self, exc: PipelintError, path: NodePath | str, severity: str = ERROR) -> None:
        self.add(severity, exc.code, str(exc), path)

    def extend(self, other: "ValidationResult") -> None:
        self.findings.extend(other.findings)

    @property
    def errors(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == ERROR]

    @property
    def warnings(self) -> List[Finding]:
        return [f for f in self.findings if f.severity == WARNING]

    @property
    def ok(self) -> bool:
        return not self.errors

    def __len__(self) -> int:
        return len(self.findings)

    def __iter__(self):
        return iter(self.findings)


# ---------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------


def is_directive(key: str) -> bool:
    """`${{ if ... }}:` / `${{ each ... }}:` style keys."""
    return key.strip().startswith(expressions.TEMPLATE_OPEN)


def is_deferred(node: Optional[Node]) -> bool:
    """A scalar whose real value only exists after expansion or at run time."""
    if not isinstance(node, Scalar) or not isinstance(node.value, str):
        return False
    text = node.value
    return expressions.TEMPLATE_OPEN in text or expressions.is_runtime_expression(text)


def step_kind(node: Mapping) -> List[str]:
    return [k for k in STEP_KINDS if k in node]


def names_in(node: Optional[Node]) -> List[str]:
    """`dependsOn` as a list of names; tolerates a single string."""
    if isinstance(node, Scalar) and isinstance(node.value, str):
        return [node.value]
    if isinstance(node, Sequence):
        return [i.value for i in node if isinstance(i, Scalar) and isinstance(i.value, str)]
    return []


# ---------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------


class SchemaValidator:
    """
    Walks a document tree and reports schema problems.

    Example:
        result = SchemaValidator().validate(doc, "pipeline")
        for finding in result:
            print(finding)
    """

    def __init__(self, workers: int = 1, scope_checks: bool = True):
        self.workers = max(1, workers)
        # duplicate names and dependsOn targets within each list
        self.scope_checks = scope_checks
        self._checks: Dict[str, Callable[[Node, NodePath, ValidationResult], None]] = {
            "pipeline": self._pipeline,
            "stage": self._stage,
            "job": self._job,
            "step": self._step,
            "template": self._template_call,
            "variables": self._variables,
            "parameters": self._parameters,
        }

    def validate(self, node: Node, kind: str = "pipeline", path: NodePath = ROOT) -> ValidationResult:
        check = self._checks.get(kind)
        if check is None:
            raise ValueError(f"Unknown node kind {kind!r}. Known kinds: {sorted(self._checks)}")
        result = ValidationResult()
        check(node, path, result)
        logger.debug("validated %s at %s: %d finding(s)", kind, path, len(result))
        return result

    # -- generic -------------------------------------------------------

    def _mapping(self, node: Node, path: NodePath, result: ValidationResult, what: str) -> Optional[Mapping]:
        if isinstance(node, Mapping):
            return node
        result.error("type", f"{what} must be a mapping, got {kind_of(node)}", path)
        return None

    def _unknown_keys(self, node: Mapping, allowed: Iterable[str], path: NodePath, result: ValidationResult, what: str) -> None:
        allowed = set(allowed)
        for key, _ in node.items():
            if key not in allowed and not is_directive(key):
                result.warning("unknown-key", f"unknown key '{key}' for {what}", path.key(key))

    def _scalar(self, node: Mapping, key: str, path: NodePath, result: ValidationResult, types: tuple, what: str) -> None:
        child = node.get(key)
        if child is None or is_deferred(child):
            return
        if not isinstance(child, Scalar) or not isinstance(child.value, types) or (
            bool not in types and isinstance(child.value, bool)
        ):
            expected = "/".join(sorted(t.__name__ for t in types))
            result.error("type", f"{what} must be {expected}, got {kind_of(child)}", path.key(key))

    def _name(self, node: Mapping, key: str, path: NodePath, result: ValidationResult) -> Optional[str]:
        child = node.get(key)
        if child is None:
            result.error("missing-key", f"missing required key '{key}'", path)
            return None
        if is_deferred(child):
            return None
        if not isinstance(child, Scalar) or child.value is None or isinstance(child.value, (bool, list)):
            result.error("type", f"'{key}' must be a name, got {kind_of(child)}", path.key(key))
            return None
        value = str(child.value)
        if not NAME_RE.match(value):
            what = "step" if key == "name" else key
            result.error(
                "invalid-name",
                f"'{value}' is not a valid {what} name (letters, digits and '_', not starting with a digit)",
                path.key(key),
            )
        return value

    def _depends_on(self, node: Mapping, path: NodePath, result: ValidationResult) -> None:
        child = node.get("dependsOn")
        if child is None or is_deferred(child):
            return
        if isinstance(child, Scalar) and isinstance(child.value, str):
            return
        if isinstance(child, Sequence):
            for i, item in enumerate(child):
                if not (isinstance(item, Scalar) and isinstance(item.value, str)):
                    result.error("type", "dependsOn entries must be names", path.key("dependsOn").index(i))
            return
        result.error("type", f"dependsOn must be a name or a list of names, got {kind_of(child)}", path.key("dependsOn"))

    def _condition(self, node: Mapping, path: NodePath, result: ValidationResult) -> None:
        child = node.get("condition")
        if child is None:
            return
        cpath = path.key("condition")
        if not isinstance(child, Scalar) or not isinstance(child.value, (str, bool)):
            result.error("type", f"condition must be a string, got {kind_of(child)}", cpath)
            return
        if isinstance(child.value, bool) or expressions.TEMPLATE_OPEN in child.value:
            return
        self.check_expression(child.value, expressions.RUN_TIME, cpath, result)

    def check_expression(self, text: str, phase: str, path: NodePath, result: ValidationResult) -> None:
        try:
            expr = expressions.parse(text)
        except ExpressionSyntaxError as e:
            result.add_exception(e, path)
            return
        for problem in expressions.check(expr, phase):
            result.add_exception(problem, path)

    def _items(self, node: Node, path: NodePath, result: ValidationResult, what: str):
        """
        Yield (path, item) for the list items of a stages/jobs/steps list,
        looking through `${{ if }}` / `${{ each }}` wrappers.
        """
        if is_deferred(node):
            return
        if not isinstance(node, Sequence):
            result.error("type", f"{what} must be a list, got {kind_of(node)}", path)
            return
        for i, item in enumerate(node):
            ipath = path.index(i)
            if isinstance(item, Mapping) and item.entries and all(is_directive(k) for k in item.keys()):
                for key, inner in item.items():
                    if isinstance(inner, Mapping):
                        yield ipath.key(key), inner
                    elif not (isinstance(inner, Scalar) and inner.value is None):
                        yield from self._items(inner, ipath.key(key), result, what)
                continue
            if is_deferred(item):
                # - ${{ parameters.steps }}
                continue
            yield ipath, item

    # -- pipeline ------------------------------------------------------

    def _pipeline(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        root = self._mapping(node, path, result, "pipeline")
        if root is None:
            return
        self._unknown_keys(root, PIPELINE_KEYS, path, result, "pipeline")

        bodies = [k for k in PIPELINE_BODY_KEYS if k in root]
        if not bodies:
            result.error("missing-key", "pipeline needs one of 'stages', 'jobs', 'steps' or 'extends'", path)
        elif len(bodies) > 1:
            result.error("conflicting-keys", f"pipeline may only have one of {bodies}", path)

        if "parameters" in root:
            self._parameters(root.get("parameters"), path.key("parameters"), result)
        if "variables" in root:
            self._variables(root.get("variables"), path.key("variables"), result)
        if "extends" in root:
            ext = self._mapping(root.get("extends"), path.key("extends"), result, "extends")
            if ext is not None:
                self._template_call(ext, path.key("extends"), result)

        if "stages" in root:
            self._stage_list(root.get("stages"), path.key("stages"), result)
        if "jobs" in root:
            self._job_list(root.get("jobs"), path.key("jobs"), result)
        if "steps" in root:
            self._step_list(root.get("steps"), path.key("steps"), result)

    def _stage_list(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        items = list(self._items(node, path, result, "stages"))

        if self.workers > 1 and len(items) > 1:
            # read-only over the tree; merged back in document order
            def one(item):
                r = ValidationResult()
                self._stage(item[1], item[0], r)
                return r

            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                for r in pool.map(one, items):
                    result.extend(r)
        else:
            for ipath, item in items:
                self._stage(item, ipath, result)

        self._scope_names(items, "stage", path, result)

    def _scope_names(self, items, key: str, path: NodePath, result: ValidationResult) -> None:
        """Duplicate names and unresolved dependsOn within one scope."""
        if not self.scope_checks:
            return
        seen: Dict[str, NodePath] = {}
        partial = False
        depth = len(path.parts)
        for ipath, item in items:
            if any(isinstance(p, str) and is_directive(p) for p in ipath.parts[depth:]):
                # `${{ if }}` and `${{ else }}` branches exclude each other
                partial = True
                continue
            if not isinstance(item, Mapping) or "template" in item:
                partial = True
                continue
            name = item.scalar(key) if key in item else item.scalar("deployment")
            if not isinstance(name, str) or expressions.TEMPLATE_OPEN in name:
                partial = True
                continue
            if name in seen:
                result.error("duplicate-name", f"duplicate {key} name '{name}' (first defined at {seen[name]})", ipath)
            else:
                seen[name] = ipath
        if partial:
            # templates may still add the missing names
            return
        for ipath, item in items:
            deps = item.get("dependsOn")
            if is_deferred(deps):
                continue
            for dep in names_in(deps):
                if dep not in seen:
                    result.error(
                        "unknown-dependency",
                        f"dependsOn '{dep}' does not match any {key} in this scope. Known: {sorted(seen)}",
                        ipath.key("dependsOn"),
                    )

    # -- stage ---------------------------------------------------------

    def _stage(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        stage = self._mapping(node, path, result, "stage")
        if stage is None:
            return
        if "template" in stage:
            self._template_call(stage, path, result)
            return
        self._unknown_keys(stage, STAGE_KEYS, path, result, "stage")
        self._name(stage, "stage", path, result)
        self._scalar(stage, "displayName", path, result, (str,), "displayName")
        self._depends_on(stage, path, result)
        self._condition(stage, path, result)
        self._scalar(stage, "isSkippable", path, result, (bool,), "isSkippable")
        if "variables" in stage:
            self._variables(stage.get("variables"), path.key("variables"), result)
        if "jobs" not in stage:
            result.error("missing-key", "stage must have 'jobs'", path)
        else:
            self._job_list(stage.get("jobs"), path.key("jobs"), result)

    # -- job -----------------------------------------------------------

    def _job_list(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        items = list(self._items(node, path, result, "jobs"))
        for ipath, item in items:
            self._job(item, ipath, result)
        self._scope_names(items, "job", path, result)

    def _job(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        job = self._mapping(node, path, result, "job")
        if job is None:
            return
        if "template" in job:
            self._template_call(job, path, result)
            return
        kinds = [k for k in ("job", "deployment") if k in job]
        if len(kinds) != 1:
            result.error("missing-key", "job must have exactly one of 'job' or 'deployment'", path)
            return
        kind = kinds[0]
        self._unknown_keys(job, JOB_KEYS if kind == "job" else DEPLOYMENT_KEYS, path, result, kind)
        self._name(job, kind, path, result)
        self._scalar(job, "displayName", path, result, (str,), "displayName")
        self._depends_on(job, path, result)
        self._condition(job, path, result)
        self._scalar(job, "continueOnError", path, result, (bool,), "continueOnError")
        self._scalar(job, "timeoutInMinutes", path, result, (int,), "timeoutInMinutes")
        if "variables" in job:
            self._variables(job.get("variables"), path.key("variables"), result)

        if kind == "job":
            if "strategy" in job:
                self._job_strategy(job.get("strategy"), path.key("strategy"), result)
            if "steps" not in job:
                result.error("missing-key", "job must have 'steps'", path)
            else:
                self._step_list(job.get("steps"), path.key("steps"), result)
        else:
            if "environment" not in job:
                result.error("missing-key", "deployment job must have 'environment'", path)
            if "strategy" not in job:
                result.error("missing-key", "deployment job must have 'strategy'", path)
            else:
                self._deployment_strategy(job.get("strategy"), path.key("strategy"), result)

    def _job_strategy(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        strategy = self._mapping(node, path, result, "strategy")
        if strategy is None:
            return
        self._unknown_keys(strategy, JOB_STRATEGY_KEYS, path, result, "strategy")
        if "matrix" in strategy and "parallel" in strategy:
            result.error("conflicting-keys", "strategy may use 'matrix' or 'parallel', not both", path)
        self._scalar(strategy, "parallel", path, result, (int,), "parallel")
        self._scalar(strategy, "maxParallel", path, result, (int,), "maxParallel")
        matrix = strategy.get("matrix")
        if matrix is None:
            return
        mpath = path.key("matrix")
        if is_deferred(matrix):
            result.warning("matrix-runtime", "matrix is computed at run time; instances cannot be planned", mpath)
            return
        if not isinstance(matrix, Mapping) or not matrix.entries:
            result.error("type", "matrix must be a non-empty mapping of cell name to variables", mpath)
            return
        for cell, variables in matrix.items():
            if is_directive(cell):
                continue
            if not NAME_RE.match(cell):
                result.error("invalid-name", f"'{cell}' is not a valid matrix cell name", mpath.key(cell))
            if not isinstance(variables, Mapping):
                result.error("type", f"matrix cell '{cell}' must be a mapping of variables", mpath.key(cell))

    def _deployment_strategy(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        strategy = self._mapping(node, path, result, "strategy")
        if strategy is None:
            return
        kinds = [k for k in DEPLOYMENT_STRATEGIES if k in strategy]
        if len(kinds) != 1:
            result.error("missing-key", f"deployment strategy needs exactly one of {list(DEPLOYMENT_STRATEGIES)}", path)
            return
        kind = kinds[0]
        self._unknown_keys(strategy, DEPLOYMENT_STRATEGIES, path, result, "deployment strategy")
        body = self._mapping(strategy.get(kind), path.key(kind), result, kind)
        if body is None:
            return
        bpath = path.key(kind)
        self._unknown_keys(body, DEPLOYMENT_STRATEGY_KEYS[kind], bpath, result, kind)
        if kind == "canary":
            increments = body.get("increments")
            if increments is not None and not (
                isinstance(increments, Sequence)
                and all(isinstance(i, Scalar) and isinstance(i.value, int) and not isinstance(i.value, bool) for i in increments)
            ):
                result.error("type", "increments must be a list of numbers", bpath.key("increments"))
        for hook in DEPLOYMENT_HOOKS:
            if hook not in body:
                continue
            hpath = bpath.key(hook)
            hooked = self._mapping(body.get(hook), hpath, result, hook)
            if hooked is None:
                continue
            if hook == "on":
                for outcome, handler in hooked.items():
                    if outcome not in ("failure", "success"):
                        result.warning("unknown-key", f"unknown key '{outcome}' for on", hpath.key(outcome))
                        continue
                    h = self._mapping(handler, hpath.key(outcome), result, outcome)
                    if h is not None and "steps" in h:
                        self._step_list(h.get("steps"), hpath.key(outcome).key("steps"), result)
                continue
            self._unknown_keys(hooked, {"steps", "pool"}, hpath, result, hook)
            if "steps" in hooked:
                self._step_list(hooked.get("steps"), hpath.key("steps"), result)

    # -- step ----------------------------------------------------------

    def _step_list(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        for ipath, item in self._items(node, path, result, "steps"):
            self._step(item, ipath, result)

    def _step(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        step = self._mapping(node, path, result, "step")
        if step is None:
            return
        kinds = step_kind(step)
        if len(kinds) != 1:
            result.error(
                "missing-key" if not kinds else "conflicting-keys",
                f"step must have exactly one of {list(STEP_KINDS)}, found {kinds or 'none'}",
                path,
            )
            return
        kind = kinds[0]
        if kind == "template":
            self._template_call(step, path, result)
            return
        self._unknown_keys(step, STEP_COMMON_KEYS | STEP_KIND_KEYS[kind] | {kind}, path, result, f"{kind} step")
        self._scalar(step, kind, path, result, (str,), kind)
        self._scalar(step, "displayName", path, result, (str,), "displayName")
        self._scalar(step, "enabled", path, result, (bool,), "enabled")
        self._scalar(step, "continueOnError", path, result, (bool,), "continueOnError")
        self._scalar(step, "timeoutInMinutes", path, result, (int,), "timeoutInMinutes")
        if "name" in step:
            self._name(step, "name", path, result)
        self._condition(step, path, result)
        if kind == "task":
            task = step.scalar("task")
            if isinstance(task, str) and "@" not in task and expressions.TEMPLATE_OPEN not in task:
                result.warning("task-version", f"task '{task}' has no '@<major version>'", path.key("task"))
            self._string_map(step.get("inputs"), path.key("inputs"), result, "inputs")
        if "env" in step:
            self._string_map(step.get("env"), path.key("env"), result, "env")

    def _string_map(self, node: Optional[Node], path: NodePath, result: ValidationResult, what: str) -> None:
        if node is None or is_deferred(node):
            return
        m = self._mapping(node, path, result, what)
        if m is None:
            return
        for key, value in m.items():
            if is_directive(key):
                continue
            if not isinstance(value, Scalar):
                result.error("type", f"{what} value '{key}' must be a scalar, got {kind_of(value)}", path.key(key))

    # -- template call -------------------------------------------------

    def _template_call(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        call = self._mapping(node, path, result, "template reference")
        if call is None:
            return
        self._unknown_keys(call, TEMPLATE_CALL_KEYS, path, result, "template reference")
        ref = call.get("template")
        if ref is None:
            result.error("missing-key", "template reference must have 'template'", path)
        elif not (isinstance(ref, Scalar) and isinstance(ref.value, str) and ref.value.strip()):
            result.error("type", "template must be a file path", path.key("template"))
        if "parameters" in call and not isinstance(call.get("parameters"), Mapping):
            result.error("type", "template parameters must be a mapping", path.key("parameters"))

    # -- variables / parameters ----------------------------------------

    def _variables(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        if is_deferred(node):
            return
        if isinstance(node, Mapping):
            for key, value in node.items():
                if is_directive(key):
                    continue
                if not isinstance(value, Scalar):
                    result.error("type", f"variable '{key}' must be a scalar, got {kind_of(value)}", path.key(key))
                elif isinstance(value.value, str) and expressions.is_runtime_expression(value.value):
                    self.check_expression(value.value.strip()[2:-1], expressions.RUN_TIME, path.key(key), result)
            return
        for ipath, item in self._items(node, path, result, "variables"):
            var = self._mapping(item, ipath, result, "variable")
            if var is None:
                continue
            self._unknown_keys(var, VARIABLE_ITEM_KEYS, ipath, result, "variable")
            forms = [k for k in ("name", "group", "template") if k in var]
            if len(forms) != 1:
                result.error("missing-key", "variable needs exactly one of 'name', 'group' or 'template'", ipath)
                continue
            if forms == ["name"]:
                if "value" not in var:
                    result.error("missing-key", "variable with 'name' needs 'value'", ipath)
                self._scalar(var, "readonly", ipath, result, (bool,), "readonly")
            elif forms == ["template"]:
                self._template_call(var, ipath, result)

    def _parameters(self, node: Node, path: NodePath, result: ValidationResult) -> None:
        if isinstance(node, Mapping):
            # legacy form: name: default
            return
        names: Set[str] = set()
        for ipath, item in self._items(node, path, result, "parameters"):
            param = self._mapping(item, ipath, result, "parameter")
            if param is None:
                continue
            self._unknown_keys(param, PARAMETER_KEYS, ipath, result, "parameter")
            name = param.scalar("name")
            if not isinstance(name, str):
                result.error("missing-key", "parameter must have a 'name'", ipath)
                continue
            if name in names:
                result.error("duplicate-name", f"duplicate parameter '{name}'", ipath)
            names.add(name)
            ptype = param.scalar("type", "string")
            if ptype not in PARAMETER_TYPES:
                result.error("type", f"unknown parameter type '{ptype}'", ipath.key("type"))
            values = param.get("values")
            if values is not None and not isinstance(values, Sequence):
                result.error("type", "parameter values must be a list", ipath.key("values"))
