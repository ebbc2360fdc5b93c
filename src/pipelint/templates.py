# templates.py
"""
Template expansion.

Turns a document that still contains `template:` references, `extends:`,
`${{ parameters.x }}` and `${{ if/elseif/else/each }}` directives into a
plain, template-free document.

Templates come from a `TemplateSource`: any read-only mapping of template
path to document. The expander never touches the filesystem itself.
"""
from __future__ import annotations

import logging
import posixpath
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from . import expressions
from .document import ROOT, Mapping, Node, NodePath, Scalar, Sequence, from_python
from .errors import (
    EvalError,
    ExpandError,
    ExpressionSyntaxError,
    InvalidParameter,
    MissingParameter,
    PipelintError,
    TemplateCycle,
    TemplateDepthExceeded,
    TemplateLoadError,
    TemplateNotFound,
    UnexpectedParameter,
)
from .expressions import TemplateContext
from .variables import parse_variables, runtime_variable_names, static_values

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64

TemplateSource = MappingABC  # str -> Node

# Keys a template file may carry its content under, by the list it fills.
BODY_KEYS = ("stages", "jobs", "steps", "variables")

_NO_DEFAULT = object()


# ---------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    type: str = "string"
    default: Any = _NO_DEFAULT
    values: Optional[Tuple[Any, ...]] = None

    @property
    def required(self) -> bool:
        return self.default is _NO_DEFAULT


def parameter_specs(node: Optional[Node]) -> List[ParameterSpec]:
    """Declarations from a `parameters:` block (list form or legacy mapping)."""
    if node is None:
        return []
    if isinstance(node, Mapping):
        return [ParameterSpec(name=k, type="object", default=v.to_python()) for k, v in node.items()]
    specs: List[ParameterSpec] = []
    if isinstance(node, Sequence):
        for item in node:
            if not isinstance(item, Mapping) or not isinstance(item.scalar("name"), str):
                continue
            default = item.get("default")
            values = item.get("values")
            specs.append(
                ParameterSpec(
                    name=item.scalar("name"),
                    type=str(item.scalar("type", "string")),
                    default=_NO_DEFAULT if default is None else default.to_python(),
                    values=tuple(values.to_python()) if isinstance(values, Sequence) else None,
                )
            )
    return specs


_LIST_TYPES = {"stepList": "step", "jobList": "job", "stageList": "stage", "deploymentList": "deployment", "containerList": "container"}


def _coerce(spec: ParameterSpec, value: Any, template: Optional[str]) -> Any:
    t = spec.type
    if t == "string":
        if isinstance(value, (dict, list)):
            raise InvalidParameter(spec.name, f"expected a string, got {expressions.type_name(value)}", template)
        return value if isinstance(value, str) or value is None else expressions.to_string(value)
    if t == "number":
        if isinstance(value, bool):
            raise InvalidParameter(spec.name, "expected a number, got boolean", template)
        if isinstance(value, (int, float)):
            return value
        try:
            text = str(value).strip()
            return float(text) if "." in text else int(text)
        except ValueError:
            raise InvalidParameter(spec.name, f"expected a number, got {value!r}", template) from None
    if t == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise InvalidParameter(spec.name, f"expected a boolean, got {value!r}", template)
    if t in _LIST_TYPES:
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
            raise InvalidParameter(spec.name, f"expected a list of {_LIST_TYPES[t]}s", template)
        return value
    if t in ("step", "job", "stage", "deployment"):
        if not isinstance(value, dict):
            raise InvalidParameter(spec.name, f"expected a {t} mapping", template)
        return value
    return value


def bind_parameters(
    specs: List[ParameterSpec],
    supplied: Dict[str, Any],
    template: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Combine declarations with the values a caller passed.

    Raises:
      UnexpectedParameter  a value for a name that is not declared
      MissingParameter     no value and no default
      InvalidParameter     wrong type, or not one of `values:`
    """
    declared = {s.name for s in specs}
    for name in supplied:
        if name not in declared:
            raise UnexpectedParameter(name, template)

    bound: Dict[str, Any] = {}
    for spec in specs:
        if spec.name in supplied:
            value = supplied[spec.name]
        elif not spec.required:
            value = spec.default
        else:
            raise MissingParameter(spec.name, template)
        value = _coerce(spec, value, template)
        if spec.values is not None and not any(_same(value, allowed) for allowed in spec.values):
            raise InvalidParameter(spec.name, f"{value!r} is not one of {list(spec.values)}", template)
        bound[spec.name] = value
    return bound


def _same(a: Any, b: Any) -> bool:
    try:
        return expressions._equals("values", a, b)
    except EvalError:
        return False


# ---------------------------------------------------------------------
# Directives
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Directive:
    kind: str  # if | elseif | else | each | insert | expr
    text: str = ""
    loop_var: str = ""


def parse_directive(key: str) -> Optional[Directive]:
    stripped = key.strip()
    if not (stripped.startswith(expressions.TEMPLATE_OPEN) and stripped.endswith(expressions.TEMPLATE_CLOSE)):
        return None
    inner = stripped[len(expressions.TEMPLATE_OPEN):-len(expressions.TEMPLATE_CLOSE)].strip()
    word, _, rest = inner.partition(" ")
    if word == "if":
        return Directive("if", rest.strip())
    if word == "elseif":
        return Directive("elseif", rest.strip())
    if word == "else" and not rest.strip():
        return Directive("else")
    if word == "insert" and not rest.strip():
        return Directive("insert")
    if word == "each":
        var, sep, source = rest.strip().partition(" in ")
        if not sep or not var.strip():
            raise ExpressionSyntaxError(key, 0, "expected '${{ each <name> in <expression> }}'")
        return Directive("each", source.strip(), var.strip())
    return Directive("expr", inner)


# ---------------------------------------------------------------------
# Expander
# ---------------------------------------------------------------------


@dataclass
class ExpandedDocument:
    """Template-free tree plus what it took to get there."""
    document: Node
    parameters: Dict[str, Any] = field(default_factory=dict)
    templates: Tuple[str, ...] = ()
    errors: List[Tuple[str, PipelintError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class _Run:
    """State for one expand() call."""

    def __init__(self, expander: "TemplateExpander", collect: bool):
        self.expander = expander
        self.collect = collect
        self.errors: List[Tuple[str, PipelintError]] = []
        self.templates: List[str] = []
        self.runtime_variables: Set[str] = set()

    def fail(self, exc: PipelintError, path: NodePath) -> None:
        if not self.collect:
            raise exc
        logger.debug("expansion error at %s: %s", path, exc)
        self.errors.append((str(path), exc))


class TemplateExpander:
    """
    Example:
        expander = TemplateExpander({"steps/build.yml": build_doc})
        expanded = expander.expand(pipeline_doc, {"configuration": "Release"})
    """

    def __init__(self, source: Optional[TemplateSource] = None, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")
        self.source = source if source is not None else {}
        self.max_depth = max_depth

    # -- public --------------------------------------------------------

    def expand(
        self,
        document: Node,
        bindings: Optional[Dict[str, Any]] = None,
        *,
        collect: bool = False,
    ) -> ExpandedDocument:
        """
        Expand a pipeline document.

        With collect=False the first ExpandError/EvalError is raised. With
        collect=True each failing template reference or directive is
        recorded and its subtree dropped, so one pass reports everything.
        """
        run = _Run(self, collect)
        run.runtime_variables |= runtime_variable_names(document)

        if not isinstance(document, Mapping):
            return ExpandedDocument(self._node(run, document, TemplateContext(), ROOT, ()), {}, (), run.errors)

        try:
            params = bind_parameters(parameter_specs(document.get("parameters")), dict(bindings or {}))
        except ExpandError as e:
            run.fail(e, ROOT.key("parameters"))
            params = {}

        variables = static_values(parse_variables(document.get("variables"), "pipeline"))
        ctx = TemplateContext(
            parameters=params,
            variables=variables,
            runtime_variables=frozenset(run.runtime_variables),
        )

        body = Mapping(tuple((k, v) for k, v in document.items() if k != "parameters"))
        if "extends" in body:
            body = self._extends(run, body, ctx)
        expanded = self._node(run, body, ctx, ROOT, ())
        logger.debug("expanded document using %d template(s)", len(run.templates))
        return ExpandedDocument(expanded, params, tuple(run.templates), run.errors)

    # -- template loading ----------------------------------------------

    def _resolve_name(self, name: str, chain: Tuple[str, ...]) -> str:
        if "@" in name:
            # templates from other repositories are out of reach
            raise TemplateNotFound(name)
        candidates = [name.lstrip("/")]
        if chain and not name.startswith("/"):
            candidates.insert(0, posixpath.normpath(posixpath.join(posixpath.dirname(chain[-1]), name)))
        for candidate in candidates:
            if candidate in self.source:
                return candidate
        raise TemplateNotFound(name)

    def _load(self, run: _Run, name: str, chain: Tuple[str, ...]) -> Tuple[str, Mapping]:
        resolved = self._resolve_name(name, chain)
        if resolved in chain:
            raise TemplateCycle(list(chain[chain.index(resolved):]) + [resolved])
        if len(chain) >= self.max_depth:
            raise TemplateDepthExceeded(self.max_depth, list(chain) + [resolved])
        try:
            payload = self.source[resolved]
        except ExpandError:
            raise
        except (PipelintError, OSError, ValueError) as exc:
            raise TemplateLoadError(resolved, str(exc)) from exc
        doc = from_python(payload)
        if not isinstance(doc, Mapping):
            raise TemplateLoadError(resolved, "template must be a YAML mapping")
        if resolved not in run.templates:
            run.templates.append(resolved)
        run.runtime_variables |= runtime_variable_names(doc)
        logger.debug("expanding template %s (depth %d)", resolved, len(chain) + 1)
        return resolved, doc

    def _template_context(self, run: _Run, call: Mapping, doc: Mapping, name: str, ctx: TemplateContext, path: NodePath, chain) -> TemplateContext:
        args_node = call.get("parameters")
        supplied: Dict[str, Any] = {}
        if args_node is not None:
            expanded_args = self._node(run, args_node, ctx, path.key("parameters"), chain)
            if isinstance(expanded_args, Mapping):
                supplied = expanded_args.to_python()
        params = bind_parameters(parameter_specs(doc.get("parameters")), supplied, template=name)
        variables = dict(ctx.variables)
        variables.update(static_values(parse_variables(doc.get("variables"), "template")))
        return TemplateContext(
            parameters=params,
            variables=variables,
            runtime_variables=frozenset(run.runtime_variables),
        )

    def _extends(self, run: _Run, body: Mapping, ctx: TemplateContext) -> Mapping:
        call = body.get("extends")
        path = ROOT.key("extends")
        if not isinstance(call, Mapping) or not isinstance(call.scalar("template"), str):
            return body
        try:
            ref = expressions.interpolate(call.scalar("template"), ctx)
            name, doc = self._load(run, str(ref), ())
            tctx = self._template_context(run, call, doc, name, ctx, path, (name,))
            content = self._node(run, Mapping(tuple((k, v) for k, v in doc.items() if k != "parameters")), tctx, path, (name,))
        except (ExpandError, EvalError) as e:
            run.fail(e, path)
            return Mapping(tuple((k, v) for k, v in body.items() if k != "extends"))

        merged: Dict[str, Node] = {k: v for k, v in body.items() if k != "extends"}
        for k, v in content.items():
            merged[k] = v
        return Mapping(tuple(merged.items()))

    def _template_items(self, run: _Run, call: Mapping, ctx: TemplateContext, path: NodePath, chain, list_key: Optional[str]) -> List[Node]:
        ref = expressions.interpolate(str(call.scalar("template")), ctx)
        name, doc = self._load(run, str(ref), chain)
        tctx = self._template_context(run, call, doc, name, ctx, path, chain)

        keys = [k for k in BODY_KEYS if k in doc]
        key = list_key if list_key in keys else (keys[0] if len(keys) == 1 else None)
        if key is None:
            raise TemplateNotFound(f"{name} (no {list_key or '/'.join(BODY_KEYS)} content)")
        content = doc.get(key)
        if key == "variables" and isinstance(content, Mapping):
            content = Sequence(tuple(Mapping((("name", Scalar(k)), ("value", v))) for k, v in content.items()))
        expanded = self._node(run, content, tctx, path, chain + (name,), list_key=key)
        if isinstance(expanded, Sequence):
            return list(expanded.items)
        return [expanded]

    # -- tree walk -----------------------------------------------------

    def _eval(self, run: _Run, text: str, ctx: TemplateContext) -> Any:
        return expressions.evaluate_template(expressions.parse(text), ctx)

    def _scalar(self, run: _Run, node: Scalar, ctx: TemplateContext, path: NodePath) -> Node:
        if not isinstance(node.value, str) or expressions.TEMPLATE_OPEN not in node.value:
            return node
        try:
            return from_python(expressions.interpolate(node.value, ctx))
        except (EvalError, ExpandError) as e:
            run.fail(e, path)
            return node

    def _node(self, run: _Run, node: Node, ctx: TemplateContext, path: NodePath, chain, list_key: Optional[str] = None) -> Node:
        if isinstance(node, Scalar):
            return self._scalar(run, node, ctx, path)
        if isinstance(node, Sequence):
            return Sequence(tuple(self._sequence(run, node, ctx, path, chain, list_key)))
        return self._mapping(run, node, ctx, path, chain)

    def _branches(self, run: _Run, entries, ctx: TemplateContext, path: NodePath):
        """
        Walk (key, value) pairs and yield (kind, key, value, ctx) for the
        entries that survive `${{ if }}` / `${{ each }}` evaluation.
        kind is "plain" for ordinary entries, "splice" for directive bodies.
        """
        taken: Optional[bool] = None  # None: not inside an if-chain
        for key, value, kpath in entries:
            try:
                directive = parse_directive(key) if isinstance(key, str) else None
            except ExpressionSyntaxError as e:
                run.fail(e, kpath)
                taken = None
                continue
            if directive is None or directive.kind == "expr":
                taken = None
                yield ("plain", key, value, ctx, kpath)
                continue
            try:
                if directive.kind == "if":
                    taken = expressions.truthy(self._eval(run, directive.text, ctx))
                    if taken:
                        yield ("splice", key, value, ctx, kpath)
                elif directive.kind == "elseif":
                    if taken is None:
                        raise ExpressionSyntaxError(key, 0, "elseif without a preceding if")
                    if not taken and expressions.truthy(self._eval(run, directive.text, ctx)):
                        taken = True
                        yield ("splice", key, value, ctx, kpath)
                elif directive.kind == "else":
                    if taken is None:
                        raise ExpressionSyntaxError(key, 0, "else without a preceding if")
                    if not taken:
                        yield ("splice", key, value, ctx, kpath)
                    taken = None
                elif directive.kind == "insert":
                    taken = None
                    yield ("splice", key, value, ctx, kpath)
                elif directive.kind == "each":
                    taken = None
                    collection = self._eval(run, directive.text, ctx)
                    if isinstance(collection, dict):
                        collection = [{"key": k, "value": v} for k, v in collection.items()]
                    for item in collection or []:
                        yield ("splice", key, value, ctx.with_local(directive.loop_var, item), kpath)
            except (EvalError, ExpandError) as e:
                run.fail(e, kpath)
                # the chain is already reported; don't fall into its else
                taken = True if directive.kind in ("if", "elseif") else None

    def _mapping(self, run: _Run, node: Mapping, ctx: TemplateContext, path: NodePath, chain) -> Node:
        out: Dict[str, Node] = {}
        entries = [(k, v, path.key(k)) for k, v in node.items()]
        for kind, key, value, bctx, kpath in self._branches(run, entries, ctx, path):
            if kind == "splice":
                inner = self._node(run, value, bctx, kpath, chain)
                if isinstance(inner, Mapping):
                    out.update(inner.items())
                elif not (isinstance(inner, Scalar) and inner.value is None):
                    run.fail(ExpressionSyntaxError(key, 0, "directive body inside a mapping must be a mapping"), kpath)
                continue
            if expressions.TEMPLATE_OPEN in key:
                try:
                    key = expressions.to_string(expressions.interpolate(key, bctx))
                except (EvalError, ExpandError) as e:
                    run.fail(e, kpath)
                    continue
            list_key = key if key in BODY_KEYS else None
            out[key] = self._node(run, value, bctx, kpath, chain, list_key=list_key)
        return Mapping(tuple(out.items()))

    def _sequence(self, run: _Run, node: Sequence, ctx: TemplateContext, path: NodePath, chain, list_key: Optional[str]) -> List[Node]:
        items: List[Node] = []
        entries = []
        for i, item in enumerate(node):
            ipath = path.index(i)
            if isinstance(item, Mapping) and item.entries and all(is_directive_key(k) for k in item.keys()):
                # - ${{ if ... }}: <item or list>
                for key, value in item.items():
                    entries.append((key, value, ipath.key(key)))
            else:
                entries.append((None, item, ipath))

        for kind, key, value, bctx, kpath in self._branches(run, entries, ctx, path):
            if kind == "splice":
                inner = self._node(run, value, bctx, kpath, chain, list_key)
                if isinstance(inner, Sequence):
                    items.extend(self._flatten(run, inner, bctx, kpath, chain, list_key))
                elif not (isinstance(inner, Scalar) and inner.value is None):
                    items.extend(self._flatten(run, Sequence((inner,)), bctx, kpath, chain, list_key))
                continue
            items.extend(self._item(run, value, bctx, kpath, chain, list_key))
        return items

    def _flatten(self, run: _Run, seq: Sequence, ctx, path, chain, list_key) -> List[Node]:
        # directive bodies were already expanded; only template refs remain to splice
        out: List[Node] = []
        for item in seq:
            if list_key and isinstance(item, Mapping) and "template" in item:
                out.extend(self._item(run, item, ctx, path, chain, list_key))
            else:
                out.append(item)
        return out

    def _item(self, run: _Run, item: Node, ctx: TemplateContext, path: NodePath, chain, list_key: Optional[str]) -> List[Node]:
        if list_key and isinstance(item, Mapping) and isinstance(item.scalar("template"), str):
            try:
                return self._template_items(run, item, ctx, path, chain, list_key)
            except (ExpandError, EvalError) as e:
                run.fail(e, path)
                return []
        if isinstance(item, Scalar) and isinstance(item.value, str) and expressions.is_whole_expression(item.value):
            # - ${{ parameters.steps }} splices a list in place
            expanded = self._scalar(run, item, ctx, path)
            if isinstance(expanded, Sequence):
                return self._flatten(run, expanded, ctx, path, chain, list_key)
            return [expanded]
        return [self._node(run, item, ctx, path, chain)]


def is_directive_key(key: str) -> bool:
    """True for `${{ if/elseif/else/each/insert }}` keys (malformed ones included)."""
    try:
        directive = parse_directive(key)
    except ExpressionSyntaxError:
        return True
    return directive is not None and directive.kind != "expr"
