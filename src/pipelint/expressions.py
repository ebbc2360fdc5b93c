# expressions.py
"""
The pipeline expression language.

One AST, two ways to evaluate it:

    evaluate_template(expr, TemplateContext)   compile time, ${{ }}
    evaluate_condition(expr, RuntimeContext)   run time, condition: / $[ ]

The compile-time entry point only sees statically known parameters and
variables. Anything that needs a job result (succeeded(), dependencies.*)
or a variable written by a script at run time is rejected there.

Grammar (no infix operators, everything is a function call):

    expr     := primary postfix*
    primary  := literal | NAME '(' [expr (',' expr)*] ')' | NAME
    postfix  := '.' NAME | '[' expr ']'
    literal  := number | 'string' | True | False | Null
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from .errors import (
    ArityMismatch,
    EvalError,
    ExpressionSyntaxError,
    MissingParameter,
    PhaseError,
    RuntimeReferenceError,
    TypeMismatch,
    UnknownFunction,
    UnknownName,
)

logger = logging.getLogger(__name__)

COMPILE_TIME = "compile"
RUN_TIME = "runtime"

# Named values an expression may start with.
TEMPLATE_ROOTS = {"parameters", "variables", "pipeline", "resources"}
RUNTIME_ROOTS = {"variables", "dependencies", "stagedependencies", "pipeline", "resources"}
KNOWN_ROOTS = TEMPLATE_ROOTS | RUNTIME_ROOTS

SUCCEEDED = "Succeeded"
SUCCEEDED_WITH_ISSUES = "SucceededWithIssues"
FAILED = "Failed"
CANCELED = "Canceled"
SKIPPED = "Skipped"

# ---------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class VariableRef:
    """Dotted named-value access: ("variables", "foo") for variables.foo."""
    path: Tuple[str, ...]

    @property
    def root(self) -> str:
        return self.path[0].lower()


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: Tuple["Expression", ...] = ()


@dataclass(frozen=True)
class BinaryOp:
    """Indexing: left[right]. `op` is always "index" today."""
    op: str
    left: "Expression"
    right: "Expression"


Expression = Any  # Literal | VariableRef | FunctionCall | BinaryOp


# ---------------------------------------------------------------------
# Tokenizer / parser
# ---------------------------------------------------------------------

_PUNCT = "(),[]."


@dataclass(frozen=True)
class _Token:
    kind: str  # num | str | name | punct | end
    value: Any
    pos: int


def _tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if c.isspace():
            i += 1
            continue
        if c in _PUNCT:
            tokens.append(_Token("punct", c, i))
            i += 1
            continue
        if c == "'":
            j = i + 1
            buf = []
            while True:
                if j >= n:
                    raise ExpressionSyntaxError(text, i, "unterminated string")
                if text[j] == "'":
                    if j + 1 < n and text[j + 1] == "'":
                        buf.append("'")
                        j += 2
                        continue
                    break
                buf.append(text[j])
                j += 1
            tokens.append(_Token("str", "".join(buf), i))
            i = j + 1
            continue
        if c.isdigit() or c in "+-":
            j = i + 1
            while j < n and (text[j].isdigit() or text[j] == "."):
                j += 1
            raw = text[i:j]
            try:
                num: Any = float(raw) if "." in raw else int(raw)
            except ValueError:
                raise ExpressionSyntaxError(text, i, f"bad number {raw!r}") from None
            tokens.append(_Token("num", num, i))
            i = j
            continue
        if c.isalpha() or c == "_":
            j = i + 1
            while j < n and (text[j].isalnum() or text[j] in "_-"):
                j += 1
            tokens.append(_Token("name", text[i:j], i))
            i = j
            continue
        raise ExpressionSyntaxError(text, i, f"unexpected character {c!r}")
    tokens.append(_Token("end", None, n))
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.i = 0

    def peek(self) -> _Token:
        return self.tokens[self.i]

    def take(self) -> _Token:
        tok = self.tokens[self.i]
        self.i += 1
        return tok

    def expect(self, value: str) -> _Token:
        tok = self.take()
        if tok.kind != "punct" or tok.value != value:
            raise ExpressionSyntaxError(self.text, tok.pos, f"expected '{value}'")
        return tok

    def parse(self) -> Expression:
        if self.peek().kind == "end":
            raise ExpressionSyntaxError(self.text, 0, "empty expression")
        expr = self.expression()
        tok = self.peek()
        if tok.kind != "end":
            raise ExpressionSyntaxError(self.text, tok.pos, f"unexpected {tok.value!r}")
        return expr

    def expression(self) -> Expression:
        expr = self.primary()
        while True:
            tok = self.peek()
            if tok.kind == "punct" and tok.value == ".":
                self.take()
                name = self.take()
                if name.kind != "name":
                    raise ExpressionSyntaxError(self.text, name.pos, "expected property name")
                if isinstance(expr, VariableRef):
                    expr = VariableRef(expr.path + (name.value,))
                else:
                    expr = BinaryOp("index", expr, Literal(name.value))
            elif tok.kind == "punct" and tok.value == "[":
                self.take()
                key = self.expression()
                self.expect("]")
                expr = BinaryOp("index", expr, key)
            else:
                return expr

    def primary(self) -> Expression:
        tok = self.take()
        if tok.kind in ("num", "str"):
            return Literal(tok.value)
        if tok.kind == "name":
            lowered = tok.value.lower()
            nxt = self.peek()
            if nxt.kind == "punct" and nxt.value == "(":
                self.take()
                args: List[Expression] = []
                if not (self.peek().kind == "punct" and self.peek().value == ")"):
                    args.append(self.expression())
                    while self.peek().kind == "punct" and self.peek().value == ",":
                        self.take()
                        args.append(self.expression())
                self.expect(")")
                return FunctionCall(tok.value, tuple(args))
            if lowered == "true":
                return Literal(True)
            if lowered == "false":
                return Literal(False)
            if lowered == "null":
                return Literal(None)
            # roots are checked at evaluation time: ${{ each }} adds its own
            return VariableRef((tok.value,))
        raise ExpressionSyntaxError(self.text, tok.pos, f"unexpected {tok.value!r}")


def parse(text: str) -> Expression:
    """Parse an expression (without the surrounding ${{ }} / $[ ])."""
    return _Parser(text.strip()).parse()


# ---------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class TemplateContext:
    """What a ${{ }} expression can see: only values known before the run."""
    parameters: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)
    runtime_variables: FrozenSet[str] = frozenset()
    locals: Dict[str, Any] = field(default_factory=dict)  # ${{ each }} loop variables

    def with_local(self, name: str, value: Any) -> "TemplateContext":
        merged = dict(self.locals)
        merged[name] = value
        return TemplateContext(self.parameters, self.variables, self.runtime_variables, merged)


@dataclass(frozen=True)
class DependencyResult:
    result: str = SUCCEEDED
    outputs: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RuntimeContext:
    """What a condition sees when the job or stage is about to start."""
    variables: Dict[str, Any] = field(default_factory=dict)
    dependencies: Dict[str, DependencyResult] = field(default_factory=dict)
    stage_dependencies: Dict[str, Dict[str, DependencyResult]] = field(default_factory=dict)
    canceled: bool = False


# ---------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------


def type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


def truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value != ""
    return True


def to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float, str)):
        return str(value)
    return json.dumps(value, sort_keys=True)


def _coerce_pair(name: str, a: Any, b: Any) -> Tuple[Any, Any]:
    """Bring two values to a common comparable type or raise TypeMismatch."""
    ta, tb = type_name(a), type_name(b)
    if ta == tb and ta in ("boolean", "number"):
        return a, b
    if ta == tb == "string":
        return a.casefold(), b.casefold()
    pair = {ta, tb}
    if pair == {"number", "string"}:
        s = a if ta == "string" else b
        try:
            num = float(s.strip())
        except ValueError:
            raise TypeMismatch(name, ta, tb) from None
        return (num, b) if ta == "string" else (a, num)
    if pair == {"boolean", "string"}:
        s = a if ta == "string" else b
        if s.strip().lower() not in ("true", "false"):
            raise TypeMismatch(name, ta, tb)
        flag = s.strip().lower() == "true"
        return (flag, b) if ta == "string" else (a, flag)
    raise TypeMismatch(name, ta, tb)


def _equals(name: str, a: Any, b: Any) -> bool:
    if a is None or b is None:
        return (a is None or a == "") and (b is None or b == "")
    x, y = _coerce_pair(name, a, b)
    return x == y


def _order(name: str, a: Any, b: Any) -> int:
    if a is None or b is None:
        raise TypeMismatch(name, type_name(a), type_name(b))
    x, y = _coerce_pair(name, a, b)
    return (x > y) - (x < y)


def _text(name: str, value: Any) -> str:
    if isinstance(value, (list, tuple, dict)):
        raise TypeMismatch(name, type_name(value), "string")
    return to_string(value)


# ---------------------------------------------------------------------
# Function table
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Function:
    name: str
    min_args: int
    max_args: Optional[int]
    impl: Callable[..., Any]
    runtime_only: bool = False
    lazy: bool = False  # impl receives thunks instead of values

    def arity_text(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.min_args == self.max_args:
            return str(self.min_args)
        return f"{self.min_args}-{self.max_args}"


def _fn_and(thunks, _ctx):
    return all(truthy(t()) for t in thunks)


def _fn_or(thunks, _ctx):
    return any(truthy(t()) for t in thunks)


def _fn_iif(thunks, _ctx):
    return thunks[1]() if truthy(thunks[0]()) else thunks[2]()


def _fn_coalesce(thunks, _ctx):
    for t in thunks:
        v = t()
        if v is not None and v != "":
            return v
    return None


def _fn_contains(args, _ctx):
    return _text("contains", args[1]).casefold() in _text("contains", args[0]).casefold()


def _fn_contains_value(args, _ctx):
    haystack, needle = args
    if isinstance(haystack, dict):
        haystack = list(haystack.values())
    if not isinstance(haystack, (list, tuple)):
        raise TypeMismatch("containsValue", type_name(haystack), "array")
    for item in haystack:
        try:
            if _equals("containsValue", item, needle):
                return True
        except TypeMismatch:
            continue
    return False


def _fn_in(args, _ctx):
    needle = args[0]
    for candidate in args[1:]:
        try:
            if _equals("in", needle, candidate):
                return True
        except TypeMismatch:
            continue
    return False


def _fn_format(args, _ctx):
    fmt = _text("format", args[0])
    out = []
    i = 0
    while i < len(fmt):
        c = fmt[i]
        if c == "{" and fmt.startswith("{{", i):
            out.append("{")
            i += 2
        elif c == "}" and fmt.startswith("}}", i):
            out.append("}")
            i += 2
        elif c == "{":
            end = fmt.find("}", i)
            idx = fmt[i + 1:end] if end != -1 else ""
            if not idx.isdigit() or int(idx) + 1 >= len(args):
                raise TypeMismatch("format", "string", f"placeholder {{{idx}}}")
            out.append(to_string(args[int(idx) + 1]))
            i = end + 1
        else:
            out.append(c)
            i += 1
    return "".join(out)


def _fn_join(args, _ctx):
    sep, items = args
    if isinstance(items, dict):
        items = list(items.keys())
    if not isinstance(items, (list, tuple)):
        return to_string(items)
    return _text("join", sep).join(to_string(v) for v in items)


def _fn_length(args, _ctx):
    value = args[0]
    if value is None:
        return 0
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    raise TypeMismatch("length", type_name(value), "string|array|object")


def _status_results(ctx: RuntimeContext, names) -> List[str]:
    if names:
        return [ctx.dependencies.get(_text("status", n), DependencyResult(result="")).result for n in names]
    return [d.result for d in ctx.dependencies.values()]


def _fn_succeeded(args, ctx):
    if ctx.canceled:
        return False
    return all(r in (SUCCEEDED, SUCCEEDED_WITH_ISSUES) for r in _status_results(ctx, args))


def _fn_failed(args, ctx):
    if ctx.canceled:
        return False
    return any(r == FAILED for r in _status_results(ctx, args))


def _fn_succeeded_or_failed(args, ctx):
    if ctx.canceled:
        return False
    return all(r in (SUCCEEDED, SUCCEEDED_WITH_ISSUES, FAILED) for r in _status_results(ctx, args))


FUNCTIONS: Dict[str, Function] = {
    f.name.lower(): f
    for f in [
        Function("and", 2, None, _fn_and, lazy=True),
        Function("or", 2, None, _fn_or, lazy=True),
        Function("iif", 3, 3, _fn_iif, lazy=True),
        Function("coalesce", 1, None, _fn_coalesce, lazy=True),
        Function("not", 1, 1, lambda a, _c: not truthy(a[0])),
        Function("xor", 2, 2, lambda a, _c: truthy(a[0]) != truthy(a[1])),
        Function("eq", 2, 2, lambda a, _c: _equals("eq", a[0], a[1])),
        Function("ne", 2, 2, lambda a, _c: not _equals("ne", a[0], a[1])),
        Function("gt", 2, 2, lambda a, _c: _order("gt", a[0], a[1]) > 0),
        Function("ge", 2, 2, lambda a, _c: _order("ge", a[0], a[1]) >= 0),
        Function("lt", 2, 2, lambda a, _c: _order("lt", a[0], a[1]) < 0),
        Function("le", 2, 2, lambda a, _c: _order("le", a[0], a[1]) <= 0),
        Function("contains", 2, 2, _fn_contains),
        Function("containsValue", 2, 2, _fn_contains_value),
        Function("in", 2, None, _fn_in),
        Function("notIn", 2, None, lambda a, c: not _fn_in(a, c)),
        Function("startsWith", 2, 2, lambda a, _c: _text("startsWith", a[0]).casefold().startswith(_text("startsWith", a[1]).casefold())),
        Function("endsWith", 2, 2, lambda a, _c: _text("endsWith", a[0]).casefold().endswith(_text("endsWith", a[1]).casefold())),
        Function("lower", 1, 1, lambda a, _c: _text("lower", a[0]).lower()),
        Function("upper", 1, 1, lambda a, _c: _text("upper", a[0]).upper()),
        Function("length", 1, 1, _fn_length),
        Function("format", 1, None, _fn_format),
        Function("join", 2, 2, _fn_join),
        Function("replace", 3, 3, lambda a, _c: _text("replace", a[0]).replace(_text("replace", a[1]), _text("replace", a[2]))),
        Function("split", 2, 2, lambda a, _c: _text("split", a[0]).split(_text("split", a[1]))),
        Function("convertToJson", 1, 1, lambda a, _c: json.dumps(a[0], indent=2)),
        # job status functions only make sense once something has run
        Function("always", 0, 0, lambda _a, _c: True, runtime_only=True),
        Function("canceled", 0, 0, lambda _a, c: c.canceled, runtime_only=True),
        Function("succeeded", 0, None, _fn_succeeded, runtime_only=True),
        Function("failed", 0, None, _fn_failed, runtime_only=True),
        Function("succeededOrFailed", 0, None, _fn_succeeded_or_failed, runtime_only=True),
    ]
}


def lookup_function(name: str) -> Function:
    fn = FUNCTIONS.get(name.lower())
    if fn is None:
        raise UnknownFunction(name)
    return fn


# ---------------------------------------------------------------------
# Static checks
# ---------------------------------------------------------------------


def _root_problem(root: str, phase: str, local_names: FrozenSet[str]) -> Optional[EvalError]:
    if phase == COMPILE_TIME:
        if root in local_names or root.lower() in TEMPLATE_ROOTS:
            return None
        if root.lower() in RUNTIME_ROOTS:
            return PhaseError(root)
        return UnknownName(root)
    if root.lower() == "parameters":
        return PhaseError(root, runtime_only=False)
    if root.lower() in RUNTIME_ROOTS:
        return None
    return UnknownName(root)


def check(
    expr: Expression,
    phase: str = RUN_TIME,
    local_names: FrozenSet[str] = frozenset(),
) -> List[EvalError]:
    """
    Report every unknown function, arity mismatch and wrong-phase
    construct in expr, without evaluating it.
    """
    problems: List[EvalError] = []

    def walk(node: Expression) -> None:
        if isinstance(node, FunctionCall):
            fn = FUNCTIONS.get(node.name.lower())
            if fn is None:
                problems.append(UnknownFunction(node.name))
            else:
                n = len(node.args)
                if n < fn.min_args or (fn.max_args is not None and n > fn.max_args):
                    problems.append(ArityMismatch(fn.name, fn.arity_text(), n))
                if phase == COMPILE_TIME and fn.runtime_only:
                    problems.append(PhaseError(f"{fn.name}()"))
            for arg in node.args:
                walk(arg)
        elif isinstance(node, VariableRef):
            problem = _root_problem(node.path[0], phase, local_names)
            if problem is not None:
                problems.append(problem)
        elif isinstance(node, BinaryOp):
            walk(node.left)
            walk(node.right)

    walk(expr)
    return problems


# ---------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------


def _index(container: Any, key: Any) -> Any:
    if isinstance(container, dict):
        if isinstance(key, str):
            for k, v in container.items():
                if isinstance(k, str) and k.casefold() == key.casefold():
                    return v
        return container.get(key)
    if isinstance(container, (list, tuple)):
        if isinstance(key, bool) or not isinstance(key, (int, float)):
            raise TypeMismatch("index", "array", type_name(key))
        i = int(key)
        return container[i] if 0 <= i < len(container) else None
    return None


class _Evaluator:
    def __init__(self, phase: str, ctx: Any):
        self.phase = phase
        self.ctx = ctx

    def eval(self, node: Expression) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, VariableRef):
            return self.named(node.path)
        if isinstance(node, BinaryOp):
            return self.index(node)
        if isinstance(node, FunctionCall):
            return self.call(node)
        raise TypeError(f"not an expression node: {node!r}")

    # -- named values --------------------------------------------------

    def root_value(self, root: str) -> Any:
        ctx = self.ctx
        if self.phase == COMPILE_TIME and root in ctx.locals:
            return ctx.locals[root]
        problem = _root_problem(
            root, self.phase, frozenset(ctx.locals) if self.phase == COMPILE_TIME else frozenset()
        )
        if problem is not None:
            raise problem
        lowered = root.lower()
        if lowered == "parameters":
            return ctx.parameters
        if lowered == "variables":
            return ctx.variables
        if lowered == "dependencies":
            return {k: {"result": v.result, "outputs": v.outputs} for k, v in ctx.dependencies.items()}
        if lowered == "stagedependencies":
            return {
                stage: {job: {"result": r.result, "outputs": r.outputs} for job, r in jobs.items()}
                for stage, jobs in ctx.stage_dependencies.items()
            }
        # pipeline.* / resources.* carry nothing we can know statically
        return {}

    def check_runtime_variable(self, name: Any) -> None:
        if self.phase == COMPILE_TIME and isinstance(name, str) and name in self.ctx.runtime_variables:
            raise RuntimeReferenceError(name)

    def check_parameter(self, name: Any) -> None:
        if self.phase != COMPILE_TIME or not isinstance(name, str):
            return
        if not any(isinstance(k, str) and k.casefold() == name.casefold() for k in self.ctx.parameters):
            raise MissingParameter(name)

    def named(self, path: Tuple[str, ...]) -> Any:
        value = self.root_value(path[0])
        root = path[0].lower()
        for i, part in enumerate(path[1:]):
            if i == 0 and root == "variables":
                self.check_runtime_variable(part)
            elif i == 0 and root == "parameters" and path[0] not in self.ctx.locals:
                self.check_parameter(part)
            value = _index(value, part)
        return value

    def index(self, node: BinaryOp) -> Any:
        key = self.eval(node.right)
        left = node.left
        if isinstance(left, VariableRef) and len(left.path) == 1 and left.root == "variables":
            self.check_runtime_variable(key)
        elif isinstance(left, VariableRef) and len(left.path) == 1 and left.root.lower() == "parameters":
            self.check_parameter(key)
        return _index(self.eval(left), key)

    # -- functions -----------------------------------------------------

    def call(self, node: FunctionCall) -> Any:
        fn = lookup_function(node.name)
        n = len(node.args)
        if n < fn.min_args or (fn.max_args is not None and n > fn.max_args):
            raise ArityMismatch(fn.name, fn.arity_text(), n)
        if fn.runtime_only and self.phase == COMPILE_TIME:
            raise PhaseError(f"{fn.name}()")
        if fn.lazy:
            thunks = [lambda a=a: self.eval(a) for a in node.args]
            return fn.impl(thunks, self.ctx)
        return fn.impl([self.eval(a) for a in node.args], self.ctx)


def evaluate_template(expr: Expression, ctx: TemplateContext) -> Any:
    """Compile-time (${{ }}) evaluation against static parameters/variables."""
    if isinstance(expr, str):
        expr = parse(expr)
    return _Evaluator(COMPILE_TIME, ctx).eval(expr)


def evaluate_condition(expr: Expression, ctx: RuntimeContext) -> Any:
    """Run-time evaluation of a `condition:` against job results."""
    if isinstance(expr, str):
        expr = parse(expr)
    return _Evaluator(RUN_TIME, ctx).eval(expr)


# ---------------------------------------------------------------------
# ${{ }} inside strings
# ---------------------------------------------------------------------

TEMPLATE_OPEN = "${{"
TEMPLATE_CLOSE = "}}"


def find_template_expressions(text: str) -> List[Tuple[int, int, str]]:
    """Return (start, end, inner) for every ${{ ... }} in text, honoring quotes."""
    found = []
    i = 0
    while True:
        start = text.find(TEMPLATE_OPEN, i)
        if start == -1:
            return found
        j = start + len(TEMPLATE_OPEN)
        in_str = False
        while j < len(text):
            c = text[j]
            if c == "'":
                in_str = not in_str
            elif not in_str and text.startswith(TEMPLATE_CLOSE, j):
                break
            j += 1
        else:
            raise ExpressionSyntaxError(text, start, "unterminated ${{")
        found.append((start, j + len(TEMPLATE_CLOSE), text[start + len(TEMPLATE_OPEN):j]))
        i = j + len(TEMPLATE_CLOSE)


def is_whole_expression(text: str) -> bool:
    stripped = text.strip()
    spans = find_template_expressions(stripped)
    return len(spans) == 1 and spans[0][0] == 0 and spans[0][1] == len(stripped)


def interpolate(text: str, ctx: TemplateContext) -> Any:
    """
    Replace every ${{ expr }} in text.

    A string that is exactly one expression keeps the value's own type
    (so `${{ parameters.count }}` stays a number); otherwise the pieces
    are stringified and concatenated.
    """
    if TEMPLATE_OPEN not in text:
        return text
    stripped = text.strip()
    spans = find_template_expressions(stripped)
    if len(spans) == 1 and spans[0][0] == 0 and spans[0][1] == len(stripped):
        return evaluate_template(parse(spans[0][2]), ctx)
    out = []
    last = 0
    for start, end, inner in find_template_expressions(text):
        out.append(text[last:start])
        out.append(to_string(evaluate_template(parse(inner), ctx)))
        last = end
    out.append(text[last:])
    return "".join(out)


def is_runtime_expression(text: str) -> bool:
    """True for a `$[ ... ]` runtime expression value."""
    stripped = text.strip()
    return stripped.startswith("$[") and stripped.endswith("]")
