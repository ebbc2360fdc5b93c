# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class PipelintError(Exception):
    """Base class for everything pipelint raises on purpose."""

    code = "error"
    path: Optional[str] = None


# ----------------------------------------------------------------------
# Schema
# ----------------------------------------------------------------------

@dataclass
class SchemaError(PipelintError):
    """
    Unknown/missing/mistyped field.

    The validator never raises this; it collects findings instead. The
    model builder raises it when handed a tree that was not validated.
    """
    message: str
    path: Optional[str] = None

    code = "schema"

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


# ----------------------------------------------------------------------
# Expressions
# ----------------------------------------------------------------------

class EvalError(PipelintError):
    code = "eval"


@dataclass
class ExpressionSyntaxError(EvalError):
    text: str
    position: int
    reason: str

    code = "expression-syntax"

    def __str__(self) -> str:
        return f"invalid expression {self.text!r} at {self.position}: {self.reason}"


@dataclass
class UnknownFunction(EvalError):
    name: str

    code = "unknown-function"

    def __str__(self) -> str:
        return f"unknown function '{self.name}'"


@dataclass
class ArityMismatch(EvalError):
    name: str
    expected: str
    got: int

    code = "arity-mismatch"

    def __str__(self) -> str:
        return f"function '{self.name}' expects {self.expected} argument(s), got {self.got}"


@dataclass
class TypeMismatch(EvalError):
    name: str
    left: str
    right: str

    code = "type-mismatch"

    def __str__(self) -> str:
        return f"function '{self.name}' cannot compare {self.left} with {self.right}"


@dataclass
class UnknownName(EvalError):
    name: str

    code = "unknown-name"

    def __str__(self) -> str:
        return f"unrecognized value '{self.name}'"


@dataclass
class PhaseError(EvalError):
    """A construct used in the wrong evaluation phase."""
    construct: str
    runtime_only: bool = True

    code = "phase"

    def __str__(self) -> str:
        if self.runtime_only:
            return f"'{self.construct}' is only available at run time, not in ${{{{ }}}} expressions"
        return f"'{self.construct}' is only available in ${{{{ }}}} expressions, not at run time"


# ----------------------------------------------------------------------
# Template expansion
# ----------------------------------------------------------------------

class ExpandError(PipelintError):
    code = "expand"


@dataclass
class TemplateCycle(ExpandError):
    chain: List[str]

    code = "template-cycle"

    def __str__(self) -> str:
        return "template cycle: " + " -> ".join(self.chain)


@dataclass
class TemplateDepthExceeded(ExpandError):
    limit: int
    chain: List[str] = field(default_factory=list)

    code = "template-depth"

    def __str__(self) -> str:
        return f"template nesting deeper than {self.limit}: " + " -> ".join(self.chain)


@dataclass
class TemplateNotFound(ExpandError):
    name: str

    code = "template-not-found"

    def __str__(self) -> str:
        return f"template not found: {self.name}"


@dataclass
class TemplateLoadError(ExpandError):
    """The template exists but its file could not be read or parsed."""
    name: str
    reason: str

    code = "template-load"

    def __str__(self) -> str:
        return f"cannot load template {self.name}: {self.reason}"


@dataclass
class MissingParameter(ExpandError):
    name: str
    template: Optional[str] = None

    code = "missing-parameter"

    def __str__(self) -> str:
        where = f" for template '{self.template}'" if self.template else ""
        return f"parameter '{self.name}' has no value and no default{where}"


@dataclass
class InvalidParameter(ExpandError):
    name: str
    reason: str
    template: Optional[str] = None

    code = "invalid-parameter"

    def __str__(self) -> str:
        where = f" (template '{self.template}')" if self.template else ""
        return f"parameter '{self.name}'{where}: {self.reason}"


@dataclass
class UnexpectedParameter(ExpandError):
    name: str
    template: Optional[str] = None

    code = "unexpected-parameter"

    def __str__(self) -> str:
        where = f" by template '{self.template}'" if self.template else ""
        return f"parameter '{self.name}' is not declared{where}"


@dataclass
class RuntimeReferenceError(ExpandError):
    """${{ }} referenced a variable whose value only exists at run time."""
    variable: str

    code = "runtime-reference"

    def __str__(self) -> str:
        return (
            f"variable '{self.variable}' is set at run time and cannot be used in a "
            f"${{{{ }}}} expression; use $({self.variable}) or a runtime condition instead"
        )


# ----------------------------------------------------------------------
# Dependency resolution
# ----------------------------------------------------------------------

class DependencyError(PipelintError):
    code = "dependency"


@dataclass
class CycleError(DependencyError):
    cycle: List[str]
    scope: str = "pipeline"

    code = "cycle"

    def __str__(self) -> str:
        chain = " -> ".join(self.cycle + self.cycle[:1])
        return f"dependency cycle in {self.scope}: {chain}"


@dataclass
class UnknownDependencyError(DependencyError):
    node: str
    missing: str
    known: List[str] = field(default_factory=list)
    scope: str = "pipeline"

    code = "unknown-dependency"

    def __str__(self) -> str:
        return (
            f"'{self.node}' depends on missing '{self.missing}' in {self.scope}. "
            f"Known: {self.known}"
        )
