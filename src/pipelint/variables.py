# variables.py
"""Finding out which variables exist before the run and which only during it."""
from __future__ import annotations

import re
from typing import Dict, Iterator, List, Optional, Set

from .document import Mapping, Node, Scalar, Sequence
from .expressions import is_runtime_expression
from .model import EXPRESSION, GROUP, LITERAL, RUNTIME, Variable

# ##vso[task.setvariable variable=name;isOutput=true]value
SETVARIABLE_RE = re.compile(r"##vso\[task\.setvariable\s+([^\]]*)\]", re.IGNORECASE)
_VARIABLE_PROP_RE = re.compile(r"(?:^|;)\s*variable\s*=\s*([^;\s]+)", re.IGNORECASE)

SCRIPT_KEYS = ("script", "bash", "pwsh", "powershell")


def set_variables_in_script(text: str) -> List[str]:
    """Names a script assigns through the task.setvariable logging command."""
    names: List[str] = []
    for m in SETVARIABLE_RE.finditer(text):
        prop = _VARIABLE_PROP_RE.search(m.group(1))
        if prop and prop.group(1) not in names:
            names.append(prop.group(1))
    return names


def _walk(node: Node) -> Iterator[Mapping]:
    if isinstance(node, Mapping):
        yield node
        for _, child in node.items():
            yield from _walk(child)
    elif isinstance(node, Sequence):
        for child in node:
            yield from _walk(child)


def runtime_variable_names(node: Optional[Node]) -> Set[str]:
    """
    Every variable in the tree whose value is only known at run time:
    set by a script, or declared with a `$[ ]` runtime expression.
    """
    names: Set[str] = set()
    if node is None:
        return names
    for m in _walk(node):
        for key in SCRIPT_KEYS:
            text = m.scalar(key)
            if isinstance(text, str):
                names.update(set_variables_in_script(text))
        variables = m.get("variables")
        if variables is not None:
            for var in parse_variables(variables, scope="pipeline"):
                if var.source == EXPRESSION:
                    names.add(var.name)
    return names


def parse_variables(node: Optional[Node], scope: str) -> List[Variable]:
    """Read both the `name: value` mapping form and the list form."""
    out: List[Variable] = []
    if isinstance(node, Mapping):
        for name, value in node.items():
            if isinstance(value, Scalar):
                out.append(_variable(name, value.value, scope))
        return out
    if not isinstance(node, Sequence):
        return out
    for item in node:
        if not isinstance(item, Mapping):
            continue
        if "group" in item:
            out.append(Variable(name=str(item.scalar("group")), scope=scope, source=GROUP))
        elif "name" in item:
            var = _variable(str(item.scalar("name")), item.scalar("value"), scope)
            if item.scalar("readonly") is True:
                var = Variable(var.name, var.scope, var.source, var.value, readonly=True)
            out.append(var)
    return out


def _variable(name: str, value, scope: str) -> Variable:
    if isinstance(value, str) and is_runtime_expression(value):
        return Variable(name=name, scope=scope, source=EXPRESSION, value=value)
    return Variable(name=name, scope=scope, source=LITERAL, value=value)


def static_values(variables: List[Variable]) -> Dict[str, object]:
    """The compile-time view: literal variables only."""
    return {v.name: v.value for v in variables if v.source == LITERAL}


def runtime_variables_of_steps(steps: Optional[Node], scope: str) -> List[Variable]:
    out: List[Variable] = []
    seen: Set[str] = set()
    for m in _walk(steps) if steps is not None else ():
        for key in SCRIPT_KEYS:
            text = m.scalar(key)
            if not isinstance(text, str):
                continue
            for name in set_variables_in_script(text):
                if name not in seen:
                    seen.add(name)
                    out.append(Variable(name=name, scope=scope, source=RUNTIME))
    return out
