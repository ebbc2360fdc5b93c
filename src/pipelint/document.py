# document.py
"""
Generic document tree.

Whatever YAML parser sits in front of pipelint hands us plain dicts,
lists and scalars. We convert that once into a closed set of frozen node
types so every consumer can dispatch on exactly three shapes:

    Scalar    str | int | float | bool | None
    Sequence  ordered tuple of nodes
    Mapping   ordered tuple of (key, node) pairs
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Optional, Tuple, Union

ScalarValue = Union[str, int, float, bool, None]


@dataclass(frozen=True)
class Scalar:
    value: ScalarValue

    def to_python(self) -> ScalarValue:
        return self.value


@dataclass(frozen=True)
class Sequence:
    items: Tuple["Node", ...] = ()

    def __iter__(self) -> Iterator["Node"]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def to_python(self) -> list:
        return [item.to_python() for item in self.items]


@dataclass(frozen=True)
class Mapping:
    entries: Tuple[Tuple[str, "Node"], ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def keys(self) -> list[str]:
        return [k for k, _ in self.entries]

    def items(self) -> Tuple[Tuple[str, "Node"], ...]:
        return self.entries

    def get(self, key: str, default: Optional["Node"] = None) -> Optional["Node"]:
        for k, v in self.entries:
            if k == key:
                return v
        return default

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self.entries)

    def scalar(self, key: str, default: ScalarValue = None) -> ScalarValue:
        """Value of a scalar child, or `default` when absent or not a scalar."""
        node = self.get(key)
        if isinstance(node, Scalar):
            return node.value
        return default

    def to_python(self) -> dict:
        return {k: v.to_python() for k, v in self.entries}


Node = Union[Scalar, Sequence, Mapping]


def from_python(data: Any) -> Node:
    """Convert parsed YAML (dict/list/scalars) into a Document tree."""
    if isinstance(data, (Scalar, Sequence, Mapping)):
        return data
    if isinstance(data, dict):
        return Mapping(tuple((str(k), from_python(v)) for k, v in data.items()))
    if isinstance(data, (list, tuple)):
        return Sequence(tuple(from_python(v) for v in data))
    if data is None or isinstance(data, (str, bool, int, float)):
        return Scalar(data)
    # dates and friends from YAML timestamps: keep them as text
    return Scalar(str(data))


def kind_of(node: Node) -> str:
    if isinstance(node, Mapping):
        return "mapping"
    if isinstance(node, Sequence):
        return "sequence"
    if isinstance(node.value, bool):
        return "boolean"
    if isinstance(node.value, (int, float)):
        return "number"
    if node.value is None:
        return "null"
    return "string"


# ---------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------

PathPart = Union[str, int]


@dataclass(frozen=True)
class NodePath:
    """Location of a node, rendered like `stages[0].jobs[2].steps[1]`."""
    parts: Tuple[PathPart, ...] = ()

    def key(self, name: str) -> "NodePath":
        return NodePath(self.parts + (name,))

    def index(self, i: int) -> "NodePath":
        return NodePath(self.parts + (i,))

    def __str__(self) -> str:
        out = ""
        for p in self.parts:
            if isinstance(p, int):
                out += f"[{p}]"
            elif out:
                out += f".{p}"
            else:
                out = p
        return out or "<root>"


ROOT = NodePath()
