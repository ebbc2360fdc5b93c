# loader.py
"""YAML in, Document out. The only module that touches the filesystem."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Dict, Iterator, Optional

import yaml

from .document import Node, from_python
from .errors import PipelintError

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".yml", ".yaml")


class LoadError(PipelintError):
    """The file is unreadable or is not YAML we can use."""

    code = "load"


def load_yaml(path: str | Path):
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except FileNotFoundError:
        raise
    except yaml.YAMLError as exc:
        raise LoadError(f"Invalid YAML in {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise LoadError(f"{path} is not UTF-8 text: {exc.reason}") from exc
    except OSError as exc:
        raise LoadError(f"Cannot read {path}: {exc.strerror or exc}") from exc


def load_document(path: str | Path) -> Node:
    payload = load_yaml(path)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise LoadError(f"Pipeline file must contain a YAML mapping: {path}")
    return from_python(payload)


class DirectoryTemplateSource(Mapping):
    """
    Templates under a directory, keyed by their path relative to it
    (`templates/build.yml`). Files are read on first lookup and kept.

    `name@repo` references point at other repositories; those are never
    available here.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self._cache: Dict[str, Node] = {}

    def _path(self, name: str) -> Optional[Path]:
        if "@" in name:
            return None
        candidate = (self.root / name.lstrip("/")).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError:
            return None
        if candidate.is_file() and candidate.suffix in TEMPLATE_SUFFIXES:
            return candidate
        return None

    def __getitem__(self, name: str) -> Node:
        if name in self._cache:
            return self._cache[name]
        path = self._path(name)
        if path is None:
            raise KeyError(name)
        logger.debug("loading template %s from %s", name, path)
        payload = load_yaml(path)
        node = from_python(payload if payload is not None else {})
        self._cache[name] = node
        return node

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and (name in self._cache or self._path(name) is not None)

    def __iter__(self) -> Iterator[str]:
        for path in sorted(self.root.rglob("*")):
            if path.is_file() and path.suffix in TEMPLATE_SUFFIXES:
                yield path.relative_to(self.root).as_posix()

    def __len__(self) -> int:
        return sum(1 for _ in self)

