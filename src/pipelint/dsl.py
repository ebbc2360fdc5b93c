# src/pipelint/dsl.py
"""
Build pipeline documents from Python.

Everything here returns plain dicts and lists shaped exactly like the YAML
would be, so the result can go straight into `document.from_python`, or
be dumped back to YAML.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

Names = Union[str, Sequence[str], None]


def _names(value: Names) -> Union[str, List[str]]:
    if isinstance(value, str):
        return value
    return list(value or [])


def _put(d: Dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        d[key] = value


# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------

def script(cmd: str, *, name: Optional[str] = None, display_name: Optional[str] = None,
           condition: Optional[str] = None, shell: str = "script", env: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """A script step; shell may be script, bash, pwsh or powershell."""
    d: Dict[str, Any] = {shell: cmd}
    _put(d, "name", name)
    _put(d, "displayName", display_name)
    _put(d, "condition", condition)
    _put(d, "env", env)
    return d


def task(ref: str, inputs: Optional[Dict[str, Any]] = None, *, name: Optional[str] = None,
         display_name: Optional[str] = None, condition: Optional[str] = None) -> Dict[str, Any]:
    d: Dict[str, Any] = {"task": ref}
    _put(d, "name", name)
    _put(d, "displayName", display_name)
    _put(d, "condition", condition)
    _put(d, "inputs", inputs)
    return d


def template(path: str, **parameters: Any) -> Dict[str, Any]:
    """A template reference; works in step, job, stage and variable lists."""
    d: Dict[str, Any] = {"template": path}
    if parameters:
        d["parameters"] = parameters
    return d


def set_variable(name: str, value: str, *, is_output: bool = False) -> Dict[str, Any]:
    """A script step that sets a variable at run time."""
    props = f"variable={name}" + (";isOutput=true" if is_output else "")
    return script(f"echo '##vso[task.setvariable {props}]{value}'")


# ---------------------------------------------------------------------
# Jobs / stages
# ---------------------------------------------------------------------

def matrix(cells: Dict[str, Dict[str, Any]], *, max_parallel: Optional[int] = None) -> Dict[str, Any]:
    """
    A job strategy with one cell per entry.

    Example:
        job("Test", script("pytest"), strategy=matrix({
            "linux": {"imageName": "ubuntu-latest"},
            "mac": {"imageName": "macOS-latest"},
        }))
    """
    d: Dict[str, Any] = {"matrix": {k: dict(v) for k, v in cells.items()}}
    _put(d, "maxParallel", max_parallel)
    return d


def job(
    name: str,
    *steps: Dict[str, Any],
    depends_on: Names = None,
    condition: Optional[str] = None,
    strategy: Optional[Dict[str, Any]] = None,
    variables: Optional[Dict[str, Any]] = None,
    pool: Any = None,
    display_name: Optional[str] = None,
) -> Dict[str, Any]:
    d: Dict[str, Any] = {"job": name}
    _put(d, "displayName", display_name)
    # depends_on=[] is meaningful (explicitly no dependencies)
    if depends_on is not None:
        d["dependsOn"] = _names(depends_on)
    _put(d, "condition", condition)
    _put(d, "strategy", strategy)
    _put(d, "variables", variables)
    _put(d, "pool", pool)
    d["steps"] = list(steps)
    return d


def stage(
    name: str,
    *jobs: Dict[str, Any],
    depends_on: Names = None,
    condition: Optional[str] = None,
    variables: Optional[Dict[str, Any]] = None,
    display_name: Optional[str] = None,
) -> Dict[str, Any]:
    d: Dict[str, Any] = {"stage": name}
    _put(d, "displayName", display_name)
    if depends_on is not None:
        d["dependsOn"] = _names(depends_on)
    _put(d, "condition", condition)
    _put(d, "variables", variables)
    d["jobs"] = list(jobs)
    return d


# ---------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------

def pipeline(
    *body: Dict[str, Any],
    parameters: Optional[Iterable[Dict[str, Any]]] = None,
    variables: Optional[Dict[str, Any]] = None,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    """
    A pipeline from stages, or from jobs (one implicit stage), or from
    steps (implicit stage and job). The kind is taken from the first item.

        pipeline(stage("Build", job("B", script("make"))))
        pipeline(job("A", script("a")), job("B", script("b")))
    """
    d: Dict[str, Any] = {}
    _put(d, "name", name)
    if parameters is not None:
        d["parameters"] = list(parameters)
    _put(d, "variables", variables)
    if not body:
        d["stages"] = []
    elif "stage" in body[0]:
        d["stages"] = list(body)
    elif "job" in body[0] or "deployment" in body[0]:
        d["jobs"] = list(body)
    elif "template" in body[0] and len(body) == 1 and parameters is None:
        d["extends"] = body[0]
    else:
        d["steps"] = list(body)
    return d


def parameter(name: str, type: str = "string", default: Any = None, values: Optional[List[Any]] = None) -> Dict[str, Any]:
    d: Dict[str, Any] = {"name": name, "type": type}
    _put(d, "default", default)
    _put(d, "values", values)
    return d
