# builder.py
"""Build the immutable Pipeline model from an expanded document tree."""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from . import expressions
from .document import Mapping, Node, Scalar, Sequence
from .errors import ExpressionSyntaxError, SchemaError
from .model import (
    CheckoutStep,
    DeploymentStrategy,
    DownloadStep,
    Job,
    MatrixStrategy,
    NoStrategy,
    ParallelStrategy,
    Pipeline,
    ScriptStep,
    Stage,
    Step,
    Strategy,
    TaskStep,
    TemplateStep,
)
from .schema import DEPLOYMENT_HOOKS, DEPLOYMENT_STRATEGIES, names_in, step_kind
from .variables import parse_variables, runtime_variables_of_steps

logger = logging.getLogger(__name__)

IMPLICIT_STAGE = "__default"
IMPLICIT_JOB = "Job"


def _condition(node: Mapping) -> Tuple[Optional[expressions.Expression], Optional[str]]:
    value = node.scalar("condition")
    if value is None:
        return None, None
    if isinstance(value, bool):
        return expressions.Literal(value), str(value).lower()
    text = str(value)
    try:
        return expressions.parse(text), text
    except ExpressionSyntaxError:
        # the validator has already reported it; keep the text for display
        return None, text


def _depends_on(node: Mapping) -> Optional[Tuple[str, ...]]:
    if "dependsOn" not in node:
        return None
    return tuple(dict.fromkeys(names_in(node.get("dependsOn"))))


def _inputs(node: Optional[Node]) -> dict:
    if isinstance(node, Mapping):
        return {k: v.to_python() for k, v in node.items()}
    return {}


def build_step(node: Node) -> Step:
    if not isinstance(node, Mapping):
        raise SchemaError("step must be a mapping")
    kinds = step_kind(node)
    if len(kinds) != 1:
        raise SchemaError(f"step must have exactly one step kind, found {kinds}")
    kind = kinds[0]
    condition, _ = _condition(node)
    common = dict(
        display_name=node.scalar("displayName"),
        name=node.scalar("name"),
        condition=condition,
    )
    value = node.scalar(kind)
    if kind in ("script", "bash", "pwsh", "powershell"):
        inputs = {k: v.to_python() for k, v in node.items() if k in ("workingDirectory", "failOnStderr")}
        inputs.update({f"env.{k}": v for k, v in _inputs(node.get("env")).items()})
        return ScriptStep(script=str(value or ""), shell=kind, inputs=inputs, **common)
    if kind == "task":
        return TaskStep(task=str(value), inputs=_inputs(node.get("inputs")), **common)
    if kind == "publish":
        inputs = {"targetPath": value, "artifact": node.scalar("artifact")}
        return TaskStep(task="PublishPipelineArtifact@1", inputs=inputs, **common)
    if kind == "template":
        return TemplateStep(template=str(value), inputs=_inputs(node.get("parameters")), **common)
    if kind == "download":
        inputs = {k: v.to_python() for k, v in node.items() if k in ("artifact", "patterns")}
        return DownloadStep(download=str(value), inputs=inputs, **common)
    inputs = {k: v.to_python() for k, v in node.items() if k not in ("checkout", "displayName", "name", "condition")}
    return CheckoutStep(checkout=str(value), inputs=inputs, **common)


def build_steps(node: Optional[Node]) -> Tuple[Step, ...]:
    if not isinstance(node, Sequence):
        return ()
    return tuple(build_step(s) for s in node)


def build_strategy(node: Optional[Node], kind: str) -> Strategy:
    if not isinstance(node, Mapping):
        return NoStrategy()
    if kind == "deployment":
        for name in DEPLOYMENT_STRATEGIES:
            body = node.get(name)
            if isinstance(body, Mapping):
                increments = body.get("increments")
                return DeploymentStrategy(
                    kind=name,
                    hooks=tuple(h for h in DEPLOYMENT_HOOKS if h in body),
                    increments=tuple(i.value for i in increments) if isinstance(increments, Sequence) else (),
                    max_parallel=None if body.scalar("maxParallel") is None else str(body.scalar("maxParallel")),
                )
        return NoStrategy()
    matrix = node.get("matrix")
    if isinstance(matrix, Mapping):
        cells = tuple((cell, v.to_python()) for cell, v in matrix.items() if isinstance(v, Mapping))
        return MatrixStrategy(cells=cells, max_parallel=node.scalar("maxParallel"))
    parallel = node.scalar("parallel")
    if isinstance(parallel, int) and not isinstance(parallel, bool):
        return ParallelStrategy(count=parallel)
    return NoStrategy()


def _deployment_steps(strategy: Optional[Node]) -> Tuple[Step, ...]:
    """All lifecycle-hook steps of a deployment job, in hook order."""
    if not isinstance(strategy, Mapping):
        return ()
    steps: List[Step] = []
    for name in DEPLOYMENT_STRATEGIES:
        body = strategy.get(name)
        if not isinstance(body, Mapping):
            continue
        for hook in DEPLOYMENT_HOOKS:
            hooked = body.get(hook)
            if not isinstance(hooked, Mapping):
                continue
            if hook == "on":
                for outcome in ("success", "failure"):
                    handler = hooked.get(outcome)
                    if isinstance(handler, Mapping):
                        steps.extend(build_steps(handler.get("steps")))
            else:
                steps.extend(build_steps(hooked.get("steps")))
    return tuple(steps)


def _environment(node: Optional[Node]) -> Optional[str]:
    if isinstance(node, Scalar):
        return None if node.value is None else str(node.value)
    if isinstance(node, Mapping):
        return node.scalar("name")
    return None


def build_job(node: Node, default_name: str = IMPLICIT_JOB) -> Job:
    if not isinstance(node, Mapping):
        raise SchemaError("job must be a mapping")
    kind = "deployment" if "deployment" in node else "job"
    name = node.scalar(kind, default_name)
    if not isinstance(name, str):
        raise SchemaError(f"{kind} name must be a string, got {name!r}")
    condition, text = _condition(node)
    if kind == "deployment":
        steps = _deployment_steps(node.get("strategy"))
        steps_node = node.get("strategy")
    else:
        steps = build_steps(node.get("steps"))
        steps_node = node.get("steps")
    variables = parse_variables(node.get("variables"), "job") + runtime_variables_of_steps(steps_node, "job")
    return Job(
        name=name,
        steps=steps,
        kind=kind,
        display_name=node.scalar("displayName"),
        depends_on=_depends_on(node),
        condition=condition,
        condition_text=text,
        strategy=build_strategy(node.get("strategy"), kind),
        variables=tuple(variables),
        environment=_environment(node.get("environment")),
        continue_on_error=node.scalar("continueOnError") is True,
        pool=node.get("pool").to_python() if node.get("pool") is not None else None,
    )


def build_stage(node: Node) -> Stage:
    if not isinstance(node, Mapping):
        raise SchemaError("stage must be a mapping")
    name = node.scalar("stage")
    if not isinstance(name, str):
        raise SchemaError(f"stage name must be a string, got {name!r}")
    condition, text = _condition(node)
    jobs = node.get("jobs")
    return Stage(
        name=name,
        jobs=tuple(build_job(j) for j in jobs) if isinstance(jobs, Sequence) else (),
        display_name=node.scalar("displayName"),
        depends_on=_depends_on(node),
        condition=condition,
        condition_text=text,
        variables=tuple(parse_variables(node.get("variables"), "stage")),
        pool=node.get("pool").to_python() if node.get("pool") is not None else None,
    )


def build_pipeline(
    node: Node,
    parameters: Optional[dict] = None,
    *,
    implicit_stage: str = IMPLICIT_STAGE,
    implicit_job: str = IMPLICIT_JOB,
) -> Pipeline:
    """
    Build a Pipeline from an expanded (template-free) document.

    A pipeline with top-level `jobs:` gets one implicit stage; a pipeline
    with top-level `steps:` also gets one implicit job around them.

    Raises SchemaError if the tree is not shaped like a pipeline; run the
    SchemaValidator first to get the full list of problems.
    """
    if not isinstance(node, Mapping):
        raise SchemaError("pipeline must be a mapping")
    root_vars = tuple(parse_variables(node.get("variables"), "pipeline"))

    implicit = False
    if isinstance(node.get("stages"), Sequence):
        stages = tuple(build_stage(s) for s in node.get("stages"))
    elif isinstance(node.get("jobs"), Sequence):
        implicit = True
        stages = (Stage(name=implicit_stage, jobs=tuple(build_job(j) for j in node.get("jobs"))),)
    elif isinstance(node.get("steps"), Sequence):
        implicit = True
        job_node = Mapping(
            (("job", Scalar(implicit_job)),)
            + tuple((k, v) for k, v in node.items() if k in ("steps", "pool", "strategy", "container", "workspace", "timeoutInMinutes"))
        )
        stages = (Stage(name=implicit_stage, jobs=(build_job(job_node),)),)
    else:
        raise SchemaError("pipeline has no stages, jobs or steps")

    pipeline = Pipeline(
        stages=stages,
        name=node.scalar("name"),
        parameters=dict(parameters or {}),
        variables=root_vars,
        implicit_stage=implicit,
    )
    logger.debug(
        "built pipeline: %d stage(s), %d job(s)",
        len(pipeline.stages),
        sum(len(s.jobs) for s in pipeline.stages),
    )
    return pipeline
