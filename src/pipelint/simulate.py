# simulate.py
"""
Dry-run an execution plan.

Nothing is executed: every job's outcome comes from the caller. What the
simulator adds is the run-time half of the expression language, so a
caller can see which jobs and stages a given set of outcomes would skip.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Union

from .dag import build_dag, job_of, stage_nodes
from .expressions import (
    CANCELED,
    FAILED,
    SKIPPED,
    SUCCEEDED,
    SUCCEEDED_WITH_ISSUES,
    DependencyResult,
    FunctionCall,
    RuntimeContext,
    evaluate_condition,
    truthy,
)
from .model import ExecutionPlan, Job, Pipeline, PlanEntry, Stage
from .variables import static_values

logger = logging.getLogger(__name__)

DEFAULT_CONDITION = FunctionCall("succeeded", ())

Outcome = Union[str, DependencyResult]


@dataclass
class SimulationResult:
    jobs: Dict[PlanEntry, str] = field(default_factory=dict)
    stages: Dict[str, str] = field(default_factory=dict)

    def status(self, stage: str, job: Optional[str] = None) -> str:
        if job is None:
            return self.stages[stage]
        return self.jobs[PlanEntry(stage, job)]

    def ran(self) -> List[PlanEntry]:
        return [e for e, s in self.jobs.items() if s != SKIPPED]

    def skipped(self) -> List[PlanEntry]:
        return [e for e, s in self.jobs.items() if s == SKIPPED]


def combine(results: List[str]) -> str:
    """Roll several results (job instances, or a stage's jobs) into one."""
    if not results or all(r == SKIPPED for r in results):
        return SKIPPED
    if FAILED in results:
        return FAILED
    if CANCELED in results:
        return CANCELED
    if SUCCEEDED_WITH_ISSUES in results:
        return SUCCEEDED_WITH_ISSUES
    return SUCCEEDED


class _Simulation:
    def __init__(
        self,
        pipeline: Pipeline,
        outcomes: Mapping[str, Outcome],
        variables: Mapping[str, object],
        canceled: bool,
    ):
        self.pipeline = pipeline
        self.outcomes = outcomes
        self.variables = dict(static_values(list(pipeline.variables)))
        self.variables.update(variables)
        self.canceled = canceled
        self.stage_deps = build_dag(stage_nodes(pipeline.stages), implicit_sequential=True, scope="stages").deps
        self.result = SimulationResult()
        self.outputs: Dict[PlanEntry, Dict[str, object]] = {}
        self.decided: Dict[str, bool] = {}  # stage -> will its jobs run

    # -- outcomes ------------------------------------------------------

    def outcome(self, entry: PlanEntry) -> DependencyResult:
        for key in (str(entry), entry.job):
            if key in self.outcomes:
                value = self.outcomes[key]
                if isinstance(value, DependencyResult):
                    return value
                return DependencyResult(result=str(value))
        return DependencyResult(result=SUCCEEDED)

    def job_result(self, stage: Stage, job: Job) -> DependencyResult:
        results = []
        outputs: Dict[str, object] = {}
        for inst in job.instance_names():
            entry = PlanEntry(stage.name, inst)
            if entry in self.result.jobs:
                results.append(self.result.jobs[entry])
                outputs.update(self.outputs.get(entry, {}))
        return DependencyResult(result=combine(results), outputs=outputs)

    def stage_result(self, name: str) -> str:
        stage = self.pipeline.stage(name)
        if name in self.result.stages:
            return self.result.stages[name]
        if not stage.jobs:
            return SUCCEEDED if self.decided.get(name) else SKIPPED
        return combine([self.job_result(stage, j).result for j in stage.jobs])

    # -- conditions ----------------------------------------------------

    def holds(self, condition, ctx: RuntimeContext) -> bool:
        return truthy(evaluate_condition(condition or DEFAULT_CONDITION, ctx))

    def decide_stage(self, name: str) -> bool:
        if name in self.decided:
            return self.decided[name]
        for dep in self.stage_deps[name]:
            self.decide_stage(dep)
        stage = self.pipeline.stage(name)
        deps = {dep: DependencyResult(result=self.stage_result(dep)) for dep in self.stage_deps[name]}
        variables = dict(self.variables)
        variables.update(static_values(list(stage.variables)))
        ctx = RuntimeContext(variables=variables, dependencies=deps, canceled=self.canceled)
        # an implicit stage has no condition of its own; its jobs decide
        runs = self.pipeline.implicit_stage or self.holds(stage.condition, ctx)
        self.decided[name] = runs
        logger.debug("stage %s: condition %s", name, "holds" if runs else "is false, skipping")
        return runs

    def stage_dependencies(self, name: str) -> Dict[str, Dict[str, DependencyResult]]:
        out: Dict[str, Dict[str, DependencyResult]] = {}
        pending = list(self.stage_deps[name])
        while pending:
            dep = pending.pop()
            if dep in out:
                continue
            stage = self.pipeline.stage(dep)
            out[dep] = {j.name: self.job_result(stage, j) for j in stage.jobs}
            pending.extend(self.stage_deps[dep])
        return out

    def run_job(self, entry: PlanEntry) -> None:
        stage = self.pipeline.stage(entry.stage)
        if not self.decide_stage(stage.name):
            self.result.jobs[entry] = SKIPPED
            return
        job = job_of(stage, entry.job)
        deps = {d: self.job_result(stage, stage.job(d)) for d in job.needs}
        variables = dict(self.variables)
        variables.update(static_values(list(stage.variables)))
        variables.update(static_values(list(job.variables)))
        ctx = RuntimeContext(
            variables=variables,
            dependencies=deps,
            stage_dependencies=self.stage_dependencies(stage.name),
            canceled=self.canceled,
        )
        if not self.holds(job.condition, ctx):
            self.result.jobs[entry] = SKIPPED
            return
        outcome = self.outcome(entry)
        status = outcome.result
        if status == FAILED and job.continue_on_error:
            status = SUCCEEDED_WITH_ISSUES
        self.result.jobs[entry] = status
        self.outputs[entry] = dict(outcome.outputs)

    def run(self, plan: ExecutionPlan) -> SimulationResult:
        for batch in plan.batches:
            for entry in batch:
                self.run_job(entry)
        for stage in self.pipeline.stages:
            self.decide_stage(stage.name)
            self.result.stages[stage.name] = self.stage_result(stage.name)
        return self.result


def simulate(
    pipeline: Pipeline,
    plan: ExecutionPlan,
    outcomes: Optional[Mapping[str, Outcome]] = None,
    variables: Optional[Mapping[str, object]] = None,
    *,
    canceled: bool = False,
) -> SimulationResult:
    """
    Walk `plan` batch by batch and decide, for every job instance, whether
    it runs and how it ends.

    outcomes maps `stage.job` (or just the job instance name) to a result
    string or a DependencyResult carrying output variables. Jobs that run
    and are not listed succeed. A job whose condition (default
    `succeeded()`) is false is Skipped; so is every job of a skipped stage.
    """
    return _Simulation(pipeline, outcomes or {}, variables or {}, canceled).run(plan)
