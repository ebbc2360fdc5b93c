# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from .expressions import Expression

# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class ScriptStep:
    """A `script:` / `bash:` / `pwsh:` / `powershell:` step."""
    script: str
    shell: str = "script"
    display_name: Optional[str] = None
    name: Optional[str] = None
    condition: Optional[Expression] = None
    inputs: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TaskStep:
    """A task reference such as `task: DotNetCoreCLI@2`."""
    task: str
    display_name: Optional[str] = None
    name: Optional[str] = None
    condition: Optional[Expression] = None
    inputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def task_name(self) -> str:
        return self.task.split("@", 1)[0]

    @property
    def major_version(self) -> Optional[str]:
        return self.task.split("@", 1)[1] if "@" in self.task else None


@dataclass(frozen=True)
class TemplateStep:
    """Unexpanded `template:` step. Only seen when expansion was skipped."""
    template: str
    display_name: Optional[str] = None
    name: Optional[str] = None
    condition: Optional[Expression] = None
    inputs: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DownloadStep:
    download: str
    display_name: Optional[str] = None
    name: Optional[str] = None
    condition: Optional[Expression] = None
    inputs: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutStep:
    checkout: str
    display_name: Optional[str] = None
    name: Optional[str] = None
    condition: Optional[Expression] = None
    inputs: Dict[str, Any] = field(default_factory=dict)


Step = Union[ScriptStep, TaskStep, TemplateStep, DownloadStep, CheckoutStep]


# ---------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------

LITERAL = "literal"
GROUP = "group"
EXPRESSION = "expression"
RUNTIME = "runtime"


@dataclass(frozen=True)
class Variable:
    """
    A pipeline/stage/job variable.

    source:
      literal     plain value known at compile time
      group       `- group: name` (values live in the library, not here)
      expression  `$[ ... ]`, evaluated when the scope starts
      runtime     written by a step via ##vso[task.setvariable]
    """
    name: str
    scope: str
    source: str = LITERAL
    value: Any = None
    readonly: bool = False

    @property
    def static(self) -> bool:
        return self.source == LITERAL


# ---------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class NoStrategy:
    pass


@dataclass(frozen=True)
class MatrixStrategy:
    """One job instance per cell; each cell is a set of variables."""
    cells: Tuple[Tuple[str, Dict[str, Any]], ...]
    max_parallel: Optional[int] = None

    @property
    def cell_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.cells)


@dataclass(frozen=True)
class ParallelStrategy:
    """`parallel: N` slicing: N identical instances of the job."""
    count: int


@dataclass(frozen=True)
class DeploymentStrategy:
    kind: str  # runOnce | rolling | canary
    hooks: Tuple[str, ...] = ()
    increments: Tuple[int, ...] = ()
    max_parallel: Optional[str] = None


Strategy = Union[NoStrategy, MatrixStrategy, ParallelStrategy, DeploymentStrategy]


# ---------------------------------------------------------------------
# Jobs / stages / pipeline
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Job:
    """
    A job: steps + dependencies + condition.

    depends_on is None when the document did not say; an explicit
    `dependsOn: []` is an empty tuple.
    """
    name: str
    steps: Tuple[Step, ...] = ()
    kind: str = "job"  # job | deployment
    display_name: Optional[str] = None
    depends_on: Optional[Tuple[str, ...]] = None
    condition: Optional[Expression] = None
    condition_text: Optional[str] = None
    strategy: Strategy = NoStrategy()
    variables: Tuple[Variable, ...] = ()
    environment: Optional[str] = None
    continue_on_error: bool = False
    pool: Any = None

    @property
    def needs(self) -> Tuple[str, ...]:
        return self.depends_on or ()

    def instance_names(self) -> Tuple[str, ...]:
        """Names of the virtual jobs this job becomes once its strategy fans out."""
        if isinstance(self.strategy, MatrixStrategy) and self.strategy.cells:
            return tuple(f"{self.name}_{cell}" for cell in self.strategy.cell_names)
        if isinstance(self.strategy, ParallelStrategy) and self.strategy.count > 1:
            return tuple(f"{self.name}_{i}" for i in range(1, self.strategy.count + 1))
        return (self.name,)


@dataclass(frozen=True)
class Stage:
    name: str
    jobs: Tuple[Job, ...] = ()
    display_name: Optional[str] = None
    depends_on: Optional[Tuple[str, ...]] = None
    condition: Optional[Expression] = None
    condition_text: Optional[str] = None
    variables: Tuple[Variable, ...] = ()
    pool: Any = None

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


@dataclass(frozen=True)
class Pipeline:
    """The validated, template-free pipeline."""
    stages: Tuple[Stage, ...] = ()
    name: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    variables: Tuple[Variable, ...] = ()
    implicit_stage: bool = False

    def stage(self, name: str) -> Stage:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(name)


# ---------------------------------------------------------------------
# Execution plan
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class PlanEntry:
    stage: str
    job: str

    def __str__(self) -> str:
        return f"{self.stage}.{self.job}"


@dataclass(frozen=True)
class ExecutionPlan:
    """
    Ordered batches of (stage, job) pairs.

    Everything in one batch may run at the same time; a batch only starts
    once every earlier batch has finished.
    """
    batches: Tuple[Tuple[PlanEntry, ...], ...] = ()
    stage_batches: Tuple[Tuple[str, ...], ...] = ()

    def __len__(self) -> int:
        return len(self.batches)

    def names(self) -> list[list[str]]:
        return [[e.job for e in batch] for batch in self.batches]

    def entries(self) -> list[PlanEntry]:
        return [e for batch in self.batches for e in batch]
