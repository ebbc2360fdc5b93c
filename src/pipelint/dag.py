# dag.py
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .errors import CycleError, UnknownDependencyError
from .model import ExecutionPlan, Job, Pipeline, PlanEntry, Stage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GraphNode:
    """
    One schedulable thing: a stage, or a job instance.

    depends_on is None when the document did not say (the scope's default
    applies), otherwise the names this node waits for.
    """
    name: str
    depends_on: Optional[Tuple[str, ...]] = None


@dataclass
class Graph:
    order: List[str]                                          # document order
    adj: Dict[str, Set[str]] = field(default_factory=dict)    # dep -> dependents
    indeg: Dict[str, int] = field(default_factory=dict)
    deps: Dict[str, List[str]] = field(default_factory=dict)  # node -> what it waits for

    def add_edge(self, before: str, after: str) -> None:
        """`after` waits for `before`."""
        if after not in self.adj[before]:
            self.adj[before].add(after)
            self.indeg[after] += 1
            self.deps[after].append(before)


def build_dag(
    nodes: Sequence[GraphNode],
    *,
    implicit_sequential: bool,
    scope: str = "pipeline",
) -> Graph:
    """
    Build a DAG from nodes in document order.

    Edge A -> B means B waits for A. A node without `depends_on` waits for
    its previous sibling when implicit_sequential is set (stages), and for
    nothing otherwise (jobs). That default is an ordinary edge here, so
    the sort below never needs to know about it.
    """
    names = [n.name for n in nodes]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate names in {scope}: {dupes}")

    graph = Graph(order=names)
    for n in names:
        graph.adj[n] = set()
        graph.indeg[n] = 0
        graph.deps[n] = []

    name_set = set(names)
    for i, node in enumerate(nodes):
        if node.depends_on is None:
            if implicit_sequential and i > 0:
                graph.add_edge(names[i - 1], node.name)
            continue
        for dep in node.depends_on:
            if dep not in name_set:
                raise UnknownDependencyError(node.name, dep, sorted(name_set), scope)
            graph.add_edge(dep, node.name)

    return graph


def find_cycle(graph: Graph, among: Iterable[str]) -> List[str]:
    """
    A shortest cycle inside `among`, listed in depends-on order and
    starting from the node that comes first in the document.
    """
    remaining = set(among)
    position = {n: i for i, n in enumerate(graph.order)}
    best: Optional[List[str]] = None

    for start in sorted(remaining, key=position.__getitem__):
        # BFS over "waits for" edges until we get back to start
        parent: Dict[str, Optional[str]] = {start: None}
        queue = deque([start])
        found: Optional[str] = None
        while queue and found is None:
            node = queue.popleft()
            for dep in graph.deps[node]:
                if dep not in remaining:
                    continue
                if dep == start:
                    found = node
                    break
                if dep not in parent:
                    parent[dep] = node
                    queue.append(dep)
        if found is None:
            continue
        path = []
        cur: Optional[str] = found
        while cur is not None:
            path.append(cur)
            cur = parent[cur]
        cycle = list(reversed(path))
        if best is None or len(cycle) < len(best):
            best = cycle
            if len(best) == 1:
                break

    return best or sorted(remaining, key=position.__getitem__)


def topo_batches(graph: Graph, scope: str = "pipeline") -> List[List[str]]:
    """
    Convert the DAG into batches (Kahn's algorithm, one round per batch).

    Everything in a batch can run in parallel. Within a batch, nodes keep
    document order.
    """
    indeg = dict(graph.indeg)  # copy (we mutate it)
    position = {n: i for i, n in enumerate(graph.order)}
    ready = [n for n in graph.order if indeg[n] == 0]

    batches: List[List[str]] = []
    processed = 0

    while ready:
        batches.append(ready)
        processed += len(ready)
        nxt: List[str] = []
        for node in ready:
            for child in graph.adj[node]:
                indeg[child] -= 1
                if indeg[child] == 0:
                    nxt.append(child)
        ready = sorted(nxt, key=position.__getitem__)

    if processed != len(graph.order):
        stuck = [n for n in graph.order if indeg[n] > 0]
        raise CycleError(find_cycle(graph, stuck), scope)

    return batches


# ----------------------------------------------------------------------
# Stages and jobs
# ----------------------------------------------------------------------

def stage_nodes(stages: Sequence[Stage]) -> List[GraphNode]:
    return [GraphNode(s.name, s.depends_on) for s in stages]


def job_nodes(stage: Stage) -> List[GraphNode]:
    """
    One node per job instance. A matrix (or `parallel:`) job becomes one
    node per cell; every cell keeps the job's dependencies, and whoever
    depends on the job waits for all of its cells.
    """
    instances: Dict[str, Tuple[str, ...]] = {j.name: j.instance_names() for j in stage.jobs}
    nodes: List[GraphNode] = []
    for job in stage.jobs:
        deps: Optional[Tuple[str, ...]] = None
        if job.depends_on is not None:
            expanded: List[str] = []
            for dep in job.depends_on:
                if dep not in instances:
                    raise UnknownDependencyError(job.name, dep, sorted(instances), f"stage '{stage.name}'")
                expanded.extend(instances[dep])
            deps = tuple(expanded)
        for inst in instances[job.name]:
            nodes.append(GraphNode(inst, deps))
    return nodes


def resolve_stages(stages: Sequence[Stage]) -> List[List[str]]:
    graph = build_dag(stage_nodes(stages), implicit_sequential=True, scope="stages")
    return topo_batches(graph, scope="stages")


def resolve_jobs(stage: Stage) -> List[List[str]]:
    scope = f"stage '{stage.name}'"
    graph = build_dag(job_nodes(stage), implicit_sequential=False, scope=scope)
    return topo_batches(graph, scope=scope)


def resolve(pipeline: Pipeline) -> ExecutionPlan:
    """
    Compute the execution plan for a whole pipeline.

    Stages and jobs are resolved in their own scopes first (so a cycle is
    reported where it lives). Then both levels are merged into one job
    graph: every job of a stage waits for every job of the stages that
    stage depends on. Batching that graph gives maximal parallelism
    across stage boundaries as well.
    """
    stages = list(pipeline.stages)
    stage_graph = build_dag(stage_nodes(stages), implicit_sequential=True, scope="stages")
    stage_batches = topo_batches(stage_graph, scope="stages")

    per_stage: Dict[str, List[GraphNode]] = {}
    for stage in stages:
        nodes = job_nodes(stage)
        scope = f"stage '{stage.name}'"
        topo_batches(build_dag(nodes, implicit_sequential=False, scope=scope), scope=scope)
        per_stage[stage.name] = nodes

    # jobs a stage has to wait for; an empty stage passes its own
    # predecessors through
    upstream: Dict[str, List[Tuple[str, str]]] = {}
    for batch in stage_batches:
        for name in batch:
            waits: List[Tuple[str, str]] = []
            for dep in stage_graph.deps[name]:
                if per_stage[dep]:
                    waits.extend((dep, n.name) for n in per_stage[dep])
                else:
                    waits.extend(upstream[dep])
            upstream[name] = list(dict.fromkeys(waits))

    keys: List[Tuple[str, str]] = [(s.name, n.name) for s in stages for n in per_stage[s.name]]
    ids = {key: f"{key[0]}\x00{key[1]}" for key in keys}
    graph = Graph(order=[ids[k] for k in keys])
    for k in keys:
        graph.adj[ids[k]] = set()
        graph.indeg[ids[k]] = 0
        graph.deps[ids[k]] = []

    for stage in stages:
        for node in per_stage[stage.name]:
            me = ids[(stage.name, node.name)]
            for dep in node.depends_on or ():
                graph.add_edge(ids[(stage.name, dep)], me)
            for before in upstream[stage.name]:
                graph.add_edge(ids[before], me)

    batches = topo_batches(graph, scope="pipeline")
    plan = ExecutionPlan(
        batches=tuple(tuple(PlanEntry(*i.split("\x00", 1)) for i in batch) for batch in batches),
        stage_batches=tuple(tuple(b) for b in stage_batches),
    )
    logger.debug(
        "resolved %d stage(s), %d job instance(s) into %d batch(es)",
        len(stages),
        len(keys),
        len(plan.batches),
    )
    return plan


def job_of(stage: Stage, instance: str) -> Job:
    """Map a job instance name (e.g. `Test_linux`) back to its job."""
    for job in stage.jobs:
        if instance in job.instance_names():
            return job
    raise KeyError(instance)
