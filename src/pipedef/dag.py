# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Mapping, Sequence, Set, Tuple

from .model import Pipeline


def build_stage_graph(deps: Mapping[str, Sequence[str]]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from stage dependencies.

    Requires:
      - deps: stage name -> names of stages that must finish BEFORE it
    """
    names = set(deps)
    adj: Dict[str, Set[str]] = {n: set() for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for stage, needs in deps.items():
        for need in needs:
            if need not in names:
                raise ValueError(
                    f"Stage '{stage}' depends on missing stage '{need}'. "
                    f"Known stages: {sorted(names)}"
                )
            # Edge need -> stage (need must run before stage)
            if stage not in adj[need]:
                adj[need].add(stage)
                indeg[stage] += 1

    return adj, indeg


def find_cycle_nodes(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[str]:
    """Names that never reach in-degree zero, i.e. sit on or behind a cycle."""
    indeg = dict(indeg)
    q = deque(n for n, d in indeg.items() if d == 0)
    while q:
        node = q.popleft()
        for child in adj.get(node, set()):
            indeg[child] -= 1
            if indeg[child] == 0:
                q.append(child)
    return sorted(n for n, d in indeg.items() if d > 0)


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int], order: Sequence[str] = ()) -> List[List[str]]:
    """
    Convert the DAG into topological "levels".
    Stages in one level have no dependency on each other and may run in parallel.
    Within a level names keep document order when `order` is given.
    """
    rank = {name: i for i, name in enumerate(order)}

    def _sorted(names):
        return sorted(names, key=lambda n: (rank.get(n, len(rank)), n))

    indeg = dict(indeg)  # copy (we mutate it)
    current = _sorted(n for n, d in indeg.items() if d == 0)

    levels: List[List[str]] = []
    processed = 0

    while current:
        levels.append(current)
        processed += len(current)
        nxt: List[str] = []
        for node in current:
            for child in adj.get(node, set()):
                indeg[child] -= 1
                if indeg[child] == 0:
                    nxt.append(child)
        current = _sorted(nxt)

    if processed != len(indeg):
        remaining = sorted(n for n, d in indeg.items() if d > 0)
        raise ValueError(f"Stage dependencies form a cycle. Stuck stages: {remaining}")

    return levels


def stage_levels(pipeline: Pipeline) -> List[List[str]]:
    """Topological stage levels of a pipeline, honouring implicit document order."""
    adj, indeg = build_stage_graph(pipeline.effective_dependencies())
    return topo_levels(adj, indeg, order=[s.name for s in pipeline.stages])
