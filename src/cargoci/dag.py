# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, Iterable, List, Set, Tuple

from .model import Job


def build_dag(jobs: Iterable[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Build a DAG from Job objects.

    Requires:
      - job.id: str (unique)
      - job.needs: iterable[str] (ids of jobs that must finish BEFORE this job)
    """
    jobs = list(jobs)
    ids = [j.id for j in jobs]
    if len(set(ids)) != len(ids):
        dupes = sorted({n for n in ids if ids.count(n) > 1})
        raise ValueError(f"Duplicate job ids found: {dupes}")

    id_set = set(ids)
    adj: Dict[str, Set[str]] = {n: set() for n in id_set}
    indeg: Dict[str, int] = {n: 0 for n in id_set}

    for job in jobs:
        for dep in job.needs:
            if dep not in id_set:
                raise ValueError(
                    f"Job '{job.id}' needs missing job '{dep}'. "
                    f"Known jobs: {sorted(id_set)}"
                )
            # Edge dep -> job.id (dep must run before job)
            if job.id not in adj[dep]:
                adj[dep].add(job.id)
                indeg[job.id] += 1

    return adj, indeg


def topo_levels(adj: Dict[str, Set[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Each stage can run in parallel.
    """
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(sorted([n for n, d in indeg.items() if d == 0]))

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in sorted(adj.get(node, set())):
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        levels.append(level)

    if processed != len(indeg):
        remaining = sorted([n for n, d in indeg.items() if d > 0])
        raise ValueError(f"DAG has a cycle. Stuck jobs: {remaining}")

    return levels


def stages(jobs: Iterable[Job]) -> List[List[str]]:
    adj, indeg = build_dag(jobs)
    return topo_levels(adj, indeg)
