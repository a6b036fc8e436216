# dag.py
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Set

from .errors import ConfigError
from .model import Job


@dataclass(frozen=True)
class JobGraph:
    """
    Jobs stored in a dense list; edges are indices into that list.

      deps[i]       -> jobs that must pass BEFORE job i
      dependents[i] -> jobs that wait on job i
    """
    jobs: tuple[Job, ...]
    index: Dict[str, int]
    deps: tuple[tuple[int, ...], ...]
    dependents: tuple[tuple[int, ...], ...]

    @classmethod
    def build(cls, jobs: Sequence[Job]) -> "JobGraph":
        """
        Build and validate the graph.

        Raises ConfigError on duplicate names, unknown dependencies or cycles.
        """
        names = [j.name for j in jobs]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ConfigError(f"duplicate job names: {dupes}")

        index = {name: i for i, name in enumerate(names)}
        deps: List[List[int]] = [[] for _ in jobs]
        dependents: List[List[int]] = [[] for _ in jobs]

        for i, job in enumerate(jobs):
            for need in job.needs:
                if need not in index:
                    raise ConfigError(
                        f"job '{job.name}' needs missing job '{need}'",
                        {"known": sorted(index)},
                    )
                d = index[need]
                if d not in deps[i]:
                    deps[i].append(d)
                    dependents[d].append(i)

        graph = cls(
            jobs=tuple(jobs),
            index=index,
            deps=tuple(tuple(d) for d in deps),
            dependents=tuple(tuple(d) for d in dependents),
        )
        graph.topological_order()  # raises on cycle
        return graph

    def __len__(self) -> int:
        return len(self.jobs)

    def topological_order(self) -> List[int]:
        """
        Kahn's algorithm; ties broken by declaration order, so the order is
        deterministic for a given job list.
        """
        indeg = [len(d) for d in self.deps]
        q = deque(i for i, d in enumerate(indeg) if d == 0)
        order: List[int] = []

        while q:
            node = q.popleft()
            order.append(node)
            for child in self.dependents[node]:
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        if len(order) != len(self.jobs):
            stuck = sorted(self.jobs[i].name for i, d in enumerate(indeg) if d > 0)
            raise ConfigError("job graph has a cycle", {"stuck": stuck})
        return order

    def names(self, indices: Iterable[int]) -> List[str]:
        return [self.jobs[i].name for i in indices]

    def ancestors(self, roots: Iterable[int]) -> Set[int]:
        """`roots` plus everything they transitively depend on."""
        seen: Set[int] = set()
        stack = list(roots)
        while stack:
            i = stack.pop()
            if i in seen:
                continue
            seen.add(i)
            stack.extend(self.deps[i])
        return seen

    def descendants(self, root: int) -> Set[int]:
        """Everything that transitively depends on `root` (excluding it)."""
        seen: Set[int] = set()
        stack = list(self.dependents[root])
        while stack:
            i = stack.pop()
            if i in seen:
                continue
            seen.add(i)
            stack.extend(self.dependents[i])
        return seen
