from __future__ import annotations

import heapq
from collections import deque
from dataclasses import replace
from datetime import date
from typing import Iterable, Iterator, Optional

import structlog

from princess_scheduler.core.errors import CycleDetected, InvalidStageData
from princess_scheduler.core.model import Stage, StageStatus

log = structlog.get_logger(__name__)


class StageGraph:
    """In-memory DAG of stages.

    Edges are kept in both directions (dependencies and dependents) so that
    traversal either way is a dict lookup. ``version`` increases on every
    mutation; the schedule engine uses it to detect stale reports.
    """

    def __init__(
        self,
        stages_by_id: dict[str, Stage],
        dependencies: dict[str, set[str]],
        dependents: dict[str, set[str]],
    ) -> None:
        self._stages = stages_by_id
        self._dependencies = dependencies
        self._dependents = dependents
        self.version = 0

    def __contains__(self, stage_id: object) -> bool:
        return stage_id in self._stages

    def __len__(self) -> int:
        return len(self._stages)

    def __iter__(self) -> Iterator[Stage]:
        return iter(self.stages())

    def get(self, stage_id: str) -> Stage:
        try:
            return self._stages[stage_id]
        except KeyError:
            raise InvalidStageData(
                code="E_UNKNOWN_STAGE",
                message=f"unknown stage id: {stage_id}",
                path=stage_id,
            ) from None

    def stages(self) -> list[Stage]:
        return sorted(self._stages.values(), key=_order_key)

    def dependency_ids(self, stage_id: str) -> set[str]:
        self.get(stage_id)
        return set(self._dependencies[stage_id])

    def dependent_ids(self, stage_id: str) -> set[str]:
        self.get(stage_id)
        return set(self._dependents[stage_id])

    def dependencies_of(self, stage_id: str) -> list[Stage]:
        return sorted((self._stages[d] for d in self.dependency_ids(stage_id)), key=_order_key)

    def dependents_of(self, stage_id: str) -> list[Stage]:
        return sorted((self._stages[d] for d in self.dependent_ids(stage_id)), key=_order_key)

    def descendants_of(self, stage_id: str) -> set[str]:
        """All stages transitively waiting on ``stage_id`` (excluding itself)."""
        self.get(stage_id)
        q: deque[str] = deque(self._dependents[stage_id])
        seen: set[str] = set()
        while q:
            cur = q.popleft()
            if cur in seen:
                continue
            seen.add(cur)
            for nxt in self._dependents[cur]:
                if nxt not in seen:
                    q.append(nxt)
        return seen

    def is_descendant(self, a: str, b: str) -> bool:
        """True when ``a`` is reachable from ``b`` through dependent edges."""
        self.get(a)
        return a in self.descendants_of(b)

    def topological_order(self, ids: Optional[Iterable[str]] = None) -> list[str]:
        """Kahn's algorithm over ``ids`` (default: every stage).

        Only edges inside the selected subset count. Among ready stages the
        lowest number_index goes first.
        """
        selected = set(self._stages) if ids is None else set(ids)
        indegree: dict[str, int] = {
            sid: sum(1 for d in self._dependencies[sid] if d in selected) for sid in selected
        }
        ready: list[tuple[int, str]] = [
            (self._stages[sid].number_index, sid) for sid, n in indegree.items() if n == 0
        ]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, cur = heapq.heappop(ready)
            order.append(cur)
            for nxt in self._dependents[cur]:
                if nxt not in selected:
                    continue
                indegree[nxt] -= 1
                if indegree[nxt] == 0:
                    heapq.heappush(ready, (self._stages[nxt].number_index, nxt))
        return order

    def replace_dates(self, updates: dict[str, tuple[date, date]]) -> list[Stage]:
        changed: list[Stage] = []
        for sid, (start, end) in updates.items():
            updated = replace(self.get(sid), start_date=start, end_date=end)
            self._stages[sid] = updated
            changed.append(updated)
        self.version += 1
        return sorted(changed, key=_order_key)

    def set_status(self, stage_id: str, status: StageStatus) -> Stage:
        updated = replace(self.get(stage_id), status=status)
        self._stages[stage_id] = updated
        self.version += 1
        return updated


def build_graph(stages: Iterable[Stage]) -> StageGraph:
    """Build a StageGraph, rejecting duplicate ids, dangling references and cycles."""

    stages_by_id: dict[str, Stage] = {}
    for s in stages:
        if s.id in stages_by_id:
            raise InvalidStageData(
                code="E_DUPLICATE_ID",
                message=f"duplicate stage id: {s.id}",
                path=s.id,
            )
        stages_by_id[s.id] = s

    dependencies: dict[str, set[str]] = {sid: set() for sid in stages_by_id}
    dependents: dict[str, set[str]] = {sid: set() for sid in stages_by_id}
    for sid, s in stages_by_id.items():
        for dep in s.dependencies:
            if dep not in stages_by_id:
                raise InvalidStageData(
                    code="E_UNKNOWN_DEPENDENCY",
                    message=f"stage {sid} depends on unknown id: {dep}",
                    path=sid,
                )
            dependencies[sid].add(dep)
            dependents[dep].add(sid)

    cycle = find_cycle(stages_by_id, dependencies)
    if cycle:
        raise CycleDetected(
            code="E_CYCLE_DETECTED",
            message="dependency cycle detected: " + " -> ".join(cycle),
            path=cycle[0],
        )

    graph = StageGraph(stages_by_id, dependencies, dependents)
    log.debug("graph_built", stage_count=len(stages_by_id))
    return graph


def find_cycle(
    stages_by_id: dict[str, Stage], dependencies: dict[str, set[str]]
) -> Optional[list[str]]:
    """Depth-first search with an explicit stack (no recursion limit on chain length).

    Returns the first cycle found as ``[a, b, ..., a]`` or None.
    """

    WHITE, GRAY, BLACK = 0, 1, 2
    state: dict[str, int] = {sid: WHITE for sid in stages_by_id}

    def ordered(ids: Iterable[str]) -> Iterator[str]:
        return iter(sorted(ids, key=lambda x: _order_key(stages_by_id[x])))

    for root in ordered(stages_by_id):
        if state[root] != WHITE:
            continue
        state[root] = GRAY
        path = [root]
        frames = [ordered(dependencies.get(root, ()))]
        while frames:
            v = next(frames[-1], None)
            if v is None:
                frames.pop()
                state[path.pop()] = BLACK
            elif state[v] == GRAY:
                # v ... u -> v
                return path[path.index(v):] + [v]
            elif state[v] == WHITE:
                state[v] = GRAY
                path.append(v)
                frames.append(ordered(dependencies.get(v, ())))
    return None


def _order_key(stage: Stage) -> tuple[int, str]:
    return (stage.number_index, stage.id)
