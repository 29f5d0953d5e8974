from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from princess_scheduler.core.graph.stage_graph import StageGraph
from princess_scheduler.core.model import Stage

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CriticalPath:
    stage_ids: list[str]
    total_days: int
    members: frozenset[str] = field(default_factory=frozenset)
    # Total float per stage: how many days it can slip before the longest chain grows.
    slack_days: dict[str, int] = field(default_factory=dict)

    def __contains__(self, stage_id: object) -> bool:
        return stage_id in self.members

    def stages(self, graph: StageGraph) -> list[Stage]:
        return [graph.get(sid) for sid in self.stage_ids]


def compute_critical_path(graph: StageGraph) -> CriticalPath:
    """Longest dependency chain by cumulative duration.

    Dynamic programming over a topological order (longest path in a DAG,
    O(V+E)). Ties go to the lowest number_index, both for the chain's last
    stage and for each predecessor picked while walking back.
    """

    order = graph.topological_order()
    if not order:
        return CriticalPath(stage_ids=[], total_days=0)

    # head[v]: heaviest chain ending at v; tail[v]: heaviest chain starting at v.
    head: dict[str, int] = {}
    best_pred: dict[str, str] = {}
    for sid in order:
        pred: str | None = None
        for dep in graph.dependencies_of(sid):
            if pred is None or head[dep.id] > head[pred]:
                pred = dep.id
        if pred is not None:
            best_pred[sid] = pred
        head[sid] = (head[pred] if pred is not None else 0) + graph.get(sid).duration_days

    tail: dict[str, int] = {}
    for sid in reversed(order):
        nxt = [tail[d.id] for d in graph.dependents_of(sid)]
        tail[sid] = graph.get(sid).duration_days + (max(nxt) if nxt else 0)

    end = min(order, key=lambda sid: (-head[sid], graph.get(sid).number_index, sid))
    total = head[end]

    path = [end]
    while path[-1] in best_pred:
        path.append(best_pred[path[-1]])
    path.reverse()

    slack = {
        sid: total - (head[sid] + tail[sid] - graph.get(sid).duration_days) for sid in order
    }

    log.debug("critical_path_computed", length=len(path), total_days=total)
    return CriticalPath(
        stage_ids=path,
        total_days=total,
        members=frozenset(path),
        slack_days=slack,
    )


def critical_stage_ids(graph: StageGraph) -> frozenset[str]:
    return compute_critical_path(graph).members
