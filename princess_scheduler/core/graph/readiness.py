from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from princess_scheduler.core.graph.stage_graph import StageGraph
from princess_scheduler.core.model import Stage, StageStatus
from princess_scheduler.core.schedule.contracts import Severity


class Readiness(str, Enum):
    READY = "ready"
    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Bottleneck:
    stage: Stage
    blocked_ids: list[str]
    severity: Severity

    @property
    def blocked_count(self) -> int:
        return len(self.blocked_ids)


def incomplete_dependencies(graph: StageGraph, stage_id: str) -> list[Stage]:
    return [d for d in graph.dependencies_of(stage_id) if not d.is_completed]


def readiness(graph: StageGraph, stage_id: str) -> Readiness:
    """Stages that have not started are READY once every dependency is completed."""
    stage = graph.get(stage_id)
    if stage.status is StageStatus.COMPLETED:
        return Readiness.COMPLETED
    if stage.status is StageStatus.IN_PROGRESS:
        return Readiness.IN_PROGRESS
    if stage.status is StageStatus.BLOCKED:
        return Readiness.BLOCKED
    return Readiness.WAITING if incomplete_dependencies(graph, stage_id) else Readiness.READY


def can_reschedule(graph: StageGraph, stage_id: str) -> bool:
    """Completed stages and stages behind a blocked dependency stay put on the timeline."""
    if graph.get(stage_id).is_completed:
        return False
    return not any(d.status is StageStatus.BLOCKED for d in graph.dependencies_of(stage_id))


def bottlenecks(graph: StageGraph, min_blocked: int = 3) -> list[Bottleneck]:
    """Unfinished stages holding back at least ``min_blocked`` not-yet-started dependents."""
    out: list[Bottleneck] = []
    for stage in graph.stages():
        if stage.is_completed:
            continue
        waiting = [d.id for d in graph.dependents_of(stage.id) if d.status is StageStatus.NOT_READY]
        if len(waiting) < min_blocked:
            continue
        if len(waiting) >= 10:
            severity = Severity.CRITICAL
        elif len(waiting) >= 5:
            severity = Severity.HIGH
        else:
            severity = Severity.MEDIUM
        out.append(Bottleneck(stage=stage, blocked_ids=waiting, severity=severity))
    return sorted(out, key=lambda b: (-b.blocked_count, b.stage.number_index))


def workflow_stats(graph: StageGraph, min_blocked: int = 3) -> dict[str, int]:
    counts = {r.value: 0 for r in Readiness}
    for stage in graph.stages():
        counts[readiness(graph, stage.id).value] += 1
    found = bottlenecks(graph, min_blocked)
    counts["total"] = len(graph)
    counts["bottlenecks"] = len(found)
    counts["critical_bottlenecks"] = sum(1 for b in found if b.severity is Severity.CRITICAL)
    return counts
