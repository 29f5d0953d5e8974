from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

import structlog

from princess_scheduler.core.critical_path.analyze import CriticalPath, compute_critical_path
from princess_scheduler.core.errors import InvalidMove, MoveRejected, StaleGraph
from princess_scheduler.core.graph.resources import project_deadline, resource_overlaps
from princess_scheduler.core.graph.stage_graph import StageGraph
from princess_scheduler.core.model import Stage, StageStatus
from princess_scheduler.core.policy.policy_config import DEFAULT_POLICY, SchedulePolicy
from princess_scheduler.core.schedule.contracts import (
    AffectedStage,
    Conflict,
    ConflictType,
    ImpactReport,
    ImpactSummary,
    ProposalState,
    ScheduleWarning,
    Severity,
    StageSnapshot,
    WarningType,
)

log = structlog.get_logger(__name__)


_CONFLICT_TYPE_ORDER: dict[ConflictType, int] = {
    ConflictType.DEPENDENCY_VIOLATION: 0,
    ConflictType.CASCADE: 1,
}


class ScheduleEngine:
    """Dependency-aware rescheduling over one StageGraph.

    ``propose_move`` never mutates the graph; ``commit`` is the only writer.
    Callers serialize commits for a graph.
    """

    def __init__(
        self,
        graph: StageGraph,
        *,
        policy: SchedulePolicy = DEFAULT_POLICY,
        deadline: Optional[date] = None,
    ) -> None:
        self.graph = graph
        self.policy = policy
        self.deadline = deadline
        self._critical: Optional[tuple[int, CriticalPath]] = None

    def critical_path(self) -> CriticalPath:
        if self._critical is None or self._critical[0] != self.graph.version:
            self._critical = (self.graph.version, compute_critical_path(self.graph))
        return self._critical[1]

    def propose_move(self, stage_id: str, new_start: date, new_end: date) -> ImpactReport:
        if stage_id not in self.graph:
            raise InvalidMove(
                code="E_UNKNOWN_STAGE",
                message=f"unknown stage id: {stage_id}",
                path=stage_id,
            )
        if new_end < new_start:
            raise InvalidMove(
                code="E_INVALID_DATES",
                message=f"end {new_end.isoformat()} is before start {new_start.isoformat()}",
                path=stage_id,
            )

        stage = self.graph.get(stage_id)
        baseline: dict[str, StageSnapshot] = {stage_id: _snapshot(stage)}
        conflicts: list[Conflict] = []
        affected: list[AffectedStage] = []
        warnings: list[ScheduleWarning] = []

        if stage.is_completed:
            conflicts.append(
                Conflict(
                    type=ConflictType.DEPENDENCY_VIOLATION,
                    severity=Severity.CRITICAL,
                    message=f"{stage.name} is completed; its dates are locked",
                    stage_id=stage_id,
                )
            )
        else:
            conflicts.extend(self._check_own_dependencies(stage, new_start))
            affected, frozen = self._cascade(stage_id, new_start, new_end)
            conflicts.extend(frozen)
            windows = {stage_id: (new_start, new_end)}
            for a in affected:
                baseline[a.stage_id] = _snapshot(self.graph.get(a.stage_id))
                windows[a.stage_id] = (a.new_start, a.new_end)
            warnings = self._warnings(windows)

        critical_ids = self.critical_path().members
        touches_critical = any(a.stage_id in critical_ids for a in affected)
        if affected:
            conflicts.append(self._cascade_conflict(affected, touches_critical))

        affected.sort(
            key=lambda a: (-abs(a.adjustment_days), self.graph.get(a.stage_id).number_index, a.stage_id)
        )
        conflicts.sort(key=self._conflict_key)

        if any(c.type is ConflictType.DEPENDENCY_VIOLATION for c in conflicts):
            state = ProposalState.REJECTED
        elif conflicts or warnings:
            state = ProposalState.HAS_WARNINGS
        else:
            state = ProposalState.CLEAN

        report = ImpactReport(
            stage_id=stage_id,
            stage_name=stage.name,
            proposed_start=new_start,
            proposed_end=new_end,
            original_start=stage.start_date,
            original_end=stage.end_date,
            affected=affected,
            conflicts=conflicts,
            summary=_summarize(affected, conflicts, warnings, touches_critical),
            state=state,
            graph_version=self.graph.version,
            baseline=baseline,
            warnings=warnings,
        )
        log.info(
            "move_proposed",
            stage_id=stage_id,
            state=state.value,
            affected=len(affected),
            conflicts=len(conflicts),
            warnings=len(warnings),
            max_delay=report.summary.max_delay,
        )
        return report

    def commit(self, report: ImpactReport) -> list[Stage]:
        """Apply a report's dates to the graph and return the touched stages."""

        if report.state is ProposalState.REJECTED:
            first = next((c.message for c in report.conflicts), "move was rejected")
            raise MoveRejected(code="E_MOVE_REJECTED", message=first, path=report.stage_id)

        if report.graph_version != self.graph.version:
            self._check_baseline(report)

        updates: dict[str, tuple[date, date]] = {
            report.stage_id: (report.proposed_start, report.proposed_end)
        }
        for a in report.affected:
            updates[a.stage_id] = (a.new_start, a.new_end)

        applied = self.graph.replace_dates(updates)
        log.info(
            "move_committed",
            stage_id=report.stage_id,
            applied=len(applied),
            graph_version=self.graph.version,
        )
        return applied

    def _check_own_dependencies(self, stage: Stage, new_start: date) -> list[Conflict]:
        deps = self.graph.dependencies_of(stage.id)
        if not deps:
            return []
        latest = max(deps, key=lambda d: (d.end_date, -d.number_index))
        if new_start >= latest.end_date:
            return []
        days = (latest.end_date - new_start).days
        return [
            Conflict(
                type=ConflictType.DEPENDENCY_VIOLATION,
                severity=Severity.CRITICAL,
                message=(
                    f"{stage.name} cannot start before {latest.name} ends on "
                    f"{latest.end_date.isoformat()}"
                ),
                stage_id=latest.id,
                resolution_days=days,
            )
        ]

    def _cascade(
        self, stage_id: str, new_start: date, new_end: date
    ) -> tuple[list[AffectedStage], list[Conflict]]:
        """Push dependents forward until every start clears its dependencies' ends.

        Descendants are visited in topological order (queue-based), so a stage
        is settled only after every dependency it has in the cascade was. A
        stage is looked at only when one of its dependencies changed window:
        the moved stage (if its dates differ) or a stage pushed earlier in the
        walk. Frozen completed stages do not carry the cascade further.
        """

        current = self.graph.get(stage_id)
        windows: dict[str, tuple[date, date]] = {}
        if (new_start, new_end) != (current.start_date, current.end_date):
            windows[stage_id] = (new_start, new_end)
        affected: list[AffectedStage] = []
        frozen: list[Conflict] = []

        for sid in self.graph.topological_order(self.graph.descendants_of(stage_id)):
            if self.graph.dependency_ids(sid).isdisjoint(windows):
                continue
            d = self.graph.get(sid)
            # Only dependencies with a changed window push; overlaps with
            # untouched ones are left to repair_ordering.
            required = d.start_date
            for dep_id in self.graph.dependency_ids(sid) & windows.keys():
                _, dep_end = windows[dep_id]
                if dep_end > required:
                    required = dep_end

            delta = (required - d.start_date).days
            if delta <= 0:
                continue

            if d.is_completed:
                # Stays frozen; its own dependents see the original dates.
                frozen.append(
                    Conflict(
                        type=ConflictType.DEPENDENCY_VIOLATION,
                        severity=Severity.CRITICAL,
                        message=f"would push completed stage {d.name} by {_days(delta)}",
                        stage_id=sid,
                        resolution_days=-delta,
                    )
                )
                continue

            shift = timedelta(days=delta)
            windows[sid] = (d.start_date + shift, d.end_date + shift)
            affected.append(
                AffectedStage(
                    stage_id=sid,
                    stage_name=d.name,
                    adjustment_days=delta,
                    new_start=d.start_date + shift,
                    new_end=d.end_date + shift,
                )
            )
        return affected, frozen

    def _warnings(self, windows: dict[str, tuple[date, date]]) -> list[ScheduleWarning]:
        """Double bookings and deadline overruns the proposed windows would introduce."""

        out: list[ScheduleWarning] = []

        before = set(resource_overlaps(self.graph))
        for o in resource_overlaps(self.graph, windows):
            if o in before or windows.keys().isdisjoint(o.stage_ids):
                continue
            first, second = self.graph.get(o.first), self.graph.get(o.second)
            out.append(
                ScheduleWarning(
                    type=WarningType.RESOURCE_OVERLAP,
                    message=f"{o.assigned_to} is double-booked on {first.name} and {second.name}",
                    stage_ids=o.stage_ids,
                )
            )

        deadline = project_deadline(
            self.graph, self.deadline, grace_days=self.policy.deadline_grace_days
        )
        if deadline is not None:
            for sid in self.graph.topological_order(windows):
                s = self.graph.get(sid)
                new_end = windows[sid][1]
                if new_end > deadline >= s.end_date:
                    out.append(
                        ScheduleWarning(
                            type=WarningType.DEADLINE_EXCEEDED,
                            message=f"{s.name} would end after the project deadline ({deadline.isoformat()})",
                            stage_ids=(sid,),
                        )
                    )
        return out

    def _cascade_conflict(self, affected: list[AffectedStage], touches_critical: bool) -> Conflict:
        max_delay = max(abs(a.adjustment_days) for a in affected)
        severity = cascade_severity(len(affected), max_delay, self.policy)
        if touches_critical and self.policy.escalate_on_critical_path:
            severity = severity.escalate()

        message = f"{_count(len(affected), 'stage')} will shift by up to {_days(max_delay)}"
        if touches_critical:
            message += " (critical path affected)"
        return Conflict(type=ConflictType.CASCADE, severity=severity, message=message)

    def _conflict_key(self, c: Conflict) -> tuple[int, int, int, str]:
        number_index = self.graph.get(c.stage_id).number_index if c.stage_id in self.graph else 0
        return (-c.severity.rank, _CONFLICT_TYPE_ORDER[c.type], number_index, c.message)

    def _check_baseline(self, report: ImpactReport) -> None:
        for sid, snap in report.baseline.items():
            if sid not in self.graph:
                raise StaleGraph(
                    code="E_STALE_GRAPH",
                    message=f"stage {sid} no longer exists; re-propose the move",
                    path=sid,
                )
            current = self.graph.get(sid)
            if current.is_completed and snap.status is not StageStatus.COMPLETED:
                raise StaleGraph(
                    code="E_STALE_GRAPH",
                    message=f"{current.name} was completed after the move was proposed; re-propose the move",
                    path=sid,
                )
            if (current.start_date, current.end_date) != (snap.start_date, snap.end_date):
                raise StaleGraph(
                    code="E_STALE_GRAPH",
                    message=f"{current.name} was rescheduled after the move was proposed; re-propose the move",
                    path=sid,
                )


def cascade_severity(affected_count: int, max_delay: int, policy: SchedulePolicy) -> Severity:
    if affected_count <= policy.low_max_affected and max_delay <= policy.low_max_delay_days:
        return Severity.LOW
    if affected_count <= policy.medium_max_affected and max_delay <= policy.medium_max_delay_days:
        return Severity.MEDIUM
    if affected_count <= policy.high_max_affected and max_delay <= policy.high_max_delay_days:
        return Severity.HIGH
    return Severity.CRITICAL


def _summarize(
    affected: list[AffectedStage],
    conflicts: list[Conflict],
    warnings: list[ScheduleWarning],
    touches_critical: bool,
) -> ImpactSummary:
    delays = [abs(a.adjustment_days) for a in affected]
    max_delay = max(delays, default=0)
    severity = max((c.severity for c in conflicts), key=lambda s: s.rank, default=None)

    critical = [c for c in conflicts if c.severity is Severity.CRITICAL and c.type is not ConflictType.CASCADE]
    if critical:
        message = f"Can't make this change: {critical[0].message}"
    elif affected:
        message = (
            f"Moving this will delay the project by {_days(max_delay)}; "
            f"{_count(len(affected), 'other stage')} will be affected"
        )
    elif conflicts:
        message = f"This will cause {_count(len(conflicts), 'conflict')}"
    elif warnings:
        message = f"Check before moving: {warnings[0].message}"
    else:
        message = "Good to go! This change won't affect other stages"

    return ImpactSummary(
        total_affected=len(affected),
        max_delay=max_delay,
        total_delay=sum(delays),
        conflict_count=len(conflicts),
        critical_path_impact=touches_critical,
        severity=severity,
        message=message,
    )


def _snapshot(stage: Stage) -> StageSnapshot:
    return StageSnapshot(status=stage.status, start_date=stage.start_date, end_date=stage.end_date)


def _days(n: int) -> str:
    return _count(n, "day")


def _count(n: int, noun: str) -> str:
    return f"{n} {noun}" if n == 1 else f"{n} {noun}s"
