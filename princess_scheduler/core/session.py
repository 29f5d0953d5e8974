from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta
from typing import Iterable, Optional

import structlog

from princess_scheduler.core.critical_path.analyze import CriticalPath
from princess_scheduler.core.graph.stage_graph import StageGraph, build_graph
from princess_scheduler.core.model import Stage, StageDocument
from princess_scheduler.core.persist import StageUpdate, updates_for
from princess_scheduler.core.policy.policy_config import DEFAULT_POLICY, SchedulePolicy
from princess_scheduler.core.schedule.contracts import ImpactReport, SuggestionAction
from princess_scheduler.core.schedule.engine import ScheduleEngine
from princess_scheduler.core.suggest.suggest import suggest

log = structlog.get_logger(__name__)


class SchedulingSession:
    """One project's stages, loaded once and rescheduled interactively.

    preview -> (confirm | apply_suggestion -> preview ...) mirrors the
    timeline's drag, review, "Move Anyway" / "Apply Suggestion" flow.
    """

    def __init__(
        self,
        stages: Iterable[Stage],
        *,
        policy: SchedulePolicy = DEFAULT_POLICY,
        deadline: Optional[date] = None,
    ) -> None:
        self.graph: StageGraph = build_graph(stages)
        self.policy = policy
        self.deadline = deadline
        self.engine = ScheduleEngine(self.graph, policy=policy, deadline=deadline)

    @classmethod
    def from_document(
        cls, document: StageDocument, *, policy: SchedulePolicy = DEFAULT_POLICY
    ) -> "SchedulingSession":
        return cls(document.stages, policy=policy, deadline=document.deadline)

    @property
    def critical_path(self) -> CriticalPath:
        return self.engine.critical_path()

    def preview(self, stage_id: str, new_start: date, new_end: date) -> ImpactReport:
        report = self.engine.propose_move(stage_id, new_start, new_end)
        return replace(report, suggestion=suggest(report, self.policy))

    def confirm(self, report: ImpactReport) -> list[StageUpdate]:
        return updates_for(self.engine.commit(report))

    def apply_suggestion(self, report: ImpactReport) -> Optional[ImpactReport]:
        """Re-propose the move with the report's suggestion applied.

        Returns the new report, the same report for ``apply``, or None when
        there is nothing to re-propose.
        """

        s = report.suggestion
        if s is None or s.action is SuggestionAction.KEEP_CURRENT:
            return None
        if s.action is SuggestionAction.APPLY:
            return report

        start, end = report.proposed_start, report.proposed_end
        days = s.days or 0
        if s.action is SuggestionAction.ADJUST_DATES:
            start, end = start + timedelta(days=days), end + timedelta(days=days)
        elif s.action is SuggestionAction.SHIFT_PHASE:
            start, end = start - timedelta(days=days), end - timedelta(days=days)
        elif s.action is SuggestionAction.COMPRESS_TIMELINE:
            end = max(start, end - timedelta(days=days))

        log.info("suggestion_applied", stage_id=report.stage_id, action=s.action.value, days=s.days)
        return self.preview(report.stage_id, start, end)
