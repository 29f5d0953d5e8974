from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

from princess_scheduler.core.model import StageStatus


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def escalate(self) -> "Severity":
        return _SEVERITY_ORDER[min(self.rank + 1, len(_SEVERITY_ORDER) - 1)]


_SEVERITY_ORDER: list[Severity] = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class ConflictType(str, Enum):
    DEPENDENCY_VIOLATION = "dependency_violation"
    CASCADE = "cascade"


class WarningType(str, Enum):
    RESOURCE_OVERLAP = "resource_overlap"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class ProposalState(str, Enum):
    CLEAN = "clean"
    HAS_WARNINGS = "has_warnings"
    REJECTED = "rejected"


class SuggestionAction(str, Enum):
    ADJUST_DATES = "adjust_dates"
    COMPRESS_TIMELINE = "compress_timeline"
    SHIFT_PHASE = "shift_phase"
    APPLY = "apply"
    KEEP_CURRENT = "keep_current"


@dataclass(frozen=True)
class AffectedStage:
    stage_id: str
    stage_name: str
    adjustment_days: int
    new_start: date
    new_end: date


@dataclass(frozen=True)
class Conflict:
    type: ConflictType
    severity: Severity
    message: str
    stage_id: Optional[str] = None
    # Signed shift of the proposed window that clears this conflict; None if none does.
    resolution_days: Optional[int] = None


@dataclass(frozen=True)
class ScheduleWarning:
    """Scheduling side effect that does not block the move (not a conflict)."""

    type: WarningType
    message: str
    stage_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class StageSnapshot:
    status: StageStatus
    start_date: date
    end_date: date


@dataclass(frozen=True)
class ImpactSummary:
    total_affected: int
    max_delay: int
    total_delay: int
    conflict_count: int
    critical_path_impact: bool
    severity: Optional[Severity]
    message: str


@dataclass(frozen=True)
class Suggestion:
    action: SuggestionAction
    text: str
    days: Optional[int] = None


@dataclass(frozen=True)
class ImpactReport:
    stage_id: str
    stage_name: str
    proposed_start: date
    proposed_end: date
    original_start: date
    original_end: date
    affected: list[AffectedStage]
    conflicts: list[Conflict]
    summary: ImpactSummary
    state: ProposalState
    graph_version: int
    baseline: dict[str, StageSnapshot] = field(default_factory=dict)
    warnings: list[ScheduleWarning] = field(default_factory=list)
    suggestion: Optional[Suggestion] = None

    @property
    def applicable(self) -> bool:
        return self.state is not ProposalState.REJECTED

    @property
    def max_delay(self) -> int:
        return self.summary.max_delay


def report_to_dict(report: ImpactReport) -> dict[str, Any]:
    """JSON-ready view of a report (dates as ISO strings, enums as values)."""

    suggestion: Optional[dict[str, Any]] = None
    if report.suggestion is not None:
        suggestion = {
            "action": report.suggestion.action.value,
            "text": report.suggestion.text,
            "days": report.suggestion.days,
        }

    return {
        "stage_id": report.stage_id,
        "stage_name": report.stage_name,
        "proposed_dates": {
            "start_date": report.proposed_start.isoformat(),
            "end_date": report.proposed_end.isoformat(),
        },
        "original_dates": {
            "start_date": report.original_start.isoformat(),
            "end_date": report.original_end.isoformat(),
        },
        "state": report.state.value,
        "affected": [
            {
                "stage_id": a.stage_id,
                "stage_name": a.stage_name,
                "adjustment_days": a.adjustment_days,
                "start_date": a.new_start.isoformat(),
                "end_date": a.new_end.isoformat(),
            }
            for a in report.affected
        ],
        "conflicts": [
            {
                "type": c.type.value,
                "severity": c.severity.value,
                "message": c.message,
                "stage_id": c.stage_id,
                "resolution_days": c.resolution_days,
            }
            for c in report.conflicts
        ],
        "warnings": [
            {"type": w.type.value, "message": w.message, "stage_ids": list(w.stage_ids)}
            for w in report.warnings
        ],
        "summary": {
            "total_affected": report.summary.total_affected,
            "max_delay": report.summary.max_delay,
            "total_delay": report.summary.total_delay,
            "conflict_count": report.summary.conflict_count,
            "critical_path_impact": report.summary.critical_path_impact,
            "severity": report.summary.severity.value if report.summary.severity else None,
            "message": report.summary.message,
        },
        "suggestion": suggestion,
    }
