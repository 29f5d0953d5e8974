from __future__ import annotations

import math
from typing import Optional

from princess_scheduler.core.policy.policy_config import DEFAULT_POLICY, SchedulePolicy
from princess_scheduler.core.schedule.contracts import (
    ConflictType,
    ImpactReport,
    Suggestion,
    SuggestionAction,
)


def suggest(report: ImpactReport, policy: SchedulePolicy = DEFAULT_POLICY) -> Optional[Suggestion]:
    """Turn an impact report into one actionable suggestion.

    Rules, first match wins:

    1. a dependency violation: shift the proposal by the smallest number of
       days that clears every violation (or keep the current dates when no
       single shift can);
    2. many stages affected: compress the timeline by the worst delay;
    3. a long delay: shift the phase by half of it, rounded up;
    4. nothing affected and no conflicts: None;
    5. otherwise: the change is fine to apply.
    """

    violations = [c for c in report.conflicts if c.type is ConflictType.DEPENDENCY_VIOLATION]
    if violations:
        return _resolve_violations(report, [c.resolution_days for c in violations])

    max_delay = max((abs(a.adjustment_days) for a in report.affected), default=0)

    if len(report.affected) > policy.compress_when_affected_over:
        return Suggestion(
            action=SuggestionAction.COMPRESS_TIMELINE,
            text=f"Compress timeline to minimize {max_delay}-day delay",
            days=max_delay,
        )

    if max_delay > policy.shift_phase_when_delay_over:
        half = math.ceil(max_delay / 2)
        return Suggestion(
            action=SuggestionAction.SHIFT_PHASE,
            text=f"Shift entire phase {half} days to balance",
            days=half,
        )

    if not report.conflicts and not report.affected:
        return None

    return Suggestion(action=SuggestionAction.APPLY, text="This change looks good to apply")


def _resolve_violations(report: ImpactReport, resolutions: list[Optional[int]]) -> Suggestion:
    if any(r is None for r in resolutions):
        return Suggestion(
            action=SuggestionAction.KEEP_CURRENT,
            text=f"Keep the current dates; {report.stage_name} is completed and locked",
        )

    later = max((r for r in resolutions if r is not None and r > 0), default=0)
    earlier = max((-r for r in resolutions if r is not None and r < 0), default=0)

    if later and earlier:
        return Suggestion(
            action=SuggestionAction.KEEP_CURRENT,
            text=(
                "Keep the current dates; no single shift both respects dependencies "
                "and leaves completed stages in place"
            ),
        )
    if later:
        return Suggestion(
            action=SuggestionAction.ADJUST_DATES,
            text=f"Move this {_days(later)} later to respect dependencies",
            days=later,
        )
    return Suggestion(
        action=SuggestionAction.ADJUST_DATES,
        text=f"Move this {_days(earlier)} earlier to keep completed stages in place",
        days=-earlier,
    )


def _days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"
