"""Whole-project date passes: repairing ordering violations and laying out a baseline."""
from __future__ import annotations

from datetime import date, timedelta

from princess_scheduler.core.graph.stage_graph import StageGraph
from princess_scheduler.core.model import StageCategory
from princess_scheduler.core.schedule.contracts import AffectedStage


# Where dependency-free stages of each phase start, relative to project start.
PHASE_OFFSET_DAYS: dict[StageCategory, int] = {
    StageCategory.ONBOARDING: 0,
    StageCategory.RESEARCH: 7,
    StageCategory.STRATEGY: 21,
    StageCategory.BRAND_BUILDING: 45,
    StageCategory.BRAND_COLLATERALS: 90,
    StageCategory.BRAND_ACTIVATION: 135,
    StageCategory.EMPLOYER_BRANDING: 180,
    StageCategory.PROJECT_CLOSURE: 210,
}


def repair_ordering(graph: StageGraph) -> list[AffectedStage]:
    """Push every unfinished stage that starts before a dependency ends.

    Completed stages keep their dates. Durations are preserved. Returns the
    shifts needed (the graph itself is not modified).
    """

    windows: dict[str, tuple[date, date]] = {}
    out: list[AffectedStage] = []
    for sid in graph.topological_order():
        s = graph.get(sid)
        if s.is_completed:
            continue
        required = s.start_date
        for dep in graph.dependencies_of(sid):
            _, dep_end = windows.get(dep.id, (dep.start_date, dep.end_date))
            required = max(required, dep_end)
        delta = (required - s.start_date).days
        if delta <= 0:
            continue
        shift = timedelta(days=delta)
        windows[sid] = (s.start_date + shift, s.end_date + shift)
        out.append(AffectedStage(sid, s.name, delta, s.start_date + shift, s.end_date + shift))
    return out


def baseline_schedule(
    graph: StageGraph, project_start: date, *, gap_days: int = 1
) -> list[AffectedStage]:
    """Lay every unfinished stage out from ``project_start``.

    Stages without dependencies start at their phase offset; the rest start
    ``gap_days`` after their latest dependency ends. Each stage keeps its
    current duration. Returns only the stages whose dates change.
    """

    windows: dict[str, tuple[date, date]] = {}
    out: list[AffectedStage] = []
    for sid in graph.topological_order():
        s = graph.get(sid)
        if s.is_completed:
            windows[sid] = (s.start_date, s.end_date)
            continue

        deps = graph.dependencies_of(sid)
        if not deps:
            start = project_start + timedelta(days=PHASE_OFFSET_DAYS[s.category])
        else:
            latest = max(windows[d.id][1] for d in deps)
            start = max(project_start, latest + timedelta(days=gap_days))
        end = start + timedelta(days=s.duration_days)
        windows[sid] = (start, end)

        delta = (start - s.start_date).days
        if delta != 0 or end != s.end_date:
            out.append(AffectedStage(sid, s.name, delta, start, end))
    return out


def apply_shifts(graph: StageGraph, shifts: list[AffectedStage]) -> None:
    if shifts:
        graph.replace_dates({a.stage_id: (a.new_start, a.new_end) for a in shifts})
