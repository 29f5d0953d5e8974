from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from itertools import combinations
from typing import Iterable, Optional

from princess_scheduler.core.graph.stage_graph import StageGraph


@dataclass(frozen=True)
class Booking:
    stage_id: str
    assigned_to: str
    start_date: date
    end_date: date


@dataclass(frozen=True)
class ResourceOverlap:
    assigned_to: str
    first: str
    second: str

    @property
    def stage_ids(self) -> tuple[str, str]:
        return (self.first, self.second)


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Back-to-back windows (one ends the day the other starts) do not overlap."""
    return a_start < b_end and a_end > b_start


def find_overlaps(bookings: Iterable[Booking]) -> list[ResourceOverlap]:
    by_person: dict[str, list[Booking]] = {}
    for b in bookings:
        by_person.setdefault(b.assigned_to, []).append(b)

    out: list[ResourceOverlap] = []
    for person in sorted(by_person):
        for a, b in combinations(by_person[person], 2):
            if overlaps(a.start_date, a.end_date, b.start_date, b.end_date):
                out.append(ResourceOverlap(assigned_to=person, first=a.stage_id, second=b.stage_id))
    return out


def resource_overlaps(
    graph: StageGraph, windows: Optional[dict[str, tuple[date, date]]] = None
) -> list[ResourceOverlap]:
    """Team members booked on two stages at once.

    ``windows`` overrides stage dates (a proposed cascade); stages without an
    assignee are ignored. Pairs follow number_index order.
    """
    windows = windows or {}
    bookings = []
    for s in graph.stages():
        if not s.assigned_to:
            continue
        start, end = windows.get(s.id, (s.start_date, s.end_date))
        bookings.append(Booking(s.id, s.assigned_to, start, end))
    return find_overlaps(bookings)


def project_deadline(
    graph: StageGraph, deadline: Optional[date] = None, *, grace_days: int
) -> Optional[date]:
    """The explicit deadline, else the last stage end plus ``grace_days``."""
    if deadline is not None:
        return deadline
    ends = [s.end_date for s in graph.stages()]
    if not ends:
        return None
    return max(ends) + timedelta(days=grace_days)
