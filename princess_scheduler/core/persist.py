"""Hand-off of committed dates to the project data store.

The scheduler never writes anywhere itself. Whatever owns persistence (the
stage entity API in the dashboard) implements ``StageStore``; stores that
can write several rows at once may also implement ``bulk_update``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Protocol, runtime_checkable

import structlog

from princess_scheduler.core.model import Stage

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StageUpdate:
    stage_id: str
    start_date: date
    end_date: date

    def fields(self) -> dict[str, Any]:
        return {"start_date": self.start_date.isoformat(), "end_date": self.end_date.isoformat()}


class StageStore(Protocol):
    def update(self, stage_id: str, fields: dict[str, Any]) -> Any: ...


@runtime_checkable
class BulkStageStore(Protocol):
    def bulk_update(self, rows: list[dict[str, Any]]) -> Any: ...


def updates_for(stages: Iterable[Stage]) -> list[StageUpdate]:
    return [StageUpdate(stage_id=s.id, start_date=s.start_date, end_date=s.end_date) for s in stages]


def persist_updates(store: StageStore, updates: list[StageUpdate]) -> int:
    """Write updates through the store; one batched call when supported.

    Returns the number of stages written. Store errors propagate; retrying
    is the caller's decision.
    """
    if not updates:
        return 0

    if isinstance(store, BulkStageStore):
        store.bulk_update([{"id": u.stage_id, **u.fields()} for u in updates])
        log.info("stage_updates_persisted", count=len(updates), batched=True)
        return len(updates)

    for u in updates:
        store.update(u.stage_id, u.fields())
    log.info("stage_updates_persisted", count=len(updates), batched=False)
    return len(updates)
