from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from princess_scheduler.core.model import Stage


def stage_to_dict(stage: Stage) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": stage.id,
        "number_index": stage.number_index,
        "name": stage.name,
        "category": stage.category.value,
        "status": stage.status.value,
        "start_date": stage.start_date.isoformat(),
        "end_date": stage.end_date.isoformat(),
        "dependencies": list(stage.dependencies),
    }
    if stage.is_deliverable:
        out["is_deliverable"] = True
    if stage.assigned_to is not None:
        out["assigned_to"] = stage.assigned_to
    return out


def stages_document(
    stages: Iterable[Stage],
    *,
    schema_version: str,
    project: Optional[str] = None,
    deadline: Optional[date] = None,
) -> dict[str, Any]:
    doc: dict[str, Any] = {"schema_version": schema_version}
    if project is not None:
        doc["project"] = project
    if deadline is not None:
        doc["deadline"] = deadline.isoformat()
    doc["stages"] = [stage_to_dict(s) for s in sorted(stages, key=lambda s: s.number_index)]
    return doc


def dump_stages_yaml(doc: dict[str, Any], path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, sort_keys=False, default_flow_style=False, allow_unicode=True)
