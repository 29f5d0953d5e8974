from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Any, Iterable, Optional, cast

from princess_scheduler.core.errors import StageValidationError
from princess_scheduler.core.model import (
    STATUS_ALIASES,
    Stage,
    StageCategory,
    StageDocument,
    StageStatus,
)


ALLOWED_CATEGORIES: list[str] = [c.value for c in StageCategory]
ALLOWED_STATUSES: list[str] = [s.value for s in StageStatus] + sorted(STATUS_ALIASES)


def _is_list_of_str(v: Any) -> bool:
    return isinstance(v, list) and all(isinstance(x, str) for x in v)


def _is_list_of_str_or_empty(v: Any) -> bool:
    return v == [] or _is_list_of_str(v)


def parse_date(v: Any) -> Optional[date]:
    """Accept date objects (YAML parses bare dates) and ISO-8601 strings."""
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        try:
            return date.fromisoformat(v.strip())
        except ValueError:
            return None
    return None


def parse_status(v: Any) -> Optional[StageStatus]:
    if not isinstance(v, str):
        return None
    if v in STATUS_ALIASES:
        return STATUS_ALIASES[v]
    try:
        return StageStatus(v)
    except ValueError:
        return None


def validate_stages(
    doc: dict[str, Any],
) -> tuple[Optional[StageDocument], list[StageValidationError]]:
    """Validate a loaded stage document.

    Returns (document, errors). Document is None when errors exist.
    Cycle checks are left to the graph builder.
    """

    file = cast(Optional[str], doc.get("__file__"))
    errors: list[StageValidationError] = []

    schema_version = doc.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        errors.append(
            StageValidationError(
                code="E_REQUIRED_FIELD",
                message="schema_version is required and must be a non-empty string",
                file=file,
                path="schema_version",
            )
        )

    project = doc.get("project")
    if project is not None and not isinstance(project, str):
        errors.append(
            StageValidationError(
                code="E_INVALID_TYPE",
                message="project must be a string",
                file=file,
                path="project",
            )
        )

    deadline = doc.get("deadline")
    if deadline is not None and parse_date(deadline) is None:
        errors.append(
            StageValidationError(
                code="E_INVALID_DATE",
                message="deadline must be an ISO date (YYYY-MM-DD)",
                file=file,
                path="deadline",
            )
        )

    raw_stages = doc.get("stages")
    if not isinstance(raw_stages, list):
        errors.append(
            StageValidationError(
                code="E_REQUIRED_FIELD",
                message="stages is required and must be an array",
                file=file,
                path="stages",
            )
        )
        return None, _sorted(errors)

    stages_by_id: dict[str, Stage] = {}
    index_by_id: dict[str, int] = {}

    for i, raw in enumerate(raw_stages):
        stage_path = f"stages[{i}]"
        if not isinstance(raw, dict):
            errors.append(
                StageValidationError(
                    code="E_INVALID_TYPE",
                    message="stage must be an object",
                    file=file,
                    path=stage_path,
                )
            )
            continue

        sid = raw.get("id")
        if not isinstance(sid, str) or not sid.strip():
            errors.append(
                StageValidationError(
                    code="E_REQUIRED_FIELD",
                    message="id is required and must be a non-empty string",
                    file=file,
                    path=f"{stage_path}.id",
                )
            )
            continue

        if sid in stages_by_id:
            errors.append(
                StageValidationError(
                    code="E_DUPLICATE_ID",
                    message=f"duplicate stage id: {sid}",
                    file=file,
                    path=f"{stage_path}.id",
                )
            )
            continue

        number_index = raw.get("number_index")
        if isinstance(number_index, bool) or not isinstance(number_index, int) or number_index < 1:
            errors.append(
                StageValidationError(
                    code="E_INVALID_TYPE",
                    message="number_index must be an integer >= 1",
                    file=file,
                    path=f"{stage_path}.number_index",
                )
            )
            continue

        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append(
                StageValidationError(
                    code="E_REQUIRED_FIELD",
                    message="name is required and must be a non-empty string",
                    file=file,
                    path=f"{stage_path}.name",
                )
            )
            continue

        category = raw.get("category")
        if not isinstance(category, str) or category not in ALLOWED_CATEGORIES:
            errors.append(
                StageValidationError(
                    code="E_INVALID_ENUM",
                    message=f"category must be one of {ALLOWED_CATEGORIES}",
                    file=file,
                    path=f"{stage_path}.category",
                )
            )
            continue

        status = parse_status(raw.get("status"))
        if status is None:
            errors.append(
                StageValidationError(
                    code="E_INVALID_ENUM",
                    message=f"status must be one of {ALLOWED_STATUSES}",
                    file=file,
                    path=f"{stage_path}.status",
                )
            )
            continue

        start = parse_date(raw.get("start_date"))
        end = parse_date(raw.get("end_date"))
        if start is None or end is None:
            bad = "start_date" if start is None else "end_date"
            errors.append(
                StageValidationError(
                    code="E_INVALID_DATE",
                    message=f"{bad} is required and must be an ISO date (YYYY-MM-DD)",
                    file=file,
                    path=f"{stage_path}.{bad}",
                )
            )
            continue

        if end < start:
            errors.append(
                StageValidationError(
                    code="E_DATE_ORDER",
                    message=f"end_date {end.isoformat()} is before start_date {start.isoformat()}",
                    file=file,
                    path=f"{stage_path}.end_date",
                )
            )
            continue

        deps = raw.get("dependencies", [])
        if deps is None:
            deps = []
        if not _is_list_of_str_or_empty(deps):
            errors.append(
                StageValidationError(
                    code="E_INVALID_TYPE",
                    message="dependencies must be an array of strings",
                    file=file,
                    path=f"{stage_path}.dependencies",
                )
            )
            continue

        is_deliverable = raw.get("is_deliverable", False)
        if not isinstance(is_deliverable, bool):
            errors.append(
                StageValidationError(
                    code="E_INVALID_TYPE",
                    message="is_deliverable must be a boolean",
                    file=file,
                    path=f"{stage_path}.is_deliverable",
                )
            )

        assigned_to = raw.get("assigned_to")
        if assigned_to is not None and not isinstance(assigned_to, str):
            errors.append(
                StageValidationError(
                    code="E_INVALID_TYPE",
                    message="assigned_to must be a string",
                    file=file,
                    path=f"{stage_path}.assigned_to",
                )
            )

        index_by_id[sid] = i
        stages_by_id[sid] = Stage(
            id=sid,
            number_index=number_index,
            name=name,
            category=StageCategory(category),
            status=status,
            start_date=start,
            end_date=end,
            dependencies=list(dict.fromkeys(cast(list[str], deps))),
            is_deliverable=bool(is_deliverable),
            assigned_to=cast(Optional[str], assigned_to),
        )

    # Referential integrity.
    for sid, stage in stages_by_id.items():
        for di, dep in enumerate(stage.dependencies):
            if dep not in stages_by_id:
                errors.append(
                    StageValidationError(
                        code="E_UNKNOWN_DEPENDENCY",
                        message=f"dependencies references unknown id: {dep}",
                        file=file,
                        path=f"stages[{index_by_id[sid]}].dependencies[{di}]",
                    )
                )

    if errors:
        return None, _sorted(errors)

    document = StageDocument(
        schema_version=cast(str, schema_version),
        stages=list(stages_by_id.values()),
        project=cast(Optional[str], project),
        deadline=parse_date(deadline),
    )
    return document, []


def summarize_stages(document: StageDocument) -> str:
    counts = Counter([s.category.value for s in document.stages])
    statuses = Counter([s.status.value for s in document.stages])
    cat_parts = [f"{c}={counts.get(c, 0)}" for c in ALLOWED_CATEGORIES if counts.get(c, 0)]
    status_parts = [f"{s.value}={statuses.get(s.value, 0)}" for s in StageStatus]
    header = f"OK: {len(document.stages)} stages"
    if document.project:
        header += f" in {document.project}"
    return (
        header
        + " ("
        + ", ".join(cat_parts)
        + ")\nStatus: "
        + ", ".join(status_parts)
    )


def _sorted(errors: Iterable[StageValidationError]) -> list[StageValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
