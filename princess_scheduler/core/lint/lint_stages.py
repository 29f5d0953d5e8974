from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Any, Optional

from princess_scheduler.core.errors import StageValidationError
from princess_scheduler.core.graph.resources import Booking, find_overlaps
from princess_scheduler.core.model import StageStatus
from princess_scheduler.core.validate.validate_stages import parse_date, parse_status


# Stage data lint rules:
# - L_DUPLICATE_ID: duplicate stage ids
# - L_CYCLE_DETECTED: dependency cycle exists
# - L_FORWARD_DEPENDENCY: stage depends on a later playbook step
# - L_ORDERING_VIOLATION: stage starts before a dependency ends
# - L_COMPLETED_BEFORE_DEPENDENCY: completed stage has an unfinished dependency
# - L_DELIVERABLE_MISSING_OWNER: deliverable stages need an assignee
# - L_RESOURCE_OVERLAP: one team member booked on overlapping stages


def lint_stages(doc: dict[str, Any]) -> list[StageValidationError]:
    """Lint a loaded stage document.

    Runs in addition to validation and tolerates partially-invalid input.
    The CLI prints lint and validation errors together.
    """

    file = _cast_optional_str(doc.get("__file__"))

    raw_stages = doc.get("stages")
    if not isinstance(raw_stages, list):
        return []

    id_to_index: dict[str, int] = {}
    id_to_raw: dict[str, dict[str, Any]] = {}
    ids: list[str] = []

    for i, raw in enumerate(raw_stages):
        if not isinstance(raw, dict):
            continue
        sid = raw.get("id")
        if not isinstance(sid, str):
            continue
        ids.append(sid)
        id_to_index.setdefault(sid, i)
        id_to_raw.setdefault(sid, raw)

    errors: list[StageValidationError] = []

    def emit(code: str, message: str, sid: str, field: str) -> None:
        errors.append(
            StageValidationError(
                code=code,
                message=message,
                file=file,
                path=f"stages[{id_to_index.get(sid, 0)}].{field}",
            )
        )

    counts = Counter(ids)
    dupes = {k: v for k, v in counts.items() if v > 1}
    if dupes:
        seen: set[str] = set()
        for i, raw in enumerate(raw_stages):
            if not isinstance(raw, dict):
                continue
            sid = raw.get("id")
            if not isinstance(sid, str) or sid not in dupes:
                continue
            if sid not in seen:
                seen.add(sid)
                continue
            errors.append(
                StageValidationError(
                    code="L_DUPLICATE_ID",
                    message=f"duplicate stage id: {sid} (count={dupes[sid]})",
                    file=file,
                    path=f"stages[{i}].id",
                )
            )

    id_to_deps: dict[str, list[str]] = {}
    for sid, raw in id_to_raw.items():
        deps_raw = raw.get("dependencies")
        deps: list[str] = []
        if isinstance(deps_raw, list):
            deps = [d for d in deps_raw if isinstance(d, str) and d in id_to_raw]
        id_to_deps[sid] = deps

    for sid, raw in id_to_raw.items():
        number_index = raw.get("number_index")
        status = parse_status(raw.get("status"))
        start = parse_date(raw.get("start_date"))

        latest_end: Optional[date] = None
        latest_dep: Optional[str] = None
        for dep in id_to_deps[sid]:
            dep_raw = id_to_raw[dep]

            dep_index = dep_raw.get("number_index")
            if (
                isinstance(number_index, int)
                and isinstance(dep_index, int)
                and dep_index > number_index
            ):
                emit(
                    "L_FORWARD_DEPENDENCY",
                    f"depends on later step {dep} (#{dep_index})",
                    sid,
                    "dependencies",
                )

            dep_end = parse_date(dep_raw.get("end_date"))
            if dep_end is not None and (latest_end is None or dep_end > latest_end):
                latest_end, latest_dep = dep_end, dep

            if status is StageStatus.COMPLETED and parse_status(dep_raw.get("status")) is not StageStatus.COMPLETED:
                emit(
                    "L_COMPLETED_BEFORE_DEPENDENCY",
                    f"stage is completed but dependency {dep} is not",
                    sid,
                    "status",
                )

        if start is not None and latest_end is not None and start < latest_end:
            emit(
                "L_ORDERING_VIOLATION",
                f"starts {start.isoformat()} before dependency {latest_dep} ends {latest_end.isoformat()}",
                sid,
                "start_date",
            )

        if raw.get("is_deliverable") is True:
            owner = raw.get("assigned_to")
            if not isinstance(owner, str) or not owner.strip():
                emit(
                    "L_DELIVERABLE_MISSING_OWNER",
                    "deliverable stage must be assigned to a team member",
                    sid,
                    "assigned_to",
                )

    bookings: list[Booking] = []
    for sid, raw in id_to_raw.items():
        owner = raw.get("assigned_to")
        start, end = parse_date(raw.get("start_date")), parse_date(raw.get("end_date"))
        if isinstance(owner, str) and owner.strip() and start is not None and end is not None:
            bookings.append(Booking(sid, owner, start, end))
    for o in find_overlaps(bookings):
        emit(
            "L_RESOURCE_OVERLAP",
            f"{o.assigned_to} is also booked on {o.first} during these dates",
            o.second,
            "assigned_to",
        )

    for sid, msg in _detect_cycles(id_to_deps):
        emit("L_CYCLE_DETECTED", msg, sid, "dependencies")

    return _sorted(errors)


def _detect_cycles(id_to_deps: dict[str, list[str]]) -> list[tuple[str, str]]:
    WHITE, GRAY, BLACK = 0, 1, 2
    state: dict[str, int] = {sid: WHITE for sid in id_to_deps.keys()}
    emitted: set[frozenset[str]] = set()
    out: list[tuple[str, str]] = []

    for root in list(state.keys()):
        if state[root] != WHITE:
            continue
        state[root] = GRAY
        path = [root]
        frames = [iter(id_to_deps.get(root, []))]
        while frames:
            v = next(frames[-1], None)
            if v is None:
                frames.pop()
                state[path.pop()] = BLACK
            elif state[v] == GRAY:
                cycle = path[path.index(v):] + [v]
                key = frozenset(cycle)
                if key not in emitted:
                    emitted.add(key)
                    out.append((path[-1], "dependency cycle detected: " + " -> ".join(cycle)))
            elif state[v] == WHITE:
                state[v] = GRAY
                path.append(v)
                frames.append(iter(id_to_deps.get(v, [])))

    return out


def _sorted(errors: list[StageValidationError]) -> list[StageValidationError]:
    return sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))


def _cast_optional_str(v: Any) -> Optional[str]:
    return v if isinstance(v, str) else None
