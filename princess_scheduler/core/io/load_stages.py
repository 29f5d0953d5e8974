from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import structlog
import yaml

from princess_scheduler.core.errors import StageLoadError
from princess_scheduler.core.validate.validate_stages import parse_date

log = structlog.get_logger(__name__)

# suffix -> (parser, parse error code)
_PARSERS: dict[str, tuple[Callable[[str], Any], str]] = {
    ".yaml": (yaml.safe_load, "E_YAML_PARSE"),
    ".yml": (yaml.safe_load, "E_YAML_PARSE"),
    ".json": (json.loads, "E_JSON_PARSE"),
}

STAGE_DATE_FIELDS = ("start_date", "end_date")


def load_stages(path: str) -> dict[str, Any]:
    """Load a YAML/JSON stage document.

    Returns a dict with keys schema_version, stages and, when present,
    project and deadline. YAML hands back ``date`` objects for bare dates
    while JSON only has strings; every stage date (and the deadline) is
    turned into a ``date`` here so later steps see one representation.
    Values that are not dates are left untouched for the validator.
    """

    p = Path(path)
    data = _parse(p)

    if not isinstance(data, dict):
        raise StageLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping with a 'stages' list",
            file=str(p),
        )

    stages = data.get("stages")
    if isinstance(stages, list):
        stages = [_normalize_stage(s) for s in stages]

    doc: dict[str, Any] = {"schema_version": data.get("schema_version"), "stages": stages}
    for key in ("project", "deadline"):
        if key in data:
            doc[key] = data[key]
    if "deadline" in doc:
        doc["deadline"] = _as_date(doc["deadline"])
    doc["__file__"] = str(p)

    log.debug(
        "stages_loaded",
        file=str(p),
        format=p.suffix.lower().lstrip("."),
        stage_count=len(stages) if isinstance(stages, list) else None,
    )
    return doc


def _parse(p: Path) -> Any:
    if not p.exists():
        raise StageLoadError(code="E_FILE_NOT_FOUND", message="file does not exist", file=str(p))

    entry = _PARSERS.get(p.suffix.lower())
    if entry is None:
        raise StageLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message=f"supported formats are {', '.join(sorted(_PARSERS))}",
            file=str(p),
        )
    parser, error_code = entry

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:  # pragma: no cover
        raise StageLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        return parser(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise StageLoadError(code=error_code, message=str(e), file=str(p)) from e


def _normalize_stage(raw: Any) -> Any:
    if not isinstance(raw, dict):
        return raw
    out = dict(raw)
    for key in STAGE_DATE_FIELDS:
        if key in out:
            out[key] = _as_date(out[key])
    return out


def _as_date(value: Any) -> Any:
    parsed = parse_date(value)
    return value if parsed is None else parsed
