from __future__ import annotations

import json
from collections import Counter
from datetime import date
from typing import Any, NoReturn, Optional

import typer

from princess_scheduler.core.errors import (
    SchedulingError,
    StageError,
    StageLoadError,
    StageValidationError,
)
from princess_scheduler.core.graph.readiness import bottlenecks, readiness, workflow_stats
from princess_scheduler.core.io.dump_stages import dump_stages_yaml, stages_document
from princess_scheduler.core.io.load_stages import load_stages
from princess_scheduler.core.lint.lint_stages import lint_stages
from princess_scheduler.core.observability.logging import configure_logging
from princess_scheduler.core.policy.policy_config import (
    PolicyConfigError,
    SchedulePolicy,
    load_and_merge,
    policy_to_dict,
)
from princess_scheduler.core.schedule.contracts import ImpactReport, ProposalState, report_to_dict
from princess_scheduler.core.schedule.reflow import apply_shifts, baseline_schedule, repair_ordering
from princess_scheduler.core.session import SchedulingSession
from princess_scheduler.core.validate.validate_stages import (
    parse_date,
    summarize_stages,
    validate_stages,
)

app = typer.Typer(add_completion=False, no_args_is_help=True)

FORMATS = ("text", "json")


@app.callback()
def _callback(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="DEBUG|INFO|WARNING|ERROR (default: $PRINCESS_LOG_LEVEL or WARNING)"
    ),
    log_format: str = typer.Option("console", "--log-format", help="Log output: console|json"),
) -> None:
    """Princess stage scheduler CLI."""
    configure_logging(level=log_level, renderer=log_format)


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a stage file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a stage file and check the dependency graph is acyclic."""
    _check_format(format, "E_VALIDATE_UNKNOWN_FORMAT")

    try:
        raw = load_stages(path)
    except StageLoadError as e:
        if format == "json":
            _emit("validate", False, [e], 1, summary=None)
        _print_errors([e])
        raise typer.Exit(code=1)

    document, errors = validate_stages(raw)
    graph_errors: list[StageError] = list(errors)
    if document is not None:
        try:
            SchedulingSession.from_document(document)
        except SchedulingError as e:
            graph_errors.append(_with_file(e, raw))

    if graph_errors:
        if format == "json":
            _emit("validate", False, graph_errors, 2, summary=None)
        _print_errors(graph_errors)
        raise typer.Exit(code=2)

    assert document is not None

    if format == "text":
        typer.echo(summarize_stages(document))
        return

    summary = {
        "stage_count": len(document.stages),
        "project": document.project,
        "category_counts": dict(Counter(s.category.value for s in document.stages)),
        "status_counts": dict(Counter(s.status.value for s in document.stages)),
    }
    _emit("validate", True, [], 0, summary=summary)


@app.command("lint")
def lint(
    path: str = typer.Argument(..., help="Path to a stage file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Lint a stage file (data-integrity rules beyond schema validation)."""
    _check_format(format, "E_LINT_UNKNOWN_FORMAT")

    try:
        raw = load_stages(path)
    except StageLoadError as e:
        if format == "json":
            _emit("lint", False, [e], 1)
        _print_errors([e])
        raise typer.Exit(code=1)

    _, validation_errors = validate_stages(raw)
    errors: list[StageError] = [*lint_stages(raw), *validation_errors]

    if format == "json":
        _emit("lint", not errors, errors, 2 if errors else 0)

    if errors:
        _print_errors(errors)
        raise typer.Exit(code=2)
    typer.echo("OK: lint passed")


@app.command("critical-path")
def critical_path(
    path: str = typer.Argument(..., help="Path to a stage file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Print the longest dependency chain by total duration."""
    _check_format(format, "E_CRITICAL_PATH_UNKNOWN_FORMAT")
    _, session = _load_session(path, None, command="critical-path", format=format)
    cp = session.critical_path

    if format == "json":
        _emit(
            "critical-path",
            True,
            [],
            0,
            stage_ids=cp.stage_ids,
            total_days=cp.total_days,
            slack_days=cp.slack_days,
        )

    typer.echo(f"Critical path: {cp.total_days} days, {len(cp.stage_ids)} stages")
    for stage in cp.stages(session.graph):
        typer.echo(f"- {stage.id} #{stage.number_index} {stage.name} ({stage.duration_days}d)")


@app.command("status")
def status(
    path: str = typer.Argument(..., help="Path to a stage file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    policy_file: Optional[str] = typer.Option(None, "--policy-file", help="YAML policy overrides"),
) -> None:
    """Show readiness counts and bottleneck stages."""
    _check_format(format, "E_STATUS_UNKNOWN_FORMAT")
    _, session = _load_session(path, policy_file, command="status", format=format)
    graph = session.graph
    min_blocked = session.policy.bottleneck_min_blocked

    stats = workflow_stats(graph, min_blocked)
    found = bottlenecks(graph, min_blocked)

    if format == "json":
        _emit(
            "status",
            True,
            [],
            0,
            stats=stats,
            readiness={s.id: readiness(graph, s.id).value for s in graph.stages()},
            bottlenecks=[
                {
                    "stage_id": b.stage.id,
                    "blocked_count": b.blocked_count,
                    "blocked_ids": b.blocked_ids,
                    "severity": b.severity.value,
                }
                for b in found
            ],
        )

    typer.echo(
        ", ".join(f"{k}={v}" for k, v in stats.items() if k not in ("bottlenecks", "critical_bottlenecks"))
    )
    if found:
        typer.echo("Bottlenecks:")
        for b in found:
            typer.echo(f"- [{b.severity.value}] {b.stage.id} {b.stage.name} blocks {b.blocked_count}")


@app.command("propose")
def propose(
    path: str = typer.Argument(..., help="Path to a stage file (.yaml/.yml/.json)"),
    stage_id: str = typer.Argument(..., help="Stage to move"),
    start: str = typer.Option(..., "--start", help="New start date (YYYY-MM-DD)"),
    end: str = typer.Option(..., "--end", help="New end date (YYYY-MM-DD)"),
    apply_suggestion: bool = typer.Option(
        False, "--apply-suggestion", help="Preview the move with its suggestion applied"
    ),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    policy_file: Optional[str] = typer.Option(None, "--policy-file", help="YAML policy overrides"),
) -> None:
    """Preview the impact of moving one stage (nothing is written)."""
    _check_format(format, "E_PROPOSE_UNKNOWN_FORMAT")
    raw, session = _load_session(path, policy_file, command="propose", format=format)
    report = _preview(
        session, raw, stage_id, start, end, apply_suggestion, command="propose", format=format
    )

    exit_code = 2 if report.state is ProposalState.REJECTED else 0
    if format == "json":
        _emit("propose", report.applicable, [], exit_code, report=report_to_dict(report))

    _print_report(report)
    if exit_code:
        raise typer.Exit(code=exit_code)


@app.command("move")
def move(
    path: str = typer.Argument(..., help="Path to a stage file (.yaml/.yml/.json)"),
    stage_id: str = typer.Argument(..., help="Stage to move"),
    start: str = typer.Option(..., "--start", help="New start date (YYYY-MM-DD)"),
    end: str = typer.Option(..., "--end", help="New end date (YYYY-MM-DD)"),
    out: str = typer.Option(..., "--out", help="Path to write the updated YAML stage file"),
    accept_warnings: bool = typer.Option(
        False, "--accept-warnings", help="Move anyway when the move cascades to other stages"
    ),
    apply_suggestion: bool = typer.Option(
        False, "--apply-suggestion", help="Apply the suggested fix before committing"
    ),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    policy_file: Optional[str] = typer.Option(None, "--policy-file", help="YAML policy overrides"),
) -> None:
    """Move one stage, cascade its dependents, and write the result."""
    _check_format(format, "E_MOVE_UNKNOWN_FORMAT")
    raw, session = _load_session(path, policy_file, command="move", format=format)
    report = _preview(
        session, raw, stage_id, start, end, apply_suggestion, command="move", format=format
    )

    if report.state is ProposalState.HAS_WARNINGS and not accept_warnings:
        err = StageValidationError(
            code="E_MOVE_NEEDS_CONFIRMATION",
            message=f"{report.summary.message} (pass --accept-warnings to move anyway)",
            file=raw.get("__file__"),
            path=stage_id,
        )
        if format == "json":
            _emit("move", False, [err], 2, report=report_to_dict(report))
        _print_report(report)
        _print_errors([err])
        raise typer.Exit(code=2)

    try:
        updates = session.confirm(report)
    except SchedulingError as e:
        err = _with_file(e, raw)
        if format == "json":
            _emit("move", False, [err], 2, report=report_to_dict(report))
        _print_report(report)
        _print_errors([err])
        raise typer.Exit(code=2)

    _write_document(raw, session, out)

    if format == "json":
        _emit(
            "move",
            True,
            [],
            0,
            report=report_to_dict(report),
            updates=[{"stage_id": u.stage_id, **u.fields()} for u in updates],
        )
    typer.echo(f"OK: moved {report.stage_id}, updated {len(updates)} stages; wrote {out}")


@app.command("repair")
def repair(
    path: str = typer.Argument(..., help="Path to a stage file (.yaml/.yml/.json)"),
    out: str = typer.Option(..., "--out", help="Path to write the repaired YAML stage file"),
) -> None:
    """Push stages that start before their dependencies end (completed stages stay put)."""
    raw, session = _load_session(path, None, command="repair")
    shifts = repair_ordering(session.graph)
    apply_shifts(session.graph, shifts)
    _write_document(raw, session, out)
    typer.echo(f"OK: repaired {len(shifts)} stages; wrote {out}")
    for a in sorted(shifts, key=lambda a: session.graph.get(a.stage_id).number_index):
        typer.echo(f"- {a.stage_id}: +{a.adjustment_days} days")


@app.command("baseline")
def baseline(
    path: str = typer.Argument(..., help="Path to a stage file (.yaml/.yml/.json)"),
    start: str = typer.Option(..., "--start", help="Project start date (YYYY-MM-DD)"),
    out: str = typer.Option(..., "--out", help="Path to write the rescheduled YAML stage file"),
    gap_days: int = typer.Option(1, "--gap-days", help="Days between a dependency's end and the next start"),
) -> None:
    """Lay out every unfinished stage from a project start date."""
    raw, session = _load_session(path, None, command="baseline")
    project_start = _parse_date_option(start, "start", raw, command="baseline")
    if gap_days < 0:
        err = StageValidationError(
            code="E_BASELINE_INVALID_GAP",
            message="--gap-days must be >= 0",
            file=raw.get("__file__"),
            path="gap_days",
        )
        _fail([err], 2, command="baseline")

    shifts = baseline_schedule(session.graph, project_start, gap_days=gap_days)
    apply_shifts(session.graph, shifts)
    _write_document(raw, session, out)
    typer.echo(f"OK: scheduled {len(shifts)} stages from {project_start.isoformat()}; wrote {out}")


@app.command("policy")
def policy(
    policy_file: Optional[str] = typer.Option(
        None, "--policy-file", help="Optional YAML file overriding default thresholds"
    ),
) -> None:
    """List the effective schedule policy."""
    effective = _load_policy(policy_file, None, command="policy")
    typer.echo("Policy:")
    for name, value in policy_to_dict(effective).items():
        typer.echo(f"- {name}: {value}")


def _preview(
    session: SchedulingSession,
    raw: dict[str, Any],
    stage_id: str,
    start: str,
    end: str,
    apply_suggestion: bool,
    *,
    command: str,
    format: str,
) -> ImpactReport:
    new_start = _parse_date_option(start, "start", raw, command=command, format=format)
    new_end = _parse_date_option(end, "end", raw, command=command, format=format)
    try:
        report = session.preview(stage_id, new_start, new_end)
        if apply_suggestion:
            report = session.apply_suggestion(report) or report
    except SchedulingError as e:
        _fail([_with_file(e, raw)], 2, command=command, format=format)
    return report


def _load_session(
    path: str, policy_file: Optional[str], *, command: str, format: str = "text"
) -> tuple[dict[str, Any], SchedulingSession]:
    try:
        raw = load_stages(path)
    except StageLoadError as e:
        _fail([e], 1, command=command, format=format)

    document, errors = validate_stages(raw)
    if errors or document is None:
        _fail(list(errors), 2, command=command, format=format)

    effective = _load_policy(policy_file, raw.get("__file__"), command=command, format=format)
    try:
        session = SchedulingSession.from_document(document, policy=effective)
    except SchedulingError as e:
        _fail([_with_file(e, raw)], 2, command=command, format=format)
    return raw, session


def _load_policy(
    policy_file: Optional[str], file: Optional[str], *, command: str, format: str = "text"
) -> SchedulePolicy:
    try:
        return load_and_merge(policy_file)
    except FileNotFoundError:
        err: StageError = StageLoadError(
            code="E_POLICY_FILE_NOT_FOUND",
            message=f"policy file not found: {policy_file}",
            file=file,
            path="policy_file",
        )
        _fail([err], 1, command=command, format=format)
    except PolicyConfigError as e:
        err = StageValidationError(
            code="E_POLICY_FILE_INVALID",
            message=str(e),
            file=file,
            path="policy_file",
        )
        _fail([err], 2, command=command, format=format)


def _parse_date_option(
    value: str, name: str, raw: dict[str, Any], *, command: str, format: str = "text"
) -> date:
    parsed = parse_date(value)
    if parsed is None:
        err = StageValidationError(
            code="E_INVALID_DATE",
            message=f"--{name} must be an ISO date (YYYY-MM-DD), got {value!r}",
            file=raw.get("__file__"),
            path=name,
        )
        _fail([err], 2, command=command, format=format)
    return parsed


def _write_document(raw: dict[str, Any], session: SchedulingSession, out: str) -> None:
    doc = stages_document(
        session.graph.stages(),
        schema_version=str(raw.get("schema_version")),
        project=raw.get("project"),
        deadline=session.deadline,
    )
    dump_stages_yaml(doc, out)


def _print_report(report: ImpactReport) -> None:
    typer.echo(report.summary.message)
    typer.echo(f"State: {report.state.value}")
    if report.affected:
        typer.echo("Affected:")
        for a in report.affected:
            sign = "+" if a.adjustment_days > 0 else ""
            typer.echo(
                f"- {a.stage_id} {a.stage_name}: {sign}{a.adjustment_days} days "
                f"({a.new_start.isoformat()} -> {a.new_end.isoformat()})"
            )
    if report.conflicts:
        typer.echo("Conflicts:")
        for c in report.conflicts:
            typer.echo(f"- [{c.severity.value}] {c.type.value}: {c.message}")
    if report.warnings:
        typer.echo("Warnings:")
        for w in report.warnings:
            typer.echo(f"- {w.type.value}: {w.message}")
    if report.suggestion is not None:
        typer.echo(f"Suggestion ({report.suggestion.action.value}): {report.suggestion.text}")


def _check_format(format: str, code: str) -> None:
    if format not in FORMATS:
        err = StageValidationError(
            code=code,
            message=f"unknown format: {format} (choose one of: text, json)",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _fail(errors: list[StageError], exit_code: int, *, command: str, format: str = "text") -> NoReturn:
    if format == "json":
        _emit(command, False, errors, exit_code)
    _print_errors(errors)
    raise typer.Exit(code=exit_code)


def _emit(command: str, ok: bool, errors: list[StageError], exit_code: int, **extra: Any) -> None:
    payload: dict[str, Any] = {
        "tool": "princess",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [_to_item(e) for e in errors],
    }
    payload.update(extra)
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _to_item(e: StageError) -> dict[str, Any]:
    if isinstance(e, StageLoadError):
        source = "load"
    elif isinstance(e, SchedulingError):
        source = "schedule"
    elif e.code.startswith("L_"):
        source = "lint"
    else:
        source = "validate"
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _with_file(e: StageError, raw: dict[str, Any]) -> StageError:
    if e.file:
        return e
    return type(e)(code=e.code, message=e.message, file=raw.get("__file__"), path=e.path)


def _print_errors(errors: list[StageError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="princess")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
