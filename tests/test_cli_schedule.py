import json
from pathlib import Path

from typer.testing import CliRunner

from princess_scheduler.cli import app
from princess_scheduler.core.io.load_stages import load_stages
from princess_scheduler.core.validate.validate_stages import validate_stages


runner = CliRunner()


def _dates(path: Path) -> dict[str, tuple[str, str]]:
    document, errors = validate_stages(load_stages(str(path)))
    assert errors == []
    return {s.id: (s.start_date.isoformat(), s.end_date.isoformat()) for s in document.stages}


def test_cli_critical_path():
    r = runner.invoke(app, ["critical-path", "examples/basic-stages.yaml"])
    assert r.exit_code == 0
    assert "Critical path: 60 days, 7 stages" in r.stdout
    assert "- S4 #4 Brand strategy (14d)" in r.stdout


def test_cli_critical_path_json():
    r = runner.invoke(app, ["critical-path", "examples/basic-stages.yaml", "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["stage_ids"] == ["S1", "S2", "S3", "S4", "S5", "S7", "S8"]
    assert payload["slack_days"]["S6"] == 7


def test_cli_status():
    r = runner.invoke(app, ["status", "examples/fan-out-stages.yaml"])
    assert r.exit_code == 0
    assert "waiting=6" in r.stdout
    assert "- [high] S1 Kickoff blocks 6" in r.stdout


def test_cli_status_json():
    r = runner.invoke(app, ["status", "examples/basic-stages.yaml", "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["readiness"]["S4"] == "waiting"
    assert payload["bottlenecks"] == []


def test_cli_propose_cascade():
    r = runner.invoke(
        app,
        ["propose", "examples/chain-stages.yaml", "S1", "--start", "2025-01-11", "--end", "2025-01-14"],
    )
    assert r.exit_code == 0
    assert "State: has_warnings" in r.stdout
    assert "- S2 Audit: +5 days (2025-01-14 -> 2025-01-16)" in r.stdout
    assert "[high] cascade: 2 stages will shift by up to 5 days" in r.stdout
    assert "Suggestion (apply)" in r.stdout


def test_cli_propose_with_policy_file():
    r = runner.invoke(
        app,
        [
            "propose",
            "examples/chain-stages.yaml",
            "S1",
            "--start",
            "2025-01-11",
            "--end",
            "2025-01-14",
            "--format",
            "json",
            "--policy-file",
            "examples/policy-no-escalation.yaml",
        ],
    )
    assert r.exit_code == 0
    report = json.loads(r.stdout)["report"]
    assert report["conflicts"][0]["severity"] == "medium"
    assert report["suggestion"]["action"] == "compress_timeline"


def test_cli_propose_completed_stage_is_rejected():
    r = runner.invoke(
        app,
        [
            "propose",
            "examples/completed-stage.yaml",
            "S1",
            "--start",
            "2025-01-07",
            "--end",
            "2025-01-10",
            "--format",
            "json",
        ],
    )
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert payload["report"]["state"] == "rejected"
    assert payload["report"]["conflicts"][0]["type"] == "dependency_violation"
    assert payload["report"]["suggestion"]["action"] == "keep_current"


def test_cli_propose_bad_date():
    r = runner.invoke(
        app,
        ["propose", "examples/chain-stages.yaml", "S1", "--start", "soon", "--end", "2025-01-14"],
    )
    assert r.exit_code == 2
    assert "E_INVALID_DATE" in r.stderr


def test_cli_propose_unknown_stage():
    r = runner.invoke(
        app,
        ["propose", "examples/chain-stages.yaml", "S9", "--start", "2025-01-11", "--end", "2025-01-14"],
    )
    assert r.exit_code == 2
    assert "E_UNKNOWN_STAGE" in r.stderr


def test_cli_move_needs_confirmation(tmp_path: Path):
    out = tmp_path / "moved.yaml"
    r = runner.invoke(
        app,
        [
            "move",
            "examples/chain-stages.yaml",
            "S1",
            "--start",
            "2025-01-11",
            "--end",
            "2025-01-14",
            "--out",
            str(out),
        ],
    )
    assert r.exit_code == 2
    assert "E_MOVE_NEEDS_CONFIRMATION" in r.stderr
    assert not out.exists()


def test_cli_move_accept_warnings_writes_cascade(tmp_path: Path):
    out = tmp_path / "nested" / "moved.yaml"
    r = runner.invoke(
        app,
        [
            "move",
            "examples/chain-stages.yaml",
            "S1",
            "--start",
            "2025-01-11",
            "--end",
            "2025-01-14",
            "--out",
            str(out),
            "--accept-warnings",
        ],
    )
    assert r.exit_code == 0, r.stdout + r.stderr
    assert "OK: moved S1, updated 3 stages" in r.stdout
    assert _dates(out) == {
        "S1": ("2025-01-11", "2025-01-14"),
        "S2": ("2025-01-14", "2025-01-16"),
        "S3": ("2025-01-16", "2025-01-20"),
    }


def test_cli_move_rejected(tmp_path: Path):
    out = tmp_path / "moved.yaml"
    r = runner.invoke(
        app,
        [
            "move",
            "examples/chain-stages.yaml",
            "S2",
            "--start",
            "2025-01-07",
            "--end",
            "2025-01-09",
            "--out",
            str(out),
            "--accept-warnings",
        ],
    )
    assert r.exit_code == 2
    assert "E_MOVE_REJECTED" in r.stderr
    assert not out.exists()


def test_cli_move_apply_suggestion(tmp_path: Path):
    out = tmp_path / "moved.yaml"
    r = runner.invoke(
        app,
        [
            "move",
            "examples/fan-out-stages.yaml",
            "S1",
            "--start",
            "2025-01-07",
            "--end",
            "2025-01-10",
            "--out",
            str(out),
            "--apply-suggestion",
            "--format",
            "json",
        ],
    )
    assert r.exit_code == 0, r.stdout + r.stderr
    payload = json.loads(r.stdout)
    assert payload["report"]["state"] == "clean"
    assert payload["updates"] == [{"stage_id": "S1", "start_date": "2025-01-07", "end_date": "2025-01-09"}]
    assert _dates(out)["S2"] == ("2025-01-09", "2025-01-12")


def test_cli_repair(tmp_path: Path):
    out = tmp_path / "repaired.yaml"
    r = runner.invoke(app, ["repair", "examples/overlap-stages.yaml", "--out", str(out)])
    assert r.exit_code == 0
    assert "OK: repaired 2 stages" in r.stdout
    assert "- S2: +2 days" in r.stdout
    assert _dates(out)["S2"] == ("2025-01-10", "2025-01-14")


def test_cli_baseline(tmp_path: Path):
    out = tmp_path / "baseline.yaml"
    r = runner.invoke(
        app, ["baseline", "examples/chain-stages.yaml", "--start", "2025-03-03", "--out", str(out)]
    )
    assert r.exit_code == 0
    assert "OK: scheduled 3 stages from 2025-03-03" in r.stdout
    dates = _dates(out)
    assert dates["S1"] == ("2025-03-03", "2025-03-06")
    assert dates["S3"] == ("2025-03-10", "2025-03-14")


def test_cli_baseline_rejects_negative_gap(tmp_path: Path):
    out = tmp_path / "baseline.yaml"
    r = runner.invoke(
        app,
        [
            "baseline",
            "examples/chain-stages.yaml",
            "--start",
            "2025-03-03",
            "--out",
            str(out),
            "--gap-days=-1",
        ],
    )
    assert r.exit_code == 2
    assert "E_BASELINE_INVALID_GAP" in r.stderr


def test_cli_propose_json_reports_validation_errors():
    r = runner.invoke(
        app,
        [
            "propose",
            "examples/invalid-unknown-dep.yaml",
            "S1",
            "--start",
            "2025-01-11",
            "--end",
            "2025-01-14",
            "--format",
            "json",
        ],
    )
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["tool"] == "princess"
    assert payload["command"] == "propose"
    assert payload["ok"] is False
    assert payload["error_count"] == len(payload["errors"]) >= 1
    assert "E_UNKNOWN_DEPENDENCY" in {e["code"] for e in payload["errors"]}
    assert "E_UNKNOWN_DEPENDENCY" not in r.stderr


def test_cli_status_json_missing_file():
    r = runner.invoke(app, ["status", "examples/does-not-exist.yaml", "--format", "json"])
    assert r.exit_code == 1
    payload = json.loads(r.stdout)
    assert payload["command"] == "status"
    assert payload["ok"] is False
    assert payload["errors"][0]["code"] == "E_FILE_NOT_FOUND"
    assert payload["errors"][0]["source"] == "load"


def test_cli_critical_path_json_cycle():
    r = runner.invoke(app, ["critical-path", "examples/invalid-cycle.yaml", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["command"] == "critical-path"
    assert payload["ok"] is False
    assert payload["error_count"] >= 1


def test_cli_move_json_bad_date(tmp_path: Path):
    out = tmp_path / "moved.yaml"
    r = runner.invoke(
        app,
        [
            "move",
            "examples/chain-stages.yaml",
            "S1",
            "--start",
            "soon",
            "--end",
            "2025-01-14",
            "--out",
            str(out),
            "--format",
            "json",
        ],
    )
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["command"] == "move"
    assert payload["errors"][0]["code"] == "E_INVALID_DATE"
    assert not out.exists()


def test_cli_propose_prints_warnings():
    r = runner.invoke(
        app,
        ["propose", "examples/resource-overlap.yaml", "S4", "--start", "2025-01-24", "--end", "2025-02-03"],
    )
    assert r.exit_code == 0
    assert "State: has_warnings" in r.stdout
    assert "Warnings:" in r.stdout
    assert "- deadline_exceeded: Brand strategy would end after the project deadline (2025-02-01)" in r.stdout


def test_cli_move_keeps_deadline(tmp_path: Path):
    out = tmp_path / "moved.yaml"
    r = runner.invoke(
        app,
        [
            "move",
            "examples/resource-overlap.yaml",
            "S4",
            "--start",
            "2025-01-24",
            "--end",
            "2025-02-03",
            "--out",
            str(out),
            "--accept-warnings",
        ],
    )
    assert r.exit_code == 0, r.stdout + r.stderr
    assert load_stages(str(out))["deadline"].isoformat() == "2025-02-01"
    assert _dates(out)["S4"] == ("2025-01-24", "2025-02-03")
