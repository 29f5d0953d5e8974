import json

from typer.testing import CliRunner

from princess_scheduler.cli import app


runner = CliRunner()


def test_cli_validate_success():
    r = runner.invoke(app, ["validate", "examples/basic-stages.yaml"])
    assert r.exit_code == 0
    assert "OK: 8 stages in Acme Rebrand" in r.stdout
    assert "Status:" in r.stdout


def test_cli_validate_failure():
    r = runner.invoke(app, ["validate", "examples/invalid-unknown-dep.yaml"])
    assert r.exit_code == 2
    assert "E_UNKNOWN_DEPENDENCY" in (r.stdout + r.stderr)


def test_cli_validate_cycle():
    r = runner.invoke(app, ["validate", "examples/invalid-cycle.yaml"])
    assert r.exit_code == 2
    assert "E_CYCLE_DETECTED" in r.stderr
    assert "examples/invalid-cycle.yaml" in r.stderr


def test_cli_validate_missing_file():
    r = runner.invoke(app, ["validate", "examples/nope.yaml"])
    assert r.exit_code == 1
    assert "E_FILE_NOT_FOUND" in r.stderr


def test_cli_validate_json_success():
    r = runner.invoke(app, ["validate", "examples/basic-stages.yaml", "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["tool"] == "princess"
    assert payload["command"] == "validate"
    assert payload["ok"] is True
    assert payload["errors"] == []
    assert payload["summary"]["stage_count"] == 8
    assert payload["summary"]["status_counts"]["completed"] == 2


def test_cli_validate_json_failure():
    r = runner.invoke(app, ["validate", "examples/invalid-bad-date.yaml", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert payload["error_count"] == 2
    codes = {e["code"] for e in payload["errors"]}
    assert codes == {"E_INVALID_DATE", "E_DATE_ORDER"}
    assert all(e["source"] == "validate" for e in payload["errors"])


def test_cli_validate_unknown_format():
    r = runner.invoke(app, ["validate", "examples/basic-stages.yaml", "--format", "xml"])
    assert r.exit_code == 2
    assert "E_VALIDATE_UNKNOWN_FORMAT" in r.stderr
