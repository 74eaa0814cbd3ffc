from typer.testing import CliRunner

from conftest import STOP_EVENTS_HEADER, write_workbook
from driver_alerts.main import cli

runner = CliRunner()


def _stop_list(tmp_path):
    return write_workbook(
        tmp_path / "allas-lista.xlsx",
        [STOP_EVENTS_HEADER, ["AB-123", "2024-03-01 08:15", "0:15", None, "Depot", "yes"], ["Telephely-A", "x"]],
    )


def test_version():
    result = runner.invoke(cli, ["version"])
    assert result.exit_code == 0
    assert "Driver Alerts" in result.stdout


def test_import_then_show(tmp_path):
    db = tmp_path / "cli.db"
    path = _stop_list(tmp_path)

    result = runner.invoke(cli, ["import", str(path), "--db", str(db)])
    assert result.exit_code == 0, result.stdout
    assert "stop-events -> stop_events_alert: 1 stored, 1 errors" in result.stdout
    assert "row 3: Invalid plate number in field 'plate_number'" in result.stdout

    again = runner.invoke(cli, ["import", str(path), "--db", str(db)])
    assert "already imported" in again.stdout

    shown = runner.invoke(cli, ["show", "stop_events_alert", "--db", str(db)])
    assert shown.exit_code == 0
    assert "AB-123" in shown.stdout


def test_import_with_explicit_kind_failure(tmp_path):
    path = _stop_list(tmp_path)
    result = runner.invoke(
        cli, ["import", str(path), "--kind", "time-attendance", "--db", str(tmp_path / "x.db")]
    )
    assert result.exit_code == 1


def test_inspect_reports_header(tmp_path):
    result = runner.invoke(cli, ["inspect", str(_stop_list(tmp_path))])
    assert result.exit_code == 0
    assert "detected kind: stop-events" in result.stdout
    assert "Header row 1 via token_header" in result.stdout
    assert "plate_number <- 'Rendszám'" in result.stdout


def test_show_unknown_table(tmp_path):
    result = runner.invoke(cli, ["show", "nincs", "--db", str(tmp_path / "x.db")])
    assert result.exit_code == 1
