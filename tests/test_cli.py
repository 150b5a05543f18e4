import json

from capacity_roster.io_utils import load_planning_entries
from capacity_roster.main import main


def test_cli_migrates_portfolio_and_prints_json(portfolio, capsys):
    rc = main(["--project-dir", str(portfolio), "--json"])

    assert rc == 0
    report = json.loads(capsys.readouterr().out)
    assert report["success"] is True
    assert report["migrated"] == 3
    assert report["planningEntriesUpdated"] == 5
    assert report["errors"] == 0
    assert report["errorDetails"] == []
    assert (portfolio / "input" / "engineers.json").exists()


def test_cli_rerun_is_noop(portfolio, capsys):
    assert main(["--project-dir", str(portfolio)]) == 0
    capsys.readouterr()
    assert main(["--project-dir", str(portfolio)]) == 0
    out = capsys.readouterr().out
    assert "already migrated" in out
    assert "Engineers created: 0" in out


def test_cli_dry_run_leaves_files_untouched(portfolio, capsys):
    planning_path = portfolio / "input" / "planning_entries.csv"
    before = planning_path.read_text(encoding="utf-8")

    rc = main(["--project-dir", str(portfolio), "--dry-run"])

    assert rc == 0
    assert "Engineers created: 3" in capsys.readouterr().out
    assert planning_path.read_text(encoding="utf-8") == before
    assert not (portfolio / "input" / "engineers.json").exists()
    assert (load_planning_entries(planning_path)["engineer_id"] == "").all()


def test_cli_missing_inputs_exit_code(tmp_path, capsys):
    assert main([]) == 2
    assert "missing required input paths" in capsys.readouterr().err
    assert main(["--project-dir", str(tmp_path / "nope")]) == 2


def test_cli_reports_errors_with_exit_code_one(tmp_path, capsys):
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    (input_dir / "planning_entries.csv").write_text(
        "id,konstrukter,cw,month,hours_per_week,project_code,engineer_id\n"
        "p1,,CW36,September,36,FREE,\n"
        "p2,Fuchs Pavel,CW36,September,36,FREE,\n",
        encoding="utf-8",
    )

    rc = main(["--project-dir", str(tmp_path)])

    assert rc == 1
    out = capsys.readouterr().out
    assert "Errors: 1" in out
    assert "Record p1 invalid" in out
