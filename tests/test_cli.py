"""Tests for the command-line entry point."""

import json

from retirement_runway.__main__ import main


def _write_scenario(tmp_path) -> str:
    path = tmp_path / "scenario.json"
    path.write_text(
        json.dumps(
            {
                "plan": {"monthly_expenses": 1000, "duration_months": 24, "start_date": "2030-01"},
                "assets": [{"name": "Roth", "type": "tax_free", "balance": 100000, "return_schedule": "stocks"}],
                "rate_schedules": {"stocks": {"type": "fixed", "rate": 0.05}},
            }
        ),
        encoding="utf-8",
    )
    return str(path)


def test_projection_csv_to_stdout(tmp_path, capsys):
    assert main([_write_scenario(tmp_path)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "Month,Date,Income,Expenses,Shortfall,Roth"
    assert out[1].startswith("1,2030-01,")
    assert len(out) == 25


def test_monte_carlo_csv_to_file(tmp_path, capsys):
    target = tmp_path / "bands.csv"
    code = main([_write_scenario(tmp_path), "--monte-carlo", "--iterations", "20", "--seed", "3", "-o", str(target), "--summary"])
    assert code == 0
    lines = target.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Year,P10,P25,P50_Median,P75,P90,ActiveScenarios"
    assert len(lines) == 25
    assert "chance of success" in capsys.readouterr().err


def test_bad_scenario_exits_with_error(tmp_path, capsys):
    path = tmp_path / "broken.json"
    path.write_text(json.dumps({"assets": []}), encoding="utf-8")
    assert main([str(path)]) == 2
    assert "plan" in capsys.readouterr().err
