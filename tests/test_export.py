"""Tests for the CSV export contracts."""

from retirement_runway.calculators import projection
from retirement_runway.calculators.monte_carlo import PercentileBand
from retirement_runway.components import export


def _scenario() -> dict:
    return {
        "plan": {
            "monthly_expenses": 4000,
            "duration_months": 3,
            "start_date": "2025-11",
            "tax_config": {"tax_deferred": 0.22},
        },
        "assets": [{"name": "401k", "type": "tax_deferred", "balance": 200000}],
        "deposits": [{"name": "Gift", "amount": 0, "start_month": 2, "stop_month": 2}],
    }


def test_projection_csv_layout():
    lines = projection.run(_scenario()).csv_text.splitlines()
    assert lines[0] == "Month,Date,Income,Expenses,Shortfall,401k"
    assert lines[1] == "1,2025-11,0.00,4000.00,0.00,194871.79"
    assert [line.split(",")[1] for line in lines[1:]] == ["2025-11", "2025-12", "2026-01"]
    assert len(lines) == 4


def test_empty_dynamic_assets_are_left_out():
    result = projection.run(_scenario())
    assert "Gift" in result.balance_history
    assert export.ledger_assets(result) == ["401k"]


def test_bands_csv_layout():
    bands = [
        PercentileBand(month=6, p10=1.0, p25=2.0, p50=3.0, p75=4.0, p90=5.0, active_count=40),
        PercentileBand(month=12, p10=0.5, p25=1.5, p50=2.5, p75=3.5, p90=4.5, active_count=38),
    ]
    lines = export.bands_csv(bands).splitlines()
    assert lines[0] == "Year,P10,P25,P50_Median,P75,P90,ActiveScenarios"
    assert lines[1] == "0.50,1.00,2.00,3.00,4.00,5.00,40"
    assert lines[2].startswith("1.00,")


def test_bands_csv_without_bands_has_header_only():
    assert export.bands_csv([]).splitlines() == ["Year,P10,P25,P50_Median,P75,P90,ActiveScenarios"]
