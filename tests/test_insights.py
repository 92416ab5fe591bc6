"""Tests for the rule-based insights."""

from retirement_runway.calculators import monte_carlo
from retirement_runway.components.insights import generate_insights, summarize


def _scenario(expenses: float) -> dict:
    return {
        "plan": {"monthly_expenses": expenses, "duration_months": 24},
        "assets": [{"name": "Roth", "type": "tax_free", "balance": 60000, "return_schedule": "stocks"}],
        "rate_schedules": {"stocks": {"type": "fixed", "rate": 0.05}},
    }


def test_insight_types_and_severity():
    result = monte_carlo.analyze(_scenario(100), {"iterations": 10, "randomSeed": 1})
    insights = generate_insights(result)
    assert [i["type"] for i in insights] == [
        "survival_time",
        "target_success_rate",
        "target_percentile_survival",
        "final_balance",
    ]
    assert insights[1]["severity"] == "good"
    assert "100.0%" in insights[1]["description"]


def test_summary_for_failing_plan():
    """A plan that cannot pay its bills should read as at risk."""
    result = monte_carlo.analyze(_scenario(10000), {"iterations": 10, "randomSeed": 1})
    assert result.success_rate == 0.0
    text = summarize(result)
    assert "plan may be at risk" in text
    severities = {i["type"]: i["severity"] for i in generate_insights(result)}
    assert severities["survival_time"] == "critical"
