from __future__ import annotations

from typing import Any, Dict, List

from ..calculators.monte_carlo import MonteCarloResult, percentile


def _severity(value: float, good: float, warning: float) -> str:
    if value >= good:
        return "good"
    if value >= warning:
        return "warning"
    return "critical"


def generate_insights(result: MonteCarloResult) -> List[Dict[str, Any]]:
    """Plain-language findings about a Monte Carlo result.

    Each insight is a dict with ``type``, ``title``, ``value``,
    ``description`` and a ``severity`` of ``good``, ``warning`` or
    ``critical``.
    """
    meta = result.metadata
    target_months = int(meta.get("target_survival_months", 0))
    target_rate = float(meta.get("target_success_rate", 0.8))
    survival = result.survival_statistics
    insights = []

    median_months = float(survival.get("median", 0.0))
    insights.append(
        {
            "type": "survival_time",
            "title": "How Long Will Your Money Last?",
            "value": median_months,
            "description": (
                f"Median survival: {median_months / 12:.1f} years. In the worst 25% of cases, money lasts "
                f"{survival.get('p25', 0.0) / 12:.1f} years or less."
            ),
            "severity": _severity(median_months, target_months, target_months * 0.6),
        }
    )

    target_years = target_months / 12
    insights.append(
        {
            "type": "target_success_rate",
            "title": f"{target_years:.0f}-Year Success Rate",
            "value": result.success_rate,
            "description": (
                f"{result.success_rate * 100:.1f}% of scenarios lasted {target_years:.1f} years "
                f"without a shortfall and ended with money left."
            ),
            "severity": _severity(result.success_rate, max(target_rate, 0.8), 0.6),
        }
    )

    # An 80% confidence level reads the 20th percentile of survival times.
    at_confidence = percentile(survival.get("survival_times", []), (1 - target_rate) * 100)
    insights.append(
        {
            "type": "target_percentile_survival",
            "title": f"{target_rate * 100:.0f}% Confidence Level",
            "value": at_confidence,
            "description": (
                f"At your {target_rate * 100:.0f}% confidence level, money will last at least "
                f"{at_confidence / 12:.1f} years."
            ),
            "severity": _severity(at_confidence, target_months, target_months * 0.8),
        }
    )

    finals = result.statistics.get("final_balance")
    if finals and result.trajectories:
        low = percentile(result.final_balances, 10)
        high = percentile(result.final_balances, 90)
        insights.append(
            {
                "type": "final_balance",
                "title": "Final Balance Range",
                "value": {"median": finals["median"], "range": [low, high]},
                "description": (
                    f"Half of the scenarios end with ${finals['median']:,.0f} or more, with 80% "
                    f"between ${low:,.0f} and ${high:,.0f}."
                ),
                "severity": "good" if low > 0 else "warning",
            }
        )
    return insights


def summarize(result: MonteCarloResult) -> str:
    """One or two sentences describing the outlook of the plan."""
    success = result.success_rate
    if success >= 0.85:
        outlook = "high chance of success"
    elif success >= 0.6:
        outlook = "moderate chance of success"
    else:
        outlook = "plan may be at risk"
    median_final = percentile(result.final_balances, 50)
    return (
        f"Your plan has a {outlook} ({success * 100:.1f}% of {len(result.trajectories)} scenarios). "
        f"Median projected balance at the end is ${median_final:,.0f}."
    )
