"""CSV exports of projection and Monte Carlo output.

Two column layouts are stable contracts relied on by downstream tools:

* a projection ledger, ``Month,Date,Income,Expenses,Shortfall,<assets...>``
  with one row per simulated month;
* Monte Carlo bands, ``Year,P10,P25,P50_Median,P75,P90,ActiveScenarios``
  with one row per emitted band.

Money is written with two decimals.
"""

from __future__ import annotations

from datetime import date
from typing import List, Optional, Sequence

import pandas as pd

from ..calculators.monte_carlo import PercentileBand
from ..calculators.projection import ProjectionResult

LEDGER_COLUMNS = ["Month", "Date", "Income", "Expenses", "Shortfall"]
BAND_COLUMNS = ["Year", "P10", "P25", "P50_Median", "P75", "P90", "ActiveScenarios"]


def ledger_assets(result: ProjectionResult) -> List[str]:
    """Asset columns of the ledger; assets created by deposits are dropped if they end empty."""
    names = []
    for name, history in result.balance_history.items():
        if name in result.dynamic_assets and (not history or history[-1] <= 0):
            continue
        names.append(name)
    return names


def _month_labels(start: Optional[str], periods: int) -> List[str]:
    first = pd.Period(start, freq="M") if start else pd.Period(date.today(), freq="M")
    return list(pd.period_range(start=first, periods=periods, freq="M").strftime("%Y-%m"))


def projection_frame(result: ProjectionResult) -> pd.DataFrame:
    rows = result.results
    df = pd.DataFrame(
        {
            "Month": [r.month + 1 for r in rows],
            "Date": _month_labels(result.start_date, len(rows)),
            "Income": [r.income for r in rows],
            "Expenses": [r.expenses for r in rows],
            "Shortfall": [r.shortfall for r in rows],
        },
        columns=LEDGER_COLUMNS,
    )
    for name in ledger_assets(result):
        history = list(result.balance_history[name])[: len(rows)]
        df[name] = history + [0.0] * (len(rows) - len(history))
    return df


def projection_csv(result: ProjectionResult) -> str:
    """Ledger CSV text for one projection."""
    return projection_frame(result).to_csv(index=False, float_format="%.2f", lineterminator="\n")


def bands_frame(bands: Sequence[PercentileBand]) -> pd.DataFrame:
    return pd.DataFrame(
        [[b.month / 12, b.p10, b.p25, b.p50, b.p75, b.p90, b.active_count] for b in bands],
        columns=BAND_COLUMNS,
    )


def bands_csv(bands: Sequence[PercentileBand]) -> str:
    """Monte Carlo band CSV text; ``Year`` is the 1-based band month divided by 12."""
    return bands_frame(bands).to_csv(index=False, float_format="%.2f", lineterminator="\n")
