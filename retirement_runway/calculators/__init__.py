"""Core calculators behind the projection and Monte Carlo analysis.

The `calculators` package contains small, focused modules that each implement
one piece of the engine:

* ``rate_schedules`` – named, time-varying annual rates (fixed, sequence, map and pipeline schedules).
* ``taxes`` – flat-rate tax grossing of withdrawals.
* ``projection`` – deterministic month-by-month ledger of income, expenses, withdrawals and balances.
* ``historical_returns`` – read-only historical annual return tables.
* ``return_models`` – pluggable generators of synthetic annual returns.
* ``monte_carlo`` – repeated projections reduced to percentile bands, success rate and risk metrics.

Each module exposes a few public functions with clear parameters and returns.  See
individual docstrings for details.
"""

from . import rate_schedules, taxes, projection, historical_returns, return_models, monte_carlo  # noqa: F401

__all__ = ["rate_schedules", "taxes", "projection", "historical_returns", "return_models", "monte_carlo"]
