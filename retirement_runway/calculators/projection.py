"""Deterministic month-by-month projection.

The engine walks a scenario one month at a time.  Each period it

1. pays active deposit events into their target assets, creating a taxable,
   monthly-compounding, 0% asset on first use;
2. sums active income events (negative amounts are extra expenses);
3. inflates the base monthly expense geometrically from month zero;
4. draws the uncovered need from the withdrawal order, tax-grossing every
   draw and splitting priority groups by weight;
5. grows every activated asset by its rate schedule;
6. records balances, with not-yet-activated assets recorded as zero;
7. stops early on a shortfall when the plan asks for it.

Months are 0-based in results and 1-based for event windows and activation,
so an income event with ``start_month=1`` is paid in result month 0.

Example
-------

>>> from retirement_runway.scenario import Scenario
>>> scenario = Scenario.from_dict({
...     "plan": {"monthly_expenses": 4000, "duration_months": 12,
...              "tax_config": {"tax_deferred": 0.22}},
...     "assets": [{"name": "401k", "type": "tax_deferred", "balance": 200000}],
... })
>>> first = run(scenario).results[0].withdrawals[0]
>>> round(first.gross_amount, 2), round(first.tax_owed, 2)
(5128.21, 1128.21)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from itertools import groupby
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..scenario import Asset, OrderEntry, Scenario, TaxConfig
from . import taxes
from .rate_schedules import RateScheduleManager

logger = logging.getLogger(__name__)

# Amounts below a hundredth of a cent are treated as settled.
EPSILON = 1e-6


@dataclass(frozen=True)
class WithdrawalRecord:
    from_asset: str
    tax_treatment: str
    gross_amount: float
    net_amount: float
    tax_owed: float
    effective_tax_rate: float
    remaining_balance: float


@dataclass(frozen=True)
class MonthlyResult:
    month: int
    income: float
    expenses: float
    withdrawals: Tuple[WithdrawalRecord, ...]
    shortfall: float
    total_balance: float

    @property
    def gross_withdrawn(self) -> float:
        return sum(w.gross_amount for w in self.withdrawals)

    @property
    def tax_paid(self) -> float:
        return sum(w.tax_owed for w in self.withdrawals)


@dataclass(frozen=True)
class ProjectionResult:
    """One run of the projection engine (a trajectory in Monte Carlo terms)."""

    results: Tuple[MonthlyResult, ...]
    balance_history: Mapping[str, Tuple[float, ...]]
    actual_duration: int
    duration_months: int
    dynamic_assets: frozenset = field(default_factory=frozenset)
    windfall_used_at_month: Optional[int] = None
    start_date: Optional[str] = None

    @property
    def stopped_early(self) -> bool:
        return self.actual_duration < self.duration_months

    @property
    def total_balances(self) -> List[float]:
        return [r.total_balance for r in self.results]

    @property
    def final_balance(self) -> float:
        return self.results[-1].total_balance if self.results else 0.0

    @property
    def first_shortfall_month(self) -> Optional[int]:
        for r in self.results:
            if r.shortfall > EPSILON:
                return r.month
        return None

    def had_shortfall(self, within: Optional[int] = None) -> bool:
        """True if any period before ``within`` months recorded a shortfall."""
        month = self.first_shortfall_month
        if month is None:
            return False
        return within is None or month < within

    def max_drawdown(self) -> float:
        """Largest peak-to-trough fall of total balance, as a fraction of the peak."""
        peak = 0.0
        worst = 0.0
        for balance in self.total_balances:
            peak = max(peak, balance)
            if peak > 0:
                worst = max(worst, (peak - balance) / peak)
        return worst

    @property
    def csv_text(self) -> str:
        from ..components.export import projection_csv

        return projection_csv(self)


class _AssetState:
    """Mutable per-run copy of an asset."""

    __slots__ = ("asset", "balance", "history")

    def __init__(self, asset: Asset, history: List[float]):
        self.asset = asset
        self.balance = asset.balance
        self.history = history

    @property
    def name(self) -> str:
        return self.asset.name

    def available(self, month: int) -> float:
        if not self.asset.is_active(month):
            return 0.0
        return max(0.0, self.balance - self.asset.min_balance)


class _Ledger:
    """Index-addressable collection of asset states, grown on demand."""

    def __init__(self, assets: Tuple[Asset, ...]):
        self.states: List[_AssetState] = [_AssetState(a, []) for a in assets]
        self.index: Dict[str, int] = {s.name: i for i, s in enumerate(self.states)}

    def get(self, name: str) -> Optional[_AssetState]:
        idx = self.index.get(name)
        return None if idx is None else self.states[idx]

    def get_or_create(self, name: str, periods_elapsed: int) -> _AssetState:
        state = self.get(name)
        if state is None:
            asset = Asset(name=name, tax_treatment="taxable", compounding="monthly", dynamic=True)
            state = _AssetState(asset, [0.0] * periods_elapsed)
            self.index[name] = len(self.states)
            self.states.append(state)
            logger.debug("Created asset %r for deposits at month %d", name, periods_elapsed)
        return state


def _order_groups(order: Tuple[OrderEntry, ...]) -> List[List[OrderEntry]]:
    return [list(g) for _, g in groupby(order, key=lambda e: e.order)]


def _draw_group(
    need: float,
    group: List[OrderEntry],
    ledger: _Ledger,
    month: int,
    tax_config: TaxConfig,
    draws: Dict[str, List[float]],
) -> float:
    """Draw up to ``need`` (net) from one priority group; return the unmet part.

    Only activated members with balance above their floor take part and the
    weights are normalized over them alone.  A member that cannot cover its
    share is emptied to its floor and the rest of its share is split among
    the members still able to pay.
    """
    eligible: List[Tuple[_AssetState, float]] = []
    for entry in group:
        state = ledger.get(entry.account)
        weight = 1.0 if entry.weight is None else entry.weight
        if state is None or weight <= 0 or state.available(month) <= EPSILON:
            continue
        eligible.append((state, weight))

    while need > EPSILON and eligible:
        total_weight = sum(w for _, w in eligible)
        still_paying = []
        covered = 0.0
        for state, weight in eligible:
            share = need * weight / total_weight
            rate = tax_config.rate_for(state.asset.tax_treatment)
            available = state.available(month)
            draw = taxes.gross_withdrawal(share, rate)
            if draw.gross > available + EPSILON:
                draw = taxes.tax_on_withdrawal(available, rate)
                state.balance = state.asset.min_balance
            else:
                state.balance = max(state.asset.min_balance, state.balance - draw.gross)
                still_paying.append((state, weight))
            acc = draws.setdefault(state.name, [0.0, 0.0, 0.0])
            acc[0] += draw.gross
            acc[1] += draw.net
            acc[2] += draw.tax
            covered += draw.net
        need -= covered
        if len(still_paying) == len(eligible):
            break
        eligible = still_paying
    return max(0.0, need)


def _expenses(scenario: Scenario, schedules: RateScheduleManager, month: int) -> float:
    base = scenario.monthly_expenses
    if scenario.inflation_schedule:
        rate = schedules.resolve(scenario.inflation_schedule, month)
        return base * (1.0 + rate / 12.0) ** month
    return base * (1.0 + scenario.inflation_rate) ** (month // 12)


def _grow(state: _AssetState, schedules: RateScheduleManager, month: int) -> None:
    asset = state.asset
    if asset.return_schedule:
        rate = schedules.resolve(asset.return_schedule, month)
    else:
        rate = asset.interest_rate
    if rate == 0:
        return
    if asset.compounding == "annual":
        if (month + 1) % 12 == 0:
            state.balance *= 1.0 + rate
    else:
        state.balance *= 1.0 + rate / 12.0


def build_schedules(scenario: Scenario, seed: Optional[int] = None) -> RateScheduleManager:
    """Rate schedule manager for ``scenario`` with every referenced name checked."""
    schedules = RateScheduleManager(scenario.rate_schedules, seed=seed)
    check_schedule_refs(scenario, schedules)
    return schedules


def check_schedule_refs(scenario: Scenario, schedules: RateScheduleManager) -> None:
    refs = [a.return_schedule for a in scenario.assets if a.return_schedule]
    if scenario.inflation_schedule:
        refs.insert(0, scenario.inflation_schedule)
    schedules.require(refs)


def run(
    scenario: Scenario | Mapping[str, Any],
    rate_overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    schedules: Optional[RateScheduleManager] = None,
    seed: Optional[int] = None,
) -> ProjectionResult:
    """Project ``scenario`` month by month.

    Parameters
    ----------
    scenario : Scenario or dict
        The plan.  A raw mapping is parsed with :meth:`Scenario.from_dict`,
        so shape errors surface before any month is simulated.
    rate_overrides : dict, optional
        ``{schedule_name: config}`` replacing named schedules for this run
        only.
    schedules : RateScheduleManager, optional
        Pre-built manager to resolve rates from.  Defaults to one built from
        the scenario's own schedules.
    seed : int, optional
        Seed for noise-bearing pipeline schedules when no manager is given.

    Returns
    -------
    ProjectionResult
        Monthly results, per-asset balance history and the number of months
        actually simulated.

    Raises
    ------
    ScenarioShapeError
        If the scenario is malformed.
    UnknownScheduleError
        If an asset or the plan names a schedule that does not exist.
    """
    if not isinstance(scenario, Scenario):
        scenario = Scenario.from_dict(scenario)
    if schedules is None:
        schedules = RateScheduleManager(scenario.rate_schedules, seed=seed)
    if rate_overrides:
        schedules = schedules.with_overrides(rate_overrides)
    check_schedule_refs(scenario, schedules)

    ledger = _Ledger(scenario.assets)
    groups = _order_groups(scenario.withdrawal_order())
    tax_config = scenario.tax_config
    results: List[MonthlyResult] = []
    windfall_month: Optional[int] = None
    duration = scenario.duration_months

    for month in range(duration):
        event_month = month + 1

        for deposit in scenario.deposits:
            if deposit.is_active(event_month):
                ledger.get_or_create(deposit.target_name, month).balance += deposit.amount

        income = float(sum(e.amount for e in scenario.income if e.is_active(event_month)))
        expenses = _expenses(scenario, schedules, month)
        need = expenses - income

        draws: Dict[str, List[float]] = {}
        if need > EPSILON:
            for group in groups:
                need = _draw_group(need, group, ledger, event_month, tax_config, draws)
                if need <= EPSILON:
                    break
        shortfall = need if need > EPSILON else 0.0

        records = []
        for name, (gross, net, tax) in draws.items():
            state = ledger.get(name)
            records.append(
                WithdrawalRecord(
                    from_asset=name,
                    tax_treatment=state.asset.tax_treatment,
                    gross_amount=gross,
                    net_amount=net,
                    tax_owed=tax,
                    effective_tax_rate=tax_config.rate_for(state.asset.tax_treatment),
                    remaining_balance=state.balance,
                )
            )
            if windfall_month is None and state.asset.dynamic and gross > 0:
                windfall_month = month

        for state in ledger.states:
            if state.asset.is_active(event_month):
                _grow(state, schedules, month)

        total = 0.0
        for state in ledger.states:
            recorded = state.balance if state.asset.is_active(event_month) else 0.0
            state.history.append(recorded)
            total += recorded

        results.append(
            MonthlyResult(
                month=month,
                income=income,
                expenses=expenses,
                withdrawals=tuple(records),
                shortfall=shortfall,
                total_balance=total,
            )
        )

        if scenario.stop_on_shortfall and shortfall > 0:
            logger.debug("Stopping at month %d with a shortfall of %.2f", event_month, shortfall)
            break

    return ProjectionResult(
        results=tuple(results),
        balance_history={s.name: tuple(s.history) for s in ledger.states},
        actual_duration=len(results),
        duration_months=duration,
        dynamic_assets=frozenset(s.name for s in ledger.states if s.asset.dynamic),
        windfall_used_at_month=windfall_month,
        start_date=scenario.start_date,
    )
