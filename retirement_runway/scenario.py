"""Scenario data model.

A scenario is the immutable input to the projection engine.  It is normally
built from the JSON document produced by the scenario editor::

    {
        "plan": {"monthly_expenses": 4000, "duration_months": 360,
                 "inflation_schedule": "cpi", "stop_on_shortfall": true,
                 "tax_config": {"tax_deferred": 0.22}},
        "assets": [{"name": "401k", "type": "tax_deferred", "balance": 200000,
                    "return_schedule": "stocks"}],
        "income": [{"name": "Pension", "amount": 1500, "start_month": 25}],
        "deposits": [],
        "order": [{"account": "401k", "order": 1}],
        "rate_schedules": {"stocks": {"type": "fixed", "rate": 0.06},
                           "cpi": {"type": "fixed", "rate": 0.025}}
    }

External validation happens before a scenario reaches the engine, so only
shape checks are performed here.  Required fields are never silently
defaulted; a missing ``monthly_expenses`` or ``duration_months`` raises
:class:`~retirement_runway.errors.ScenarioShapeError`.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
import json
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ScenarioShapeError

TAX_TREATMENTS = ("taxable", "tax_deferred", "tax_free")
COMPOUNDING_PERIODS = ("monthly", "annual")

# Flat rates used when a scenario omits its tax configuration.
DEFAULT_TAX_RATES: Mapping[str, float] = MappingProxyType(
    {"taxable": 0.15, "tax_deferred": 0.22, "tax_free": 0.0}
)


def _expect_dict(value: Any, path: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ScenarioShapeError(f"{path}: expected object")
    return value


def _expect_list(value: Any, path: str) -> List[Any]:
    if not isinstance(value, list):
        raise ScenarioShapeError(f"{path}: expected array")
    return value


def _require(data: Dict[str, Any], key: str, path: str) -> Any:
    if key not in data or data[key] is None:
        raise ScenarioShapeError(f"{path}.{key}: missing required field")
    return data[key]


def _number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ScenarioShapeError(f"{path}: expected number, got {value!r}")
    return float(value)


def _optional_int(value: Any, path: str) -> Optional[int]:
    if value is None:
        return None
    return int(_number(value, path))


def _start_date(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not re.fullmatch(r"\d{4}-(0[1-9]|1[0-2])", value):
        raise ScenarioShapeError(f"plan.start_date: expected YYYY-MM, got {value!r}")
    return value


def _choice(value: Any, allowed: Tuple[str, ...], path: str) -> str:
    if value not in allowed:
        raise ScenarioShapeError(f"{path}: expected one of {', '.join(allowed)}, got {value!r}")
    return value


@dataclass(frozen=True)
class TaxConfig:
    """Flat withdrawal tax rate per tax treatment."""

    taxable: float = DEFAULT_TAX_RATES["taxable"]
    tax_deferred: float = DEFAULT_TAX_RATES["tax_deferred"]
    tax_free: float = DEFAULT_TAX_RATES["tax_free"]

    def rate_for(self, tax_treatment: str) -> float:
        return getattr(self, tax_treatment)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str = "plan.tax_config") -> "TaxConfig":
        rates = dict(DEFAULT_TAX_RATES)
        for treatment, raw in data.items():
            _choice(treatment, TAX_TREATMENTS, f"{path}.{treatment}")
            rate = _number(raw, f"{path}.{treatment}")
            if rate < 0 or rate >= 1:
                raise ScenarioShapeError(f"{path}.{treatment}: rate must be in [0, 1), got {rate}")
            rates[treatment] = rate
        return cls(**rates)

    def to_dict(self) -> Dict[str, float]:
        return {t: self.rate_for(t) for t in TAX_TREATMENTS}


@dataclass(frozen=True)
class Asset:
    """An account or holding the plan can draw from.

    ``start_month`` is 1-indexed: an asset with ``start_month=12`` first
    becomes eligible for withdrawals in period index 11.
    """

    name: str
    tax_treatment: str = "taxable"
    balance: float = 0.0
    min_balance: float = 0.0
    compounding: str = "monthly"
    return_schedule: Optional[str] = None
    interest_rate: float = 0.0
    start_month: Optional[int] = None
    asset_class: str = "stock"
    dynamic: bool = False

    def is_active(self, month: int) -> bool:
        return self.start_month is None or month >= self.start_month

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "Asset":
        return cls(
            name=str(_require(data, "name", path)),
            tax_treatment=_choice(data.get("type", "taxable"), TAX_TREATMENTS, f"{path}.type"),
            balance=_number(data.get("balance", data.get("initial_value", 0.0)), f"{path}.balance"),
            min_balance=_number(data.get("min_balance", 0.0), f"{path}.min_balance"),
            compounding=_choice(data.get("compounding", "monthly"), COMPOUNDING_PERIODS, f"{path}.compounding"),
            return_schedule=data.get("return_schedule"),
            interest_rate=_number(data.get("interest_rate", 0.0), f"{path}.interest_rate"),
            start_month=_optional_int(data.get("start_month"), f"{path}.start_month"),
            asset_class=str(data.get("asset_class", "stock")),
            dynamic=bool(data.get("dynamic", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "type": self.tax_treatment,
            "balance": self.balance,
            "min_balance": self.min_balance,
            "compounding": self.compounding,
            "interest_rate": self.interest_rate,
            "asset_class": self.asset_class,
        }
        if self.return_schedule is not None:
            out["return_schedule"] = self.return_schedule
        if self.start_month is not None:
            out["start_month"] = self.start_month
        if self.dynamic:
            out["dynamic"] = True
        return out


@dataclass(frozen=True)
class IncomeEvent:
    """A recurring or one-time cash flow; negative amounts are expenses.

    The event is active for 1-indexed months in ``[start_month, stop_month]``
    and open-ended when ``stop_month`` is absent.
    """

    name: str
    amount: float
    start_month: int = 1
    stop_month: Optional[int] = None

    def is_active(self, month: int) -> bool:
        if month < self.start_month:
            return False
        return self.stop_month is None or month <= self.stop_month

    @classmethod
    def _fields_from_dict(cls, data: Dict[str, Any], path: str) -> Dict[str, Any]:
        stop = data.get("stop_month", data.get("end_month"))
        return {
            "name": str(data.get("name", path)),
            "amount": _number(_require(data, "amount", path), f"{path}.amount"),
            "start_month": int(_number(data.get("start_month", 1), f"{path}.start_month")),
            "stop_month": _optional_int(stop, f"{path}.stop_month"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "IncomeEvent":
        return cls(**cls._fields_from_dict(data, path))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "amount": self.amount, "start_month": self.start_month}
        if self.stop_month is not None:
            out["stop_month"] = self.stop_month
        return out


@dataclass(frozen=True)
class DepositEvent(IncomeEvent):
    """A cash flow paid into an asset, creating it on first use if needed."""

    target: Optional[str] = None

    @property
    def target_name(self) -> str:
        return self.target or self.name

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "DepositEvent":
        return cls(target=data.get("target"), **cls._fields_from_dict(data, path))

    def to_dict(self) -> Dict[str, Any]:
        out = IncomeEvent.to_dict(self)
        if self.target is not None:
            out["target"] = self.target
        return out


@dataclass(frozen=True)
class OrderEntry:
    """One line of the withdrawal order.

    Entries sharing an ``order`` value form a priority group; the group's need
    is split across its members in proportion to ``weight``.
    """

    account: str
    order: int
    weight: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: str) -> "OrderEntry":
        weight = data.get("weight")
        if weight is not None:
            weight = _number(weight, f"{path}.weight")
            if weight < 0:
                raise ScenarioShapeError(f"{path}.weight: must not be negative")
        return cls(
            account=str(_require(data, "account", path)),
            order=int(_number(_require(data, "order", path), f"{path}.order")),
            weight=weight,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"account": self.account, "order": self.order}
        if self.weight is not None:
            out["weight"] = self.weight
        return out


def _freeze_schedules(raw: Dict[str, Any], path: str) -> Mapping[str, Mapping[str, Any]]:
    schedules = {}
    for name, config in raw.items():
        schedules[str(name)] = MappingProxyType(copy.deepcopy(_expect_dict(config, f"{path}.{name}")))
    return MappingProxyType(schedules)


@dataclass(frozen=True)
class Scenario:
    monthly_expenses: float
    duration_months: int
    assets: Tuple[Asset, ...] = ()
    income: Tuple[IncomeEvent, ...] = ()
    deposits: Tuple[DepositEvent, ...] = ()
    order: Tuple[OrderEntry, ...] = ()
    rate_schedules: Mapping[str, Mapping[str, Any]] = field(default_factory=lambda: MappingProxyType({}))
    tax_config: TaxConfig = field(default_factory=TaxConfig)
    inflation_schedule: Optional[str] = None
    inflation_rate: float = 0.0
    stop_on_shortfall: bool = True
    start_date: Optional[str] = None
    title: Optional[str] = None

    def asset(self, name: str) -> Optional[Asset]:
        for asset in self.assets:
            if asset.name == name:
                return asset
        return None

    def withdrawal_order(self) -> Tuple[OrderEntry, ...]:
        """Return the order entries, defaulting to one group per asset in listing order."""
        if self.order:
            return tuple(sorted(self.order, key=lambda entry: entry.order))
        return tuple(OrderEntry(account=a.name, order=idx + 1) for idx, a in enumerate(self.assets))

    @classmethod
    def from_dict(cls, data: Any) -> "Scenario":
        data = _expect_dict(data, "scenario")
        plan = _expect_dict(_require(data, "plan", "scenario"), "plan")
        monthly_expenses = _number(_require(plan, "monthly_expenses", "plan"), "plan.monthly_expenses")
        duration = _number(_require(plan, "duration_months", "plan"), "plan.duration_months")
        if duration < 0 or duration != int(duration):
            raise ScenarioShapeError(f"plan.duration_months: expected a non-negative whole number, got {duration}")

        assets = tuple(
            Asset.from_dict(_expect_dict(item, f"assets[{idx}]"), f"assets[{idx}]")
            for idx, item in enumerate(_expect_list(_require(data, "assets", "scenario"), "assets"))
        )
        seen = set()
        for asset in assets:
            if asset.name in seen:
                raise ScenarioShapeError(f"assets: duplicate asset name '{asset.name}'")
            seen.add(asset.name)

        tax_raw = plan.get("tax_config") or data.get("tax_config") or {}
        metadata = data.get("metadata") or {}

        return cls(
            monthly_expenses=monthly_expenses,
            duration_months=int(duration),
            assets=assets,
            income=tuple(
                IncomeEvent.from_dict(_expect_dict(item, f"income[{idx}]"), f"income[{idx}]")
                for idx, item in enumerate(_expect_list(data.get("income") or [], "income"))
            ),
            deposits=tuple(
                DepositEvent.from_dict(_expect_dict(item, f"deposits[{idx}]"), f"deposits[{idx}]")
                for idx, item in enumerate(_expect_list(data.get("deposits") or [], "deposits"))
            ),
            order=tuple(
                OrderEntry.from_dict(_expect_dict(item, f"order[{idx}]"), f"order[{idx}]")
                for idx, item in enumerate(_expect_list(data.get("order") or [], "order"))
            ),
            rate_schedules=_freeze_schedules(_expect_dict(data.get("rate_schedules") or {}, "rate_schedules"), "rate_schedules"),
            tax_config=TaxConfig.from_dict(_expect_dict(tax_raw, "plan.tax_config")),
            inflation_schedule=plan.get("inflation_schedule"),
            inflation_rate=_number(plan.get("inflation_rate", 0.0), "plan.inflation_rate"),
            stop_on_shortfall=bool(plan.get("stop_on_shortfall", True)),
            start_date=_start_date(plan.get("start_date")),
            title=metadata.get("title") if isinstance(metadata, dict) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-ready copy; mutating it never affects this scenario."""
        plan: Dict[str, Any] = {
            "monthly_expenses": self.monthly_expenses,
            "duration_months": self.duration_months,
            "inflation_rate": self.inflation_rate,
            "stop_on_shortfall": self.stop_on_shortfall,
            "tax_config": self.tax_config.to_dict(),
        }
        if self.inflation_schedule is not None:
            plan["inflation_schedule"] = self.inflation_schedule
        if self.start_date is not None:
            plan["start_date"] = self.start_date
        out: Dict[str, Any] = {
            "plan": plan,
            "assets": [a.to_dict() for a in self.assets],
            "income": [e.to_dict() for e in self.income],
            "deposits": [e.to_dict() for e in self.deposits],
            "order": [e.to_dict() for e in self.order],
            "rate_schedules": {name: _thaw(config) for name, config in self.rate_schedules.items()},
        }
        if self.title is not None:
            out["metadata"] = {"title": self.title}
        return out


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(v) for v in value]
    return value


def load_scenario(path: str | Path) -> Scenario:
    """Load a scenario JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return Scenario.from_dict(raw)
