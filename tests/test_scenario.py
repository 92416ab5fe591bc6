"""Tests for scenario parsing and shape checks."""

import json

import pytest

from retirement_runway.errors import ScenarioShapeError
from retirement_runway.scenario import Scenario, load_scenario


def _raw() -> dict:
    return {
        "plan": {"monthly_expenses": 4000, "duration_months": 120, "inflation_schedule": "cpi"},
        "assets": [
            {"name": "401k", "type": "tax_deferred", "balance": 200000, "return_schedule": "stocks"},
            {"name": "Roth", "type": "tax_free", "balance": 50000, "start_month": 12, "min_balance": 1000},
        ],
        "income": [{"name": "Pension", "amount": 1500, "start_month": 25, "end_month": 60}],
        "deposits": [{"name": "Inheritance", "amount": 30000, "start_month": 36, "stop_month": 36}],
        "order": [{"account": "Roth", "order": 2}, {"account": "401k", "order": 1, "weight": 2}],
        "rate_schedules": {
            "stocks": {"type": "fixed", "rate": 0.06},
            "cpi": {"type": "fixed", "rate": 0.025},
        },
    }


def test_parses_full_document():
    s = Scenario.from_dict(_raw())
    assert s.monthly_expenses == 4000
    assert s.duration_months == 120
    assert [a.name for a in s.assets] == ["401k", "Roth"]
    assert s.assets[1].start_month == 12
    assert s.income[0].stop_month == 60
    assert s.deposits[0].target_name == "Inheritance"
    assert s.stop_on_shortfall is True
    assert s.tax_config.tax_deferred == 0.22


def test_withdrawal_order_is_sorted_by_priority():
    s = Scenario.from_dict(_raw())
    assert [e.account for e in s.withdrawal_order()] == ["401k", "Roth"]


def test_default_order_follows_asset_listing():
    raw = _raw()
    del raw["order"]
    s = Scenario.from_dict(raw)
    assert [(e.account, e.order) for e in s.withdrawal_order()] == [("401k", 1), ("Roth", 2)]


def test_activation_is_one_indexed():
    s = Scenario.from_dict(_raw())
    roth = s.asset("Roth")
    assert not roth.is_active(11)
    assert roth.is_active(12)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda raw: raw.pop("plan"),
        lambda raw: raw.pop("assets"),
        lambda raw: raw["plan"].pop("monthly_expenses"),
        lambda raw: raw["plan"].pop("duration_months"),
        lambda raw: raw["assets"].append({"name": "401k"}),
        lambda raw: raw["assets"][0].update(type="crypto"),
        lambda raw: raw["plan"].update(duration_months=12.5),
        lambda raw: raw["plan"].update(start_date="Jan 2025"),
    ],
)
def test_shape_errors(mutate):
    raw = _raw()
    mutate(raw)
    with pytest.raises(ScenarioShapeError):
        Scenario.from_dict(raw)


def test_tax_rate_must_be_below_one():
    raw = _raw()
    raw["plan"]["tax_config"] = {"taxable": 1.0}
    with pytest.raises(ScenarioShapeError):
        Scenario.from_dict(raw)


def test_to_dict_round_trips():
    s = Scenario.from_dict(_raw())
    again = Scenario.from_dict(s.to_dict())
    assert again.assets == s.assets
    assert again.income == s.income
    assert again.deposits == s.deposits
    assert again.order == s.order
    assert again.to_dict() == s.to_dict()


def test_to_dict_is_a_detached_copy():
    s = Scenario.from_dict(_raw())
    doc = s.to_dict()
    doc["rate_schedules"]["stocks"]["rate"] = 0.5
    assert s.rate_schedules["stocks"]["rate"] == 0.06


def test_load_scenario(tmp_path):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps(_raw()), encoding="utf-8")
    s = load_scenario(path)
    assert s.asset("401k").balance == 200000
