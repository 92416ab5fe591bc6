"""Tests for named rate schedules."""

import logging

import pytest

from retirement_runway.calculators.rate_schedules import RateScheduleManager
from retirement_runway.errors import ScenarioShapeError, UnknownScheduleError


def test_fixed_rate():
    mgr = RateScheduleManager({"flat": {"type": "fixed", "rate": 0.05}})
    assert mgr.resolve("flat", 0) == 0.05
    assert mgr.resolve("flat", 400) == 0.05


def test_sequence_reads_one_value_per_year():
    """Months map to years by integer division; past the end the last value holds."""
    mgr = RateScheduleManager({"cpi": {"type": "sequence", "values": [0.02, 0.03]}})
    assert mgr.resolve("cpi", 0) == 0.02
    assert mgr.resolve("cpi", 11) == 0.02
    assert mgr.resolve("cpi", 12) == 0.03
    assert mgr.resolve("cpi", 60) == 0.03


def test_sequence_default_rate_and_start_year():
    mgr = RateScheduleManager(
        {"s": {"type": "sequence", "values": [0.04], "start_year": 1, "default_rate": 0.01}}
    )
    assert mgr.resolve("s", 0) == 0.01
    assert mgr.resolve("s", 12) == 0.04
    assert mgr.resolve("s", 24) == 0.01


def test_map_matches_calendar_years():
    mgr = RateScheduleManager(
        {
            "m": {
                "type": "map",
                "periods": [
                    {"start_year": 2025, "stop_year": 2027, "rate": 0.03},
                    {"start_year": 2026, "stop_year": 2030, "rate": 0.09},
                ],
                "default_rate": 0.01,
            }
        }
    )
    assert mgr.resolve("m", 0) == 0.03
    # first match wins over the overlapping second period
    assert mgr.resolve("m", 24) == 0.03
    assert mgr.resolve("m", 36) == 0.09
    assert mgr.resolve("m", 12 * 10) == 0.01


def test_pipeline_arithmetic_steps():
    mgr = RateScheduleManager({"p": {"pipeline": [{"start_with": 0.05}, {"add": 0.01}, {"multiply": 2}]}})
    assert mgr.resolve("p", 0) == pytest.approx(0.12)


def test_pipeline_trend_and_cycles():
    mgr = RateScheduleManager(
        {
            "trend": {"pipeline": [{"start_with": 0.05}, {"add_trend": {"annual_change": 0.01}}]},
            "cycle": {"pipeline": [{"start_with": 0.05}, {"add_cycles": {"period": 4, "amplitude": 0.02}}]},
        }
    )
    assert mgr.resolve("trend", 24) == pytest.approx(0.07)
    assert mgr.resolve("cycle", 0) == pytest.approx(0.07)
    assert mgr.resolve("cycle", 12) == pytest.approx(0.05)
    assert mgr.resolve("cycle", 24) == pytest.approx(0.03)


def test_pipeline_overlay_and_bounds():
    mgr = RateScheduleManager(
        {
            "o": {"pipeline": [{"start_with": 0.05}, {"overlay_sequence": {"2027": -0.3}}, {"floor": -0.1}]},
            "c": {"pipeline": [{"start_with": 0.8}, {"clamp": {"min": -0.5, "max": 0.5}}]},
            "ceil": {"pipeline": [{"start_with": 0.3}, {"ceiling": 0.2}]},
        }
    )
    assert mgr.resolve("o", 0) == pytest.approx(0.05)
    assert mgr.resolve("o", 24) == pytest.approx(-0.1)
    assert mgr.resolve("c", 0) == pytest.approx(0.5)
    assert mgr.resolve("ceil", 0) == pytest.approx(0.2)


def test_noise_is_cached_and_seeded():
    """A noisy month answers the same rate on every lookup, and seeds reproduce it."""
    config = {"n": {"pipeline": [{"start_with": 0.06}, {"add_noise": {"std_dev": 0.1}}]}}
    mgr = RateScheduleManager(config, seed=42)
    first = [mgr.resolve("n", m) for m in range(24)]
    assert [mgr.resolve("n", m) for m in range(24)] == first
    assert len(set(first)) > 1

    again = RateScheduleManager(config, seed=42)
    assert [again.resolve("n", m) for m in reversed(range(24))] == list(reversed(first))


def test_unknown_pipeline_step_is_logged_and_ignored(caplog):
    with caplog.at_level(logging.WARNING):
        mgr = RateScheduleManager({"p": {"pipeline": [{"start_with": 0.04}, {"teleport": 3}, {"add": 0.01}]}})
    assert mgr.resolve("p", 0) == pytest.approx(0.05)
    assert any("teleport" in rec.getMessage() for rec in caplog.records)


def test_unknown_schedule_names_the_offender():
    mgr = RateScheduleManager({})
    with pytest.raises(UnknownScheduleError, match="missing"):
        mgr.resolve("missing", 0)


def test_unknown_schedule_type_is_a_shape_error():
    with pytest.raises(ScenarioShapeError):
        RateScheduleManager({"bad": {"type": "spline"}})


def test_overrides_do_not_touch_the_original():
    mgr = RateScheduleManager({"r": {"type": "fixed", "rate": 0.05}})
    mgr.resolve("r", 0)
    copy = mgr.with_overrides({"r": {"type": "sequence", "values": [0.1, 0.2], "start_year": 0}})
    assert copy.resolve("r", 12) == 0.2
    assert mgr.resolve("r", 12) == 0.05
    assert sorted(copy.names()) == ["r"]
