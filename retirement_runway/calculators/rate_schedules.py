"""Time-varying rate schedules.

A rate schedule turns a 0-based month index into an *annual* rate.  Four
schedule kinds are understood:

``fixed``
    ``{"type": "fixed", "rate": 0.05}`` returns the same rate for every month.
``sequence``
    ``{"type": "sequence", "values": [...], "start_year": 0, "default_rate": r}``
    reads one value per plan year (``month // 12``).  Outside the range the
    ``default_rate`` is used, or the last value when no default is given.
``map``
    ``{"type": "map", "periods": [{"start_year": 2025, "stop_year": 2030,
    "rate": 0.03}], "default_rate": 0.02}`` matches calendar years
    (``base_year + month // 12``, base year 2025) against inclusive ranges;
    the first match wins.
``pipeline``
    ``{"pipeline": [{"start_with": 0.06}, {"add_noise": {"std_dev": 0.1}},
    {"clamp": {"min": -0.4, "max": 0.5}}]}`` folds a list of single-key steps
    over a starting rate of zero.

Resolved rates are cached per (schedule, month) so a noisy pipeline answers
the same month with the same rate for the lifetime of its manager.  Noise is
drawn from a numpy ``Generator`` keyed on the schedule's seed and the month,
which makes a seeded manager reproducible whatever order months are looked up
in.

Schedules are user data.  Unknown pipeline steps are therefore logged and
skipped, while an unknown schedule *type* is a malformed scenario.

Example
-------

>>> mgr = RateScheduleManager({"cpi": {"type": "sequence", "values": [0.02, 0.03]}})
>>> mgr.resolve("cpi", 0), mgr.resolve("cpi", 12), mgr.resolve("cpi", 60)
(0.02, 0.03, 0.03)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
import zlib

import numpy as np

from ..errors import ScenarioShapeError, UnknownScheduleError

logger = logging.getLogger(__name__)

DEFAULT_BASE_YEAR = 2025

StepFn = Callable[[float, Any, int, Optional[np.random.Generator]], float]


def _year(month: int) -> int:
    return month // 12


# ---------------------------------------------------------------------------
# Pipeline steps
# ---------------------------------------------------------------------------

def _start_with(rate, value, month, rng):
    return float(value)


def _add(rate, value, month, rng):
    return rate + float(value)


def _multiply(rate, value, month, rng):
    return rate * float(value)


def _add_noise(rate, params, month, rng):
    std_dev = float(params.get("std_dev", 0.0)) if isinstance(params, Mapping) else float(params)
    if std_dev <= 0:
        return rate
    return rate + float(rng.normal(0.0, std_dev))


def _add_trend(rate, params, month, rng):
    change = params.get("annual_change", 0.0) if isinstance(params, Mapping) else params
    return rate + float(change) * _year(month)


def _add_cycles(rate, params, month, rng):
    period = int(params["period"])
    amplitude = float(params["amplitude"])
    if period <= 0:
        return rate
    phase = _year(month) % period
    if phase == 0:
        return rate + amplitude
    if phase == period // 2:
        return rate - amplitude
    return rate


def _overlay_sequence(rate, params, month, rng):
    year = DEFAULT_BASE_YEAR + _year(month)
    for key in (year, str(year)):
        if key in params:
            return float(params[key])
    return rate


def _clamp(rate, params, month, rng):
    return max(float(params["min"]), min(float(params["max"]), rate))


def _floor(rate, value, month, rng):
    return max(float(value), rate)


def _ceiling(rate, value, month, rng):
    return min(float(value), rate)


PIPELINE_STEPS: Dict[str, StepFn] = {
    "start_with": _start_with,
    "add": _add,
    "multiply": _multiply,
    "add_noise": _add_noise,
    "add_trend": _add_trend,
    "add_cycles": _add_cycles,
    "overlay_sequence": _overlay_sequence,
    "clamp": _clamp,
    "floor": _floor,
    "ceiling": _ceiling,
}

_NOISY_STEPS = {"add_noise"}


def register_step(name: str, fn: StepFn, noisy: bool = False) -> None:
    """Register a pipeline step ``fn(rate, params, month, rng) -> rate``.

    Pass ``noisy=True`` when the step draws from ``rng``; otherwise ``rng`` may
    be ``None``.
    """
    PIPELINE_STEPS[name] = fn
    if noisy:
        _NOISY_STEPS.add(name)


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

class RateSchedule:
    """A single compiled schedule with its own per-month cache."""

    def __init__(self, name: str, config: Mapping[str, Any], entropy: Tuple[int, ...]):
        self.name = name
        self.config = config
        self.kind = self._kind_of(name, config)
        self._entropy = entropy
        self._cache: Dict[int, float] = {}
        self._steps: List[Tuple[str, Any]] = []
        if self.kind == "pipeline":
            self._steps = self._compile_steps(name, config)
        self._needs_rng = any(op in _NOISY_STEPS for op, _ in self._steps)

    @staticmethod
    def _kind_of(name: str, config: Mapping[str, Any]) -> str:
        kind = config.get("type")
        if kind is None and "pipeline" in config:
            return "pipeline"
        if kind not in ("fixed", "sequence", "map", "pipeline"):
            raise ScenarioShapeError(f"rate_schedules.{name}: unknown rate type {kind!r}")
        if kind == "fixed" and "rate" not in config:
            raise ScenarioShapeError(f"rate_schedules.{name}: fixed schedule needs a rate")
        if kind == "sequence" and not isinstance(config.get("values"), (list, tuple)):
            raise ScenarioShapeError(f"rate_schedules.{name}: sequence schedule needs a values array")
        if kind == "map" and not isinstance(config.get("periods", []), (list, tuple)):
            raise ScenarioShapeError(f"rate_schedules.{name}: map periods must be an array")
        return kind

    @staticmethod
    def _compile_steps(name: str, config: Mapping[str, Any]) -> List[Tuple[str, Any]]:
        raw = config.get("pipeline", config.get("steps"))
        if not isinstance(raw, (list, tuple)):
            raise ScenarioShapeError(f"rate_schedules.{name}: pipeline must be an array of steps")
        steps = []
        for idx, step in enumerate(raw):
            if not isinstance(step, Mapping) or len(step) != 1:
                raise ScenarioShapeError(
                    f"rate_schedules.{name}.pipeline[{idx}]: each step must be an object with one key"
                )
            ((op, params),) = step.items()
            if op not in PIPELINE_STEPS:
                logger.warning("Unknown pipeline operation %r in schedule %r; ignoring it", op, name)
            steps.append((op, params))
        return steps

    def fresh(self, entropy: Optional[Tuple[int, ...]] = None) -> "RateSchedule":
        """Return a copy with an empty cache, optionally re-seeded."""
        clone = object.__new__(RateSchedule)
        clone.__dict__.update(self.__dict__)
        clone._cache = {}
        if entropy is not None:
            clone._entropy = entropy
        return clone

    def rate_for(self, month: int) -> float:
        cached = self._cache.get(month)
        if cached is not None:
            return cached
        if self.kind == "fixed":
            rate = float(self.config["rate"])
        elif self.kind == "sequence":
            rate = self._sequence_rate(month)
        elif self.kind == "map":
            rate = self._map_rate(month)
        else:
            rate = self._pipeline_rate(month)
        self._cache[month] = rate
        return rate

    def _sequence_rate(self, month: int) -> float:
        values = self.config["values"]
        idx = _year(month) - int(self.config.get("start_year", 0) or 0)
        if 0 <= idx < len(values):
            return float(values[idx])
        default = self.config.get("default_rate")
        if default is not None:
            return float(default)
        return float(values[-1]) if values else 0.0

    def _map_rate(self, month: int) -> float:
        year = int(self.config.get("base_year", DEFAULT_BASE_YEAR)) + _year(month)
        for period in self.config.get("periods", []):
            if int(period["start_year"]) <= year <= int(period["stop_year"]):
                return float(period["rate"])
        return float(self.config.get("default_rate", 0.0) or 0.0)

    def _pipeline_rate(self, month: int) -> float:
        rng = np.random.default_rng([*self._entropy, month]) if self._needs_rng else None
        rate = 0.0
        for op, params in self._steps:
            fn = PIPELINE_STEPS.get(op)
            if fn is None:
                continue
            rate = fn(rate, params, month, rng)
        return rate


def _entropy_for(name: str, seed: Optional[int]) -> Tuple[int, ...]:
    if seed is None:
        seed = int(np.random.SeedSequence().entropy % (2**63))
    return (int(seed), zlib.crc32(name.encode("utf-8")))


class RateScheduleManager:
    """Registry of named schedules.

    Parameters
    ----------
    configs : mapping, optional
        ``{name: config}`` loaded on construction.
    seed : int, optional
        Seed for noise-bearing pipeline steps.  A step may pin its own noise
        by carrying ``{"add_noise": {"std_dev": 0.1, "seed": 7}}``; that seed
        then takes precedence.
    """

    def __init__(self, configs: Optional[Mapping[str, Mapping[str, Any]]] = None, seed: Optional[int] = None):
        self.seed = seed
        self._schedules: Dict[str, RateSchedule] = {}
        if configs:
            self.load(configs)

    def _schedule_seed(self, config: Mapping[str, Any]) -> Optional[int]:
        for step in config.get("pipeline", config.get("steps")) or []:
            if isinstance(step, Mapping):
                params = step.get("add_noise")
                if isinstance(params, Mapping) and params.get("seed") is not None:
                    return int(params["seed"])
        return self.seed

    def register(self, name: str, config: Mapping[str, Any]) -> None:
        if not isinstance(config, Mapping):
            raise ScenarioShapeError(f"rate_schedules.{name}: expected object")
        self._schedules[name] = RateSchedule(name, config, _entropy_for(name, self._schedule_seed(config)))

    def load(self, configs: Mapping[str, Mapping[str, Any]]) -> None:
        for name, config in configs.items():
            self.register(name, config)

    def names(self) -> List[str]:
        return list(self._schedules)

    def __contains__(self, name: object) -> bool:
        return name in self._schedules

    def require(self, names: Iterable[str]) -> None:
        """Raise :class:`UnknownScheduleError` for the first unregistered name."""
        for name in names:
            if name not in self._schedules:
                raise UnknownScheduleError(name)

    def resolve(self, name: str, month: int) -> float:
        """Annual rate of schedule ``name`` in 0-based ``month``."""
        try:
            schedule = self._schedules[name]
        except KeyError:
            raise UnknownScheduleError(name) from None
        return schedule.rate_for(month)

    def with_overrides(
        self,
        overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
        seed: Optional[int] = None,
    ) -> "RateScheduleManager":
        """Return a copy sharing no caches, with ``overrides`` replacing named schedules.

        When ``seed`` is given every copied schedule is re-seeded with it.
        """
        clone = RateScheduleManager(seed=self.seed if seed is None else seed)
        for name, schedule in self._schedules.items():
            entropy = None if seed is None else _entropy_for(name, clone._schedule_seed(schedule.config))
            clone._schedules[name] = schedule.fresh(entropy)
        if overrides:
            clone.load(overrides)
        return clone
