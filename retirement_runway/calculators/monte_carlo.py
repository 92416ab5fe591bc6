"""Monte Carlo analysis over the projection engine.

Each trial

1. derives its own seed from the master seed and its trial index, so a run is
   reproducible whatever order (or process) trials execute in;
2. optionally redraws scenario inputs named in ``variable_ranges`` (dotted
   paths into the scenario document, for example
   ``"plan.monthly_expenses"`` or ``"assets.0.balance"``);
3. asks the return model for one annual return per plan year for every asset
   class and installs those sequences in place of the scenario's return
   schedules;
4. runs the deterministic projection.

The trajectories are then reduced to percentile bands of total balance, a
success rate, survival statistics and risk metrics.

Bands treat a trial that already stopped as holding exactly zero, so late
bands show the real failure fraction rather than only the survivors.  A band
is emitted only while at least ``max(10, ceil(10% of iterations))`` trials
are still running.

Percentiles use linear interpolation between order statistics (numpy's
default ``linear`` method):

>>> percentile([10, 20, 30, 40, 50, 60, 70, 80, 90, 100], 50)
55.0

A failing trial fails the whole analysis; its exception is re-raised as is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
import multiprocessing as mp
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..config import MonteCarloConfig, normalize_range
from ..errors import AnalysisCancelledError, ConfigurationError
from ..scenario import Scenario
from . import projection
from .projection import ProjectionResult
from .rate_schedules import RateScheduleManager
from .return_models import ReturnModelService, default_service

logger = logging.getLogger(__name__)

BAND_PERCENTILES = (10, 25, 50, 75, 90)
STAT_PERCENTILES = (10, 25, 50, 75, 90, 95, 99)
MIN_BAND_SAMPLES = 10
RISK_LEVEL = 5

# Scenario fields that only take whole numbers.
INTEGER_FIELDS = frozenset({"duration_months", "start_month", "stop_month", "end_month", "order"})

KEY_SCENARIOS = (
    ("worst", 0, "Lowest final balance of all trials"),
    ("p10", 10, "Only 10% of trials ended lower"),
    ("p25", 25, "Only 25% of trials ended lower"),
    ("median", 50, "Half of the trials ended higher, half lower"),
    ("p75", 75, "Only 25% of trials ended higher"),
    ("p90", 90, "Only 10% of trials ended higher"),
    ("best", 100, "Highest final balance of all trials"),
)


@dataclass(frozen=True)
class PercentileBand:
    month: int
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float
    active_count: int


@dataclass(frozen=True)
class MonteCarloResult:
    trajectories: Tuple[ProjectionResult, ...]
    percentile_bands: Tuple[PercentileBand, ...]
    success_rate: float
    risk_metrics: Dict[str, Any]
    survival_statistics: Dict[str, Any] = field(default_factory=dict)
    statistics: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    key_scenarios: Tuple[Dict[str, Any], ...] = ()
    meets_target: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def final_balances(self) -> List[float]:
        return [t.final_balance for t in self.trajectories]


# ---------------------------------------------------------------------------
# Statistics helpers
# ---------------------------------------------------------------------------

def percentile(values: Iterable[float], p: float) -> float:
    """Linear-interpolation percentile of ``values`` (which need not be sorted).

    ``p`` is clamped to ``[0, 100]``.  An empty input returns ``0.0``.
    """
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return 0.0
    return float(np.percentile(arr, min(100.0, max(0.0, float(p)))))


def describe(values: Sequence[float], percentiles: Iterable[float] = STAT_PERCENTILES) -> Dict[str, Any]:
    """Mean, median, population standard deviation, extremes and percentiles."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return {"mean": 0.0, "median": 0.0, "std_dev": 0.0, "min": 0.0, "max": 0.0, "percentiles": {}}
    return {
        "mean": float(arr.mean()),
        "median": float(np.percentile(arr, 50)),
        "std_dev": float(arr.std()),
        "min": float(arr.min()),
        "max": float(arr.max()),
        "percentiles": {p: float(np.percentile(arr, p)) for p in percentiles},
    }


def band_threshold(iterations: int) -> int:
    return max(MIN_BAND_SAMPLES, math.ceil(0.1 * iterations))


def percentile_bands(trajectories: Sequence[ProjectionResult], iterations: Optional[int] = None) -> List[PercentileBand]:
    """Per-month p10..p90 of total balance across all trials.

    Trials that stopped before a month count as zero in it.  Months where
    fewer than :func:`band_threshold` trials are still running are left out;
    ``month`` in each band is 1-based.
    """
    n = len(trajectories)
    if n == 0:
        return []
    threshold = band_threshold(iterations if iterations is not None else n)
    horizon = max(t.actual_duration for t in trajectories)
    balances = np.zeros((n, horizon))
    durations = np.zeros(n, dtype=int)
    for i, t in enumerate(trajectories):
        totals = t.total_balances
        balances[i, : len(totals)] = totals
        durations[i] = len(totals)

    bands = []
    for month in range(horizon):
        running = int((durations > month).sum())
        if running < threshold:
            break
        p10, p25, p50, p75, p90 = np.percentile(balances[:, month], BAND_PERCENTILES)
        bands.append(
            PercentileBand(
                month=month + 1,
                p10=float(p10),
                p25=float(p25),
                p50=float(p50),
                p75=float(p75),
                p90=float(p90),
                active_count=running,
            )
        )
    return bands


def is_success(trajectory: ProjectionResult, target_months: int) -> bool:
    """No shortfall within ``target_months`` and money left at the end."""
    return not trajectory.had_shortfall(within=target_months) and trajectory.final_balance > 0


def survival_months(trajectory: ProjectionResult) -> int:
    """Months funded in full before the first shortfall."""
    first = trajectory.first_shortfall_month
    return trajectory.actual_duration if first is None else first


def survival_statistics(trajectories: Sequence[ProjectionResult]) -> Dict[str, Any]:
    times = [survival_months(t) for t in trajectories]
    stats = describe(times, (10, 25, 50, 75, 90))
    return {
        "survival_times": times,
        "mean": stats["mean"],
        "median": stats["median"],
        "min": stats["min"],
        "max": stats["max"],
        **{f"p{int(p)}": v for p, v in stats["percentiles"].items()},
    }


def risk_metrics(trajectories: Sequence[ProjectionResult]) -> Dict[str, Any]:
    """Value at risk and conditional VaR at 5% of final balance, plus drawdown statistics."""
    finals = np.asarray([t.final_balance for t in trajectories], dtype=float)
    drawdowns = [t.max_drawdown() for t in trajectories]
    if finals.size == 0:
        return {"value_at_risk": 0.0, "conditional_value_at_risk": 0.0, "max_drawdown": describe([])}
    var = float(np.percentile(finals, RISK_LEVEL))
    tail = finals[finals <= var]
    return {
        "confidence_level": 1 - RISK_LEVEL / 100,
        "value_at_risk": var,
        "conditional_value_at_risk": float(tail.mean()) if tail.size else var,
        "probability_of_depletion": float((finals <= 0).mean()),
        "max_drawdown": describe(drawdowns, (50, 75, 90, 95)),
    }


def key_scenarios(trajectories: Sequence[ProjectionResult]) -> List[Dict[str, Any]]:
    """Representative trials at fixed ranks of final balance."""
    n = len(trajectories)
    if n == 0:
        return []
    ranked = sorted(range(n), key=lambda i: trajectories[i].final_balance)
    out = []
    for label, p, description in KEY_SCENARIOS:
        trial = ranked[int(math.floor(p / 100 * (n - 1)))]
        t = trajectories[trial]
        out.append(
            {
                "label": label,
                "percentile": p,
                "trial_index": trial,
                "final_balance": t.final_balance,
                "survival_months": survival_months(t),
                "max_drawdown": t.max_drawdown(),
                "description": description,
            }
        )
    return out


# ---------------------------------------------------------------------------
# Trials
# ---------------------------------------------------------------------------

def trial_seed(master_seed: int, trial_index: int) -> int:
    return int(np.random.SeedSequence([master_seed, trial_index]).generate_state(1)[0])


def draw_value(spec: Mapping[str, Any], rng: np.random.Generator) -> float:
    kind = spec["type"]
    if kind == "normal":
        return float(rng.normal(spec["mean"], spec["std_dev"]))
    if kind == "uniform":
        return float(rng.uniform(spec["min"], spec["max"]))
    if kind == "lognormal":
        sigma = spec["std_dev"]
        return float(rng.lognormal(math.log(spec["mean"]) - 0.5 * sigma**2, sigma))
    if kind == "triangular":
        if spec["min"] == spec["max"]:
            return float(spec["min"])
        return float(rng.triangular(spec["min"], spec["mode"], spec["max"]))
    raise ConfigurationError(f"Unknown distribution type: {kind}")


def set_path(doc: Dict[str, Any], path: str, value: float) -> None:
    """Set ``value`` at a dotted ``path``, creating missing objects.

    Numeric keys index into lists.  Month counts and priorities are rounded
    to whole numbers.
    """
    keys = path.split(".")
    current: Any = doc
    try:
        for key in keys[:-1]:
            if isinstance(current, list):
                current = current[int(key)]
            else:
                current = current.setdefault(key, {})
        last = keys[-1]
        if last in INTEGER_FIELDS:
            value = int(round(value))
        if isinstance(current, list):
            last = int(last)
        current[last] = value
    except (IndexError, ValueError, TypeError, AttributeError) as exc:
        raise ConfigurationError(f"variableRanges.{path}: cannot set value ({exc})") from exc


def _touched_schedules(variable_ranges: Mapping[str, Any]) -> frozenset:
    return frozenset(path.split(".")[1] for path in variable_ranges if path.startswith("rate_schedules."))


class TrialRunner:
    """Runs single trials of one analysis; picklable for worker processes."""

    def __init__(self, scenario: Scenario, config: MonteCarloConfig, master_seed: int,
                 service: Optional[ReturnModelService] = None):
        self.scenario = scenario
        self.config = config
        self.master_seed = master_seed
        self.service = service or default_service
        self.ranges = {path: normalize_range(path, spec) for path, spec in config.variable_ranges.items()}
        self.protected = _touched_schedules(self.ranges)
        self._base_schedules: Optional[RateScheduleManager] = None

    def __getstate__(self):
        return {
            "scenario": self.scenario.to_dict(),
            "config": self.config,
            "master_seed": self.master_seed,
        }

    def __setstate__(self, state):
        self.__init__(Scenario.from_dict(state["scenario"]), state["config"], state["master_seed"])

    def base_schedules(self) -> RateScheduleManager:
        if self._base_schedules is None:
            self._base_schedules = projection.build_schedules(self.scenario)
        return self._base_schedules

    def return_overrides(self, scenario: Scenario, seed: int) -> Dict[str, Dict[str, Any]]:
        """``sequence`` schedules carrying this trial's returns, keyed by schedule name."""
        by_class: Dict[str, List[str]] = {}
        for asset in scenario.assets:
            name = asset.return_schedule
            if name and name not in self.protected:
                names = by_class.setdefault(asset.asset_class, [])
                if name not in names:
                    names.append(name)
        if not by_class:
            return {}
        classes = sorted(by_class)
        years = max(1, math.ceil(scenario.duration_months / 12))
        returns = self.service.generate(
            self.config.return_model, classes, years, seed=seed, config=self.config.return_model_config
        )
        overrides = {}
        for asset_class in classes:
            for name in by_class[asset_class]:
                overrides[name] = {"type": "sequence", "values": list(returns[asset_class]), "start_year": 0}
        return overrides

    def __call__(self, trial_index: int) -> ProjectionResult:
        rng = np.random.default_rng(trial_seed(self.master_seed, trial_index))
        scenario = self.scenario
        if self.ranges:
            doc = scenario.to_dict()
            for path, spec in self.ranges.items():
                set_path(doc, path, draw_value(spec, rng))
            scenario = Scenario.from_dict(doc)
        return_seed, noise_seed = (int(x) for x in rng.integers(0, 2**32, size=2))
        overrides = self.return_overrides(scenario, return_seed)
        if self.protected:
            schedules = projection.build_schedules(scenario, seed=noise_seed)
        else:
            schedules = self.base_schedules().with_overrides(seed=noise_seed)
        logger.debug("Trial %d: %d return schedule override(s)", trial_index, len(overrides))
        return projection.run(scenario, rate_overrides=overrides, schedules=schedules)


def _run_serial(runner, total, progress, cancel_event) -> List[ProjectionResult]:
    trajectories = []
    for idx in range(total):
        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelledError(idx, total)
        trajectories.append(runner(idx))
        if progress is not None:
            progress(idx + 1, total)
    return trajectories


def _run_pool(runner, total, workers, progress, cancel_event) -> List[ProjectionResult]:
    trajectories = []
    with mp.Pool(workers) as pool:
        # imap keeps trial order, so results line up with trial indices.
        for result in pool.imap(runner, range(total), chunksize=max(1, total // (workers * 8))):
            trajectories.append(result)
            if progress is not None:
                progress(len(trajectories), total)
            if cancel_event is not None and cancel_event.is_set() and len(trajectories) < total:
                pool.terminate()
                raise AnalysisCancelledError(len(trajectories), total)
    return trajectories


def analyze(
    scenario: Scenario | Mapping[str, Any],
    config: MonteCarloConfig | Mapping[str, Any] | None = None,
    service: Optional[ReturnModelService] = None,
    progress: Optional[Callable[[int, int], None]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> MonteCarloResult:
    """Run a Monte Carlo analysis of ``scenario``.

    Parameters
    ----------
    scenario : Scenario or dict
        The plan to perturb.
    config : MonteCarloConfig or dict, optional
        Analysis options; a mapping is read with
        :meth:`MonteCarloConfig.from_dict`.
    service : ReturnModelService, optional
        Registry to look the return model up in.
    progress : callable, optional
        Called as ``progress(completed, total)`` after every trial.
    cancel_event : threading.Event, optional
        When set, the analysis stops before the next trial and raises
        :class:`AnalysisCancelledError`.

    Returns
    -------
    MonteCarloResult
    """
    if not isinstance(scenario, Scenario):
        scenario = Scenario.from_dict(scenario)
    if not isinstance(config, MonteCarloConfig):
        config = MonteCarloConfig.from_dict(config)
    service = service or default_service
    service.get(config.return_model)

    iterations = config.iterations
    if iterations > config.max_iterations:
        logger.warning("Iterations capped at %d (requested %d)", config.max_iterations, iterations)
        iterations = config.max_iterations

    master_seed = config.random_seed
    if master_seed is None:
        master_seed = int(np.random.SeedSequence().entropy % (2**63))
    target_months = config.target_survival_months or scenario.duration_months

    runner = TrialRunner(scenario, config, master_seed, service)
    # Fail on unknown schedule names before the first trial.
    runner.base_schedules()

    logger.info(
        "Starting Monte Carlo analysis: %d trials, model %s, seed %d", iterations, config.return_model, master_seed
    )
    started = time.perf_counter()
    workers = min(config.workers, iterations)
    if workers > 1 and service is default_service:
        trajectories = _run_pool(runner, iterations, workers, progress, cancel_event)
    else:
        if workers > 1:
            logger.warning("A custom return model service runs in-process; ignoring workers=%d", workers)
        trajectories = _run_serial(runner, iterations, progress, cancel_event)
    elapsed = time.perf_counter() - started

    successes = sum(
        1 for t in trajectories if is_success(t, config.target_survival_months or t.duration_months)
    )
    success_rate = successes / len(trajectories)
    finals = [t.final_balance for t in trajectories]
    logger.info("Monte Carlo analysis finished in %.2fs: success rate %.1f%%", elapsed, success_rate * 100)

    return MonteCarloResult(
        trajectories=tuple(trajectories),
        percentile_bands=tuple(percentile_bands(trajectories, iterations)),
        success_rate=success_rate,
        risk_metrics=risk_metrics(trajectories),
        survival_statistics=survival_statistics(trajectories),
        statistics={
            "final_balance": describe(finals, config.confidence_intervals),
            "max_drawdown": describe([t.max_drawdown() for t in trajectories], config.confidence_intervals),
            "survival_months": describe([survival_months(t) for t in trajectories], config.confidence_intervals),
        },
        key_scenarios=tuple(key_scenarios(trajectories)),
        meets_target=success_rate >= config.target_success_rate,
        metadata={
            "iterations": iterations,
            "requested_iterations": config.iterations,
            "random_seed": master_seed,
            "return_model": config.return_model,
            "target_survival_months": target_months,
            "target_success_rate": config.target_success_rate,
            "successful_trials": successes,
            "workers": workers,
            "elapsed_seconds": elapsed,
        },
    )
