"""Monte Carlo analysis options.

Options arrive from callers as a plain mapping, either in camelCase (as the
browser front end sends them) or in snake_case::

    {"iterations": 2000, "randomSeed": 42, "returnModel": "historical-sequence",
     "targetSurvivalMonths": 360, "targetSuccessRate": 0.85,
     "variableRanges": {"plan.monthly_expenses": {"type": "normal",
                                                   "mean": 4000, "stdDev": 300}}}

Unknown keys are ignored.  Invalid values raise
:class:`~retirement_runway.errors.ConfigurationError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError

DEFAULT_ITERATIONS = 1000
MAX_ITERATIONS = 10000
DEFAULT_CONFIDENCE_INTERVALS = (10, 25, 50, 75, 90)
DISTRIBUTIONS = ("normal", "uniform", "lognormal", "triangular")

# snake_case field -> accepted spellings
_ALIASES: Dict[str, Tuple[str, ...]] = {
    "iterations": ("iterations",),
    "random_seed": ("random_seed", "randomSeed", "seed"),
    "target_survival_months": ("target_survival_months", "targetSurvivalMonths"),
    "target_success_rate": ("target_success_rate", "targetSuccessRate"),
    "return_model": ("return_model", "returnModel"),
    "return_model_config": ("return_model_config", "returnModelConfig"),
    "variable_ranges": ("variable_ranges", "variableRanges"),
    "confidence_intervals": ("confidence_intervals", "confidenceIntervals"),
    "workers": ("workers",),
    "max_iterations": ("max_iterations", "maxIterations"),
}

# Parameters each distribution needs; "stdDev" is accepted for std_dev.
_REQUIRED_PARAMS = {
    "normal": ("mean", "std_dev"),
    "uniform": ("min", "max"),
    "lognormal": ("mean", "std_dev"),
    "triangular": ("min", "mode", "max"),
}


def _lookup(data: Mapping[str, Any], name: str) -> Any:
    for key in _ALIASES[name]:
        if key in data and data[key] is not None:
            return data[key]
    return None


def normalize_range(path: str, spec: Any) -> Dict[str, Any]:
    if not isinstance(spec, Mapping):
        raise ConfigurationError(f"variableRanges.{path}: expected object")
    kind = spec.get("type")
    if kind not in DISTRIBUTIONS:
        raise ConfigurationError(f"Unknown distribution type: {kind}")
    out: Dict[str, Any] = {"type": kind}
    for param in _REQUIRED_PARAMS[kind]:
        value = spec.get(param, spec.get("stdDev") if param == "std_dev" else None)
        if value is None:
            raise ConfigurationError(f"variableRanges.{path}: {kind} distribution needs '{param}'")
        out[param] = float(value)
    if kind in ("normal", "lognormal") and out["std_dev"] < 0:
        raise ConfigurationError(f"variableRanges.{path}: std_dev must not be negative")
    if kind == "lognormal" and out["mean"] <= 0:
        raise ConfigurationError(f"variableRanges.{path}: lognormal mean must be positive")
    if kind in ("uniform", "triangular") and out["min"] > out["max"]:
        raise ConfigurationError(f"variableRanges.{path}: min exceeds max")
    if kind == "triangular" and not out["min"] <= out["mode"] <= out["max"]:
        raise ConfigurationError(f"variableRanges.{path}: mode must lie between min and max")
    return out


@dataclass(frozen=True)
class MonteCarloConfig:
    iterations: int = DEFAULT_ITERATIONS
    random_seed: Optional[int] = None
    target_survival_months: Optional[int] = None
    target_success_rate: float = 0.80
    return_model: str = "independent-normal"
    return_model_config: Mapping[str, Any] = field(default_factory=dict)
    variable_ranges: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    confidence_intervals: Tuple[float, ...] = DEFAULT_CONFIDENCE_INTERVALS
    workers: int = 1
    max_iterations: int = MAX_ITERATIONS

    def __post_init__(self):
        if self.iterations < 1:
            raise ConfigurationError(f"iterations must be at least 1, got {self.iterations}")
        if not 0 <= self.target_success_rate <= 1:
            raise ConfigurationError(f"targetSuccessRate must be in [0, 1], got {self.target_success_rate}")
        if self.random_seed is not None and self.random_seed < 0:
            raise ConfigurationError(f"randomSeed must be non-negative, got {self.random_seed}")
        if self.workers < 1:
            raise ConfigurationError(f"workers must be at least 1, got {self.workers}")
        for p in self.confidence_intervals:
            if not 0 <= p <= 100:
                raise ConfigurationError(f"confidence interval {p} is outside [0, 100]")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]] = None) -> "MonteCarloConfig":
        data = data or {}
        kwargs: Dict[str, Any] = {}
        for name in _ALIASES:
            value = _lookup(data, name)
            if value is not None:
                kwargs[name] = value
        try:
            for name in ("iterations", "workers", "max_iterations", "target_survival_months", "random_seed"):
                if name in kwargs:
                    kwargs[name] = int(kwargs[name])
            if "target_success_rate" in kwargs:
                kwargs["target_success_rate"] = float(kwargs["target_success_rate"])
            if "confidence_intervals" in kwargs:
                kwargs["confidence_intervals"] = tuple(float(p) for p in kwargs["confidence_intervals"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid Monte Carlo option: {exc}") from exc
        if "variable_ranges" in kwargs:
            kwargs["variable_ranges"] = {
                path: normalize_range(path, spec) for path, spec in dict(kwargs["variable_ranges"]).items()
            }
        if "return_model_config" in kwargs:
            kwargs["return_model_config"] = dict(kwargs["return_model_config"])
        return cls(**kwargs)
