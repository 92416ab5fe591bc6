"""Return generation strategies for Monte Carlo trials.

Each model turns a seed into one sequence of *annual* returns per asset
class.  Three strategies ship by default:

* ``independent-normal`` (alias ``simple-random``) draws every year from a
  normal distribution, ``<class>_mean`` (default 0.07) and ``<class>_stddev``
  (default 0.15).
* ``historical-bootstrap`` resamples single years with replacement from the
  historical table of the class, shifted by ``<class>_adjustment``.
* ``historical-sequence`` takes one contiguous run of history so good and bad
  years keep their real order, then pads with further random runs when the
  horizon is longer than the table.

All models return exactly ``periods`` values per class and are fully
determined by ``seed``.  New strategies are added with
:meth:`ReturnModelService.register`.

Example
-------

>>> service = ReturnModelService()
>>> out = service.generate("historical-sequence", ["stock"], periods=150, seed=1)
>>> len(out["stock"])
150
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np

from ..errors import UnknownReturnModelError
from . import historical_returns

DEFAULT_MEAN = 0.07
DEFAULT_STDDEV = 0.15


def _config_value(config: Mapping[str, Any], key: str, default: float) -> float:
    value = config.get(key)
    return default if value is None else float(value)


class ReturnModel:
    """Base class: subclasses implement :meth:`generate`."""

    display_name = "Base Return Model"
    description = ""
    supports_sequence_risk = False

    def generate(
        self,
        asset_types: Iterable[str],
        periods: int,
        seed: Optional[int] = None,
        config: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, List[float]]:
        rng = np.random.default_rng(seed)
        cfg = config or {}
        return {t: self._series(t, int(periods), rng, cfg) for t in asset_types}

    def _series(self, asset_type: str, periods: int, rng: np.random.Generator, config: Mapping[str, Any]) -> List[float]:
        raise NotImplementedError

    def info(self) -> Dict[str, Any]:
        return {
            "display_name": self.display_name,
            "description": self.description,
            "supports_sequence_risk": self.supports_sequence_risk,
        }


class IndependentNormalModel(ReturnModel):
    display_name = "Independent Normal"
    description = "Independent yearly returns drawn from a normal distribution"

    def _series(self, asset_type, periods, rng, config):
        mean = _config_value(config, f"{asset_type}_mean", DEFAULT_MEAN)
        stddev = _config_value(config, f"{asset_type}_stddev", DEFAULT_STDDEV)
        return [float(x) for x in rng.normal(mean, stddev, size=periods)]


class HistoricalBootstrapModel(ReturnModel):
    display_name = "Historical Bootstrap"
    description = "Yearly returns resampled with replacement from market history"

    def _series(self, asset_type, periods, rng, config):
        table = historical_returns.returns_for(asset_type)
        adjustment = _config_value(config, f"{asset_type}_adjustment", 0.0)
        picks = rng.integers(0, len(table), size=periods)
        return [table[i] + adjustment for i in picks]


class HistoricalSequenceModel(ReturnModel):
    display_name = "Historical Sequence"
    description = "Contiguous runs of market history that keep the order of returns"
    supports_sequence_risk = True

    def _series(self, asset_type, periods, rng, config):
        table = historical_returns.returns_for(asset_type)
        adjustment = _config_value(config, f"{asset_type}_adjustment", 0.0)
        start = int(rng.integers(0, max(0, len(table) - periods) + 1))
        sequence = list(table[start:start + periods])
        while len(sequence) < periods:
            offset = int(rng.integers(0, len(table)))
            sequence.extend(table[offset:offset + periods - len(sequence)])
        return [r + adjustment for r in sequence]


class ReturnModelService:
    """Registry of named return models."""

    def __init__(self):
        self._models: Dict[str, ReturnModel] = {}
        self.register("independent-normal", IndependentNormalModel())
        self.register("simple-random", self._models["independent-normal"])
        self.register("historical-bootstrap", HistoricalBootstrapModel())
        self.register("historical-sequence", HistoricalSequenceModel())

    def register(self, name: str, model: ReturnModel) -> None:
        self._models[name] = model

    def get(self, name: str) -> ReturnModel:
        try:
            return self._models[name]
        except KeyError:
            raise UnknownReturnModelError(name) from None

    def available_models(self) -> List[Dict[str, Any]]:
        return [{"name": name, **model.info()} for name, model in self._models.items()]

    def generate(
        self,
        model: str,
        asset_types: Iterable[str],
        periods: int,
        seed: Optional[int] = None,
        config: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, List[float]]:
        """Generate ``periods`` annual returns for each asset type with ``model``.

        Raises
        ------
        UnknownReturnModelError
            If no model is registered under ``model``.
        """
        return self.get(model).generate(asset_types, periods, seed=seed, config=config)


default_service = ReturnModelService()
