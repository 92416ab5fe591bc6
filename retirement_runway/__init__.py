"""Tax-aware retirement runway projections and Monte Carlo depletion risk."""

from .errors import (  # noqa: F401
    AnalysisCancelledError,
    ConfigurationError,
    RunwayError,
    ScenarioShapeError,
    UnknownReturnModelError,
    UnknownScheduleError,
)
from .scenario import Scenario, load_scenario  # noqa: F401
from .config import MonteCarloConfig  # noqa: F401

__version__ = "0.1.0"
