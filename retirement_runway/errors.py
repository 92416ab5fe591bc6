"""Exception types raised by the projection and Monte Carlo engines.

Running out of money is never an exception: a shortfall is ordinary output of
the projection engine.  The errors below cover malformed input and unknown
references, which abort a run before any period is simulated.
"""

from __future__ import annotations


class RunwayError(Exception):
    """Base class for every error raised by ``retirement_runway``."""


class ScenarioShapeError(RunwayError, ValueError):
    """Raised when a scenario is missing required sections or fields."""


class UnknownScheduleError(RunwayError, LookupError):
    """Raised when a rate schedule name has not been registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Rate schedule '{name}' not found")

    def __reduce__(self):
        return type(self), (self.name,)


class UnknownReturnModelError(RunwayError, LookupError):
    """Raised when a return model name has not been registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown return model: {name}")

    def __reduce__(self):
        return type(self), (self.name,)


class AnalysisCancelledError(RunwayError):
    """Raised when a Monte Carlo analysis is cancelled between trials."""

    def __init__(self, completed: int, total: int):
        self.completed = completed
        self.total = total
        super().__init__(f"Monte Carlo analysis cancelled after {completed} of {total} trials")

    def __reduce__(self):
        return type(self), (self.completed, self.total)


class ConfigurationError(RunwayError, ValueError):
    """Raised when Monte Carlo options are invalid."""
