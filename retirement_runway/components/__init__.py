"""Expose component submodules for convenience."""

from .export import projection_csv, bands_csv
from .insights import generate_insights, summarize

__all__ = [
    "projection_csv",
    "bands_csv",
    "generate_insights",
    "summarize",
]
