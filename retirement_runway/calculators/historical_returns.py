"""Historical annual return tables.

The tables live in ``data/historical_returns.json`` and are loaded once into
tuples, so every caller shares the same read-only sequence and no return
model can alter them.
"""

from __future__ import annotations

from functools import lru_cache
import json
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

_DEFAULT_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "historical_returns.json"

# Return-model classes understood by the historical tables.
ASSET_CLASS_ALIASES: Dict[str, str] = {
    "stock": "stock",
    "equity": "stock",
    "investment": "stock",
    "bond": "bond",
    "fixed_income": "bond",
    "cash": "bond",
    "savings": "bond",
}


def table_class(asset_type: str) -> str:
    """Map an asset type onto a table key; unknown types fall back to ``stock``."""
    return ASSET_CLASS_ALIASES.get(asset_type.lower(), "stock")


@lru_cache(maxsize=None)
def load_tables(path: Optional[Path] = None) -> Mapping[str, Tuple[float, ...]]:
    """Load the return tables as ``{class: (annual returns...)}``."""
    p = path or _DEFAULT_TABLE_PATH
    with open(p, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return MappingProxyType(
        {key: tuple(float(v) for v in values) for key, values in raw.items() if isinstance(values, list)}
    )


def returns_for(asset_type: str) -> Tuple[float, ...]:
    tables = load_tables()
    return tables.get(table_class(asset_type), tables["stock"])
