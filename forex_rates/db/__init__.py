"""Helpers for locating the default SQLite rate store."""

from __future__ import annotations

from pathlib import Path
from typing import Final

__all__ = ["DEFAULT_SQLITE_DB_PATH"]

# Next to the package, independent of the working directory.
DEFAULT_SQLITE_DB_PATH: Final[Path] = Path(__file__).resolve().with_name("forex_rates.db")
