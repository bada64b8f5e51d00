"""Tabular and JSON export of summary records.

Records are dataclasses or mappings of scalars and arrays. Arrays are converted with `numpy` to plain lists.
"""

from __future__ import annotations

import csv
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

import numpy as np

logger = logging.getLogger(__name__)


def to_plain(value: Any) -> Any:
    """Convert arrays and numpy scalars, also inside containers, to JSON-compatible values."""
    if isinstance(value, Mapping):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return np.asarray(value).tolist()


def _record(row: Any) -> dict[str, Any]:
    if is_dataclass(row) and not isinstance(row, type):
        return to_plain(asdict(row))
    if isinstance(row, Mapping):
        return to_plain(row)
    raise TypeError(f"Records must be dataclasses or mappings, got {type(row).__name__}")


def write_csv(path: str | Path, rows: Iterable[Any]) -> Path:
    """Write records as CSV, with a header taken from the fields of the first record."""
    path = Path(path)
    records = [_record(row) for row in rows]
    if not records:
        raise ValueError("Cannot write an empty table")
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(records[0]))
        writer.writeheader()
        writer.writerows(records)
    logger.info("Wrote %d rows to %s", len(records), path)
    return path


def save_analysis(path: str | Path, results: Any) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(to_plain(results), f, indent=2)
    logger.info("Saved analysis to %s", path)
    return path


def load_analysis(path: str | Path) -> Any:
    with open(path) as f:
        return json.load(f)
