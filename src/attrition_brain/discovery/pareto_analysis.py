"""Pareto analysis: identify the vital few categories behind most separations.

Frequency tables over a categorical column, split into the "Core 80" (the
categories that together explain ~80% of cases) and the "Cola 20" tail.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

MISSING_LABEL = "SIN DATO"

CORE_80 = "Core 80"
COLA_20 = "Cola 20"

# Rows stay in the core while cumulative <= this; absorbs rounding at 80%.
CORE_CUTOFF_PCT = 80.01


@dataclass
class ParetoRecord:
    """A single category in a Pareto table."""
    value: str
    count: int
    percentage: float
    cumulative_percentage: float
    classification: str  # CORE_80 or COLA_20


def _label(value) -> str:
    if value is None:
        return MISSING_LABEL
    s = str(value).strip()
    return s or MISSING_LABEL


def pareto_table(values: list) -> list[ParetoRecord]:
    """Build a Pareto table from raw category values.

    Blank values collapse into ``SIN DATO``.  Percentages are rounded to two
    decimals and the cumulative column is the running sum of the rounded
    percentages.

    Returns:
        Records sorted by descending count (ties keep first-seen order).
    """
    if not values:
        return []

    counts = Counter(_label(v) for v in values)
    total = len(values)

    records: list[ParetoRecord] = []
    cumulative = 0.0
    for value, count in sorted(counts.items(), key=lambda x: -x[1]):
        pct = round(count / total * 100, 2)
        cumulative = round(cumulative + pct, 2)
        records.append(ParetoRecord(
            value=value,
            count=count,
            percentage=pct,
            cumulative_percentage=cumulative,
            classification=CORE_80 if cumulative <= CORE_CUTOFF_PCT else COLA_20,
        ))
    return records


def pareto_from_records(rows: list[dict], column: str) -> list[ParetoRecord]:
    """Pareto table over one column of a list of row dicts."""
    return pareto_table([r.get(column) for r in rows])
