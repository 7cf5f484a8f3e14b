"""Resolve the calendar month a report covers."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from attrition_brain.ingestion.schema_normalizer import fold_diacritics

logger = logging.getLogger(__name__)

SPANISH_MONTHS: dict[str, int] = {
    "enero": 1, "febrero": 2, "marzo": 3, "abril": 4, "mayo": 5, "junio": 6,
    "julio": 7, "agosto": 8, "septiembre": 9, "setiembre": 9,
    "octubre": 10, "noviembre": 11, "diciembre": 12,
}

_MONTH_NAMES = [
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio", "Julio",
    "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
]


@dataclass
class ReportPeriod:
    """Closed interval [start, end] spanning one calendar month."""
    start: date
    end: date
    source: str  # "filename", "data" or "today"

    @property
    def label(self) -> str:
        return f"{spanish_month_name(self.start.month)} {self.start.year}"


def month_name_to_num(token: str | None) -> int | None:
    """Map a Spanish month name ("Marzo", "setiembre") to its number."""
    if not token:
        return None
    return SPANISH_MONTHS.get(fold_diacritics(token.strip().lower()))


def spanish_month_name(month: int) -> str:
    return _MONTH_NAMES[month - 1] if 1 <= month <= 12 else ""


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _today_utc() -> date:
    return datetime.now(timezone.utc).date()


def resolve_period(
    month_token: str | None,
    separation_records: list[dict],
    today: date | None = None,
) -> ReportPeriod:
    """Pick the reporting month.

    Resolution order:
    1. Spanish month name from the file names (year = current year).
    2. Month of the latest ``fecha_baja`` among the given records.
    3. Current month.
    """
    today = today or _today_utc()

    mnum = month_name_to_num(month_token)
    if mnum is not None:
        start, end = month_bounds(today.year, mnum)
        return ReportPeriod(start=start, end=end, source="filename")
    if month_token:
        logger.warning("Unrecognized month token %r in file names", month_token)

    dates = [r.get("fecha_baja") for r in separation_records]
    dates = [d for d in dates if isinstance(d, date)]
    if dates:
        latest = max(dates)
        start, end = month_bounds(latest.year, latest.month)
        return ReportPeriod(start=start, end=end, source="data")

    start, end = month_bounds(today.year, today.month)
    return ReportPeriod(start=start, end=end, source="today")
