"""Monthly separation trend, linear forecast and year-over-year comparison.

Pure functions over class-1 separation records.  No DB, async, or LLM
dependencies.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date

logger = logging.getLogger(__name__)

MIN_TREND_MONTHS = 3
FORECAST_PERIODS = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _month_key(d: date) -> str:
    """Return 'YYYY-MM' string for a date."""
    return d.strftime("%Y-%m")


def _next_month(year: int, month: int) -> tuple[int, int]:
    """Return (year, month) for the next month."""
    month += 1
    if month > 12:
        month = 1
        year += 1
    return year, month


def _split_key(key: str) -> tuple[int, int]:
    year, month = key.split("-")
    return int(year), int(month)


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class TrendPoint:
    """Separations in one month."""
    period: str
    count: int


@dataclass
class ForecastPoint:
    """Projected separations for a future month."""
    period: str
    value: float


@dataclass
class RegressionFit:
    """Ordinary least squares fit of count against month index."""
    slope: float
    intercept: float
    r_squared: float


@dataclass
class TrendStats:
    slope: float
    intercept: float
    r2: float
    periods: int
    total: int


@dataclass
class TrendResult:
    """Complete trend analysis result."""
    historical: list[TrendPoint]
    fit: list[float] | None  # fitted value per historical month
    forecasts: list[ForecastPoint]
    stats: TrendStats | None
    has_data: bool


@dataclass
class YoYPoint:
    """One month compared with the same month a year earlier."""
    period: str
    current: int
    previous: int | None
    variation_pct: float | None  # +inf when previous == 0 < current


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------


def monthly_series(separations: list[dict], date_column: str = "fecha_baja") -> list[TrendPoint]:
    """Count separations per year-month, oldest first.  Months without
    separations are absent, not zero."""
    counts = Counter(
        _month_key(r[date_column]) for r in separations
        if isinstance(r.get(date_column), date)
    )
    return [TrendPoint(period=k, count=counts[k]) for k in sorted(counts)]


def linear_regression(values: list[float]) -> RegressionFit:
    """Fit ``y = slope * i + intercept`` over indices 0..n-1.

    R² is 1.0 when the series has no variance.
    """
    n = len(values)
    if n == 0:
        return RegressionFit(slope=0.0, intercept=0.0, r_squared=0.0)
    if n == 1:
        return RegressionFit(slope=0.0, intercept=float(values[0]), r_squared=0.0)

    x_mean = (n - 1) / 2
    y_mean = sum(values) / n

    numerator = sum((i - x_mean) * (v - y_mean) for i, v in enumerate(values))
    denominator = sum((i - x_mean) ** 2 for i in range(n))
    slope = numerator / denominator
    intercept = y_mean - slope * x_mean

    ss_res = sum((v - (intercept + slope * i)) ** 2 for i, v in enumerate(values))
    ss_tot = sum((v - y_mean) ** 2 for v in values)
    r_squared = 1 - (ss_res / ss_tot) if ss_tot > 0 else 1.0

    return RegressionFit(slope=slope, intercept=intercept, r_squared=r_squared)


def analyze_trend(
    separations: list[dict],
    min_months: int = MIN_TREND_MONTHS,
    periods_ahead: int = FORECAST_PERIODS,
) -> TrendResult:
    """Trend and linear forecast of monthly separations.

    Regression and forecast are skipped (``has_data=False``) when fewer than
    ``min_months`` distinct months are present.
    """
    historical = monthly_series(separations)
    if len(historical) < min_months:
        logger.info(
            "Trend skipped: %d month(s) of separations, need %d", len(historical), min_months,
        )
        return TrendResult(historical=historical, fit=None, forecasts=[], stats=None, has_data=False)

    values = [p.count for p in historical]
    n = len(values)
    reg = linear_regression(values)

    fit = [reg.slope * i + reg.intercept for i in range(n)]

    forecasts = []
    year, month = _split_key(historical[-1].period)
    for i in range(periods_ahead):
        year, month = _next_month(year, month)
        forecasts.append(ForecastPoint(
            period=f"{year}-{month:02d}",
            value=reg.slope * (n + i) + reg.intercept,
        ))

    return TrendResult(
        historical=historical,
        fit=fit,
        forecasts=forecasts,
        stats=TrendStats(
            slope=reg.slope,
            intercept=reg.intercept,
            r2=reg.r_squared,
            periods=n,
            total=sum(values),
        ),
        has_data=True,
    )


# ---------------------------------------------------------------------------
# Year over year
# ---------------------------------------------------------------------------


def yoy_variation(current: int, previous: int | None) -> float | None:
    """Percentage change versus the prior-year value."""
    if previous is None:
        return None
    if previous == 0:
        return float("inf") if current > 0 else 0.0
    return (current / previous - 1) * 100


def year_over_year(historical: list[TrendPoint]) -> list[YoYPoint]:
    """Compare every month with the same calendar month one year earlier."""
    by_period = {p.period: p.count for p in historical}
    out = []
    for p in historical:
        year, month = _split_key(p.period)
        previous = by_period.get(f"{year - 1}-{month:02d}")
        out.append(YoYPoint(
            period=p.period,
            current=p.count,
            previous=previous,
            variation_pct=yoy_variation(p.count, previous),
        ))
    return out
