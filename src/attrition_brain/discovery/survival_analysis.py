"""Survival analysis of employee tenure.

Pure functions implementing the Kaplan-Meier estimator over employee spells
and the views built on it:

- global curve and summary metrics (S at 30/60/90/180/365 days, median,
  early hazard bins),
- a month-conditional curve for the cohort already employed when the
  reporting month starts,
- per-group curves (shift, position...) and per hire-cohort curves.

A spell "dies" when it ends in a counted separation (RV or BXF); every other
spell is right-censored at its separation date or at the analysis date.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from collections import Counter
from dataclasses import dataclass
from datetime import date, timedelta

from attrition_brain.discovery.pareto_analysis import MISSING_LABEL
from attrition_brain.discovery.reconciler import is_counted

logger = logging.getLogger(__name__)

MIN_GROUP_SIZE = 5
CHECKPOINT_DAYS = (30, 60, 90, 180, 365)
HAZARD_BINS = ((0, 30), (30, 60), (60, 90))


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class KMPoint:
    """One step of a Kaplan-Meier curve."""
    t_days: int
    S: float


@dataclass
class KMConditionalPoint:
    """One day of the month-conditional survival curve."""
    day: date
    S: float
    at_risk: int
    events: int


@dataclass
class GroupSurvival:
    """Survival checkpoints for one value of a categorical field."""
    group: str
    n: int
    checkpoints: dict[int, float]  # day -> S(day)


@dataclass
class CohortSurvival:
    """90-day survival of one hire year-month cohort."""
    cohort: str
    size: int
    S90: float


@dataclass
class SurvivalMetrics:
    """Headline survival figures."""
    S30: float
    S60: float
    S90: float
    S180: float
    S365: float
    mediana: int | None
    haz_0_30: float | None
    haz_31_60: float | None
    haz_61_90: float | None
    S_end_cond: float
    hazard_cond_mes: float


@dataclass
class SurvivalResult:
    """Complete survival analysis of a reporting run."""
    km_global: list[KMPoint]
    km_cond: list[KMConditionalPoint]
    metrics: SurvivalMetrics
    by_turno: list[GroupSurvival]
    by_puesto: list[GroupSurvival]
    cohorts: list[CohortSurvival]
    n_observations: int
    n_events: int


# ---------------------------------------------------------------------------
# Survival frame
# ---------------------------------------------------------------------------


def build_survival_frame(spells: list[dict], now: date) -> list[dict]:
    """Attach ``duration_days`` and ``event`` to each spell.

    ``event`` is 1 for a spell with a separation date and an RV/BXF type.
    Duration runs from hire to the separation date, or to ``now`` when the
    spell is still open.  Spells without a hire date or with a negative
    duration are dropped.
    """
    frame = []
    for s in spells:
        hired = s.get("fecha_ingreso")
        if not isinstance(hired, date):
            continue
        left = s.get("fecha_baja")
        event = 1 if isinstance(left, date) and is_counted(s) else 0
        reference = left if isinstance(left, date) else now
        duration = (reference - hired).days
        if duration < 0:
            continue
        frame.append({**s, "duration_days": duration, "event": event})
    return frame


# ---------------------------------------------------------------------------
# Kaplan-Meier
# ---------------------------------------------------------------------------


def km_curve(durations: list[int], events: list[int]) -> list[KMPoint]:
    """Kaplan-Meier product-limit estimate.

    For each distinct event time ``t`` (ascending) the risk set is every
    observation with duration >= t, censored or not.  The curve always starts
    at ``(0, 1.0)``.
    """
    ordered = sorted(durations)
    n = len(ordered)
    deaths = Counter(t for t, e in zip(durations, events) if e == 1)

    S = 1.0
    curve = [KMPoint(t_days=0, S=1.0)]
    for t in sorted(deaths):
        at_risk = n - bisect_left(ordered, t)
        if at_risk == 0:
            continue
        S *= 1 - deaths[t] / at_risk
        curve.append(KMPoint(t_days=t, S=S))
    return curve


def km_from_frame(frame: list[dict]) -> list[KMPoint]:
    return km_curve([r["duration_days"] for r in frame], [r["event"] for r in frame])


def s_at(curve: list[KMPoint], day: int) -> float:
    """Survival at ``day``: S of the last point with t <= day, else 1.0."""
    value = 1.0
    for p in curve:
        if p.t_days > day:
            break
        value = p.S
    return value


def median_survival(curve: list[KMPoint]) -> int | None:
    """Smallest t with S <= 0.5, or None if the curve never gets there."""
    for p in curve:
        if p.S <= 0.5:
            return p.t_days
    return None


def hazard(frame: list[dict], t1: int, t2: int) -> float | None:
    """Probability of a counted separation in (t1, t2] given survival to t1.

    Returns None when nobody is at risk at ``t1``.
    """
    at_risk = sum(1 for r in frame if r["duration_days"] >= t1)
    if at_risk == 0:
        return None
    events = sum(
        1 for r in frame
        if r["event"] == 1 and t1 < r["duration_days"] <= t2
    )
    return events / at_risk


# ---------------------------------------------------------------------------
# Conditional month curve
# ---------------------------------------------------------------------------


def km_conditional_month(
    spells: list[dict],
    month_separations: list[dict],
    start: date,
    end: date,
) -> list[KMConditionalPoint]:
    """Day-by-day survival of the cohort employed at ``start``.

    Events are matched by employee id against the month's separation list
    (not re-derived from spell durations).  The risk set shrinks only by the
    events observed.

    Returns:
        Rows from ``start - 1 day`` through ``end``; empty if nobody was at
        risk when the month started.
    """
    at_risk = [
        s for s in spells
        if isinstance(s.get("fecha_ingreso"), date)
        and s["fecha_ingreso"] <= start
        and (s.get("fecha_baja") is None or s["fecha_baja"] > start)
    ]
    if not at_risk:
        return []

    event_dates: dict[str, date] = {}
    for rec in month_separations:
        event_dates[str(rec.get("empleado"))] = rec.get("fecha_baja")

    per_day: Counter = Counter()
    for s in at_risk:
        d = event_dates.get(str(s.get("empleado")))
        if isinstance(d, date) and start <= d <= end:
            per_day[d] += 1

    n = len(at_risk)
    S = 1.0
    rows = [KMConditionalPoint(day=start - timedelta(days=1), S=1.0, at_risk=n, events=0)]
    day = start
    while day <= end:
        e = per_day.get(day, 0)
        if n > 0 and e > 0:
            S *= 1 - e / n
            n -= e
        rows.append(KMConditionalPoint(day=day, S=S, at_risk=n, events=e))
        day += timedelta(days=1)
    return rows


# ---------------------------------------------------------------------------
# Grouped / cohort views
# ---------------------------------------------------------------------------


def _group_label(value) -> str:
    if value is None or str(value).strip() == "":
        return MISSING_LABEL
    return str(value).strip()


def survival_by_group(
    frame: list[dict],
    field: str,
    min_size: int = MIN_GROUP_SIZE,
) -> list[GroupSurvival]:
    """Per-group KM checkpoints, riskiest groups (lowest S(90)) first.

    Groups with fewer than ``min_size`` observations are left out.
    """
    groups: dict[str, list[dict]] = {}
    for r in frame:
        groups.setdefault(_group_label(r.get(field)), []).append(r)

    results = []
    for label, members in groups.items():
        if len(members) < min_size:
            continue
        curve = km_from_frame(members)
        results.append(GroupSurvival(
            group=label,
            n=len(members),
            checkpoints={d: s_at(curve, d) for d in CHECKPOINT_DAYS},
        ))
    results.sort(key=lambda g: g.checkpoints[90])
    return results


def survival_by_cohort(
    spells: list[dict],
    now: date,
    min_size: int = MIN_GROUP_SIZE,
) -> list[CohortSurvival]:
    """S(90) per hire year-month cohort, in chronological order.

    Cohorts are formed from all spells with a hire date; each one gets its
    own survival frame.
    """
    cohorts: dict[str, list[dict]] = {}
    for s in spells:
        hired = s.get("fecha_ingreso")
        if isinstance(hired, date):
            cohorts.setdefault(hired.strftime("%Y-%m"), []).append(s)

    results = []
    for label, members in cohorts.items():
        if len(members) < min_size:
            continue
        curve = km_from_frame(build_survival_frame(members, now))
        results.append(CohortSurvival(cohort=label, size=len(members), S90=s_at(curve, 90)))
    results.sort(key=lambda c: c.cohort)
    return results


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def compute_metrics(
    frame: list[dict],
    curve: list[KMPoint],
    conditional: list[KMConditionalPoint],
) -> SurvivalMetrics:
    """Bundle checkpoints, median, hazard bins and the month-conditional hazard."""
    s_end_cond = conditional[-1].S if conditional else 1.0
    h = [hazard(frame, t1, t2) for t1, t2 in HAZARD_BINS]
    return SurvivalMetrics(
        S30=s_at(curve, 30),
        S60=s_at(curve, 60),
        S90=s_at(curve, 90),
        S180=s_at(curve, 180),
        S365=s_at(curve, 365),
        mediana=median_survival(curve),
        haz_0_30=h[0],
        haz_31_60=h[1],
        haz_61_90=h[2],
        S_end_cond=s_end_cond,
        hazard_cond_mes=1 - s_end_cond,
    )


def analyze_survival(
    spells: list[dict],
    month_separations: list[dict],
    start: date,
    end: date,
    now: date,
    min_size: int = MIN_GROUP_SIZE,
) -> SurvivalResult:
    """Run every survival view for one reporting month.

    Args:
        spells: Class-1 spells.
        month_separations: Class-1 RV/BXF separations dated inside the month.
        start: First day of the reporting month.
        end: Last day of the reporting month.
        now: Censoring date for open spells.
        min_size: Smallest group / cohort that gets its own curve.
    """
    frame = build_survival_frame(spells, now)
    curve = km_from_frame(frame)
    conditional = km_conditional_month(spells, month_separations, start, end)
    metrics = compute_metrics(frame, curve, conditional)
    n_events = sum(r["event"] for r in frame)

    logger.info(
        "Survival frame: %d observations, %d events, S90=%.3f",
        len(frame), n_events, metrics.S90,
    )

    return SurvivalResult(
        km_global=curve,
        km_cond=conditional,
        metrics=metrics,
        by_turno=survival_by_group(frame, "turno", min_size),
        by_puesto=survival_by_group(frame, "puesto", min_size),
        cohorts=survival_by_cohort(spells, now, min_size),
        n_observations=len(frame),
        n_events=n_events,
    )
