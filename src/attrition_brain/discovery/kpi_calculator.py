"""Headcount and rotation KPIs for a reporting month."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from attrition_brain.discovery.period_resolver import ReportPeriod


@dataclass
class RotationKPIs:
    """Monthly headcount / rotation indicators for class-1 personnel."""
    HC_activos_c1: int
    bajas_mes: int
    rotacion_pct_cliente: float | None
    HC_ini: int
    HC_fin: int
    HC_prom: float
    rotacion_pct_3irh37: float | None


def headcount_at(spells: list[dict], d: date) -> int:
    """Number of spells active on day ``d`` (hired on/before, not yet separated)."""
    count = 0
    for s in spells:
        hired = s.get("fecha_ingreso")
        left = s.get("fecha_baja")
        if hired is not None and hired <= d and (left is None or left > d):
            count += 1
    return count


def between(records: list[dict], column: str, start: date, end: date) -> list[dict]:
    """Records whose ``column`` date falls in [start, end] inclusive."""
    out = []
    for r in records:
        d = r.get(column)
        if isinstance(d, date) and start <= d <= end:
            out.append(r)
    return out


def rotation_pct(separations: int, headcount: int) -> float | None:
    """Separations over headcount as a percentage; None when headcount is 0."""
    if headcount <= 0:
        return None
    return separations / headcount * 100


def compute_kpis(
    spells: list[dict],
    activos_c1: list[dict],
    bajas_mes: list[dict],
    period: ReportPeriod,
) -> RotationKPIs:
    """Compute the month's KPIs.

    Args:
        spells: Class-1 spells.
        activos_c1: Class-1 rows of the active roster.
        bajas_mes: Class-1 RV/BXF separations dated inside the period.
        period: Reporting month.
    """
    hc_ini = headcount_at(spells, period.start)
    hc_fin = headcount_at(spells, period.end + timedelta(days=1))
    hc_activos = len({str(r.get("empleado")) for r in activos_c1})
    n_bajas = len(bajas_mes)
    rot = rotation_pct(n_bajas, hc_activos)

    return RotationKPIs(
        HC_activos_c1=hc_activos,
        bajas_mes=n_bajas,
        rotacion_pct_cliente=rot,
        HC_ini=hc_ini,
        HC_fin=hc_fin,
        HC_prom=(hc_ini + hc_fin) / 2,
        rotacion_pct_3irh37=rot,
    )
