"""Attrition report engine: runs every analysis for one reporting month.

Pipeline:
1. Read the three exports (concurrently) and canonicalize their columns
2. Enrich separations from the matriz and fold records into spells
3. Resolve the reporting month
4. KPIs, Pareto tables, survival views, trend / forecast / YoY
5. Categorize exit comments (LLM or keywords, corrections override)
6. Optional LLM narrative summary over the finished report
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, fields, is_dataclass
from datetime import date, datetime, timezone
from typing import Mapping

from config.settings import settings

from attrition_brain.cognitive.motive_classifier import MotiveClassifier, MotivesResult, analyze_motives
from attrition_brain.cognitive.narrative_builder import NarrativeSummary, generate_summary
from attrition_brain.discovery.kpi_calculator import RotationKPIs, between, compute_kpis
from attrition_brain.discovery.pareto_analysis import ParetoRecord, pareto_from_records
from attrition_brain.discovery.period_resolver import ReportPeriod, resolve_period
from attrition_brain.discovery.reconciler import merge_records, reconcile
from attrition_brain.discovery.survival_analysis import SurvivalResult, analyze_survival
from attrition_brain.discovery.trend_forecaster import TrendResult, YoYPoint, analyze_trend, year_over_year
from attrition_brain.ingestion.row_source import extract_sources, parse_filenames
from attrition_brain.ingestion.schema_normalizer import clean_and_map
from attrition_brain.memory.corrections_store import CorrectionsStore

logger = logging.getLogger(__name__)

PARETO_COLUMNS = ("turno", "puesto", "area", "supervisor", "motivo_baja")


@dataclass
class AttritionReport:
    """Everything presentation / export collaborators consume."""
    client_name: str
    period: ReportPeriod
    generated_on: date
    kpis: RotationKPIs
    pareto: dict[str, list[ParetoRecord]]
    survival: SurvivalResult
    trend: TrendResult
    yoy: list[YoYPoint]
    motives: MotivesResult
    summary: NarrativeSummary | None = None


def month_separation_source(bajas_mes: list[dict], matriz_mes: list[dict]) -> list[dict]:
    """One row per employee separated in the month; Bajas fields win over Matriz."""
    bajas_by_emp = {str(r["empleado"]): r for r in bajas_mes}
    matriz_by_emp = {str(r["empleado"]): r for r in matriz_mes}

    source = []
    for emp in dict.fromkeys([*bajas_by_emp, *matriz_by_emp]):
        baja = bajas_by_emp.get(emp)
        mat = matriz_by_emp.get(emp)
        if baja is not None and mat is not None:
            source.append(merge_records(baja, mat))
        else:
            source.append(dict(baja if baja is not None else mat))
    return source


async def build_report(
    activos_rows: list[dict],
    bajas_rows: list[dict],
    matriz_rows: list[dict],
    corrections: Mapping[str, str] | None = None,
    client_name: str | None = None,
    month_token: str | None = None,
    classifier: MotiveClassifier | None = None,
    today: date | None = None,
    with_summary: bool = True,
) -> AttritionReport:
    """Build the attrition report from already-extracted rows.

    Args:
        activos_rows: Raw rows of the active roster export.
        bajas_rows: Raw rows of the separations export.
        matriz_rows: Raw rows of the rotation matrix export.
        corrections: Snapshot of comment -> category corrections.
        client_name: Display name of the client.
        month_token: Spanish month name recovered from file names, if any.
        classifier: Comment classifier; chosen by capability when None.
        today: Analysis date (censoring date for open spells).
        with_summary: Whether to request the LLM narrative summary.
    """
    corrections = corrections or {}
    today = today or datetime.now(timezone.utc).date()

    act = clean_and_map(activos_rows, "act")
    baj = clean_and_map(bajas_rows, "baj")
    mat = clean_and_map(matriz_rows, "mat")

    data = reconcile(act, baj, mat)
    period = resolve_period(month_token, data.bajas_enriched + mat, today=today)
    logger.info("Reporting period %s → %s (from %s)", period.start, period.end, period.source)

    bajas_mes = between(data.bajas_c1, "fecha_baja", period.start, period.end)
    matriz_mes = between(data.matriz_c1, "fecha_baja", period.start, period.end)

    kpis = compute_kpis(data.spells, data.activos_c1, bajas_mes, period)

    source = month_separation_source(bajas_mes, matriz_mes)
    pareto = {col: pareto_from_records(source, col) for col in PARETO_COLUMNS}

    survival = analyze_survival(
        data.spells, bajas_mes, period.start, period.end, now=today,
        min_size=settings.min_group_size,
    )

    trend = analyze_trend(
        data.bajas_c1_all_types,
        min_months=settings.min_trend_months,
        periods_ahead=settings.forecast_periods,
    )
    yoy = year_over_year(trend.historical) if trend.has_data else []

    motives = await analyze_motives(
        source, data.spells, corrections, classifier, cards_limit=settings.motive_cards_limit,
    )
    if motives.has_data:
        pareto["motivo_baja"] = motives.pareto

    report = AttritionReport(
        client_name=client_name or settings.default_client_name,
        period=period,
        generated_on=today,
        kpis=kpis,
        pareto=pareto,
        survival=survival,
        trend=trend,
        yoy=yoy,
        motives=motives,
    )

    if with_summary:
        report.summary = await generate_summary(report)
    return report


async def build_report_from_files(
    activos: tuple[bytes, str],
    bajas: tuple[bytes, str],
    matriz: tuple[bytes, str],
    store: CorrectionsStore,
    month: str | None = None,
    classifier: MotiveClassifier | None = None,
    with_summary: bool = True,
) -> AttritionReport:
    """Read the three exports and build the report.

    Each export is ``(raw_bytes, file_name)``.  ``month`` overrides the month
    parsed from the file names.

    Raises:
        RowSourceError: when any export cannot be read.
    """
    act_rows, baj_rows, mat_rows = await extract_sources(activos, bajas, matriz)
    names = parse_filenames([activos[1], bajas[1], matriz[1]])
    corrections = await asyncio.to_thread(store.snapshot)
    return await build_report(
        act_rows,
        baj_rows,
        mat_rows,
        corrections=corrections,
        client_name=names.client_name,
        month_token=month or names.month_token,
        classifier=classifier,
        with_summary=with_summary,
    )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _jsonable(value):
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, float) and math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def report_to_dict(report: AttritionReport) -> dict:
    """JSON-safe dict of the report (ISO dates, "Infinity" for +inf)."""
    out = _jsonable(report)
    out["period"]["label"] = report.period.label
    for key in ("by_turno", "by_puesto"):
        for group in out["survival"][key]:
            group["checkpoints"] = {f"S({d})": s for d, s in group["checkpoints"].items()}
    return out
