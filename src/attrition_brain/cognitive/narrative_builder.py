"""LLM-written diagnosis and action plan for a finished attrition report."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from attrition_brain.analysis.tools import llm_gateway

if TYPE_CHECKING:
    from attrition_brain.discovery.engine import AttritionReport

logger = logging.getLogger(__name__)


@dataclass
class ActionItem:
    accion: str
    porque: str
    como: str


@dataclass
class NarrativeSummary:
    summary: str
    actions: list[ActionItem]


_SYSTEM_INSTRUCTION = (
    "Actúa como Director de Recursos Humanos y consultor de negocio en manufactura "
    "(maquiladoras bajo modelo shelter). Tu análisis es cuantitativo, directo y orientado "
    "a la acción; recomiendas soluciones prácticas y de bajo costo que el equipo de RH en "
    "planta pueda implementar."
)

_INSTRUCTIONS = """
Con base ESTRICTAMENTE en los datos anteriores devuelve un objeto JSON con:
- "diagnostico": un párrafo de 2-3 líneas que resuma la rotación, seguido de viñetas
  (líneas que empiezan con '*') con hallazgos cuantitativos que conecten el dónde
  (Pareto), el por qué (motivos) y el cuándo (supervivencia). Evita frases genéricas.
- "plan_de_accion": un arreglo de 3 a 4 objetos {"accion", "porque", "como"} con
  acciones priorizadas, de bajo costo y alto impacto.
"""


def _pct(value: float | None, digits: int = 1) -> str:
    return "N/A" if value is None else f"{value * 100:.{digits}f}%"


def _trend_label(slope: float) -> str:
    if slope > 0.1:
        return "En aumento"
    if slope < -0.1:
        return "En disminución"
    return "Estable"


def _pareto_leader(report: AttritionReport, column: str) -> str:
    table = report.pareto.get(column) or []
    if not table:
        return "N/A"
    top = table[0]
    return f"{top.value} ({top.count} bajas, {top.percentage:.1f}% del total)"


def build_digest(report: AttritionReport) -> str:
    """Plain key-value digest of the report that the model reasons over."""
    k = report.kpis
    rot = "N/A" if k.rotacion_pct_cliente is None else f"{k.rotacion_pct_cliente:.2f}%"
    lines = [
        f"Análisis de rotación de personal para {report.client_name}",
        f"Periodo: {report.period.start.isoformat()} a {report.period.end.isoformat()}",
        "",
        "1. Situación general",
        f"- Rotación mensual: {rot}",
        f"- Bajas del mes (clase 1): {k.bajas_mes}",
        f"- Headcount activo (clase 1): {k.HC_activos_c1}",
    ]

    if report.trend.stats is not None:
        lines.append(f"- Tendencia de bajas: {_trend_label(report.trend.stats.slope)}")
    if report.yoy:
        last = report.yoy[-1]
        if last.variation_pct is not None and last.variation_pct != float("inf"):
            direction = "más" if last.variation_pct > 0 else "menos"
            lines.append(
                f"- Comparativa anual: {abs(last.variation_pct):.1f}% {direction} bajas "
                "que el mismo mes del año anterior"
            )

    lines += [
        "",
        "2. Causa raíz",
        f"- Turno con más bajas: {_pareto_leader(report, 'turno')}",
        f"- Puesto con más bajas: {_pareto_leader(report, 'puesto')}",
        f"- Supervisor con más bajas: {_pareto_leader(report, 'supervisor')}",
        "- Principales motivos de renuncia:",
    ]
    for i, bar in enumerate(report.motives.bars[:3], start=1):
        lines.append(f"  {i}. {bar.category} ({bar.count} casos)")
    if not report.motives.bars:
        lines.append("  N/A")

    m = report.survival.metrics
    mediana = f"{m.mediana} días" if m.mediana is not None else "No alcanzada"
    lines += [
        "",
        "3. Retención",
        f"- Supervivencia a 90 días (S90): {_pct(m.S90)}",
        f"- Riesgo de baja días 0-30: {_pct(m.haz_0_30)}",
        f"- Riesgo de baja días 31-60: {_pct(m.haz_31_60)}",
        f"- Mediana de supervivencia: {mediana}",
    ]
    return "\n".join(lines)


def parse_summary(parsed: dict | None) -> NarrativeSummary | None:
    """Map the model's ``diagnostico`` / ``plan_de_accion`` JSON to a summary."""
    if not parsed:
        return None
    diagnosis = parsed.get("diagnostico")
    plan = parsed.get("plan_de_accion")
    if not isinstance(diagnosis, str) or not diagnosis.strip() or not isinstance(plan, list):
        return None
    actions = [
        ActionItem(
            accion=str(item.get("accion", "")),
            porque=str(item.get("porque", "")),
            como=str(item.get("como", "")),
        )
        for item in plan
        if isinstance(item, dict)
    ]
    return NarrativeSummary(summary=diagnosis.strip(), actions=actions)


async def generate_summary(report: AttritionReport) -> NarrativeSummary | None:
    """Ask the LLM for a diagnosis and action plan.

    Returns None when no credential is configured or anything goes wrong.
    """
    if not llm_gateway.is_available():
        logger.warning("No LLM credential: skipping narrative summary")
        return None

    prompt = f"DATOS:\n{build_digest(report)}\n{_INSTRUCTIONS}"
    try:
        parsed = await llm_gateway.extract(prompt, system_instruction=_SYSTEM_INSTRUCTION, use_cache=False)
    except Exception:
        logger.exception("Narrative summary generation failed")
        return None

    summary = parse_summary(parsed)
    if summary is None:
        logger.warning("Narrative summary response was malformed: omitting summary")
    return summary
