"""Categorization of free-text exit comments.

Two interchangeable classifiers share one contract (ordered comments in,
one category per comment out): an LLM-backed classifier that receives human
corrections as few-shot examples, and a deterministic keyword matcher.  The
LLM path is chosen only when a credential is configured, and any failure on
that path falls back to keywords.  Stored corrections override whichever
classifier ran.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Mapping

from attrition_brain.analysis.tools import llm_gateway
from attrition_brain.discovery.pareto_analysis import MISSING_LABEL, ParetoRecord, pareto_table
from attrition_brain.ingestion.schema_normalizer import fold_diacritics

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "Otros/Revisar"
MIN_COMMENT_LENGTH = 5
CARDS_LIMIT = 12

# Declaration order matters: the keyword matcher stops at the first hit.
CATEGORIES: dict[str, list[str]] = {
    "Mejor Oportunidad Salarial / Laboral": [
        "mejor oportunidad", "mejor oferta", "ofrecieron mas", "otro trabajo", "otra empresa",
        "empleo mejor pagado", "mejor pagado", "paga mejor", "sube sueldo", "cambio por salario",
        "cambio por sueldo", "cambio laboral",
    ],
    "Problemas con el supervisor": [
        "jefe", "jefa", "supervisor", "lider", "coordinador", "gerente", "mando", "maltrato",
        "gritos", "humillacion", "falta de respeto", "prepotencia", "favoritismo", "injusticia",
        "represalias", "amenazas", "acoso laboral", "hostigamiento", "mal liderazgo",
        "abuso autoridad",
    ],
    "Horarios / Turnos": [
        "turno", "rolar", "nocturno", "noche", "jornada", "horario", "horas extra", "descanso",
        "fin de semana", "12x12", "4x3", "disponibilidad", "entrada", "salida",
    ],
    "Problemas con el área": [
        "area", "departamento", "depto", "linea", "no me gusta el area", "cambio de area",
        "me cambiaron de area",
    ],
    "Falta de herramientas": [
        "falta de herramienta", "no hay herramientas", "equipo insuficiente", "equipo defectuoso",
        "no hay material", "insumos insuficientes",
    ],
    "No le gusto el trabajo": [
        "no me gusto el trabajo", "no me gusto el puesto", "no era lo que esperaba",
        "no me adapte", "no me acostumbre", "no me convence",
    ],
    "Problemas de salud": [
        "salud", "enfermo", "enfermedad", "operacion", "lesion", "dolor", "consulta medica",
        "medico", "terapia", "hospital", "incapacidad", "embarazo",
    ],
    "Problema de transporte": [
        "transporte", "camion", "ruta", "retrasos transporte", "traslado", "distancia", "lejos",
        "no hay transporte",
    ],
    "Problemas legales": [
        "legal", "proceso legal", "demanda", "cita judicial", "carcel", "policia", "detenido",
    ],
    "Escuela": [
        "estudios", "escuela", "universidad", "prepa", "clases", "tareas", "examen",
        "horario escolar",
    ],
    "Cuidado de hijos / Familiar enfermo": [
        "cuidado de hijos", "hijo enfermo", "familiar enfermo", "cuidar a mi mama",
        "cuidar a mi papa", "guarderia",
    ],
    "Cambio de residencia / ciudad": [
        "mudanza", "cambio de residencia", "cambio de ciudad", "me voy a otra ciudad",
        "regreso a mi ciudad",
    ],
    "Muerte de familiar": ["fallecimiento", "muerte de", "luto", "duelo", "funeral"],
    "Atender asuntos fuera de la ciudad": [
        "viaje", "salir de la ciudad", "fuera de la ciudad", "asuntos personales fuera",
    ],
    "Ambiente laboral": [
        "ambiente", "clima", "equipo", "companeros", "conflictos", "chismes", "pleitos",
        "bullying", "discriminacion", "estres", "toxico", "mal ambiente",
    ],
    "Capacitacion": [
        "capacitacion", "falta de capacitacion", "no me capacitaron", "entrenamiento",
        "no me ensenaron", "poca capacitacion",
    ],
}

_KEYWORD_PATTERNS: list[tuple[str, list[re.Pattern]]] = [
    (cat, [re.compile(rf"\b{re.escape(fold_diacritics(kw))}\b", re.IGNORECASE) for kw in keywords])
    for cat, keywords in CATEGORIES.items()
]

_PRIORITY_COLUMNS = [
    re.compile(r"encuesta.*salida.*4frh"),
    re.compile(r"4frh.*encuesta.*salida"),
    re.compile(r"encuesta.*salida"),
]
_GENERIC_COLUMNS = re.compile(r"encuesta|salida|coment|observac|motivo", re.IGNORECASE)


class ClassificationUnavailable(Exception):
    """The remote classifier could not produce a usable answer."""


# ---------------------------------------------------------------------------
# Column detection / eligibility
# ---------------------------------------------------------------------------


def detect_text_column(records: list[dict]) -> str | None:
    """Find the free-text exit comment column in the first record's keys.

    Exit-survey headers are preferred over generic comment/reason headers.
    """
    if not records:
        return None
    columns = list(records[0].keys())
    folded = [(c, fold_diacritics(str(c).lower())) for c in columns]
    for pattern in _PRIORITY_COLUMNS:
        for col, text in folded:
            if pattern.search(text):
                return col
    for col, text in folded:
        if _GENERIC_COLUMNS.search(text):
            return col
    return None


def is_eligible(text) -> bool:
    """Comments shorter than five characters (after trimming) are skipped."""
    return text is not None and len(str(text).strip()) >= MIN_COMMENT_LENGTH


def keyword_category(text) -> str:
    """Deterministic whole-word keyword match; first category hit wins."""
    if not isinstance(text, str):
        return FALLBACK_CATEGORY
    t = fold_diacritics(text.strip().lower())
    if len(t) < MIN_COMMENT_LENGTH:
        return FALLBACK_CATEGORY
    for cat, patterns in _KEYWORD_PATTERNS:
        if any(p.search(t) for p in patterns):
            return cat
    return FALLBACK_CATEGORY


# ---------------------------------------------------------------------------
# Classifiers
# ---------------------------------------------------------------------------


class MotiveClassifier(ABC):
    """Maps an ordered list of comments to one category each, in order."""

    analysis_type: str = ""

    @abstractmethod
    async def classify(self, comments: list[str], examples: Mapping[str, str]) -> list[str]:
        ...


class KeywordClassifier(MotiveClassifier):
    """Local keyword matcher; never fails."""

    analysis_type = "keywords"

    async def classify(self, comments: list[str], examples: Mapping[str, str]) -> list[str]:
        return [keyword_category(c) for c in comments]


_SYSTEM_INSTRUCTION = (
    "Eres un analista experto en Recursos Humanos. Clasifica cada comentario de salida "
    "de un empleado en exactamente una de las categorías predefinidas. Devuelve una "
    "categoría para CADA comentario aunque sea ambiguo; si menciona varias razones, "
    "usa la primera o la más clara. \"Otros/Revisar\" no es una opción válida."
)


def build_classification_prompt(comments: list[str], examples: Mapping[str, str]) -> str:
    """Prompt listing the taxonomy, optional correction examples and the comments."""
    parts = []
    if examples:
        lines = "\n".join(
            f'- Comentario: "{comment}" -> Categoría Correcta: "{category}"'
            for comment, category in examples.items()
        )
        parts.append(
            "Ejemplos de clasificaciones correctas hechas por una persona. Úsalos como guía:\n"
            f"{lines}\n\n---\n"
        )

    taxonomy = "\n".join(
        f'- "{cat}": relacionado con {", ".join(keywords)}.' for cat, keywords in CATEGORIES.items()
    )
    parts.append(
        f"Clasifica los siguientes {len(comments)} comentarios de salida.\n\n"
        f"Categorías disponibles (usa el nombre exacto):\n{taxonomy}\n\n"
        'Responde con un objeto JSON con una única clave "categorized_comments": un arreglo '
        f"de exactamente {len(comments)} strings, uno por comentario y en el mismo orden.\n\n"
        f"Comentarios:\n{json.dumps(comments, ensure_ascii=False)}"
    )
    return "\n".join(parts)


def parse_classification(parsed: dict | None, expected: int) -> list[str]:
    """Validate the model's JSON answer.

    Raises:
        ClassificationUnavailable: on a missing key, wrong length, a
            non-string entry or an unknown category.
    """
    if not parsed:
        raise ClassificationUnavailable("empty or non-JSON response")
    categories = parsed.get("categorized_comments")
    if not isinstance(categories, list):
        raise ClassificationUnavailable("response has no 'categorized_comments' list")
    if len(categories) != expected:
        raise ClassificationUnavailable(
            f"expected {expected} categories, got {len(categories)}"
        )
    if not all(isinstance(c, str) for c in categories):
        raise ClassificationUnavailable("non-string entries in 'categorized_comments'")
    unknown = [c for c in categories if c not in CATEGORIES]
    if unknown:
        raise ClassificationUnavailable(f"unknown categories: {unknown[:3]}")
    return list(categories)


class LLMClassifier(MotiveClassifier):
    """Delegates classification to the configured LLM provider."""

    analysis_type = "ml"

    async def classify(self, comments: list[str], examples: Mapping[str, str]) -> list[str]:
        prompt = build_classification_prompt(comments, examples)
        try:
            parsed = await llm_gateway.extract(prompt, system_instruction=_SYSTEM_INSTRUCTION)
        except Exception as exc:
            raise ClassificationUnavailable(str(exc)[:200]) from exc
        try:
            return parse_classification(parsed, len(comments))
        except ClassificationUnavailable:
            llm_gateway.forget(prompt, system_instruction=_SYSTEM_INSTRUCTION)
            raise


def select_classifier() -> MotiveClassifier:
    """LLM classifier when a credential is configured, keywords otherwise."""
    if llm_gateway.is_available():
        return LLMClassifier()
    logger.warning("No LLM credential configured: using keyword classifier")
    return KeywordClassifier()


@dataclass
class ClassificationOutcome:
    categories: list[str]
    analysis_type: str  # "ml" or "keywords"


async def classify_comments(
    comments: list[str],
    corrections: Mapping[str, str],
    classifier: MotiveClassifier | None = None,
) -> ClassificationOutcome:
    """Classify comments, falling back to keywords, then apply corrections.

    A comment that is a key of ``corrections`` always gets the stored
    category.
    """
    classifier = classifier or select_classifier()
    try:
        categories = await classifier.classify(comments, corrections)
        analysis_type = classifier.analysis_type
    except ClassificationUnavailable as exc:
        logger.warning("Remote classification unavailable (%s): using keyword classifier", exc)
        fallback = KeywordClassifier()
        categories = await fallback.classify(comments, corrections)
        analysis_type = fallback.analysis_type

    final = [corrections.get(c, cat) for c, cat in zip(comments, categories)]
    return ClassificationOutcome(categories=final, analysis_type=analysis_type)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


@dataclass
class MotiveDetail:
    empleado: str
    nombre: str
    fecha_baja: str  # ISO date or "N/A"
    comentario: str


@dataclass
class MotiveCategory:
    """One category card: count plus the employees behind it, newest first."""
    category: str
    count: int
    details: list[MotiveDetail]


@dataclass
class MotiveBar:
    category: str
    count: int
    in_turno_pct: float = 0.0  # share of the dominant shift's comments


@dataclass
class ClassifiedComment:
    empleado: str
    comentario: str
    category: str
    corrected: bool


@dataclass
class MotivesResult:
    """Categorized exit reasons for the reporting month."""
    bars: list[MotiveBar]
    cards: list[MotiveCategory]
    by_turno: dict[str, dict[str, int]]  # category -> {turno -> count}
    turnos: list[str]
    dominant_turno: str
    comments: list[ClassifiedComment]
    pareto: list[ParetoRecord]
    has_data: bool
    text_column: str | None
    analysis_type: str


def _empty_result(text_column: str | None = None) -> MotivesResult:
    return MotivesResult(
        bars=[], cards=[], by_turno={}, turnos=[], dominant_turno="", comments=[], pareto=[],
        has_data=False, text_column=text_column, analysis_type="keywords",
    )


def _turno_label(value) -> str:
    if value is None or str(value).strip() == "":
        return MISSING_LABEL
    return str(value).strip()


async def analyze_motives(
    records: list[dict],
    spells: list[dict],
    corrections: Mapping[str, str],
    classifier: MotiveClassifier | None = None,
    cards_limit: int = CARDS_LIMIT,
) -> MotivesResult:
    """Categorize the month's exit comments.

    Args:
        records: Month separation rows (the Pareto source).
        spells: Spells used to fill in the employee profile of each comment.
        corrections: Snapshot of the correction store.
        classifier: Classifier to use; selected by capability when None.
        cards_limit: Number of category cards with employee details.
    """
    text_col = detect_text_column(records)
    if not records or text_col is None:
        return _empty_result(text_col)

    eligible = [r for r in records if is_eligible(r.get(text_col))]
    if not eligible:
        return _empty_result(text_col)

    comments = [str(r[text_col]) for r in eligible]
    outcome = await classify_comments(comments, corrections, classifier)
    logger.info(
        "Classified %d comment(s) from column %r using %s",
        len(comments), text_col, outcome.analysis_type,
    )

    profiles = {str(s.get("empleado")): s for s in spells}
    rows = []
    for rec, comment, category in zip(eligible, comments, outcome.categories):
        row = {**profiles.get(str(rec.get("empleado")), {}), **rec}
        row["_category"] = category
        row["_comment"] = comment
        rows.append(row)

    grouped: dict[str, list[dict]] = {}
    for row in rows:
        grouped.setdefault(row["_category"], []).append(row)

    # Cross-tab by shift
    by_turno: dict[str, dict[str, int]] = {}
    turno_totals: Counter = Counter()
    for row in rows:
        turno = _turno_label(row.get("turno"))
        by_turno.setdefault(row["_category"], {}).setdefault(turno, 0)
        by_turno[row["_category"]][turno] += 1
        turno_totals[turno] += 1
    dominant = turno_totals.most_common(1)[0][0] if turno_totals else ""
    dominant_total = turno_totals.get(dominant, 0)

    bars = sorted(
        (
            MotiveBar(
                category=cat,
                count=len(members),
                in_turno_pct=(
                    by_turno[cat].get(dominant, 0) / dominant_total * 100 if dominant_total else 0.0
                ),
            )
            for cat, members in grouped.items()
        ),
        key=lambda b: -b.count,
    )

    cards = []
    for bar in bars[:cards_limit]:
        members = sorted(
            grouped[bar.category],
            key=lambda r: r.get("fecha_baja") or date.min,
            reverse=True,
        )
        cards.append(MotiveCategory(
            category=bar.category,
            count=len(members),
            details=[
                MotiveDetail(
                    empleado=str(r.get("empleado") or ""),
                    nombre=str(r.get("nombre") or ""),
                    fecha_baja=r["fecha_baja"].isoformat() if isinstance(r.get("fecha_baja"), date) else "N/A",
                    comentario=r["_comment"],
                )
                for r in members
            ],
        ))

    classified = [
        ClassifiedComment(
            empleado=str(r.get("empleado") or ""),
            comentario=r["_comment"],
            category=r["_category"],
            corrected=r["_comment"] in corrections,
        )
        for r in rows
    ]

    return MotivesResult(
        bars=bars,
        cards=cards,
        by_turno=by_turno,
        turnos=sorted(turno_totals),
        dominant_turno=dominant,
        comments=classified,
        pareto=pareto_table([r["_category"] for r in rows]),
        has_data=True,
        text_column=text_col,
        analysis_type=outcome.analysis_type,
    )
