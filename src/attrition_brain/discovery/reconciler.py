"""Record reconciliation across the three HR exports.

Bajas (separations) are enriched from the Matriz de rotación, separation types
are canonicalized into RV / BXF / OTRO, and active + separated records are
folded into one spell per employee.  Pure functions over canonical row dicts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

logger = logging.getLogger(__name__)

TIPO_RV = "RV"
TIPO_BXF = "BXF"
TIPO_OTRO = "OTRO"
COUNTED_TYPES = frozenset([TIPO_RV, TIPO_BXF])

ENRICH_FIELDS = ("tipo_baja", "motivo_baja", "turno", "puesto", "area", "supervisor", "nombre")

_CLASS1_LABELS = frozenset(["1", "01", "CLASE 1", "CLASE1"])


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def canonical_tipo_baja(value) -> str:
    """Bucket a free-form separation type into RV, BXF or OTRO."""
    s = str(value if value is not None else "").strip().upper().replace(".", "")
    if "RENUNCIA" in s or s == TIPO_RV:
        return TIPO_RV
    if "FALTA" in s or s == TIPO_BXF or "CONSECUTIV" in s:
        return TIPO_BXF
    return TIPO_OTRO


def is_counted(record: dict) -> bool:
    """True when the record's separation type is RV or BXF."""
    return canonical_tipo_baja(record.get("tipo_baja")) in COUNTED_TYPES


def is_class1(value) -> bool:
    """Check if a class code denotes class-1 (direct) personnel."""
    if value is None:
        return False
    s = str(value).strip().upper()
    if s in _CLASS1_LABELS:
        return True
    try:
        return int(float(s)) == 1
    except (TypeError, ValueError, OverflowError):
        return False


def _is_blank(value) -> bool:
    return value is None or str(value).strip() == ""


# ---------------------------------------------------------------------------
# Merge rule
# ---------------------------------------------------------------------------


def merge_records(primary: dict, secondary: dict, fields: tuple[str, ...] | None = None) -> dict:
    """Merge two records of the same employee; ``primary`` wins.

    A field is taken from ``secondary`` only when it is blank in ``primary``
    and non-blank in ``secondary``.  When ``fields`` is None every key of
    ``secondary`` is considered.
    """
    merged = dict(primary)
    keys = fields if fields is not None else tuple(secondary.keys())
    for key in keys:
        if _is_blank(merged.get(key)) and not _is_blank(secondary.get(key)):
            merged[key] = secondary[key]
    return merged


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


def _join_key(record: dict) -> tuple[str, str] | None:
    emp = record.get("empleado")
    fb = record.get("fecha_baja")
    if not emp or not isinstance(fb, date):
        return None
    return str(emp), fb.isoformat()


def enrich_bajas(bajas: list[dict], matriz: list[dict]) -> list[dict]:
    """Backfill Bajas rows from the Matriz row with the same (empleado, fecha_baja).

    Bajas values always win; Matriz only fills blanks.  ``tipo_baja`` is
    canonicalized afterwards.  If no Bajas row ends up typed RV/BXF but the
    Matriz carries typed rows, an employee -> type map from the Matriz (first
    occurrence wins) is applied to rows still typed OTRO.
    """
    lookup: dict[tuple[str, str], dict] = {}
    for rec in matriz:
        key = _join_key(rec)
        if key is not None:
            lookup[key] = rec

    enriched: list[dict] = []
    backfilled = 0
    for rec in bajas:
        out = dict(rec)
        key = _join_key(rec)
        if key is not None and key in lookup:
            out = merge_records(out, lookup[key], ENRICH_FIELDS)
            backfilled += 1
        out["tipo_baja"] = canonical_tipo_baja(out.get("tipo_baja"))
        enriched.append(out)

    logger.info("Enriched %d of %d bajas rows from matriz", backfilled, len(bajas))

    has_counted = any(r["tipo_baja"] in COUNTED_TYPES for r in enriched)
    matriz_has_type = any(r.get("tipo_baja") is not None for r in matriz)
    if has_counted or not matriz_has_type:
        return enriched

    type_by_emp: dict[str, str] = {}
    for rec in matriz:
        tipo = canonical_tipo_baja(rec.get("tipo_baja"))
        emp = rec.get("empleado")
        if emp and tipo in COUNTED_TYPES:
            type_by_emp.setdefault(str(emp), tipo)

    if not type_by_emp:
        return enriched

    inferred = 0
    for rec in enriched:
        if rec["tipo_baja"] not in COUNTED_TYPES:
            tipo = type_by_emp.get(str(rec.get("empleado")))
            if tipo:
                rec["tipo_baja"] = tipo
                inferred += 1
    logger.warning("Bajas carried no RV/BXF types; inferred %d from matriz", inferred)
    return enriched


# ---------------------------------------------------------------------------
# Spells
# ---------------------------------------------------------------------------


def build_spells(activos: list[dict], bajas: list[dict]) -> list[dict]:
    """Fold active and separation records into one spell per employee.

    Separation rows overlay the active row of the same employee, unless that
    spell already carries a separation date.
    """
    spells: dict[str, dict] = {}
    for rec in activos:
        spells[str(rec["empleado"])] = rec
    for rec in bajas:
        emp = str(rec["empleado"])
        existing = spells.get(emp)
        if existing is None:
            spells[emp] = dict(rec)
        elif existing.get("fecha_baja") is None:
            spells[emp] = {**existing, **rec}
    return list(spells.values())


@dataclass
class ReconciledData:
    """Outputs of reconciliation, filtered to class-1 personnel where noted."""
    bajas_enriched: list[dict]
    activos_c1: list[dict]
    bajas_c1_all_types: list[dict]
    bajas_c1: list[dict]  # RV/BXF only
    matriz_c1: list[dict]  # RV/BXF only
    spells: list[dict]


def reconcile(activos: list[dict], bajas: list[dict], matriz: list[dict]) -> ReconciledData:
    """Run enrichment, class-1 filtering and spell assembly."""
    bajas_enriched = enrich_bajas(bajas, matriz)

    activos_c1 = [r for r in activos if is_class1(r.get("clase"))]
    bajas_c1_all = [r for r in bajas_enriched if is_class1(r.get("clase"))]
    bajas_c1 = [r for r in bajas_c1_all if r["tipo_baja"] in COUNTED_TYPES]
    matriz_c1 = [r for r in matriz if is_class1(r.get("clase")) and is_counted(r)]

    spells = build_spells(activos_c1, bajas_c1)
    logger.info(
        "Reconciled %d class-1 spells (%d active rows, %d RV/BXF separations)",
        len(spells), len(activos_c1), len(bajas_c1),
    )
    return ReconciledData(
        bajas_enriched=bajas_enriched,
        activos_c1=activos_c1,
        bajas_c1_all_types=bajas_c1_all,
        bajas_c1=bajas_c1,
        matriz_c1=matriz_c1,
        spells=spells,
    )
