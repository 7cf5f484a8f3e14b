"""Column canonicalization for HR spreadsheet exports.

Headers arrive in whatever shape the payroll system produced ("Fecha de
Baja", "No. Empleado", "ÁREA"...).  They are folded to snake_case ASCII and
then mapped onto a fixed vocabulary using ordered alias lists.  The mapping
is decided once per batch from the first row's headers.
"""

from __future__ import annotations

import logging
import math
import re
import unicodedata
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

CANONICAL_FIELDS = (
    "empleado",
    "nombre",
    "fecha_ingreso",
    "fecha_baja",
    "clase",
    "turno",
    "puesto",
    "area",
    "supervisor",
    "tipo_baja",
    "motivo_baja",
)

# Ordered: the first alias present in the batch wins.
CANDIDATES: dict[str, list[str]] = {
    "empleado": [
        "empleado", "empleado_", "empleado_#", "empleado#", "id_empleado", "no_empleado",
        "identificador", "num_empleado", "numero_empleado", "employee_id",
    ],
    "nombre": [
        "nombre", "nombre_empleado", "empleado_nombre", "nombre_completo",
        "employee_name", "name", "nombre_trabajador",
    ],
    "fecha_ingreso": [
        "fecha_ingreso", "fecha_de_ingreso", "fecha_contratacion", "fecha_de_alta", "f_alta",
        "alta", "fecha_alta", "fecha_de_alta_en_el_sistema",
    ],
    "fecha_baja": [
        "fecha_baja", "fecha_de_baja", "fecha_de_baja_en_el_sistema", "fecha_ultimo_dia",
        "fecha_de_ultimo_dia_de_trabajo_udt", "f_baja", "fecha_evento_baja", "baja",
    ],
    "clase": [
        "clase", "clase_personal", "clase_de_personal", "categoria", "class", "clasificacion",
        "clasificacion_personal", "grupo", "nivel",
    ],
    "turno": ["turno", "shift"],
    "puesto": ["puesto", "posicion", "position", "job_title", "cargo"],
    "area": ["area", "departamento", "depto", "dept", "area_depto"],
    "supervisor": ["supervisor", "jefe", "lider", "lead", "manager"],
    "tipo_baja": [
        "tipo_baja", "tipo_de_baja_en_el_sistema", "clasificacion_baja", "tipo", "causa_baja_tipo",
    ],
    "motivo_baja": [
        "motivo_baja", "razon_de_renuncia", "motivo", "causa_baja", "razon_baja",
        "razon_capturada_en_sistema",
    ],
}

DEFAULT_CLASS = "1"


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def fold_diacritics(text: str) -> str:
    """Strip combining marks: "Fecha de Baja Área" -> "Fecha de Baja Area"."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_header(name) -> str:
    """Fold a raw header into a snake_case ASCII key."""
    key = fold_diacritics(str(name).strip().lower())
    key = re.sub(r"[^a-z0-9]+", "_", key)
    return key.strip("_")


def _safe_str(val) -> str | None:
    """Render a cell as text; integral floats lose their ``.0``."""
    if val is None:
        return None
    if isinstance(val, float):
        if math.isnan(val):
            return None
        if val.is_integer():
            return str(int(val))
    s = str(val).strip()
    return s or None


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_EXCEL_EPOCH = date(1899, 12, 30)

_DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
]


def parse_date(val) -> date | None:
    """Parse a cell into a calendar date, returning None on failure.

    Numbers are Excel serial days; strings are tried against ISO and the
    usual day-first layouts.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, datetime):
        # pandas.Timestamp is a datetime subclass; NaT compares unequal to itself
        if val != val:
            return None
        return val.date()
    if isinstance(val, date):
        return val
    if isinstance(val, (int, float)):
        if isinstance(val, float) and (math.isnan(val) or math.isinf(val)):
            return None
        try:
            return _EXCEL_EPOCH + timedelta(days=int(math.floor(val)))
        except OverflowError:
            return None
    s = str(val).strip()
    if not s:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def build_mapping(headers: list[str]) -> dict[str, str]:
    """Map normalized headers to canonical field names.

    Returns:
        Dict of normalized header -> canonical field, one entry per matched field.
    """
    present = set(headers)
    mapping: dict[str, str] = {}
    for canon, aliases in CANDIDATES.items():
        for alias in aliases:
            if alias in present:
                mapping[alias] = canon
                break
    return mapping


def map_columns(records: list[dict]) -> list[dict]:
    """Rename every record's keys using the mapping fixed by the first record.

    Unmatched headers keep their normalized name.
    """
    if not records:
        return []

    first_keys = [normalize_header(k) for k in records[0].keys()]
    mapping = build_mapping(first_keys)
    logger.debug("Column mapping: %s", mapping)

    mapped = []
    for rec in records:
        new_rec: dict = {}
        for key, value in rec.items():
            norm = normalize_header(key)
            new_rec[mapping.get(norm, norm)] = value
        mapped.append(new_rec)
    return mapped


def clean_and_map(records: list[dict], source: str) -> list[dict]:
    """Produce canonical records for one export.

    ``empleado`` and ``clase`` are coerced to trimmed strings; missing ids get
    a synthetic ``temp_<source>_<n>`` value and a missing class defaults to
    "1".  Hire and separation dates are parsed to :class:`date` (or None).

    Args:
        records: Raw rows from the row source.
        source: Short source tag ("act", "baj", "mat") for synthetic ids.
    """
    if not records:
        return []

    mapped = map_columns(records)
    if not any("empleado" in r for r in mapped):
        logger.warning("No employee id column found in %s: synthesizing ids", source)
    if not any("clase" in r for r in mapped):
        logger.info("No class column found in %s: defaulting to class %s", source, DEFAULT_CLASS)

    cleaned = []
    for i, rec in enumerate(mapped):
        out = dict(rec)
        out["empleado"] = _safe_str(rec.get("empleado")) or f"temp_{source}_{i + 1}"
        out["clase"] = _safe_str(rec.get("clase")) or DEFAULT_CLASS
        out["fecha_ingreso"] = parse_date(rec.get("fecha_ingreso"))
        out["fecha_baja"] = parse_date(rec.get("fecha_baja"))
        cleaned.append(out)
    return cleaned
