"""Spreadsheet → row dicts, plus the file naming conventions of the exports.

Each export (activos, bajas, matriz de rotación) is read from its first sheet
into a list of plain dicts with ``None`` for empty cells.  The three reads are
independent and run concurrently in worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from io import BytesIO, StringIO

import pandas as pd

from config.settings import settings

logger = logging.getLogger(__name__)


class RowSourceError(RuntimeError):
    """An input spreadsheet could not be read at all."""


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def _extension(file_name: str) -> str:
    return file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""


def read_rows(raw: bytes, file_name: str) -> list[dict]:
    """Parse CSV/Excel bytes into a list of row dicts (first sheet only).

    Raises:
        RowSourceError: when the payload cannot be parsed.
    """
    ext = _extension(file_name)
    try:
        if ext == "csv":
            df = pd.read_csv(StringIO(raw.decode("utf-8-sig")))
        else:
            df = pd.read_excel(BytesIO(raw), sheet_name=0)
    except Exception as exc:
        raise RowSourceError(f"Could not read '{file_name}': {exc}") from exc

    # NaN / NaT -> None so downstream code only sees real values
    df = df.astype(object).where(df.notna(), None)
    rows = df.to_dict(orient="records")
    logger.info("Read %d rows (%d columns) from %s", len(rows), len(df.columns), file_name)
    return rows


async def extract_sources(
    activos: tuple[bytes, str],
    bajas: tuple[bytes, str],
    matriz: tuple[bytes, str],
) -> tuple[list[dict], list[dict], list[dict]]:
    """Read the three exports concurrently.

    Each argument is ``(raw_bytes, file_name)``.  Any failure propagates as
    :class:`RowSourceError`.
    """
    act, baj, mat = await asyncio.gather(
        asyncio.to_thread(read_rows, *activos),
        asyncio.to_thread(read_rows, *bajas),
        asyncio.to_thread(read_rows, *matriz),
    )
    return act, baj, mat


# ---------------------------------------------------------------------------
# File naming conventions
# ---------------------------------------------------------------------------


@dataclass
class SourceNames:
    """Client name and month token recovered from the export file names."""
    client_name: str
    month_token: str | None


_COPY_MARKER = re.compile(r"\s*\(\d+\)\s*")
_EXTENSIONS = re.compile(r"\.(xlsx|xls|csv)$")


def parse_filenames(file_names: list[str]) -> SourceNames:
    """Recover the client name and month from ``activo_<cliente>``,
    ``bajas_<cliente>`` and ``matrizrotacion_<cliente>_..._<mes>`` names.
    """
    client: str | None = None
    month_token: str | None = None

    for name in file_names:
        clean = _COPY_MARKER.sub("", name.lower(), count=1)
        clean = _EXTENSIONS.sub("", clean)
        if clean.startswith("activo_"):
            client = clean[len("activo_"):]
        elif clean.startswith("bajas_"):
            client = clean[len("bajas_"):]
        elif clean.startswith("matrizrotacion_"):
            parts = clean[len("matrizrotacion_"):].split("_")
            if len(parts) >= 2:
                if client is None:
                    client = parts[0]
                month_token = parts[-1]

    client = client or settings.default_client_name
    return SourceNames(client_name=client[:1].upper() + client[1:], month_token=month_token)
