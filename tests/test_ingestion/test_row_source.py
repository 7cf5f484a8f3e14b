"""Tests for spreadsheet reading and file-name conventions."""

from io import BytesIO

import pandas as pd
import pytest

from attrition_brain.ingestion.row_source import (
    RowSourceError,
    extract_sources,
    parse_filenames,
    read_rows,
)


def _xlsx_bytes(df: pd.DataFrame) -> bytes:
    buf = BytesIO()
    df.to_excel(buf, index=False)
    return buf.getvalue()


class TestReadRows:
    def test_csv_with_empty_cells(self):
        raw = "Empleado,Turno\nE1,A\nE2,\n".encode("utf-8")
        rows = read_rows(raw, "activo_acme.csv")
        assert rows == [
            {"Empleado": "E1", "Turno": "A"},
            {"Empleado": "E2", "Turno": None},
        ]

    def test_excel_first_sheet(self):
        df = pd.DataFrame({"Empleado": ["E1", "E2"], "Clase": [1, None]})
        rows = read_rows(_xlsx_bytes(df), "bajas_acme.xlsx")
        assert len(rows) == 2
        assert rows[0]["Empleado"] == "E1"
        assert rows[1]["Clase"] is None

    def test_unreadable_payload_raises(self):
        with pytest.raises(RowSourceError):
            read_rows(b"\x00\x01not a workbook", "matriz.xlsx")


class TestExtractSources:
    @pytest.mark.asyncio
    async def test_reads_three_sources(self):
        a = ("Empleado\nE1\n".encode(), "a.csv")
        b = ("Empleado\nE2\nE3\n".encode(), "b.csv")
        m = ("Empleado\n".encode(), "m.csv")
        act, baj, mat = await extract_sources(a, b, m)
        assert len(act) == 1
        assert len(baj) == 2
        assert mat == []

    @pytest.mark.asyncio
    async def test_failure_propagates(self):
        ok = ("Empleado\nE1\n".encode(), "a.csv")
        bad = (b"garbage", "b.xlsx")
        with pytest.raises(RowSourceError):
            await extract_sources(ok, bad, ok)


class TestParseFilenames:
    def test_client_and_month(self):
        names = parse_filenames([
            "Activo_acme.xlsx",
            "Bajas_acme (1).xlsx",
            "MatrizRotacion_acme_planta_marzo.xlsx",
        ])
        assert names.client_name == "Acme"
        assert names.month_token == "marzo"

    def test_matriz_sets_client_when_missing(self):
        names = parse_filenames(["export.xlsx", "otro.xlsx", "matrizrotacion_beta_abril.xls"])
        assert names.client_name == "Beta"
        assert names.month_token == "abril"

    def test_defaults(self):
        names = parse_filenames(["a.xlsx", "b.xlsx", "c.xlsx"])
        assert names.client_name == "Cliente"
        assert names.month_token is None

    def test_matriz_without_month_part(self):
        names = parse_filenames(["matrizrotacion_acme.xlsx"])
        assert names.month_token is None
