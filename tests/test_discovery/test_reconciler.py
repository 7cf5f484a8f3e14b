"""Tests for Bajas enrichment, separation-type buckets and spell assembly."""

from datetime import date

from attrition_brain.discovery.reconciler import (
    TIPO_BXF,
    TIPO_OTRO,
    TIPO_RV,
    build_spells,
    canonical_tipo_baja,
    enrich_bajas,
    is_class1,
    merge_records,
    reconcile,
)


def _baja(emp, fb, tipo=None, clase="1", **extra):
    rec = {"empleado": emp, "fecha_ingreso": date(2024, 1, 1), "fecha_baja": fb,
           "tipo_baja": tipo, "clase": clase}
    rec.update(extra)
    return rec


class TestCanonicalTipoBaja:
    def test_resignation(self):
        assert canonical_tipo_baja("Renuncia voluntaria") == TIPO_RV
        assert canonical_tipo_baja("r.v.") == TIPO_RV

    def test_absences(self):
        assert canonical_tipo_baja("Baja por faltas") == TIPO_BXF
        assert canonical_tipo_baja("3 faltas consecutivas") == TIPO_BXF
        assert canonical_tipo_baja("BXF") == TIPO_BXF

    def test_everything_else(self):
        assert canonical_tipo_baja("Despido") == TIPO_OTRO
        assert canonical_tipo_baja(None) == TIPO_OTRO
        assert canonical_tipo_baja("") == TIPO_OTRO


class TestIsClass1:
    def test_accepted_forms(self):
        for value in ("1", "01", "Clase 1", 1, 1.0, " 1 "):
            assert is_class1(value), value

    def test_rejected_forms(self):
        for value in (None, "2", "Clase 2", "", "abc"):
            assert not is_class1(value), value


class TestMergeRecords:
    def test_primary_wins(self):
        merged = merge_records({"a": "x", "b": None}, {"a": "y", "b": "z"})
        assert merged == {"a": "x", "b": "z"}

    def test_blank_secondary_never_overwrites(self):
        merged = merge_records({"a": "x"}, {"a": "  "})
        assert merged["a"] == "x"

    def test_restricted_fields(self):
        merged = merge_records({"a": None}, {"a": "y", "b": "z"}, fields=("a",))
        assert merged == {"a": "y"}


class TestEnrichBajas:
    def test_backfills_blank_fields_from_matriz(self):
        bajas = [_baja("E1", date(2024, 3, 5), tipo="Renuncia", turno=None, puesto="Operador")]
        matriz = [_baja("E1", date(2024, 3, 5), tipo="Despido", turno="Noche", puesto="Almacen")]
        out = enrich_bajas(bajas, matriz)
        assert out[0]["turno"] == "Noche"
        assert out[0]["puesto"] == "Operador"
        assert out[0]["tipo_baja"] == TIPO_RV

    def test_join_requires_same_separation_date(self):
        bajas = [_baja("E1", date(2024, 3, 5), turno=None)]
        matriz = [_baja("E1", date(2024, 2, 5), turno="Noche")]
        out = enrich_bajas(bajas, matriz)
        assert out[0]["turno"] is None

    def test_infers_types_from_matriz_when_bajas_untyped(self):
        bajas = [_baja("E1", date(2024, 3, 5)), _baja("E2", date(2024, 3, 9))]
        matriz = [
            _baja("E1", date(2023, 1, 1), tipo="Faltas"),
            _baja("E1", date(2023, 6, 1), tipo="Renuncia"),
        ]
        out = enrich_bajas(bajas, matriz)
        assert out[0]["tipo_baja"] == TIPO_BXF  # first occurrence
        assert out[1]["tipo_baja"] == TIPO_OTRO

    def test_no_inference_when_bajas_already_typed(self):
        bajas = [_baja("E1", date(2024, 3, 5), tipo="Renuncia"), _baja("E2", date(2024, 3, 9))]
        matriz = [_baja("E2", date(2023, 1, 1), tipo="Faltas")]
        out = enrich_bajas(bajas, matriz)
        assert out[1]["tipo_baja"] == TIPO_OTRO

    def test_does_not_mutate_input(self):
        bajas = [_baja("E1", date(2024, 3, 5), tipo="Renuncia")]
        enrich_bajas(bajas, [])
        assert bajas[0]["tipo_baja"] == "Renuncia"


class TestBuildSpells:
    def test_one_spell_per_employee(self):
        activos = [{"empleado": "E1", "fecha_ingreso": date(2024, 1, 1), "fecha_baja": None, "turno": "A"}]
        bajas = [
            {"empleado": "E1", "fecha_ingreso": date(2024, 1, 1), "fecha_baja": date(2024, 3, 1), "turno": None},
            {"empleado": "E2", "fecha_ingreso": date(2024, 2, 1), "fecha_baja": date(2024, 3, 2)},
        ]
        spells = build_spells(activos, bajas)
        by_id = {s["empleado"]: s for s in spells}
        assert len(spells) == 2
        assert by_id["E1"]["fecha_baja"] == date(2024, 3, 1)
        assert by_id["E2"]["fecha_baja"] == date(2024, 3, 2)

    def test_existing_separation_not_overwritten(self):
        bajas = [
            {"empleado": "E1", "fecha_baja": date(2024, 1, 1)},
            {"empleado": "E1", "fecha_baja": date(2024, 5, 1)},
        ]
        spells = build_spells([], bajas)
        assert spells == [{"empleado": "E1", "fecha_baja": date(2024, 1, 1)}]


class TestReconcile:
    def test_class1_and_type_filters(self):
        activos = [
            {"empleado": "A1", "clase": "1", "fecha_ingreso": date(2024, 1, 1), "fecha_baja": None},
            {"empleado": "A2", "clase": "2", "fecha_ingreso": date(2024, 1, 1), "fecha_baja": None},
        ]
        bajas = [
            _baja("B1", date(2024, 3, 5), tipo="Renuncia"),
            _baja("B2", date(2024, 3, 6), tipo="Despido"),
            _baja("B3", date(2024, 3, 7), tipo="Faltas", clase="2"),
        ]
        matriz = [
            _baja("M1", date(2024, 3, 8), tipo="Renuncia"),
            _baja("M2", date(2024, 3, 9), tipo="Despido"),
        ]
        data = reconcile(activos, bajas, matriz)
        assert [r["empleado"] for r in data.activos_c1] == ["A1"]
        assert [r["empleado"] for r in data.bajas_c1_all_types] == ["B1", "B2"]
        assert [r["empleado"] for r in data.bajas_c1] == ["B1"]
        assert [r["empleado"] for r in data.matriz_c1] == ["M1"]
        assert {s["empleado"] for s in data.spells} == {"A1", "B1"}
        assert len(data.bajas_enriched) == 3
