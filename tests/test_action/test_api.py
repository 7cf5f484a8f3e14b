"""Tests for the FastAPI endpoints."""

from unittest.mock import AsyncMock, patch

import pandas as pd
import pytest

from attrition_brain.memory.corrections_store import CorrectionsStore


def _csv(rows):
    return pd.DataFrame(rows).to_csv(index=False).encode("utf-8")


ACTIVOS = _csv([
    {"Empleado": "A1", "Fecha Ingreso": "2023-01-01", "Clase": 1, "Turno": "Dia"},
    {"Empleado": "A2", "Fecha Ingreso": "2023-05-01", "Clase": 1, "Turno": "Noche"},
])
BAJAS = _csv([
    {"Empleado": "B1", "Fecha Ingreso": "2023-02-01", "Fecha Baja": "2024-03-10",
     "Tipo Baja": "Renuncia", "Clase": 1, "Turno": "Noche", "Comentarios": "mi jefe me gritaba"},
])
MATRIZ = _csv([
    {"Empleado": "B1", "Fecha Baja": "2024-03-10", "Tipo Baja": "RV", "Clase": 1, "Supervisor": "Lopez"},
])


@pytest.fixture()
def store(tmp_path):
    return CorrectionsStore(tmp_path / "corrections.json")


@pytest.fixture()
def client(store):
    """TestClient with the correction store redirected to a temp file and no LLM."""
    with patch("attrition_brain.analysis.tools.llm_gateway.is_available", return_value=False):
        from attrition_brain.action.api import app, get_store

        app.dependency_overrides[get_store] = lambda: store

        from fastapi.testclient import TestClient

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()


def _files(matriz_name="matrizrotacion_acme_marzo.csv"):
    return {
        "activos": ("activo_acme.csv", ACTIVOS, "text/csv"),
        "bajas": ("bajas_acme.csv", BAJAS, "text/csv"),
        "matriz": (matriz_name, MATRIZ, "text/csv"),
    }


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": "1.0.0"}


def test_create_report(client):
    resp = client.post("/reports", files=_files(), data={"summary": "false"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["client_name"] == "Acme"
    assert data["period"]["start"].endswith("-03-01")
    assert data["period"]["label"].startswith("Marzo")
    assert data["summary"] is None
    assert data["motives"]["analysis_type"] == "keywords"
    assert set(data["pareto"]) >= {"turno", "puesto", "area", "supervisor", "motivo_baja"}


def test_create_report_month_override(client):
    resp = client.post("/reports", files=_files(), data={"summary": "false", "month": "enero"})
    assert resp.status_code == 200
    assert resp.json()["period"]["label"].startswith("Enero")


def test_create_report_applies_stored_corrections(client, store):
    store.merge({"mi jefe me gritaba": "Ambiente laboral"})
    # no month in the file names: the period comes from the separation dates
    resp = client.post("/reports", files=_files("matriz.csv"), data={"summary": "false"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["period"]["start"] == "2024-03-01"
    assert data["motives"]["comments"] == [{
        "empleado": "B1", "comentario": "mi jefe me gritaba",
        "category": "Ambiente laboral", "corrected": True,
    }]


def test_unreadable_export_is_422(client):
    files = _files()
    files["bajas"] = ("bajas_acme.xlsx", b"not a workbook", "application/octet-stream")
    resp = client.post("/reports", files=files, data={"summary": "false"})
    assert resp.status_code == 422


@patch("attrition_brain.action.api.build_report_from_files", new_callable=AsyncMock)
def test_summary_flag_forwarded(mock_build, client):
    mock_build.side_effect = RuntimeError("stop")
    with pytest.raises(RuntimeError):
        client.post("/reports", files=_files(), data={"summary": "true"})
    assert mock_build.await_args.kwargs["with_summary"] is True
    assert mock_build.await_args.kwargs["month"] is None


def test_corrections_roundtrip(client):
    resp = client.get("/corrections")
    assert resp.json() == {"count": 0, "corrections": {}}

    resp = client.post("/corrections", json={"corrections": {"me voy lejos": "Problema de transporte"}})
    assert resp.status_code == 200
    assert resp.json() == {"status": "merged", "updated": 1, "count": 1}

    resp = client.get("/corrections")
    assert resp.json()["corrections"] == {"me voy lejos": "Problema de transporte"}


def test_corrections_reject_unknown_category(client, store):
    resp = client.post("/corrections", json={"corrections": {"x y z w": "Vacaciones"}})
    assert resp.status_code == 422
    assert resp.json()["detail"] == {"unknown_categories": ["Vacaciones"]}
    assert dict(store.snapshot()) == {}


def test_corrections_accept_fallback_category(client):
    resp = client.post("/corrections", json={"corrections": {"no se": "Otros/Revisar"}})
    assert resp.status_code == 200


def test_store_shared_between_requests():
    from attrition_brain.action.api import get_store

    assert get_store() is get_store()
