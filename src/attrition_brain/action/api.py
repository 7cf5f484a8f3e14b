"""FastAPI application: build attrition reports from uploaded exports and
manage exit-comment corrections."""

import asyncio
import logging

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from config.settings import settings

from attrition_brain.cognitive.motive_classifier import CATEGORIES, FALLBACK_CATEGORY
from attrition_brain.discovery.engine import build_report_from_files, report_to_dict
from attrition_brain.ingestion.row_source import RowSourceError
from attrition_brain.memory.corrections_store import CorrectionsStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Attrition Brain API", version="1.0.0")

_VALID_CATEGORIES = frozenset([*CATEGORIES, FALLBACK_CATEGORY])


_store = CorrectionsStore(settings.corrections_path)


def get_store() -> CorrectionsStore:
    """Process-wide store so its lock serializes every writer."""
    return _store


class CorrectionsUpdate(BaseModel):
    corrections: dict[str, str]


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": app.version}


@app.post("/reports")
async def create_report(
    activos: UploadFile = File(...),
    bajas: UploadFile = File(...),
    matriz: UploadFile = File(...),
    month: str | None = Form(None),
    summary: bool = Form(True),
    store: CorrectionsStore = Depends(get_store),
) -> dict:
    """Build the monthly attrition report from the three spreadsheet exports."""
    uploads = []
    for upload, default_name in ((activos, "activos.xlsx"), (bajas, "bajas.xlsx"), (matriz, "matriz.xlsx")):
        uploads.append((await upload.read(), upload.filename or default_name))

    try:
        report = await build_report_from_files(
            uploads[0], uploads[1], uploads[2], store, month=month, with_summary=summary,
        )
    except RowSourceError as exc:
        logger.warning("Report aborted: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc))

    return report_to_dict(report)


@app.get("/corrections")
async def list_corrections(store: CorrectionsStore = Depends(get_store)) -> dict:
    snapshot = await asyncio.to_thread(store.snapshot)
    return {"count": len(snapshot), "corrections": dict(snapshot)}


@app.post("/corrections")
async def merge_corrections(
    body: CorrectionsUpdate,
    store: CorrectionsStore = Depends(get_store),
) -> dict:
    """Persist user-accepted reclassifications (comment -> category)."""
    unknown = sorted({c for c in body.corrections.values() if c not in _VALID_CATEGORIES})
    if unknown:
        raise HTTPException(status_code=422, detail={"unknown_categories": unknown})

    merged = await asyncio.to_thread(store.merge, body.corrections)
    return {"status": "merged", "updated": len(body.corrections), "count": len(merged)}
