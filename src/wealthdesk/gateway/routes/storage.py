"""Collection, export and import endpoints backed by HybridStorage."""

from __future__ import annotations

import dataclasses

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from wealthdesk.exceptions import DataImportError, UnknownCollectionError
from wealthdesk.logging import get_logger
from wealthdesk.storage.entities import get_collection_spec

log = get_logger(__name__)

router = APIRouter()


@router.get("/collections/{name}")
async def get_collection(request: Request, name: str) -> JSONResponse:
    try:
        spec = get_collection_spec(name)
    except UnknownCollectionError as exc:
        return JSONResponse(content={"error": str(exc)}, status_code=404)
    items = await request.app.state.storage.get_collection(name)
    return JSONResponse(content=[spec.dump(item) for item in items])


@router.put("/collections/{name}")
async def put_collection(request: Request, name: str) -> JSONResponse:
    """Full replace of a collection. Body: JSON array of records."""
    try:
        get_collection_spec(name)
    except UnknownCollectionError as exc:
        return JSONResponse(content={"error": str(exc)}, status_code=404)
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(content={"error": "Invalid JSON body"}, status_code=400)

    try:
        skipped = await request.app.state.storage.save_collection(name, body)
    except ValueError as e:
        return JSONResponse(content={"error": str(e)}, status_code=400)

    return JSONResponse(
        content={
            "saved": len(body),
            "localOnly": [dataclasses.asdict(s) for s in skipped],
        }
    )


@router.delete("/collections/{name}/{record_id}")
async def delete_record(request: Request, name: str, record_id: str) -> JSONResponse:
    try:
        deleted = await request.app.state.storage.delete_item(name, record_id)
    except UnknownCollectionError as exc:
        return JSONResponse(content={"error": str(exc)}, status_code=404)
    return JSONResponse(content={"deleted": deleted})


@router.get("/export")
async def export_data(request: Request) -> Response:
    payload = await request.app.state.storage.export_all()
    return Response(content=payload, media_type="application/json")


@router.post("/import")
async def import_data(request: Request) -> JSONResponse:
    body = (await request.body()).decode("utf-8", errors="replace")
    try:
        counts = await request.app.state.storage.import_data(body)
    except DataImportError as e:
        log.warning("import_rejected", error=str(e))
        return JSONResponse(content={"error": "Import failed", "details": str(e)}, status_code=400)
    return JSONResponse(content={"imported": counts})
