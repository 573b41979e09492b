"""
Flow editor routes - load / save / deploy / export / import of the bot flow
"""
import json
import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import Response

from ...core.exceptions import GraphInvalid
from ...flow.store import flow_store
from ...conversation import conversation_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flow", tags=["flow-editor"])


@router.get("/load")
async def load_flow():
    """Stored flow (or the default BSL flow)"""
    return flow_store.load()


@router.post("/save")
async def save_flow(flow: dict[str, Any] = Body(...)):
    try:
        saved = flow_store.save(flow)
    except GraphInvalid as e:
        raise HTTPException(status_code=400, detail={"error": "Estructura de flujo inválida", "details": e.errors})

    return {"success": True, "message": "Flujo guardado exitosamente", "timestamp": saved["metadata"]["lastModified"]}


@router.post("/deploy")
async def deploy_flow(flow: dict[str, Any] = Body(...)):
    """Validate, save and activate a flow in the running interpreter"""
    try:
        summary = flow_store.deploy(flow, conversation_dispatcher.interpreter)
    except GraphInvalid as e:
        logger.warning(f"Flow deploy rejected: {e.errors}")
        raise HTTPException(status_code=400, detail={"error": "Flujo inválido", "details": e.errors})

    return {
        "success": True,
        "message": "Flujo desplegado exitosamente",
        "deployedAt": flow["metadata"]["deployedAt"],
        **summary,
    }


@router.get("/export")
async def export_flow():
    """Stored flow as a downloadable JSON file"""
    content = json.dumps(flow_store.export(), ensure_ascii=False, indent=2)
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="bot-flow.json"'}
    )


@router.post("/import")
async def import_flow(flow: dict[str, Any] = Body(...)):
    try:
        imported = flow_store.import_flow(flow)
    except GraphInvalid as e:
        raise HTTPException(status_code=400, detail={"error": "Estructura de flujo inválida", "details": e.errors})

    return {"success": True, "message": "Flujo importado exitosamente", "flow": imported}
