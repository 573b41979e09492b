"""
Conversation admin routes - inspect a conversation, stop/resume the bot,
record manual messages and delete rows
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ...models.conversation import Sender
from ...services.locks import user_locks
from ...services.messages import message_service
from ...services.persistence import conversation_store
from ...services.validation import ValidationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


class ObservationsUpdate(BaseModel):
    observaciones: Optional[str] = None


class ManualMessage(BaseModel):
    mensaje: Optional[str] = None
    remitente: str = Sender.ADMIN.value


@router.get("/{user_id}")
async def get_conversation(user_id: str):
    user_id = ValidationService.extract_user_id(user_id)
    conversation = await conversation_store.get_conversation(user_id)

    if not conversation.get("mensajes"):
        raise HTTPException(status_code=404, detail="Conversación no encontrada")

    return {"success": True, "conversation": {"userId": user_id, **conversation}}


@router.put("/{user_id}/observations")
async def update_observations(user_id: str, update: ObservationsUpdate):
    """Set observaciones ("stop" blocks the bot, empty text resumes it)"""
    user_id = ValidationService.extract_user_id(user_id)
    if update.observaciones is None:
        raise HTTPException(status_code=400, detail="El campo observaciones es requerido")

    async with user_locks.hold(user_id):
        result = await conversation_store.set_observations(user_id, update.observaciones)

    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error"))

    logger.info(f"Observaciones for {user_id} updated from admin API")
    return {"success": True, "message": "Observaciones actualizadas"}


@router.post("/{user_id}/messages")
async def record_message(user_id: str, body: ManualMessage):
    """Append a manual entry to the history (nothing is sent to WhatsApp)"""
    user_id = ValidationService.extract_user_id(user_id)
    if not body.mensaje:
        raise HTTPException(status_code=400, detail="El mensaje es requerido")

    async with user_locks.hold(user_id):
        conversation = await conversation_store.get_conversation(user_id)
        result = await message_service.send_and_save(
            to=None,
            user_id=user_id,
            nombre=None,
            texto=body.mensaje,
            historial=conversation.get("mensajes"),
            remitente=body.remitente,
            fase=conversation.get("fase")
        )

    if not result.get("saved"):
        raise HTTPException(status_code=500, detail="No se pudo guardar el mensaje")

    logger.info(f"Manual message recorded for {user_id}: {body.mensaje[:50]}")
    return {"success": True, "message": "Mensaje registrado"}


@router.delete("/{user_id}")
async def delete_conversation(user_id: str, confirm: bool = False):
    user_id = ValidationService.extract_user_id(user_id)
    if not confirm:
        raise HTTPException(status_code=400, detail="Agrega ?confirm=true para confirmar")

    async with user_locks.hold(user_id):
        result = await conversation_store.delete_conversation(user_id)

    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error"))

    return {"success": True, "message": "Conversación eliminada"}
