"""
Message service - Send a WhatsApp message and persist it in the conversation history
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Any, List, Dict

from ..models.conversation import Sender, Phase, dedupe_history

logger = logging.getLogger(__name__)


def history_entry(remitente: str, texto: str) -> Dict[str, Any]:
    return {
        "from": remitente,
        "mensaje": texto,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class MessageService:
    """Unified send + save helper used by every driver"""

    def __init__(self, gateway, store):
        """
        Args:
            gateway: WhatsAppService (send_text)
            store: ConversationStore (save_conversation)
        """
        self.gateway = gateway
        self.store = store

    async def send_and_save(
        self,
        to: Optional[str],
        user_id: str,
        nombre: Optional[str],
        texto: str,
        historial: Optional[List[Dict[str, Any]]] = None,
        remitente: str = Sender.SISTEMA.value,
        fase: str = Phase.INICIAL.value
    ) -> Dict[str, Any]:
        """
        Send a message (when `to` is set) and append it to the stored history.

        Returns:
            {success, historial} or {success: False, error} when the send failed
            (nothing is saved in that case)
        """
        if to:
            result = await self.gateway.send_text(to, texto)
            if not result.get("success"):
                logger.error(f"Error sending message to {to}: {result.get('error')}")
                return {"success": False, "error": result.get("error")}

        new_history = dedupe_history([*(historial or []), history_entry(remitente, texto)])
        saved = await self.store.save_conversation(user_id, nombre, new_history, fase)

        return {
            "success": True,
            "saved": saved.get("success", False),
            "historial": new_history,
        }

    async def save_message(
        self,
        user_id: str,
        nombre: Optional[str],
        texto: str,
        historial: Optional[List[Dict[str, Any]]] = None,
        remitente: str = Sender.USUARIO.value,
        fase: str = Phase.INICIAL.value
    ) -> Dict[str, Any]:
        """Persist a message without sending it"""
        return await self.send_and_save(None, user_id, nombre, texto, historial, remitente, fase)

    async def send_simple(self, to: str, texto: str) -> Dict[str, Any]:
        """Send without touching the history"""
        result = await self.gateway.send_text(to, texto)
        if not result.get("success"):
            logger.error(f"Error sending simple message to {to}: {result.get('error')}")
        return result

    @staticmethod
    def is_user_blocked(observaciones: Any) -> bool:
        return "stop" in str(observaciones or "").lower()

    @staticmethod
    def append_user_message(mensaje: str, historial: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        """History with the user message appended (deduplicated)"""
        return dedupe_history([*(historial or []), history_entry(Sender.USUARIO.value, mensaje)])


def create_message_service(gateway=None, store=None) -> MessageService:
    """Factory wiring the default gateway / store"""
    from .whatsapp import whatsapp_service
    from .persistence import conversation_store
    return MessageService(gateway or whatsapp_service, store or conversation_store)


# Singleton instance
message_service = create_message_service()
