"""
Bot control - Admin / bot-number messages that pause or resume automation
"""
import logging
from typing import Any, Dict, List, Optional

from ..core.config import settings
from ..models.conversation import Sender
from ..models.webhook import WhapiMessage

logger = logging.getLogger(__name__)

STOP_PHRASES = (
    "...transfiriendo con asesor",
    "...transfiriendo con asesor.",
    "ya terminé mis las pruebas",
    "ya termine mis las pruebas",
)
STOP_FRAGMENT = "transfiriendo con asesor"
RESUME_PHRASE = "...te dejo con el bot 🤖"


def is_control_message(message: WhapiMessage, bot_number: Optional[str] = None) -> bool:
    """Messages sent by the business side (the bot number or an agent on the same line)"""
    bot_number = bot_number or settings.BOT_NUMBER
    return message.from_me or message.sender == bot_number


def control_action(texto: str) -> Optional[str]:
    """
    Map a control text to an observaciones value.

    Returns:
        "stop", "" (resume) or None when the text is not a control phrase
    """
    normalized = (texto or "").strip().lower()
    if not normalized:
        return None

    if normalized in STOP_PHRASES or STOP_FRAGMENT in normalized:
        return "stop"

    if normalized == RESUME_PHRASE:
        return ""

    return None


def _last_system_message(historial: List[Dict[str, Any]]) -> Optional[str]:
    for entry in reversed(historial):
        if entry.get("from") == Sender.SISTEMA.value:
            return entry.get("mensaje")
    return None


class BotControl:
    """Applies control phrases and records admin messages in the history"""

    def __init__(self, store, messages):
        """
        Args:
            store: ConversationStore (get_conversation, set_observations)
            messages: MessageService (save_message)
        """
        self.store = store
        self.messages = messages

    async def handle(self, message: WhapiMessage) -> Dict[str, Any]:
        user_id = message.user_id
        texto = message.body

        action = control_action(texto)
        if action is not None and user_id:
            await self.store.set_observations(user_id, action)
            if action:
                logger.info(f"Bot stopped for {user_id}")
            else:
                logger.info(f"Bot resumed for {user_id}")

        if message.is_text and texto and user_id:
            await self._record_admin_message(user_id, texto)

        return {"success": True, "mensaje": "Mensaje de control procesado."}

    async def _record_admin_message(self, user_id: str, texto: str) -> None:
        """Store admin text unless it is the echo of the bot's last reply"""
        conversation = await self.store.get_conversation(user_id)
        historial = conversation.get("mensajes", [])

        if _last_system_message(historial) == texto:
            return

        await self.messages.save_message(
            user_id,
            None,
            texto,
            historial,
            remitente=Sender.ADMIN.value,
            fase=conversation.get("fase")
        )
