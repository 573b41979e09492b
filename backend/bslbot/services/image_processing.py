"""
Image Processing - Queued job for inbound WhatsApp images
Download, classify, extract, reply and persist
"""
import base64
import logging
import re
from typing import Any, Dict, Optional, Tuple

from ..models.conversation import Sender, Phase, dedupe_history
from .locks import UserLocks, user_locks
from .messages import history_entry

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "📷 (imagen enviada)"

DOCUMENT_PROMPT_AFTER_PAYMENT = "Ahora escribe SOLO tu número de documento *(sin puntos ni letras)*."
UNREADABLE_PAYMENT = (
    "No pude identificar el valor en el comprobante. "
    "Por favor envía una imagen más clara del soporte de pago."
)
EXAM_LIST_REPLY = (
    "He revisado tu orden médica.\n\n"
    "🩺 Nuestras opciones para exámenes ocupacionales:\n"
    "• Virtual: $46.000\n• Presencial: $69.000\n\n"
    "¿Cuál opción prefieres?"
)
APPOINTMENT_REPLY = (
    "He recibido tu confirmación de cita. Para consultar información específica, "
    "proporciona tu número de documento."
)
IDENTITY_REPLY = "He recibido tu documento. ¿Necesitas consultar información sobre tu cita o realizar un examen médico?"
UNKNOWN_REPLY = (
    "He recibido tu imagen, pero no pude identificar qué tipo de documento es. "
    "¿Podrías explicarme qué necesitas?"
)


class ImageProcessor:
    """Handler of imageProcessing tasks"""

    def __init__(self, gateway, ai, store, locks: Optional[UserLocks] = None):
        """
        Args:
            gateway: WhatsAppService (download_media, send_text)
            ai: AIService (classify_image, extract_payment_info, extract_document_info)
            store: ConversationStore (get_conversation, save_conversation)
            locks: UserLocks shared with the dispatcher (default: user_locks)
        """
        self.gateway = gateway
        self.ai = ai
        self.store = store
        self.locks = locks if locks is not None else user_locks

    async def process(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process one image task.

        Args:
            data: {media_id | base64_image, mime_type, to, user_id, nombre}

        Returns:
            {success, tipoImagen, contexto, respuesta, fase}

        Raises:
            ProviderError: Download / classification failures (the queue retries)
        """
        user_id = data["user_id"]
        mime_type = data.get("mime_type") or "image/jpeg"
        base64_image = data.get("base64_image")

        if not base64_image:
            content = await self.gateway.download_media(data["media_id"])
            base64_image = base64.b64encode(content).decode("ascii")

        label = await self.ai.classify_image(base64_image, mime_type)
        logger.info(f"Image from {user_id} classified as {label}")

        context_line, reply, new_phase = await self._build_reply(label, base64_image, mime_type)

        async with self.locks.hold(user_id):
            conversation = await self.store.get_conversation(user_id)
            fase = new_phase or conversation.get("fase") or Phase.INICIAL.value

            historial = dedupe_history([
                *conversation.get("mensajes", []),
                history_entry(Sender.USUARIO.value, IMAGE_PLACEHOLDER),
                history_entry(Sender.SISTEMA.value, context_line),
                history_entry(Sender.SISTEMA.value, reply),
            ])
            await self.store.save_conversation(user_id, data.get("nombre"), historial, fase)

        result = await self.gateway.send_text(data["to"], reply)
        if not result.get("success"):
            logger.error(f"Image reply to {user_id} not delivered: {result.get('error')}")

        return {
            "success": True,
            "tipoImagen": label,
            "contexto": context_line,
            "respuesta": reply,
            "fase": fase,
        }

    async def _build_reply(
        self,
        label: str,
        base64_image: str,
        mime_type: str
    ) -> Tuple[str, str, Optional[str]]:
        """(context line, reply, new phase or None)"""
        if label == "comprobante_pago":
            info = await self.ai.extract_payment_info(base64_image, mime_type)
            valor = re.sub(r"[^0-9]", "", str(info.get("valor") or ""))

            if re.fullmatch(r"[0-9]{4,}", valor):
                return (
                    f"📷 Comprobante de pago recibido - Valor detectado: ${valor}",
                    DOCUMENT_PROMPT_AFTER_PAYMENT,
                    Phase.PAGO.value,
                )
            return "📷 Comprobante de pago recibido - Valor no detectado", UNREADABLE_PAYMENT, None

        if label == "listado_examenes":
            return "📋 Listado de exámenes recibido", EXAM_LIST_REPLY, None

        if label == "confirmacion_cita":
            return "📅 Confirmación de cita recibida", APPOINTMENT_REPLY, None

        if label == "documento_identidad":
            info = await self.ai.extract_document_info(base64_image, mime_type)
            context_line = "🆔 Documento de identidad recibido"
            if info.get("numero_documento"):
                context_line += f" - Número: {info['numero_documento']}"
            return context_line, IDENTITY_REPLY, None

        return "📷 Imagen recibida - Tipo no identificado", UNKNOWN_REPLY, None


def create_image_processor(gateway=None, ai=None, store=None, locks=None) -> ImageProcessor:
    """Factory wiring the default services"""
    from .whatsapp import whatsapp_service
    from .ai import ai_service
    from .persistence import conversation_store
    return ImageProcessor(
        gateway or whatsapp_service,
        ai or ai_service,
        store or conversation_store,
        locks=locks
    )


# Singleton instance
image_processor = create_image_processor()
