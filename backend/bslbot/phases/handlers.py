"""
Phase Handlers - Reply logic for each conversation phase
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..models.conversation import Phase, Sender
from ..services.pdf import CERTIFICATE_CAPTION
from ..services.prompts import get_institutional_prompt
from ..services.validation import ValidationService
from ..flow.interpreter import build_chat_messages, DOCUMENT_REQUEST
from .detector import (
    es_opcion_numerica,
    get_opciones_post_agendamiento,
    get_opciones_revision_certificado,
)

logger = logging.getLogger(__name__)

TRANSFER_MESSAGE = "...transfiriendo con asesor"
LOOKUP_NOTICE = "🔍 Un momento por favor..."
PAYMENT_REGISTERED = "Pago registrado. Un asesor te contactará para continuar."
EMPTY_AI_REPLY = "¿En qué puedo ayudarte con los exámenes médicos?"
AI_FALLBACK_OPTIONS = (
    "🩺 Nuestras opciones de exámenes ocupacionales:\n"
    "• Virtual: $46.000\n"
    "• Presencial: $69.000\n\n"
    "¿Cuál te interesa más?"
)

POST_SCHEDULING_REPLIES = {
    1: "Para consultar el horario de tu cita, necesito tu número de documento. "
       "Por favor escríbelo (solo números, sin puntos).",
    2: "Para problemas técnicos:\n\n✅ Recarga la página\n✅ Limpia el caché\n"
       "✅ Usa Chrome o Safari actualizados\n\n¿Se solucionó?",
    3: "Si el formulario no funciona:\n\n1️⃣ Verifica tu conexión\n2️⃣ Completa todos los campos\n"
       "3️⃣ Revisa el formato de datos\n\n¿Necesitas más ayuda?",
    4: "Si se cerró:\n\n📱 Vuelve al link\n💾 Tus datos se guardan automáticamente\n"
       "🔄 Continúa donde quedaste\n\n¿Pudiste ingresar?",
    5: TRANSFER_MESSAGE,
}

PAYMENT_DETAILS = """💳 **Datos para el pago:**

**Bancolombia:** Ahorros 44291192456 (cédula 79981585)
**Daviplata:** 3014400818 (Mar Rea)
**Nequi:** 3008021701 (Dan Tal)
**También:** Transfiya

Envía SOLO tu comprobante de pago por aquí"""

REVIEW_REPLIES = {
    1: PAYMENT_DETAILS,
    2: TRANSFER_MESSAGE,
    3: "Para revisar tu certificado:\n\n1️⃣ Verifica tu email (también spam)\n"
       "2️⃣ Descarga el PDF\n3️⃣ Revisa tus datos\n\n¿Lo encontraste?",
    4: TRANSFER_MESSAGE,
}


@dataclass
class PhaseRequest:
    """Inbound text message as seen by a phase handler"""
    to: str
    user_id: str
    nombre: Optional[str]
    mensaje: str
    historial: List[Dict[str, Any]] = field(default_factory=list)


PhaseHandler = Callable[[PhaseRequest], Awaitable[Dict[str, Any]]]


class PhaseHandlers:
    """
    Per-phase reply logic.

    Every handler sends and persists through MessageService and returns
    {success, respuesta | mensaje, fase}.
    """

    def __init__(
        self,
        messages,
        ai,
        patients,
        pdf,
        gateway,
        store,
        institutional_prompt: Optional[str] = None
    ):
        self.messages = messages
        self.ai = ai
        self.patients = patients
        self.pdf = pdf
        self.gateway = gateway
        self.store = store
        self.institutional_prompt = institutional_prompt or get_institutional_prompt()

        self.handlers: Dict[str, PhaseHandler] = {
            Phase.INICIAL.value: self.handle_inicial,
            Phase.POST_AGENDAMIENTO.value: self.handle_post_agendamiento,
            Phase.REVISION_CERTIFICADO.value: self.handle_revision_certificado,
            Phase.PAGO.value: self.handle_pago,
            Phase.COMPLETADO.value: self.handle_completado,
        }

    async def handle(self, fase: str, request: PhaseRequest) -> Dict[str, Any]:
        """Run the handler of a phase (unknown phases use inicial)"""
        handler = self.handlers.get(fase, self.handle_inicial)
        logger.info(f"Phase {fase} handling message from {request.user_id}")
        return await handler(request)

    # ==================== Helpers ====================

    async def _reply(self, request: PhaseRequest, texto: str, fase: str) -> Dict[str, Any]:
        """Send + persist, keeping request.historial in sync"""
        outcome = await self.messages.send_and_save(
            to=request.to,
            user_id=request.user_id,
            nombre=request.nombre,
            texto=texto,
            historial=request.historial,
            remitente=Sender.SISTEMA.value,
            fase=fase
        )
        if outcome.get("success"):
            request.historial = outcome["historial"]
        return outcome

    async def _transfer(self, request: PhaseRequest, fase: str) -> None:
        await self._reply(request, TRANSFER_MESSAGE, fase)
        await self.store.set_observations(request.user_id, "stop")

    async def _ai_reply(self, request: PhaseRequest) -> str:
        historial = request.historial
        # The dispatcher appends the current message before calling the handler
        if historial and historial[-1].get("from") == Sender.USUARIO.value \
                and historial[-1].get("mensaje") == request.mensaje:
            historial = historial[:-1]

        messages = build_chat_messages(self.institutional_prompt, historial, request.mensaje)
        try:
            return await self.ai.chat_complete(messages, max_tokens=200) or EMPTY_AI_REPLY
        except Exception as e:
            logger.error(f"AI reply for {request.user_id} failed: {e}")
            return AI_FALLBACK_OPTIONS

    # ==================== Phases ====================

    async def handle_inicial(self, request: PhaseRequest) -> Dict[str, Any]:
        respuesta = await self._ai_reply(request)
        await self._reply(request, respuesta, Phase.INICIAL.value)
        return {"success": True, "respuesta": respuesta, "fase": Phase.INICIAL.value}

    async def handle_post_agendamiento(self, request: PhaseRequest) -> Dict[str, Any]:
        fase = Phase.POST_AGENDAMIENTO.value

        if not es_opcion_numerica(request.mensaje, 5):
            await self._reply(request, get_opciones_post_agendamiento(), fase)
            return {"success": True, "mensaje": "Menú post-agendamiento mostrado", "fase": fase}

        respuesta = POST_SCHEDULING_REPLIES[int(request.mensaje.strip())]
        if respuesta == TRANSFER_MESSAGE:
            await self._transfer(request, fase)
        else:
            await self._reply(request, respuesta, fase)

        return {"success": True, "respuesta": respuesta, "fase": fase}

    async def handle_revision_certificado(self, request: PhaseRequest) -> Dict[str, Any]:
        fase = Phase.REVISION_CERTIFICADO.value

        if not es_opcion_numerica(request.mensaje, 4):
            await self._reply(request, get_opciones_revision_certificado(), fase)
            return {"success": True, "mensaje": "Menú de revisión mostrado", "fase": fase}

        opcion = int(request.mensaje.strip())
        respuesta = REVIEW_REPLIES[opcion]

        if opcion == 1:
            fase = Phase.PAGO.value
            await self._reply(request, respuesta, fase)
        elif respuesta == TRANSFER_MESSAGE:
            await self._transfer(request, fase)
        else:
            await self._reply(request, respuesta, fase)

        return {"success": True, "respuesta": respuesta, "fase": fase}

    async def handle_pago(self, request: PhaseRequest) -> Dict[str, Any]:
        """
        Payment phase: a cédula triggers lookup, mark-paid and certificate delivery.

        Returns:
            {success, mensaje, fase} ({success: False, error} when the lookup failed)
        """
        fase = Phase.PAGO.value
        cedula = request.mensaje.strip()

        if not ValidationService.is_cedula(cedula):
            await self._reply(request, DOCUMENT_REQUEST, fase)
            return {"success": True, "mensaje": "Solicitando número de documento para pago", "fase": fase}

        await self._reply(request, LOOKUP_NOTICE, fase)

        try:
            info = await self.patients.consultar_informacion_paciente(cedula)
            if not info:
                await self._transfer(request, fase)
                return {"success": True, "mensaje": "Transferido a asesor", "fase": fase}

            paciente = info[0]
            paid = await self.patients.marcar_pagado(cedula)
            if not paid.get("success"):
                logger.warning(f"marcarPagado failed for {cedula}: {paid.get('error')}")

            if paciente.get("atendido") != "ATENDIDO":
                await self._reply(request, PAYMENT_REGISTERED, fase)
                return {"success": True, "mensaje": "Pago registrado", "fase": fase}

            pdf_url = await self.pdf.render(cedula)
            await self.pdf.wait_until_available(pdf_url)
            sent = await self.gateway.send_document(request.to, pdf_url, CERTIFICATE_CAPTION)
            if not sent.get("success"):
                raise RuntimeError(f"Envío del certificado falló: {sent.get('error')}")

        except Exception as e:
            logger.error(f"Error processing payment for {request.user_id}: {e}")
            await self._transfer(request, fase)
            return {"success": False, "error": str(e), "fase": fase}

        fase = Phase.COMPLETADO.value
        await self.messages.save_message(
            request.user_id,
            request.nombre,
            CERTIFICATE_CAPTION,
            request.historial,
            remitente=Sender.SISTEMA.value,
            fase=fase
        )
        logger.info(f"Certificate delivered to {request.user_id}")
        return {"success": True, "mensaje": "Certificado enviado", "fase": fase, "pdfUrl": pdf_url}

    async def handle_completado(self, request: PhaseRequest) -> Dict[str, Any]:
        respuesta = await self._ai_reply(request)
        await self._reply(request, respuesta, Phase.COMPLETADO.value)
        return {"success": True, "respuesta": respuesta, "fase": Phase.COMPLETADO.value}


def create_phase_handlers(**overrides: Any) -> PhaseHandlers:
    """Factory wiring the handlers to the default service instances"""
    from ..services import (
        message_service, ai_service, patient_service,
        pdf_service, whatsapp_service, conversation_store
    )

    collaborators = {
        "messages": message_service,
        "ai": ai_service,
        "patients": patient_service,
        "pdf": pdf_service,
        "gateway": whatsapp_service,
        "store": conversation_store,
    }
    collaborators.update(overrides)
    return PhaseHandlers(**collaborators)
