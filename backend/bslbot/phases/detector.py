"""
Phase Detector - Conversation phase state machine.

Phases advance one step at a time from patterns in the message history:

    inicial -> post_agendamiento -> revision_certificado -> pago -> completado

- inicial: the bot recently sent the scheduling link
- post_agendamiento: an admin asked the user to review the certificate
- revision_certificado: the user confirmed the review prompt
- pago: the certificate PDF was delivered
"""
import logging
import re
from typing import Any, Dict, List, Optional

from ..models.conversation import Phase, Sender

logger = logging.getLogger(__name__)


SCHEDULING_MARKERS = (
    "Para comenzar haz clic:",
    "https://www.bsl.com.co/nuevaorden-1",
    "Perfecto, para el examen virtual puedes agendar",
    "Perfecto, para el examen presencial puedes venir",
)

REVIEW_MARKERS = (
    "revisa que todo esté en orden",
    "revisa que todo este en orden",
    "revisa el certificado",
)

REVIEW_PROMPT_MARKER = "¿Ya revisaste"

AFFIRMATIVE_TOKENS = {
    "si", "sí", "ya", "correcto", "bien", "está bien", "esta bien", "perfecto", "ok",
}

DELIVERY_MARKERS = (
    "PDF generado y enviado correctamente",
    "certificado médico en PDF",
)

POST_SCHEDULING_MENU = """Selecciona una opción escribiendo el *número*:

1️⃣ ¿A qué hora quedó mi cita?
2️⃣ Problemas con la aplicación
3️⃣ No me funciona el formulario
4️⃣ Se me cerró la aplicación
5️⃣ Hablar con un asesor"""

CERTIFICATE_REVIEW_MENU = """¿Ya revisaste tu certificado médico?

1️⃣ Sí, está correcto
2️⃣ Hay un error que corregir
3️⃣ No he podido revisarlo
4️⃣ Hablar con un asesor"""


# ==================== Predicates ====================

def _entries_from(historial: List[Dict[str, Any]], sender: str) -> List[Dict[str, Any]]:
    return [m for m in historial if m.get("from") == sender]


def _text(entry: Dict[str, Any]) -> str:
    return str(entry.get("mensaje") or "")


def detectar_agendamiento(historial: List[Dict[str, Any]]) -> bool:
    """The scheduling link was sent in one of the last 5 entries"""
    return any(
        m.get("from") == Sender.SISTEMA.value
        and any(marker in _text(m) for marker in SCHEDULING_MARKERS)
        for m in historial[-5:]
    )


def detectar_revision_certificado(historial: List[Dict[str, Any]]) -> bool:
    """The last admin message asks the user to review the certificate"""
    admin_messages = _entries_from(historial, Sender.ADMIN.value)
    if not admin_messages:
        return False

    last = _text(admin_messages[-1]).lower()
    return any(marker in last for marker in REVIEW_MARKERS)


def es_afirmativo(mensaje: str) -> bool:
    """
    Whole-message or first-word match against the affirmative tokens.

    "sí" and "si, ya lo vi" are affirmative; "sino" or "yacimiento" are not.
    """
    normalized = re.sub(r"[¡!¿?.,;:]+", " ", (mensaje or "").lower()).strip()
    normalized = re.sub(r"\s+", " ", normalized)
    if not normalized:
        return False

    if normalized in AFFIRMATIVE_TOKENS:
        return True

    return normalized.split(" ")[0] in AFFIRMATIVE_TOKENS


def detectar_confirmacion_revision(mensaje: str, historial: List[Dict[str, Any]]) -> bool:
    """The last bot message in the tail is the review prompt and the user said yes"""
    system_tail = _entries_from(historial[-3:], Sender.SISTEMA.value)
    if not system_tail or REVIEW_PROMPT_MARKER not in _text(system_tail[-1]):
        return False

    return es_afirmativo(mensaje)


def detectar_pago_completado(historial: List[Dict[str, Any]]) -> bool:
    """The certificate was delivered in one of the last 3 entries"""
    return any(
        m.get("from") == Sender.SISTEMA.value
        and any(marker in _text(m) for marker in DELIVERY_MARKERS)
        for m in historial[-3:]
    )


# ==================== Transitions ====================

def determinar_nueva_fase(
    fase_actual: Optional[str],
    mensaje: str,
    historial: Optional[List[Dict[str, Any]]],
    reiniciar_completado: bool = False
) -> str:
    """
    Compute the next phase.

    Args:
        fase_actual: Phase stored for the conversation
        mensaje: Incoming user message
        historial: Conversation history (the incoming message may already be appended)
        reiniciar_completado: Leave `completado` back to `inicial`

    Returns:
        The next phase value (at most one step ahead of fase_actual)
    """
    historial = historial or []

    try:
        fase = Phase(fase_actual)
    except ValueError:
        logger.warning(f"Unknown phase {fase_actual!r}, resetting to inicial")
        return Phase.INICIAL.value

    if fase == Phase.INICIAL and detectar_agendamiento(historial):
        return Phase.POST_AGENDAMIENTO.value

    if fase == Phase.POST_AGENDAMIENTO and detectar_revision_certificado(historial):
        return Phase.REVISION_CERTIFICADO.value

    if fase == Phase.REVISION_CERTIFICADO and detectar_confirmacion_revision(mensaje, historial):
        return Phase.PAGO.value

    if fase == Phase.PAGO and detectar_pago_completado(historial):
        return Phase.COMPLETADO.value

    if fase == Phase.COMPLETADO and reiniciar_completado:
        return Phase.INICIAL.value

    return fase.value


# ==================== Menus ====================

def get_opciones_post_agendamiento() -> str:
    return POST_SCHEDULING_MENU


def get_opciones_revision_certificado() -> str:
    return CERTIFICATE_REVIEW_MENU


def es_opcion_numerica(mensaje: str, maximo: int) -> bool:
    """Whether the message is an integer option in 1..maximo"""
    try:
        numero = int((mensaje or "").strip())
    except ValueError:
        return False
    return 1 <= numero <= maximo
