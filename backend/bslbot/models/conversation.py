"""
Conversation models - Phases, history senders and history helpers
"""
from enum import Enum
from typing import Optional, Any, List, Dict


class Sender(str, Enum):
    """Author of a history entry"""
    USUARIO = "usuario"
    SISTEMA = "sistema"
    ADMIN = "admin"


class Phase(str, Enum):
    """Macro-phases of a certificate conversation, in order"""
    INICIAL = "inicial"
    POST_AGENDAMIENTO = "post_agendamiento"
    REVISION_CERTIFICADO = "revision_certificado"
    PAGO = "pago"
    COMPLETADO = "completado"


def dedupe_history(historial: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Remove duplicated history entries by (from, mensaje), keeping the first one.

    Idempotent: dedupe_history(dedupe_history(h)) == dedupe_history(h).
    """
    seen = set()
    result = []
    for entry in historial or []:
        key = f"{entry.get('from')}|{entry.get('mensaje')}"
        if key in seen:
            continue
        seen.add(key)
        result.append(entry)
    return result
