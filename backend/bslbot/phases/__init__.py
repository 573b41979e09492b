"""
Phases Module - Phase state machine and per-phase handlers
"""
from .detector import (
    determinar_nueva_fase,
    detectar_agendamiento,
    detectar_revision_certificado,
    detectar_confirmacion_revision,
    detectar_pago_completado,
    es_afirmativo,
    es_opcion_numerica,
    get_opciones_post_agendamiento,
    get_opciones_revision_certificado,
)
from .handlers import PhaseHandlers, PhaseRequest, create_phase_handlers, TRANSFER_MESSAGE

__all__ = [
    "determinar_nueva_fase",
    "detectar_agendamiento",
    "detectar_revision_certificado",
    "detectar_confirmacion_revision",
    "detectar_pago_completado",
    "es_afirmativo",
    "es_opcion_numerica",
    "get_opciones_post_agendamiento",
    "get_opciones_revision_certificado",
    "PhaseHandlers",
    "PhaseRequest",
    "create_phase_handlers",
    "TRANSFER_MESSAGE",
]
