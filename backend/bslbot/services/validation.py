"""
Validation service - Input validation and sanitization for bot messages
"""
import re
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
CEDULA_PATTERN = re.compile(r"^\d{6,12}$")
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif")


def _result(
    is_valid: bool = False,
    value: Optional[str] = None,
    error: Optional[str] = None
) -> Dict[str, Any]:
    return {"isValid": is_valid, "value": value, "error": error, "sanitized": value}


class ValidationService:
    """
    Validators return {isValid, value, error, sanitized}.

    A failed validation is a result value, never an exception.
    """

    @staticmethod
    def validate_cedula(text: Any) -> Dict[str, Any]:
        """Colombian ID: digits only after sanitizing, 6-12 long, not one repeated digit"""
        if not text:
            return _result(error="Número de cédula es requerido")

        sanitized = re.sub(r"[^\d]", "", str(text).strip())
        if not sanitized:
            return _result(error="Número de cédula debe contener solo dígitos")

        if not 6 <= len(sanitized) <= 12:
            return _result(error="Número de cédula debe tener entre 6 y 12 dígitos")

        if re.fullmatch(r"(\d)\1+", sanitized):
            return _result(error="Número de cédula no puede tener todos los dígitos iguales")

        return _result(True, sanitized)

    @staticmethod
    def validate_email(text: Any) -> Dict[str, Any]:
        if not text:
            return _result(error="Email es requerido")

        email = str(text).strip().lower()
        if not EMAIL_PATTERN.match(email):
            return _result(error="Formato de email no válido")
        return _result(True, email)

    @staticmethod
    def validate_text_message(text: Any, max_length: int = 1000) -> Dict[str, Any]:
        """Non-empty, bounded, with markup-like fragments stripped"""
        message = str(text or "").strip()
        if not message:
            return _result(error="Mensaje no puede estar vacío")

        if len(message) > max_length:
            return _result(error=f"Mensaje no puede exceder {max_length} caracteres")

        sanitized = re.sub(r"[<>]", "", message)
        sanitized = re.sub(r"javascript:", "", sanitized, flags=re.IGNORECASE)
        sanitized = re.sub(r"on\w+=", "", sanitized, flags=re.IGNORECASE)
        return _result(True, sanitized)

    @staticmethod
    def validate_image_type(mime_type: Any) -> Dict[str, Any]:
        if not mime_type:
            return _result(error="Tipo MIME es requerido")

        sanitized = str(mime_type).strip().lower()
        if sanitized not in ALLOWED_IMAGE_TYPES:
            return _result(error=f"Tipo de imagen no soportado. Permitidos: {', '.join(ALLOWED_IMAGE_TYPES)}")
        return _result(True, sanitized)

    @staticmethod
    def is_cedula(text: Any) -> bool:
        """Strict form used by the phase handlers: the trimmed text is 6-12 digits"""
        return bool(CEDULA_PATTERN.match(str(text or "").strip()))

    @staticmethod
    def extract_user_id(chat_id: Optional[str]) -> str:
        """Strip the WhatsApp suffix from a chat id"""
        return (chat_id or "").replace("@s.whatsapp.net", "")
