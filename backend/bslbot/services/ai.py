"""
AI Service - OpenAI integration
Image classification, payment / document extraction and chat completion
"""
import logging
import json
import re
from typing import Optional, Dict, Any, List
from openai import OpenAI

from ..core.config import settings
from ..core.exceptions import ProviderError

logger = logging.getLogger(__name__)


IMAGE_LABELS = (
    "comprobante_pago",
    "listado_examenes",
    "confirmacion_cita",
    "documento_identidad",
    "otro",
)

CLASSIFY_PROMPT = """Clasifica esta imagen en UNA de estas categorías y responde SOLO la etiqueta:
• comprobante_pago (transferencias bancarias, recibos de pago, capturas de Nequi, Daviplata, etc.)
• listado_examenes (órdenes médicas, listas de exámenes solicitados)
• confirmacion_cita (capturas de agendamiento, confirmaciones de citas médicas)
• documento_identidad (cédula, pasaporte, documentos de identificación)
• otro (cualquier otra imagen)

Responde únicamente la etiqueta correspondiente."""

PAYMENT_PROMPT = """Analiza este comprobante de pago y extrae la siguiente información en formato JSON:

{
    "valor": "monto encontrado (solo números, sin símbolos)",
    "banco": "entidad financiera (si está visible)",
    "fecha": "fecha de la transacción (si está visible)",
    "referencia": "número de referencia o transacción (si está visible)"
}

Si no puedes encontrar algún campo, usa null. Para el valor, extrae SOLO los números sin puntos, comas o símbolos de moneda."""

DOCUMENT_PROMPT = """Extrae la información de este documento de identidad en formato JSON:

{
    "numero_documento": "número de cédula o documento",
    "nombre_completo": "nombre completo de la persona",
    "tipo_documento": "tipo de documento (CC, TI, CE, etc.)"
}

Si no puedes encontrar algún campo, usa null."""

EMPTY_PAYMENT = {"valor": None, "banco": None, "fecha": None, "referencia": None}
EMPTY_DOCUMENT = {"numero_documento": None, "nombre_completo": None, "tipo_documento": None}


class AIService:
    """Service for OpenAI chat and vision calls"""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """
        Initialize the AI service.

        Args:
            api_key: OpenAI API key (optional, defaults to settings)
            model: Chat / vision model (default: settings.OPENAI_MODEL)
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        """Lazy initialization of OpenAI client"""
        if self._client is None:
            if not self.api_key:
                raise ProviderError("openai", "OpenAI API key not configured")
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    def _complete(self, messages: List[Dict[str, Any]], max_tokens: int, temperature: Optional[float] = None) -> str:
        """Single chat completion call, ProviderError on any failure"""
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            params["temperature"] = temperature

        try:
            response = self.client.chat.completions.create(**params)
            content = response.choices[0].message.content
        except ProviderError:
            raise
        except Exception as e:
            logger.error(f"OpenAI call failed: {e}")
            raise ProviderError("openai", str(e))

        if content is None:
            raise ProviderError("openai", "Respuesta inválida de OpenAI API")
        return content.strip()

    @staticmethod
    def _image_message(prompt: str, base64_image: str, mime_type: str) -> List[Dict[str, Any]]:
        return [{
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{mime_type};base64,{base64_image}"}
                }
            ]
        }]

    # ==================== Chat ====================

    async def chat_complete(
        self,
        messages: List[Dict[str, Any]],
        max_tokens: int = 200,
        temperature: Optional[float] = None
    ) -> str:
        """
        Generate a chat reply.

        Args:
            messages: OpenAI-style messages (system / user / assistant)
            max_tokens: Maximum tokens in response
            temperature: Optional sampling temperature

        Returns:
            Reply text

        Raises:
            ProviderError: On any OpenAI failure
        """
        return self._complete(messages, max_tokens, temperature)

    # ==================== Vision ====================

    async def classify_image(self, base64_image: str, mime_type: str) -> str:
        """
        Classify an image into one of IMAGE_LABELS.

        Unknown answers are mapped to "otro". Provider errors propagate
        so queued jobs can retry.
        """
        answer = self._complete(self._image_message(CLASSIFY_PROMPT, base64_image, mime_type), max_tokens=10)
        label = answer.strip().lower().strip(".•- ")

        if label not in IMAGE_LABELS:
            logger.info(f"Unknown image label '{answer}', using 'otro'")
            return "otro"

        logger.info(f"Image classified as: {label}")
        return label

    async def extract_payment_info(self, base64_image: str, mime_type: str) -> Dict[str, Any]:
        """Extract {valor, banco, fecha, referencia} from a payment proof"""
        try:
            answer = self._complete(self._image_message(PAYMENT_PROMPT, base64_image, mime_type), max_tokens=150)
        except ProviderError as e:
            logger.error(f"Payment extraction failed: {e}")
            return dict(EMPTY_PAYMENT)

        info = _parse_json(answer)
        if info is None:
            # Not JSON: keep the first long number as the amount
            match = re.search(r"\d{4,}", answer)
            return {**EMPTY_PAYMENT, "valor": match.group(0) if match else None}

        logger.info(f"Payment info extracted: valor={info.get('valor')}, banco={info.get('banco')}")
        return {**EMPTY_PAYMENT, **info}

    async def extract_document_info(self, base64_image: str, mime_type: str) -> Dict[str, Any]:
        """Extract {numero_documento, nombre_completo, tipo_documento} from an ID document"""
        try:
            answer = self._complete(self._image_message(DOCUMENT_PROMPT, base64_image, mime_type), max_tokens=100)
        except ProviderError as e:
            logger.error(f"Document extraction failed: {e}")
            return dict(EMPTY_DOCUMENT)

        info = _parse_json(answer)
        if info is None:
            logger.error(f"Could not parse document JSON: {answer[:100]}")
            return dict(EMPTY_DOCUMENT)
        return {**EMPTY_DOCUMENT, **info}


def _parse_json(text: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object, tolerating ```json fences around it"""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", cleaned)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


# Singleton instance
ai_service = AIService()
