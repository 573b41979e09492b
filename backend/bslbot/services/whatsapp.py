"""
WhatsApp service - Whapi integration
Text / document delivery and media download
"""
import logging
from typing import Optional, Any
import httpx

from ..core.config import settings
from ..core.exceptions import ProviderError

logger = logging.getLogger(__name__)


class WhatsAppService:
    """Service for WhatsApp integration via Whapi"""

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None):
        self.base_url = (base_url or settings.WHAPI_BASE_URL).rstrip("/")
        self.token = token or settings.WHAPI_KEY

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with bearer token"""
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.token or ''}"
        }

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers=self._get_headers(),
                    timeout=30
                )

                if response.status_code in (200, 201):
                    return {"success": True, "data": response.json()}

                logger.error(f"Whapi {path} error: {response.status_code} - {response.text}")
                return {
                    "success": False,
                    "error": f"HTTP {response.status_code}: {response.text}"
                }

        except Exception as e:
            logger.error(f"Error calling Whapi {path}: {e}")
            return {"success": False, "error": str(e)}

    # ==========================================
    # MESSAGES
    # ==========================================

    async def send_text(self, to: str, body: str) -> dict[str, Any]:
        """
        Send a text message.

        Args:
            to: Chat id or phone number
            body: Message text

        Returns:
            {success, data} or {success: False, error}
        """
        result = await self._post("/messages/text", {"to": to, "body": body})
        if result["success"]:
            logger.info(f"Text sent to {to}")
        return result

    async def send_document(self, to: str, media_url: str, caption: str = "") -> dict[str, Any]:
        """
        Send a document by URL.

        Args:
            to: Chat id or phone number
            media_url: Public URL of the document
            caption: Caption shown under the document
        """
        result = await self._post(
            "/messages/document",
            {"to": to, "media": media_url, "caption": caption}
        )
        if result["success"]:
            logger.info(f"Document sent to {to}")
        return result

    # ==========================================
    # MEDIA
    # ==========================================

    async def download_media(self, media_id: str) -> bytes:
        """
        Download an inbound media file.

        Raises:
            ProviderError: When the media cannot be fetched
        """
        url = f"{self.base_url}/media/{media_id}"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    url,
                    headers={"Authorization": f"Bearer {self.token or ''}"},
                    timeout=30
                )
        except httpx.HTTPError as e:
            raise ProviderError("whapi", f"Media download failed: {e}")

        if response.status_code != 200:
            raise ProviderError("whapi", f"Media download failed: HTTP {response.status_code}")

        logger.info(f"Media {media_id} downloaded ({len(response.content)} bytes)")
        return response.content


# Singleton instance
whatsapp_service = WhatsAppService()
