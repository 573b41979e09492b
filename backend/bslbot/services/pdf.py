"""
PDF service - Certificate rendering through api2pdf
"""
import asyncio
import logging
from typing import Optional
import httpx

from ..core.config import settings
from ..core.exceptions import ProviderError

logger = logging.getLogger(__name__)

CERTIFICATE_CAPTION = "Aquí tienes tu certificado médico en PDF."


class PDFService:
    """Renders the certificate page of a patient into a downloadable PDF"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        certificate_base_url: Optional[str] = None
    ):
        self.api_key = api_key or settings.API2PDF_KEY
        self.endpoint = endpoint or settings.API2PDF_ENDPOINT
        self.certificate_base_url = (certificate_base_url or settings.CERTIFICATE_BASE_URL).rstrip("/")

    async def render(self, documento: str) -> str:
        """
        Render the certificate of a document number.

        Returns:
            URL of the generated PDF

        Raises:
            ProviderError: api2pdf unreachable or success=false
        """
        payload = {
            "url": f"{self.certificate_base_url}/{documento}",
            "inlinePdf": False,
            "fileName": f"{documento}.pdf",
        }
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"Authorization": self.api_key or "", "Content-Type": "application/json"},
                    timeout=60
                )
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError("api2pdf", f"PDF render failed: {e}")

        if not data.get("success") or not data.get("pdf"):
            raise ProviderError("api2pdf", str(data.get("error") or "PDF render failed"))

        logger.info(f"PDF rendered for {documento}: {data['pdf']}")
        return data["pdf"]

    async def wait_until_available(
        self,
        url: str,
        attempts: Optional[int] = None,
        delay: Optional[float] = None
    ) -> bool:
        """Poll the PDF URL with HEAD until it answers 200 (bounded)"""
        attempts = attempts or settings.PDF_POLL_ATTEMPTS
        delay = settings.PDF_POLL_DELAY_SECONDS if delay is None else delay

        async with httpx.AsyncClient() as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await client.head(url, timeout=10)
                    if response.status_code == 200:
                        return True
                except httpx.HTTPError as e:
                    logger.debug(f"PDF not ready yet ({attempt}/{attempts}): {e}")

                if attempt < attempts:
                    await asyncio.sleep(delay)

        logger.warning(f"PDF not available after {attempts} attempts: {url}")
        return False


# Singleton instance
pdf_service = PDFService()
