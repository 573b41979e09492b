"""
Patient service - BSL site functions (patient lookup, payment mark)
"""
import logging
from typing import Optional, Any, List, Dict
import httpx

from ..core.config import settings
from ..core.exceptions import ProviderError

logger = logging.getLogger(__name__)


class PatientService:
    """Client for the BSL _functions endpoints"""

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = (base_url or settings.BSL_FUNCTIONS_URL).rstrip("/")

    async def consultar_informacion_paciente(self, numero_id: str) -> List[Dict[str, Any]]:
        """
        Look up patient records by document number.

        Args:
            numero_id: Patient document number

        Returns:
            List of records (empty when the patient is unknown)

        Raises:
            ProviderError: Missing document number or failed HTTP call
        """
        if not numero_id:
            raise ProviderError("bsl", "Falta el número de documento")

        url = f"{self.base_url}/informacionPaciente"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(url, params={"numeroId": numero_id}, timeout=30)
        except httpx.HTTPError as e:
            raise ProviderError("bsl", f"No se pudo consultar la información del paciente: {e}")

        if response.status_code != 200:
            logger.error(f"Patient lookup error: {response.status_code} - {response.text}")
            raise ProviderError("bsl", "No se pudo consultar la información del paciente")

        informacion = response.json().get("informacion") or []
        logger.info(f"Patient lookup {numero_id}: {len(informacion)} records")
        return informacion

    async def marcar_pagado(self, cedula: str) -> Dict[str, Any]:
        """Mark the patient as paid: {success, error?}"""
        url = f"{self.base_url}/marcarPagado"
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    json={"userId": cedula, "observaciones": "pagado"},
                    timeout=30
                )
                result = response.json()
        except Exception as e:
            logger.error(f"Error marking {cedula} as paid: {e}")
            return {"success": False, "error": str(e)}

        if response.status_code == 200 and result.get("success"):
            logger.info(f"Marked as paid: {cedula}")
            return {"success": True}

        logger.error(f"Mark paid rejected for {cedula}: {result}")
        return {"success": False, "error": result.get("error") or "Error desconocido"}


# Singleton instance
patient_service = PatientService()
