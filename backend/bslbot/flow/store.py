"""
Flow Store - Persistence of the editor flow document (JSON file)
"""
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Any, Dict

from ..core.config import settings
from ..core.exceptions import GraphInvalid
from ..models.flow import create_default_flow
from .validator import FlowValidator

logger = logging.getLogger(__name__)


class FlowStore:
    """
    Load / save / deploy / export / import of the flow graph document.

    The document is kept as {nodes, connections, metadata} in a JSON file.
    When no file exists yet the built-in default BSL graph is served.
    """

    def __init__(self, file_path: Optional[str] = None):
        self.file_path = Path(file_path or settings.FLOW_FILE_PATH)

    def load(self) -> Dict[str, Any]:
        """Load the stored flow, or the default one when absent or unreadable"""
        try:
            with self.file_path.open("r", encoding="utf-8") as f:
                flow = json.load(f)
            logger.info(f"Flow loaded from {self.file_path}")
            return flow
        except (OSError, ValueError) as e:
            logger.info(f"No stored flow ({e}), using default flow")
            return create_default_flow()

    def save(self, flow: Dict[str, Any], modified_by: str = "admin") -> Dict[str, Any]:
        """Save the flow stamping lastModified / modifiedBy"""
        self._require_nodes(flow)
        flow["metadata"] = {
            **(flow.get("metadata") or {}),
            "lastModified": _now(),
            "modifiedBy": modified_by,
        }
        self._write(flow)
        logger.info(
            f"Flow saved: {len(flow['nodes'])} nodes, "
            f"{len(flow.get('connections') or [])} connections"
        )
        return flow

    def deploy(self, flow: Dict[str, Any], interpreter) -> Dict[str, Any]:
        """
        Validate, stamp, save and activate a flow.

        Args:
            flow: Flow document from the editor
            interpreter: FlowInterpreter to initialize with the deployed flow

        Returns:
            Summary with processed nodes / connections

        Raises:
            GraphInvalid: With the validation messages as details
        """
        errors = FlowValidator.validate(flow)
        if errors:
            raise GraphInvalid([error.message for error in errors])

        flow["metadata"] = {
            **(flow.get("metadata") or {}),
            "deployedAt": _now(),
            "deployedBy": flow.get("deployedBy") or "admin",
            "isActive": True,
        }
        self._write(flow)
        interpreter.initialize_flow(flow)

        logger.info(f"Flow deployed with {len(flow['nodes'])} nodes")
        return {
            "nodesProcessed": len(flow["nodes"]),
            "connectionsProcessed": len(flow.get("connections") or []),
            "validationPassed": True,
        }

    def export(self) -> Dict[str, Any]:
        """Stored flow document (default flow when nothing is stored)"""
        return self.load()

    def import_flow(self, flow: Dict[str, Any], imported_by: str = "admin") -> Dict[str, Any]:
        """Replace the stored flow with an imported document"""
        self._require_nodes(flow)
        flow["metadata"] = {
            **(flow.get("metadata") or {}),
            "importedAt": _now(),
            "importedBy": imported_by,
        }
        self._write(flow)
        logger.info(f"Flow imported with {len(flow['nodes'])} nodes")
        return flow

    # ==================== Helpers ====================

    @staticmethod
    def _require_nodes(flow: Any) -> None:
        if not isinstance(flow, dict) or not isinstance(flow.get("nodes"), list):
            raise GraphInvalid("Estructura de flujo inválida")

    def _write(self, flow: Dict[str, Any]) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with self.file_path.open("w", encoding="utf-8") as f:
            json.dump(flow, f, ensure_ascii=False, indent=2)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Singleton instance
flow_store = FlowStore()
