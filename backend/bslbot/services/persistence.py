"""
Persistence service - Conversation storage on Supabase
Table: conversaciones (user_id unique)
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Any, List, Dict

from ..core.config import settings
from ..core.supabase_client import supabase
from ..models.conversation import Phase

logger = logging.getLogger(__name__)

# Marker for "leave flow_node as it is"
_KEEP = object()


def empty_conversation() -> Dict[str, Any]:
    """Defaults returned for users without a stored row"""
    return {
        "mensajes": [],
        "observaciones": "",
        "fase": Phase.INICIAL.value,
        "flow_node": None,
    }


class ConversationStore:
    """CRUD on the conversaciones table"""

    def __init__(self, client=None, table: Optional[str] = None):
        self.client = client or supabase
        self.table = table or settings.CONVERSATIONS_TABLE

    async def get_conversation(self, user_id: str) -> Dict[str, Any]:
        """Get conversation state; defaults when missing or on error"""
        try:
            response = self.client.table(self.table).select(
                "mensajes, observaciones, fase, flow_node, updated_at"
            ).eq("user_id", user_id).limit(1).execute()
        except Exception as e:
            logger.error(f"Error reading conversation {user_id}: {e}")
            return empty_conversation()

        if not response.data:
            return empty_conversation()

        row = response.data[0]
        return {
            "mensajes": row.get("mensajes") or [],
            "observaciones": row.get("observaciones") or "",
            "fase": row.get("fase") or Phase.INICIAL.value,
            "flow_node": row.get("flow_node"),
            "updated_at": row.get("updated_at"),
        }

    async def save_conversation(
        self,
        user_id: str,
        nombre: Optional[str],
        mensajes: List[Dict[str, Any]],
        fase: str = Phase.INICIAL.value,
        flow_node: Any = _KEEP
    ) -> Dict[str, Any]:
        """Upsert messages and phase (flow_node only when given)"""
        data: Dict[str, Any] = {
            "user_id": user_id,
            "mensajes": mensajes,
            "fase": fase,
            "updated_at": _now(),
        }
        if nombre is not None:
            data["nombre"] = nombre
        if flow_node is not _KEEP:
            data["flow_node"] = flow_node

        return self._upsert(data, f"save conversation {user_id} ({fase})")

    async def set_observations(self, user_id: str, observaciones: str) -> Dict[str, Any]:
        """Set the observaciones field ("stop" blocks the bot)"""
        result = self._upsert(
            {"user_id": user_id, "observaciones": observaciones, "updated_at": _now()},
            f"set observaciones {user_id} = {observaciones!r}"
        )
        if result["success"]:
            logger.info(f"Observaciones for {user_id} set to {observaciones!r}")
        return result

    async def save_flow_node(self, user_id: str, flow_node: Optional[str]) -> Dict[str, Any]:
        """Persist the suspended flow node (None clears it)"""
        return self._upsert(
            {"user_id": user_id, "flow_node": flow_node, "updated_at": _now()},
            f"save flow node {user_id} = {flow_node}"
        )

    async def delete_conversation(self, user_id: str) -> Dict[str, Any]:
        """Remove the row of a user"""
        try:
            self.client.table(self.table).delete().eq("user_id", user_id).execute()
            logger.warning(f"Conversation {user_id} deleted")
            return {"success": True}
        except Exception as e:
            logger.error(f"DB error (delete conversation {user_id}): {e}")
            return {"success": False, "error": str(e)}

    def _upsert(self, data: Dict[str, Any], action: str) -> Dict[str, Any]:
        try:
            self.client.table(self.table).upsert(data, on_conflict="user_id").execute()
            logger.debug(f"DB ok: {action}")
            return {"success": True}
        except Exception as e:
            logger.error(f"DB error ({action}): {e}")
            return {"success": False, "error": str(e)}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Singleton instance
conversation_store = ConversationStore()
