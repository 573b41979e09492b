"""
Execution Context - Per-run state threaded through flow node execution
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Any, Dict, List

from ..models.conversation import dedupe_history

logger = logging.getLogger(__name__)


# Context keys backed by typed attributes (camelCase is the wire form)
_IDENTIFIER_KEYS = {
    "userId": "user_id",
    "to": "to",
    "nombre": "nombre",
    "fase": "fase",
    "historial": "historial",
    "userMessage": "user_message",
}


@dataclass
class ExecutionContext:
    """
    Mutable record for one flow run.

    Identifiers are typed attributes; everything nodes produce
    (response, cedula, patientInfo, aiResponse, apiResult...) lives in `fields`.
    Fields are only added or overridden within a run, never removed.
    """

    user_id: Optional[str] = None
    to: Optional[str] = None
    nombre: Optional[str] = None
    fase: Optional[str] = None
    historial: List[Dict[str, Any]] = field(default_factory=list)
    user_message: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        """Read an identifier (camelCase or attribute name) or a bag field"""
        attr = _IDENTIFIER_KEYS.get(name)
        if attr is None and name in _IDENTIFIER_KEYS.values():
            attr = name
        if attr is not None:
            value = getattr(self, attr)
            return default if value is None else value
        return self.fields.get(name, default)

    def merge(self, result_fields: Optional[Dict[str, Any]]) -> "ExecutionContext":
        """Add or override fields from a node result"""
        if not result_fields:
            return self

        for key, value in result_fields.items():
            attr = _IDENTIFIER_KEYS.get(key)
            if attr is not None:
                setattr(self, attr, value)
            else:
                self.fields[key] = value
        return self

    def as_dict(self) -> Dict[str, Any]:
        """Flat view used by the condition evaluator and callers"""
        data = dict(self.fields)
        data.update({
            "userId": self.user_id,
            "to": self.to,
            "nombre": self.nombre,
            "fase": self.fase,
            "historial": self.historial,
            "userMessage": self.user_message,
        })
        return data

    def can_deliver(self) -> bool:
        """Side-effecting nodes only send when the recipient is fully known"""
        return bool(self.to and self.user_id and self.nombre)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ExecutionContext":
        """Build a context from a flat dict (camelCase or snake_case identifiers)"""
        context = cls()
        if not data:
            return context

        normalized = dict(data)
        if "user_id" in normalized and "userId" not in normalized:
            normalized["userId"] = normalized.pop("user_id")
        if "user_message" in normalized and "userMessage" not in normalized:
            normalized["userMessage"] = normalized.pop("user_message")

        context.merge(normalized)
        if context.historial is None:
            context.historial = []
        if context.user_message is None:
            context.user_message = ""
        return context
