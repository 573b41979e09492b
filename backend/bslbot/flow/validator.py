"""
Flow Validator - Structural validation of flow graphs at load / deploy time
"""
import logging
from typing import List, Dict, Any, Set, Optional

from ..core.exceptions import GraphInvalid
from ..models.flow import NodeType

logger = logging.getLogger(__name__)

_NODE_TYPES = {node_type.value for node_type in NodeType}


class FlowValidationError:
    """Represents a validation error"""

    def __init__(self, code: str, message: str, node_id: Optional[str] = None):
        self.code = code
        self.message = message
        self.node_id = node_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "node_id": self.node_id,
        }

    def __str__(self) -> str:
        node_info = f" [Node: {self.node_id}]" if self.node_id else ""
        return f"{self.code}: {self.message}{node_info}"


class FlowValidator:
    """
    Validates a persisted flow document {nodes, connections, metadata}.

    Checks:
    - nodes list present
    - at least one start node
    - every node has id, known type and title
    - connections only reference existing nodes
    - menu / condition / api nodes carry their required data
    """

    @classmethod
    def validate(cls, flow_data: Any) -> List[FlowValidationError]:
        """
        Validate a flow document.

        Args:
            flow_data: Raw flow dictionary as stored by the editor

        Returns:
            List of errors (empty when the flow is valid)
        """
        nodes = flow_data.get("nodes") if isinstance(flow_data, dict) else None
        if not isinstance(nodes, list):
            return [FlowValidationError(
                code="INVALID_STRUCTURE",
                message="Estructura de flujo inválida - se requieren nodos"
            )]

        errors: List[FlowValidationError] = []

        if not any(isinstance(n, dict) and n.get("type") == NodeType.START.value for n in nodes):
            errors.append(FlowValidationError(
                code="NO_START_NODE",
                message="El flujo debe tener al menos un nodo de inicio"
            ))

        node_ids: Set[str] = set()
        for node in nodes:
            if not isinstance(node, dict):
                errors.append(FlowValidationError(
                    code="MISSING_ID",
                    message="Todos los nodos deben tener un ID válido"
                ))
                continue
            if node.get("id"):
                node_ids.add(node["id"])
            errors.extend(cls._validate_node(node))

        connections = flow_data.get("connections") or []
        if isinstance(connections, list):
            errors.extend(cls._validate_connections(connections, node_ids))
        else:
            errors.append(FlowValidationError(
                code="INVALID_STRUCTURE",
                message="Las conexiones deben ser una lista"
            ))

        if errors:
            logger.warning(f"Flow validation failed with {len(errors)} errors")
        return errors

    @classmethod
    def _validate_node(cls, node: Dict[str, Any]) -> List[FlowValidationError]:
        errors = []
        node_id = node.get("id")
        node_type = node.get("type")
        data = node.get("data") if isinstance(node.get("data"), dict) else {}

        if not node_id:
            errors.append(FlowValidationError(
                code="MISSING_ID",
                message="Todos los nodos deben tener un ID válido"
            ))

        if not node_type:
            errors.append(FlowValidationError(
                code="MISSING_TYPE",
                message=f"El nodo {node_id} no tiene tipo definido",
                node_id=node_id
            ))
        elif node_type not in _NODE_TYPES:
            errors.append(FlowValidationError(
                code="UNKNOWN_TYPE",
                message=f"El nodo {node_id} tiene un tipo desconocido: {node_type}",
                node_id=node_id
            ))

        if not data.get("title"):
            errors.append(FlowValidationError(
                code="MISSING_TITLE",
                message=f"El nodo {node_id} no tiene título",
                node_id=node_id
            ))

        if node_type == NodeType.MENU.value and not isinstance(data.get("options"), list):
            errors.append(FlowValidationError(
                code="MENU_WITHOUT_OPTIONS",
                message=f"El nodo menú {node_id} debe tener opciones definidas",
                node_id=node_id
            ))

        if node_type == NodeType.CONDITION.value and (not data.get("variable") or not data.get("operator")):
            errors.append(FlowValidationError(
                code="CONDITION_INCOMPLETE",
                message=f"El nodo condición {node_id} debe tener variable y operador definidos",
                node_id=node_id
            ))

        if node_type == NodeType.API.value and not data.get("endpoint"):
            errors.append(FlowValidationError(
                code="API_WITHOUT_ENDPOINT",
                message=f"El nodo API {node_id} debe tener un endpoint definido",
                node_id=node_id
            ))

        return errors

    @classmethod
    def _validate_connections(
        cls,
        connections: List[Dict[str, Any]],
        node_ids: Set[str]
    ) -> List[FlowValidationError]:
        errors = []
        for connection in connections:
            if not isinstance(connection, dict):
                connection = {}
            source = connection.get("from")
            target = connection.get("to")
            if source not in node_ids:
                errors.append(FlowValidationError(
                    code="DANGLING_CONNECTION",
                    message=f"Conexión desde nodo inexistente: {source}",
                    node_id=source
                ))
            if target not in node_ids:
                errors.append(FlowValidationError(
                    code="DANGLING_CONNECTION",
                    message=f"Conexión hacia nodo inexistente: {target}",
                    node_id=target
                ))
        return errors


# Convenience functions
def validate_flow(flow_data: Any) -> Dict[str, Any]:
    """Validate a flow and return {isValid, errors: [message...]}"""
    errors = FlowValidator.validate(flow_data)
    return {
        "isValid": not errors,
        "errors": [error.message for error in errors],
    }


def ensure_valid(flow_data: Any) -> None:
    """Raise GraphInvalid when the flow has structural errors"""
    errors = FlowValidator.validate(flow_data)
    if errors:
        raise GraphInvalid([error.message for error in errors])
