"""
Flow graph models - Nodes, connections and the persisted graph document
"""
from enum import Enum
from typing import Optional, Any, List, Dict
from pydantic import BaseModel, Field


class NodeType(str, Enum):
    """Closed set of executable node types"""

    START = "start"
    MESSAGE = "message"
    MENU = "menu"
    CONDITION = "condition"
    AI = "ai"
    INPUT = "input"
    API = "api"
    PAYMENT = "payment"
    PDF = "pdf"
    TRANSFER = "transfer"
    IMAGE = "image"
    END = "end"


class ConditionOperator(str, Enum):
    """Operators supported by condition nodes"""
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    REGEX = "regex"


class InputValidation(str, Enum):
    """Validation kinds for input nodes"""
    CEDULA = "cedula"
    EMAIL = "email"
    NUMBER = "number"
    TEXT = "text"


# Node types that stop the run until the user answers
SUSPENDING_TYPES = {NodeType.MENU, NodeType.INPUT, NodeType.PAYMENT}


class MenuOption(BaseModel):
    """Menu entry, optionally pointing to an explicit target node"""

    model_config = {"extra": "allow"}

    text: str = ""
    next: Optional[str] = None


class NodeData(BaseModel):
    """Variant payload of a node - extra editor keys (icon, color...) are kept"""

    model_config = {"extra": "allow"}

    title: Optional[str] = None

    # message
    text: Optional[str] = None

    # menu
    options: Optional[List[MenuOption]] = None

    # condition
    variable: Optional[str] = None
    operator: Optional[str] = None
    value: Optional[str] = None

    # ai
    prompt: Optional[str] = None
    fallback: Optional[str] = None

    # input
    validation: Optional[str] = None

    # api
    endpoint: Optional[str] = None
    method: Optional[str] = None

    # pdf
    template: Optional[str] = None

    # transfer / end
    message: Optional[str] = None

    # image
    action: Optional[str] = None


class FlowNode(BaseModel):
    """Graph node"""

    model_config = {"extra": "allow"}

    id: str
    type: NodeType
    data: NodeData = Field(default_factory=NodeData)
    x: Optional[float] = None
    y: Optional[float] = None


class FlowConnection(BaseModel):
    """Ordered edge between two nodes"""

    model_config = {"extra": "allow", "populate_by_name": True}

    from_node: str = Field(alias="from")
    to_node: str = Field(alias="to")


class FlowGraph(BaseModel):
    """Persisted graph document: {nodes, connections, metadata}"""

    model_config = {"extra": "allow"}

    nodes: List[FlowNode]
    connections: List[FlowConnection] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ============ DEFAULT GRAPH ============

def _node(node_id: str, node_type: NodeType, x: int, y: int, **data: Any) -> Dict[str, Any]:
    return {"id": node_id, "type": node_type.value, "x": x, "y": y, "data": data}


def create_default_flow() -> Dict[str, Any]:
    """Default BSL graph used when no flow file has been saved yet"""
    nodes = [
        _node("node-start", NodeType.START, 50, 300,
              title="Inicio", icon="fa-play-circle", color="success", isInitial=True),
        _node("node-greeting", NodeType.MESSAGE, 200, 300,
              title="Saludo Inicial", text="Hola, ¿en qué puedo ayudarte hoy?"),
        _node("node-ai-response", NodeType.AI, 400, 200,
              title="Respuesta IA (Fase Inicial)"),
        _node("node-image-process", NodeType.IMAGE, 400, 400,
              title="Procesar Imagen", action="classify"),
        _node("node-check-schedule", NodeType.CONDITION, 600, 300,
              title="¿Usuario Agendó?", variable="response",
              operator="contains", value="nuevaorden-1"),
        _node("node-post-schedule-menu", NodeType.MENU, 800, 200,
              title="Menú Post-Agendamiento",
              options=[
                  {"text": "¿A qué hora quedó mi cita?", "next": "node-check-appointment"},
                  {"text": "Problemas con la aplicación", "next": "node-app-problems"},
                  {"text": "No me funciona el formulario", "next": "node-form-help"},
                  {"text": "Se me cerró la aplicación", "next": "node-app-closed"},
                  {"text": "Hablar con un asesor", "next": "node-transfer"},
              ]),
        _node("node-check-appointment", NodeType.INPUT, 1000, 100,
              title="Solicitar Documento para Cita",
              prompt=(
                  "Para consultar el horario de tu cita, necesito tu número de documento. "
                  "Por favor escríbelo (solo números, sin puntos)."
              ),
              validation="cedula"),
        _node("node-appointment-info", NodeType.API, 1200, 100,
              title="Consultar Información Cita",
              endpoint="consultarInformacionPaciente", method="GET"),
        _node("node-app-problems", NodeType.MESSAGE, 1000, 150,
              title="Ayuda Problemas App",
              text=(
                  "Para problemas técnicos:\n\n✅ Recarga la página\n✅ Limpia el caché\n"
                  "✅ Usa Chrome o Safari actualizados\n\n¿Se solucionó?"
              )),
        _node("node-form-help", NodeType.MESSAGE, 1000, 200,
              title="Ayuda Formulario",
              text=(
                  "Si el formulario no funciona:\n\n1️⃣ Verifica tu conexión\n"
                  "2️⃣ Completa todos los campos\n3️⃣ Revisa el formato de datos\n\n"
                  "¿Necesitas más ayuda?"
              )),
        _node("node-app-closed", NodeType.MESSAGE, 1000, 250,
              title="App Se Cerró",
              text=(
                  "Si se cerró:\n\n📱 Vuelve al link\n💾 Tus datos se guardan automáticamente\n"
                  "🔄 Continúa donde quedaste\n\n¿Pudiste ingresar?"
              )),
        _node("node-help-followup", NodeType.CONDITION, 1200, 200,
              title="¿Se Solucionó?", variable="userResponse",
              operator="regex", value="sí|si|ok|correcto|solucionó|funciona"),
        _node("node-check-review", NodeType.CONDITION, 800, 400,
              title="¿Admin: Revisar Certificado?", variable="adminMessage",
              operator="contains", value="revisa que todo esté en orden"),
        _node("node-review-menu", NodeType.MENU, 1000, 400,
              title="Revisión Certificado",
              options=[
                  {"text": "Sí, está correcto", "next": "node-payment-info"},
                  {"text": "Hay un error que corregir", "next": "node-transfer"},
                  {"text": "No he podido revisarlo", "next": "node-review-help"},
                  {"text": "Hablar con un asesor", "next": "node-transfer"},
              ]),
        _node("node-payment-info", NodeType.MESSAGE, 1200, 350,
              title="Información de Pago",
              text=(
                  "💳 **Datos para el pago:**\n\n"
                  "**Bancolombia:** Ahorros 44291192456 (cédula 79981585)\n"
                  "**Daviplata:** 3014400818 (Mar Rea)\n"
                  "**Nequi:** 3008021701 (Dan Tal)\n"
                  "**También:** Transfiya\n\n"
                  "Envía SOLO tu comprobante de pago por aquí"
              )),
        _node("node-review-help", NodeType.MESSAGE, 1200, 450,
              title="Ayuda Revisar Certificado",
              text=(
                  "Para revisar tu certificado:\n\n1️⃣ Verifica tu email (también spam)\n"
                  "2️⃣ Descarga el PDF\n3️⃣ Revisa tus datos\n\n¿Lo encontraste?"
              )),
        _node("node-payment", NodeType.PAYMENT, 1200, 300, title="Procesar Pago"),
        _node("node-pdf", NodeType.PDF, 1400, 300,
              title="Generar Certificado PDF", template="certificate"),
        _node("node-transfer", NodeType.TRANSFER, 1000, 550,
              title="Transferir a Asesor", message="...transfiriendo con asesor"),
        _node("node-end", NodeType.END, 1600, 300, title="Fin"),
    ]

    edges = [
        ("node-start", "node-greeting"),
        ("node-greeting", "node-ai-response"),
        ("node-greeting", "node-image-process"),
        ("node-ai-response", "node-check-schedule"),
        ("node-image-process", "node-check-schedule"),
        ("node-check-schedule", "node-post-schedule-menu"),
        ("node-check-schedule", "node-check-review"),
        ("node-post-schedule-menu", "node-check-appointment"),
        ("node-post-schedule-menu", "node-app-problems"),
        ("node-post-schedule-menu", "node-form-help"),
        ("node-post-schedule-menu", "node-app-closed"),
        ("node-post-schedule-menu", "node-transfer"),
        ("node-check-appointment", "node-appointment-info"),
        ("node-appointment-info", "node-end"),
        ("node-app-problems", "node-help-followup"),
        ("node-form-help", "node-help-followup"),
        ("node-app-closed", "node-help-followup"),
        ("node-help-followup", "node-end"),
        ("node-help-followup", "node-transfer"),
        ("node-check-review", "node-review-menu"),
        ("node-review-menu", "node-payment-info"),
        ("node-review-menu", "node-transfer"),
        ("node-review-menu", "node-review-help"),
        ("node-payment-info", "node-payment"),
        ("node-review-help", "node-help-followup"),
        ("node-payment", "node-pdf"),
        ("node-pdf", "node-end"),
        ("node-transfer", "node-end"),
    ]

    return {
        "nodes": nodes,
        "connections": [{"from": source, "to": target} for source, target in edges],
        "metadata": {
            "name": "Flujo BSL Bot - Por Defecto",
            "version": "1.0",
            "description": "Flujo basado en la implementación actual del bot BSL",
        },
    }
