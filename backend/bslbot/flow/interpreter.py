"""
Flow Interpreter - Executes the visual flow graph node by node

The interpreter holds the graph only. A run stops at nodes that need a user
reply (menu, input, payment without cédula); the caller persists the node id
and resumes from it on the next inbound message.
"""
import logging
from typing import Optional, Any, Dict, List, Callable, Awaitable, Union

from ..core.config import settings
from ..core.exceptions import GraphInvalid, LoopLimitExceeded, NodeNotFound
from ..models.flow import NodeType, InputValidation, FlowNode, FlowGraph
from ..services.pdf import CERTIFICATE_CAPTION
from ..services.prompts import get_institutional_prompt
from ..services.validation import ValidationService
from .context import ExecutionContext
from .evaluator import ConditionEvaluator
from .result import (
    NodeResult, FlowOutcome,
    advance_result, message_result, waiting_result, end_result
)
from .validator import validate_flow, ensure_valid

logger = logging.getLogger(__name__)

NodeHandler = Callable[[FlowNode, ExecutionContext], Awaitable[NodeResult]]

DOCUMENT_REQUEST = "Ahora escribe SOLO tu número de documento (sin puntos ni letras)."
PAYMENT_ERROR = "Hubo un problema procesando el pago. Un asesor te contactará."
AI_FALLBACK = "Lo siento, no puedo procesar tu solicitud en este momento."


class FlowInterpreter:
    """
    Node-graph executor with suspend/resume.

    Features:
    - Nodes indexed by id, outgoing connections kept in declaration order
    - Handler registry keyed by node type
    - Hard cap on node executions per run
    - Provider errors degrade to fallbacks; only structural errors propagate
    """

    def __init__(
        self,
        messages,
        ai,
        patients,
        pdf,
        gateway,
        store,
        max_iterations: Optional[int] = None,
        institutional_prompt: Optional[str] = None
    ):
        """
        Initialize the FlowInterpreter.

        Args:
            messages: MessageService used to send and persist node output
            ai: AIService for ai nodes
            patients: PatientService for api / payment nodes
            pdf: PDFService for pdf nodes
            gateway: WhatsAppService for document delivery
            store: ConversationStore for the transfer stop flag
            max_iterations: Node executions allowed per run
            institutional_prompt: Default system prompt for ai nodes
        """
        self.messages = messages
        self.ai = ai
        self.patients = patients
        self.pdf = pdf
        self.gateway = gateway
        self.store = store
        self.max_iterations = max_iterations or settings.FLOW_MAX_ITERATIONS
        self.institutional_prompt = institutional_prompt or get_institutional_prompt()

        self.flow_data: Optional[Dict[str, Any]] = None
        self.nodes: Dict[str, FlowNode] = {}
        self.connections: Dict[str, List[str]] = {}

        # Handler registry
        self._handlers: Dict[str, NodeHandler] = self._register_handlers()

    def _register_handlers(self) -> Dict[str, NodeHandler]:
        """Register all node type handlers"""
        return {
            NodeType.START.value: self._handle_start,
            NodeType.MESSAGE.value: self._handle_message,
            NodeType.MENU.value: self._handle_menu,
            NodeType.CONDITION.value: self._handle_condition,
            NodeType.AI.value: self._handle_ai,
            NodeType.INPUT.value: self._handle_input,
            NodeType.API.value: self._handle_api,
            NodeType.PAYMENT.value: self._handle_payment,
            NodeType.PDF.value: self._handle_pdf,
            NodeType.TRANSFER.value: self._handle_transfer,
            NodeType.IMAGE.value: self._handle_image,
            NodeType.END.value: self._handle_end,
        }

    # ==================== Graph ====================

    @property
    def is_initialized(self) -> bool:
        return self.flow_data is not None and bool(self.nodes)

    def initialize_flow(self, flow_data: Dict[str, Any]) -> None:
        """
        Validate the graph and index nodes by id and connections as from -> [to, ...]

        Raises:
            GraphInvalid: Structural errors (no start node, dangling connections...)
        """
        ensure_valid(flow_data)

        try:
            graph = FlowGraph.model_validate({
                **flow_data,
                "connections": flow_data.get("connections") or [],
                "metadata": flow_data.get("metadata") or {},
            })
        except ValueError as e:
            raise GraphInvalid(f"Datos de flujo inválidos: {e}")

        connections: Dict[str, List[str]] = {}
        for connection in graph.connections:
            connections.setdefault(connection.from_node, []).append(connection.to_node)

        self.flow_data = flow_data
        self.nodes = {node.id: node for node in graph.nodes}
        self.connections = connections

        logger.info(
            f"Flow initialized with {len(self.nodes)} nodes, "
            f"{len(graph.connections)} connections"
        )

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        return self.nodes.get(node_id)

    def get_start_node(self) -> Optional[str]:
        for node_id, node in self.nodes.items():
            if node.type == NodeType.START:
                return node_id
        return None

    def next_nodes(self, node_id: str) -> List[str]:
        return self.connections.get(node_id, [])

    def first_next(self, node_id: str) -> Optional[str]:
        targets = self.next_nodes(node_id)
        return targets[0] if targets else None

    def validate_flow(self, flow_data: Any) -> Dict[str, Any]:
        """Structural validation: {isValid, errors}"""
        return validate_flow(flow_data)

    # ==================== Execution ====================

    async def execute_flow(
        self,
        user_message: str,
        context: Union[ExecutionContext, Dict[str, Any], None] = None,
        start_node_id: Optional[str] = None
    ) -> FlowOutcome:
        """
        Run the graph from the start node (or a resume node) until it suspends or ends.

        Args:
            user_message: Inbound user text
            context: Caller context (dict with from/userId/nombre/historial/fase... or ExecutionContext)
            start_node_id: Node to resume at

        Returns:
            FlowOutcome (waiting with node_id when suspended)

        Raises:
            GraphInvalid: Flow not initialized or without start node
            LoopLimitExceeded: Node execution cap reached with a node still pending
            NodeNotFound: A next node id does not exist
        """
        if not self.is_initialized:
            raise GraphInvalid("Flujo no inicializado")

        start_id = self.get_start_node()
        if not start_id:
            raise GraphInvalid("No se encontró nodo de inicio")
        current_node_id = start_node_id or start_id

        execution_context = self._build_context(user_message, context)

        iterations = 0
        final_result: Optional[NodeResult] = None

        while current_node_id:
            if iterations >= self.max_iterations:
                raise LoopLimitExceeded(self.max_iterations, current_node_id)
            iterations += 1

            result = await self.execute_node(current_node_id, execution_context)
            execution_context.merge(result.context_updates())
            final_result = result

            if result.wait_for_user:
                return FlowOutcome(
                    success=True,
                    waiting=True,
                    node_id=current_node_id,
                    response=result.fields.get("prompt") or result.message or "",
                    iterations=iterations,
                    result=result,
                    context=execution_context
                )

            if result.completed:
                break
            current_node_id = result.next_node

        return FlowOutcome(
            success=True,
            waiting=False,
            node_id=None,
            response=self._final_response(final_result),
            iterations=iterations,
            result=final_result,
            context=execution_context
        )

    async def execute_node(self, node_id: str, context: ExecutionContext) -> NodeResult:
        """Execute a single node by id"""
        node = self.get_node(node_id)
        if node is None:
            raise NodeNotFound(node_id)

        logger.debug(f"Executing node {node.type.value} ({node_id}): {node.data.title}")
        handler = self._handlers[node.type.value]
        return await handler(node, context)

    def _build_context(
        self,
        user_message: str,
        context: Union[ExecutionContext, Dict[str, Any], None]
    ) -> ExecutionContext:
        if isinstance(context, ExecutionContext):
            execution_context = context
        else:
            raw = dict(context or {})
            sender = raw.pop("from", None)
            execution_context = ExecutionContext.from_dict(raw)
            if sender:
                execution_context.to = sender

        execution_context.user_message = user_message or ""
        return execution_context

    @staticmethod
    def _final_response(result: Optional[NodeResult]) -> str:
        if result is None:
            return "Procesado"
        return (
            result.message
            or result.fields.get("aiResponse")
            or result.fields.get("endMessage")
            or "Procesado"
        )

    async def _deliver(self, context: ExecutionContext, text: str, default_fase: str = "inicial") -> None:
        """Send + persist a node message when the recipient is fully known"""
        if not context.can_deliver():
            return

        outcome = await self.messages.send_and_save(
            to=context.to,
            user_id=context.user_id,
            nombre=context.nombre,
            texto=text,
            historial=context.historial,
            remitente="sistema",
            fase=context.fase or default_fase
        )
        if outcome.get("success") and outcome.get("historial") is not None:
            context.historial = outcome["historial"]

    # ==================== Resume helpers ====================

    def process_menu_response(
        self,
        node_id: str,
        user_message: str,
        context: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Resolve a menu reply to the next node id, None when the reply is not an option"""
        node = self.get_node(node_id)
        if node is None or node.type != NodeType.MENU:
            return None

        options = node.data.options or []
        try:
            choice = int((user_message or "").strip())
        except ValueError:
            return None

        if not 1 <= choice <= len(options):
            return None

        selected = options[choice - 1]
        if selected.next:
            return selected.next

        targets = self.next_nodes(node_id)
        if len(targets) >= choice:
            return targets[choice - 1]
        return targets[0] if targets else None

    def process_input_response(
        self,
        node_id: str,
        user_message: str,
        context: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, Any]]:
        """Validate an input reply: {valid, value, nextNode} or {valid: False, error}"""
        node = self.get_node(node_id)
        if node is None or node.type != NodeType.INPUT:
            return None

        validation = node.data.validation or InputValidation.TEXT.value
        text = user_message or ""

        if validation == InputValidation.CEDULA.value:
            is_valid = ValidationService.validate_cedula(text)["isValid"]
        elif validation == InputValidation.EMAIL.value:
            is_valid = ValidationService.validate_email(text)["isValid"]
        elif validation == InputValidation.NUMBER.value:
            is_valid = _is_number(text)
        else:
            is_valid = len(text.strip()) > 0

        if not is_valid:
            return {"valid": False, "error": f"Formato inválido para {validation}"}

        return {"valid": True, "value": text, "nextNode": self.first_next(node_id)}

    def render_menu(self, node_id: str) -> Optional[str]:
        """Menu text for a menu node (used to re-prompt after an invalid choice)"""
        node = self.get_node(node_id)
        if node is None or node.type != NodeType.MENU:
            return None
        return _menu_text(node)

    # ==================== Node handlers ====================

    async def _handle_start(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        return advance_result(self.first_next(node.id))

    async def _handle_message(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        text = node.data.text or "Mensaje no configurado"
        await self._deliver(context, text)
        return message_result(text, self.first_next(node.id))

    async def _handle_menu(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        menu_text = _menu_text(node)
        await self._deliver(context, menu_text)
        options = [option.model_dump(exclude_none=True) for option in node.data.options or []]
        return waiting_result(menu_text, node.id, menuOptions=options)

    async def _handle_condition(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        variable = node.data.variable or ""
        operator = node.data.operator or "equals"
        value = node.data.value or ""

        flat = context.as_dict()
        test_value = ConditionEvaluator.resolve_value(variable, flat)
        condition_met = ConditionEvaluator.evaluate(variable, operator, value, flat)

        # edge[0] = true branch, edge[1] = false branch
        targets = self.next_nodes(node.id)
        if not condition_met and len(targets) > 1:
            next_node = targets[1]
        else:
            next_node = targets[0] if targets else None

        return NodeResult(
            next_node=next_node,
            fields={"conditionMet": condition_met, "testValue": test_value}
        )

    async def _handle_ai(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        prompt = node.data.prompt or self.institutional_prompt
        messages = build_chat_messages(prompt, context.historial, context.user_message)

        try:
            response = await self.ai.chat_complete(messages, max_tokens=200)
        except Exception as e:
            logger.error(f"AI node {node.id} failed: {e}")
            response = node.data.fallback or AI_FALLBACK

        await self._deliver(context, response)
        return NodeResult(next_node=self.first_next(node.id), fields={"aiResponse": response})

    async def _handle_input(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        prompt = node.data.prompt or "¿Cuál es tu respuesta?"
        validation = node.data.validation or InputValidation.TEXT.value
        await self._deliver(context, prompt)
        return waiting_result(prompt, node.id, prompt=prompt, validation=validation)

    async def _handle_api(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        endpoint = node.data.endpoint or ""
        next_node = self.first_next(node.id)

        if endpoint != "consultarInformacionPaciente":
            logger.error(f"Unknown API endpoint in node {node.id}: {endpoint}")
            return NodeResult(next_node=next_node, fields={"apiResult": {"error": "Endpoint no configurado"}})

        cedula = context.get("cedula") or context.user_message
        if not cedula:
            return NodeResult(next_node=next_node, fields={"apiResult": None})

        try:
            api_result = await self.patients.consultar_informacion_paciente(cedula)
        except Exception as e:
            logger.error(f"API node {node.id} failed: {e}")
            api_result = {"error": str(e)}

        return NodeResult(next_node=next_node, fields={"apiResult": api_result})

    async def _handle_payment(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        cedula = context.get("cedula") or context.user_message
        next_node = self.first_next(node.id)

        if not cedula or not ValidationService.validate_cedula(cedula)["isValid"]:
            await self._deliver(context, DOCUMENT_REQUEST, default_fase="pago")
            return waiting_result(DOCUMENT_REQUEST, node.id, needsCedula=True)

        try:
            await self.patients.marcar_pagado(cedula)
            patient_info = await self.patients.consultar_informacion_paciente(cedula)
        except Exception as e:
            logger.error(f"Payment node {node.id} failed: {e}")
            await self._deliver(context, PAYMENT_ERROR, default_fase="pago")
            return NodeResult(next_node=next_node, fields={"paymentProcessed": False, "error": str(e)})

        return NodeResult(
            next_node=next_node,
            fields={"paymentProcessed": True, "patientInfo": patient_info, "cedula": cedula}
        )

    async def _handle_pdf(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        cedula = context.get("cedula")
        template = node.data.template or "certificate"
        next_node = self.first_next(node.id)

        try:
            if not cedula:
                raise ValueError("Se requiere cédula para generar PDF")

            pdf_url = await self.pdf.render(cedula)
            await self.pdf.wait_until_available(pdf_url)
            if context.to:
                await self.gateway.send_document(context.to, pdf_url, CERTIFICATE_CAPTION)
        except Exception as e:
            logger.error(f"PDF node {node.id} failed: {e}")
            return NodeResult(next_node=next_node, fields={"pdfGenerated": False, "error": str(e)})

        return NodeResult(
            next_node=next_node,
            fields={"pdfGenerated": True, "pdfUrl": pdf_url, "template": template}
        )

    async def _handle_transfer(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        text = node.data.message or "...transfiriendo con asesor"

        if context.can_deliver():
            await self._deliver(context, text)
            await self.store.set_observations(context.user_id, "stop")

        return message_result(text, self.first_next(node.id), transferred=True)

    async def _handle_image(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        # Images are handled by the queued image processor
        return NodeResult(
            next_node=self.first_next(node.id),
            fields={"imageProcessed": True, "action": node.data.action or "classify"}
        )

    async def _handle_end(self, node: FlowNode, context: ExecutionContext) -> NodeResult:
        return end_result(node.data.message or "Conversación finalizada")


# ==================== Helpers ====================

def _menu_text(node: FlowNode) -> str:
    options = node.data.options or []
    menu_text = node.data.title or "Selecciona una opción"
    if options:
        menu_text += "\n\n"
        for index, option in enumerate(options, start=1):
            menu_text += f"{index}️⃣ {option.text}\n"
    return menu_text


def _is_number(text: str) -> bool:
    try:
        float(text.strip())
        return True
    except ValueError:
        return False


def build_chat_messages(
    system_prompt: str,
    historial: Optional[List[Dict[str, Any]]],
    user_message: str,
    turns: int = 8
) -> List[Dict[str, str]]:
    """System prompt + last history turns + current user message"""
    messages = [{"role": "system", "content": system_prompt}]
    for entry in (historial or [])[-turns:]:
        messages.append({
            "role": "user" if entry.get("from") == "usuario" else "assistant",
            "content": entry.get("mensaje") or "",
        })
    messages.append({"role": "user", "content": user_message or ""})
    return messages


def create_flow_interpreter(**overrides: Any) -> FlowInterpreter:
    """Factory wiring the interpreter to the default service instances"""
    from ..services import (
        message_service, ai_service, patient_service,
        pdf_service, whatsapp_service, conversation_store
    )

    collaborators = {
        "messages": message_service,
        "ai": ai_service,
        "patients": patient_service,
        "pdf": pdf_service,
        "gateway": whatsapp_service,
        "store": conversation_store,
    }
    collaborators.update(overrides)
    return FlowInterpreter(**collaborators)
