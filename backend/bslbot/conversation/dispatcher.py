"""
Conversation Dispatcher - Single entry point for inbound WhatsApp messages.

Routing:
- Bot number / from_me -> control phrases and admin history
- Blocked conversation (observaciones contains "stop") -> ignored
- Image -> quick notice + imageProcessing task
- Text -> configured driver (phases or flow)

Messages of the same user are serialized with the shared per-user locks so
the read-modify-write of the stored conversation never interleaves with
another text turn or with an image job.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

from ..core.config import settings
from ..models.conversation import Phase
from ..models.flow import NodeType, InputValidation, SUSPENDING_TYPES
from ..models.webhook import WhapiMessage
from ..services.locks import UserLocks, user_locks
from ..services.messages import MessageService
from ..services.validation import ValidationService
from ..phases.detector import determinar_nueva_fase
from ..phases.handlers import PhaseRequest, LOOKUP_NOTICE
from ..flow.result import FlowOutcome
from .control import BotControl, is_control_message

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 1000
UNSUPPORTED_IMAGE = "❌ Solo puedo procesar imágenes JPG, PNG, WEBP o GIF."


class ConversationDriver(str, Enum):
    """Component that turns inbound text into replies"""
    PHASES = "phases"
    FLOW = "flow"


class ConversationDispatcher:
    """Routes each inbound message to control, the image queue or the driver"""

    def __init__(
        self,
        messages,
        store,
        task_queue,
        phase_handlers=None,
        interpreter=None,
        flow_store=None,
        driver: Optional[str] = None,
        bot_number: Optional[str] = None,
        restart_completed: Optional[bool] = None,
        locks: Optional[UserLocks] = None
    ):
        """
        Initialize the dispatcher.

        Args:
            messages: MessageService
            store: ConversationStore
            task_queue: TaskQueueService receiving imageProcessing tasks
            phase_handlers: PhaseHandlers (phases driver)
            interpreter: FlowInterpreter (flow driver)
            flow_store: FlowStore used to load the graph on first use
            driver: "phases" or "flow" (default: CONVERSATION_DRIVER)
            bot_number: Number whose messages are treated as control
            restart_completed: Leave `completado` back to `inicial` on new messages
            locks: UserLocks shared with the image job (default: user_locks)
        """
        self.messages = messages
        self.store = store
        self.task_queue = task_queue
        self.phase_handlers = phase_handlers
        self.interpreter = interpreter
        self.flow_store = flow_store
        self.driver = ConversationDriver(driver or settings.CONVERSATION_DRIVER)
        self.bot_number = bot_number or settings.BOT_NUMBER
        self.restart_completed = (
            settings.COMPLETED_PHASE_RESTARTS if restart_completed is None else restart_completed
        )
        self.control = BotControl(store, messages)

        if self.driver == ConversationDriver.PHASES and phase_handlers is None:
            raise ValueError("The phases driver needs phase handlers")
        if self.driver == ConversationDriver.FLOW and interpreter is None:
            raise ValueError("The flow driver needs a flow interpreter")

        self.locks = locks if locks is not None else user_locks

    async def handle_message(self, message: WhapiMessage) -> Dict[str, Any]:
        """
        Process one inbound message.

        Returns:
            Result dict; errors are logged and returned as {success: False, error}
        """
        try:
            user_id = message.user_id
            if is_control_message(message, self.bot_number):
                if not user_id:
                    return await self.control.handle(message)
                async with self.locks.hold(user_id):
                    return await self.control.handle(message)

            if not user_id:
                return {"success": True, "mensaje": "Mensaje sin remitente"}

            async with self.locks.hold(user_id):
                return await self._handle_user_message(message)

        except Exception as e:
            logger.exception(f"Error handling message {message.id}: {e}")
            return {"success": False, "error": str(e)}

    async def _handle_user_message(self, message: WhapiMessage) -> Dict[str, Any]:
        user_id = message.user_id
        conversation = await self.store.get_conversation(user_id)

        if MessageService.is_user_blocked(conversation.get("observaciones")):
            logger.info(f"Conversation {user_id} is blocked, message ignored")
            return {"success": True, "mensaje": "Usuario bloqueado"}

        if message.is_image:
            return await self._handle_image(message)

        if message.is_text:
            return await self._handle_text(message, conversation)

        logger.info(f"Message type {message.type} from {user_id} not supported")
        return {"success": True, "mensaje": f"Tipo {message.type} no soportado"}

    # ==================== Images ====================

    async def _handle_image(self, message: WhapiMessage) -> Dict[str, Any]:
        to = message.reply_to
        mime_type = message.image.mime_type or "image/jpeg"

        if not ValidationService.validate_image_type(mime_type)["isValid"]:
            await self.messages.send_simple(to, UNSUPPORTED_IMAGE)
            return {"success": False, "error": f"Tipo de imagen no soportado: {mime_type}"}

        await self.messages.send_simple(to, LOOKUP_NOTICE)

        task_id = self.task_queue.enqueue_image_processing({
            "media_id": message.image.id,
            "mime_type": mime_type,
            "to": to,
            "user_id": message.user_id,
            "nombre": message.from_name,
        })
        return {"success": True, "mensaje": "Imagen en cola", "taskId": task_id}

    # ==================== Text ====================

    async def _handle_text(self, message: WhapiMessage, conversation: Dict[str, Any]) -> Dict[str, Any]:
        validation = ValidationService.validate_text_message(message.body, MAX_TEXT_LENGTH)
        if not validation["isValid"]:
            logger.warning(f"Invalid message from {message.user_id}: {validation['error']}")
            await self.messages.send_simple(
                message.reply_to,
                f"❌ {validation['error']}. Por favor envía un mensaje válido."
            )
            return {"success": False, "error": validation["error"]}

        texto = message.body
        historial = MessageService.append_user_message(texto, conversation.get("mensajes"))

        if self.driver == ConversationDriver.FLOW:
            return await self._run_flow(message, texto, historial, conversation)
        return await self._run_phases(message, texto, historial, conversation)

    async def _run_phases(
        self,
        message: WhapiMessage,
        texto: str,
        historial: list,
        conversation: Dict[str, Any]
    ) -> Dict[str, Any]:
        fase_actual = conversation.get("fase") or Phase.INICIAL.value
        nueva_fase = determinar_nueva_fase(fase_actual, texto, historial, self.restart_completed)
        if nueva_fase != fase_actual:
            logger.info(f"Phase change for {message.user_id}: {fase_actual} -> {nueva_fase}")

        await self.store.save_conversation(message.user_id, message.from_name, historial, nueva_fase)

        request = PhaseRequest(
            to=message.reply_to,
            user_id=message.user_id,
            nombre=message.from_name,
            mensaje=texto,
            historial=historial
        )
        return await self.phase_handlers.handle(nueva_fase, request)

    async def _run_flow(
        self,
        message: WhapiMessage,
        texto: str,
        historial: list,
        conversation: Dict[str, Any]
    ) -> Dict[str, Any]:
        user_id = message.user_id
        fase = conversation.get("fase") or Phase.INICIAL.value
        await self.store.save_conversation(user_id, message.from_name, historial, fase)

        if not self.interpreter.is_initialized and self.flow_store is not None:
            self.interpreter.initialize_flow(self.flow_store.load())

        context = {
            "from": message.reply_to,
            "userId": user_id,
            "nombre": message.from_name,
            "historial": historial,
            "fase": fase,
        }

        suspended = self.interpreter.get_node(conversation.get("flow_node") or "")
        if suspended is not None and suspended.type in SUSPENDING_TYPES:
            outcome = await self._resume_flow(suspended.id, texto, context)
        else:
            outcome = await self.interpreter.execute_flow(texto, context)

        flow_node = outcome.node_id if outcome.waiting else None
        await self.store.save_flow_node(user_id, flow_node)

        return {
            "success": outcome.success,
            "respuesta": outcome.response,
            "waiting": outcome.waiting,
            "flowNode": flow_node,
            "iterations": outcome.iterations,
        }

    async def _resume_flow(self, node_id: str, texto: str, context: Dict[str, Any]) -> FlowOutcome:
        """Continue a suspended run from the node it stopped at"""
        node = self.interpreter.get_node(node_id)
        logger.info(f"Resuming flow for {context['userId']} at {node.type.value} node {node_id}")

        if node.type == NodeType.MENU:
            next_node = self.interpreter.process_menu_response(node_id, texto, context)
            if next_node is None:
                menu_text = self.interpreter.render_menu(node_id)
                await self._send_in_flow(context, menu_text)
                return FlowOutcome(waiting=True, node_id=node_id, response=menu_text)
            return await self.interpreter.execute_flow(texto, context, start_node_id=next_node)

        if node.type == NodeType.INPUT:
            result = self.interpreter.process_input_response(node_id, texto, context)
            if not result["valid"]:
                prompt = node.data.prompt or "¿Cuál es tu respuesta?"
                await self._send_in_flow(context, f"❌ {result['error']}")
                await self._send_in_flow(context, prompt)
                return FlowOutcome(waiting=True, node_id=node_id, response=prompt)

            context["userResponse"] = result["value"]
            if node.data.validation == InputValidation.CEDULA.value:
                context["cedula"] = ValidationService.validate_cedula(result["value"])["value"]

            if not result["nextNode"]:
                return FlowOutcome(response=result["value"])
            return await self.interpreter.execute_flow(texto, context, start_node_id=result["nextNode"])

        if node.type == NodeType.PAYMENT:
            return await self.interpreter.execute_flow(texto, context, start_node_id=node_id)

        return await self.interpreter.execute_flow(texto, context)

    async def _send_in_flow(self, context: Dict[str, Any], texto: str) -> None:
        outcome = await self.messages.send_and_save(
            to=context["from"],
            user_id=context["userId"],
            nombre=context["nombre"],
            texto=texto,
            historial=context["historial"],
            fase=context["fase"]
        )
        if outcome.get("success"):
            context["historial"] = outcome["historial"]


def create_conversation_dispatcher(**overrides: Any) -> ConversationDispatcher:
    """Factory wiring the dispatcher to the default service instances"""
    from ..services import message_service, conversation_store, task_queue
    from ..phases.handlers import create_phase_handlers
    from ..flow.interpreter import create_flow_interpreter
    from ..flow.store import flow_store

    collaborators = {
        "messages": message_service,
        "store": conversation_store,
        "task_queue": task_queue,
        "phase_handlers": create_phase_handlers(),
        "interpreter": create_flow_interpreter(),
        "flow_store": flow_store,
    }
    collaborators.update(overrides)
    return ConversationDispatcher(**collaborators)


# Singleton instance
conversation_dispatcher = create_conversation_dispatcher()
