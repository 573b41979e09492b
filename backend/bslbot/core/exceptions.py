"""
Exceptions - Error taxonomy shared by the flow, phase and queue layers
"""
from typing import List, Optional


class BotError(Exception):
    """Base class for all bot errors"""


class GraphInvalid(BotError):
    """Flow graph is structurally invalid (missing start node, dangling connections...)"""

    def __init__(self, errors: List[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = errors
        super().__init__("; ".join(errors) if errors else "Flujo inválido")


class LoopLimitExceeded(BotError):
    """Flow run aborted after too many node transitions"""

    def __init__(self, max_iterations: int, last_node_id: Optional[str] = None):
        self.max_iterations = max_iterations
        self.last_node_id = last_node_id
        super().__init__(
            f"Flow exceeded {max_iterations} node executions "
            f"(pending node: {last_node_id})"
        )


class NodeNotFound(BotError):
    """A node id referenced at run time does not exist in the graph"""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Nodo no encontrado: {node_id}")


class ProviderError(BotError):
    """An external provider (AI, patient API, PDF, gateway) call failed"""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"[{provider}] {message}")


class TaskFailurePermanent(BotError):
    """A queued task exhausted its retry attempts"""

    def __init__(self, task_id: str, attempts: int, last_error: Optional[str] = None):
        self.task_id = task_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Task {task_id} failed after {attempts} attempts: {last_error}"
        )
