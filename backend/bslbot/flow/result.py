"""
Flow Result - Data classes for node and run results
"""
from dataclasses import dataclass, field
from typing import Optional, Any, Dict

from .context import ExecutionContext


@dataclass
class NodeResult:
    """
    Result of a single node execution.

    `fields` are merged into the execution context after the node runs.
    """

    message: Optional[str] = None
    next_node: Optional[str] = None
    wait_for_user: bool = False
    completed: bool = False
    fields: Dict[str, Any] = field(default_factory=dict)

    def context_updates(self) -> Dict[str, Any]:
        """Fields to merge into the context (the emitted message included)"""
        updates = dict(self.fields)
        if self.message is not None:
            updates["message"] = self.message
        return updates

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.fields)
        data.update({
            "message": self.message,
            "nextNode": self.next_node,
            "waitForUser": self.wait_for_user,
            "completed": self.completed,
        })
        return data


@dataclass
class FlowOutcome:
    """Outcome of execute_flow: finished or suspended at a node"""

    success: bool = True
    waiting: bool = False
    node_id: Optional[str] = None
    response: str = ""
    iterations: int = 0
    result: Optional[NodeResult] = None
    context: ExecutionContext = field(default_factory=ExecutionContext)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "waiting": self.waiting,
            "nodeId": self.node_id,
            "response": self.response,
            "iterations": self.iterations,
            "result": self.result.to_dict() if self.result else None,
            "context": self.context.as_dict(),
        }


# ==================== Factory functions ====================

def advance_result(next_node: Optional[str], **fields: Any) -> NodeResult:
    """Continue to next node without emitting anything"""
    return NodeResult(next_node=next_node, completed=next_node is None, fields=fields)


def message_result(message: str, next_node: Optional[str] = None, **fields: Any) -> NodeResult:
    """Emit a message and continue"""
    return NodeResult(message=message, next_node=next_node, fields=fields)


def waiting_result(message: str, node_id: str, **fields: Any) -> NodeResult:
    """Emit a prompt and suspend until the user answers"""
    fields["nodeId"] = node_id
    return NodeResult(message=message, wait_for_user=True, fields=fields)


def end_result(end_message: str) -> NodeResult:
    """Terminal result"""
    return NodeResult(completed=True, fields={"endMessage": end_message})
