"""
Flow Module - Visual flow execution

This module provides:
- Node-graph interpreter with suspend/resume at menu, input and payment nodes
- Deterministic condition evaluation
- Structural validation of flow documents
- Execution context with history deduplication
- JSON flow store with the default BSL graph
"""

from .interpreter import FlowInterpreter, create_flow_interpreter, build_chat_messages
from .evaluator import ConditionEvaluator, evaluate_condition
from .validator import (
    FlowValidator,
    FlowValidationError,
    validate_flow,
    ensure_valid
)
from .context import ExecutionContext, dedupe_history
from .result import (
    NodeResult,
    FlowOutcome,
    advance_result,
    message_result,
    waiting_result,
    end_result
)
from .store import FlowStore, flow_store

__all__ = [
    # Interpreter
    "FlowInterpreter",
    "create_flow_interpreter",
    "build_chat_messages",

    # Evaluator
    "ConditionEvaluator",
    "evaluate_condition",

    # Validator
    "FlowValidator",
    "FlowValidationError",
    "validate_flow",
    "ensure_valid",

    # Context
    "ExecutionContext",
    "dedupe_history",

    # Result
    "NodeResult",
    "FlowOutcome",
    "advance_result",
    "message_result",
    "waiting_result",
    "end_result",

    # Store
    "FlowStore",
    "flow_store",
]
