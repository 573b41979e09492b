"""
Condition Evaluator - Deterministic evaluation for condition nodes.

Pure Python predicates, no LLM involved. All comparisons are case-insensitive.
"""
import re
import logging
from typing import Any, Dict, Callable, Optional

from ..models.flow import ConditionOperator

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """
    Evaluates `variable operator value` against the execution context.

    Supports:
    - equals (lowercase equality)
    - contains
    - startsWith
    - regex (compiled case-insensitively, malformed patterns never match)
    """

    # =========================================================================
    # OPERATOR DEFINITIONS
    # =========================================================================

    OPERATORS: Dict[str, Callable[[str, str], bool]] = {
        ConditionOperator.EQUALS.value: lambda actual, expected: actual.lower() == expected.lower(),
        ConditionOperator.CONTAINS.value: lambda actual, expected: expected.lower() in actual.lower(),
        ConditionOperator.STARTS_WITH.value: lambda actual, expected: actual.lower().startswith(expected.lower()),
        ConditionOperator.REGEX.value: lambda actual, expected: ConditionEvaluator._safe_regex_match(actual, expected),
    }

    # Context aliases: name -> (primary key, fallback key)
    FIELD_ALIASES: Dict[str, tuple] = {
        "userMessage": ("userMessage", None),
        "response": ("response", "userMessage"),
        "adminMessage": ("adminMessage", None),
        "userResponse": ("userResponse", "userMessage"),
    }

    # =========================================================================
    # MAIN EVALUATION METHOD
    # =========================================================================

    @classmethod
    def evaluate(
        cls,
        variable: Optional[str],
        operator: Optional[str],
        value: Any,
        context: Dict[str, Any]
    ) -> bool:
        """
        Evaluate a condition node.

        Args:
            variable: Context field to test (aliases resolved first)
            operator: One of equals, contains, startsWith, regex
            value: Value to compare against
            context: Flat execution context

        Returns:
            True if condition is met, False otherwise (unknown operator included)

        Example:
            >>> ConditionEvaluator.evaluate("userMessage", "contains", "mundo",
            ...                             {"userMessage": "Hola Mundo"})
            True
        """
        operator_func = cls.OPERATORS.get(operator or "")
        if operator_func is None:
            logger.warning(f"Unknown operator: '{operator}'")
            return False

        actual = cls.resolve_value(variable, context)
        expected = "" if value is None else str(value)
        result = operator_func(actual, expected)

        logger.debug(
            f"Condition evaluated: variable='{variable}', value={actual!r}, "
            f"operator='{operator}', expected={expected!r} -> {result}"
        )
        return result

    @classmethod
    def resolve_value(cls, variable: Optional[str], context: Dict[str, Any]) -> str:
        """Resolve a variable name against the context, stringified ("" when unset)"""
        if not variable or not context:
            return ""

        primary, fallback = cls.FIELD_ALIASES.get(variable, (variable, None))
        resolved = context.get(primary)
        if not resolved and fallback:
            resolved = context.get(fallback)

        if resolved is None:
            return ""
        return resolved if isinstance(resolved, str) else str(resolved)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _safe_regex_match(actual: str, pattern: str) -> bool:
        """Regex search, False on malformed patterns"""
        try:
            return re.search(pattern, actual, re.IGNORECASE) is not None
        except re.error as e:
            logger.warning(f"Invalid regex pattern '{pattern}': {e}")
            return False


# Convenience function
def evaluate_condition(
    variable: Optional[str],
    operator: Optional[str],
    value: Any,
    context: Dict[str, Any]
) -> bool:
    """Evaluate a single condition with the default evaluator"""
    return ConditionEvaluator.evaluate(variable, operator, value, context)
