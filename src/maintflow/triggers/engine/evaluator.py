import logging
from typing import Any, Mapping, Optional, Sequence

from maintflow.triggers.errors import ConditionEvaluationError
from maintflow.triggers.schemas import (
    ConditionOperator,
    ConditionValue,
    FlowCondition,
    LogicalOperator,
    ValueKind,
)

logger = logging.getLogger(__name__)

_MISSING = object()


def resolve_path(context: Mapping[str, Any], path: str) -> Any:
    """
    Look up a dotted path ("asset.location.site") in nested mappings.
    Integer segments index into lists ("parts.0.sku").

    Raises:
        ConditionEvaluationError: if any segment is absent.
    """
    current: Any = context
    for segment in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(segment, _MISSING)
        elif isinstance(current, Sequence) and not isinstance(current, str) and segment.lstrip("-").isdigit():
            index = int(segment)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            raise ConditionEvaluationError(f"Field '{path}' not found in event context", {"field": path})
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numeric(value: Any) -> Optional[float]:
    """A real number, or a string holding one; None for anything else."""
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _same(left: Any, right: Any) -> bool:
    """Equality that does not conflate booleans with numbers (True != 1)."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    # str subclasses (str-valued enums) compare by their string value
    if isinstance(left, str) and isinstance(right, str):
        return str.__eq__(left, right)
    if type(left) is not type(right) and not (isinstance(left, list) and isinstance(right, list)):
        return False
    return left == right


def _field_equals(field_value: Any, stored: Any) -> bool:
    """Event field against a stored literal; numeric strings match stored numbers."""
    if _is_number(stored) and isinstance(field_value, str):
        number = _numeric(field_value)
        return number is not None and number == stored
    return _same(field_value, stored)


def _field_in(field_value: Any, stored: Sequence[Any]) -> bool:
    return any(_field_equals(field_value, candidate) for candidate in stored)


def _member(item: Any, collection: Sequence[Any]) -> bool:
    return any(_same(item, candidate) for candidate in collection)


class ConditionEvaluator:
    """
    Evaluates a rule's ordered condition list against an event context.

    Conditions are combined as a strict left fold: the logical operator on
    condition i says how its result merges with the accumulated result of
    conditions 0..i-1. There is no AND-before-OR precedence, so
    [A, B(OR), C(AND)] means ((A or B) and C). The first condition's
    operator is ignored.

    Pure and stateless; safe to share between concurrent dispatches.
    """

    def evaluate(self, conditions: Sequence[FlowCondition], context: Mapping[str, Any]) -> bool:
        """
        Args:
            conditions: The rule's conditions (sorted by order here, whatever the input order)
            context: The event context (e.g. {"asset": {"isCritical": True}})

        Returns:
            bool: True if the rule matches. An empty list always matches.
        """
        ordered = sorted(conditions, key=lambda c: c.order)
        if not ordered:
            return True

        result = self._safe_single(ordered[0], context)
        for condition in ordered[1:]:
            current = self._safe_single(condition, context)
            if condition.logical_operator == LogicalOperator.OR:
                result = result or current
            else:
                result = result and current
        return result

    def _safe_single(self, condition: FlowCondition, context: Mapping[str, Any]) -> bool:
        # Every condition is evaluated (no short-circuit) so bad fields always get logged
        try:
            return self.evaluate_single(condition, context)
        except ConditionEvaluationError as e:
            logger.warning(
                f"Condition on '{condition.field}' ({condition.operator.value}) treated as false: {e.message}"
            )
            return False

    def evaluate_single(self, condition: FlowCondition, context: Mapping[str, Any]) -> bool:
        """
        Evaluate one condition.

        Raises:
            ConditionEvaluationError: missing field or type mismatch.
        """
        field_value = resolve_path(context, condition.field)
        expected = condition.value
        op = condition.operator

        if op == ConditionOperator.EQUALS:
            return _field_equals(field_value, expected.value)
        if op == ConditionOperator.NOT_EQUALS:
            return not _field_equals(field_value, expected.value)
        if op in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
            left, right = self._ordered_operands(condition.field, field_value, expected)
            return left > right if op == ConditionOperator.GREATER_THAN else left < right
        if op == ConditionOperator.CONTAINS:
            return self._contains(condition.field, field_value, expected)
        if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if expected.kind != ValueKind.ARRAY:
                raise ConditionEvaluationError(f"'{op.value}' needs an array value, got {expected.kind.value}")
            found = _field_in(field_value, expected.value)
            return found if op == ConditionOperator.IN else not found

        raise ConditionEvaluationError(f"Unsupported operator '{op}'")

    def _ordered_operands(self, field: str, field_value: Any, expected: ConditionValue):
        if expected.kind == ValueKind.NUMBER:
            number = _numeric(field_value)
            if number is not None:
                return number, expected.value
        elif expected.kind == ValueKind.STRING and isinstance(field_value, str):
            return field_value, expected.value

        raise ConditionEvaluationError(
            f"Cannot order field '{field}' of type {type(field_value).__name__} "
            f"against a {expected.kind.value} value",
            {"field": field},
        )

    def _contains(self, field: str, field_value: Any, expected: ConditionValue) -> bool:
        if expected.kind == ValueKind.STRING:
            if isinstance(field_value, str):
                return expected.value in field_value
            if isinstance(field_value, (list, tuple)):
                return _member(expected.value, field_value)
        elif expected.kind == ValueKind.ARRAY:
            return _field_in(field_value, expected.value)

        raise ConditionEvaluationError(
            f"'contains' cannot test field '{field}' of type {type(field_value).__name__} "
            f"with a {expected.kind.value} value",
            {"field": field},
        )
