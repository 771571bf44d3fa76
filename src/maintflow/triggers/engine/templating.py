import re
from typing import Any, Dict, Mapping

from maintflow.triggers.errors import ConditionEvaluationError
from maintflow.triggers.engine.evaluator import resolve_path

_PLACEHOLDER = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")


def interpolate_string(template: str, context: Mapping[str, Any]) -> str:
    """
    Replace {{ dotted.path }} placeholders with values from the context.
    Unknown paths (and null values) are left as written.
    """
    def _sub(match: re.Match) -> str:
        try:
            value = resolve_path(context, match.group(1))
        except ConditionEvaluationError:
            return match.group(0)
        if value is None:
            return match.group(0)
        return str(value)

    return _PLACEHOLDER.sub(_sub, template)


def interpolate_parameters(parameters: Mapping[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
    """Interpolate string values in an action's parameters, recursing into nested maps and lists."""
    return {key: _interpolate_value(value, context) for key, value in parameters.items()}


def _interpolate_value(value: Any, context: Mapping[str, Any]) -> Any:
    if isinstance(value, str) and "{{" in value:
        return interpolate_string(value, context)
    if isinstance(value, Mapping):
        return interpolate_parameters(value, context)
    if isinstance(value, list):
        return [_interpolate_value(item, context) for item in value]
    return value
