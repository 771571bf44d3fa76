"""
Error taxonomy for the flow engine.

Only RuleValidationError reaches callers (rule management). The others are
recovered inside the engine and surface as logged warnings, failed action
results, or failed Execution records.
"""

from typing import Any, Dict, Optional


class FlowEngineError(Exception):
    """Base exception for the flow engine."""

    code = "FLOW_ENGINE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class RuleValidationError(FlowEngineError):
    """Malformed rule rejected at save time."""

    code = "RULE_VALIDATION_ERROR"


class ConditionEvaluationError(FlowEngineError):
    """Missing field or type mismatch while evaluating one condition."""

    code = "CONDITION_EVALUATION_ERROR"


class ActionExecutionError(FlowEngineError):
    """Handler raised, timed out, or reported failure."""

    code = "ACTION_EXECUTION_ERROR"


class TransientActionError(ActionExecutionError):
    """
    Raised by handlers for failures worth retrying (upstream unavailable,
    rate limited). Treated like a timeout by the executor.
    """

    code = "TRANSIENT_ACTION_ERROR"


class HandlerNotFoundError(FlowEngineError):
    """Action type has no registered handler."""

    code = "HANDLER_NOT_FOUND"

    def __init__(self, action_type: str, registered: Optional[list] = None):
        registered = sorted(registered or [])
        super().__init__(
            f"No handler registered for action type '{action_type}'. Registered: {registered}",
            {"action_type": action_type, "registered": registered},
        )
        self.action_type = action_type


class PersistenceError(FlowEngineError):
    """Execution record could not be written."""

    code = "PERSISTENCE_ERROR"
