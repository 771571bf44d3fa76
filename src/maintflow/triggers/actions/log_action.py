import logging
import json
from typing import Any, Dict

from maintflow.triggers.schemas import HandlerResult
from .base import ActionHandler, ActionContext

logger = logging.getLogger(__name__)

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


class LogAction(ActionHandler):
    """
    Writes the match to application logs.
    Useful for dry-running rules before wiring real side effects.
    """

    @property
    def type_name(self) -> str:
        return "log"

    async def execute(self, parameters: Dict[str, Any], context: ActionContext) -> HandlerResult:
        level = str(parameters.get("level", "INFO")).upper()
        if level not in _LEVELS:
            return HandlerResult.failure(f"Unsupported log level '{level}'. Use one of {sorted(_LEVELS)}")

        # Parameters are already interpolated by the executor
        message = parameters.get("message", f"Rule '{context.rule_name}' matched {context.trigger}")

        log_fn = getattr(logger, level.lower())
        log_fn(
            f"[LogAction] {message} | company={context.company_id} "
            f"| parameters={json.dumps(parameters, default=str)}"
        )
        return HandlerResult.ok(message)
