from typing import Dict, List, Optional
import logging
from .base import ActionHandler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """
    Maps action-type strings to handlers.

    Owned by the host application and filled at startup; frozen once the
    engine starts so dispatches never see the mapping change.
    """

    def __init__(self):
        self._handlers: Dict[str, ActionHandler] = {}
        self._frozen = False

    def register(self, action_type: str, handler: ActionHandler) -> None:
        """Register a handler under an action type."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{action_type}': handler registry is frozen after engine start"
            )
        if not action_type:
            raise ValueError("action_type must be a non-empty string")
        if action_type in self._handlers:
            logger.warning(f"Action type '{action_type}' already registered. Overwriting.")
        self._handlers[action_type] = handler
        logger.info(f"Registered action handler for type: '{action_type}'")

    def register_handler(self, handler: ActionHandler) -> None:
        """Register a handler under its own type_name."""
        self.register(handler.type_name, handler)

    def resolve(self, action_type: str) -> Optional[ActionHandler]:
        """Get a handler by type, or None when nothing is registered for it."""
        return self._handlers.get(action_type)

    def types(self) -> List[str]:
        return sorted(self._handlers)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, action_type: str) -> bool:
        return action_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def init_default_handlers(registry: HandlerRegistry) -> HandlerRegistry:
    """Register the built-in handlers that need no host infrastructure."""
    from .log_action import LogAction
    from .webhook_action import WebhookNotificationAction

    registry.register_handler(LogAction())
    registry.register_handler(WebhookNotificationAction())
    return registry
