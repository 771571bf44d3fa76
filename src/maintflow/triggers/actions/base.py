from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

from maintflow.triggers.schemas import HandlerResult


class ActionContext:
    """
    Context passed to an action execution.
    Contains the event payload and the rule that matched it.
    """
    def __init__(self, trigger: str, company_id: str, event_data: Dict[str, Any],
                 rule_id: Optional[str] = None, rule_name: str = "", action_order: int = 0):
        self.trigger = trigger
        self.company_id = company_id
        self.event_data = event_data
        self.rule_id = rule_id
        self.rule_name = rule_name
        self.action_order = action_order

    def for_action(self, order: int) -> "ActionContext":
        return ActionContext(
            trigger=self.trigger,
            company_id=self.company_id,
            event_data=self.event_data,
            rule_id=self.rule_id,
            rule_name=self.rule_name,
            action_order=order,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger,
            "company_id": self.company_id,
            "event_data": self.event_data,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "action_order": self.action_order,
        }


class ActionHandler(ABC):
    """
    Base class for the capability behind an action type.

    Handlers are shared across concurrent dispatches, so they must be
    stateless or guard their own state. They validate their own parameters
    and report problems through HandlerResult instead of raising.
    """

    @property
    @abstractmethod
    def type_name(self) -> str:
        """The registry key for this handler (e.g., 'send_notification', 'log')."""
        pass

    @abstractmethod
    async def execute(self, parameters: Dict[str, Any], context: ActionContext) -> HandlerResult:
        """
        Execute the action.

        Args:
            parameters: The action's parameters from the rule, already interpolated
            context: The triggering event and rule

        Returns:
            HandlerResult: success flag, message, and whether a failure is transient.
        """
        pass
