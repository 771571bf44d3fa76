import logging
from typing import Iterable, List, Optional

from maintflow.storage.base import StorageAdapter
from maintflow.triggers.repository import FlowRuleRepository
from maintflow.triggers.schemas import FlowRule, TriggerType

logger = logging.getLogger(__name__)


class RuleMatcher:
    """
    Selects the rules a trigger event should run, in execution order.

    Rules are read inside a single short session and returned as frozen
    snapshots, so concurrent rule edits cannot make a rule appear twice or
    vanish halfway through a dispatch.
    """

    def __init__(self, storage: StorageAdapter, repository: Optional[FlowRuleRepository] = None):
        self.storage = storage
        self.repository = repository or FlowRuleRepository()

    def match(self, trigger: TriggerType, company_id: str,
              rule_ids: Optional[Iterable[str]] = None) -> List[FlowRule]:
        """
        Active rules for (trigger, company_id), sorted ascending by (priority, id).

        Args:
            trigger: The event kind
            company_id: Tenant scope
            rule_ids: Optional narrowing to specific rules (scheduled dispatch)
        """
        trigger_value = trigger.value if isinstance(trigger, TriggerType) else str(trigger)
        with self.storage.get_session() as session:
            models = self.repository.list_active_rules(session, trigger_value, company_id, rule_ids)
            rules = [FlowRule.from_model(model) for model in models]

        # The query orders already; sorting the snapshots keeps the guarantee storage-independent
        rules.sort(key=lambda rule: (rule.priority, rule.id))
        logger.debug(f"Matched {len(rules)} active rule(s) for trigger='{trigger_value}' company='{company_id}'")
        return rules
