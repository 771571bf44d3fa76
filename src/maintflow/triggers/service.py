import json
import logging
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy.orm import Session

from maintflow.triggers import schemas
from maintflow.triggers.actions.registry import HandlerRegistry
from maintflow.triggers.errors import RuleValidationError
from maintflow.triggers.models import FlowActionModel, FlowConditionModel, FlowRuleModel
from maintflow.triggers.repository import FlowRuleRepository

logger = logging.getLogger(__name__)


def _condition_models(conditions: List[schemas.ConditionSpec]) -> List[FlowConditionModel]:
    models = []
    for condition in conditions:
        typed = condition.typed_value
        models.append(FlowConditionModel(
            id=str(uuid4()),
            field=condition.field,
            operator=condition.operator.value,
            value_kind=typed.kind.value,
            value=typed.value,
            logical_operator=condition.logical_operator.value,
            order=condition.order,
        ))
    return models


def _action_models(actions: List[schemas.ActionSpec]) -> List[FlowActionModel]:
    return [
        FlowActionModel(id=str(uuid4()), type=action.type, parameters=dict(action.parameters), order=action.order)
        for action in actions
    ]


class FlowRuleService:
    """
    Rule management: the only place rules are written.

    Malformed rules are rejected here with RuleValidationError so the engine
    never has to reason about them at dispatch time. When a registry is given,
    action types must also be registered.
    """

    def __init__(self, repository: FlowRuleRepository, registry: Optional[HandlerRegistry] = None):
        self.repository = repository
        self.registry = registry

    @staticmethod
    def parse_rule(payload: Dict[str, Any]) -> schemas.FlowRuleCreate:
        """Validate a raw rule payload."""
        try:
            return schemas.FlowRuleCreate.model_validate(payload)
        except ValidationError as e:
            raise RuleValidationError("Invalid flow rule", {"errors": json.loads(e.json(include_url=False))}) from e

    def _check_action_types(self, actions: List[schemas.ActionSpec]) -> None:
        if self.registry is None:
            return
        unknown = sorted({action.type for action in actions if action.type not in self.registry})
        if unknown:
            raise RuleValidationError(
                f"Unknown action type(s) {unknown}. Registered: {self.registry.types()}",
                {"unknown_action_types": unknown},
            )

    def create_rule(self, session: Session, company_id: str, rule_create: schemas.FlowRuleCreate,
                    created_by: Optional[str] = None) -> FlowRuleModel:
        self._check_action_types(rule_create.actions)
        new_rule = FlowRuleModel(
            id=str(uuid4()),
            company_id=company_id,
            name=rule_create.name,
            description=rule_create.description,
            trigger=rule_create.trigger.value,
            priority=rule_create.priority,
            is_active=rule_create.is_active,
            stop_on_failure=rule_create.stop_on_failure,
            schedule_interval_seconds=rule_create.schedule_interval_seconds,
            created_by=created_by,
            version=1,
            conditions=_condition_models(rule_create.conditions),
            actions=_action_models(rule_create.actions),
        )
        rule = self.repository.create(session, new_rule)
        logger.info(f"Created flow rule '{rule.name}' ({rule.id}) for company '{company_id}'")
        return rule

    def get_rule(self, session: Session, company_id: str, rule_id: str) -> Optional[FlowRuleModel]:
        return self.repository.get(session, rule_id, company_id)

    def list_rules(self, session: Session, company_id: str, limit: int = 100, offset: int = 0,
                   trigger: Optional[str] = None, is_active: Optional[bool] = None) -> List[FlowRuleModel]:
        return self.repository.list(session, company_id, limit, offset, trigger=trigger, is_active=is_active)

    def update_rule(self, session: Session, company_id: str, rule_id: str,
                    rule_update: schemas.FlowRuleUpdate) -> Optional[FlowRuleModel]:
        updates = rule_update.model_dump(exclude_unset=True, exclude={"conditions", "actions"})
        # Explicit nulls cannot clear required columns
        for key in ("name", "trigger", "priority", "is_active"):
            if key in updates and updates[key] is None:
                del updates[key]
        if "trigger" in updates:
            updates["trigger"] = updates["trigger"].value
        if rule_update.actions is not None:
            self._check_action_types(rule_update.actions)

        rule = self.repository.update(session, rule_id, updates, company_id)
        if rule is None:
            return None

        if rule_update.conditions is not None:
            self.repository.replace_conditions(session, rule, _condition_models(rule_update.conditions))
        if rule_update.actions is not None:
            self.repository.replace_actions(session, rule, _action_models(rule_update.actions))
        return rule

    def delete_rule(self, session: Session, company_id: str, rule_id: str) -> bool:
        deleted = self.repository.delete(session, rule_id, company_id)
        if deleted:
            logger.info(f"Deleted flow rule {rule_id} for company '{company_id}'")
        return deleted
