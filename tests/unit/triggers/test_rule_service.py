from unittest.mock import Mock

import pytest

from maintflow.triggers import schemas
from maintflow.triggers.actions.log_action import LogAction
from maintflow.triggers.actions.registry import HandlerRegistry
from maintflow.triggers.errors import RuleValidationError
from maintflow.triggers.models import FlowRuleModel
from maintflow.triggers.repository import FlowRuleRepository
from maintflow.triggers.service import FlowRuleService


def rule_payload(**overrides):
    payload = {
        "name": "Critical asset alert",
        "trigger": "creation",
        "priority": 50,
        "conditions": [
            {"field": "asset.isCritical", "operator": "equals", "value": True},
            {"field": "maintenance.cost", "operator": "greaterThan", "value": 1000, "logical_operator": "OR"},
        ],
        "actions": [{"type": "log", "parameters": {"message": "Critical: {{asset.name}}"}}],
    }
    payload.update(overrides)
    return payload


def test_create_rule():
    mock_repo = Mock()
    mock_repo.create.side_effect = lambda session, entity: entity
    service = FlowRuleService(mock_repo)
    mock_session = Mock()

    rule_create = schemas.FlowRuleCreate(**rule_payload())
    result = service.create_rule(mock_session, "company-1", rule_create, "user-123")

    mock_repo.create.assert_called_once()
    created_arg = mock_repo.create.call_args[0][1]
    assert isinstance(created_arg, FlowRuleModel)
    assert result is created_arg
    assert created_arg.company_id == "company-1"
    assert created_arg.created_by == "user-123"
    assert created_arg.trigger == "creation"
    assert created_arg.priority == 50

    first, second = created_arg.conditions
    assert (first.field, first.operator, first.value_kind, first.value, first.order) == (
        "asset.isCritical", "equals", "boolean", True, 0
    )
    assert (second.operator, second.value_kind, second.logical_operator, second.order) == (
        "greater_than", "number", "OR", 1
    )
    assert created_arg.actions[0].parameters == {"message": "Critical: {{asset.name}}"}


def test_parse_rule_raises_rule_validation_error():
    with pytest.raises(RuleValidationError) as exc_info:
        FlowRuleService.parse_rule(rule_payload(conditions=[
            {"field": "status", "operator": "in", "value": "open"},
        ]))

    error = exc_info.value
    assert error.code == "RULE_VALIDATION_ERROR"
    assert error.details["errors"]
    assert error.to_dict()["code"] == "RULE_VALIDATION_ERROR"


def test_unregistered_action_type_rejected_when_registry_given():
    registry = HandlerRegistry()
    registry.register_handler(LogAction())
    service = FlowRuleService(Mock(), registry)

    rule_create = schemas.FlowRuleCreate(**rule_payload(actions=[{"type": "send_sms"}]))
    with pytest.raises(RuleValidationError, match="send_sms"):
        service.create_rule(Mock(), "company-1", rule_create)


def test_update_rule_replaces_conditions_and_actions(storage, rule_factory):
    rule_id = rule_factory(
        conditions=[{"field": "status", "operator": "equals", "value": "open"}],
        actions=[{"type": "log"}, {"type": "webhook"}],
    )
    service = FlowRuleService(FlowRuleRepository())
    update = schemas.FlowRuleUpdate(
        name="Renamed",
        priority=5,
        actions=[{"type": "email", "parameters": {"to": "ops@example.com"}}],
    )

    with storage.get_session() as session:
        rule = service.update_rule(session, "company-1", rule_id, update)
        assert rule.name == "Renamed"
        assert rule.version == 2

    with storage.get_session() as session:
        snapshot = schemas.FlowRule.from_model(service.get_rule(session, "company-1", rule_id))

    assert snapshot.priority == 5
    assert [a.type for a in snapshot.actions] == ["email"]
    # Conditions untouched when omitted from the update
    assert [c.field for c in snapshot.conditions] == ["status"]


def test_update_ignores_explicit_null_for_required_fields(storage, rule_factory):
    rule_id = rule_factory(name="Keep me")
    service = FlowRuleService(FlowRuleRepository())

    with storage.get_session() as session:
        rule = service.update_rule(session, "company-1", rule_id, schemas.FlowRuleUpdate(name=None, description=None))
        assert rule.name == "Keep me"


def test_update_and_delete_missing_rule(storage):
    service = FlowRuleService(FlowRuleRepository())
    with storage.get_session() as session:
        assert service.update_rule(session, "company-1", "nope", schemas.FlowRuleUpdate(name="x")) is None
        assert service.delete_rule(session, "company-1", "nope") is False


def test_list_rules_filters(storage, rule_factory):
    rule_factory(name="Active creation")
    rule_factory(name="Inactive creation", is_active=False)
    rule_factory(name="Completion", trigger="completion")
    service = FlowRuleService(FlowRuleRepository())

    with storage.get_session() as session:
        names = {r.name for r in service.list_rules(session, "company-1", trigger="creation")}
        active = {r.name for r in service.list_rules(session, "company-1", is_active=True)}

    assert names == {"Active creation", "Inactive creation"}
    assert active == {"Active creation", "Completion"}
