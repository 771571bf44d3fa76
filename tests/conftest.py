"""
Pytest configuration and shared fixtures.
"""

import os
import sys
from typing import Any, Dict, List, Optional

import pytest

sys.path.append(os.path.join(os.getcwd(), "src"))

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")

from maintflow.storage.postgres_adapter import PostgresAdapter, PostgresConfig  # noqa: E402
from maintflow.triggers import schemas  # noqa: E402
from maintflow.triggers.actions.base import ActionContext, ActionHandler  # noqa: E402
from maintflow.triggers.actions.registry import HandlerRegistry  # noqa: E402
from maintflow.triggers.repository import FlowRuleRepository  # noqa: E402
from maintflow.triggers.service import FlowRuleService  # noqa: E402


class RecordingAction(ActionHandler):
    """Test handler that records its calls and replays scripted results."""

    def __init__(self, name: str = "record", results: Optional[List[Any]] = None, log: Optional[list] = None):
        self.name = name
        self.results = list(results or [])
        self.calls: List[Dict[str, Any]] = []
        self.log = log

    @property
    def type_name(self) -> str:
        return self.name

    async def execute(self, parameters: Dict[str, Any], context: ActionContext) -> schemas.HandlerResult:
        self.calls.append({"parameters": parameters, "context": context})
        if self.log is not None:
            self.log.append((self.name, context.rule_name))
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return schemas.HandlerResult.ok("done")


@pytest.fixture
def storage():
    """Fresh in-memory SQLite store with the flow tables."""
    adapter = PostgresAdapter(PostgresConfig(DATABASE_URL="sqlite://"))
    adapter.connect()
    adapter.create_schema()
    yield adapter
    adapter.close()


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def rule_factory(storage):
    """
    Create rules through the rule service; returns the new rule's id.

    No registry is attached, so rules may reference unregistered action types.
    """
    service = FlowRuleService(FlowRuleRepository())

    def _create(company_id: str = "company-1", name: str = "Rule", trigger: str = "creation",
                conditions: Optional[list] = None, actions: Optional[list] = None, **fields) -> str:
        rule_create = schemas.FlowRuleCreate(
            name=name,
            trigger=trigger,
            conditions=conditions or [],
            actions=actions if actions is not None else [{"type": "record"}],
            **fields,
        )
        with storage.get_session() as session:
            return service.create_rule(session, company_id, rule_create).id

    return _create
