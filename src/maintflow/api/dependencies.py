from typing import Annotated, Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from maintflow.platform.logging import get_logger
from maintflow.storage.postgres_adapter import PostgresAdapter, PostgresConfig
from maintflow.triggers.actions.registry import HandlerRegistry, init_default_handlers
from maintflow.triggers.automation import FlowAutomationEngine
from maintflow.triggers.repository import FlowRuleRepository
from maintflow.triggers.service import FlowRuleService

logger = get_logger(__name__)

# Singletons owned by the API process
_postgres_adapter: PostgresAdapter | None = None
_flow_engine: FlowAutomationEngine | None = None


def get_postgres_adapter() -> PostgresAdapter:
    global _postgres_adapter
    if not _postgres_adapter:
        _postgres_adapter = PostgresAdapter(PostgresConfig())
    return _postgres_adapter


def get_db() -> Generator[Session, None, None]:
    adapter = get_postgres_adapter()
    with adapter.get_session() as session:
        yield session


def get_flow_engine() -> FlowAutomationEngine:
    global _flow_engine
    if not _flow_engine:
        registry = init_default_handlers(HandlerRegistry())
        _flow_engine = FlowAutomationEngine(get_postgres_adapter(), registry)
    return _flow_engine


def get_rule_service(
    engine: Annotated[FlowAutomationEngine, Depends(get_flow_engine)],
) -> FlowRuleService:
    # Rules may only reference action types this process can execute
    return FlowRuleService(FlowRuleRepository(), engine.registry)


async def init_resources() -> None:
    """Connect storage and start the flow engine."""
    adapter = get_postgres_adapter()
    adapter.connect()
    if adapter.config.is_sqlite:
        # No migrations for SQLite (local dev, tests)
        logger.info("Creating flow tables on SQLite store")
        adapter.create_schema()

    engine = get_flow_engine()
    if not engine.started:
        engine.start()


async def close_resources() -> None:
    """Close all resources."""
    global _postgres_adapter, _flow_engine

    _flow_engine = None
    if _postgres_adapter:
        _postgres_adapter.close()
        _postgres_adapter = None
