"""
Unit tests for the scheduled flow worker entry point.
"""

import pytest
from unittest.mock import AsyncMock, patch

from maintflow.storage.postgres_adapter import PostgresAdapter
from maintflow.triggers.actions.registry import HandlerRegistry
from maintflow.triggers.engine.scheduler import ScheduledFlowPoller
from maintflow.workers.scheduler_worker import run_worker


@pytest.mark.asyncio
async def test_worker_runs_poller_and_closes_storage(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    registry = HandlerRegistry()

    with patch.object(ScheduledFlowPoller, "run", new=AsyncMock()) as run, \
            patch.object(PostgresAdapter, "close", autospec=True) as close:
        await run_worker(registry)

    run.assert_awaited_once()
    close.assert_called_once()
    # The engine froze the registry before polling
    with pytest.raises(RuntimeError):
        registry.register("late", AsyncMock())


@pytest.mark.asyncio
async def test_worker_closes_storage_when_poller_crashes(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")

    with patch.object(ScheduledFlowPoller, "run", new=AsyncMock(side_effect=RuntimeError("boom"))), \
            patch.object(PostgresAdapter, "close", autospec=True) as close:
        with pytest.raises(RuntimeError):
            await run_worker(HandlerRegistry())

    close.assert_called_once()
