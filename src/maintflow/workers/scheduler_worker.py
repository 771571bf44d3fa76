"""
Scheduled flow worker.

Runs the poller that fires `scheduled` rules. Usage:
    python -m maintflow.workers.scheduler_worker

Run a single instance: last-run times are kept in memory, so two workers
would both fire every due rule.
"""

import asyncio
import signal

from maintflow.platform.logging import configure_logging, get_logger
from maintflow.platform.config import settings
from maintflow.storage.postgres_adapter import PostgresAdapter, PostgresConfig
from maintflow.triggers.actions.registry import HandlerRegistry, init_default_handlers
from maintflow.triggers.automation import FlowAutomationEngine

configure_logging()
logger = get_logger(__name__)


async def run_worker(registry: HandlerRegistry | None = None) -> None:
    if registry is None:
        registry = init_default_handlers(HandlerRegistry())

    postgres = PostgresAdapter(PostgresConfig())
    postgres.connect()

    engine = FlowAutomationEngine(postgres, registry)
    engine.start()
    poller = engine.create_poller(settings.FLOW_SCHEDULER_TICK_SECONDS)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, poller.stop)

    logger.info("Scheduler Worker started.")
    try:
        await poller.run()
    finally:
        postgres.close()
        logger.info("Scheduler Worker stopped.")


if __name__ == "__main__":
    asyncio.run(run_worker())
