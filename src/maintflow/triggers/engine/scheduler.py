import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from maintflow.platform.config import settings
from maintflow.storage.base import StorageAdapter
from maintflow.triggers.engine.dispatcher import TriggerDispatcher
from maintflow.triggers.engine.recorder import utcnow
from maintflow.triggers.repository import FlowRuleRepository
from maintflow.triggers.schemas import DispatchSummary, TriggerType

logger = logging.getLogger(__name__)


class ScheduledFlowPoller:
    """
    Fires `scheduled` rules from a single background loop.

    Every tick enumerates active scheduled rules across tenants and
    dispatches each due rule on its own. A rule is due when it has not run
    in this process yet, or when its schedule_interval_seconds has elapsed
    since its last run (no interval: due every tick). Last-run times live in
    this instance, so a restart fires every scheduled rule once.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        dispatcher: TriggerDispatcher,
        tick_seconds: Optional[float] = None,
        repository: Optional[FlowRuleRepository] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.dispatcher = dispatcher
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.FLOW_SCHEDULER_TICK_SECONDS
        self.repository = repository or FlowRuleRepository()
        self.clock = clock
        self._last_run: Dict[str, datetime] = {}
        self._stopping = asyncio.Event()

    def _is_due(self, rule_id: str, interval: Optional[int], now: datetime) -> bool:
        last = self._last_run.get(rule_id)
        if last is None or not interval:
            return True
        return (now - last).total_seconds() >= interval

    async def tick(self, now: Optional[datetime] = None) -> List[DispatchSummary]:
        """Dispatch every due scheduled rule once."""
        now = now or self.clock()
        with self.storage.get_session() as session:
            rows = [
                (rule.id, rule.company_id, rule.schedule_interval_seconds)
                for rule in self.repository.list_active_by_trigger(session, TriggerType.SCHEDULED.value)
            ]

        active_ids = {rule_id for rule_id, _company, _interval in rows}
        for stale in set(self._last_run) - active_ids:
            del self._last_run[stale]

        summaries = []
        for rule_id, company_id, interval in rows:
            if not self._is_due(rule_id, interval, now):
                continue
            self._last_run[rule_id] = now
            context = {"schedule": {"tick_at": now.isoformat(), "rule_id": rule_id}}
            summaries.append(
                await self.dispatcher.dispatch(TriggerType.SCHEDULED, company_id, context, rule_ids=[rule_id])
            )

        logger.debug(f"Scheduler tick: {len(rows)} scheduled rule(s), {len(summaries)} dispatched")
        return summaries

    async def run(self) -> None:
        """Tick until stop() is called."""
        logger.info(f"Scheduled flow poller started (tick={self.tick_seconds}s).")
        self._stopping.clear()
        while not self._stopping.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error in scheduler tick: {e}", exc_info=True)

            # Wait for the next tick or until shutdown
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Scheduled flow poller stopped.")

    def stop(self) -> None:
        self._stopping.set()
