"""
Maintenance flow automation engine.

The host application builds one FlowAutomationEngine per process, registers
its action handlers, calls start(), and then reports domain events through
submit_event(). Nothing here is a process-wide singleton; storage and the
handler registry are passed in.
"""

import logging
from typing import Any, Dict, List, Optional

from maintflow.platform.config import Settings, settings as default_settings
from maintflow.storage.base import StorageAdapter
from maintflow.triggers.actions.base import ActionHandler
from maintflow.triggers.actions.registry import HandlerRegistry
from maintflow.triggers.engine.dispatcher import TriggerDispatcher
from maintflow.triggers.engine.evaluator import ConditionEvaluator
from maintflow.triggers.engine.executor import ActionExecutor, RetryPolicy
from maintflow.triggers.engine.matcher import RuleMatcher
from maintflow.triggers.engine.recorder import ExecutionRecorder
from maintflow.triggers.engine.scheduler import ScheduledFlowPoller
from maintflow.triggers.repository import FlowExecutionRepository, FlowRuleRepository
from maintflow.triggers.schemas import (
    DispatchSummary,
    Execution,
    FlowRule,
    FlowRuleStats,
    FlowStats,
    TriggerType,
)

logger = logging.getLogger(__name__)


class FlowAutomationEngine:
    """Wires matcher, evaluator, executor and recorder behind one entry point."""

    def __init__(
        self,
        storage: StorageAdapter,
        registry: Optional[HandlerRegistry] = None,
        retry_policy: Optional[RetryPolicy] = None,
        action_timeout: Optional[float] = None,
        stop_on_failure: Optional[bool] = None,
        config: Settings = default_settings,
        executor: Optional[ActionExecutor] = None,
    ):
        self.storage = storage
        self.config = config
        self.registry = registry if registry is not None else HandlerRegistry()

        rule_repository = FlowRuleRepository()
        self.matcher = RuleMatcher(storage, rule_repository)
        self.evaluator = ConditionEvaluator()
        self.executor = executor or ActionExecutor(
            self.registry,
            retry_policy=retry_policy or RetryPolicy.from_settings(config),
            timeout=action_timeout if action_timeout is not None else config.FLOW_ACTION_TIMEOUT_SECONDS,
            stop_on_failure=stop_on_failure if stop_on_failure is not None else config.FLOW_STOP_ON_FAILURE,
        )
        self.recorder = ExecutionRecorder(
            storage,
            execution_repository=FlowExecutionRepository(),
            rule_repository=rule_repository,
            config=config,
        )
        self.dispatcher = TriggerDispatcher(self.matcher, self.evaluator, self.executor, self.recorder)
        self._started = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def register_handler(self, action_type: str, handler: ActionHandler) -> None:
        """Register an action handler. Only allowed before start()."""
        self.registry.register(action_type, handler)

    def start(self) -> None:
        """Freeze the handler registry; the engine accepts events afterwards."""
        self.registry.freeze()
        self._started = True
        logger.info(f"Flow automation engine started with handlers: {self.registry.types()}")

    @property
    def started(self) -> bool:
        return self._started

    def create_poller(self, tick_seconds: Optional[float] = None) -> ScheduledFlowPoller:
        """Poller that fires this engine's scheduled rules."""
        return ScheduledFlowPoller(
            self.storage,
            self.dispatcher,
            tick_seconds=tick_seconds if tick_seconds is not None else self.config.FLOW_SCHEDULER_TICK_SECONDS,
        )

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def submit_event(self, trigger_type: str, company_id: str,
                           context: Optional[Dict[str, Any]] = None) -> DispatchSummary:
        """
        Run a domain event through the company's active rules.

        Never raises: unknown triggers and engine failures are logged and
        reported through the returned summary, so the caller's own operation
        is never aborted by automation.
        """
        try:
            trigger = TriggerType(trigger_type)
        except ValueError:
            logger.warning(f"Ignoring event with unknown trigger type '{trigger_type}' for company '{company_id}'")
            return DispatchSummary(trigger=str(trigger_type), company_id=company_id)

        if not self._started:
            logger.warning("Event submitted before engine start(); handler registry is still mutable")

        try:
            return await self.dispatcher.dispatch(trigger, company_id, context or {})
        except Exception as e:
            logger.error(f"Dispatch of '{trigger.value}' for company '{company_id}' failed: {e}", exc_info=True)
            return DispatchSummary(trigger=trigger.value, company_id=company_id)

    # =========================================================================
    # READ CONTRACTS
    # =========================================================================

    def list_active_rules(self, trigger: str, company_id: str) -> List[FlowRule]:
        """Active rules in evaluation order."""
        return self.matcher.match(TriggerType(trigger), company_id)

    def get_stats(self, company_id: str, window_days: Optional[int] = None) -> FlowStats:
        return self.recorder.stats(company_id, window_days)

    def get_rule_stats(self, company_id: str, window_days: Optional[int] = None) -> List[FlowRuleStats]:
        return self.recorder.rule_stats(company_id, window_days)

    def list_executions(self, company_id: str, rule_id: Optional[str] = None,
                        limit: int = 50, offset: int = 0) -> List[Execution]:
        return self.recorder.list_executions(company_id, rule_id=rule_id, limit=limit, offset=offset)
