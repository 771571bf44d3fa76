from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from maintflow.platform import metrics
from maintflow.platform.logging import dispatch_context, get_logger
from maintflow.triggers.actions.base import ActionContext
from maintflow.triggers.engine.evaluator import ConditionEvaluator
from maintflow.triggers.engine.executor import ActionExecutor
from maintflow.triggers.engine.matcher import RuleMatcher
from maintflow.triggers.engine.recorder import ExecutionRecorder, utcnow
from maintflow.triggers.schemas import DispatchSummary, ExecutionRef, FlowRule, TriggerType

logger = get_logger(__name__)


class TriggerDispatcher:
    """
    Runs one trigger event through the tenant's rules.

    Rules go strictly in (priority, id) order, and each matched rule's
    actions finish and its execution is recorded before the next rule is
    evaluated, so a later rule sees state changed by an earlier one.
    Failures are contained at the rule boundary; dispatch always returns a
    summary and never raises to the event emitter.
    """

    def __init__(
        self,
        matcher: RuleMatcher,
        evaluator: ConditionEvaluator,
        executor: ActionExecutor,
        recorder: ExecutionRecorder,
    ):
        self.matcher = matcher
        self.evaluator = evaluator
        self.executor = executor
        self.recorder = recorder

    async def dispatch(
        self,
        trigger: TriggerType,
        company_id: str,
        context: Optional[Dict[str, Any]] = None,
        rule_ids: Optional[Iterable[str]] = None,
    ) -> DispatchSummary:
        """
        Args:
            trigger: The event kind
            company_id: Tenant whose rules apply
            context: Event data conditions and parameter templates read from
            rule_ids: Restrict to these rules (scheduled ticks)

        Returns:
            DispatchSummary: how many rules were evaluated and matched, plus one
            ExecutionRef per matched rule.
        """
        context = context or {}
        summary = DispatchSummary(trigger=trigger.value, company_id=company_id)
        metrics.DISPATCHES_TOTAL.labels(trigger=trigger.value).inc()

        with dispatch_context(company_id=company_id, trigger=trigger.value):
            try:
                rules = self.matcher.match(trigger, company_id, rule_ids)
            except Exception as e:
                logger.error(
                    f"Failed to load rules for trigger '{trigger.value}' company '{company_id}': {e}",
                    exc_info=True,
                )
                return summary

            for rule in rules:
                summary.evaluated += 1
                try:
                    is_match = self.evaluator.evaluate(rule.conditions, context)
                except Exception as e:
                    logger.error(f"Condition evaluation crashed for rule {rule.id}: {e}", exc_info=True)
                    continue

                if not is_match:
                    logger.debug(f"Rule '{rule.name}' conditions did not match.")
                    continue

                summary.matched += 1
                logger.info(f"Rule '{rule.name}' matched (priority={rule.priority})")
                summary.executions.append(await self._run_rule(rule, trigger, company_id, context))

        if summary.matched:
            logger.info(
                f"Dispatch of '{trigger.value}' for company '{company_id}': "
                f"{summary.evaluated} evaluated, {summary.matched} matched, {summary.failed} failed"
            )
        return summary

    async def _run_rule(self, rule: FlowRule, trigger: TriggerType, company_id: str,
                        context: Dict[str, Any]) -> ExecutionRef:
        triggered_at: datetime = utcnow()
        action_context = ActionContext(
            trigger=trigger.value,
            company_id=company_id,
            event_data=context,
            rule_id=rule.id,
            rule_name=rule.name,
        )

        try:
            outcome = await self.executor.run(rule.actions, action_context, stop_on_failure=rule.stop_on_failure)
            success, error_detail, results = outcome.success, outcome.error_detail, outcome.action_results
        except Exception as e:
            logger.error(f"Action execution aborted for rule {rule.id}: {e}", exc_info=True)
            success, error_detail, results = False, f"Rule execution aborted: {type(e).__name__}: {e}", []

        try:
            execution = self.recorder.record(
                rule, success, error_detail,
                action_results=results, context=context, triggered_at=triggered_at,
            )
        except Exception as e:
            logger.error(f"Unexpected error recording execution for rule {rule.id}: {e}", exc_info=True)
            execution = None

        return ExecutionRef(
            execution_id=execution.id if execution else None,
            rule_id=rule.id,
            rule_name=rule.name,
            success=success,
            error_detail=error_detail,
            recorded=execution is not None,
        )
