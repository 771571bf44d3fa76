import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from maintflow.platform import metrics
from maintflow.platform.config import Settings, settings as default_settings
from maintflow.storage.base import StorageAdapter
from maintflow.triggers.errors import PersistenceError
from maintflow.triggers.models import FlowExecutionModel
from maintflow.triggers.repository import FlowExecutionRepository, FlowRuleRepository
from maintflow.triggers.schemas import (
    ActionResult,
    Execution,
    FlowRule,
    FlowRuleStats,
    FlowStats,
    PriorityCount,
    PriorityLevel,
    priority_level,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_safe(context: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if context is None:
        return None
    try:
        return json.loads(json.dumps(context, default=str))
    except (TypeError, ValueError) as e:
        logger.warning(f"Event context is not serializable, storing without it: {e}")
        return None


def _nested_id(context: Optional[Dict[str, Any]], key: str) -> Optional[str]:
    if not context:
        return None
    entity = context.get(key)
    if isinstance(entity, dict) and entity.get("id") is not None:
        return str(entity["id"])
    return None


def _rate(successful: int, total: int) -> float:
    # Zero executions is a 0% rate, not a division error
    if total <= 0:
        return 0.0
    return round(successful / total * 100, 2)


class ExecutionRecorder:
    """
    Writes the append-only execution log and derives statistics from it.

    Every record goes through its own short transaction. A failed write is
    logged and reported as None: actions that already ran are neither rolled
    back nor re-run, the log is observability, not the source of truth.
    Success rates are always recomputed from the log.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        execution_repository: Optional[FlowExecutionRepository] = None,
        rule_repository: Optional[FlowRuleRepository] = None,
        config: Settings = default_settings,
    ):
        self.storage = storage
        self.executions = execution_repository or FlowExecutionRepository()
        self.rules = rule_repository or FlowRuleRepository()
        self.config = config

    def record(
        self,
        rule: FlowRule,
        success: bool,
        error_detail: Optional[str] = None,
        *,
        action_results: Optional[List[ActionResult]] = None,
        context: Optional[Dict[str, Any]] = None,
        triggered_at: Optional[datetime] = None,
    ) -> Optional[Execution]:
        """
        Append one execution for a matched rule.

        Returns:
            The stored Execution, or None if it could not be persisted.
        """
        entity = FlowExecutionModel(
            id=str(uuid.uuid4()),
            rule_id=rule.id,
            rule_name=rule.name,
            company_id=rule.company_id,
            trigger=rule.trigger.value,
            triggered_at=triggered_at or utcnow(),
            success=success,
            error_detail=error_detail,
            action_results=[r.model_dump() for r in (action_results or [])],
            context=_json_safe(context),
            maintenance_id=_nested_id(context, "maintenance"),
            asset_id=_nested_id(context, "asset"),
        )

        try:
            with self.storage.get_session() as session:
                self.executions.create(session, entity)
                execution = Execution.model_validate(entity)
        except (SQLAlchemyError, ConnectionError) as e:
            error = PersistenceError(
                f"Failed to record execution for rule {rule.id}: {e}",
                {"rule_id": rule.id, "company_id": rule.company_id},
            )
            logger.error(error.message)
            return None

        metrics.EXECUTIONS_TOTAL.labels(success=str(success).lower()).inc()
        logger.info(f"Recorded execution {execution.id} for rule '{rule.name}' (success={success})")
        return execution

    def list_executions(self, company_id: str, rule_id: Optional[str] = None,
                        limit: int = 50, offset: int = 0) -> List[Execution]:
        with self.storage.get_session() as session:
            rows = self.executions.list(session, company_id, limit=limit, offset=offset, rule_id=rule_id)
            return [Execution.model_validate(row) for row in rows]

    def _since(self, window_days: Optional[int], now: datetime) -> tuple:
        days = self.config.FLOW_STATS_WINDOW_DAYS if window_days is None else window_days
        # 0 (or negative) means all time
        if days <= 0:
            return None, 0
        return now - timedelta(days=days), days

    def stats(self, company_id: str, window_days: Optional[int] = None) -> FlowStats:
        """
        Dashboard summary for one tenant.

        Args:
            company_id: Tenant scope
            window_days: Success-rate window; None uses FLOW_STATS_WINDOW_DAYS, 0 means all time
        """
        now = utcnow()
        since, days = self._since(window_days, now)
        recent_since = now - timedelta(days=self.config.FLOW_RECENT_WINDOW_DAYS)

        with self.storage.get_session() as session:
            priorities = self.rules.rule_priorities(session, company_id)
            total, successful = self.executions.count_since(session, company_id, since)
            recent, _ = self.executions.count_since(session, company_id, recent_since)

        buckets = {level: 0 for level in (PriorityLevel.HIGH, PriorityLevel.MEDIUM, PriorityLevel.LOW)}
        for priority, _active in priorities:
            buckets[priority_level(priority)] += 1
        active = sum(1 for _priority, is_active in priorities if is_active)

        return FlowStats(
            total_flows=len(priorities),
            active_flows=active,
            inactive_flows=len(priorities) - active,
            total_executions=total,
            average_success_rate=_rate(successful, total),
            recent_executions=recent,
            flows_by_priority=[PriorityCount(priority=level, count=count) for level, count in buckets.items()],
            window_days=days or None,
        )

    def rule_stats(self, company_id: str, window_days: Optional[int] = None) -> List[FlowRuleStats]:
        """Per-rule execution count, success rate and last run, ordered like the matcher."""
        since, _days = self._since(window_days, utcnow())
        with self.storage.get_session() as session:
            rows = self.rules.rule_summaries(session, company_id)
            per_rule = self.executions.per_rule_since(session, company_id, since)

        stats = []
        for rule_id, name, is_active, priority in rows:
            count, successful, last = per_rule.get(rule_id, (0, 0, None))
            stats.append(FlowRuleStats(
                rule_id=rule_id,
                name=name,
                is_active=is_active,
                priority=priority,
                execution_count=count,
                success_rate=_rate(successful, count),
                last_executed=last,
            ))
        return stats
