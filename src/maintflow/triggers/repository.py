from datetime import datetime
from typing import List, Optional, Dict, Any, Iterable
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, func, case

from maintflow.triggers.models import (
    FlowRuleModel, FlowConditionModel, FlowActionModel, FlowExecutionModel
)
from maintflow.storage.repositories.base import BaseRepository, AppendOnlyRepository

_RULE_FIELDS = {
    "name", "description", "trigger", "priority", "is_active",
    "stop_on_failure", "schedule_interval_seconds",
}


class FlowRuleRepository(BaseRepository[FlowRuleModel]):

    def create(self, session: Session, entity: FlowRuleModel) -> FlowRuleModel:
        session.add(entity)
        session.flush()
        return entity

    def get(self, session: Session, id: str, company_id: Optional[str] = None) -> Optional[FlowRuleModel]:
        stmt = (
            select(FlowRuleModel)
            .options(selectinload(FlowRuleModel.conditions), selectinload(FlowRuleModel.actions))
            .where(FlowRuleModel.id == id)
        )
        if company_id is not None:
            stmt = stmt.where(FlowRuleModel.company_id == company_id)
        return session.scalars(stmt).first()

    def list(self, session: Session, company_id: str, limit: int = 100, offset: int = 0,
             trigger: Optional[str] = None, is_active: Optional[bool] = None) -> List[FlowRuleModel]:
        stmt = (
            select(FlowRuleModel)
            .options(selectinload(FlowRuleModel.conditions), selectinload(FlowRuleModel.actions))
            .where(FlowRuleModel.company_id == company_id)
        )
        if trigger is not None:
            stmt = stmt.where(FlowRuleModel.trigger == trigger)
        if is_active is not None:
            stmt = stmt.where(FlowRuleModel.is_active == is_active)
        stmt = stmt.order_by(FlowRuleModel.priority, FlowRuleModel.id).limit(limit).offset(offset)
        return list(session.scalars(stmt).all())

    def update(self, session: Session, id: str, updates: Dict[str, Any],
               company_id: Optional[str] = None) -> Optional[FlowRuleModel]:
        rule = self.get(session, id, company_id)
        if not rule:
            return None

        for key, value in updates.items():
            if key in _RULE_FIELDS:
                setattr(rule, key, value)

        rule.version = (rule.version or 1) + 1
        session.flush()
        return rule

    def replace_conditions(self, session: Session, rule: FlowRuleModel,
                           conditions: Iterable[FlowConditionModel]) -> None:
        rule.conditions.clear()
        # Old rows must be gone before new ones reuse their order values
        session.flush()
        rule.conditions.extend(conditions)
        session.flush()

    def replace_actions(self, session: Session, rule: FlowRuleModel,
                        actions: Iterable[FlowActionModel]) -> None:
        rule.actions.clear()
        session.flush()
        rule.actions.extend(actions)
        session.flush()

    def delete(self, session: Session, id: str, company_id: Optional[str] = None) -> bool:
        rule = self.get(session, id, company_id)
        if rule:
            session.delete(rule)
            session.flush()
            return True
        return False

    def list_active_rules(self, session: Session, trigger: str, company_id: str,
                          rule_ids: Optional[Iterable[str]] = None) -> List[FlowRuleModel]:
        """
        Active rules of one trigger for one tenant, ordered by (priority, id).
        Conditions and actions are loaded eagerly in the same session.
        """
        stmt = (
            select(FlowRuleModel)
            .options(selectinload(FlowRuleModel.conditions), selectinload(FlowRuleModel.actions))
            .where(
                FlowRuleModel.company_id == company_id,
                FlowRuleModel.trigger == trigger,
                FlowRuleModel.is_active.is_(True),
            )
            .order_by(FlowRuleModel.priority.asc(), FlowRuleModel.id.asc())
        )
        if rule_ids is not None:
            stmt = stmt.where(FlowRuleModel.id.in_(list(rule_ids)))
        return list(session.scalars(stmt).all())

    def list_active_by_trigger(self, session: Session, trigger: str) -> List[FlowRuleModel]:
        """Active rules of one trigger across all tenants (scheduler enumeration)."""
        stmt = (
            select(FlowRuleModel)
            .where(FlowRuleModel.trigger == trigger, FlowRuleModel.is_active.is_(True))
            .order_by(FlowRuleModel.company_id, FlowRuleModel.priority, FlowRuleModel.id)
        )
        return list(session.scalars(stmt).all())

    def rule_summaries(self, session: Session, company_id: str) -> List[tuple]:
        """(id, name, is_active, priority) for every rule of a tenant, in evaluation order. Not paginated."""
        stmt = (
            select(FlowRuleModel.id, FlowRuleModel.name, FlowRuleModel.is_active, FlowRuleModel.priority)
            .where(FlowRuleModel.company_id == company_id)
            .order_by(FlowRuleModel.priority, FlowRuleModel.id)
        )
        return [tuple(row) for row in session.execute(stmt).all()]

    def rule_priorities(self, session: Session, company_id: str) -> List[tuple]:
        """(priority, is_active) rows for every rule of a tenant."""
        stmt = select(FlowRuleModel.priority, FlowRuleModel.is_active).where(
            FlowRuleModel.company_id == company_id
        )
        return [tuple(row) for row in session.execute(stmt).all()]


class FlowExecutionRepository(AppendOnlyRepository[FlowExecutionModel]):
    """Append-only: executions are created and read, never updated or deleted."""

    def create(self, session: Session, entity: FlowExecutionModel) -> FlowExecutionModel:
        session.add(entity)
        session.flush()
        return entity

    def get(self, session: Session, id: str, company_id: Optional[str] = None) -> Optional[FlowExecutionModel]:
        execution = session.get(FlowExecutionModel, id)
        if execution is None or (company_id is not None and execution.company_id != company_id):
            return None
        return execution

    def list(self, session: Session, company_id: str, limit: int = 100, offset: int = 0,
             rule_id: Optional[str] = None) -> List[FlowExecutionModel]:
        stmt = select(FlowExecutionModel).where(FlowExecutionModel.company_id == company_id)
        if rule_id is not None:
            stmt = stmt.where(FlowExecutionModel.rule_id == rule_id)
        stmt = stmt.order_by(FlowExecutionModel.triggered_at.desc()).limit(limit).offset(offset)
        return list(session.scalars(stmt).all())

    def count_since(self, session: Session, company_id: str,
                    since: Optional[datetime] = None) -> tuple:
        """(total, successful) executions for a tenant, optionally from `since` on."""
        stmt = select(
            func.count(FlowExecutionModel.id),
            func.coalesce(func.sum(case((FlowExecutionModel.success.is_(True), 1), else_=0)), 0),
        ).where(FlowExecutionModel.company_id == company_id)
        if since is not None:
            stmt = stmt.where(FlowExecutionModel.triggered_at >= since)
        total, successful = session.execute(stmt).one()
        return int(total or 0), int(successful or 0)

    def per_rule_since(self, session: Session, company_id: str,
                       since: Optional[datetime] = None) -> Dict[str, tuple]:
        """rule_id -> (count, successful, last_triggered_at) for a tenant."""
        stmt = select(
            FlowExecutionModel.rule_id,
            func.count(FlowExecutionModel.id),
            func.coalesce(func.sum(case((FlowExecutionModel.success.is_(True), 1), else_=0)), 0),
            func.max(FlowExecutionModel.triggered_at),
        ).where(FlowExecutionModel.company_id == company_id)
        if since is not None:
            stmt = stmt.where(FlowExecutionModel.triggered_at >= since)
        stmt = stmt.group_by(FlowExecutionModel.rule_id)
        return {
            rule_id: (int(count), int(successful or 0), last)
            for rule_id, count, successful, last in session.execute(stmt).all()
        }
