from datetime import datetime
from typing import Dict, Any, List, Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Text, Boolean, Integer, ForeignKey, Index, UniqueConstraint, CheckConstraint, func
)

from maintflow.storage.models import Base, JSON_TYPE, TIMESTAMP_TYPE


class FlowRuleModel(Base):
    __tablename__ = "flow_rules"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # creation, status_change, completion, approval, scheduled
    trigger: Mapped[str] = mapped_column(String, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, server_default='true', nullable=False)

    # Lower value is evaluated first; ties broken by id
    priority: Mapped[int] = mapped_column(Integer, server_default='100', nullable=False)

    # NULL means "use the engine default"
    stop_on_failure: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Only read for scheduled rules; NULL means due on every scheduler tick
    schedule_interval_seconds: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Audit fields
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, server_default=func.now(), onupdate=func.now())
    created_by: Mapped[Optional[str]] = mapped_column(String)
    version: Mapped[int] = mapped_column(Integer, server_default='1')

    conditions: Mapped[List["FlowConditionModel"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="FlowConditionModel.order",
    )
    actions: Mapped[List["FlowActionModel"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="FlowActionModel.order",
    )

    __table_args__ = (
        # Matcher lookup: active rules of one trigger for one tenant
        Index("ix_flow_rules_match", "company_id", "trigger", "is_active"),
        CheckConstraint("priority BETWEEN 1 AND 1000", name="ck_flow_rules_priority_range"),
    )


class FlowConditionModel(Base):
    __tablename__ = "flow_conditions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    rule_id: Mapped[str] = mapped_column(ForeignKey("flow_rules.id", ondelete="CASCADE"), nullable=False, index=True)

    # Dotted path into the event context, e.g. "asset.isCritical"
    field: Mapped[str] = mapped_column(String, nullable=False)
    operator: Mapped[str] = mapped_column(String, nullable=False)

    # Tagged value: kind is one of string, number, boolean, array
    value_kind: Mapped[str] = mapped_column(String, nullable=False)
    value: Mapped[Any] = mapped_column(JSON_TYPE, nullable=True)

    logical_operator: Mapped[str] = mapped_column(String, server_default='AND', nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    rule: Mapped["FlowRuleModel"] = relationship(back_populates="conditions")

    __table_args__ = (
        UniqueConstraint('rule_id', 'order', name='uq_flow_condition_order'),
    )


class FlowActionModel(Base):
    __tablename__ = "flow_actions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    rule_id: Mapped[str] = mapped_column(ForeignKey("flow_rules.id", ondelete="CASCADE"), nullable=False, index=True)

    # Handler registry key, e.g. "send_notification"
    type: Mapped[str] = mapped_column(String, nullable=False)
    parameters: Mapped[Dict[str, Any]] = mapped_column(JSON_TYPE, nullable=False, default=dict)
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    rule: Mapped["FlowRuleModel"] = relationship(back_populates="actions")

    __table_args__ = (
        UniqueConstraint('rule_id', 'order', name='uq_flow_action_order'),
    )


class FlowExecutionModel(Base):
    """
    Append-only log of one matched rule's dispatch outcome.
    """
    __tablename__ = "flow_executions"

    id: Mapped[str] = mapped_column(String, primary_key=True)

    # No FK to flow_rules: history outlives rule deletion
    rule_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    rule_name: Mapped[Optional[str]] = mapped_column(String)
    company_id: Mapped[str] = mapped_column(String, nullable=False)
    trigger: Mapped[str] = mapped_column(String, nullable=False)

    triggered_at: Mapped[datetime] = mapped_column(TIMESTAMP_TYPE, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_detail: Mapped[Optional[str]] = mapped_column(Text)

    # Per-action breakdown: [{action_type, order, success, message, attempts, ...}]
    action_results: Mapped[List[Dict[str, Any]]] = mapped_column(JSON_TYPE, nullable=False, default=list)
    context: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON_TYPE, nullable=True)

    # Denormalized from the context for history lookups
    maintenance_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    asset_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    __table_args__ = (
        Index("ix_flow_executions_company_time", "company_id", "triggered_at"),
    )
