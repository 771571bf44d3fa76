import re
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


# =============================================================================
# ENUMS
# =============================================================================

class TriggerType(str, Enum):
    """Domain event kinds that start rule matching."""

    CREATION = "creation"
    STATUS_CHANGE = "status_change"
    COMPLETION = "completion"
    APPROVAL = "approval"
    SCHEDULED = "scheduled"


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    IN = "in"
    NOT_IN = "not_in"

    @classmethod
    def _missing_(cls, value):
        # Accept camelCase spellings such as "greaterThan"
        if isinstance(value, str):
            snake = _snake(value)
            for member in cls:
                if member.value == snake:
                    return member
        return None


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls.__members__.get(value.upper())
        return None


class ValueKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"


# Operator -> value kinds it can be compared against
SUPPORTED_KINDS: Dict[ConditionOperator, frozenset] = {
    ConditionOperator.EQUALS: frozenset(ValueKind),
    ConditionOperator.NOT_EQUALS: frozenset(ValueKind),
    ConditionOperator.GREATER_THAN: frozenset({ValueKind.NUMBER, ValueKind.STRING}),
    ConditionOperator.LESS_THAN: frozenset({ValueKind.NUMBER, ValueKind.STRING}),
    ConditionOperator.CONTAINS: frozenset({ValueKind.STRING, ValueKind.ARRAY}),
    ConditionOperator.IN: frozenset({ValueKind.ARRAY}),
    ConditionOperator.NOT_IN: frozenset({ValueKind.ARRAY}),
}


class PriorityLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


def priority_level(priority: int) -> PriorityLevel:
    """Dashboard bucket for a numeric priority."""
    if priority > 300:
        return PriorityLevel.HIGH
    if priority > 200:
        return PriorityLevel.MEDIUM
    return PriorityLevel.LOW


# =============================================================================
# CONDITION VALUES
# =============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConditionValue(BaseModel):
    """
    Typed literal a condition compares against.

    The kind is fixed when the rule is saved so evaluation never guesses.
    """
    model_config = ConfigDict(frozen=True)

    kind: ValueKind
    value: Any

    @classmethod
    def infer(cls, raw: Any) -> "ConditionValue":
        if isinstance(raw, bool):
            return cls(kind=ValueKind.BOOLEAN, value=raw)
        if _is_number(raw):
            return cls(kind=ValueKind.NUMBER, value=raw)
        if isinstance(raw, str):
            return cls(kind=ValueKind.STRING, value=raw)
        if isinstance(raw, (list, tuple)):
            return cls(kind=ValueKind.ARRAY, value=list(raw))
        raise ValueError(
            f"Unsupported condition value {raw!r}: expected string, number, boolean or array"
        )

    @model_validator(mode="after")
    def check_kind(self) -> "ConditionValue":
        checks = {
            ValueKind.BOOLEAN: lambda v: isinstance(v, bool),
            ValueKind.NUMBER: _is_number,
            ValueKind.STRING: lambda v: isinstance(v, str),
            ValueKind.ARRAY: lambda v: isinstance(v, list),
        }
        if not checks[self.kind](self.value):
            raise ValueError(f"Value {self.value!r} is not a valid {self.kind.value}")
        return self


# =============================================================================
# RULE MANAGEMENT (create / update / response)
# =============================================================================

def validate_orders(items: List[Any], label: str) -> None:
    """Orders are either all omitted (assigned by position) or unique and dense."""
    given = [item.order for item in items if item.order is not None]
    if not given:
        for index, item in enumerate(items):
            item.order = index
        return
    if len(given) != len(items):
        raise ValueError(f"{label}: either every item or no item must set 'order'")
    if len(set(given)) != len(given):
        raise ValueError(f"{label}: duplicate 'order' values {sorted(given)}")
    start = min(given)
    if sorted(given) != list(range(start, start + len(given))):
        raise ValueError(f"{label}: 'order' values must be dense, got {sorted(given)}")


class ConditionSpec(BaseModel):
    field: str = Field(..., min_length=1, description="Dotted path into the event context, e.g. 'asset.isCritical'")
    operator: ConditionOperator
    value: Any
    logical_operator: LogicalOperator = LogicalOperator.AND
    order: Optional[int] = None

    @field_validator("operator", mode="before")
    @classmethod
    def normalize_operator(cls, value: Any) -> Any:
        return ConditionOperator(value) if isinstance(value, str) else value

    @field_validator("logical_operator", mode="before")
    @classmethod
    def normalize_logical_operator(cls, value: Any) -> Any:
        return LogicalOperator(value) if isinstance(value, str) else value

    @model_validator(mode="after")
    def check_operator_value(self) -> "ConditionSpec":
        typed = ConditionValue.infer(self.value)
        if typed.kind not in SUPPORTED_KINDS[self.operator]:
            raise ValueError(
                f"Operator '{self.operator.value}' cannot compare against a {typed.kind.value} value"
            )
        return self

    @property
    def typed_value(self) -> ConditionValue:
        return ConditionValue.infer(self.value)


class ActionSpec(BaseModel):
    type: str = Field(..., min_length=1, description="Handler registry key e.g. 'send_notification'")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    order: Optional[int] = None


class FlowRuleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    trigger: TriggerType
    priority: int = Field(100, ge=1, le=1000, description="Lower value is evaluated first")
    is_active: bool = True
    stop_on_failure: Optional[bool] = None
    schedule_interval_seconds: Optional[int] = Field(None, ge=1)


class FlowRuleCreate(FlowRuleBase):
    conditions: List[ConditionSpec] = Field(default_factory=list)
    actions: List[ActionSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_orders(self) -> "FlowRuleCreate":
        validate_orders(self.conditions, "conditions")
        validate_orders(self.actions, "actions")
        return self


class FlowRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    trigger: Optional[TriggerType] = None
    priority: Optional[int] = Field(None, ge=1, le=1000)
    is_active: Optional[bool] = None
    stop_on_failure: Optional[bool] = None
    schedule_interval_seconds: Optional[int] = Field(None, ge=1)
    # When present, replace the rule's conditions/actions wholesale
    conditions: Optional[List[ConditionSpec]] = None
    actions: Optional[List[ActionSpec]] = None

    @model_validator(mode="after")
    def check_orders(self) -> "FlowRuleUpdate":
        if self.conditions is not None:
            validate_orders(self.conditions, "conditions")
        if self.actions is not None:
            validate_orders(self.actions, "actions")
        return self


# =============================================================================
# ENGINE SNAPSHOTS (read-only view of a rule at dispatch time)
# =============================================================================

class FlowCondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    operator: ConditionOperator
    value: ConditionValue
    logical_operator: LogicalOperator = LogicalOperator.AND
    order: int = 0


class FlowAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    order: int = 0


class FlowRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    company_id: str
    name: str
    description: Optional[str] = None
    trigger: TriggerType
    priority: int = 100
    is_active: bool = True
    stop_on_failure: Optional[bool] = None
    schedule_interval_seconds: Optional[int] = None
    conditions: Tuple[FlowCondition, ...] = ()
    actions: Tuple[FlowAction, ...] = ()

    @classmethod
    def from_model(cls, model) -> "FlowRule":
        """Build a snapshot from a FlowRuleModel with conditions/actions loaded."""
        return cls(
            id=model.id,
            company_id=model.company_id,
            name=model.name,
            description=model.description,
            trigger=model.trigger,
            priority=model.priority,
            is_active=model.is_active,
            stop_on_failure=model.stop_on_failure,
            schedule_interval_seconds=model.schedule_interval_seconds,
            conditions=tuple(
                FlowCondition(
                    field=c.field,
                    operator=c.operator,
                    value=ConditionValue(kind=c.value_kind, value=c.value),
                    logical_operator=c.logical_operator,
                    order=c.order,
                )
                for c in sorted(model.conditions, key=lambda c: c.order)
            ),
            actions=tuple(
                FlowAction(type=a.type, parameters=dict(a.parameters or {}), order=a.order)
                for a in sorted(model.actions, key=lambda a: a.order)
            ),
        )


class FlowRuleResponse(FlowRule):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    version: int = 1

    @classmethod
    def from_model(cls, model) -> "FlowRuleResponse":
        snapshot = FlowRule.from_model(model)
        return cls(
            **snapshot.model_dump(),
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by=model.created_by,
            version=model.version or 1,
        )


# =============================================================================
# RESULTS
# =============================================================================

class HandlerResult(BaseModel):
    """What a handler reports back for one invocation."""

    success: bool
    message: str = ""
    # Failure worth retrying (upstream unavailable, rate limited)
    transient: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, message: str = "", **data: Any) -> "HandlerResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failure(cls, message: str, transient: bool = False) -> "HandlerResult":
        return cls(success=False, message=message, transient=transient)


class ActionResult(BaseModel):
    action_type: str
    order: int
    success: bool
    message: str = ""
    attempts: int = 0
    transient: bool = False
    skipped: bool = False
    duration_ms: Optional[float] = None


class ExecutionOutcome(BaseModel):
    success: bool
    action_results: List[ActionResult] = Field(default_factory=list)

    @property
    def error_detail(self) -> Optional[str]:
        failed = [r for r in self.action_results if not r.success and not r.skipped]
        if not failed:
            return None
        return "; ".join(f"{r.action_type}#{r.order}: {r.message}" for r in failed)


class ExecutionRef(BaseModel):
    execution_id: Optional[str] = None
    rule_id: str
    rule_name: str
    success: bool
    error_detail: Optional[str] = None
    # False when the execution ran but its record could not be written
    recorded: bool = True


class DispatchSummary(BaseModel):
    trigger: str
    company_id: str
    evaluated: int = 0
    matched: int = 0
    executions: List[ExecutionRef] = Field(default_factory=list)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for ref in self.executions if not ref.success)


class Execution(BaseModel):
    id: str
    rule_id: str
    rule_name: Optional[str] = None
    company_id: str
    trigger: str
    triggered_at: datetime
    success: bool
    error_detail: Optional[str] = None
    action_results: List[Dict[str, Any]] = Field(default_factory=list)
    maintenance_id: Optional[str] = None
    asset_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# STATS
# =============================================================================

class PriorityCount(BaseModel):
    priority: PriorityLevel
    count: int


class FlowStats(BaseModel):
    total_flows: int
    active_flows: int
    inactive_flows: int
    total_executions: int
    average_success_rate: float
    recent_executions: int
    flows_by_priority: List[PriorityCount]
    window_days: Optional[int] = None


class FlowRuleStats(BaseModel):
    rule_id: str
    name: str
    is_active: bool
    priority: int
    execution_count: int
    success_rate: float
    last_executed: Optional[datetime] = None


# =============================================================================
# API PAYLOADS
# =============================================================================

class EventSubmission(BaseModel):
    trigger: str = Field(..., description="Trigger type e.g. 'creation'")
    company_id: str = Field(..., min_length=1)
    context: Dict[str, Any] = Field(default_factory=dict)
