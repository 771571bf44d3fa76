from typing import List, Optional, Annotated

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from maintflow.triggers import schemas
from maintflow.triggers.errors import RuleValidationError
from maintflow.triggers.service import FlowRuleService
from maintflow.api.dependencies import get_db, get_rule_service


router = APIRouter()

CompanyId = Annotated[str, Query(min_length=1, description="Tenant owning the rules")]


@router.post("/", response_model=schemas.FlowRuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    rule_create: schemas.FlowRuleCreate,
    company_id: CompanyId,
    service: Annotated[FlowRuleService, Depends(get_rule_service)],
    session: Annotated[Session, Depends(get_db)],
    created_by: Optional[str] = None,
):
    """
    Create a new flow rule.
    """
    try:
        rule = service.create_rule(session, company_id, rule_create, created_by)
    except RuleValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    return schemas.FlowRuleResponse.from_model(rule)


@router.get("/", response_model=List[schemas.FlowRuleResponse])
def list_rules(
    company_id: CompanyId,
    service: Annotated[FlowRuleService, Depends(get_rule_service)],
    session: Annotated[Session, Depends(get_db)],
    trigger: Optional[schemas.TriggerType] = None,
    is_active: Optional[bool] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """
    List a company's rules in evaluation order.
    """
    rules = service.list_rules(
        session, company_id, limit, offset,
        trigger=trigger.value if trigger else None,
        is_active=is_active,
    )
    return [schemas.FlowRuleResponse.from_model(rule) for rule in rules]


@router.get("/{rule_id}", response_model=schemas.FlowRuleResponse)
def get_rule(
    rule_id: str,
    company_id: CompanyId,
    service: Annotated[FlowRuleService, Depends(get_rule_service)],
    session: Annotated[Session, Depends(get_db)],
):
    """
    Get a rule by ID.
    """
    rule = service.get_rule(session, company_id, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return schemas.FlowRuleResponse.from_model(rule)


@router.patch("/{rule_id}", response_model=schemas.FlowRuleResponse)
def update_rule(
    rule_id: str,
    rule_update: schemas.FlowRuleUpdate,
    company_id: CompanyId,
    service: Annotated[FlowRuleService, Depends(get_rule_service)],
    session: Annotated[Session, Depends(get_db)],
):
    """
    Update a rule. Conditions or actions, when given, replace the existing ones.
    """
    try:
        rule = service.update_rule(session, company_id, rule_id, rule_update)
    except RuleValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return schemas.FlowRuleResponse.from_model(rule)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: str,
    company_id: CompanyId,
    service: Annotated[FlowRuleService, Depends(get_rule_service)],
    session: Annotated[Session, Depends(get_db)],
):
    """
    Delete a rule. Its execution history is kept.
    """
    if not service.delete_rule(session, company_id, rule_id):
        raise HTTPException(status_code=404, detail="Rule not found")
    return None
