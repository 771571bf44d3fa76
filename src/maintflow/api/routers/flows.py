from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query

from maintflow.api.dependencies import get_flow_engine
from maintflow.triggers import schemas
from maintflow.triggers.automation import FlowAutomationEngine


router = APIRouter()


@router.post("/events", response_model=schemas.DispatchSummary)
async def submit_event(
    event: schemas.EventSubmission,
    engine: Annotated[FlowAutomationEngine, Depends(get_flow_engine)],
):
    """
    Report a domain event (maintenance created, status changed, ...).

    Always answers 200 with a summary; failed rules are reported in it rather
    than as an error status.
    """
    return await engine.submit_event(event.trigger, event.company_id, event.context)


@router.get("/stats", response_model=schemas.FlowStats)
def get_stats(
    engine: Annotated[FlowAutomationEngine, Depends(get_flow_engine)],
    company_id: str = Query(..., min_length=1),
    window_days: Optional[int] = Query(None, ge=0, description="0 means all time"),
):
    """
    Dashboard summary for a company.
    """
    return engine.get_stats(company_id, window_days)


@router.get("/executions", response_model=List[schemas.Execution])
def list_executions(
    engine: Annotated[FlowAutomationEngine, Depends(get_flow_engine)],
    company_id: str = Query(..., min_length=1),
    rule_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """
    Execution history, newest first.
    """
    return engine.list_executions(company_id, rule_id=rule_id, limit=limit, offset=offset)


@router.get("/rules/stats", response_model=List[schemas.FlowRuleStats])
def get_rule_stats(
    engine: Annotated[FlowAutomationEngine, Depends(get_flow_engine)],
    company_id: str = Query(..., min_length=1),
    window_days: Optional[int] = Query(None, ge=0),
):
    """
    Per-rule execution count, success rate and last run.
    """
    return engine.get_rule_stats(company_id, window_days)
