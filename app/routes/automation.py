"""
Automation rule endpoints.

Rule CRUD, the execution log and manual triggering. Manual triggers run the
rule's action directly against the posted payload and write one log entry.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.automation.engine import AutomationEngine
from app.automation.models import ActionType, TriggerType
from app.db.automation_service import AutomationService, log_to_dict, rule_to_dict
from app.routes.deps import get_automation_engine, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/automation", tags=["automation"])


class RuleCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    trigger_type: TriggerType = Field(alias="triggerType")
    trigger_config: Dict[str, Any] = Field(default={}, alias="triggerConfig")
    action_type: ActionType = Field(alias="actionType")
    action_config: Dict[str, Any] = Field(default={}, alias="actionConfig")
    enabled: bool = True
    created_by: Optional[int] = Field(default=None, alias="createdBy")


class RuleUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    trigger_type: Optional[TriggerType] = Field(default=None, alias="triggerType")
    trigger_config: Optional[Dict[str, Any]] = Field(default=None, alias="triggerConfig")
    action_type: Optional[ActionType] = Field(default=None, alias="actionType")
    action_config: Optional[Dict[str, Any]] = Field(default=None, alias="actionConfig")
    enabled: Optional[bool] = None


class ManualTrigger(BaseModel):
    payload: Dict[str, Any] = {}


@router.get("")
async def list_rules(db: Session = Depends(get_db)):
    return [rule_to_dict(rule) for rule in AutomationService(db).list_rules()]


@router.get("/logs")
async def list_logs(
    rule_id: Optional[int] = Query(default=None, alias="ruleId"),
    limit: int = Query(default=50, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Execution log, newest first."""
    return [log_to_dict(log) for log in AutomationService(db).list_logs(rule_id=rule_id, limit=limit)]


@router.get("/{rule_id}")
async def get_rule(rule_id: int, db: Session = Depends(get_db)):
    rule = AutomationService(db).get_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Automation rule not found")
    return rule_to_dict(rule)


@router.post("", status_code=201)
async def create_rule(body: RuleCreate, db: Session = Depends(get_db)):
    rule = AutomationService(db).create_rule(
        name=body.name,
        trigger_type=body.trigger_type.value,
        trigger_config=body.trigger_config,
        action_type=body.action_type.value,
        action_config=body.action_config,
        enabled=body.enabled,
        created_by=body.created_by,
    )
    logger.info(f"Automation rule {rule.id} created: {rule.trigger_type} -> {rule.action_type}")
    return rule_to_dict(rule)


@router.put("/{rule_id}")
async def update_rule(rule_id: int, body: RuleUpdate, db: Session = Depends(get_db)):
    changes = body.model_dump(exclude_unset=True, mode="json")
    try:
        rule = AutomationService(db).update_rule(rule_id, changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if rule is None:
        raise HTTPException(status_code=404, detail="Automation rule not found")
    return rule_to_dict(rule)


@router.delete("/{rule_id}")
async def delete_rule(rule_id: int, db: Session = Depends(get_db)):
    if not AutomationService(db).delete_rule(rule_id):
        raise HTTPException(status_code=404, detail="Automation rule not found")
    return {"message": "Automation rule deleted successfully"}


@router.post("/{rule_id}/trigger")
async def trigger_rule(
    rule_id: int,
    body: ManualTrigger,
    db: Session = Depends(get_db),
    engine: AutomationEngine = Depends(get_automation_engine),
):
    """Run one enabled rule against the posted payload."""
    rule = AutomationService(db).get_rule(rule_id)
    if not rule or not rule.enabled:
        raise HTTPException(status_code=404, detail="Automation rule not found or disabled")

    result = await engine.trigger_rule(rule, body.payload)
    if result is None:
        raise HTTPException(status_code=400, detail="Trigger conditions not met")

    if result.success:
        return {
            "success": True,
            "message": "Automation rule triggered successfully",
            "result": result.model_dump(),
        }
    return JSONResponse(status_code=400, content={
        "success": False,
        "message": "Automation rule execution failed",
        "result": result.model_dump(),
    })
