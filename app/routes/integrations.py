"""Webhook integration endpoints."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.db.integration_service import WEBHOOK_INTEGRATION, IntegrationService, integration_to_dict
from app.routes.deps import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


class IntegrationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    type: str = WEBHOOK_INTEGRATION
    config: Dict[str, Any] = {}
    enabled: bool = True
    created_by: Optional[int] = Field(default=None, alias="createdBy")


class IntegrationUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None


@router.get("")
async def list_integrations(db: Session = Depends(get_db)):
    return [integration_to_dict(i) for i in IntegrationService(db).list_integrations()]


@router.post("", status_code=201)
async def create_integration(body: IntegrationCreate, db: Session = Depends(get_db)):
    integration = IntegrationService(db).create_integration(
        name=body.name,
        config=body.config,
        type=body.type,
        enabled=body.enabled,
        created_by=body.created_by,
    )
    logger.info(f"Integration {integration.id} ({integration.type}) created")
    return integration_to_dict(integration)


@router.put("/{integration_id}")
async def update_integration(integration_id: int, body: IntegrationUpdate, db: Session = Depends(get_db)):
    try:
        integration = IntegrationService(db).update_integration(
            integration_id, body.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if integration is None:
        raise HTTPException(status_code=404, detail="Integration not found")
    return integration_to_dict(integration)


@router.delete("/{integration_id}")
async def delete_integration(integration_id: int, db: Session = Depends(get_db)):
    if not IntegrationService(db).delete_integration(integration_id):
        raise HTTPException(status_code=404, detail="Integration not found")
    return {"message": "Integration deleted successfully"}
