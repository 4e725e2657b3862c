"""
Outbound integration persistence.

Only enabled integrations of type "n8n_webhook" are used for delivery.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db.models import Integration

WEBHOOK_INTEGRATION = "n8n_webhook"
INTEGRATION_FIELDS = ("name", "type", "config", "enabled")


class WebhookTarget(BaseModel):
    """Resolved delivery target of a webhook integration."""
    id: int
    name: str
    webhook_url: str
    api_key: Optional[str] = None


def integration_to_dict(integration: Integration) -> Dict[str, Any]:
    return {
        "id": integration.id,
        "name": integration.name,
        "type": integration.type,
        "config": integration.config or {},
        "enabled": bool(integration.enabled),
        "created_at": integration.created_at.isoformat() if integration.created_at else None,
        "updated_at": integration.updated_at.isoformat() if integration.updated_at else None,
    }


def to_webhook_target(integration: Integration) -> Optional[WebhookTarget]:
    """None when the integration has no usable webhook URL."""
    config = integration.config if isinstance(integration.config, dict) else {}
    url = config.get("webhookUrl")
    if not url:
        return None
    return WebhookTarget(
        id=integration.id,
        name=integration.name,
        webhook_url=url,
        api_key=config.get("apiKey") or None,
    )


class IntegrationService:
    """Service for integration records."""

    def __init__(self, db: Session):
        self.db = db

    def list_integrations(self) -> List[Integration]:
        return self.db.query(Integration).order_by(Integration.id).all()

    def get_integration(self, integration_id: int) -> Optional[Integration]:
        return self.db.get(Integration, integration_id)

    def enabled_webhook(self, integration_id: int) -> Optional[Integration]:
        return self.db.query(Integration).filter(
            Integration.id == integration_id,
            Integration.type == WEBHOOK_INTEGRATION,
            Integration.enabled.is_(True),
        ).first()

    def enabled_webhooks(self) -> List[WebhookTarget]:
        """All enabled webhook integrations with a configured URL."""
        integrations = self.db.query(Integration).filter(
            Integration.type == WEBHOOK_INTEGRATION,
            Integration.enabled.is_(True),
        ).order_by(Integration.id).all()
        targets = [to_webhook_target(i) for i in integrations]
        return [t for t in targets if t is not None]

    def create_integration(
        self,
        name: str,
        config: Dict[str, Any],
        type: str = WEBHOOK_INTEGRATION,
        enabled: bool = True,
        created_by: Optional[int] = None,
    ) -> Integration:
        integration = Integration(name=name, type=type, config=config, enabled=enabled, created_by=created_by)
        self.db.add(integration)
        self.db.commit()
        self.db.refresh(integration)
        return integration

    def update_integration(self, integration_id: int, changes: Dict[str, Any]) -> Optional[Integration]:
        updates = {k: v for k, v in changes.items() if k in INTEGRATION_FIELDS and v is not None}
        if not updates:
            raise ValueError("No valid fields to update")

        integration = self.get_integration(integration_id)
        if not integration:
            return None
        for field, value in updates.items():
            setattr(integration, field, value)
        self.db.commit()
        self.db.refresh(integration)
        return integration

    def delete_integration(self, integration_id: int) -> bool:
        integration = self.get_integration(integration_id)
        if not integration:
            return False
        self.db.delete(integration)
        self.db.commit()
        return True
