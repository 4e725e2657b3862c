"""
Outbound webhook delivery.

Posts JSON to enabled "n8n_webhook" integrations. Every call carries a hard
timeout; delivery errors are returned as results, never raised to callers.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import sessionmaker

from app.automation.models import ActionResult, BroadcastResult
from app.db.integration_service import IntegrationService, WebhookTarget, to_webhook_target

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def build_envelope(event_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap an event payload the way webhook consumers expect it."""
    return {
        "eventType": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }


class WebhookDispatcher:
    """Delivers payloads to webhook integrations."""

    def __init__(
        self,
        session_factory: sessionmaker,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.timeout = timeout
        self.transport = transport

    def enabled_targets(self) -> List[WebhookTarget]:
        # Runs on the caller's thread. The in-memory test engine has a single shared connection.
        with self.session_factory() as db:
            return IntegrationService(db).enabled_webhooks()

    async def post(self, target: WebhookTarget, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST one payload. Raises httpx errors on timeout, transport failure or non-2xx."""
        headers = {"Content-Type": "application/json"}
        if target.api_key:
            headers["Authorization"] = f"Bearer {target.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(target.webhook_url, headers=headers, json=payload)
            response.raise_for_status()
            try:
                data = response.json()
            except ValueError:
                data = response.text

        return {
            "id": target.id,
            "name": target.name,
            "status": response.status_code,
            "data": data,
        }

    async def trigger_webhook(
        self,
        webhook_id: Optional[int],
        payload: Dict[str, Any],
        event_type: Optional[str] = None,
    ) -> ActionResult:
        """
        Deliver to a single integration.

        With an event_type the payload is wrapped in the event envelope,
        otherwise it is posted as-is.
        """
        try:
            if webhook_id is None:
                return ActionResult(success=False, error="Webhook ID is required")

            with self.session_factory() as db:
                integration = IntegrationService(db).enabled_webhook(webhook_id)
                target = to_webhook_target(integration) if integration else None

            if not integration:
                return ActionResult(success=False, error="Webhook integration not found or disabled")
            if not target:
                return ActionResult(success=False, error="Webhook URL not configured")

            body = build_envelope(event_type, payload) if event_type else payload
            delivery = await self.post(target, body)
            logger.info(f"Webhook {target.name} ({target.id}) delivered with status {delivery['status']}")
            return ActionResult(
                success=True,
                message=f"Webhook delivered ({delivery['status']})",
                data=delivery,
            )

        except Exception as e:
            logger.error(f"Webhook {webhook_id} delivery failed: {e}")
            return ActionResult(success=False, error=str(e) or e.__class__.__name__)

    async def broadcast(
        self,
        payload: Dict[str, Any],
        targets: Optional[List[WebhookTarget]] = None,
    ) -> BroadcastResult:
        """
        Post the same payload to every enabled webhook concurrently.

        Waits for all deliveries; one failing target never affects the others.
        """
        if targets is None:
            targets = self.enabled_targets()

        if not targets:
            return BroadcastResult(
                success=False,
                message="No enabled n8n webhook integrations configured",
            )

        results = await asyncio.gather(
            *(self.post(target, payload) for target in targets),
            return_exceptions=True,
        )

        deliveries = []
        errors = []
        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                logger.warning(f"Webhook {target.name} ({target.id}) failed: {result}")
                errors.append({"id": target.id, "error": str(result) or result.__class__.__name__})
            else:
                deliveries.append(result)

        return BroadcastResult(
            success=len(deliveries) > 0,
            delivered=len(deliveries),
            failed=len(errors),
            deliveries=deliveries,
            errors=errors,
        )
