"""
Automation engine.

Evaluates enabled rules for a triggering event and runs the matched actions.
Every matched rule produces exactly one log entry. Nothing raised while
evaluating a rule escapes trigger(): automation is best-effort and must never
fail the mutation that caused it.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker

from app.automation.actions import ActionExecutor
from app.automation.models import ActionResult
from app.automation.rules import check_trigger_conditions, parse_config
from app.db.automation_service import AutomationService
from app.db.models import AutomationRule

logger = logging.getLogger(__name__)

SUCCESS = "success"
FAILED = "failed"


class AutomationEngine:
    """Matches domain events against automation rules."""

    def __init__(self, session_factory: sessionmaker, executor: ActionExecutor):
        self.session_factory = session_factory
        self.executor = executor

    async def trigger(self, event_type: str, event_data: Dict[str, Any]) -> None:
        """
        Run every enabled rule for event_type, one at a time, in storage order.

        A failing rule is logged as failed and the loop moves on.
        """
        try:
            # Short synchronous SQLite reads run on the loop thread; actions await only httpx.
            with self.session_factory() as db:
                rules = AutomationService(db).enabled_rules(event_type)
        except Exception as e:
            logger.error(f"Error in trigger for {event_type}: {e}", exc_info=True)
            return

        if rules:
            logger.info(f"Evaluating {len(rules)} rule(s) for {event_type}")

        for rule in rules:
            await self._run_rule(rule, event_type, event_data)

    async def _run_rule(
        self,
        rule: AutomationRule,
        event_type: str,
        event_data: Dict[str, Any],
    ) -> Optional[str]:
        """Returns the logged status, or None when the rule did not match."""
        try:
            trigger_config = parse_config(rule.trigger_config, "trigger")
            action_config = parse_config(rule.action_config, "action")

            if not check_trigger_conditions(trigger_config, event_data):
                return None

            result = await self.executor.execute(rule.action_type, action_config, event_data, event_type=event_type)
            status = SUCCESS if result.success else FAILED
            message = result.message or result.error or f"Triggered by {event_type}"

        except Exception as e:
            logger.error(f"Error executing automation rule {rule.id}: {e}", exc_info=True)
            status = FAILED
            message = str(e) or e.__class__.__name__

        self._log(rule.id, status, message)
        return status

    async def trigger_rule(self, rule: AutomationRule, payload: Dict[str, Any]) -> Optional[ActionResult]:
        """
        Manually run a single rule against an arbitrary payload.

        Returns None when the payload does not satisfy the rule's conditions
        (nothing is logged). Otherwise the action result, which is also logged.
        Webhook actions receive the payload as-is, without the event envelope.
        """
        try:
            trigger_config = parse_config(rule.trigger_config, "trigger")
            action_config = parse_config(rule.action_config, "action")

            if not check_trigger_conditions(trigger_config, payload):
                return None

            result = await self.executor.execute(rule.action_type, action_config, payload)

        except Exception as e:
            logger.error(f"Manual trigger of rule {rule.id} failed: {e}", exc_info=True)
            result = ActionResult(success=False, error=str(e) or e.__class__.__name__)

        self._log(rule.id, SUCCESS if result.success else FAILED, result.message or result.error)
        return result

    def _log(self, rule_id: int, status: str, message: Optional[str]) -> None:
        # One-row insert, kept synchronous like the rule lookup in trigger().
        try:
            with self.session_factory() as db:
                AutomationService(db).add_log(rule_id, status, message)
        except Exception as e:
            logger.error(f"Failed to log automation execution for rule {rule_id}: {e}", exc_info=True)
