"""
Automation rule and execution-log persistence.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.db.models import AutomationLog, AutomationRule

RULE_FIELDS = ("name", "trigger_type", "trigger_config", "action_type", "action_config", "enabled")


def _config_text(value: Any) -> str:
    """Rule configs are stored as JSON text; strings are kept as given."""
    if isinstance(value, str):
        return value
    return json.dumps(value if value is not None else {})


def _config_value(text: Optional[str]) -> Any:
    try:
        return json.loads(text) if text else {}
    except (TypeError, ValueError):
        return text


def rule_to_dict(rule: AutomationRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "trigger_type": rule.trigger_type,
        "trigger_config": _config_value(rule.trigger_config),
        "action_type": rule.action_type,
        "action_config": _config_value(rule.action_config),
        "enabled": bool(rule.enabled),
        "created_by": rule.created_by,
        "created_at": rule.created_at.isoformat() if rule.created_at else None,
        "updated_at": rule.updated_at.isoformat() if rule.updated_at else None,
    }


def log_to_dict(log: AutomationLog) -> Dict[str, Any]:
    return {
        "id": log.id,
        "rule_id": log.rule_id,
        "rule_name": log.rule.name if log.rule else None,
        "status": log.status,
        "message": log.message,
        "created_at": log.created_at.isoformat() if log.created_at else None,
    }


class AutomationService:
    """Service for automation rules and logs."""

    def __init__(self, db: Session):
        self.db = db

    # =============================================================================
    # Rules
    # =============================================================================

    def list_rules(self) -> List[AutomationRule]:
        return self.db.query(AutomationRule).order_by(desc(AutomationRule.created_at), desc(AutomationRule.id)).all()

    def get_rule(self, rule_id: int) -> Optional[AutomationRule]:
        return self.db.get(AutomationRule, rule_id)

    def enabled_rules(self, trigger_type: str) -> List[AutomationRule]:
        """Enabled rules for a trigger type, in storage order."""
        return self.db.query(AutomationRule).filter(
            AutomationRule.trigger_type == trigger_type,
            AutomationRule.enabled.is_(True),
        ).order_by(AutomationRule.id).all()

    def create_rule(
        self,
        name: str,
        trigger_type: str,
        trigger_config: Any,
        action_type: str,
        action_config: Any,
        enabled: bool = True,
        created_by: Optional[int] = None,
    ) -> AutomationRule:
        rule = AutomationRule(
            name=name,
            trigger_type=trigger_type,
            trigger_config=_config_text(trigger_config),
            action_type=action_type,
            action_config=_config_text(action_config),
            enabled=enabled,
            created_by=created_by,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def update_rule(self, rule_id: int, changes: Dict[str, Any]) -> Optional[AutomationRule]:
        """Apply changes to a rule. Raises ValueError when nothing updatable is given."""
        updates = {k: v for k, v in changes.items() if k in RULE_FIELDS and v is not None}
        if not updates:
            raise ValueError("No valid fields to update")

        rule = self.get_rule(rule_id)
        if not rule:
            return None

        for field, value in updates.items():
            if field in ("trigger_config", "action_config"):
                value = _config_text(value)
            setattr(rule, field, value)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def delete_rule(self, rule_id: int) -> bool:
        rule = self.get_rule(rule_id)
        if not rule:
            return False
        self.db.delete(rule)
        self.db.commit()
        return True

    # =============================================================================
    # Logs
    # =============================================================================

    def add_log(self, rule_id: int, status: str, message: Optional[str]) -> AutomationLog:
        log = AutomationLog(rule_id=rule_id, status=status, message=message)
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    def list_logs(self, rule_id: Optional[int] = None, limit: int = 50) -> List[AutomationLog]:
        query = self.db.query(AutomationLog).join(AutomationRule)
        if rule_id is not None:
            query = query.filter(AutomationLog.rule_id == rule_id)
        return query.order_by(desc(AutomationLog.created_at), desc(AutomationLog.id)).limit(limit).all()

    def prune_logs(self, before: datetime) -> int:
        """Delete log entries created before the cutoff. Returns the number removed."""
        deleted = self.db.query(AutomationLog).filter(
            AutomationLog.created_at < before
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted
