"""
Rule configuration parsing and trigger matching.
"""

import json
from typing import Any, Dict

# (trigger config key, event data key)
PREDICATE_FIELDS = (
    ("columnId", "columnId"),
    ("priority", "priority"),
    ("assignedTo", "assignedTo"),
    ("fromColumnId", "oldColumnId"),
    ("toColumnId", "newColumnId"),
)


def parse_config(raw: Any, label: str) -> Dict[str, Any]:
    """
    Decode a stored rule config into a dict.

    Raises ValueError when the text is not a JSON object.
    """
    if isinstance(raw, dict):
        return raw
    try:
        value = json.loads(raw) if raw else {}
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid {label} configuration: {e}")
    if not isinstance(value, dict):
        raise ValueError(f"Invalid {label} configuration: expected a JSON object")
    return value


def _same(expected: Any, actual: Any) -> bool:
    # Column and user ids arrive as ints from the API and sometimes as strings from rule JSON.
    return expected == actual or str(expected) == str(actual)


def check_trigger_conditions(trigger_config: Dict[str, Any], event_data: Dict[str, Any]) -> bool:
    """
    Whether an event satisfies a rule's predicates.

    A predicate only rejects when the event carries the corresponding field
    with a different value. Unset predicates and fields the event does not
    carry never reject.
    """
    for config_key, event_key in PREDICATE_FIELDS:
        expected = trigger_config.get(config_key)
        if expected is None or event_key not in event_data:
            continue
        if not _same(expected, event_data[event_key]):
            return False
    return True
