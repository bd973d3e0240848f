# sample_core/workflows/custody.py
"""
Physical custody chain for a sample.

Events are totally ordered. Each one stamps a single timestamp field, and an
event may only be stamped once its predecessor is stamped.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Set

from sample_core.roles import ADMINISTRATOR, SAMPLE_COLLECTOR


CUSTODY_CHAIN: List[str] = [
    "admin_received_from_client",
    "admin_brought_to_collector",
    "collector_received",
    "collector_intake_completed",
    "collector_returned_to_admin",
    "admin_received_from_collector",
    "client_picked_up",
]

CUSTODY_ROLES: Dict[str, Set[str]] = {
    "admin_received_from_client": {ADMINISTRATOR},
    "admin_brought_to_collector": {ADMINISTRATOR},
    "collector_received": {SAMPLE_COLLECTOR},
    "collector_intake_completed": {SAMPLE_COLLECTOR},
    "collector_returned_to_admin": {SAMPLE_COLLECTOR},
    "admin_received_from_collector": {ADMINISTRATOR},
    "client_picked_up": {ADMINISTRATOR},
}

# Event -> lifecycle state it moves the request into.
CUSTODY_STATE_LINKS: Dict[str, str] = {
    "admin_received_from_client": "physically_received",
    "collector_received": "under_inspection",
    "collector_returned_to_admin": "returned_to_admin",
}

# Event -> lifecycle states the request must be in (besides the linked target).
CUSTODY_REQUIRED_STATES: Dict[str, Set[str]] = {
    "collector_intake_completed": {
        "intake_checklist_passed",
        "intake_validated",
        "awaiting_verification",
        "rejected",
        "inspection_failed",
    },
}


def normalize_event(value: Optional[str]) -> str:
    return str(value or "").strip().lower().replace("-", "_")


def is_custody_event(event: str) -> bool:
    return normalize_event(event) in CUSTODY_CHAIN


def timestamp_field(event: str) -> str:
    return f"{normalize_event(event)}_at"


def predecessor(event: str) -> Optional[str]:
    idx = CUSTODY_CHAIN.index(normalize_event(event))
    return CUSTODY_CHAIN[idx - 1] if idx > 0 else None


def missing_predecessor(instance, event: str) -> Optional[str]:
    """
    Name of the predecessor event that is not stamped yet, or None.
    """
    prev = predecessor(event)
    if prev and getattr(instance, timestamp_field(prev), None) is None:
        return prev
    return None


def custody_snapshot(instance) -> Dict[str, Optional[str]]:
    out: Dict[str, Optional[str]] = {}
    for event in CUSTODY_CHAIN:
        ts = getattr(instance, timestamp_field(event), None)
        out[event] = ts.isoformat() if ts else None
    return out


def next_custody_event(instance) -> Optional[str]:
    for event in CUSTODY_CHAIN:
        if getattr(instance, timestamp_field(event), None) is None:
            return event
    return None


__all__ = [
    "CUSTODY_CHAIN",
    "CUSTODY_ROLES",
    "CUSTODY_STATE_LINKS",
    "CUSTODY_REQUIRED_STATES",
    "normalize_event",
    "is_custody_event",
    "timestamp_field",
    "predecessor",
    "missing_predecessor",
    "custody_snapshot",
    "next_custody_event",
]
