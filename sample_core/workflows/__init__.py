# sample_core/workflows/__init__.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set

from sample_core.roles import (
    ADMINISTRATOR,
    CLIENT,
    SAMPLE_COLLECTOR,
    normalize_role,
    normalize_roles,
)


# ===============================================================
# Request lifecycle definition
# ===============================================================

REQUEST_KIND = "sample_request"

REQUEST_STATES: Set[str] = {
    "draft",
    "submitted",
    "returned",
    "needs_revision",
    "ready_for_delivery",
    "physically_received",
    "under_inspection",
    "intake_checklist_passed",
    "intake_validated",
    "awaiting_verification",
    "rejected",
    "returned_to_admin",
    "inspection_failed",
}

# current -> target -> roles allowed to perform it
REQUEST_TRANSITION_ROLES: Dict[str, Dict[str, Set[str]]] = {
    "draft": {
        "submitted": {CLIENT},
    },
    "submitted": {
        "returned": {ADMINISTRATOR},
        "needs_revision": {ADMINISTRATOR},
        "ready_for_delivery": {ADMINISTRATOR},
    },
    "returned": {
        "submitted": {CLIENT},
    },
    "needs_revision": {
        "submitted": {CLIENT},
    },
    "ready_for_delivery": {
        "physically_received": {ADMINISTRATOR},
    },
    "physically_received": {
        "under_inspection": {SAMPLE_COLLECTOR},
    },
    "under_inspection": {
        "intake_checklist_passed": {SAMPLE_COLLECTOR},
        "rejected": {SAMPLE_COLLECTOR},
        "inspection_failed": {SAMPLE_COLLECTOR},
    },
    "intake_checklist_passed": {
        "intake_validated": {SAMPLE_COLLECTOR},
    },
    "intake_validated": {
        "awaiting_verification": {SAMPLE_COLLECTOR, ADMINISTRATOR},
    },
    "awaiting_verification": {},
    "rejected": {
        "returned_to_admin": {SAMPLE_COLLECTOR},
    },
    "inspection_failed": {
        "returned_to_admin": {SAMPLE_COLLECTOR},
    },
    "returned_to_admin": {},
}

REQUEST_TRANSITIONS: Dict[str, Set[str]] = {
    cur: set(targets) for cur, targets in REQUEST_TRANSITION_ROLES.items()
}

# Entering these states records why the work stalled; the note is mandatory.
NOTE_REQUIRED_STATES: Set[str] = {
    "returned",
    "needs_revision",
    "rejected",
    "inspection_failed",
}

# The client's private editing state never shows up in staff queues.
STAFF_HIDDEN_STATES: Set[str] = {"draft"}

# Targets only the intake checklist may reach; the generic transition
# endpoint refuses them so a lab code is never skipped.
ENGINE_ONLY_TARGETS: Dict[str, str] = {
    "intake_checklist_passed": "intake-checklist",
    "intake_validated": "intake-checklist",
}

# States in which the owning client may still edit the request details.
CLIENT_EDITABLE_STATES: Set[str] = {"draft", "returned", "needs_revision"}

# Reaching a lifecycle state also satisfies the matching custody event.
STATE_CUSTODY_LINKS: Dict[str, str] = {
    "physically_received": "admin_received_from_client",
    "under_inspection": "collector_received",
    "intake_checklist_passed": "collector_intake_completed",
    "rejected": "collector_intake_completed",
    "inspection_failed": "collector_intake_completed",
    "returned_to_admin": "collector_returned_to_admin",
}


def normalize_state(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def is_terminal(current: str) -> bool:
    return not REQUEST_TRANSITIONS.get(normalize_state(current))


def note_required(target: str) -> bool:
    return normalize_state(target) in NOTE_REQUIRED_STATES


def engine_only(target: str) -> bool:
    return normalize_state(target) in ENGINE_ONLY_TARGETS


# ===============================================================
# Public workflow API
# ===============================================================

def validate_transition(current: Optional[str], target: Optional[str]) -> None:
    """
    Raises ValueError if current -> target is not an edge of the lifecycle.
    """
    cur = normalize_state(current)
    tgt = normalize_state(target)

    if cur not in REQUEST_STATES:
        raise ValueError(f"Unknown request state: {cur}")
    if tgt not in REQUEST_STATES:
        raise ValueError(f"Unknown request state: {tgt}")
    if tgt not in REQUEST_TRANSITIONS.get(cur, set()):
        raise ValueError(f"Invalid request transition: {cur} -> {tgt}")


def required_roles(current: str, target: str) -> List[str]:
    """
    Returns roles that can perform current -> target.
    """
    validate_transition(current, target)
    cur = normalize_state(current)
    tgt = normalize_state(target)
    return sorted(REQUEST_TRANSITION_ROLES[cur][tgt])


def role_allows(current: str, target: str, roles: Iterable[str]) -> bool:
    cur = normalize_state(current)
    tgt = normalize_state(target)
    allowed = REQUEST_TRANSITION_ROLES.get(cur, {}).get(tgt, set())
    return bool(normalize_roles(roles) & allowed)


def allowed_next_states(current: str) -> List[str]:
    """
    Lifecycle next states only, independent of role.
    """
    return sorted(REQUEST_TRANSITIONS.get(normalize_state(current), set()))


def allowed_transitions(
    current: Optional[str] = None,
    roles: Optional[Iterable[str]] = None,
) -> Any:
    """
    allowed_transitions() -> full map {state: [targets]}
    allowed_transitions("submitted", ["ADMIN"]) -> role-aware list of targets
    """
    if current is None and roles is None:
        return {state: sorted(nxt) for state, nxt in REQUEST_TRANSITIONS.items()}

    nxt = allowed_next_states(current or "")
    if roles is None:
        return nxt

    role_set = normalize_roles(roles)
    return [tgt for tgt in nxt if not engine_only(tgt) and role_allows(current, tgt, role_set)]


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for clients.
    """
    return {
        "kind": REQUEST_KIND,
        "states": sorted(REQUEST_STATES),
        "transitions": allowed_transitions(),
        "roles": {
            cur: {tgt: sorted(roles) for tgt, roles in targets.items()}
            for cur, targets in REQUEST_TRANSITION_ROLES.items()
            if targets
        },
        "note_required": sorted(NOTE_REQUIRED_STATES),
        "staff_hidden": sorted(STAFF_HIDDEN_STATES),
        "engine_only": sorted(ENGINE_ONLY_TARGETS),
    }


__all__ = [
    "REQUEST_KIND",
    "REQUEST_STATES",
    "REQUEST_TRANSITIONS",
    "REQUEST_TRANSITION_ROLES",
    "NOTE_REQUIRED_STATES",
    "STAFF_HIDDEN_STATES",
    "STATE_CUSTODY_LINKS",
    "normalize_state",
    "normalize_role",
    "is_terminal",
    "note_required",
    "validate_transition",
    "required_roles",
    "role_allows",
    "allowed_next_states",
    "allowed_transitions",
    "workflow_definition",
]
