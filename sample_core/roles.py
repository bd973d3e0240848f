# sample_core/roles.py
"""
Central role-capability table.

Every component asks this module which roles may act, which role codes an
approval or signature slot belongs to, and how free-form role strings map to
canonical roles. Nothing else in the app hard-codes role names.
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple


# ===============================================================
# Canonical roles
# ===============================================================

ADMINISTRATOR = "ADMINISTRATOR"
SAMPLE_COLLECTOR = "SAMPLE_COLLECTOR"
OPERATIONAL_MANAGER = "OPERATIONAL_MANAGER"
LABORATORY_HEAD = "LABORATORY_HEAD"
ANALYST = "ANALYST"
CLIENT = "CLIENT"

STAFF_ROLES: FrozenSet[str] = frozenset(
    {ADMINISTRATOR, SAMPLE_COLLECTOR, OPERATIONAL_MANAGER, LABORATORY_HEAD, ANALYST}
)
ALL_ROLES: FrozenSet[str] = STAFF_ROLES | {CLIENT}

ROLE_ALIASES: Dict[str, str] = {
    "ADMIN": ADMINISTRATOR,
    "ADMINISTRATOR": ADMINISTRATOR,
    "SUPERUSER": ADMINISTRATOR,
    "SC": SAMPLE_COLLECTOR,
    "COLLECTOR": SAMPLE_COLLECTOR,
    "SAMPLE_COLLECTOR": SAMPLE_COLLECTOR,
    "OM": OPERATIONAL_MANAGER,
    "OPERATIONAL_MANAGER": OPERATIONAL_MANAGER,
    "QA_MANAGER": OPERATIONAL_MANAGER,
    "LH": LABORATORY_HEAD,
    "LAB_HEAD": LABORATORY_HEAD,
    "LABORATORY_HEAD": LABORATORY_HEAD,
    "ANALYST": ANALYST,
    "OPERATOR": ANALYST,
    "LAB_OPERATOR": ANALYST,
    "CLIENT": CLIENT,
    "CUSTOMER": CLIENT,
}


def normalize_role(role: Optional[str]) -> str:
    """
    Canonicalize role strings so that small formatting differences
    ("Lab Head", "lab-head", "LH") do not break permission logic.
    """
    r = (role or "").strip().upper()
    if not r:
        return r

    r = re.sub(r"[\s\-]+", "_", r)
    r = re.sub(r"_+", "_", r)

    return ROLE_ALIASES.get(r, r)


def normalize_roles(roles: Iterable[str]) -> Set[str]:
    return {normalize_role(r) for r in roles if r}


# ===============================================================
# Role codes (approval ledger, signature slots, verification)
# ===============================================================

ROLE_CODES: Dict[str, str] = {
    OPERATIONAL_MANAGER: "OM",
    LABORATORY_HEAD: "LH",
}

CODE_ROLES: Dict[str, str] = {code: role for role, code in ROLE_CODES.items()}


def normalize_role_code(code: Optional[str]) -> str:
    """
    Accept "om", "OM", "Operational Manager", "QA_MANAGER"; return "OM"/"LH".
    Unknown values are returned upper-cased so callers can reject them.
    """
    raw = (code or "").strip().upper()
    if raw in CODE_ROLES:
        return raw
    role = normalize_role(raw)
    return ROLE_CODES.get(role, raw)


def role_codes_for(roles: Iterable[str]) -> Set[str]:
    return {ROLE_CODES[r] for r in normalize_roles(roles) if r in ROLE_CODES}


# ===============================================================
# Approvals and signatures
# ===============================================================

LOO_CANDIDATE = "loo_candidate"

APPROVAL_REQUIREMENTS: Dict[str, Tuple[str, ...]] = {
    LOO_CANDIDATE: ("OM", "LH"),
}

REPORT = "report"
LETTER_OF_ORDER = "letter_of_order"

SIGNATURE_SLOTS: Dict[str, Tuple[str, ...]] = {
    REPORT: ("OM", "LH"),
    LETTER_OF_ORDER: ("OM", "LH"),
}

# Signing this slot finalizes (locks) the document.
CLOSING_SIGNATURE: Dict[str, str] = {
    REPORT: "LH",
    LETTER_OF_ORDER: "LH",
}


# ===============================================================
# Capabilities
# ===============================================================

CAPABILITIES: Dict[str, FrozenSet[str]] = {
    "intake.submit": frozenset({SAMPLE_COLLECTOR}),
    "sample.verify": frozenset({OPERATIONAL_MANAGER, LABORATORY_HEAD}),
    "crosscheck.submit": frozenset({ANALYST}),
    "artifact.create": frozenset({ANALYST}),
    "artifact.propose": frozenset({ANALYST}),
    "artifact.decide": frozenset({OPERATIONAL_MANAGER}),
    "loo.generate": frozenset({ADMINISTRATOR, OPERATIONAL_MANAGER, LABORATORY_HEAD}),
    "report.create": frozenset({ANALYST, OPERATIONAL_MANAGER, LABORATORY_HEAD}),
    "change_request.propose": frozenset({ADMINISTRATOR}),
    "change_request.review": frozenset({OPERATIONAL_MANAGER, LABORATORY_HEAD}),
    "staff.read": STAFF_ROLES,
}


def roles_for_capability(capability: str) -> FrozenSet[str]:
    try:
        return CAPABILITIES[capability]
    except KeyError:
        raise ValueError(f"Unknown capability: {capability}")


def has_capability(roles: Iterable[str], capability: str) -> bool:
    return bool(normalize_roles(roles) & roles_for_capability(capability))


__all__ = [
    "ADMINISTRATOR",
    "SAMPLE_COLLECTOR",
    "OPERATIONAL_MANAGER",
    "LABORATORY_HEAD",
    "ANALYST",
    "CLIENT",
    "STAFF_ROLES",
    "ALL_ROLES",
    "ROLE_CODES",
    "APPROVAL_REQUIREMENTS",
    "SIGNATURE_SLOTS",
    "CLOSING_SIGNATURE",
    "CAPABILITIES",
    "normalize_role",
    "normalize_roles",
    "normalize_role_code",
    "role_codes_for",
    "roles_for_capability",
    "has_capability",
]
