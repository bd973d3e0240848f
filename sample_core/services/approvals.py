# sample_core/services/approvals.py
"""
Dual-party approval ledger.

Each subject needs one approval per required role code (OM and LH for an LOO
candidate). Entries are independent: the order of approvals does not matter,
re-approving keeps the first timestamp, and clearing keeps the row so the last
actor stays on record.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import PreconditionFailed
from sample_core.models import ApprovalLedgerEntry, Sample
from sample_core.permissions import require_authenticated, require_role_code
from sample_core.roles import APPROVAL_REQUIREMENTS, LOO_CANDIDATE, normalize_role_code

from . import audit

logger = logging.getLogger(__name__)


def required_codes(kind: str):
    try:
        return APPROVAL_REQUIREMENTS[kind]
    except KeyError:
        raise ValidationError({"subject_kind": f"Unknown approval subject: {kind}"})


def _subject(kind: str, subject_id: int):
    if kind == LOO_CANDIDATE:
        sample = Sample.objects.filter(pk=subject_id).first()
        if sample is None:
            raise NotFound("Sample not found.")
        return sample
    raise ValidationError({"subject_kind": f"Unknown approval subject: {kind}"})


def check_eligible(kind: str, subject) -> None:
    """
    A sample becomes an LOO candidate only once it is verified and carries a lab code.
    """
    if kind == LOO_CANDIDATE:
        if not subject.is_verified:
            raise PreconditionFailed("Sample must be verified before LOO approval.", sample_id=subject.pk)
        if not subject.lab_sample_code:
            raise PreconditionFailed("Sample has no lab code.", sample_id=subject.pk)


# ============================================================
# Writes
# ============================================================
def set_approval(*, kind: str, subject_id: int, role_code: str, approved: bool, user) -> ApprovalLedgerEntry:
    require_authenticated(user)
    codes = required_codes(kind)
    code = normalize_role_code(role_code)
    if code not in codes:
        raise ValidationError({"role_code": f"Role code must be one of: {', '.join(codes)}."})

    subject = _subject(kind, subject_id)
    require_role_code(user, code, action=f"approval.{kind}", entity=subject)
    check_eligible(kind, subject)

    with transaction.atomic():
        entry, _ = ApprovalLedgerEntry.objects.get_or_create(
            subject_kind=kind,
            subject_id=subject_id,
            role_code=code,
        )
        entry = ApprovalLedgerEntry.objects.select_for_update().get(pk=entry.pk)
        old = {"approved_at": entry.approved_at, "approved_by": entry.approved_by_id}

        if approved:
            if entry.approved_at is None:
                entry.approved_at = timezone.now()
                entry.approved_by = user
        else:
            entry.approved_at = None
            entry.approved_by = None

        entry.updated_by = user
        entry.save(update_fields=["approved_at", "approved_by", "updated_by", "updated_at"])

        audit.record(
            "approval.approved" if approved else "approval.cleared",
            actor=user,
            entity=entry,
            old_values=old,
            new_values={
                "subject_kind": kind,
                "subject_id": subject_id,
                "role_code": code,
                "approved_at": entry.approved_at,
                "approved_by": entry.approved_by_id,
            },
        )

    logger.info("%s %s:%s %s by %s", "Approved" if approved else "Cleared", kind, subject_id, code, user.pk)
    return entry


# ============================================================
# Reads
# ============================================================
def approval_summary(kind: str, subject_id: int) -> Dict[str, dict]:
    codes = required_codes(kind)
    rows = {
        e.role_code: e
        for e in ApprovalLedgerEntry.objects.filter(subject_kind=kind, subject_id=subject_id)
    }
    out = {}
    for code in codes:
        e = rows.get(code)
        out[code] = {
            "approved": bool(e and e.is_approved),
            "approved_at": e.approved_at if e else None,
            "approved_by": e.approved_by_id if e else None,
            "updated_by": e.updated_by_id if e else None,
        }
    return out


def readiness(kind: str, subject_ids: Iterable[int]) -> Dict[int, bool]:
    """
    {subject_id: ready} where ready means every required code has approved_at set.
    """
    codes = set(required_codes(kind))
    ids = list(subject_ids)
    approved: Dict[int, set] = {i: set() for i in ids}
    for sid, code in ApprovalLedgerEntry.objects.filter(
        subject_kind=kind,
        subject_id__in=ids,
        approved_at__isnull=False,
    ).values_list("subject_id", "role_code"):
        approved.setdefault(sid, set()).add(code)
    return {sid: codes <= approved.get(sid, set()) for sid in ids}


def is_ready(kind: str, subject_id: int) -> bool:
    return readiness(kind, [subject_id])[subject_id]


def is_ready_locked(kind: str, subject_id: int) -> bool:
    """
    is_ready with the subject's ledger rows locked for the caller's transaction,
    so a concurrent clear either lands before this read or waits for the commit.
    """
    codes = set(required_codes(kind))
    approved = {
        e.role_code
        for e in ApprovalLedgerEntry.objects.select_for_update().filter(subject_kind=kind, subject_id=subject_id)
        if e.approved_at is not None
    }
    return codes <= approved
