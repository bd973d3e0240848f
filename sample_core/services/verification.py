# sample_core/services/verification.py
from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import Conflict, PreconditionFailed
from sample_core.models import IntakeChecklist, Sample
from sample_core.permissions import require_capability, require_role_code, role_codes_for_user
from sample_core.roles import normalize_role_code
from sample_core.workflows import normalize_state
from sample_core.workflows.executor import lock_sample

from . import audit

logger = logging.getLogger(__name__)


def _resolve_role_code(user, role_code: Optional[str], sample) -> str:
    if role_code:
        code = normalize_role_code(role_code)
        require_role_code(user, code, action="sample.verify", entity=sample)
        return code

    codes = sorted(role_codes_for_user(user))
    if len(codes) > 1:
        raise ValidationError({"role_code": f"You hold several role codes ({', '.join(codes)}); choose one."})
    return codes[0]


def verify_sample(*, sample_id: int, user, role_code: Optional[str] = None) -> Sample:
    """
    Record the first verification of a sample (OM or LH). First writer wins:
    a sample that already carries verified_at raises Conflict and keeps its value.
    """
    sample = Sample.objects.filter(pk=sample_id).first()
    if sample is None:
        raise NotFound("Sample not found.")

    require_capability(user, "sample.verify", entity=sample)
    code = _resolve_role_code(user, role_code, sample)

    with transaction.atomic():
        sample = lock_sample(sample_id)

        if sample.verified_at is not None:
            raise Conflict(
                "Sample has already been verified.",
                verified_at=sample.verified_at.isoformat(),
                verified_by_role=sample.verified_by_role,
            )

        current = normalize_state(sample.request_status)
        if current != "awaiting_verification":
            raise PreconditionFailed(
                "Sample must be awaiting verification.",
                current=current,
            )

        checklist = IntakeChecklist.objects.filter(sample=sample).first()
        if checklist is None or not checklist.is_passed:
            raise PreconditionFailed("Sample has no passed intake checklist.")

        if not sample.lab_sample_code:
            raise PreconditionFailed("Sample has no lab code yet.")

        now = timezone.now()
        # Conditional update keeps first-writer-wins even without the row lock.
        updated = Sample.objects.filter(pk=sample.pk, verified_at__isnull=True).update(
            verified_at=now,
            verified_by=user,
            verified_by_role=code,
            updated_at=now,
        )
        if not updated:
            raise Conflict("Sample has already been verified.")

        sample.verified_at = now
        sample.verified_by = user
        sample.verified_by_role = code

        audit.record(
            "sample.verified",
            actor=user,
            entity=sample,
            old_values={"verified_at": None},
            new_values={"verified_at": now, "verified_by_role": code},
        )

    logger.info("Sample %s verified by %s (%s)", sample.pk, user.pk, code)
    return sample
