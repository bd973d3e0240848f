# sample_core/services/change_requests.py
"""
Sample-ID change requests.

An administrator proposes a corrected lab code; OM or LH reviews it. Approval
replaces the code and pushes the prefix counter past the new ordinal so the
allocator never hands it out again. Requests are never deleted.
"""
from __future__ import annotations

import logging

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import Conflict, PreconditionFailed, RoleForbidden
from sample_core.models import LetterOfOrder, Report, Sample, SampleIdChangeRequest
from sample_core.permissions import require_capability

from . import audit, lab_codes, sequences

logger = logging.getLogger(__name__)


def _normalized(raw: str) -> str:
    try:
        return lab_codes.normalize_code(raw)
    except ValueError:
        raise ValidationError({"proposed_code": "Use the PREFIX-NNN format, e.g. BML-004."})


def _has_locked_documents(sample: Sample) -> bool:
    return (
        LetterOfOrder.objects.filter(sample=sample, is_locked=True).exists()
        or Report.objects.filter(sample=sample, is_locked=True).exists()
    )


def _check_code_free(code: str, sample: Sample) -> None:
    if code == sample.lab_sample_code:
        raise ValidationError({"proposed_code": "Proposed code is the same as the current code."})
    if lab_codes.code_in_use(code, exclude_sample_id=sample.pk):
        raise Conflict("Proposed code is already used by another sample.", proposed_code=code)


def propose_change(*, sample_id: int, proposed_code: str, reason: str = "", user) -> SampleIdChangeRequest:
    sample = Sample.objects.filter(pk=sample_id).first()
    if sample is None:
        raise NotFound("Sample not found.")

    require_capability(user, "change_request.propose", entity=sample)
    code = _normalized(proposed_code)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError({"reason": "A reason is required."})

    with transaction.atomic():
        sample = Sample.objects.select_for_update().get(pk=sample_id)

        if not sample.lab_sample_code:
            raise PreconditionFailed("Sample has no lab code to change.", sample_id=sample.pk)
        if _has_locked_documents(sample):
            raise PreconditionFailed(
                "The current code already appears on a locked document.",
                sample_id=sample.pk,
            )
        if SampleIdChangeRequest.objects.filter(sample=sample, status=SampleIdChangeRequest.Status.PENDING).exists():
            raise Conflict("A change request is already pending for this sample.", sample_id=sample.pk)

        _check_code_free(code, sample)

        try:
            with transaction.atomic():
                cr = SampleIdChangeRequest.objects.create(
                    sample=sample,
                    current_code=sample.lab_sample_code,
                    proposed_code=code,
                    reason=reason,
                    requested_by=user,
                )
        except IntegrityError:
            raise Conflict("A change request is already pending for this sample.", sample_id=sample.pk)

        audit.record(
            "sample_id_change.proposed",
            actor=user,
            entity=cr,
            new_values={
                "sample_id": sample.pk,
                "current_code": cr.current_code,
                "proposed_code": code,
                "reason": reason,
            },
        )

    return cr


def _lock_pending(request_id: int, user) -> SampleIdChangeRequest:
    try:
        cr = SampleIdChangeRequest.objects.select_for_update().get(pk=request_id)
    except SampleIdChangeRequest.DoesNotExist:
        raise NotFound("Change request not found.")

    if cr.is_terminal:
        raise Conflict(f"Change request is already {cr.status.lower()}.", status=cr.status)
    if cr.requested_by_id == user.pk:
        raise RoleForbidden("The requester cannot review their own change request.")
    return cr


def _review_entity(request_id: int) -> SampleIdChangeRequest:
    cr = SampleIdChangeRequest.objects.filter(pk=request_id).first()
    if cr is None:
        raise NotFound("Change request not found.")
    return cr


def approve_change(*, request_id: int, note: str = "", user) -> SampleIdChangeRequest:
    require_capability(user, "change_request.review", entity=_review_entity(request_id))

    with transaction.atomic():
        cr = _lock_pending(request_id, user)
        sample = Sample.objects.select_for_update().get(pk=cr.sample_id)

        if sample.lab_sample_code != cr.current_code:
            raise Conflict(
                "The sample's code changed after this request was made.",
                current_code=sample.lab_sample_code,
            )
        if _has_locked_documents(sample):
            raise PreconditionFailed("The current code already appears on a locked document.")
        _check_code_free(cr.proposed_code, sample)

        prefix, number = lab_codes.parse_code(cr.proposed_code)
        sequences.ensure_at_least(lab_codes.sequence_name(prefix), number)

        now = timezone.now()
        Sample.objects.filter(pk=sample.pk).update(lab_sample_code=cr.proposed_code, updated_at=now)

        cr.status = SampleIdChangeRequest.Status.APPROVED
        cr.reviewed_by = user
        cr.reviewed_at = now
        cr.review_note = (note or "").strip()
        cr.save(update_fields=["status", "reviewed_by", "reviewed_at", "review_note", "updated_at"])

        audit.record(
            "sample.lab_code_changed",
            actor=user,
            entity=sample,
            old_values={"lab_sample_code": cr.current_code},
            new_values={"lab_sample_code": cr.proposed_code, "change_request_id": cr.pk},
        )

    logger.info("Sample %s code %s -> %s", cr.sample_id, cr.current_code, cr.proposed_code)
    return cr


def reject_change(*, request_id: int, note: str, user) -> SampleIdChangeRequest:
    require_capability(user, "change_request.review", entity=_review_entity(request_id))
    note = (note or "").strip()
    if not note:
        raise ValidationError({"note": "A note is required when rejecting a change request."})

    with transaction.atomic():
        cr = _lock_pending(request_id, user)
        cr.status = SampleIdChangeRequest.Status.REJECTED
        cr.reviewed_by = user
        cr.reviewed_at = timezone.now()
        cr.review_note = note
        cr.save(update_fields=["status", "reviewed_by", "reviewed_at", "review_note", "updated_at"])

        audit.record(
            "sample_id_change.rejected",
            actor=user,
            entity=cr,
            new_values={"note": note},
        )

    return cr
