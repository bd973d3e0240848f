# sample_core/services/crosscheck.py
from __future__ import annotations

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import Conflict, PreconditionFailed
from sample_core.models import Sample
from sample_core.permissions import require_capability
from sample_core.workflows.executor import lock_sample

from . import audit


def _norm(value: str) -> str:
    return (value or "").strip().upper()


def submit_crosscheck(*, sample_id: int, physical_label_code: str, note: str = "", user) -> Sample:
    """
    Analyst compares the label on the physical container with the lab code.
    Match -> passed. Mismatch -> failed, and a note is mandatory.
    A failed crosscheck may be redone; a passed one is final.
    """
    sample = Sample.objects.filter(pk=sample_id).first()
    if sample is None:
        raise NotFound("Sample not found.")

    require_capability(user, "crosscheck.submit", entity=sample)

    label = (physical_label_code or "").strip()
    note = (note or "").strip()
    if not label:
        raise ValidationError({"physical_label_code": "This field is required."})

    with transaction.atomic():
        sample = lock_sample(sample_id)

        if not sample.lab_sample_code:
            raise PreconditionFailed("Sample has no lab code to crosscheck against.")

        if sample.crosscheck_status == Sample.Crosscheck.PASSED:
            raise Conflict("Crosscheck already passed for this sample.")

        matched = _norm(label) == _norm(sample.lab_sample_code)
        if not matched and not note:
            raise ValidationError({"note": "A note is required when the label does not match the lab code."})

        old = {
            "crosscheck_status": sample.crosscheck_status,
            "physical_label_code": sample.physical_label_code,
        }

        sample.crosscheck_status = Sample.Crosscheck.PASSED if matched else Sample.Crosscheck.FAILED
        sample.physical_label_code = label
        sample.crosscheck_note = note
        sample.crosschecked_at = timezone.now()
        sample.crosschecked_by = user
        sample.save(
            update_fields=[
                "crosscheck_status",
                "physical_label_code",
                "crosscheck_note",
                "crosschecked_at",
                "crosschecked_by",
                "updated_at",
            ]
        )

        audit.record(
            "sample.crosschecked",
            actor=user,
            entity=sample,
            old_values=old,
            new_values={
                "crosscheck_status": sample.crosscheck_status,
                "physical_label_code": label,
                "note": note,
            },
        )

    return sample
