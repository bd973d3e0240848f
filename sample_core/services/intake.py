# sample_core/services/intake.py
"""
Intake checklist submission and promotion.

A passed checklist is the only place where an inspection outcome turns into a
permanent lab code. Validation happens before the transaction, the code is
allocated after the checklist row exists, and both commit together.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from django.db import transaction
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import Conflict, PreconditionFailed
from sample_core.models import IntakeChecklist, Sample
from sample_core.permissions import require_capability
from sample_core.roles import SAMPLE_COLLECTOR
from sample_core.workflows import normalize_state
from sample_core.workflows.executor import apply_transition, lock_sample

from . import audit, lab_codes

logger = logging.getLogger(__name__)

CHECK_KEYS = IntakeChecklist.CHECK_FIELDS


def _as_bool(value) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        v = value.strip().lower()
        if v in {"true", "1", "yes", "pass", "passed"}:
            return True
        if v in {"false", "0", "no", "fail", "failed"}:
            return False
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    return None


def validate_checklist(checks: Mapping[str, Any], notes: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Item-by-item validation. Every check must be a boolean; every failed check
    needs a non-empty reason under notes[<check>].

    Returns {"checks": {...}, "notes": {...}} with cleaned values.
    """
    notes = notes or {}
    errors: Dict[str, Any] = {}
    note_errors: Dict[str, str] = {}
    cleaned: Dict[str, bool] = {}

    for key in CHECK_KEYS:
        value = _as_bool((checks or {}).get(key))
        if value is None:
            errors[key] = "This check is required and must be true or false."
            continue
        cleaned[key] = value
        if not value and not str(notes.get(key) or "").strip():
            note_errors[key] = f"A reason is required when '{key}' fails."

    if note_errors:
        errors["notes"] = note_errors
    if errors:
        raise ValidationError(errors)

    cleaned_notes = {
        key: str(notes.get(key)).strip()
        for key in CHECK_KEYS
        if not cleaned[key]
    }
    return {"checks": cleaned, "notes": cleaned_notes}


def submit_checklist(*, sample_id: int, checks: Mapping[str, Any], notes=None, user) -> dict:
    """
    Record the intake checklist for a sample under inspection.

    all checks pass -> intake_checklist_passed -> intake_validated, lab code assigned
    any check fails -> rejected (note lists the failed checks and reasons)
    second submission -> Conflict
    """
    sample = Sample.objects.filter(pk=sample_id).first()
    if sample is None:
        raise NotFound("Sample not found.")

    require_capability(user, "intake.submit", entity=sample)
    data = validate_checklist(checks, notes)

    with transaction.atomic():
        sample = lock_sample(sample_id)

        if IntakeChecklist.objects.filter(sample=sample).exists():
            raise Conflict("Intake checklist already submitted for this sample.", sample_id=sample.pk)

        current = normalize_state(sample.request_status)
        if current != "under_inspection":
            raise PreconditionFailed(
                "Intake checklist can only be submitted while the sample is under inspection.",
                current=current,
            )

        is_passed = all(data["checks"].values())
        checklist = IntakeChecklist.objects.create(
            sample=sample,
            notes=data["notes"],
            is_passed=is_passed,
            checked_by=user,
            **data["checks"],
        )

        if is_passed:
            apply_transition(sample=sample, target="intake_checklist_passed", user=user, role=SAMPLE_COLLECTOR)
            apply_transition(sample=sample, target="intake_validated", user=user, role=SAMPLE_COLLECTOR)
            code, assigned = lab_codes.assign_lab_code(sample)
            if assigned:
                audit.record(
                    "sample.lab_code_assigned",
                    actor=user,
                    entity=sample,
                    old_values={"lab_sample_code": None},
                    new_values={"lab_sample_code": code},
                )
        else:
            reason = "; ".join(f"{k}: {v}" for k, v in data["notes"].items())
            apply_transition(
                sample=sample,
                target="rejected",
                user=user,
                role=SAMPLE_COLLECTOR,
                note=f"Intake checklist failed. {reason}",
            )

        audit.record(
            "intake.checklist_submitted",
            actor=user,
            entity=checklist,
            new_values={
                "sample_id": sample.pk,
                "checks": data["checks"],
                "notes": data["notes"],
                "is_passed": is_passed,
            },
        )

    logger.info(
        "Sample %s intake checklist %s",
        sample.pk,
        "passed" if is_passed else "failed",
    )

    return {
        "checklist": checklist,
        "sample": sample,
        "is_passed": is_passed,
        "request_status": sample.request_status,
        "lab_sample_code": sample.lab_sample_code,
    }
