# sample_core/services/artifacts.py
"""
Reagent calculation proposals and approvals.

  propose(data)   only while unlocked; version_no + 1; sets proposal, never effective
  decide(True)    proposal -> effective, approver recorded, locked; version_no + 1
  decide(False)   proposal discarded, stays unlocked; version_no + 1

Both steps require every sample in the batch to have a passed crosscheck.
"""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import PreconditionFailed
from sample_core.models import ReagentCalculation, ReagentCalculationVersion, Sample
from sample_core.permissions import require_capability

from . import audit

logger = logging.getLogger(__name__)


# ============================================================
# Crosscheck gate
# ============================================================
def crosscheck_blockers(sample: Sample) -> List[int]:
    """
    Ids of samples in the same batch (or the sample itself when it has no batch)
    whose crosscheck has not passed.
    """
    if sample.batch_id:
        qs = Sample.objects.filter(batch_id=sample.batch_id)
    else:
        qs = Sample.objects.filter(pk=sample.pk)
    return sorted(
        qs.exclude(crosscheck_status=Sample.Crosscheck.PASSED).values_list("pk", flat=True)
    )


def require_crosscheck_passed(sample: Sample) -> None:
    blocking = crosscheck_blockers(sample)
    if blocking:
        raise PreconditionFailed(
            "Every sample in the batch must pass crosscheck first.",
            blocking_sample_ids=blocking,
        )


# ============================================================
# Helpers
# ============================================================
def _as_payload(data, field: str) -> dict:
    if not isinstance(data, Mapping):
        raise ValidationError({field: "Must be an object."})
    return dict(data)


def _version(calc: ReagentCalculation, event: str, *, payload=None, note: str = "", user=None):
    return ReagentCalculationVersion.objects.create(
        calculation=calc,
        version_no=calc.version_no,
        event=event,
        payload=payload,
        note=note or "",
        actor=user,
    )


def _lock(calculation_id: int) -> ReagentCalculation:
    try:
        return (
            ReagentCalculation.objects.select_for_update()
            .select_related("sample")
            .get(pk=calculation_id)
        )
    except ReagentCalculation.DoesNotExist:
        raise NotFound("Reagent calculation not found.")


def _get(calculation_id: int) -> ReagentCalculation:
    calc = ReagentCalculation.objects.select_related("sample").filter(pk=calculation_id).first()
    if calc is None:
        raise NotFound("Reagent calculation not found.")
    return calc


# ============================================================
# Operations
# ============================================================
def create_calculation(*, sample_id: int, baseline: Optional[Mapping[str, Any]] = None, user) -> ReagentCalculation:
    """
    Record the computed baseline for a sample. Existing calculations are returned as-is.
    """
    sample = Sample.objects.filter(pk=sample_id).first()
    if sample is None:
        raise NotFound("Sample not found.")

    require_capability(user, "artifact.create", entity=sample)
    baseline = _as_payload(baseline or {}, "baseline")

    with transaction.atomic():
        sample = Sample.objects.select_for_update().get(pk=sample_id)
        existing = ReagentCalculation.objects.filter(sample=sample).first()
        if existing is not None:
            return existing

        calc = ReagentCalculation.objects.create(sample=sample, baseline=baseline, computed_by=user)
        _version(calc, ReagentCalculationVersion.Event.CREATED, payload=baseline, user=user)

        audit.record(
            "reagent_calc.created",
            actor=user,
            entity=calc,
            new_values={"sample_id": sample.pk, "baseline": baseline, "version_no": calc.version_no},
        )

    return calc


def propose(*, calculation_id: int, data: Mapping[str, Any], note: str = "", user) -> ReagentCalculation:
    calc = _get(calculation_id)
    require_capability(user, "artifact.propose", entity=calc)
    data = _as_payload(data, "data")

    with transaction.atomic():
        calc = _lock(calculation_id)
        if calc.locked:
            raise PreconditionFailed("Reagent calculation is locked.", calculation_id=calc.pk)

        require_crosscheck_passed(calc.sample)

        old = {"version_no": calc.version_no, "proposal": calc.proposal}

        calc.version_no += 1
        calc.proposal = data
        calc.proposal_note = (note or "").strip()
        calc.proposed_by = user
        calc.proposed_at = timezone.now()
        calc.save(
            update_fields=[
                "version_no",
                "proposal",
                "proposal_note",
                "proposed_by",
                "proposed_at",
                "updated_at",
            ]
        )
        _version(calc, ReagentCalculationVersion.Event.PROPOSED, payload=data, note=calc.proposal_note, user=user)

        audit.record(
            "reagent_calc.proposed",
            actor=user,
            entity=calc,
            old_values=old,
            new_values={"version_no": calc.version_no, "proposal": data},
        )

    logger.info("Reagent calculation %s proposal v%s", calc.pk, calc.version_no)
    return calc


def decide(*, calculation_id: int, approve: bool, note: str = "", user) -> ReagentCalculation:
    calc = _get(calculation_id)
    require_capability(user, "artifact.decide", entity=calc)
    note = (note or "").strip()

    with transaction.atomic():
        calc = _lock(calculation_id)
        if calc.proposal is None:
            raise PreconditionFailed("There is no pending proposal to decide on.", calculation_id=calc.pk)

        require_crosscheck_passed(calc.sample)

        proposal = calc.proposal
        old = {
            "version_no": calc.version_no,
            "effective": calc.effective,
            "locked": calc.locked,
        }

        if approve:
            calc.effective = proposal
            calc.approved_by = user
            calc.approved_at = timezone.now()
            calc.locked = True
            event = ReagentCalculationVersion.Event.APPROVED
        else:
            event = ReagentCalculationVersion.Event.REJECTED

        calc.proposal = None
        calc.version_no += 1
        calc.last_decision = event
        calc.last_decision_note = note
        calc.save(
            update_fields=[
                "effective",
                "approved_by",
                "approved_at",
                "locked",
                "proposal",
                "version_no",
                "last_decision",
                "last_decision_note",
                "updated_at",
            ]
        )
        _version(calc, event, payload=proposal, note=note, user=user)

        audit.record(
            f"reagent_calc.{event}",
            actor=user,
            entity=calc,
            old_values=old,
            new_values={
                "version_no": calc.version_no,
                "effective": calc.effective,
                "locked": calc.locked,
            },
        )

    logger.info("Reagent calculation %s %s at v%s", calc.pk, event, calc.version_no)
    return calc
