# sample_core/workflows/executor.py

from __future__ import annotations

import logging
from typing import Iterable, Optional

from django.db import transaction
from django.utils import timezone

from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import PreconditionFailed, RoleForbidden
from sample_core.models import Sample, WorkflowTransition
from sample_core.permissions import require_authenticated, require_roles, roles_for_user
from sample_core.roles import CLIENT, normalize_roles
from sample_core.services import audit
from sample_core.workflows import (
    REQUEST_KIND,
    REQUEST_TRANSITION_ROLES,
    ENGINE_ONLY_TARGETS,
    STATE_CUSTODY_LINKS,
    allowed_next_states,
    engine_only,
    normalize_state,
    note_required,
    required_roles,
    validate_transition,
)
from sample_core.workflows.custody import missing_predecessor, timestamp_field

logger = logging.getLogger(__name__)


def _roles_into(target: str) -> set:
    out = set()
    for targets in REQUEST_TRANSITION_ROLES.values():
        out |= set(targets.get(target, set()))
    return out


def _acting_role(roles: Iterable[str], allowed: Iterable[str]) -> str:
    both = sorted(normalize_roles(roles) & set(allowed))
    return both[0] if both else ""


def _check_client_ownership(*, sample, user, roles, allowed) -> None:
    """
    A client may only move their own samples. Staff roles on the same edge
    are not subject to this.
    """
    staff_match = (normalize_roles(roles) & set(allowed)) - {CLIENT}
    if staff_match or CLIENT not in allowed:
        return
    owner_id = getattr(sample.client, "user_id", None)
    if owner_id != user.pk:
        audit.record_blocked(
            "request.transition",
            actor=user,
            entity=sample,
            reason="Clients may only act on their own samples.",
            roles=roles,
        )
        raise RoleForbidden("Clients may only act on their own samples.")


def _check_transition(current: str, target: str) -> None:
    if not allowed_next_states(current):
        raise PreconditionFailed(
            f"Sample request is in terminal state '{current}' and cannot be modified.",
            current=current,
            target=target,
        )
    try:
        validate_transition(current, target)
    except ValueError as e:
        raise PreconditionFailed(str(e), current=current, target=target)


def _check_not_engine_only(sample: Sample, target: str) -> None:
    if engine_only(target):
        raise PreconditionFailed(
            f"'{target}' is only reached by submitting the intake checklist.",
            current=sample.request_status,
            target=target,
            endpoint=f"/lims/samples/{sample.pk}/{ENGINE_ONLY_TARGETS[target]}/",
        )


def apply_transition(
    *,
    sample: Sample,
    target: str,
    user=None,
    role: str = "",
    note: str = "",
    now=None,
) -> dict:
    """
    Apply current -> target on a sample row the caller has already locked
    (select_for_update inside an open transaction). Legality and roles are the
    caller's responsibility; this writes the status, the linked custody stamp,
    the transition row and the audit entry.
    """
    now = now or timezone.now()
    from_status = sample.request_status
    target = normalize_state(target)

    updates = {"request_status": target, "updated_at": now}
    if note:
        updates["request_status_note"] = note

    stamped = None
    linked = STATE_CUSTODY_LINKS.get(target)
    if linked and getattr(sample, timestamp_field(linked)) is None:
        missing = missing_predecessor(sample, linked)
        if missing:
            raise PreconditionFailed(
                f"Custody step '{linked}' requires '{missing}' first.",
                missing_predecessor=missing,
                event=linked,
            )
        updates[timestamp_field(linked)] = now
        stamped = linked

    Sample.objects.filter(pk=sample.pk).update(**updates)
    for field, value in updates.items():
        setattr(sample, field, value)

    t = WorkflowTransition.objects.create(
        kind=REQUEST_KIND,
        object_id=sample.pk,
        from_status=from_status,
        to_status=target,
        role=role,
        note=note or "",
        performed_by=user if getattr(user, "is_authenticated", False) else None,
    )

    audit.record(
        "request.transition",
        actor=user,
        entity=sample,
        old_values={"request_status": from_status},
        new_values={
            "request_status": target,
            "note": note or "",
            "custody_event": stamped,
        },
    )

    logger.info("Sample %s: %s -> %s", sample.pk, from_status, target)

    return {
        "changed": True,
        "kind": REQUEST_KIND,
        "object_id": sample.pk,
        "from_status": from_status,
        "to_status": target,
        "custody_event": stamped,
        "transition_id": t.id,
    }


def _noop(sample: Sample, target: str) -> dict:
    return {
        "changed": False,
        "kind": REQUEST_KIND,
        "object_id": sample.pk,
        "from_status": sample.request_status,
        "to_status": target,
        "custody_event": None,
        "transition_id": None,
    }


def execute_transition(*, sample_id: int, new_status: str, user, note: str = "") -> dict:
    """
    Authoritative request lifecycle transition.

    1) Repeat of the current state is a successful no-op
    2) Legality (PreconditionFailed); intake targets belong to the checklist
    3) Role gating and client ownership (RoleForbidden, audited), before any lock
    4) Mandatory note for stall states (ValidationError)
    5) Lock, re-check, apply
    """
    require_authenticated(user)
    target = normalize_state(new_status)
    note = (note or "").strip()

    sample = Sample.objects.select_related("client").filter(pk=sample_id).first()
    if sample is None:
        raise NotFound("Sample not found.")

    current = normalize_state(sample.request_status)
    roles = roles_for_user(user)

    if current == target:
        require_roles(user, _roles_into(target), action="request.transition", entity=sample)
        return _noop(sample, target)

    _check_transition(current, target)
    _check_not_engine_only(sample, target)

    allowed = required_roles(current, target)
    require_roles(user, allowed, action="request.transition", entity=sample)
    _check_client_ownership(sample=sample, user=user, roles=roles, allowed=allowed)

    if note_required(target) and not note:
        raise ValidationError({"note": f"A note is required when moving a sample to '{target}'."})

    with transaction.atomic():
        locked = Sample.objects.select_for_update().get(pk=sample.pk)
        current = normalize_state(locked.request_status)

        if current == target:
            return _noop(locked, target)

        _check_transition(current, target)
        allowed = required_roles(current, target)
        if not set(allowed) & roles:
            raise RoleForbidden(f"Your role cannot move a sample from {current} to {target}.")

        return apply_transition(
            sample=locked,
            target=target,
            user=user,
            role=_acting_role(roles, allowed),
            note=note,
        )


def lock_sample(sample_id: int) -> Sample:
    """
    select_for_update a sample inside the caller's transaction.
    """
    try:
        return Sample.objects.select_for_update().get(pk=sample_id)
    except Sample.DoesNotExist:
        raise NotFound("Sample not found.")


def transition_history(sample_id: int):
    return WorkflowTransition.objects.filter(kind=REQUEST_KIND, object_id=sample_id).order_by("created_at", "id")


__all__ = [
    "apply_transition",
    "execute_transition",
    "lock_sample",
    "transition_history",
]
