# sample_core/services/custody.py
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import PreconditionFailed
from sample_core.models import Sample
from sample_core.permissions import require_roles, roles_for_user
from sample_core.workflows import normalize_state, validate_transition
from sample_core.workflows.custody import (
    CUSTODY_CHAIN,
    CUSTODY_REQUIRED_STATES,
    CUSTODY_ROLES,
    CUSTODY_STATE_LINKS,
    custody_snapshot,
    is_custody_event,
    missing_predecessor,
    normalize_event,
    timestamp_field,
)
from sample_core.workflows.executor import apply_transition, lock_sample

from . import audit

logger = logging.getLogger(__name__)


def _result(sample: Sample, event: str, changed: bool) -> dict:
    return {
        "changed": changed,
        "sample_id": sample.pk,
        "event": event,
        "timestamp": getattr(sample, timestamp_field(event)),
        "request_status": sample.request_status,
        "custody": custody_snapshot(sample),
    }


def stamp_event(*, sample: Sample, event: str, user=None, now=None) -> bool:
    """
    Stamp one custody event on a locked sample without touching the lifecycle.
    Returns False when it was already stamped. Raises PreconditionFailed if the
    predecessor is missing.
    """
    field = timestamp_field(event)
    if getattr(sample, field) is not None:
        return False

    missing = missing_predecessor(sample, event)
    if missing:
        raise PreconditionFailed(
            f"Custody step '{event}' requires '{missing}' first.",
            missing_predecessor=missing,
            event=event,
        )

    now = now or timezone.now()
    Sample.objects.filter(pk=sample.pk).update(**{field: now, "updated_at": now})
    setattr(sample, field, now)

    audit.record(
        "custody.event",
        actor=user,
        entity=sample,
        old_values={field: None},
        new_values={field: now, "event": event},
    )
    return True


def record_custody_event(*, sample_id: int, event: str, user) -> dict:
    """
    Record a physical hand-off.

    - repeating an already stamped event is a successful no-op
    - event N requires event N-1 (PreconditionFailed naming the predecessor)
    - events linked to a lifecycle state move the request there in the same transaction
    """
    event = normalize_event(event)
    if not is_custody_event(event):
        raise ValidationError({"event": f"Unknown custody event. Use one of: {', '.join(CUSTODY_CHAIN)}."})

    sample = Sample.objects.filter(pk=sample_id).first()
    if sample is None:
        raise NotFound("Sample not found.")

    require_roles(user, CUSTODY_ROLES[event], action=f"custody.{event}", entity=sample)
    roles = roles_for_user(user)

    with transaction.atomic():
        sample = lock_sample(sample_id)

        if getattr(sample, timestamp_field(event)) is not None:
            return _result(sample, event, changed=False)

        missing = missing_predecessor(sample, event)
        if missing:
            raise PreconditionFailed(
                f"Custody step '{event}' requires '{missing}' first.",
                missing_predecessor=missing,
                event=event,
            )

        current = normalize_state(sample.request_status)
        required_states = CUSTODY_REQUIRED_STATES.get(event)
        if required_states and current not in required_states:
            raise PreconditionFailed(
                f"Custody step '{event}' is not allowed while the request is '{current}'.",
                event=event,
                current=current,
            )

        now = timezone.now()
        target = CUSTODY_STATE_LINKS.get(event)

        if target and current != target:
            try:
                validate_transition(current, target)
            except ValueError as e:
                raise PreconditionFailed(str(e), event=event, current=current, target=target)
            # apply_transition stamps the linked custody field itself.
            apply_transition(
                sample=sample,
                target=target,
                user=user,
                role=sorted(roles & CUSTODY_ROLES[event])[0],
                now=now,
            )
            if getattr(sample, timestamp_field(event)) is None:
                stamp_event(sample=sample, event=event, user=user, now=now)
        else:
            stamp_event(sample=sample, event=event, user=user, now=now)

        logger.info("Sample %s custody event %s", sample.pk, event)
        return _result(sample, event, changed=True)
