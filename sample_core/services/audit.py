# sample_core/services/audit.py
"""
Best-effort audit sink.

The business transition is the operation of record. Audit rows are written in
their own savepoint so a failing insert can never poison or abort the caller's
transaction; failures are logged and swallowed.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.utils import timezone

from sample_core.models import AuditLog

logger = logging.getLogger("sample_core.audit")


@dataclass(frozen=True)
class AuditRecord:
    action: str
    actor_id: Optional[int]
    entity_name: str
    entity_id: str
    old_values: Optional[Dict[str, Any]]
    new_values: Optional[Dict[str, Any]]
    timestamp: str


def _jsonable(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if values is None:
        return None
    return json.loads(json.dumps(values, cls=DjangoJSONEncoder))


def _entity_name(entity) -> str:
    if entity is None:
        return ""
    if isinstance(entity, str):
        return entity
    return entity.__class__.__name__


def _actor_id(actor) -> Optional[int]:
    if actor is None or not getattr(actor, "is_authenticated", False):
        return None
    return actor.pk


def record(
    action: str,
    *,
    actor=None,
    entity=None,
    entity_name: str = "",
    entity_id: Any = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
) -> Optional[AuditRecord]:
    """
    Emit one audit entry. Returns the record written, or None if the sink failed.
    """
    name = entity_name or _entity_name(entity)
    if entity_id is None and entity is not None and not isinstance(entity, str):
        entity_id = entity.pk

    rec = AuditRecord(
        action=action,
        actor_id=_actor_id(actor),
        entity_name=name,
        entity_id="" if entity_id is None else str(entity_id),
        old_values=old_values,
        new_values=new_values,
        timestamp=timezone.now().isoformat(),
    )

    try:
        with transaction.atomic():
            AuditLog.objects.create(
                actor_id=rec.actor_id,
                action=rec.action,
                entity_name=rec.entity_name,
                entity_id=rec.entity_id,
                old_values=_jsonable(rec.old_values),
                new_values=_jsonable(rec.new_values),
            )
    except Exception:
        logger.exception("Audit write failed for %s %s:%s (ignored).", action, rec.entity_name, rec.entity_id)
        return None

    logger.info("%s %s:%s actor=%s", action, rec.entity_name, rec.entity_id, rec.actor_id)
    return rec


def record_blocked(
    action: str,
    *,
    actor=None,
    entity=None,
    entity_name: str = "",
    entity_id: Any = None,
    reason: str = "",
    roles=None,
) -> Optional[AuditRecord]:
    """
    Record an authorization failure. Call before raising, outside the
    transaction that would have performed the change.
    """
    return record(
        f"{action}.blocked",
        actor=actor,
        entity=entity,
        entity_name=entity_name,
        entity_id=entity_id,
        new_values={
            "reason": reason,
            "roles": sorted(roles or []),
        },
    )
