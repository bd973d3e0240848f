# sample_core/workflows/guards.py

from django.core.exceptions import PermissionDenied
from django.db import models


def _stored_values(instance, fields):
    """Current database values of ``fields`` for a saved instance, else None."""
    if instance.pk is None or not fields:
        return None
    return type(instance).objects.filter(pk=instance.pk).values(*fields).first()


def _changed_fields(instance, stored, fields):
    return [name for name in fields if stored[name] != getattr(instance, name, None)]


class WorkflowWriteGuardMixin(models.Model):
    """
    Lifecycle-owned columns (GUARDED_FIELDS) only move through the executor and
    the engine services. A plain ``save()`` that changes one of them on an
    existing row raises PermissionDenied; creating a row is unrestricted.

    The engine saves with ``_workflow_bypass=True`` (or sets the attribute on
    the instance) after it has checked roles and legality itself.
    """

    GUARDED_FIELDS: tuple = ("status",)
    WORKFLOW_BYPASS_KWARG = "_workflow_bypass"

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        bypass = kwargs.pop(self.WORKFLOW_BYPASS_KWARG, False) or getattr(self, "_workflow_bypass", False)

        if not bypass:
            stored = _stored_values(self, self.GUARDED_FIELDS)
            changed = _changed_fields(self, stored, self.GUARDED_FIELDS) if stored else []
            if changed:
                raise PermissionDenied(
                    f"{', '.join(changed)} can only change through the sample workflow endpoints."
                )

        return super().save(*args, **kwargs)


class LockedDocumentGuardMixin(models.Model):
    """
    Once a document is locked its stored reference, hashes and lock flag are frozen.
    Unlocked documents save normally; the engine locks them with a queryset update.
    """

    LOCKED_FIELDS: tuple = (
        "file_path",
        "document_hash",
        "verification_code",
        "payload_hash",
        "is_locked",
        "locked_at",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        stored = _stored_values(self, self.LOCKED_FIELDS)
        if stored and stored["is_locked"]:
            changed = _changed_fields(self, stored, self.LOCKED_FIELDS)
            if changed:
                raise PermissionDenied(
                    "Locked documents are immutable; refusing to change "
                    f"{', '.join(changed)}."
                )

        return super().save(*args, **kwargs)
