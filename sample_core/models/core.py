# sample_core/models/core.py

from django.conf import settings
from django.db import models
from django.utils import timezone

from sample_core.workflows.guards import WorkflowWriteGuardMixin


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Client
# ============================================================
class Client(TimeStampedModel):
    """
    External customer submitting samples. Never hard-deleted: soft_delete()
    tombstones the row so historical samples keep their owner.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="client_profile",
    )
    name = models.CharField(max_length=255)
    organization = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=50, blank=True)
    is_active = models.BooleanField(default=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    def soft_delete(self):
        self.is_active = False
        self.deleted_at = timezone.now()
        self.save(update_fields=["is_active", "deleted_at", "updated_at"])

    def __str__(self):
        return self.name


# ============================================================
# User Roles
# ============================================================
class UserRole(TimeStampedModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="lims_roles",
    )
    role = models.CharField(max_length=64)
    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ("user", "role")

    def __str__(self):
        return f"{self.user} - {self.role}"


# ============================================================
# Sample batch (request group)
# ============================================================
class SampleBatch(TimeStampedModel):
    client = models.ForeignKey(
        Client,
        on_delete=models.PROTECT,
        related_name="batches",
    )
    batch_code = models.CharField(max_length=100, unique=True)
    notes = models.TextField(blank=True)

    def __str__(self):
        return self.batch_code


# ============================================================
# Sample
# ============================================================
class Sample(WorkflowWriteGuardMixin, TimeStampedModel):
    GUARDED_FIELDS = ("request_status", "lab_sample_code", "verified_at")

    class Crosscheck(models.TextChoices):
        PENDING = "pending", "Pending"
        PASSED = "passed", "Passed"
        FAILED = "failed", "Failed"

    client = models.ForeignKey(
        Client,
        on_delete=models.PROTECT,
        related_name="samples",
    )
    batch = models.ForeignKey(
        SampleBatch,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="samples",
    )

    sample_type = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)
    workflow_group = models.CharField(
        max_length=32,
        blank=True,
        help_text="Selects the lab code prefix and downstream validation rules (e.g. wgs, usr, lbma).",
    )

    lab_sample_code = models.CharField(max_length=32, unique=True, null=True, blank=True)

    request_status = models.CharField(max_length=40, default="draft", db_index=True)
    request_status_note = models.TextField(blank=True)

    # Custody chain; each stamp is set at most once, in order.
    admin_received_from_client_at = models.DateTimeField(null=True, blank=True)
    admin_brought_to_collector_at = models.DateTimeField(null=True, blank=True)
    collector_received_at = models.DateTimeField(null=True, blank=True)
    collector_intake_completed_at = models.DateTimeField(null=True, blank=True)
    collector_returned_to_admin_at = models.DateTimeField(null=True, blank=True)
    admin_received_from_collector_at = models.DateTimeField(null=True, blank=True)
    client_picked_up_at = models.DateTimeField(null=True, blank=True)

    crosscheck_status = models.CharField(
        max_length=16,
        choices=Crosscheck.choices,
        default=Crosscheck.PENDING,
    )
    physical_label_code = models.CharField(max_length=64, blank=True)
    crosscheck_note = models.TextField(blank=True)
    crosschecked_at = models.DateTimeField(null=True, blank=True)
    crosschecked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="crosschecked_samples",
    )

    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="verified_samples",
    )
    verified_by_role = models.CharField(max_length=8, blank=True)

    class Meta:
        ordering = ["id"]

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None

    def __str__(self):
        return self.lab_sample_code or f"sample#{self.pk}"


# ============================================================
# Intake checklist
# ============================================================
class IntakeChecklist(TimeStampedModel):
    CHECK_FIELDS = (
        "sample_physical_condition",
        "volume",
        "identity",
        "packing",
        "supporting_documents",
    )

    sample = models.OneToOneField(
        Sample,
        on_delete=models.PROTECT,
        related_name="intake_checklist",
    )

    sample_physical_condition = models.BooleanField()
    volume = models.BooleanField()
    identity = models.BooleanField()
    packing = models.BooleanField()
    supporting_documents = models.BooleanField()

    # Failure reason per check key.
    notes = models.JSONField(default=dict, blank=True)
    is_passed = models.BooleanField(default=False)

    checked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="intake_checklists",
    )

    def failed_checks(self):
        return [f for f in self.CHECK_FIELDS if not getattr(self, f)]

    def __str__(self):
        return f"checklist:{self.sample_id} ({'passed' if self.is_passed else 'failed'})"


# ============================================================
# Sequence counters
# ============================================================
class SequenceCounter(models.Model):
    name = models.CharField(max_length=64, unique=True)
    next_number = models.PositiveBigIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} -> {self.next_number}"


# ============================================================
# Audit Log
# ============================================================
class AuditLog(models.Model):
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_entries",
    )
    action = models.CharField(max_length=100)
    entity_name = models.CharField(max_length=64)
    entity_id = models.CharField(max_length=64, blank=True)
    old_values = models.JSONField(null=True, blank=True)
    new_values = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["entity_name", "entity_id"], name="auditlog_entity_idx"),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_name}:{self.entity_id}"


# ============================================================
# Workflow Transition
# ============================================================
class WorkflowTransition(models.Model):
    kind = models.CharField(max_length=32)
    object_id = models.PositiveBigIntegerField()
    from_status = models.CharField(max_length=40)
    to_status = models.CharField(max_length=40)
    role = models.CharField(max_length=64, blank=True)
    note = models.TextField(blank=True)

    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workflow_transitions",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["kind", "object_id"], name="transition_kind_object_idx"),
        ]

    def __str__(self):
        return (
            f"{self.kind}:{self.object_id} "
            f"{self.from_status} -> {self.to_status}"
        )
