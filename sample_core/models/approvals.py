# sample_core/models/approvals.py

from django.conf import settings
from django.db import models

from .core import Sample, TimeStampedModel


# ============================================================
# Approval ledger
# ============================================================
class ApprovalLedgerEntry(TimeStampedModel):
    """
    One row per (subject, role code). Clearing an approval nulls approved_at and
    approved_by but keeps the row and updated_by, so the last actor stays visible.
    """

    subject_kind = models.CharField(max_length=32)
    subject_id = models.PositiveBigIntegerField()
    role_code = models.CharField(max_length=8)

    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approval_entries",
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["subject_kind", "subject_id", "role_code"],
                name="uq_approval_subject_role",
            ),
        ]
        indexes = [
            models.Index(fields=["subject_kind", "subject_id"], name="approval_subject_idx"),
        ]

    @property
    def is_approved(self) -> bool:
        return self.approved_at is not None

    def __str__(self):
        state = "approved" if self.is_approved else "open"
        return f"{self.subject_kind}:{self.subject_id} {self.role_code} {state}"


# ============================================================
# Sample-ID change request
# ============================================================
class SampleIdChangeRequest(TimeStampedModel):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"

    sample = models.ForeignKey(
        Sample,
        on_delete=models.PROTECT,
        related_name="id_change_requests",
    )
    current_code = models.CharField(max_length=32)
    proposed_code = models.CharField(max_length=32)
    reason = models.TextField(blank=True)

    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="id_change_requests",
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_id_change_requests",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    review_note = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["sample"],
                condition=models.Q(status="PENDING"),
                name="uq_one_pending_id_change_per_sample",
            ),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status != self.Status.PENDING

    def __str__(self):
        return f"{self.current_code} -> {self.proposed_code} ({self.status})"
