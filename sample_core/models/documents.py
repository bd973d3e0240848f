# sample_core/models/documents.py

from django.conf import settings
from django.db import models

from sample_core.workflows.guards import LockedDocumentGuardMixin

from .core import Sample, TimeStampedModel


# ============================================================
# Locked document base
# ============================================================
class LockedDocument(LockedDocumentGuardMixin, TimeStampedModel):
    """
    A generated artifact recorded exactly once.

    document_hash is the SHA-256 of the stored bytes. verification_code is the
    SHA-256 of the draft render and is embedded in the stored bytes as the
    public verification reference.
    """

    DOCUMENT_KIND = ""

    file_path = models.CharField(max_length=255, blank=True)
    document_hash = models.CharField(max_length=64, blank=True, db_index=True)
    verification_code = models.CharField(max_length=64, blank=True, db_index=True)
    payload_hash = models.CharField(max_length=64, blank=True)
    is_locked = models.BooleanField(default=False)
    locked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        abstract = True


# ============================================================
# Letter of Order
# ============================================================
class LetterOfOrder(LockedDocument):
    DOCUMENT_KIND = "letter_of_order"

    sample = models.OneToOneField(
        Sample,
        on_delete=models.PROTECT,
        related_name="letter_of_order",
    )
    number = models.CharField(max_length=32, unique=True)
    generated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="generated_letters",
    )

    def __str__(self):
        return self.number


# ============================================================
# Report (Certificate of Analysis)
# ============================================================
class Report(LockedDocument):
    DOCUMENT_KIND = "report"

    sample = models.ForeignKey(
        Sample,
        on_delete=models.PROTECT,
        related_name="reports",
    )
    report_no = models.CharField(max_length=32, unique=True)
    summary = models.TextField(blank=True)
    results = models.JSONField(default=dict, blank=True)
    issued_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_reports",
    )

    def __str__(self):
        return self.report_no


# ============================================================
# Signatures
# ============================================================
class DocumentSignature(models.Model):
    document_kind = models.CharField(max_length=32)
    document_id = models.PositiveBigIntegerField()
    role_code = models.CharField(max_length=8)

    signed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="document_signatures",
    )
    signed_at = models.DateTimeField()
    signature_hash = models.CharField(max_length=64)

    class Meta:
        ordering = ["signed_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["document_kind", "document_id", "role_code"],
                name="uq_document_signature_slot",
            ),
        ]

    def __str__(self):
        return f"{self.document_kind}:{self.document_id} {self.role_code}"
