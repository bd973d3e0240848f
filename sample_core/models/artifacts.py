# sample_core/models/artifacts.py

from django.conf import settings
from django.db import models

from .core import Sample, TimeStampedModel


# ============================================================
# Reagent calculation
# ============================================================
class ReagentCalculation(TimeStampedModel):
    """
    Computed reagent plan for a sample.

    baseline is the computed value, effective the approved override, proposal a
    pending edit. version_no moves forward on every propose and every decision.
    """

    sample = models.OneToOneField(
        Sample,
        on_delete=models.PROTECT,
        related_name="reagent_calculation",
    )

    baseline = models.JSONField(default=dict, blank=True)
    effective = models.JSONField(null=True, blank=True)
    proposal = models.JSONField(null=True, blank=True)
    proposal_note = models.TextField(blank=True)

    proposed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="proposed_reagent_calculations",
    )
    proposed_at = models.DateTimeField(null=True, blank=True)

    version_no = models.PositiveIntegerField(default=1)
    locked = models.BooleanField(default=False)

    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_reagent_calculations",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    last_decision = models.CharField(max_length=16, blank=True)
    last_decision_note = models.TextField(blank=True)

    computed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="computed_reagent_calculations",
    )

    @property
    def current_value(self):
        return self.effective if self.effective is not None else self.baseline

    def __str__(self):
        return f"reagent-calc:{self.sample_id} v{self.version_no}"


class ReagentCalculationVersion(models.Model):
    class Event(models.TextChoices):
        CREATED = "created", "Created"
        PROPOSED = "proposed", "Proposed"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    calculation = models.ForeignKey(
        ReagentCalculation,
        on_delete=models.CASCADE,
        related_name="versions",
    )
    version_no = models.PositiveIntegerField()
    event = models.CharField(max_length=16, choices=Event.choices)
    payload = models.JSONField(null=True, blank=True)
    note = models.TextField(blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["calculation_id", "version_no"]
        constraints = [
            models.UniqueConstraint(
                fields=["calculation", "version_no"],
                name="uq_reagent_calc_version",
            ),
        ]

    def __str__(self):
        return f"{self.calculation_id} v{self.version_no} {self.event}"
