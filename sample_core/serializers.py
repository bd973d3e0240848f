from __future__ import annotations

from typing import Any, Dict, List

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import (
    AuditLog,
    DocumentSignature,
    IntakeChecklist,
    LetterOfOrder,
    ReagentCalculation,
    ReagentCalculationVersion,
    Report,
    Sample,
    SampleIdChangeRequest,
    WorkflowTransition,
)
from .permissions import roles_for_user
from .workflows import allowed_transitions
from .workflows.custody import custody_snapshot, next_custody_event


# ===============================================================
# Helpers
# ===============================================================

class ImmutableFieldsMixin:
    """
    Rejects updates that try to set any of immutable_fields on an existing row.
    """
    immutable_fields: tuple[str, ...] = ()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        if self.instance is not None and self.immutable_fields:
            for field in self.immutable_fields:
                if field in attrs:
                    raise serializers.ValidationError(
                        {field: "This field is immutable."}
                    )
        return super().validate(attrs)


class UserSlimSerializer(serializers.ModelSerializer):
    class Meta:
        model = get_user_model()
        fields = ("id", "username", "email")
        read_only_fields = fields


def _request_roles(serializer) -> set:
    request = serializer.context.get("request")
    if request is None:
        return set()
    cache = serializer.context.setdefault("_roles", {})
    uid = getattr(request.user, "pk", None)
    if uid not in cache:
        cache[uid] = roles_for_user(request.user)
    return cache[uid]


# ===============================================================
# Sample
# ===============================================================

class SampleSerializer(ImmutableFieldsMixin, serializers.ModelSerializer):
    client_name = serializers.CharField(source="client.name", read_only=True)
    batch_code = serializers.CharField(source="batch.batch_code", read_only=True, default=None)
    is_verified = serializers.BooleanField(read_only=True)
    custody = serializers.SerializerMethodField()
    next_custody_event = serializers.SerializerMethodField()
    allowed_transitions = serializers.SerializerMethodField()

    immutable_fields = ("batch", "workflow_group")

    class Meta:
        model = Sample
        fields = (
            "id",
            "client",
            "client_name",
            "batch",
            "batch_code",
            "sample_type",
            "description",
            "workflow_group",
            "lab_sample_code",
            "request_status",
            "request_status_note",
            "custody",
            "next_custody_event",
            "crosscheck_status",
            "physical_label_code",
            "crosscheck_note",
            "crosschecked_at",
            "is_verified",
            "verified_at",
            "verified_by",
            "verified_by_role",
            "allowed_transitions",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "id",
            "client",
            "client_name",
            "batch_code",
            "lab_sample_code",
            "request_status",
            "request_status_note",
            "custody",
            "next_custody_event",
            "crosscheck_status",
            "physical_label_code",
            "crosscheck_note",
            "crosschecked_at",
            "is_verified",
            "verified_at",
            "verified_by",
            "verified_by_role",
            "allowed_transitions",
            "created_at",
            "updated_at",
        )

    def validate_batch(self, batch):
        client = self.context.get("client")
        if batch is not None and client is not None and batch.client_id != client.pk:
            raise serializers.ValidationError("Batch belongs to another client.")
        return batch

    def get_custody(self, obj: Sample) -> Dict[str, Any]:
        return custody_snapshot(obj)

    def get_next_custody_event(self, obj: Sample):
        return next_custody_event(obj)

    def get_allowed_transitions(self, obj: Sample) -> List[str]:
        return allowed_transitions(obj.request_status, _request_roles(self))


class TransitionInputSerializer(serializers.Serializer):
    status = serializers.CharField()
    note = serializers.CharField(required=False, allow_blank=True, default="")


class WorkflowTransitionSerializer(serializers.ModelSerializer):
    performed_by_username = serializers.CharField(source="performed_by.username", read_only=True, default=None)

    class Meta:
        model = WorkflowTransition
        fields = (
            "id",
            "from_status",
            "to_status",
            "role",
            "note",
            "performed_by",
            "performed_by_username",
            "created_at",
        )
        read_only_fields = fields


class CustodyEventInputSerializer(serializers.Serializer):
    event = serializers.CharField()


# ===============================================================
# Intake / verification / crosscheck
# ===============================================================

class IntakeChecklistSerializer(serializers.ModelSerializer):
    failed_checks = serializers.SerializerMethodField()

    class Meta:
        model = IntakeChecklist
        fields = (
            "id",
            "sample",
            *IntakeChecklist.CHECK_FIELDS,
            "notes",
            "is_passed",
            "failed_checks",
            "checked_by",
            "created_at",
        )
        read_only_fields = fields

    def get_failed_checks(self, obj: IntakeChecklist) -> List[str]:
        return obj.failed_checks()


class IntakeChecklistInputSerializer(serializers.Serializer):
    # Item-level validation happens in services.intake so errors name the check.
    checks = serializers.DictField()
    notes = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False, default=dict)


class VerifyInputSerializer(serializers.Serializer):
    role_code = serializers.CharField(required=False, allow_blank=True, default="")


class CrosscheckInputSerializer(serializers.Serializer):
    physical_label_code = serializers.CharField()
    note = serializers.CharField(required=False, allow_blank=True, default="")


# ===============================================================
# Approvals / Letters of Order
# ===============================================================

class ApprovalInputSerializer(serializers.Serializer):
    role_code = serializers.CharField()
    approved = serializers.BooleanField()


class BulkGenerateInputSerializer(serializers.Serializer):
    sample_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


class LetterOfOrderSerializer(serializers.ModelSerializer):
    lab_sample_code = serializers.CharField(source="sample.lab_sample_code", read_only=True)

    class Meta:
        model = LetterOfOrder
        fields = (
            "id",
            "sample",
            "lab_sample_code",
            "number",
            "document_hash",
            "verification_code",
            "is_locked",
            "locked_at",
            "generated_by",
            "created_at",
        )
        read_only_fields = fields


# ===============================================================
# Reagent calculation
# ===============================================================

class ReagentCalculationVersionSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReagentCalculationVersion
        fields = ("version_no", "event", "payload", "note", "actor", "created_at")
        read_only_fields = fields


class ReagentCalculationSerializer(serializers.ModelSerializer):
    current_value = serializers.JSONField(read_only=True)
    versions = ReagentCalculationVersionSerializer(many=True, read_only=True)

    class Meta:
        model = ReagentCalculation
        fields = (
            "id",
            "sample",
            "baseline",
            "effective",
            "current_value",
            "proposal",
            "proposal_note",
            "proposed_by",
            "proposed_at",
            "version_no",
            "locked",
            "approved_by",
            "approved_at",
            "last_decision",
            "last_decision_note",
            "versions",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class ReagentCalculationCreateSerializer(serializers.Serializer):
    sample = serializers.IntegerField(min_value=1)
    baseline = serializers.JSONField(required=False, default=dict)


class ProposalInputSerializer(serializers.Serializer):
    data = serializers.JSONField()
    note = serializers.CharField(required=False, allow_blank=True, default="")


class DecisionInputSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
    note = serializers.CharField(required=False, allow_blank=True, default="")


# ===============================================================
# Reports / signatures
# ===============================================================

class DocumentSignatureSerializer(serializers.ModelSerializer):
    signed_by_username = serializers.CharField(source="signed_by.username", read_only=True)

    class Meta:
        model = DocumentSignature
        fields = (
            "id",
            "document_kind",
            "document_id",
            "role_code",
            "signed_by",
            "signed_by_username",
            "signed_at",
            "signature_hash",
        )
        read_only_fields = fields


class ReportSerializer(serializers.ModelSerializer):
    lab_sample_code = serializers.CharField(source="sample.lab_sample_code", read_only=True)
    signatures = serializers.SerializerMethodField()

    class Meta:
        model = Report
        fields = (
            "id",
            "sample",
            "lab_sample_code",
            "report_no",
            "summary",
            "results",
            "issued_at",
            "document_hash",
            "verification_code",
            "payload_hash",
            "is_locked",
            "locked_at",
            "signatures",
            "created_by",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_signatures(self, obj: Report):
        qs = DocumentSignature.objects.filter(document_kind=obj.DOCUMENT_KIND, document_id=obj.pk)
        return DocumentSignatureSerializer(qs, many=True).data


class ReportCreateSerializer(serializers.Serializer):
    sample = serializers.IntegerField(min_value=1)
    summary = serializers.CharField(required=False, allow_blank=True, default="")
    results = serializers.JSONField(required=False, default=dict)


class ReportUpdateSerializer(serializers.Serializer):
    summary = serializers.CharField(required=False, allow_blank=True)
    results = serializers.JSONField(required=False)


class SignInputSerializer(serializers.Serializer):
    role_code = serializers.CharField()


# ===============================================================
# Sample-ID change requests
# ===============================================================

class SampleIdChangeRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = SampleIdChangeRequest
        fields = (
            "id",
            "sample",
            "current_code",
            "proposed_code",
            "reason",
            "status",
            "requested_by",
            "reviewed_by",
            "reviewed_at",
            "review_note",
            "created_at",
        )
        read_only_fields = fields


class ChangeProposalInputSerializer(serializers.Serializer):
    sample = serializers.IntegerField(min_value=1)
    proposed_code = serializers.CharField()
    reason = serializers.CharField(allow_blank=True)


class ReviewInputSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default="")


# ===============================================================
# AuditLog (READ-ONLY)
# ===============================================================

class AuditLogSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = (
            "id",
            "actor",
            "actor_username",
            "action",
            "entity_name",
            "entity_id",
            "old_values",
            "new_values",
            "created_at",
        )
        read_only_fields = fields
