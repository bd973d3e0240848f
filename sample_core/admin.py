# sample_core/admin.py

from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from .models import (
    ApprovalLedgerEntry,
    AuditLog,
    Client,
    DocumentSignature,
    IntakeChecklist,
    LetterOfOrder,
    ReagentCalculation,
    Report,
    Sample,
    SampleBatch,
    SampleIdChangeRequest,
    SequenceCounter,
    UserRole,
    WorkflowTransition,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    """
    Engine-owned rows: visible in admin, changed only through the services.
    """

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =============================================================
# Clients, roles, batches
# =============================================================

@admin.register(Client)
class ClientAdmin(admin.ModelAdmin):
    list_display = ("name", "organization", "email", "is_active", "deleted_at")
    search_fields = ("name", "organization", "email")
    list_filter = ("is_active",)
    readonly_fields = ("deleted_at", "created_at", "updated_at")

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "is_active")
    search_fields = ("user__username", "role")
    list_filter = ("role", "is_active")


@admin.register(SampleBatch)
class SampleBatchAdmin(admin.ModelAdmin):
    list_display = ("batch_code", "client", "created_at")
    search_fields = ("batch_code", "client__name")


# =============================================================
# Sample (STRICT READ-ONLY)
# =============================================================

@admin.register(Sample)
class SampleAdmin(ReadOnlyAdmin):
    list_display = (
        "id",
        "lab_sample_code",
        "client",
        "request_status",
        "crosscheck_status",
        "verified_at",
        "workflow_links",
    )
    search_fields = ("lab_sample_code", "client__name")
    list_filter = ("request_status", "crosscheck_status", "workflow_group")

    def workflow_links(self, obj):
        transitions_url = (
            reverse("admin:sample_core_workflowtransition_changelist")
            + f"?object_id={obj.pk}"
        )
        audit_url = (
            reverse("admin:sample_core_auditlog_changelist")
            + f"?entity_name=Sample&entity_id={obj.pk}"
        )
        return format_html(
            '<a href="{}">Transitions</a> | <a href="{}">Audit</a>',
            transitions_url,
            audit_url,
        )

    workflow_links.short_description = "Workflow"


@admin.register(IntakeChecklist)
class IntakeChecklistAdmin(ReadOnlyAdmin):
    list_display = ("sample", "is_passed", "checked_by", "created_at")
    list_filter = ("is_passed",)


# =============================================================
# Engine ledgers (READ-ONLY)
# =============================================================

@admin.register(WorkflowTransition)
class WorkflowTransitionAdmin(ReadOnlyAdmin):
    list_display = ("kind", "object_id", "from_status", "to_status", "role", "performed_by", "created_at")
    list_filter = ("kind", "from_status", "to_status")
    search_fields = ("object_id", "performed_by__username")
    ordering = ("-created_at",)


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ("created_at", "actor", "action", "entity_name", "entity_id")
    search_fields = ("action", "actor__username", "entity_id")
    list_filter = ("entity_name", "action")
    ordering = ("-created_at",)


@admin.register(SequenceCounter)
class SequenceCounterAdmin(ReadOnlyAdmin):
    list_display = ("name", "next_number", "updated_at")


@admin.register(ApprovalLedgerEntry)
class ApprovalLedgerEntryAdmin(ReadOnlyAdmin):
    list_display = ("subject_kind", "subject_id", "role_code", "approved_at", "approved_by", "updated_by")
    list_filter = ("subject_kind", "role_code")


@admin.register(SampleIdChangeRequest)
class SampleIdChangeRequestAdmin(ReadOnlyAdmin):
    list_display = ("sample", "current_code", "proposed_code", "status", "requested_by", "reviewed_by")
    list_filter = ("status",)


@admin.register(ReagentCalculation)
class ReagentCalculationAdmin(ReadOnlyAdmin):
    list_display = ("sample", "version_no", "locked", "last_decision", "approved_at")
    list_filter = ("locked",)


# =============================================================
# Documents (READ-ONLY)
# =============================================================

@admin.register(LetterOfOrder)
class LetterOfOrderAdmin(ReadOnlyAdmin):
    list_display = ("number", "sample", "is_locked", "locked_at", "document_hash")
    search_fields = ("number", "document_hash")


@admin.register(Report)
class ReportAdmin(ReadOnlyAdmin):
    list_display = ("report_no", "sample", "is_locked", "issued_at", "document_hash")
    search_fields = ("report_no", "document_hash")


@admin.register(DocumentSignature)
class DocumentSignatureAdmin(ReadOnlyAdmin):
    list_display = ("document_kind", "document_id", "role_code", "signed_by", "signed_at")
    list_filter = ("document_kind", "role_code")
