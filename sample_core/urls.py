# sample_core/urls.py

from django.urls import path

# -------------------------------------------------
# Samples & request lifecycle
# -------------------------------------------------
from .views_samples import (
    HealthCheckView,
    SampleAllowedTransitionsView,
    SampleAuditLogView,
    SampleDetailView,
    SampleHistoryView,
    SampleListCreateView,
    SampleTransitionView,
    WorkflowDefinitionView,
)

# -------------------------------------------------
# Custody, intake, verification, crosscheck
# -------------------------------------------------
from .views_custody import SampleCustodyView
from .views_intake import IntakeChecklistView, SampleCrosscheckView, SampleVerifyView

# -------------------------------------------------
# Approvals & Letters of Order
# -------------------------------------------------
from .views_approvals import (
    LetterOfOrderDetailView,
    LetterOfOrderDownloadView,
    LetterOfOrderSignView,
    LooApprovalView,
    LooBulkGenerateView,
    LooCandidatesView,
)

# -------------------------------------------------
# Reagent calculation
# -------------------------------------------------
from .views_artifacts import (
    ReagentCalculationCreateView,
    ReagentCalculationDecideView,
    ReagentCalculationDetailView,
    ReagentCalculationProposeView,
)

# -------------------------------------------------
# Reports & signatures
# -------------------------------------------------
from .views_documents import (
    ReportCreateView,
    ReportDetailView,
    ReportDownloadView,
    ReportSignView,
    SignatureVerifyView,
)

# -------------------------------------------------
# Sample-ID change requests
# -------------------------------------------------
from .views_change_requests import (
    ChangeRequestApproveView,
    ChangeRequestListCreateView,
    ChangeRequestRejectView,
)

# -------------------------------------------------
# Identity
# -------------------------------------------------
from .views_identity import WhoAmIView


app_name = "sample_core"


urlpatterns = [
    # ============================================================
    # System
    # ============================================================
    path("health/", HealthCheckView.as_view(), name="health_check"),

    # ============================================================
    # Identity
    # ============================================================
    path("me/", WhoAmIView.as_view(), name="whoami"),

    # ============================================================
    # Samples & request lifecycle
    # ============================================================
    path("workflow/definition/", WorkflowDefinitionView.as_view(), name="workflow-definition"),
    path("samples/", SampleListCreateView.as_view(), name="sample-list"),
    path("samples/<int:pk>/", SampleDetailView.as_view(), name="sample-detail"),
    path("samples/<int:pk>/allowed/", SampleAllowedTransitionsView.as_view(), name="sample-allowed"),
    path("samples/<int:pk>/transition/", SampleTransitionView.as_view(), name="sample-transition"),
    path("samples/<int:pk>/history/", SampleHistoryView.as_view(), name="sample-history"),
    path("samples/<int:pk>/audit/", SampleAuditLogView.as_view(), name="sample-audit"),

    # ============================================================
    # Custody, intake, verification, crosscheck
    # ============================================================
    path("samples/<int:pk>/custody/", SampleCustodyView.as_view(), name="sample-custody"),
    path("samples/<int:pk>/intake-checklist/", IntakeChecklistView.as_view(), name="sample-intake-checklist"),
    path("samples/<int:pk>/verify/", SampleVerifyView.as_view(), name="sample-verify"),
    path("samples/<int:pk>/crosscheck/", SampleCrosscheckView.as_view(), name="sample-crosscheck"),

    # ============================================================
    # Approvals & Letters of Order
    # ============================================================
    path("loo/candidates/", LooCandidatesView.as_view(), name="loo-candidates"),
    path("loo/approvals/<int:sample_id>/", LooApprovalView.as_view(), name="loo-approval"),
    path("loo/generate/", LooBulkGenerateView.as_view(), name="loo-generate"),
    path("loo/<int:pk>/", LetterOfOrderDetailView.as_view(), name="loo-detail"),
    path("loo/<int:pk>/sign/", LetterOfOrderSignView.as_view(), name="loo-sign"),
    path("loo/<int:pk>/download/", LetterOfOrderDownloadView.as_view(), name="loo-download"),

    # ============================================================
    # Reagent calculation
    # ============================================================
    path("reagent-calculations/", ReagentCalculationCreateView.as_view(), name="reagent-calc-create"),
    path("reagent-calculations/<int:pk>/", ReagentCalculationDetailView.as_view(), name="reagent-calc-detail"),
    path("reagent-calculations/<int:pk>/propose/", ReagentCalculationProposeView.as_view(), name="reagent-calc-propose"),
    path("reagent-calculations/<int:pk>/decide/", ReagentCalculationDecideView.as_view(), name="reagent-calc-decide"),

    # ============================================================
    # Reports & signatures
    # ============================================================
    path("reports/", ReportCreateView.as_view(), name="report-create"),
    path("reports/<int:pk>/", ReportDetailView.as_view(), name="report-detail"),
    path("reports/<int:pk>/sign/", ReportSignView.as_view(), name="report-sign"),
    path("reports/<int:pk>/download/", ReportDownloadView.as_view(), name="report-download"),
    path("signatures/verify/<str:signature_hash>/", SignatureVerifyView.as_view(), name="signature-verify"),

    # ============================================================
    # Sample-ID change requests
    # ============================================================
    path("sample-id-changes/", ChangeRequestListCreateView.as_view(), name="sample-id-change-list"),
    path("sample-id-changes/<int:pk>/approve/", ChangeRequestApproveView.as_view(), name="sample-id-change-approve"),
    path("sample-id-changes/<int:pk>/reject/", ChangeRequestRejectView.as_view(), name="sample-id-change-reject"),
]
