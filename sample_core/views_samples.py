# sample_core/views_samples.py
from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import generics
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import PreconditionFailed
from .filters import AuditLogFilter, SampleFilter
from .models import AuditLog, Sample
from .permissions import IsStaffMember, require_roles, roles_for_user
from .roles import CLIENT, STAFF_ROLES
from .serializers import (
    AuditLogSerializer,
    SampleSerializer,
    TransitionInputSerializer,
    WorkflowTransitionSerializer,
)
from .services import audit
from .workflows import (
    CLIENT_EDITABLE_STATES,
    STAFF_HIDDEN_STATES,
    allowed_transitions,
    workflow_definition,
)
from .workflows.executor import execute_transition, transition_history


# ===============================================================
# Helpers
# ===============================================================

def visible_samples(user):
    """
    Staff see every sample except the client's private drafts.
    Clients see only their own samples, drafts included.
    """
    roles = roles_for_user(user)
    qs = Sample.objects.select_related("client", "batch")

    if roles & STAFF_ROLES:
        return qs.exclude(request_status__in=STAFF_HIDDEN_STATES)

    profile = getattr(user, "client_profile", None)
    if CLIENT in roles and profile is not None:
        return qs.filter(client=profile)

    return qs.none()


def get_visible_sample(user, pk: int) -> Sample:
    return get_object_or_404(visible_samples(user), pk=pk)


# ===============================================================
# Health
# ===============================================================

class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        return Response({"status": "ok", "service": "BML-LIMS"})


# ===============================================================
# Samples
# ===============================================================

@extend_schema(tags=["Samples"])
class SampleListCreateView(generics.ListCreateAPIView):
    """
    GET  -> sample queue (filterable)
    POST -> client creates a draft sample
    """
    serializer_class = SampleSerializer
    permission_classes = [IsAuthenticated]
    filterset_class = SampleFilter

    def get_queryset(self):
        return visible_samples(self.request.user).order_by("-created_at", "-id")

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["client"] = getattr(self.request.user, "client_profile", None)
        return ctx

    def perform_create(self, serializer):
        user = self.request.user
        require_roles(user, {CLIENT}, action="sample.create", entity_name="Sample")
        profile = getattr(user, "client_profile", None)
        if profile is None or not profile.is_active:
            raise PermissionDenied("An active client profile is required.")

        sample = serializer.save(client=profile)
        audit.record(
            "sample.created",
            actor=user,
            entity=sample,
            new_values={"request_status": sample.request_status, "client_id": profile.pk},
        )


@extend_schema(tags=["Samples"])
class SampleDetailView(generics.RetrieveUpdateAPIView):
    """
    GET   -> sample detail with custody and allowed transitions
    PATCH -> owning client edits the request while it is still with them
    """
    serializer_class = SampleSerializer
    permission_classes = [IsAuthenticated]
    http_method_names = ["get", "patch", "head", "options"]

    def get_queryset(self):
        return visible_samples(self.request.user)

    def get_serializer_context(self):
        ctx = super().get_serializer_context()
        ctx["client"] = getattr(self.request.user, "client_profile", None)
        return ctx

    def perform_update(self, serializer):
        user = self.request.user
        sample = serializer.instance
        require_roles(user, {CLIENT}, action="sample.update", entity=sample)
        if sample.request_status not in CLIENT_EDITABLE_STATES:
            raise PreconditionFailed(
                f"Sample can no longer be edited in state '{sample.request_status}'.",
                current=sample.request_status,
            )

        before = {f: getattr(sample, f) for f in serializer.validated_data}
        sample = serializer.save()
        audit.record(
            "sample.updated",
            actor=user,
            entity=sample,
            old_values=before,
            new_values={f: getattr(sample, f) for f in before},
        )


# ===============================================================
# Lifecycle
# ===============================================================

class SampleAllowedTransitionsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Lifecycle"])
    def get(self, request, pk: int):
        sample = get_visible_sample(request.user, pk)
        roles = roles_for_user(request.user)
        return Response(
            {
                "id": sample.pk,
                "request_status": sample.request_status,
                "roles": sorted(roles),
                "allowed": allowed_transitions(sample.request_status, roles),
            }
        )


class SampleTransitionView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["Lifecycle"],
        request=TransitionInputSerializer,
        responses={
            200: OpenApiResponse(description="Transition applied (or repeated no-op)"),
            403: OpenApiResponse(description="Role not allowed"),
            422: OpenApiResponse(description="Illegal transition"),
        },
    )
    def post(self, request, pk: int):
        get_visible_sample(request.user, pk)
        ser = TransitionInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = execute_transition(
            sample_id=pk,
            new_status=ser.validated_data["status"],
            user=request.user,
            note=ser.validated_data["note"],
        )
        return Response(result)


class SampleHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Lifecycle"], responses=WorkflowTransitionSerializer(many=True))
    def get(self, request, pk: int):
        sample = get_visible_sample(request.user, pk)
        rows = transition_history(sample.pk).select_related("performed_by")
        return Response(WorkflowTransitionSerializer(rows, many=True).data)


class WorkflowDefinitionView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Lifecycle"])
    def get(self, request):
        return Response(workflow_definition())


# ===============================================================
# Audit trail (READ-ONLY)
# ===============================================================

@extend_schema(tags=["Audit"])
class SampleAuditLogView(generics.ListAPIView):
    serializer_class = AuditLogSerializer
    permission_classes = [IsStaffMember]
    filterset_class = AuditLogFilter

    def get_queryset(self):
        sample = get_visible_sample(self.request.user, self.kwargs["pk"])
        return (
            AuditLog.objects.filter(entity_name="Sample", entity_id=str(sample.pk))
            .select_related("actor")
            .order_by("created_at", "id")
        )
