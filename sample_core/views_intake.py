# sample_core/views_intake.py
from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import IntakeChecklist
from .permissions import IsStaffMember
from .serializers import (
    CrosscheckInputSerializer,
    IntakeChecklistInputSerializer,
    IntakeChecklistSerializer,
    SampleSerializer,
    VerifyInputSerializer,
)
from .services.crosscheck import submit_crosscheck
from .services.intake import submit_checklist
from .services.verification import verify_sample
from .views_samples import get_visible_sample


class IntakeChecklistView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Intake"], responses=IntakeChecklistSerializer)
    def get(self, request, pk: int):
        sample = get_visible_sample(request.user, pk)
        checklist = get_object_or_404(IntakeChecklist, sample=sample)
        return Response(IntakeChecklistSerializer(checklist).data)

    @extend_schema(
        tags=["Intake"],
        request=IntakeChecklistInputSerializer,
        responses={
            201: OpenApiResponse(description="Checklist recorded"),
            400: OpenApiResponse(description="A check is missing or a failed check has no reason"),
            409: OpenApiResponse(description="Checklist already submitted"),
        },
    )
    def post(self, request, pk: int):
        get_visible_sample(request.user, pk)
        ser = IntakeChecklistInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = submit_checklist(
            sample_id=pk,
            checks=ser.validated_data["checks"],
            notes=ser.validated_data.get("notes"),
            user=request.user,
        )
        return Response(
            {
                "checklist": IntakeChecklistSerializer(result["checklist"]).data,
                "is_passed": result["is_passed"],
                "request_status": result["request_status"],
                "lab_sample_code": result["lab_sample_code"],
            },
            status=status.HTTP_201_CREATED,
        )


class SampleVerifyView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(
        tags=["Intake"],
        request=VerifyInputSerializer,
        responses={
            200: SampleSerializer,
            409: OpenApiResponse(description="Already verified"),
        },
    )
    def post(self, request, pk: int):
        get_visible_sample(request.user, pk)
        ser = VerifyInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        sample = verify_sample(
            sample_id=pk,
            user=request.user,
            role_code=ser.validated_data["role_code"] or None,
        )
        return Response(SampleSerializer(sample, context={"request": request}).data)


class SampleCrosscheckView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Intake"], request=CrosscheckInputSerializer, responses=SampleSerializer)
    def post(self, request, pk: int):
        get_visible_sample(request.user, pk)
        ser = CrosscheckInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        sample = submit_crosscheck(
            sample_id=pk,
            physical_label_code=ser.validated_data["physical_label_code"],
            note=ser.validated_data["note"],
            user=request.user,
        )
        return Response(SampleSerializer(sample, context={"request": request}).data)
