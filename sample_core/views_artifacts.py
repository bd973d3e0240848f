# sample_core/views_artifacts.py
from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import ReagentCalculation
from .permissions import IsStaffMember
from .serializers import (
    DecisionInputSerializer,
    ProposalInputSerializer,
    ReagentCalculationCreateSerializer,
    ReagentCalculationSerializer,
)
from .services import artifacts


def _calc_payload(calc: ReagentCalculation) -> dict:
    calc = ReagentCalculation.objects.prefetch_related("versions").get(pk=calc.pk)
    data = ReagentCalculationSerializer(calc).data
    data["blocking_sample_ids"] = artifacts.crosscheck_blockers(calc.sample)
    return data


class ReagentCalculationCreateView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Reagent calculation"], request=ReagentCalculationCreateSerializer)
    def post(self, request):
        ser = ReagentCalculationCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        calc = artifacts.create_calculation(
            sample_id=ser.validated_data["sample"],
            baseline=ser.validated_data["baseline"],
            user=request.user,
        )
        return Response(_calc_payload(calc), status=status.HTTP_201_CREATED)


class ReagentCalculationDetailView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Reagent calculation"], responses=ReagentCalculationSerializer)
    def get(self, request, pk: int):
        return Response(_calc_payload(get_object_or_404(ReagentCalculation, pk=pk)))


class ReagentCalculationProposeView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(
        tags=["Reagent calculation"],
        request=ProposalInputSerializer,
        responses={
            200: ReagentCalculationSerializer,
            422: OpenApiResponse(description="Locked, or batch crosscheck incomplete"),
        },
    )
    def post(self, request, pk: int):
        ser = ProposalInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        calc = artifacts.propose(
            calculation_id=pk,
            data=ser.validated_data["data"],
            note=ser.validated_data["note"],
            user=request.user,
        )
        return Response(_calc_payload(calc))


class ReagentCalculationDecideView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(
        tags=["Reagent calculation"],
        request=DecisionInputSerializer,
        responses={
            200: ReagentCalculationSerializer,
            422: OpenApiResponse(description="No pending proposal, or batch crosscheck incomplete"),
        },
    )
    def post(self, request, pk: int):
        ser = DecisionInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        calc = artifacts.decide(
            calculation_id=pk,
            approve=ser.validated_data["approve"],
            note=ser.validated_data["note"],
            user=request.user,
        )
        return Response(_calc_payload(calc))
