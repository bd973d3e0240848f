# sample_core/views_change_requests.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import ChangeRequestFilter
from .models import SampleIdChangeRequest
from .permissions import IsStaffMember
from .serializers import ChangeProposalInputSerializer, ReviewInputSerializer, SampleIdChangeRequestSerializer
from .services.change_requests import approve_change, propose_change, reject_change


@extend_schema(tags=["Sample ID changes"])
class ChangeRequestListCreateView(generics.ListAPIView):
    serializer_class = SampleIdChangeRequestSerializer
    permission_classes = [IsStaffMember]
    filterset_class = ChangeRequestFilter
    queryset = SampleIdChangeRequest.objects.select_related("sample").all()

    @extend_schema(request=ChangeProposalInputSerializer, responses={201: SampleIdChangeRequestSerializer})
    def post(self, request):
        ser = ChangeProposalInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        cr = propose_change(
            sample_id=ser.validated_data["sample"],
            proposed_code=ser.validated_data["proposed_code"],
            reason=ser.validated_data["reason"],
            user=request.user,
        )
        return Response(SampleIdChangeRequestSerializer(cr).data, status=status.HTTP_201_CREATED)


class ChangeRequestApproveView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Sample ID changes"], request=ReviewInputSerializer, responses=SampleIdChangeRequestSerializer)
    def post(self, request, pk: int):
        ser = ReviewInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        cr = approve_change(request_id=pk, note=ser.validated_data["note"], user=request.user)
        return Response(SampleIdChangeRequestSerializer(cr).data)


class ChangeRequestRejectView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Sample ID changes"], request=ReviewInputSerializer, responses=SampleIdChangeRequestSerializer)
    def post(self, request, pk: int):
        ser = ReviewInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        cr = reject_change(request_id=pk, note=ser.validated_data["note"], user=request.user)
        return Response(SampleIdChangeRequestSerializer(cr).data)
