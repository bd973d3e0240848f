# sample_core/views_custody.py
from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import CustodyEventInputSerializer
from .services.custody import record_custody_event
from .views_samples import get_visible_sample
from .workflows.custody import CUSTODY_CHAIN, custody_snapshot, next_custody_event


class SampleCustodyView(APIView):
    """
    GET  -> custody chain with timestamps
    POST -> record the next physical hand-off ({"event": "<name>"})
    """
    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Custody"])
    def get(self, request, pk: int):
        sample = get_visible_sample(request.user, pk)
        return Response(
            {
                "sample_id": sample.pk,
                "chain": CUSTODY_CHAIN,
                "custody": custody_snapshot(sample),
                "next_event": next_custody_event(sample),
                "request_status": sample.request_status,
            }
        )

    @extend_schema(
        tags=["Custody"],
        request=CustodyEventInputSerializer,
        responses={
            200: OpenApiResponse(description="Event recorded (or already recorded)"),
            422: OpenApiResponse(description="Predecessor missing"),
        },
    )
    def post(self, request, pk: int):
        get_visible_sample(request.user, pk)
        ser = CustodyEventInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = record_custody_event(
            sample_id=pk,
            event=ser.validated_data["event"],
            user=request.user,
        )
        return Response(result)
