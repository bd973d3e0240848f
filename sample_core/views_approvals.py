# sample_core/views_approvals.py
from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import LetterOfOrder, Sample
from .permissions import IsStaffMember
from .roles import LETTER_OF_ORDER, LOO_CANDIDATE
from .serializers import (
    ApprovalInputSerializer,
    BulkGenerateInputSerializer,
    DocumentSignatureSerializer,
    LetterOfOrderSerializer,
    SignInputSerializer,
)
from .services import approvals
from .services.letters import generate_letters, letter_status
from .services.signatures import sign_document, slot_status
from .views_documents import document_response


def _candidate_row(sample: Sample, summary: dict, ready: bool) -> dict:
    letter = getattr(sample, "letter_of_order", None)
    return {
        "sample_id": sample.pk,
        "lab_sample_code": sample.lab_sample_code,
        "verified_at": sample.verified_at,
        "approvals": summary,
        "ready": ready,
        "letter_number": letter.number if letter is not None else None,
    }


class LooCandidatesView(APIView):
    """
    Verified samples with a lab code, with their OM/LH approval state.
    """
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Letters of Order"])
    def get(self, request):
        samples = list(
            Sample.objects.filter(verified_at__isnull=False, lab_sample_code__isnull=False)
            .select_related("letter_of_order")
            .order_by("id")
        )
        ready = approvals.readiness(LOO_CANDIDATE, [s.pk for s in samples])
        rows = [
            _candidate_row(s, approvals.approval_summary(LOO_CANDIDATE, s.pk), ready[s.pk])
            for s in samples
        ]
        return Response({"count": len(rows), "results": rows})


class LooApprovalView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Letters of Order"])
    def get(self, request, sample_id: int):
        sample = get_object_or_404(Sample, pk=sample_id)
        return Response(
            _candidate_row(
                sample,
                approvals.approval_summary(LOO_CANDIDATE, sample.pk),
                approvals.is_ready(LOO_CANDIDATE, sample.pk),
            )
        )

    @extend_schema(
        tags=["Letters of Order"],
        request=ApprovalInputSerializer,
        responses={
            200: OpenApiResponse(description="Approval flag updated"),
            403: OpenApiResponse(description="Role code not held by the caller"),
            422: OpenApiResponse(description="Sample not eligible"),
        },
    )
    def patch(self, request, sample_id: int):
        ser = ApprovalInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        approvals.set_approval(
            kind=LOO_CANDIDATE,
            subject_id=sample_id,
            role_code=ser.validated_data["role_code"],
            approved=ser.validated_data["approved"],
            user=request.user,
        )
        return self.get(request, sample_id)


class LooBulkGenerateView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(
        tags=["Letters of Order"],
        request=BulkGenerateInputSerializer,
        responses={200: OpenApiResponse(description="{generated, excluded_not_ready, failed, letters}; letters are issued as drafts")},
    )
    def post(self, request):
        ser = BulkGenerateInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return Response(generate_letters(sample_ids=ser.validated_data["sample_ids"], user=request.user))


class LetterOfOrderDetailView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Letters of Order"], responses=LetterOfOrderSerializer)
    def get(self, request, pk: int):
        letter = get_object_or_404(LetterOfOrder.objects.select_related("sample"), pk=pk)
        data = LetterOfOrderSerializer(letter).data
        data["status"] = letter_status(letter)
        data["slots"] = slot_status(LETTER_OF_ORDER, letter.pk)
        return Response(data)


class LetterOfOrderSignView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(
        tags=["Letters of Order"],
        request=SignInputSerializer,
        responses={
            200: OpenApiResponse(description="Slot signed; the LH slot also renders and locks the letter"),
            409: OpenApiResponse(description="Slot already signed or letter locked"),
            422: OpenApiResponse(description="LH signed before OM, or approvals withdrawn"),
        },
    )
    def post(self, request, pk: int):
        ser = SignInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = sign_document(
            kind=LETTER_OF_ORDER,
            document_id=pk,
            role_code=ser.validated_data["role_code"],
            user=request.user,
        )
        letter = result["document"]
        data = LetterOfOrderSerializer(letter).data
        data["status"] = letter_status(letter)
        return Response(
            {
                "signature": DocumentSignatureSerializer(result["signature"]).data,
                "finalized": result["finalized"],
                "document_hash": result["document_hash"],
                "letter": data,
            }
        )


class LetterOfOrderDownloadView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Letters of Order"], responses={200: OpenApiResponse(description="Stored document bytes")})
    def get(self, request, pk: int):
        return document_response(get_object_or_404(LetterOfOrder, pk=pk))
