# sample_core/views_documents.py
from __future__ import annotations

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Report
from .permissions import IsStaffMember
from .roles import REPORT
from .serializers import (
    DocumentSignatureSerializer,
    ReportCreateSerializer,
    ReportSerializer,
    ReportUpdateSerializer,
    SignInputSerializer,
)
from .services.documents import DocumentLedger, document_number, verify_public
from .services.reports import create_report, update_report
from .services.signatures import sign_document, slot_status, verify_signature


def document_response(document) -> HttpResponse:
    """
    Serve the stored bytes of a locked document. The ledger re-checks the hash
    first and raises IntegrityFailure instead of serving altered bytes.
    """
    ledger = DocumentLedger()
    content = ledger.read(document)
    content_type = getattr(ledger.renderer, "content_type", "application/octet-stream")
    extension = getattr(ledger.renderer, "extension", "bin")

    resp = HttpResponse(content, content_type=content_type)
    resp["Content-Disposition"] = f'inline; filename="{document_number(document)}.{extension}"'
    resp["X-Document-Hash"] = document.document_hash
    return resp


# ===============================================================
# Reports
# ===============================================================

class ReportCreateView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Reports"], request=ReportCreateSerializer, responses={201: ReportSerializer})
    def post(self, request):
        ser = ReportCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        report = create_report(
            sample_id=ser.validated_data["sample"],
            summary=ser.validated_data["summary"],
            results=ser.validated_data["results"],
            user=request.user,
        )
        return Response(ReportSerializer(report).data, status=status.HTTP_201_CREATED)


class ReportDetailView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Reports"], responses=ReportSerializer)
    def get(self, request, pk: int):
        report = get_object_or_404(Report.objects.select_related("sample"), pk=pk)
        data = ReportSerializer(report).data
        data["slots"] = slot_status(REPORT, report.pk)
        return Response(data)

    @extend_schema(
        tags=["Reports"],
        request=ReportUpdateSerializer,
        responses={
            200: ReportSerializer,
            409: OpenApiResponse(description="Report is locked"),
            422: OpenApiResponse(description="Report already signed"),
        },
    )
    def patch(self, request, pk: int):
        ser = ReportUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        report = update_report(
            report_id=pk,
            user=request.user,
            summary=ser.validated_data.get("summary"),
            results=ser.validated_data.get("results"),
        )
        return Response(ReportSerializer(report).data)


class ReportSignView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(
        tags=["Reports"],
        request=SignInputSerializer,
        responses={
            200: OpenApiResponse(description="Slot signed; the closing slot also locks the report"),
            409: OpenApiResponse(description="Slot already signed or report locked"),
            422: OpenApiResponse(description="Closing slot signed before the others"),
        },
    )
    def post(self, request, pk: int):
        ser = SignInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = sign_document(
            kind=REPORT,
            document_id=pk,
            role_code=ser.validated_data["role_code"],
            user=request.user,
        )
        return Response(
            {
                "signature": DocumentSignatureSerializer(result["signature"]).data,
                "finalized": result["finalized"],
                "document_hash": result["document_hash"],
                "report": ReportSerializer(result["document"]).data,
            }
        )


class ReportDownloadView(APIView):
    permission_classes = [IsStaffMember]

    @extend_schema(tags=["Reports"], responses={200: OpenApiResponse(description="Stored document bytes")})
    def get(self, request, pk: int):
        return document_response(get_object_or_404(Report, pk=pk))


# ===============================================================
# Public verification (unauthenticated, read-only)
# ===============================================================

class PublicDocumentVerifyView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        tags=["Public"],
        responses={
            200: OpenApiResponse(description="{valid: true, document_summary: {...}}"),
            404: OpenApiResponse(description="{valid: false} for unknown, unlocked or altered documents"),
        },
    )
    def get(self, request, document_hash: str):
        result = verify_public(document_hash)
        return Response(result, status=status.HTTP_200_OK if result["valid"] else status.HTTP_404_NOT_FOUND)


class SignatureVerifyView(APIView):
    """
    Staff lookup of a signature reference printed on a letter or report.
    """
    permission_classes = [IsStaffMember]

    @extend_schema(
        tags=["Reports"],
        responses={
            200: OpenApiResponse(description="Signature, signer and the signed document"),
            404: OpenApiResponse(description="Unknown signature hash"),
        },
    )
    def get(self, request, signature_hash: str):
        return Response(verify_signature(signature_hash))
