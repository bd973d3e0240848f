# sample_core/services/reports.py
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import Conflict, PreconditionFailed
from sample_core.models import DocumentSignature, Report, Sample
from sample_core.permissions import require_capability
from sample_core.roles import REPORT

from . import audit, sequences
from .documents import DocumentLedger, GeneratedDocument, hash_payload

logger = logging.getLogger(__name__)

REPORT_SEQUENCE = "report"
REPORT_TEMPLATE = "sample_core/documents/report.html"


def format_report_number(ordinal: int) -> str:
    return f"RPT-{ordinal:03d}"


def _signatures(report: Report):
    return DocumentSignature.objects.filter(document_kind=REPORT, document_id=report.pk).select_related("signed_by")


def signable_payload(report: Report) -> dict:
    """
    The content every signature and the final payload hash commit to.
    """
    return {
        "report_no": report.report_no,
        "sample_id": report.sample_id,
        "lab_sample_code": report.sample.lab_sample_code,
        "summary": report.summary,
        "results": report.results or {},
    }


def report_context(report: Report) -> dict:
    return {
        "report": report,
        "sample": report.sample,
        "client": report.sample.client,
        "signatures": list(_signatures(report)),
    }


def create_report(*, sample_id: int, summary: str = "", results: Optional[Mapping[str, Any]] = None, user) -> Report:
    sample = Sample.objects.filter(pk=sample_id).first()
    if sample is None:
        raise NotFound("Sample not found.")

    require_capability(user, "report.create", entity=sample)

    if results is not None and not isinstance(results, Mapping):
        raise ValidationError({"results": "Results must be an object."})

    with transaction.atomic():
        sample = Sample.objects.select_for_update().get(pk=sample_id)
        if not sample.is_verified:
            raise PreconditionFailed("Sample must be verified before a report is created.", sample_id=sample.pk)
        if not sample.lab_sample_code:
            raise PreconditionFailed("Sample has no lab code.", sample_id=sample.pk)

        report = Report.objects.create(
            sample=sample,
            report_no=format_report_number(sequences.allocate(REPORT_SEQUENCE)),
            summary=summary or "",
            results=dict(results or {}),
            created_by=user,
        )

        audit.record(
            "report.created",
            actor=user,
            entity=report,
            new_values={"sample_id": sample.pk, "report_no": report.report_no},
        )

    logger.info("Report %s created for sample %s", report.report_no, sample.pk)
    return report


def update_report(
    *,
    report_id: int,
    user,
    summary: Optional[str] = None,
    results: Optional[Mapping[str, Any]] = None,
) -> Report:
    """
    Edit report content. Allowed only while nobody has signed and it is not locked.
    """
    report = Report.objects.filter(pk=report_id).first()
    if report is None:
        raise NotFound("Report not found.")

    require_capability(user, "report.create", entity=report)

    if results is not None and not isinstance(results, Mapping):
        raise ValidationError({"results": "Results must be an object."})

    with transaction.atomic():
        report = Report.objects.select_for_update().get(pk=report_id)
        if report.is_locked:
            raise Conflict("Report is locked.", report_id=report.pk)
        if _signatures(report).exists():
            raise PreconditionFailed("Signed reports cannot be edited.", report_id=report.pk)

        old = {"summary": report.summary, "results": report.results}
        fields = []
        if summary is not None:
            report.summary = summary
            fields.append("summary")
        if results is not None:
            report.results = dict(results)
            fields.append("results")

        if fields:
            report.save(update_fields=fields + ["updated_at"])
            audit.record(
                "report.updated",
                actor=user,
                entity=report,
                old_values=old,
                new_values={"summary": report.summary, "results": report.results},
            )

    return report


def finalize_report(report: Report, *, user, ledger: Optional[DocumentLedger] = None) -> GeneratedDocument:
    """
    Freeze the report content (payload hash, issue date) and lock it through the
    document ledger. Runs inside the caller's transaction.
    """
    report = Report.objects.select_for_update().select_related("sample", "sample__client").get(pk=report.pk)
    if report.is_locked:
        raise Conflict("Report is already finalized.", report_id=report.pk)

    report.issued_at = timezone.now()
    report.save(update_fields=["issued_at", "updated_at"])

    ledger = ledger or DocumentLedger()
    result = ledger.generate(
        report,
        template_name=REPORT_TEMPLATE,
        context=report_context(report),
        user=user,
        payload_hash=hash_payload(signable_payload(report)),
    )

    audit.record(
        "report.finalized",
        actor=user,
        entity=report,
        new_values={
            "report_no": report.report_no,
            "document_hash": result.document_hash,
            "payload_hash": result.document.payload_hash,
        },
    )
    return result
