# sample_core/services/signatures.py
"""
Signature slots on documents.

Each document kind has a fixed set of role-code slots. A slot is signed once,
only by a holder of that role code. The closing slot requires every other slot
and finalizes (locks) the document in the same transaction.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from sample_core.exceptions import Conflict, PreconditionFailed
from sample_core.models import DocumentSignature
from sample_core.permissions import require_role_code
from sample_core.roles import CLOSING_SIGNATURE, LETTER_OF_ORDER, REPORT, SIGNATURE_SLOTS, normalize_role_code

from . import audit, letters, reports
from .documents import DOCUMENT_MODELS, DocumentLedger, document_number, hash_payload

logger = logging.getLogger(__name__)

FINALIZERS = {
    REPORT: reports.finalize_report,
    LETTER_OF_ORDER: letters.finalize_letter,
}

PAYLOADS = {
    REPORT: reports.signable_payload,
    LETTER_OF_ORDER: letters.signable_payload,
}


def signature_slots(kind: str):
    try:
        return SIGNATURE_SLOTS[kind]
    except KeyError:
        raise ValidationError({"document_kind": f"Documents of kind '{kind}' are not signed."})


def slot_status(kind: str, document_id: int) -> dict:
    signed = {
        s.role_code: s
        for s in DocumentSignature.objects.filter(document_kind=kind, document_id=document_id)
    }
    return {
        code: {
            "signed": code in signed,
            "signed_by": signed[code].signed_by_id if code in signed else None,
            "signed_at": signed[code].signed_at if code in signed else None,
            "signature_hash": signed[code].signature_hash if code in signed else None,
        }
        for code in signature_slots(kind)
    }


def finalize_document(kind: str, document, *, user, ledger: Optional[DocumentLedger] = None):
    try:
        finalizer = FINALIZERS[kind]
    except KeyError:
        raise ValidationError({"document_kind": f"Documents of kind '{kind}' cannot be finalized."})
    return finalizer(document, user=user, ledger=ledger)


def sign_document(
    *,
    kind: str,
    document_id: int,
    role_code: str,
    user,
    ledger: Optional[DocumentLedger] = None,
) -> dict:
    slots = signature_slots(kind)
    code = normalize_role_code(role_code)
    if code not in slots:
        raise ValidationError({"role_code": f"Role code must be one of: {', '.join(slots)}."})

    model = DOCUMENT_MODELS[kind]
    document = model.objects.filter(pk=document_id).first()
    if document is None:
        raise NotFound("Document not found.")

    require_role_code(user, code, action=f"{kind}.sign", entity=document)

    closing = CLOSING_SIGNATURE.get(kind) == code
    generated = None

    with transaction.atomic():
        document = model.objects.select_for_update().select_related("sample").get(pk=document_id)
        if document.is_locked:
            raise Conflict("Document is already locked.", document_kind=kind, document_id=document.pk)

        existing = set(
            DocumentSignature.objects.filter(document_kind=kind, document_id=document.pk)
            .values_list("role_code", flat=True)
        )
        if code in existing:
            raise Conflict(f"The {code} slot is already signed.", role_code=code)

        if closing:
            missing = [c for c in slots if c != code and c not in existing]
            if missing:
                raise PreconditionFailed(
                    f"The {code} signature requires every other slot to be signed first.",
                    missing_roles=missing,
                )

        now = timezone.now()
        signature_hash = hash_payload(
            {
                "document_kind": kind,
                "document_id": document.pk,
                "role_code": code,
                "signed_by": user.pk,
                "signed_at": now,
                "payload_hash": hash_payload(PAYLOADS[kind](document)),
            }
        )

        try:
            with transaction.atomic():
                signature = DocumentSignature.objects.create(
                    document_kind=kind,
                    document_id=document.pk,
                    role_code=code,
                    signed_by=user,
                    signed_at=now,
                    signature_hash=signature_hash,
                )
        except IntegrityError:
            raise Conflict(f"The {code} slot is already signed.", role_code=code)

        audit.record(
            f"{kind}.signed",
            actor=user,
            entity=document,
            new_values={"role_code": code, "signature_hash": signature_hash},
        )

        if closing:
            generated = finalize_document(kind, document, user=user, ledger=ledger)
            document = generated.document

    logger.info("%s %s signed by %s (%s)", kind, document_id, user.pk, code)

    return {
        "signature": signature,
        "document": document,
        "finalized": generated is not None,
        "document_hash": document.document_hash if generated else None,
    }


def verify_signature(signature_hash: str) -> dict:
    """
    Staff lookup behind the signature reference printed on a document.
    """
    value = (signature_hash or "").strip().lower()
    signature = DocumentSignature.objects.select_related("signed_by").filter(signature_hash=value).first()
    if signature is None:
        raise NotFound("Signature not found.")

    model = DOCUMENT_MODELS[signature.document_kind]
    document = model.objects.select_related("sample").filter(pk=signature.document_id).first()
    return {
        "signature_hash": signature.signature_hash,
        "role_code": signature.role_code,
        "signed_at": signature.signed_at,
        "signed_by": signature.signed_by_id,
        "signer": signature.signed_by.get_username(),
        "document_kind": signature.document_kind,
        "document_id": signature.document_id,
        "document_number": document_number(document) if document is not None else None,
        "document_locked": bool(document and document.is_locked),
    }
