# sample_core/services/letters.py
"""
Letter of Order (LOO) issue and finalization.

Bulk generation issues one draft letter per ready sample and never fails as a
whole: samples without both approvals are listed in excluded_not_ready, samples
whose issue raised an engine error are listed in failed. A draft is rendered,
hashed and locked only when its closing (LH) signature lands, through
finalize_letter.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from django.db import transaction
from django.utils import timezone

from sample_core.exceptions import Conflict, EngineError, PreconditionFailed
from sample_core.models import DocumentSignature, LetterOfOrder, Sample
from sample_core.permissions import require_capability
from sample_core.roles import LETTER_OF_ORDER, LOO_CANDIDATE

from . import approvals, audit, sequences
from .documents import DocumentLedger, GeneratedDocument, hash_payload

logger = logging.getLogger(__name__)

LOO_SEQUENCE = "letter_of_order"
LOO_TEMPLATE = "sample_core/documents/letter_of_order.html"


def format_letter_number(ordinal: int) -> str:
    return f"LOO-{ordinal:03d}"


def _clean_ids(sample_ids: Iterable) -> List[int]:
    seen, out = set(), []
    for raw in sample_ids or []:
        try:
            sid = int(raw)
        except (TypeError, ValueError):
            continue
        if sid not in seen:
            seen.add(sid)
            out.append(sid)
    return out


def _signatures(letter: Optional[LetterOfOrder]):
    if letter is None:
        return DocumentSignature.objects.none()
    return DocumentSignature.objects.filter(
        document_kind=LETTER_OF_ORDER, document_id=letter.pk
    ).select_related("signed_by")


def letter_status(letter: LetterOfOrder) -> str:
    if letter.is_locked:
        return "locked"
    return "signing" if _signatures(letter).exists() else "draft"


def letter_context(sample: Sample, letter: Optional[LetterOfOrder] = None) -> dict:
    return {
        "sample": sample,
        "client": sample.client,
        "batch": sample.batch,
        "approvals": approvals.approval_summary(LOO_CANDIDATE, sample.pk),
        "signatures": list(_signatures(letter)),
        "issued_on": timezone.localdate(),
    }


def signable_payload(letter: LetterOfOrder) -> dict:
    """
    What OM and LH commit to when they sign.
    """
    sample = letter.sample
    summary = approvals.approval_summary(LOO_CANDIDATE, sample.pk)
    return {
        "number": letter.number,
        "sample_id": sample.pk,
        "lab_sample_code": sample.lab_sample_code,
        "client_id": sample.client_id,
        "verified_at": sample.verified_at,
        "approved_roles": sorted(code for code, row in summary.items() if row["approved"]),
    }


def _sample_ready(sample: Sample) -> bool:
    """
    Caller holds the sample row lock; the ledger rows are locked here.
    """
    if not sample.is_verified or not sample.lab_sample_code:
        return False
    return approvals.is_ready_locked(LOO_CANDIDATE, sample.pk)


def ensure_letter(sample: Sample, user) -> LetterOfOrder:
    """
    One letter per sample. The number is allocated only when the row is created.
    """
    with transaction.atomic():
        locked = Sample.objects.select_for_update().get(pk=sample.pk)
        letter = LetterOfOrder.objects.filter(sample=locked).first()
        if letter is not None:
            return letter

        letter = LetterOfOrder.objects.create(
            sample=locked,
            number=format_letter_number(sequences.allocate(LOO_SEQUENCE)),
            generated_by=user,
        )
        audit.record(
            "loo.created",
            actor=user,
            entity=letter,
            new_values={"sample_id": locked.pk, "number": letter.number},
        )
        return letter


def _issue_draft(sample_id: int, user) -> Tuple[Optional[LetterOfOrder], bool]:
    """
    (letter, created), or (None, False) when the sample is not ready once locked.
    """
    with transaction.atomic():
        sample = Sample.objects.select_for_update().filter(pk=sample_id).first()
        if sample is None or not _sample_ready(sample):
            return None, False

        existing = LetterOfOrder.objects.filter(sample=sample).first()
        if existing is not None:
            return existing, False
        return ensure_letter(sample, user), True


def letter_summary(letter: LetterOfOrder, created: Optional[bool] = None) -> dict:
    out = {
        "id": letter.pk,
        "sample_id": letter.sample_id,
        "number": letter.number,
        "status": letter_status(letter),
        "document_hash": letter.document_hash,
        "verification_code": letter.verification_code,
        "is_locked": letter.is_locked,
        "locked_at": letter.locked_at,
    }
    if created is not None:
        out["created"] = created
    return out


def generate_letters(*, sample_ids: Iterable, user) -> dict:
    require_capability(user, "loo.generate", entity_name="LetterOfOrder")
    ids = _clean_ids(sample_ids)

    # Cheap pre-filter; each sample is checked again under its locks.
    ready = approvals.readiness(LOO_CANDIDATE, ids)

    generated, excluded, failed, letters = [], [], [], []

    for sid in ids:
        if not ready.get(sid):
            excluded.append(sid)
            continue

        try:
            letter, created = _issue_draft(sid, user)
        except EngineError as e:
            logger.warning("LOO issue failed for sample %s: %s", sid, e)
            failed.append({"sample_id": sid, "code": e.default_code, "message": str(e)})
            continue

        if letter is None:
            excluded.append(sid)
            continue

        generated.append(sid)
        letters.append(letter_summary(letter, created=created))

    audit.record(
        "loo.bulk_generate",
        actor=user,
        entity_name="LetterOfOrder",
        new_values={
            "requested": ids,
            "generated": generated,
            "excluded_not_ready": excluded,
            "failed": [f["sample_id"] for f in failed],
        },
    )

    logger.info(
        "LOO bulk generate: %s generated, %s excluded, %s failed",
        len(generated),
        len(excluded),
        len(failed),
    )

    return {
        "generated": generated,
        "excluded_not_ready": excluded,
        "failed": failed,
        "letters": letters,
    }


def finalize_letter(letter: LetterOfOrder, *, user, ledger: Optional[DocumentLedger] = None) -> GeneratedDocument:
    """
    Render and lock a fully signed letter. Runs inside the caller's transaction;
    the approvals must still hold at this point.
    """
    sample = Sample.objects.select_for_update().select_related("client", "batch").get(pk=letter.sample_id)
    letter = LetterOfOrder.objects.select_for_update().select_related("sample").get(pk=letter.pk)
    if letter.is_locked:
        raise Conflict("Letter of Order is already finalized.", letter_id=letter.pk)
    if not _sample_ready(sample):
        raise PreconditionFailed(
            "Sample is no longer ready for a Letter of Order.",
            sample_id=sample.pk,
            approved_roles=signable_payload(letter)["approved_roles"],
        )

    ledger = ledger or DocumentLedger()
    result = ledger.generate(
        letter,
        template_name=LOO_TEMPLATE,
        context=letter_context(sample, letter),
        user=user,
        payload_hash=hash_payload(signable_payload(letter)),
    )

    audit.record(
        "loo.finalized",
        actor=user,
        entity=letter,
        new_values={
            "number": letter.number,
            "document_hash": result.document_hash,
            "payload_hash": result.document.payload_hash,
        },
    )
    return result
