# sample_core/services/documents.py
"""
Immutable document ledger.

Generation is two-phase because the document carries its own verification
reference:

  1) render a draft without the verification reference
  2) verification_code = sha256(draft bytes)
  3) render the final document embedding {PUBLIC_VERIFY_BASE_URL}/verify/<code>/
  4) document_hash = sha256(final bytes); store at documents/<kind>/<pk>/<hash>.<ext>
     and record {path, hashes, is_locked=True} in one conditional update

A locked document is never regenerated. Every read re-hashes the stored bytes
and fails closed (IntegrityFailure) if they no longer match.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from sample_core.exceptions import Conflict, IntegrityFailure
from sample_core.models import LetterOfOrder, Report

from . import audit
from .rendering import get_renderer
from .storage import BlobStore

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = {
    LetterOfOrder.DOCUMENT_KIND: LetterOfOrder,
    Report.DOCUMENT_KIND: Report,
}


# ============================================================
# Hashing
# ============================================================
def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def canonical_json(data: Any) -> str:
    """
    Sorted keys, no whitespace. Dates, decimals and UUIDs go through DjangoJSONEncoder.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), cls=DjangoJSONEncoder)


def hash_payload(data: Any) -> str:
    return sha256_hex(canonical_json(data).encode("utf-8"))


def verification_url(code: str) -> str:
    base = str(getattr(settings, "PUBLIC_VERIFY_BASE_URL", "") or "").rstrip("/")
    return f"{base}/verify/{code}/"


def document_number(document) -> str:
    return getattr(document, "number", None) or getattr(document, "report_no", None) or str(document.pk)


@dataclass(frozen=True)
class GeneratedDocument:
    document: Any
    content: bytes
    document_hash: str
    verification_code: str
    file_path: str
    created: bool
    content_type: str = "text/html; charset=utf-8"


# ============================================================
# Ledger
# ============================================================
class DocumentLedger:
    def __init__(self, store: Optional[BlobStore] = None, renderer=None):
        self.store = store or BlobStore()
        self.renderer = renderer or get_renderer()

    # --------------------------------------------------------
    # Read side
    # --------------------------------------------------------
    def read(self, document) -> bytes:
        """
        Return the stored bytes of a locked document after re-checking their hash.
        """
        if not document.is_locked:
            raise Conflict("Document is not finalized yet.", document_kind=document.DOCUMENT_KIND)

        path = document.file_path
        if not self.store.exists(path):
            self._integrity_failed(document, "stored file is missing")

        data = self.store.get(path)
        actual = sha256_hex(data)
        if actual != document.document_hash:
            self._integrity_failed(document, "stored bytes do not match the recorded hash", actual=actual)

        return data

    def verify_integrity(self, document) -> bool:
        try:
            self.read(document)
        except IntegrityFailure:
            return False
        return True

    def _integrity_failed(self, document, reason: str, actual: str = "") -> None:
        kind = document.DOCUMENT_KIND
        logger.error(
            "Integrity failure on %s %s (%s): expected %s got %s",
            kind,
            document.pk,
            reason,
            document.document_hash,
            actual or "-",
        )
        audit.record(
            "document.integrity_failed",
            entity=document,
            new_values={
                "document_kind": kind,
                "file_path": document.file_path,
                "expected_hash": document.document_hash,
                "actual_hash": actual,
                "reason": reason,
            },
        )
        raise IntegrityFailure(
            f"Document failed its integrity check: {reason}.",
            document_kind=kind,
            document_id=document.pk,
        )

    # --------------------------------------------------------
    # Write side
    # --------------------------------------------------------
    def _result(self, document, content: bytes, created: bool) -> GeneratedDocument:
        return GeneratedDocument(
            document=document,
            content=content,
            document_hash=document.document_hash,
            verification_code=document.verification_code,
            file_path=document.file_path,
            created=created,
            content_type=getattr(self.renderer, "content_type", "application/octet-stream"),
        )

    def generate(
        self,
        document,
        *,
        template_name: str,
        context: Mapping[str, Any],
        user=None,
        payload_hash: str = "",
    ) -> GeneratedDocument:
        """
        Render, store and lock a document exactly once.

        Calling this on an already locked document returns the stored artifact
        (after the read-time integrity check) and writes nothing.
        """
        model = document.__class__

        with transaction.atomic():
            doc = model.objects.select_for_update().get(pk=document.pk)
            if not doc.is_locked:
                final = self._render_and_lock(doc, template_name, context, user, payload_hash)
                return self._result(doc, final, created=True)

        # Checked after the lock block. Without an outer transaction the
        # document.integrity_failed row commits; inside one that rolls back, the
        # ERROR log line is the only trace left.
        return self._result(doc, self.read(doc), created=False)

    def _render_and_lock(self, doc, template_name, context, user, payload_hash) -> bytes:
        model = doc.__class__
        kind = model.DOCUMENT_KIND
        if payload_hash:
            doc.payload_hash = payload_hash

        now = timezone.now()
        base_ctx: Dict[str, Any] = {
            **context,
            "document": doc,
            "document_kind": kind,
            "document_number": document_number(doc),
        }

        draft = self.renderer.render(template_name, {**base_ctx, "verification_code": "", "verification_url": ""})
        code = sha256_hex(draft)

        final = self.renderer.render(
            template_name,
            {
                **base_ctx,
                "verification_code": code,
                "verification_url": verification_url(code),
                "generated_at": now,
                "generated_by": user,
            },
        )
        doc_hash = sha256_hex(final)

        ext = getattr(self.renderer, "extension", "bin")
        path = self.store.store(f"documents/{kind}/{doc.pk}/{doc_hash}.{ext}", final)

        updated = model.objects.filter(pk=doc.pk, is_locked=False).update(
            file_path=path,
            document_hash=doc_hash,
            verification_code=code,
            payload_hash=doc.payload_hash,
            is_locked=True,
            locked_at=now,
            updated_at=now,
        )
        if not updated:
            raise Conflict("Document was locked concurrently.", document_kind=kind, document_id=doc.pk)

        doc.refresh_from_db()

        audit.record(
            "document.locked",
            actor=user,
            entity=doc,
            old_values={"is_locked": False},
            new_values={
                "document_kind": kind,
                "file_path": path,
                "document_hash": doc_hash,
                "verification_code": code,
            },
        )

        logger.info("Locked %s %s with hash %s", kind, doc.pk, doc_hash)
        return final


# ============================================================
# Public verification
# ============================================================
def _summary(document) -> dict:
    summary = {
        "document_kind": document.DOCUMENT_KIND,
        "number": document_number(document),
        "lab_sample_code": getattr(document.sample, "lab_sample_code", None),
        "document_hash": document.document_hash,
        "locked_at": document.locked_at,
    }
    if isinstance(document, Report):
        summary["issued_at"] = document.issued_at
    return summary


def find_locked(hash_or_code: str):
    value = (hash_or_code or "").strip().lower()
    if not value:
        return None
    for model in DOCUMENT_MODELS.values():
        doc = (
            model.objects.select_related("sample")
            .filter(is_locked=True)
            .filter(Q(document_hash=value) | Q(verification_code=value))
            .first()
        )
        if doc is not None:
            return doc
    return None


def verify_public(hash_or_code: str, ledger: Optional[DocumentLedger] = None) -> dict:
    """
    Unauthenticated lookup. Only locked documents whose stored bytes still match
    their hash are reported as valid; unlocked documents are never revealed.
    """
    doc = find_locked(hash_or_code)
    if doc is None:
        return {"valid": False, "message": "Document not found or not finalized."}

    ledger = ledger or DocumentLedger()
    if not ledger.verify_integrity(doc):
        return {"valid": False, "message": "Document failed its integrity check."}

    return {"valid": True, "document_summary": _summary(doc)}
