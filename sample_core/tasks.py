# sample_core/tasks.py
from __future__ import annotations

import logging

from celery import shared_task

from sample_core.services.documents import DOCUMENT_MODELS, DocumentLedger

logger = logging.getLogger(__name__)


@shared_task
def scan_document_integrity() -> dict:
    """
    Re-hash every locked document against its stored bytes.
    Read-only: failures are logged and audited by the ledger, never repaired.
    """
    ledger = DocumentLedger()
    checked = 0
    failed = []

    for kind, model in DOCUMENT_MODELS.items():
        for doc in model.objects.filter(is_locked=True).select_related("sample").iterator():
            checked += 1
            if not ledger.verify_integrity(doc):
                failed.append({"document_kind": kind, "document_id": doc.pk})

    if failed:
        logger.error("Document integrity scan: %s of %s failed", len(failed), checked)
    else:
        logger.info("Document integrity scan: %s documents verified", checked)

    return {"checked": checked, "failed": failed}
