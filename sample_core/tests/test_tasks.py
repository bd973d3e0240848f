import pytest
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

from sample_core.models import AuditLog
from sample_core.services.documents import DocumentLedger
from sample_core.services.letters import LOO_TEMPLATE, ensure_letter, letter_context
from sample_core.tasks import scan_document_integrity


def _locked_letter(sample, user):
    letter = ensure_letter(sample, user)
    return DocumentLedger().generate(letter, template_name=LOO_TEMPLATE, context=letter_context(sample)).document


@pytest.mark.django_db
def test_scan_reports_only_tampered_documents(verified_sample_factory, admin_user):
    good = _locked_letter(verified_sample_factory(), admin_user)
    bad = _locked_letter(verified_sample_factory(), admin_user)
    ensure_letter(verified_sample_factory(), admin_user)  # unlocked, not scanned

    default_storage.delete(bad.file_path)
    default_storage.save(bad.file_path, ContentFile(b"altered"))

    result = scan_document_integrity.apply().get()

    assert result["checked"] == 2
    assert result["failed"] == [{"document_kind": "letter_of_order", "document_id": bad.pk}]
    assert AuditLog.objects.filter(action="document.integrity_failed", entity_id=str(bad.pk)).count() == 1
    assert not AuditLog.objects.filter(action="document.integrity_failed", entity_id=str(good.pk)).exists()
