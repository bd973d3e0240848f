import pytest
from django.core.files.storage import default_storage

from sample_core.exceptions import Conflict, PreconditionFailed
from sample_core.models import AuditLog, DocumentSignature, LetterOfOrder
from sample_core.roles import LETTER_OF_ORDER, LOO_CANDIDATE
from sample_core.services import approvals
from sample_core.services.documents import DocumentLedger, hash_payload
from sample_core.services.letters import generate_letters, letter_status, signable_payload
from sample_core.services.signatures import sign_document


@pytest.fixture
def letter(verified_sample, admin_user, om_user, lh_user):
    approvals.set_approval(kind=LOO_CANDIDATE, subject_id=verified_sample.id, role_code="OM", approved=True, user=om_user)
    approvals.set_approval(kind=LOO_CANDIDATE, subject_id=verified_sample.id, role_code="LH", approved=True, user=lh_user)
    generate_letters(sample_ids=[verified_sample.id], user=admin_user)
    return LetterOfOrder.objects.get(sample=verified_sample)


def _sign(api_client, letter, role_code):
    return api_client.post(f"/lims/loo/{letter.pk}/sign/", {"role_code": role_code}, format="json")


@pytest.mark.django_db
def test_generated_letter_is_an_unsigned_draft(letter):
    assert letter.number == "LOO-001"
    assert letter.is_locked is False
    assert letter.file_path == ""
    assert letter_status(letter) == "draft"


@pytest.mark.django_db
def test_lh_cannot_close_before_om(api_client, lh_user, letter):
    api_client.login(username=lh_user.username, password="pass123")

    resp = _sign(api_client, letter, "LH")

    assert resp.status_code == 422
    assert resp.json()["error"]["details"]["missing_roles"] == ["OM"]
    assert not DocumentSignature.objects.filter(document_kind=LETTER_OF_ORDER).exists()


@pytest.mark.django_db
def test_om_then_lh_signature_locks_letter(api_client, om_user, lh_user, letter):
    api_client.login(username=om_user.username, password="pass123")
    resp = _sign(api_client, letter, "OM")
    assert resp.status_code == 200, resp.content
    assert resp.json()["finalized"] is False
    assert resp.json()["letter"]["status"] == "signing"

    api_client.logout()
    api_client.login(username=lh_user.username, password="pass123")
    resp = _sign(api_client, letter, "LH")

    assert resp.status_code == 200, resp.content
    body = resp.json()
    assert body["finalized"] is True
    assert body["letter"]["status"] == "locked"

    letter.refresh_from_db()
    assert letter.is_locked
    assert body["document_hash"] == letter.document_hash
    assert letter.payload_hash == hash_payload(signable_payload(letter))

    content = DocumentLedger().read(letter)
    for sig in DocumentSignature.objects.filter(document_kind=LETTER_OF_ORDER, document_id=letter.pk):
        assert sig.signature_hash.encode() in content
    assert default_storage.exists(letter.file_path)
    assert AuditLog.objects.filter(action="loo.finalized", entity_id=str(letter.pk)).exists()


@pytest.mark.django_db
def test_signing_a_locked_letter_conflicts(om_user, lh_user, letter):
    sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="OM", user=om_user)
    sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="LH", user=lh_user)

    with pytest.raises(Conflict):
        sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="OM", user=om_user)


@pytest.mark.django_db
def test_withdrawn_approval_blocks_finalization(om_user, lh_user, letter):
    sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="OM", user=om_user)
    approvals.set_approval(
        kind=LOO_CANDIDATE, subject_id=letter.sample_id, role_code="OM", approved=False, user=om_user
    )

    with pytest.raises(PreconditionFailed):
        sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="LH", user=lh_user)

    letter.refresh_from_db()
    assert letter.is_locked is False
    assert not DocumentSignature.objects.filter(document_kind=LETTER_OF_ORDER, role_code="LH").exists()


@pytest.mark.django_db
def test_letter_detail_lists_slots(api_client, admin_user, om_user, letter):
    sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="OM", user=om_user)
    api_client.login(username=admin_user.username, password="pass123")

    body = api_client.get(f"/lims/loo/{letter.pk}/").json()

    assert body["status"] == "signing"
    assert body["slots"]["OM"]["signed"] is True
    assert body["slots"]["OM"]["signed_by"] == om_user.id
    assert body["slots"]["LH"]["signed"] is False


@pytest.mark.django_db
def test_signature_lookup_by_hash(api_client, admin_user, om_user, letter):
    result = sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="OM", user=om_user)
    api_client.login(username=admin_user.username, password="pass123")

    resp = api_client.get(f"/lims/signatures/verify/{result['signature'].signature_hash}/")

    assert resp.status_code == 200
    body = resp.json()
    assert body["role_code"] == "OM"
    assert body["signer"] == om_user.username
    assert body["document_kind"] == LETTER_OF_ORDER
    assert body["document_number"] == letter.number
    assert body["document_locked"] is False

    assert api_client.get(f"/lims/signatures/verify/{'0' * 64}/").status_code == 404


@pytest.mark.django_db
def test_bulk_generate_of_locked_letter_does_not_read_stored_bytes(monkeypatch, admin_user, om_user, lh_user, letter):
    sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="OM", user=om_user)
    sign_document(kind=LETTER_OF_ORDER, document_id=letter.pk, role_code="LH", user=lh_user)

    def fail_read(self, document):
        raise AssertionError("stored bytes read during bulk generation")

    monkeypatch.setattr(DocumentLedger, "read", fail_read)

    result = generate_letters(sample_ids=[letter.sample_id], user=admin_user)

    assert result["failed"] == []
    assert result["letters"][0]["created"] is False
    assert result["letters"][0]["status"] == "locked"
