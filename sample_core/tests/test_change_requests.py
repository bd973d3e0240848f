import pytest
from rest_framework.exceptions import ValidationError

from sample_core.exceptions import Conflict, PreconditionFailed, RoleForbidden
from sample_core.models import LetterOfOrder, SampleIdChangeRequest
from sample_core.services import lab_codes, sequences
from sample_core.services.change_requests import approve_change, propose_change, reject_change


@pytest.fixture
def coded_sample(verified_sample_factory):
    return verified_sample_factory(lab_sample_code="BML-003")


@pytest.mark.django_db
def test_propose_and_approve_replaces_code(api_client, admin_user, om_user, coded_sample):
    api_client.login(username=admin_user.username, password="pass123")
    resp = api_client.post(
        "/lims/sample-id-changes/",
        {"sample": coded_sample.id, "proposed_code": "bml 40", "reason": "Label printed with wrong code"},
        format="json",
    )
    assert resp.status_code == 201, resp.content
    assert resp.json()["proposed_code"] == "BML-040"
    cr_id = resp.json()["id"]

    api_client.logout()
    api_client.login(username=om_user.username, password="pass123")
    resp = api_client.post(f"/lims/sample-id-changes/{cr_id}/approve/", {"note": "ok"}, format="json")

    assert resp.status_code == 200, resp.content
    assert resp.json()["status"] == "APPROVED"
    coded_sample.refresh_from_db()
    assert coded_sample.lab_sample_code == "BML-040"
    assert sequences.peek(lab_codes.sequence_name("BML")) == 41


@pytest.mark.django_db
def test_reason_is_required(admin_user, coded_sample):
    with pytest.raises(ValidationError):
        propose_change(sample_id=coded_sample.id, proposed_code="BML-041", reason="  ", user=admin_user)


@pytest.mark.django_db
def test_one_pending_request_per_sample(admin_user, coded_sample):
    propose_change(sample_id=coded_sample.id, proposed_code="BML-041", reason="typo", user=admin_user)

    with pytest.raises(Conflict):
        propose_change(sample_id=coded_sample.id, proposed_code="BML-042", reason="typo", user=admin_user)


@pytest.mark.django_db
def test_code_in_use_conflicts(admin_user, coded_sample, verified_sample_factory):
    verified_sample_factory(lab_sample_code="BML-050")

    with pytest.raises(Conflict):
        propose_change(sample_id=coded_sample.id, proposed_code="BML-050", reason="typo", user=admin_user)


@pytest.mark.django_db
def test_locked_documents_freeze_the_code(admin_user, coded_sample):
    LetterOfOrder.objects.create(sample=coded_sample, number="LOO-900", is_locked=True)

    with pytest.raises(PreconditionFailed):
        propose_change(sample_id=coded_sample.id, proposed_code="BML-041", reason="typo", user=admin_user)


@pytest.mark.django_db
def test_requester_cannot_review_own_request(make_user, coded_sample):
    user = make_user("admin-om", "ADMINISTRATOR")
    make_user("admin-om", "OPERATIONAL_MANAGER")
    cr = propose_change(sample_id=coded_sample.id, proposed_code="BML-041", reason="typo", user=user)

    with pytest.raises(RoleForbidden):
        approve_change(request_id=cr.pk, user=user)


@pytest.mark.django_db
def test_reject_needs_note_and_is_terminal(admin_user, lh_user, coded_sample):
    cr = propose_change(sample_id=coded_sample.id, proposed_code="BML-041", reason="typo", user=admin_user)

    with pytest.raises(ValidationError):
        reject_change(request_id=cr.pk, note="", user=lh_user)

    cr = reject_change(request_id=cr.pk, note="Code was right", user=lh_user)
    assert cr.status == SampleIdChangeRequest.Status.REJECTED

    with pytest.raises(Conflict):
        approve_change(request_id=cr.pk, user=lh_user)

    coded_sample.refresh_from_db()
    assert coded_sample.lab_sample_code == "BML-003"


@pytest.mark.django_db
def test_only_admins_propose(om_user, coded_sample):
    with pytest.raises(RoleForbidden):
        propose_change(sample_id=coded_sample.id, proposed_code="BML-041", reason="typo", user=om_user)


@pytest.mark.django_db
def test_list_filters_by_status(api_client, admin_user, coded_sample):
    propose_change(sample_id=coded_sample.id, proposed_code="BML-041", reason="typo", user=admin_user)
    api_client.login(username=admin_user.username, password="pass123")

    pending = api_client.get("/lims/sample-id-changes/?status=PENDING").json()["results"]
    approved = api_client.get("/lims/sample-id-changes/?status=APPROVED").json()["results"]

    assert len(pending) == 1
    assert approved == []
