import pytest

from sample_core.models import AuditLog, IntakeChecklist
from sample_core.services import sequences
from sample_core.services.intake import validate_checklist
from sample_core.services.lab_codes import sequence_name

ALL_PASS = {
    "sample_physical_condition": True,
    "volume": True,
    "identity": True,
    "packing": True,
    "supporting_documents": True,
}


def _submit(api_client, sample, checks, notes=None):
    payload = {"checks": checks}
    if notes is not None:
        payload["notes"] = notes
    return api_client.post(f"/lims/samples/{sample.id}/intake-checklist/", payload, format="json")


def test_validate_checklist_accepts_string_booleans():
    data = validate_checklist({**ALL_PASS, "volume": "no"}, {"volume": " 2 ml short "})
    assert data["checks"]["volume"] is False
    assert data["notes"] == {"volume": "2 ml short"}


@pytest.mark.django_db
def test_passing_checklist_assigns_lab_code(api_client, collector_user, inspection_sample):
    api_client.login(username=collector_user.username, password="pass123")

    resp = _submit(api_client, inspection_sample, ALL_PASS)

    assert resp.status_code == 201, resp.content
    body = resp.json()
    assert body["is_passed"] is True
    assert body["request_status"] == "intake_validated"
    assert body["lab_sample_code"] == "BML-001"

    inspection_sample.refresh_from_db()
    assert inspection_sample.lab_sample_code == "BML-001"
    assert inspection_sample.collector_intake_completed_at is not None
    assert AuditLog.objects.filter(action="sample.lab_code_assigned", entity_id=str(inspection_sample.id)).exists()


@pytest.mark.django_db
def test_failing_checklist_rejects_without_consuming_an_ordinal(api_client, collector_user, inspection_sample):
    api_client.login(username=collector_user.username, password="pass123")

    resp = _submit(
        api_client,
        inspection_sample,
        {**ALL_PASS, "packing": False},
        notes={"packing": "Tube cracked"},
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["is_passed"] is False
    assert body["request_status"] == "rejected"
    assert body["lab_sample_code"] is None
    assert body["checklist"]["failed_checks"] == ["packing"]

    inspection_sample.refresh_from_db()
    assert "Tube cracked" in inspection_sample.request_status_note
    assert sequences.peek(sequence_name("BML")) == 1


@pytest.mark.django_db
def test_failed_check_without_reason_is_rejected(api_client, collector_user, inspection_sample):
    api_client.login(username=collector_user.username, password="pass123")

    resp = _submit(api_client, inspection_sample, {**ALL_PASS, "volume": False})

    assert resp.status_code == 400
    assert "volume" in resp.json()["error"]["details"]["notes"]
    assert not IntakeChecklist.objects.filter(sample=inspection_sample).exists()
    inspection_sample.refresh_from_db()
    assert inspection_sample.request_status == "under_inspection"


@pytest.mark.django_db
def test_missing_check_is_rejected(api_client, collector_user, inspection_sample):
    api_client.login(username=collector_user.username, password="pass123")
    checks = dict(ALL_PASS)
    del checks["identity"]

    resp = _submit(api_client, inspection_sample, checks)

    assert resp.status_code == 400
    assert "identity" in resp.json()["error"]["details"]


@pytest.mark.django_db
def test_second_submission_conflicts(api_client, collector_user, inspection_sample):
    api_client.login(username=collector_user.username, password="pass123")
    assert _submit(api_client, inspection_sample, ALL_PASS).status_code == 201

    resp = _submit(api_client, inspection_sample, ALL_PASS)

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "conflict"
    assert IntakeChecklist.objects.filter(sample=inspection_sample).count() == 1


@pytest.mark.django_db
def test_checklist_requires_inspection_state(api_client, collector_user, sample_factory):
    sample = sample_factory(status="physically_received", custody_until="admin_received_from_client")
    api_client.login(username=collector_user.username, password="pass123")

    resp = _submit(api_client, sample, ALL_PASS)

    assert resp.status_code == 422


@pytest.mark.django_db
def test_only_collectors_submit_checklists(api_client, analyst_user, inspection_sample):
    api_client.login(username=analyst_user.username, password="pass123")

    resp = _submit(api_client, inspection_sample, ALL_PASS)

    assert resp.status_code == 403
    assert AuditLog.objects.filter(action="intake.submit.blocked").exists()


@pytest.mark.django_db
def test_codes_follow_workflow_group_prefix(api_client, collector_user, sample_factory, settings):
    settings.LAB_CODE_PREFIXES = {"wgs": "WGS"}
    sample = sample_factory(status="under_inspection", custody_until="collector_received", workflow_group="wgs")
    api_client.login(username=collector_user.username, password="pass123")

    resp = _submit(api_client, sample, ALL_PASS)

    assert resp.json()["lab_sample_code"] == "WGS-001"


@pytest.mark.django_db
def test_get_checklist(api_client, collector_user, inspection_sample):
    api_client.login(username=collector_user.username, password="pass123")
    assert api_client.get(f"/lims/samples/{inspection_sample.id}/intake-checklist/").status_code == 404

    _submit(api_client, inspection_sample, ALL_PASS)
    resp = api_client.get(f"/lims/samples/{inspection_sample.id}/intake-checklist/")

    assert resp.status_code == 200
    assert resp.json()["is_passed"] is True
