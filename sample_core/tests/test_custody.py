import pytest

from sample_core.models import WorkflowTransition
from sample_core.workflows.custody import custody_snapshot, missing_predecessor, next_custody_event


def _event(api_client, sample, event):
    return api_client.post(f"/lims/samples/{sample.id}/custody/", {"event": event}, format="json")


@pytest.mark.django_db
def test_custody_helpers(sample_factory):
    sample = sample_factory(status="submitted")
    assert next_custody_event(sample) == "admin_received_from_client"
    assert missing_predecessor(sample, "collector_received") == "admin_brought_to_collector"
    assert missing_predecessor(sample, "admin_received_from_client") is None
    assert set(custody_snapshot(sample).values()) == {None}


@pytest.mark.django_db
def test_first_custody_event_moves_request_to_physically_received(api_client, admin_user, sample_factory):
    sample = sample_factory(status="ready_for_delivery")
    api_client.login(username=admin_user.username, password="pass123")

    resp = _event(api_client, sample, "admin_received_from_client")

    assert resp.status_code == 200, resp.content
    body = resp.json()
    assert body["changed"] is True
    assert body["request_status"] == "physically_received"
    assert body["custody"]["admin_received_from_client"] is not None

    t = WorkflowTransition.objects.get(object_id=sample.id)
    assert (t.from_status, t.to_status) == ("ready_for_delivery", "physically_received")


@pytest.mark.django_db
def test_out_of_order_event_names_missing_predecessor(api_client, collector_user, sample_factory):
    sample = sample_factory(status="physically_received", custody_until="admin_received_from_client")
    api_client.login(username=collector_user.username, password="pass123")

    resp = _event(api_client, sample, "collector_received")

    assert resp.status_code == 422
    assert resp.json()["error"]["details"]["missing_predecessor"] == "admin_brought_to_collector"
    sample.refresh_from_db()
    assert sample.collector_received_at is None


@pytest.mark.django_db
def test_repeating_an_event_is_idempotent(api_client, admin_user, sample_factory):
    sample = sample_factory(status="physically_received", custody_until="admin_received_from_client")
    api_client.login(username=admin_user.username, password="pass123")

    first = _event(api_client, sample, "admin_brought_to_collector")
    assert first.status_code == 200
    stamped = first.json()["timestamp"]

    again = _event(api_client, sample, "admin_brought_to_collector")
    assert again.status_code == 200
    assert again.json()["changed"] is False
    assert again.json()["timestamp"] == stamped


@pytest.mark.django_db
def test_collector_received_moves_to_under_inspection(api_client, collector_user, sample_factory):
    sample = sample_factory(status="physically_received", custody_until="admin_brought_to_collector")
    api_client.login(username=collector_user.username, password="pass123")

    resp = _event(api_client, sample, "collector_received")

    assert resp.status_code == 200
    assert resp.json()["request_status"] == "under_inspection"


@pytest.mark.django_db
def test_custody_event_role_is_enforced(api_client, collector_user, sample_factory):
    sample = sample_factory(status="ready_for_delivery")
    api_client.login(username=collector_user.username, password="pass123")

    resp = _event(api_client, sample, "admin_received_from_client")

    assert resp.status_code == 403
    sample.refresh_from_db()
    assert sample.admin_received_from_client_at is None


@pytest.mark.django_db
def test_unknown_event_is_rejected(api_client, admin_user, sample_factory):
    sample = sample_factory(status="ready_for_delivery")
    api_client.login(username=admin_user.username, password="pass123")

    resp = _event(api_client, sample, "teleported")

    assert resp.status_code == 400
    assert "event" in resp.json()["error"]["details"]


@pytest.mark.django_db
def test_intake_completed_requires_checklist_outcome(api_client, collector_user, inspection_sample):
    api_client.login(username=collector_user.username, password="pass123")

    resp = _event(api_client, inspection_sample, "collector_intake_completed")

    assert resp.status_code == 422
    assert resp.json()["error"]["details"]["current"] == "under_inspection"
