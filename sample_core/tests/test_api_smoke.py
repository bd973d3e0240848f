import pytest


@pytest.mark.django_db
def test_health_is_public(api_client):
    resp = api_client.get("/lims/health/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.django_db
def test_anonymous_requests_get_error_envelope(api_client):
    resp = api_client.get("/lims/samples/")

    assert resp.status_code in (401, 403)
    error = resp.json()["error"]
    assert error["code"] == "not_authenticated"
    assert error["request_id"]


@pytest.mark.django_db
def test_whoami_reports_role_codes(api_client, make_user):
    user = make_user("dual", "OM")
    make_user("dual", "LAB_HEAD")
    api_client.login(username="dual", password="pass123")

    body = api_client.get("/lims/me/").json()

    assert body["roles"] == ["LABORATORY_HEAD", "OPERATIONAL_MANAGER"]
    assert body["role_codes"] == ["LH", "OM"]
    assert body["is_staff_member"] is True
    assert body["client_id"] is None
    assert body["id"] == user.id


@pytest.mark.django_db
def test_whoami_for_client(api_client, client_user, client_profile):
    api_client.login(username=client_user.username, password="pass123")

    body = api_client.get("/lims/me/").json()

    assert body["roles"] == ["CLIENT"]
    assert body["client_id"] == client_profile.id


@pytest.mark.django_db
def test_sample_detail_exposes_custody_and_allowed_transitions(api_client, admin_user, sample_factory):
    sample = sample_factory(status="submitted")
    api_client.login(username=admin_user.username, password="pass123")

    resp = api_client.get(f"/lims/samples/{sample.id}/")

    assert resp.status_code == 200
    body = resp.json()
    assert body["next_custody_event"] == "admin_received_from_client"
    assert body["allowed_transitions"] == ["needs_revision", "ready_for_delivery", "returned"]


@pytest.mark.django_db
def test_sample_filters(api_client, admin_user, sample_factory, verified_sample):
    sample_factory(status="submitted")
    api_client.login(username=admin_user.username, password="pass123")

    rows = api_client.get("/lims/samples/?verified=true").json()["results"]

    assert [r["id"] for r in rows] == [verified_sample.id]


@pytest.mark.django_db
def test_workflow_definition_endpoint(api_client, admin_user):
    api_client.login(username=admin_user.username, password="pass123")

    body = api_client.get("/lims/workflow/definition/").json()

    assert body["kind"] == "sample_request"
    assert body["transitions"]["draft"] == ["submitted"]
    assert body["roles"]["submitted"]["ready_for_delivery"] == ["ADMINISTRATOR"]


@pytest.mark.django_db
def test_clients_cannot_reach_staff_endpoints(api_client, client_user, client_profile):
    api_client.login(username=client_user.username, password="pass123")

    assert api_client.get("/lims/loo/candidates/").status_code == 403
    assert api_client.get("/lims/sample-id-changes/").status_code == 403
