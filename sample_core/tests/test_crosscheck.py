import pytest

from sample_core.models import Sample


def _crosscheck(api_client, sample, label, note=""):
    return api_client.post(
        f"/lims/samples/{sample.id}/crosscheck/",
        {"physical_label_code": label, "note": note},
        format="json",
    )


@pytest.mark.django_db
def test_matching_label_passes(api_client, analyst_user, verified_sample):
    api_client.login(username=analyst_user.username, password="pass123")

    resp = _crosscheck(api_client, verified_sample, f"  {verified_sample.lab_sample_code.lower()} ")

    assert resp.status_code == 200, resp.content
    assert resp.json()["crosscheck_status"] == "passed"


@pytest.mark.django_db
def test_mismatch_requires_note(api_client, analyst_user, verified_sample):
    api_client.login(username=analyst_user.username, password="pass123")

    resp = _crosscheck(api_client, verified_sample, "BML-999")

    assert resp.status_code == 400
    assert "note" in resp.json()["error"]["details"]
    verified_sample.refresh_from_db()
    assert verified_sample.crosscheck_status == Sample.Crosscheck.PENDING


@pytest.mark.django_db
def test_failed_crosscheck_can_be_redone(api_client, analyst_user, verified_sample):
    api_client.login(username=analyst_user.username, password="pass123")

    resp = _crosscheck(api_client, verified_sample, "BML-999", note="Label smudged")
    assert resp.json()["crosscheck_status"] == "failed"

    resp = _crosscheck(api_client, verified_sample, verified_sample.lab_sample_code)
    assert resp.json()["crosscheck_status"] == "passed"

    resp = _crosscheck(api_client, verified_sample, verified_sample.lab_sample_code)
    assert resp.status_code == 409


@pytest.mark.django_db
def test_crosscheck_needs_lab_code(api_client, analyst_user, inspection_sample):
    api_client.login(username=analyst_user.username, password="pass123")

    resp = _crosscheck(api_client, inspection_sample, "BML-001")

    assert resp.status_code == 422


@pytest.mark.django_db
def test_only_analysts_crosscheck(api_client, om_user, verified_sample):
    api_client.login(username=om_user.username, password="pass123")

    assert _crosscheck(api_client, verified_sample, verified_sample.lab_sample_code).status_code == 403
