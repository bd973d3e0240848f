import pytest

from sample_core.exceptions import PreconditionFailed, RoleForbidden
from sample_core.models import ApprovalLedgerEntry, AuditLog, LetterOfOrder
from sample_core.roles import LOO_CANDIDATE
from sample_core.services import approvals
from sample_core.services.letters import generate_letters


def _approve(api_client, sample, role_code, approved=True):
    return api_client.patch(
        f"/lims/loo/approvals/{sample.id}/",
        {"role_code": role_code, "approved": approved},
        format="json",
    )


def _approve_both(sample, om_user, lh_user):
    approvals.set_approval(kind=LOO_CANDIDATE, subject_id=sample.id, role_code="OM", approved=True, user=om_user)
    approvals.set_approval(kind=LOO_CANDIDATE, subject_id=sample.id, role_code="LH", approved=True, user=lh_user)


@pytest.mark.django_db
def test_approvals_are_independent_of_order(verified_sample, om_user, lh_user):
    approvals.set_approval(kind=LOO_CANDIDATE, subject_id=verified_sample.id, role_code="LH", approved=True, user=lh_user)
    assert approvals.is_ready(LOO_CANDIDATE, verified_sample.id) is False

    approvals.set_approval(kind=LOO_CANDIDATE, subject_id=verified_sample.id, role_code="om", approved=True, user=om_user)
    assert approvals.is_ready(LOO_CANDIDATE, verified_sample.id) is True


@pytest.mark.django_db
def test_no_cross_role_approval(verified_sample, om_user):
    with pytest.raises(RoleForbidden):
        approvals.set_approval(
            kind=LOO_CANDIDATE,
            subject_id=verified_sample.id,
            role_code="LH",
            approved=True,
            user=om_user,
        )
    assert not ApprovalLedgerEntry.objects.exists()
    assert AuditLog.objects.filter(action="approval.loo_candidate.blocked", actor=om_user).exists()


@pytest.mark.django_db
def test_reapproval_keeps_first_timestamp(verified_sample, om_user):
    first = approvals.set_approval(
        kind=LOO_CANDIDATE, subject_id=verified_sample.id, role_code="OM", approved=True, user=om_user
    )
    again = approvals.set_approval(
        kind=LOO_CANDIDATE, subject_id=verified_sample.id, role_code="OM", approved=True, user=om_user
    )
    assert again.pk == first.pk
    assert again.approved_at == first.approved_at


@pytest.mark.django_db
def test_clearing_keeps_row_and_last_actor(api_client, verified_sample, om_user):
    api_client.login(username=om_user.username, password="pass123")
    assert _approve(api_client, verified_sample, "OM").status_code == 200

    resp = _approve(api_client, verified_sample, "OM", approved=False)

    assert resp.status_code == 200
    assert resp.json()["approvals"]["OM"]["approved"] is False
    assert resp.json()["approvals"]["OM"]["updated_by"] == om_user.id

    entry = ApprovalLedgerEntry.objects.get(subject_id=verified_sample.id, role_code="OM")
    assert entry.approved_at is None
    assert entry.approved_by is None
    assert entry.updated_by == om_user


@pytest.mark.django_db
def test_unverified_sample_is_not_eligible(awaiting_sample_factory, om_user):
    sample = awaiting_sample_factory()
    with pytest.raises(PreconditionFailed):
        approvals.set_approval(kind=LOO_CANDIDATE, subject_id=sample.id, role_code="OM", approved=True, user=om_user)


@pytest.mark.django_db
def test_unknown_role_code_is_invalid(api_client, verified_sample, om_user):
    api_client.login(username=om_user.username, password="pass123")

    resp = _approve(api_client, verified_sample, "QA")

    assert resp.status_code == 400
    assert "role_code" in resp.json()["error"]["details"]


@pytest.mark.django_db
def test_candidates_list_shows_readiness(api_client, admin_user, om_user, lh_user, verified_sample_factory):
    ready = verified_sample_factory()
    half = verified_sample_factory()
    _approve_both(ready, om_user, lh_user)
    approvals.set_approval(kind=LOO_CANDIDATE, subject_id=half.id, role_code="OM", approved=True, user=om_user)

    api_client.login(username=admin_user.username, password="pass123")
    resp = api_client.get("/lims/loo/candidates/")

    assert resp.status_code == 200
    rows = {r["sample_id"]: r for r in resp.json()["results"]}
    assert rows[ready.id]["ready"] is True
    assert rows[half.id]["ready"] is False
    assert rows[half.id]["approvals"]["LH"]["approved"] is False


@pytest.mark.django_db
def test_bulk_generate_excludes_samples_without_both_approvals(
    api_client, admin_user, om_user, lh_user, verified_sample_factory
):
    a = verified_sample_factory()
    b = verified_sample_factory()
    c = verified_sample_factory()
    _approve_both(a, om_user, lh_user)
    _approve_both(b, om_user, lh_user)
    approvals.set_approval(kind=LOO_CANDIDATE, subject_id=c.id, role_code="OM", approved=True, user=om_user)

    api_client.login(username=admin_user.username, password="pass123")
    resp = api_client.post("/lims/loo/generate/", {"sample_ids": [a.id, b.id, c.id]}, format="json")

    assert resp.status_code == 200, resp.content
    body = resp.json()
    assert body["generated"] == [a.id, b.id]
    assert body["excluded_not_ready"] == [c.id]
    assert body["failed"] == []

    letters = LetterOfOrder.objects.filter(sample__in=[a, b]).order_by("sample_id")
    assert [l.number for l in letters] == ["LOO-001", "LOO-002"]
    assert all(not l.is_locked and l.document_hash == "" for l in letters)
    assert [row["status"] for row in body["letters"]] == ["draft", "draft"]
    assert not LetterOfOrder.objects.filter(sample=c).exists()


@pytest.mark.django_db
def test_bulk_generate_twice_keeps_one_letter_per_sample(
    api_client, admin_user, om_user, lh_user, verified_sample
):
    _approve_both(verified_sample, om_user, lh_user)
    api_client.login(username=admin_user.username, password="pass123")

    first = api_client.post("/lims/loo/generate/", {"sample_ids": [verified_sample.id]}, format="json").json()
    second = api_client.post("/lims/loo/generate/", {"sample_ids": [verified_sample.id]}, format="json").json()

    assert first["letters"][0]["created"] is True
    assert second["letters"][0]["created"] is False
    assert second["letters"][0]["number"] == first["letters"][0]["number"]
    assert LetterOfOrder.objects.filter(sample=verified_sample).count() == 1


@pytest.mark.django_db
def test_bulk_generate_requires_capability(api_client, analyst_user, verified_sample):
    api_client.login(username=analyst_user.username, password="pass123")

    resp = api_client.post("/lims/loo/generate/", {"sample_ids": [verified_sample.id]}, format="json")

    assert resp.status_code == 403


@pytest.mark.django_db
def test_clearing_one_role_withdraws_readiness(api_client, admin_user, om_user, lh_user, verified_sample):
    _approve_both(verified_sample, om_user, lh_user)
    assert approvals.is_ready(LOO_CANDIDATE, verified_sample.id) is True

    approvals.set_approval(
        kind=LOO_CANDIDATE, subject_id=verified_sample.id, role_code="LH", approved=False, user=lh_user
    )

    assert approvals.is_ready(LOO_CANDIDATE, verified_sample.id) is False
    assert approvals.approval_summary(LOO_CANDIDATE, verified_sample.id)["OM"]["approved"] is True

    api_client.login(username=admin_user.username, password="pass123")
    body = api_client.post("/lims/loo/generate/", {"sample_ids": [verified_sample.id]}, format="json").json()

    assert body["generated"] == []
    assert body["excluded_not_ready"] == [verified_sample.id]
    assert not LetterOfOrder.objects.filter(sample=verified_sample).exists()


@pytest.mark.django_db
def test_readiness_is_rechecked_under_lock(monkeypatch, admin_user, om_user, lh_user, verified_sample):
    _approve_both(verified_sample, om_user, lh_user)

    # The pre-filter still sees both approvals; the LH clear lands before the
    # per-sample transaction takes its locks.
    real_readiness = approvals.readiness

    def stale_readiness(kind, ids):
        result = real_readiness(kind, ids)
        approvals.set_approval(
            kind=LOO_CANDIDATE, subject_id=verified_sample.id, role_code="LH", approved=False, user=lh_user
        )
        return result

    monkeypatch.setattr(approvals, "readiness", stale_readiness)

    result = generate_letters(sample_ids=[verified_sample.id], user=admin_user)

    assert result["generated"] == []
    assert result["excluded_not_ready"] == [verified_sample.id]
    assert not LetterOfOrder.objects.filter(sample=verified_sample).exists()
