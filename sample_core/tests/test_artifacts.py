import pytest

from sample_core.exceptions import PreconditionFailed, RoleForbidden
from sample_core.models import ReagentCalculation, Sample
from sample_core.services import artifacts


@pytest.fixture
def crosschecked_sample(verified_sample_factory):
    return verified_sample_factory(crosscheck_status=Sample.Crosscheck.PASSED)


@pytest.fixture
def calc(crosschecked_sample, analyst_user):
    return artifacts.create_calculation(
        sample_id=crosschecked_sample.id,
        baseline={"buffer_ml": 10},
        user=analyst_user,
    )


@pytest.mark.django_db
def test_create_is_idempotent(calc, crosschecked_sample, analyst_user):
    again = artifacts.create_calculation(sample_id=crosschecked_sample.id, baseline={"x": 1}, user=analyst_user)
    assert again.pk == calc.pk
    assert again.baseline == {"buffer_ml": 10}
    assert calc.version_no == 1
    assert list(calc.versions.values_list("event", flat=True)) == ["created"]


@pytest.mark.django_db
def test_propose_then_approve_locks(calc, analyst_user, om_user):
    calc = artifacts.propose(calculation_id=calc.id, data={"buffer_ml": 12}, note="Extra wash", user=analyst_user)
    assert calc.version_no == 2
    assert calc.proposal == {"buffer_ml": 12}
    assert calc.effective is None
    assert calc.current_value == {"buffer_ml": 10}

    calc = artifacts.decide(calculation_id=calc.id, approve=True, user=om_user)
    assert calc.version_no == 3
    assert calc.locked is True
    assert calc.effective == {"buffer_ml": 12}
    assert calc.proposal is None
    assert calc.approved_by == om_user
    assert list(calc.versions.values_list("event", flat=True)) == ["created", "proposed", "approved"]


@pytest.mark.django_db
def test_propose_on_locked_calculation_fails_without_side_effects(calc, analyst_user, om_user):
    artifacts.propose(calculation_id=calc.id, data={"buffer_ml": 12}, user=analyst_user)
    artifacts.decide(calculation_id=calc.id, approve=True, user=om_user)

    with pytest.raises(PreconditionFailed):
        artifacts.propose(calculation_id=calc.id, data={"buffer_ml": 99}, user=analyst_user)

    calc.refresh_from_db()
    assert calc.version_no == 3
    assert calc.proposal is None
    assert calc.versions.count() == 3


@pytest.mark.django_db
def test_reject_keeps_calculation_open(calc, analyst_user, om_user):
    artifacts.propose(calculation_id=calc.id, data={"buffer_ml": 12}, user=analyst_user)

    calc = artifacts.decide(calculation_id=calc.id, approve=False, note="Not justified", user=om_user)

    assert calc.locked is False
    assert calc.effective is None
    assert calc.proposal is None
    assert calc.last_decision == "rejected"
    assert calc.version_no == 3

    # A new proposal may follow a rejection.
    calc = artifacts.propose(calculation_id=calc.id, data={"buffer_ml": 11}, user=analyst_user)
    assert calc.version_no == 4


@pytest.mark.django_db
def test_decide_without_proposal_fails(calc, om_user):
    with pytest.raises(PreconditionFailed):
        artifacts.decide(calculation_id=calc.id, approve=True, user=om_user)


@pytest.mark.django_db
def test_batch_crosscheck_gate_lists_blockers(api_client, analyst_user, batch_factory, verified_sample_factory):
    batch = batch_factory()
    ok = verified_sample_factory(batch=batch, crosscheck_status=Sample.Crosscheck.PASSED)
    pending = verified_sample_factory(batch=batch)
    failed = verified_sample_factory(batch=batch, crosscheck_status=Sample.Crosscheck.FAILED)

    api_client.login(username=analyst_user.username, password="pass123")
    resp = api_client.post("/lims/reagent-calculations/", {"sample": ok.id, "baseline": {"a": 1}}, format="json")
    assert resp.status_code == 201, resp.content
    calc_id = resp.json()["id"]
    assert resp.json()["blocking_sample_ids"] == sorted([pending.id, failed.id])

    resp = api_client.post(
        f"/lims/reagent-calculations/{calc_id}/propose/",
        {"data": {"a": 2}},
        format="json",
    )

    assert resp.status_code == 422
    assert resp.json()["error"]["details"]["blocking_sample_ids"] == sorted([pending.id, failed.id])
    assert ReagentCalculation.objects.get(pk=calc_id).version_no == 1


@pytest.mark.django_db
def test_roles_are_enforced(calc, analyst_user, om_user):
    with pytest.raises(RoleForbidden):
        artifacts.propose(calculation_id=calc.id, data={"a": 1}, user=om_user)

    artifacts.propose(calculation_id=calc.id, data={"a": 1}, user=analyst_user)
    with pytest.raises(RoleForbidden):
        artifacts.decide(calculation_id=calc.id, approve=True, user=analyst_user)


@pytest.mark.django_db
def test_api_flow(api_client, analyst_user, om_user, calc):
    api_client.login(username=analyst_user.username, password="pass123")
    resp = api_client.post(f"/lims/reagent-calculations/{calc.id}/propose/", {"data": {"b": 2}}, format="json")
    assert resp.status_code == 200
    assert resp.json()["version_no"] == 2

    api_client.logout()
    api_client.login(username=om_user.username, password="pass123")
    resp = api_client.post(f"/lims/reagent-calculations/{calc.id}/decide/", {"approve": True}, format="json")
    assert resp.status_code == 200
    body = resp.json()
    assert body["locked"] is True
    assert body["current_value"] == {"b": 2}
    assert [v["event"] for v in body["versions"]] == ["created", "proposed", "approved"]
