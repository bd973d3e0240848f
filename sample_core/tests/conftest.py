# sample_core/tests/conftest.py

from __future__ import annotations

import itertools
import uuid
from typing import Callable, Optional

import pytest
from django.contrib.auth import authenticate, get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from sample_core.models import Client, IntakeChecklist, Sample, SampleBatch, UserRole
from sample_core.roles import (
    ADMINISTRATOR,
    ANALYST,
    LABORATORY_HEAD,
    OPERATIONAL_MANAGER,
    SAMPLE_COLLECTOR,
)
from sample_core.workflows.custody import CUSTODY_CHAIN, timestamp_field

PASSWORD = "pass123"

_codes = itertools.count(500)


def _rand(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class AuthAPIClient(APIClient):
    """APIClient whose login() checks the password, then force-authenticates.

    Session login would go through SessionAuthentication and CSRF; the engine's
    views only care about request.user.
    """

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        self.force_authenticate(user=user)
        return user is not None


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


# ------------------------------------------------------------------
# Users
# ------------------------------------------------------------------
def _make_user(username: str, role: Optional[str] = None):
    User = get_user_model()
    user, _ = User.objects.get_or_create(username=username, defaults={"email": f"{username}@example.com"})
    user.set_password(PASSWORD)
    user.save()
    if role:
        UserRole.objects.get_or_create(user=user, role=role)
    return user


@pytest.fixture
def make_user() -> Callable:
    return _make_user


@pytest.fixture
def admin_user(db):
    return _make_user("admin", ADMINISTRATOR)


@pytest.fixture
def collector_user(db):
    return _make_user("collector", SAMPLE_COLLECTOR)


@pytest.fixture
def om_user(db):
    return _make_user("om", OPERATIONAL_MANAGER)


@pytest.fixture
def lh_user(db):
    return _make_user("lh", LABORATORY_HEAD)


@pytest.fixture
def analyst_user(db):
    return _make_user("analyst", ANALYST)


@pytest.fixture
def client_user(db):
    return _make_user("client")


@pytest.fixture
def client_profile(client_user):
    return Client.objects.create(user=client_user, name="Acme Seeds", organization="Acme", email="lab@acme.test")


@pytest.fixture
def other_client_profile(db):
    user = _make_user("other-client")
    return Client.objects.create(user=user, name="Other Farm")


@pytest.fixture
def batch_factory(client_profile) -> Callable[..., SampleBatch]:
    def _factory(client: Optional[Client] = None) -> SampleBatch:
        return SampleBatch.objects.create(client=client or client_profile, batch_code=_rand("BATCH"))

    return _factory


# ------------------------------------------------------------------
# Samples
# ------------------------------------------------------------------
def _custody_up_to(event: Optional[str]) -> dict:
    if not event:
        return {}
    now = timezone.now()
    stop = CUSTODY_CHAIN.index(event)
    return {timestamp_field(e): now for e in CUSTODY_CHAIN[: stop + 1]}


@pytest.fixture
def sample_factory(client_profile) -> Callable[..., Sample]:
    """
    Build a sample directly in the requested state. Creation is not guarded, so
    lifecycle fields can be set up front without going through the engine.
    """

    def _factory(
        *,
        status: str = "draft",
        client: Optional[Client] = None,
        batch: Optional[SampleBatch] = None,
        custody_until: Optional[str] = None,
        lab_sample_code: Optional[str] = None,
        **extra,
    ) -> Sample:
        return Sample.objects.create(
            client=client or client_profile,
            batch=batch,
            sample_type=extra.pop("sample_type", "Leaf tissue"),
            request_status=status,
            lab_sample_code=lab_sample_code,
            **_custody_up_to(custody_until),
            **extra,
        )

    return _factory


@pytest.fixture
def inspection_sample(sample_factory) -> Sample:
    return sample_factory(status="under_inspection", custody_until="collector_received")


def _passed_checklist(sample: Sample, user=None) -> IntakeChecklist:
    return IntakeChecklist.objects.create(
        sample=sample,
        sample_physical_condition=True,
        volume=True,
        identity=True,
        packing=True,
        supporting_documents=True,
        is_passed=True,
        checked_by=user,
    )


@pytest.fixture
def awaiting_sample_factory(sample_factory) -> Callable[..., Sample]:
    """
    A sample past intake: passed checklist, lab code, awaiting verification.
    """

    def _factory(**kwargs) -> Sample:
        code = kwargs.pop("lab_sample_code", None) or f"BML-{next(_codes):03d}"
        sample = sample_factory(
            status="awaiting_verification",
            custody_until="collector_intake_completed",
            lab_sample_code=code,
            **kwargs,
        )
        _passed_checklist(sample)
        return sample

    return _factory


@pytest.fixture
def verified_sample_factory(awaiting_sample_factory, om_user) -> Callable[..., Sample]:
    def _factory(**kwargs) -> Sample:
        return awaiting_sample_factory(
            verified_at=timezone.now(),
            verified_by=om_user,
            verified_by_role="OM",
            **kwargs,
        )

    return _factory


@pytest.fixture
def verified_sample(verified_sample_factory) -> Sample:
    return verified_sample_factory()
