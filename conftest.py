import pytest


@pytest.fixture(autouse=True)
def _test_http_settings(settings):
    # Keep SecurityMiddleware from redirecting the test client to https://testserver/
    settings.SECURE_SSL_REDIRECT = False
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0


@pytest.fixture(autouse=True)
def _fresh_document_storage(settings):
    # Reassigning STORAGES resets default_storage, so every test starts with an empty blob store.
    settings.STORAGES = {
        "default": {"BACKEND": "django.core.files.storage.InMemoryStorage"},
        "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
    }
