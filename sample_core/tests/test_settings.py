import importlib

import pytest

import bml_lims.settings as project_settings


@pytest.fixture
def reload_settings(monkeypatch):
    def _reload(env: str):
        monkeypatch.setenv("DJANGO_ENV", env)
        return importlib.reload(project_settings)

    yield _reload
    monkeypatch.delenv("DJANGO_ENV", raising=False)
    importlib.reload(project_settings)


@pytest.mark.parametrize("env", ["ci", "test", "CI"])
def test_ci_and_test_environments_use_sqlite(reload_settings, env):
    module = reload_settings(env)
    assert module.DATABASES["default"]["ENGINE"] == "django.db.backends.sqlite3"


@pytest.mark.parametrize("env", ["production", "local", ""])
def test_other_environments_use_postgresql(reload_settings, env):
    module = reload_settings(env)
    assert module.DATABASES["default"]["ENGINE"] == "django.db.backends.postgresql"
