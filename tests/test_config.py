import importlib

import pytest

import config


@pytest.fixture
def reload_config(monkeypatch):
    yield lambda: importlib.reload(config)
    monkeypatch.undo()
    importlib.reload(config)


def test_password_policy_defaults(reload_config):
    reloaded = reload_config()
    assert reloaded.PASSWORD_MIN_LENGTH == 12
    assert reloaded.PASSWORD_SPECIAL_CHARACTERS == '!@#$%^&*(),.?":{}|<>'


def test_password_policy_is_overridable(monkeypatch, reload_config):
    monkeypatch.setenv("PASSWORD_MIN_LENGTH", "16")
    monkeypatch.setenv("PASSWORD_SPECIAL_CHARACTERS", "!_")

    reloaded = reload_config()

    assert reloaded.PASSWORD_MIN_LENGTH == 16
    assert reloaded.PASSWORD_SPECIAL_CHARACTERS == "!_"
