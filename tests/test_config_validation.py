from datetime import datetime, timezone

import pytest

from ovirt_provider.core import config_validation
from ovirt_provider.core.config import Settings


@pytest.fixture(autouse=True)
def restore_config_validation(monkeypatch):
    monkeypatch.setattr(config_validation, "settings", Settings(), raising=False)
    monkeypatch.setattr(
        config_validation,
        "set_config_validation_result",
        lambda result: None,
        raising=False,
    )
    monkeypatch.setattr(
        config_validation,
        "get_config_validation_result",
        lambda: None,
        raising=False,
    )


def _messages(issues):
    return {issue.message for issue in issues}


def test_defaults_only_warn_about_missing_timeouts():
    result = config_validation.run_config_checks(force=True)

    assert not result.has_errors
    assert any("timeouts" in message for message in _messages(result.warnings))


def test_unsupported_scheme_is_an_error(monkeypatch):
    monkeypatch.setattr(
        config_validation, "settings", Settings(ovirt_default_scheme="ftp"), raising=False
    )

    result = config_validation.run_config_checks(force=True)

    assert any("OVIRT_DEFAULT_SCHEME" in message for message in _messages(result.errors))


def test_plain_http_and_disabled_verification_warn(monkeypatch):
    monkeypatch.setattr(
        config_validation,
        "settings",
        Settings(ovirt_default_scheme="http", ovirt_verify_ssl=False),
        raising=False,
    )

    result = config_validation.run_config_checks(force=True)

    warnings = _messages(result.warnings)
    assert not result.has_errors
    assert any("clear text" in message for message in warnings)
    assert any("OVIRT_VERIFY_SSL" in message for message in warnings)


def test_invalid_port_path_and_timeouts_are_errors(monkeypatch):
    monkeypatch.setattr(
        config_validation,
        "settings",
        Settings(ovirt_default_port=70000, ovirt_api_path="api", ovirt_read_timeout=0),
        raising=False,
    )

    result = config_validation.run_config_checks(force=True)

    errors = _messages(result.errors)
    assert any("OVIRT_DEFAULT_PORT" in message for message in errors)
    assert any("OVIRT_API_PATH" in message for message in errors)
    assert any("OVIRT_READ_TIMEOUT" in message for message in errors)
    assert not any("timeouts configured" in message for message in _messages(result.warnings))


def test_run_config_checks_returns_cached_result(monkeypatch):
    cached_result = config_validation.ConfigValidationResult(
        checked_at=datetime.now(timezone.utc)
    )

    def fail_if_called(_):
        raise AssertionError("set_config_validation_result should not be called when cached")

    monkeypatch.setattr(config_validation, "get_config_validation_result", lambda: cached_result, raising=False)
    monkeypatch.setattr(config_validation, "set_config_validation_result", fail_if_called, raising=False)

    assert config_validation.run_config_checks() is cached_result
