"""Configuration validation utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .config import (
    SUPPORTED_SCHEMES,
    settings,
    set_config_validation_result,
    get_config_validation_result,
)


@dataclass
class ConfigIssue:
    """Represents a single configuration issue."""

    message: str
    hint: Optional[str] = None


@dataclass
class ConfigValidationResult:
    """Outcome of running configuration checks."""

    checked_at: datetime
    errors: List[ConfigIssue] = field(default_factory=list)
    warnings: List[ConfigIssue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


def _warn(result: ConfigValidationResult, message: str, hint: Optional[str] = None) -> None:
    result.warnings.append(ConfigIssue(message=message, hint=hint))


def _error(result: ConfigValidationResult, message: str, hint: Optional[str] = None) -> None:
    result.errors.append(ConfigIssue(message=message, hint=hint))


def run_config_checks(force: bool = False) -> ConfigValidationResult:
    """Validate configuration combinations and cache the result."""

    if not force:
        cached = get_config_validation_result()
        if cached is not None:
            return cached

    result = ConfigValidationResult(checked_at=datetime.now(timezone.utc))

    scheme = (settings.ovirt_default_scheme or "").strip().lower()
    if scheme not in SUPPORTED_SCHEMES:
        _error(
            result,
            "OVIRT_DEFAULT_SCHEME is set to an unsupported value.",
            "Use one of: https, http.",
        )
    elif scheme == "http":
        _warn(
            result,
            "OVIRT_DEFAULT_SCHEME is 'http'; credentials are sent in clear text.",
            "Only use plain HTTP against engines in a controlled lab.",
        )

    if not 0 < settings.ovirt_default_port < 65536:
        _error(
            result,
            "OVIRT_DEFAULT_PORT is outside the valid TCP port range.",
            "Set OVIRT_DEFAULT_PORT to the engine's HTTPS port (usually 443).",
        )

    if not settings.ovirt_api_path or not settings.ovirt_api_path.startswith("/"):
        _error(
            result,
            "OVIRT_API_PATH must be an absolute path.",
            "Leave OVIRT_API_PATH unset to use /ovirt-engine/api.",
        )

    if not settings.ovirt_verify_ssl:
        _warn(
            result,
            "OVIRT_VERIFY_SSL is disabled.",
            "Provide the engine CA bundle on the endpoint instead of disabling verification.",
        )

    if not settings.has_timeouts():
        _warn(
            result,
            "No oVirt network timeouts configured; a stalled engine can block an operation indefinitely.",
            "Set OVIRT_READ_TIMEOUT and OVIRT_OPEN_TIMEOUT to bound engine calls.",
        )
    else:
        for name in ("ovirt_read_timeout", "ovirt_open_timeout"):
            value = getattr(settings, name)
            if value is not None and value <= 0:
                _error(
                    result,
                    f"{name.upper()} must be a positive number of seconds.",
                    f"Unset {name.upper()} or give it a positive value.",
                )

    if not settings.ovirt_history_database.strip():
        _warn(
            result,
            "OVIRT_HISTORY_DATABASE is empty; metrics credentials cannot be verified.",
            "Set OVIRT_HISTORY_DATABASE to the engine DWH database name.",
        )

    set_config_validation_result(result)
    return result
