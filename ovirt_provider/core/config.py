"""Configuration management using Pydantic settings."""

from typing import Optional, TYPE_CHECKING

from pydantic_settings import BaseSettings


# Path of the API on every oVirt engine. Version 3 of the API always lives here,
# version 4 uses it unless the endpoint record says otherwise.
DEFAULT_API_PATH = "/ovirt-engine/api"
SUPPORTED_SCHEMES = ("https", "http")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application settings
    app_name: str = "oVirt Provider"
    debug: bool = False

    # Engine endpoint defaults, used when a manager record leaves a field empty
    ovirt_default_scheme: str = "https"
    ovirt_default_port: int = 443
    ovirt_api_path: str = DEFAULT_API_PATH
    ovirt_verify_ssl: bool = True

    # Version 4 authentication fails against bare IP addresses in some
    # deployments, so addresses are reverse resolved before verification.
    ovirt_resolve_ip_addresses: bool = True

    # Network timeouts in seconds. None leaves calls unbounded.
    ovirt_read_timeout: Optional[float] = None
    ovirt_open_timeout: Optional[float] = None

    # Engine history database (metrics credentials)
    ovirt_metrics_port: int = 5432
    ovirt_history_database: str = "ovirt_engine_history"

    # Refresh behaviour defaults for newly registered managers
    ovirt_graph_refresh: bool = False
    ovirt_targeted_refresh: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False

    def has_timeouts(self) -> bool:
        """Check if any network timeout is configured."""
        return self.ovirt_read_timeout is not None or self.ovirt_open_timeout is not None


settings = Settings()


if TYPE_CHECKING:  # pragma: no cover - only for type hints
    from .config_validation import ConfigValidationResult

# Cache of the configuration validation result so it can be reused across modules
_config_validation_result: Optional["ConfigValidationResult"] = None


def set_config_validation_result(result: "ConfigValidationResult") -> None:
    """Persist the configuration validation result for reuse."""

    global _config_validation_result
    _config_validation_result = result


def get_config_validation_result() -> Optional["ConfigValidationResult"]:
    """Return the cached configuration validation result, if available."""

    return _config_validation_result
