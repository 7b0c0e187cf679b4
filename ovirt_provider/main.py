"""Entry points called by the host orchestration layer."""

import logging
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Union

from .core.config import settings
from .core.config_validation import run_config_checks
from .core.models import AuthRole, Capability, OvirtManager, RefreshResult, RefreshTarget, VerifyOptions
from .services.provider_service import provider_service

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure logging for the provider process."""

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def initialize() -> bool:
    """Configure logging and report configuration issues.

    Returns False when the configuration has errors.
    """

    configure_logging()
    logger.info("Starting %s", settings.app_name)
    logger.info(f"Debug mode: {settings.debug}")

    config_result = run_config_checks()

    if config_result.has_errors:
        for issue in config_result.errors:
            logger.error("Configuration error: %s", issue.message)
            if issue.hint:
                logger.error("  Hint: %s", issue.hint)

    for issue in config_result.warnings:
        logger.warning("Configuration warning: %s", issue.message)
        if issue.hint:
            logger.warning("  Hint: %s", issue.hint)

    return not config_result.has_errors


def refresh(manager: OvirtManager, targets: Iterable[RefreshTarget]) -> RefreshResult:
    """Refresh inventory of ``manager`` for the requested targets."""
    return provider_service.refresh(manager, targets)


def verify_credentials(
    manager: OvirtManager,
    auth_role: Union[AuthRole, str, None] = None,
    options: Union[VerifyOptions, Mapping[str, Any], None] = None,
) -> bool:
    """Verify credentials; raises Unreachable, InvalidCredentials or LoginError."""
    return provider_service.verify_credentials(manager, auth_role, options)


def supported_features(manager: OvirtManager) -> FrozenSet[Capability]:
    return provider_service.supported_features(manager)


def invalidate_supported_features(manager: Optional[OvirtManager]) -> None:
    if manager is not None:
        manager.invalidate_supported_features()


__all__ = [
    "configure_logging",
    "initialize",
    "refresh",
    "verify_credentials",
    "supported_features",
    "invalidate_supported_features",
]
