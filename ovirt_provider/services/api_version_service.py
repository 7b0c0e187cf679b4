"""API version negotiation and version-gated capabilities."""
from __future__ import annotations

import logging
import re
from typing import Callable, Dict, FrozenSet, Optional, Set, Union

from ..core.models import ApiVersion, AuthRole, Capability, OvirtManager
from .connection_service import SERVICE_ROLE_SERVICE, ConnectionFactory, connection_factory

logger = logging.getLogger(__name__)


API_FEATURES: Dict[ApiVersion, FrozenSet[Capability]] = {
    ApiVersion.V3: frozenset(),
    ApiVersion.V4: frozenset(
        {
            Capability.MIGRATE,
            Capability.QUICK_STATS,
            Capability.RECONFIGURE_DISKS,
            Capability.SNAPSHOTS,
            Capability.PUBLISH,
        }
    ),
}

_VERSION_PATTERN = re.compile(r"^\s*(\d+)(?:\.(\d+))?")


def versions_for_product(product_version: Optional[str]) -> Set[ApiVersion]:
    """Return the API versions served by an engine of the given product version.

    Engines 3.x only speak version 3, 4.0 to 4.2 speak both and 4.3 dropped
    version 3.
    """

    if not product_version:
        return set()
    match = _VERSION_PATTERN.match(str(product_version))
    if not match:
        return set()

    major = int(match.group(1))
    minor = int(match.group(2) or 0)
    if major == 3:
        return {ApiVersion.V3}
    if major == 4 and minor < 3:
        return {ApiVersion.V3, ApiVersion.V4}
    if major >= 4:
        return {ApiVersion.V4}
    return set()


class ApiVersionNegotiator:
    """Works out which API versions and capabilities a manager supports."""

    def __init__(
        self,
        factory: ConnectionFactory = connection_factory,
        password_decryptor: Optional[Callable[[str], str]] = None,
    ) -> None:
        self._factory = factory
        self._password_decryptor = password_decryptor

    @staticmethod
    def features_for(version: Union[ApiVersion, int]) -> FrozenSet[Capability]:
        return API_FEATURES.get(ApiVersion(int(version)), frozenset())

    def supported_versions(self, manager: OvirtManager) -> Set[ApiVersion]:
        product_version = manager.api_version or self.probe_product_version(manager)
        return versions_for_product(product_version)

    def supported_features(self, manager: OvirtManager) -> FrozenSet[Capability]:
        """Union of the capabilities of every version the manager speaks."""

        def _compute() -> FrozenSet[Capability]:
            features: Set[Capability] = set()
            for version in self.supported_versions(manager):
                features.update(self.features_for(version))
            return frozenset(features)

        return manager.cached_supported_features(_compute)

    def probe_product_version(self, manager: OvirtManager) -> Optional[str]:
        """Ask the engine for its product version, newest API first.

        The version found is recorded on the manager.
        """

        credentials = manager.credentials_for(AuthRole.DEFAULT)
        if credentials is None:
            logger.warning(
                "Manager %s has no default credentials; cannot probe API versions",
                manager.name,
            )
            return None
        credentials = credentials.decrypted(self._password_decryptor)

        for version in (ApiVersion.V4, ApiVersion.V3):
            try:
                with self._factory.connection(
                    version, manager.default_endpoint, credentials, SERVICE_ROLE_SERVICE
                ) as handle:
                    product_version = handle.product_version()
            except Exception as exc:
                logger.debug(
                    "API v%s probe of %s failed: %s",
                    int(version),
                    manager.name,
                    exc,
                )
                continue

            if product_version:
                logger.info(
                    "Manager %s reports product version %s (probed over API v%s)",
                    manager.name,
                    product_version,
                    int(version),
                )
                manager.api_version = product_version
                return product_version

        logger.warning("Unable to determine API versions supported by %s", manager.name)
        return None


# Global negotiator instance
api_version_negotiator = ApiVersionNegotiator()

__all__ = [
    "API_FEATURES",
    "versions_for_product",
    "ApiVersionNegotiator",
    "api_version_negotiator",
]
