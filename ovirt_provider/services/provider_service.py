"""Entry points used by the host platform to work with oVirt managers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from ..core.errors import ConnectFailure
from ..core.models import (
    AuthRole,
    Capability,
    OvirtManager,
    ParsedInventory,
    RefreshPayload,
    RefreshResult,
    RefreshTarget,
    VerifyOptions,
)
from .api_version_service import ApiVersionNegotiator
from .connection_service import SERVICE_ROLE_SERVICE, ConnectionFactory, ConnectionHandle, connection_factory
from .credential_service import CredentialVerifier
from .inventory_parser import parse_inventory
from .inventory_service import InventoryCollector
from .manager_connector import ManagerConnector
from .target_resolver import TargetResolver

logger = logging.getLogger(__name__)


class OvirtProviderService:
    """Wires the connection, verification and refresh services together."""

    def __init__(
        self,
        password_decryptor: Optional[Callable[[str], str]] = None,
        factory: Optional[ConnectionFactory] = None,
    ) -> None:
        self.factory = factory or connection_factory
        self.negotiator = ApiVersionNegotiator(self.factory, password_decryptor)
        self.verifier = CredentialVerifier(self.factory, password_decryptor)
        self.connector = ManagerConnector(self.factory, self.negotiator, password_decryptor)
        self.resolver = TargetResolver()
        self.collector = InventoryCollector(self.connector)

    # Authentication

    @staticmethod
    def supported_auth_types() -> Tuple[str, ...]:
        return tuple(role.value for role in AuthRole)

    def supports_authentication(self, auth_type: Union[AuthRole, str]) -> bool:
        return str(getattr(auth_type, "value", auth_type)) in self.supported_auth_types()

    @staticmethod
    def authentications_to_validate(manager: OvirtManager) -> List[AuthRole]:
        roles = [AuthRole.DEFAULT]
        if manager.has_authentication_type(AuthRole.METRICS):
            roles.append(AuthRole.METRICS)
        return roles

    def verify_credentials(
        self,
        manager: OvirtManager,
        auth_type: Union[AuthRole, str, None] = None,
        options: Union[VerifyOptions, Mapping[str, Any], None] = None,
    ) -> bool:
        """Verify the manager's credentials for ``auth_type``.

        Raises ``Unreachable``, ``InvalidCredentials`` or ``LoginError`` on failure.
        """

        if not isinstance(options, VerifyOptions):
            options = VerifyOptions.model_validate(dict(options or {}))
        options = options.model_copy(update={"skip_supported_api_validation": True})

        auth_type = auth_type or AuthRole.DEFAULT
        if not self.supports_authentication(auth_type):
            raise ValueError(f"Invalid Authentication Type: {auth_type!r}")
        role = AuthRole(auth_type)

        credentials = manager.credentials_for(role)
        if credentials is None:
            raise ConnectFailure(f"Manager {manager.name} has no {role.value} credentials")

        if role is AuthRole.METRICS:
            endpoint, database = self._metrics_connect_options(manager, options)
            return self.verifier.verify(role, credentials, endpoint, database=database)

        endpoint = manager.default_endpoint
        if options.hostname_override:
            endpoint = endpoint.model_copy(
                update={"hostname": options.hostname_override, "ipaddress": None}
            )
        return self.verifier.verify(
            role,
            credentials,
            endpoint,
            force_legacy_version=options.force_legacy_version,
        )

    @staticmethod
    def _metrics_connect_options(manager: OvirtManager, options: VerifyOptions):
        metrics_endpoint = manager.metrics_endpoint
        metrics_hostname = metrics_endpoint.hostname if metrics_endpoint else None
        hostname = (
            options.hostname_override
            or metrics_hostname
            or manager.default_endpoint.hostname
            or manager.default_endpoint.ipaddress
        )
        port = metrics_endpoint.port if metrics_endpoint else None

        endpoint = (metrics_endpoint or manager.default_endpoint).model_copy(
            update={"hostname": hostname, "ipaddress": None, "port": port}
        )
        database = options.database_override or manager.history_database_name
        return endpoint, database

    # Capabilities

    def supported_features(self, manager: OvirtManager) -> FrozenSet[Capability]:
        return self.negotiator.supported_features(manager)

    def supports_feature(self, manager: OvirtManager, capability: Union[Capability, str]) -> bool:
        return Capability(capability) in self.supported_features(manager)

    # Connections

    @contextmanager
    def with_provider_connection(
        self,
        manager: OvirtManager,
        options: Optional[VerifyOptions] = None,
        service_role: str = SERVICE_ROLE_SERVICE,
    ) -> Iterator[ConnectionHandle]:
        with self.connector.provider_connection(manager, options, service_role) as handle:
            yield handle

    # Refresh

    def refresh(
        self,
        manager: OvirtManager,
        targets: Iterable[RefreshTarget],
        options: Optional[VerifyOptions] = None,
    ) -> RefreshResult:
        """Resolve ``targets`` and collect a fresh payload for each resolved target."""

        resolved = self.resolver.resolve(manager, targets)
        logger.info(
            "Refreshing manager [%s] id: [%s] with %d resolved targets",
            manager.name,
            manager.id,
            len(resolved),
        )
        result = RefreshResult(manager_id=manager.id)
        for target, payload in self.collector.fetch(manager, resolved, options):
            result.add(target, payload)
        return result

    def refresh_all(
        self,
        managers: Mapping[str, OvirtManager],
        targets: Iterable[RefreshTarget],
    ) -> Dict[str, RefreshResult]:
        """Refresh targets belonging to several managers, one manager at a time."""

        results: Dict[str, RefreshResult] = {}
        for manager_id, resolved in self.resolver.resolve_all(managers, targets).items():
            results[manager_id] = self.refresh(managers[manager_id], resolved)
        return results

    @staticmethod
    def parse(payload: RefreshPayload) -> ParsedInventory:
        return parse_inventory(payload)


# Global provider service instance
provider_service = OvirtProviderService()

__all__ = ["OvirtProviderService", "provider_service"]
