"""Connections opened on behalf of a registered manager."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Union

from ..core.config import DEFAULT_API_PATH
from ..core.errors import ConnectFailure
from ..core.models import ApiVersion, AuthRole, OvirtManager, VerifyOptions
from .api_version_service import ApiVersionNegotiator, api_version_negotiator
from .connection_service import (
    SERVICE_ROLE_SERVICE,
    ConnectionFactory,
    ConnectionHandle,
    connection_factory,
)

logger = logging.getLogger(__name__)


class ManagerConnector:
    """Opens API connections using a manager's endpoint and credentials."""

    def __init__(
        self,
        factory: ConnectionFactory = connection_factory,
        negotiator: ApiVersionNegotiator = api_version_negotiator,
        password_decryptor: Optional[Callable[[str], str]] = None,
    ) -> None:
        self._factory = factory
        self._negotiator = negotiator
        self._password_decryptor = password_decryptor

    @property
    def factory(self) -> ConnectionFactory:
        return self._factory

    def select_version(
        self, manager: OvirtManager, options: Optional[VerifyOptions] = None
    ) -> ApiVersion:
        """Pick the API version for a connection to ``manager``."""

        options = options or VerifyOptions()
        if options.skip_supported_api_validation:
            supported = set()
        else:
            supported = self._negotiator.supported_versions(manager)

        if options.force_legacy_version:
            version = ApiVersion.V3
        elif supported:
            version = max(supported)
        else:
            version = ApiVersion.V4

        if not options.skip_supported_api_validation and version not in supported:
            raise ConnectFailure(
                f"API version {int(version)} is not supported by manager {manager.name}"
            )
        return version

    def connect(
        self,
        manager: OvirtManager,
        options: Optional[VerifyOptions] = None,
        service_role: str = SERVICE_ROLE_SERVICE,
        auth_role: Union[AuthRole, str] = AuthRole.DEFAULT,
    ) -> ConnectionHandle:
        """Open a connection; the API path used is written back to the endpoint."""

        options = options or VerifyOptions()
        credentials = manager.credentials_for(auth_role)
        if credentials is None:
            raise ConnectFailure(
                f"Manager {manager.name} has no {AuthRole(auth_role).value} credentials"
            )

        endpoint = manager.default_endpoint
        if options.hostname_override:
            endpoint = endpoint.model_copy(
                update={"hostname": options.hostname_override, "ipaddress": None}
            )

        version = self.select_version(manager, options)
        logger.info(
            "Connecting through %s: [%s] (API v%s, role=%s)",
            type(self).__name__,
            manager.name,
            int(version),
            service_role,
        )
        handle = self._factory.open(
            version,
            endpoint,
            credentials.decrypted(self._password_decryptor),
            service_role,
        )

        manager.default_endpoint.path = (
            DEFAULT_API_PATH if version is ApiVersion.V3 else endpoint.path
        )
        return handle

    @contextmanager
    def provider_connection(
        self,
        manager: OvirtManager,
        options: Optional[VerifyOptions] = None,
        service_role: str = SERVICE_ROLE_SERVICE,
    ) -> Iterator[ConnectionHandle]:
        """Yield a manager connection and always release it afterwards."""

        handle = self.connect(manager, options, service_role)
        try:
            yield handle
        finally:
            self._factory.disconnect(handle)


# Global connector instance
manager_connector = ManagerConnector()

__all__ = ["ManagerConnector", "manager_connector"]
