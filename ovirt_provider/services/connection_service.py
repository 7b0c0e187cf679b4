"""Connection factory for both major versions of the oVirt engine API."""
from __future__ import annotations

import logging
import os
import ssl
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Union

import httpx
import ovirtsdk4 as sdk

from ..core.config import DEFAULT_API_PATH, settings
from ..core.errors import ConnectFailure
from ..core.models import ApiVersion, Credentials, Endpoint
from .legacy_api_client import LegacyApiClient

logger = logging.getLogger(__name__)


# Service roles tag what a connection is used for.
SERVICE_ROLE_SERVICE = "Service"
SERVICE_ROLE_INVENTORY = "Inventory"


@dataclass
class ConnectionHandle:
    """An open connection owned by the caller that created it."""

    version: ApiVersion
    service_role: str
    url: str
    client: Any
    ca_file: Optional[str] = None
    closed: bool = False

    def test(self) -> bool:
        """Make a round trip to the engine, raising on failure."""

        if self.version is ApiVersion.V4:
            return self.client.test(raise_exception=True)
        return self.client.test()

    def product_version(self) -> Optional[str]:
        """Return the full engine product version string."""

        if self.version is ApiVersion.V4:
            api = self.client.system_service().get()
            product_info = getattr(api, "product_info", None)
            version = getattr(product_info, "version", None)
            return getattr(version, "full_version", None)
        return self.client.product_version()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.client.close()
        finally:
            if self.ca_file:
                try:
                    os.unlink(self.ca_file)
                except FileNotFoundError:
                    pass


def _coerce_port(value: Any) -> int:
    """Return the port as an integer, falling back to the configured default."""

    if value is None or (isinstance(value, str) and not value.strip()):
        return settings.ovirt_default_port
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConnectFailure(f"Invalid port {value!r}") from exc
    if not 0 < port < 65536:
        raise ConnectFailure(f"Port {port} is out of range")
    return port


def _ca_bundle(endpoint: Endpoint) -> Optional[str]:
    """Return the CA bundle, or None when the system trust store should be used."""

    bundle = endpoint.certificate_authority
    if bundle is None or not bundle.strip():
        # An empty bundle must not turn into "trust nothing".
        return None
    return bundle


class ConnectionFactory:
    """Builds connections for a requested API version. No retries, no probing."""

    def open(
        self,
        version: Union[ApiVersion, int],
        endpoint: Endpoint,
        credentials: Credentials,
        service_role: str = SERVICE_ROLE_SERVICE,
    ) -> ConnectionHandle:
        try:
            api_version = ApiVersion(int(version))
        except ValueError as exc:
            raise ConnectFailure(f"Unsupported API version {version!r}") from exc

        if not endpoint.address:
            raise ConnectFailure("No address configured for the engine")

        if api_version is ApiVersion.V4:
            return self._open_v4(endpoint, credentials, service_role)
        return self._open_v3(endpoint, credentials, service_role)

    def _open_v3(
        self, endpoint: Endpoint, credentials: Credentials, service_role: str
    ) -> ConnectionHandle:
        port = _coerce_port(endpoint.port)
        url = f"{endpoint.scheme}://{endpoint.address}:{port}{DEFAULT_API_PATH}"

        verify: Union[bool, ssl.SSLContext]
        bundle = _ca_bundle(endpoint)
        if not endpoint.verify_ssl:
            verify = False
        elif bundle is not None:
            try:
                verify = ssl.create_default_context(cadata=bundle)
            except (ssl.SSLError, ValueError) as exc:
                raise ConnectFailure(f"Invalid CA certificate bundle: {exc}") from exc
        else:
            verify = True

        # Unset timeouts stay unbounded.
        timeout = httpx.Timeout(
            None,
            read=settings.ovirt_read_timeout,
            connect=settings.ovirt_open_timeout,
        )

        logger.info(
            "Creating API v3 connection to %s (role=%s, username=%s, verify_ssl=%s)",
            url,
            service_role,
            credentials.userid,
            endpoint.verify_ssl,
        )
        client = LegacyApiClient(
            url,
            credentials.userid,
            credentials.password.get_secret_value(),
            verify=verify,
            timeout=timeout,
        )
        return ConnectionHandle(
            version=ApiVersion.V3,
            service_role=service_role,
            url=url,
            client=client,
        )

    def _open_v4(
        self, endpoint: Endpoint, credentials: Credentials, service_role: str
    ) -> ConnectionHandle:
        port = _coerce_port(endpoint.port)
        url = f"{endpoint.scheme}://{endpoint.address}:{port}{endpoint.path}"

        ca_file = None
        bundle = _ca_bundle(endpoint)
        if endpoint.verify_ssl and bundle is not None:
            ca_file = self._write_ca_file(bundle)

        kwargs: Dict[str, Any] = {
            "url": url,
            "username": credentials.userid,
            "password": credentials.password.get_secret_value(),
            "insecure": not endpoint.verify_ssl,
            "ca_file": ca_file,
            "log": logger,
            "debug": False,
        }
        if settings.ovirt_read_timeout is not None:
            kwargs["timeout"] = int(settings.ovirt_read_timeout)
        if settings.ovirt_open_timeout is not None:
            kwargs["connect_timeout"] = int(settings.ovirt_open_timeout)

        logger.info(
            "Creating API v4 connection to %s (role=%s, username=%s, verify_ssl=%s, ca_file=%s)",
            url,
            service_role,
            credentials.userid,
            endpoint.verify_ssl,
            "custom" if ca_file else "system",
        )
        try:
            client = sdk.Connection(**kwargs)
        except (TypeError, ValueError) as exc:
            self._remove_file(ca_file)
            raise ConnectFailure(f"Invalid connection parameters for {url}: {exc}") from exc
        except Exception:
            self._remove_file(ca_file)
            raise

        return ConnectionHandle(
            version=ApiVersion.V4,
            service_role=service_role,
            url=url,
            client=client,
            ca_file=ca_file,
        )

    @staticmethod
    def _write_ca_file(bundle: str) -> str:
        handle, path = tempfile.mkstemp(prefix="ovirt-ca-", suffix=".pem")
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(bundle)
        return path

    @staticmethod
    def _remove_file(path: Optional[str]) -> None:
        if path:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass

    @staticmethod
    def disconnect(handle: Optional[ConnectionHandle]) -> None:
        """Release a connection. Failures are logged, never raised."""

        if handle is None:
            return
        try:
            handle.close()
        except Exception as exc:
            logger.error("Error while disconnecting from %s: %s", handle.url, exc)

    @contextmanager
    def connection(
        self,
        version: Union[ApiVersion, int],
        endpoint: Endpoint,
        credentials: Credentials,
        service_role: str = SERVICE_ROLE_SERVICE,
    ) -> Iterator[ConnectionHandle]:
        """Yield an open connection and always release it afterwards."""

        handle = self.open(version, endpoint, credentials, service_role)
        try:
            yield handle
        finally:
            self.disconnect(handle)


# Global connection factory instance
connection_factory = ConnectionFactory()

__all__ = [
    "SERVICE_ROLE_SERVICE",
    "SERVICE_ROLE_INVENTORY",
    "ConnectionHandle",
    "ConnectionFactory",
    "connection_factory",
]
