"""Credential verification against the oVirt engine and its history database."""
from __future__ import annotations

import errno
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass
from typing import Callable, List, NoReturn, Optional, Union

import httpx
import ovirtsdk4 as sdk
from dns import resolver as dns_resolver
from dns import reversename
from dns.exception import DNSException
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError

from ..core.config import settings
from ..core.errors import (
    INVALID_CREDENTIALS_MESSAGE,
    InvalidCredentials,
    LoginError,
    OvirtProviderError,
    Unreachable,
)
from ..core.models import ApiVersion, AuthRole, Credentials, Endpoint
from .connection_service import SERVICE_ROLE_INVENTORY, ConnectionFactory, connection_factory

logger = logging.getLogger(__name__)


LOGIN_ERROR_MESSAGE = "Login to the engine failed; see the server log for details."

_SSO_ERROR = re.compile(r"error.*sso", re.IGNORECASE)
_UNREACHABLE_ERRNOS = {errno.EHOSTUNREACH, errno.ENETUNREACH}

_SDK_INVALID_CREDENTIALS = ("the username or password is incorrect",)
_SDK_UNREACHABLE = ("couldn't connect to server", "couldn't resolve host name")

_DB_INVALID_CREDENTIALS = ("password authentication failed", "no password supplied")
_DB_UNREACHABLE = (
    "could not translate host name",
    "could not connect to server",
    "connection refused",
    "no route to host",
    "network is unreachable",
)


def resolve_ip_address(address: str) -> str:
    """Return the host name for an IP address, or the input when it cannot be resolved."""

    try:
        ipaddress.ip_address(address)
    except ValueError:
        return address

    try:
        answers = dns_resolver.resolve(reversename.from_address(address), "PTR")
    except DNSException as exc:
        logger.debug("Reverse lookup of %s failed: %s", address, exc)
        return address

    for rdata in answers:
        name = str(getattr(rdata, "target", "")).rstrip(".")
        if name:
            return name
    return address


def is_sso_error(exc: BaseException) -> bool:
    """Return True for version 4 failures raised by the SSO (authentication) layer."""

    return isinstance(exc, sdk.Error) and bool(_SSO_ERROR.search(str(exc)))


_UNREACHABLE_ERRORS = (
    socket.gaierror,
    socket.herror,
    socket.timeout,
    ConnectionError,
    TimeoutError,
    httpx.NetworkError,
    httpx.TimeoutException,
)


def _is_unreachable(exc: BaseException) -> bool:
    if isinstance(exc, _UNREACHABLE_ERRORS):
        return True
    return isinstance(exc, OSError) and exc.errno in _UNREACHABLE_ERRNOS


def _message_contains(exc: BaseException, needles) -> bool:
    message = str(exc).lower()
    return any(needle in message for needle in needles)


def rethrow_sdk_error(exc: sdk.Error) -> NoReturn:
    """Translate a version 4 client error into the error taxonomy."""

    if _message_contains(exc, _SDK_INVALID_CREDENTIALS):
        raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE) from exc
    if _message_contains(exc, _SDK_UNREACHABLE):
        raise Unreachable(str(exc)) from exc
    logger.error("Error while verifying credentials: %s", exc, exc_info=exc)
    raise LoginError(LOGIN_ERROR_MESSAGE) from exc


def handle_verification_error(exc: BaseException) -> NoReturn:
    """Map any verification failure onto Unreachable, InvalidCredentials or LoginError."""

    if isinstance(exc, OvirtProviderError):
        raise exc

    if _is_unreachable(exc):
        logger.warning("Engine unreachable: %s", exc)
        raise Unreachable(str(exc)) from exc

    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (401, 403):
        raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE) from exc

    if isinstance(exc, sdk.Error):
        rethrow_sdk_error(exc)

    if isinstance(exc, SQLAlchemyError):
        if _message_contains(exc, _DB_INVALID_CREDENTIALS):
            raise InvalidCredentials(INVALID_CREDENTIALS_MESSAGE) from exc
        if _message_contains(exc, _DB_UNREACHABLE):
            logger.warning("History database unreachable: %s", exc)
            raise Unreachable(str(exc)) from exc

    logger.error("Error while verifying credentials: %s", exc, exc_info=exc)
    raise LoginError(LOGIN_ERROR_MESSAGE) from exc


@dataclass(frozen=True)
class VersionAttempt:
    """One step of the version fallback: try ``version``, stop on definitive failures."""

    version: ApiVersion
    attempt: Callable[[Endpoint, Credentials], bool]
    is_definitive_failure: Callable[[BaseException], bool]


class CredentialVerifier:
    """Verifies credentials, preferring version 4 of the API over version 3."""

    def __init__(
        self,
        factory: ConnectionFactory = connection_factory,
        password_decryptor: Optional[Callable[[str], str]] = None,
        resolve_ip_addresses: Optional[bool] = None,
    ) -> None:
        self._factory = factory
        self._password_decryptor = password_decryptor
        self._resolve_ip_addresses = resolve_ip_addresses

    @property
    def resolve_ip_addresses(self) -> bool:
        if self._resolve_ip_addresses is None:
            return settings.ovirt_resolve_ip_addresses
        return self._resolve_ip_addresses

    def attempts(self, force_legacy_version: bool = False) -> List[VersionAttempt]:
        """Ordered version attempts for API verification."""

        legacy = VersionAttempt(
            version=ApiVersion.V3,
            attempt=self._attempt_v3,
            is_definitive_failure=lambda exc: isinstance(exc, OvirtProviderError),
        )
        if force_legacy_version:
            return [legacy]

        current = VersionAttempt(
            version=ApiVersion.V4,
            attempt=self._attempt_v4,
            is_definitive_failure=lambda exc: isinstance(exc, OvirtProviderError) or is_sso_error(exc),
        )
        return [current, legacy]

    def verify(
        self,
        auth_role: Union[AuthRole, str],
        credentials: Credentials,
        endpoint: Endpoint,
        *,
        force_legacy_version: bool = False,
        database: Optional[str] = None,
    ) -> bool:
        """Verify credentials for an auth role, raising a taxonomy error on failure."""

        try:
            role = AuthRole(auth_role)
        except ValueError:
            raise ValueError(f"Invalid Authentication Type: {auth_role!r}") from None

        credentials = credentials.decrypted(self._password_decryptor)
        try:
            if role is AuthRole.METRICS:
                return self._verify_history_database(credentials, endpoint, database)
            return self._verify_api(credentials, endpoint, force_legacy_version)
        except Exception as exc:
            handle_verification_error(exc)

    def _verify_api(
        self, credentials: Credentials, endpoint: Endpoint, force_legacy_version: bool
    ) -> bool:
        endpoint = self._with_resolved_address(endpoint)

        last_error: Optional[BaseException] = None
        for step in self.attempts(force_legacy_version):
            try:
                step.attempt(endpoint, credentials)
            except Exception as exc:
                if step.is_definitive_failure(exc):
                    raise
                logger.info(
                    "API v%s verification against %s failed: %s",
                    int(step.version),
                    endpoint.address,
                    exc,
                )
                last_error = exc
                continue

            logger.info(
                "Credentials for %s verified against %s using API v%s",
                credentials.userid,
                endpoint.address,
                int(step.version),
            )
            return True

        if last_error is None:
            raise LoginError(LOGIN_ERROR_MESSAGE)
        raise last_error

    def _with_resolved_address(self, endpoint: Endpoint) -> Endpoint:
        if not self.resolve_ip_addresses or not endpoint.address:
            return endpoint

        server = endpoint.address
        resolved = resolve_ip_address(server)
        if resolved == server:
            return endpoint

        logger.info("IP address '%s' has been resolved to host name '%s'.", server, resolved)
        return endpoint.model_copy(update={"hostname": resolved, "ipaddress": None})

    def _attempt_v4(self, endpoint: Endpoint, credentials: Credentials) -> bool:
        with self._factory.connection(
            ApiVersion.V4, endpoint, credentials, SERVICE_ROLE_INVENTORY
        ) as handle:
            return handle.test()

    def _attempt_v3(self, endpoint: Endpoint, credentials: Credentials) -> bool:
        with self._factory.connection(
            ApiVersion.V3, endpoint, credentials, SERVICE_ROLE_INVENTORY
        ) as handle:
            handle.client.api()
        return True

    def _verify_history_database(
        self, credentials: Credentials, endpoint: Endpoint, database: Optional[str]
    ) -> bool:
        url = URL.create(
            "postgresql+psycopg2",
            username=credentials.userid,
            password=credentials.password.get_secret_value(),
            host=endpoint.address,
            port=endpoint.port or settings.ovirt_metrics_port,
            database=database or settings.ovirt_history_database,
        )
        connect_args = {}
        if settings.ovirt_open_timeout is not None:
            connect_args["connect_timeout"] = int(settings.ovirt_open_timeout)

        logger.info(
            "Verifying history database credentials for %s on %s/%s",
            credentials.userid,
            url.host,
            url.database,
        )
        engine = create_engine(url, connect_args=connect_args)
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        finally:
            engine.dispose()
        return True


__all__ = [
    "LOGIN_ERROR_MESSAGE",
    "resolve_ip_address",
    "is_sso_error",
    "rethrow_sdk_error",
    "handle_verification_error",
    "VersionAttempt",
    "CredentialVerifier",
]
