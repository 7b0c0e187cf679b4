"""Shared fixtures for the oVirt provider test suite."""

from unittest.mock import MagicMock

import pytest

from ovirt_provider.core.models import AuthRole, Credentials, Endpoint, OvirtManager
from ovirt_provider.services.connection_service import ConnectionFactory


@pytest.fixture
def endpoint():
    return Endpoint(hostname="engine.example.com", port=443)


@pytest.fixture
def credentials():
    return Credentials(userid="admin@internal", password="secret")


@pytest.fixture
def manager(endpoint, credentials):
    return OvirtManager(
        id=1,
        name="engine",
        default_endpoint=endpoint,
        authentications={AuthRole.DEFAULT: credentials},
    )


@pytest.fixture
def fake_factory():
    """Connection factory whose ``connection`` context yields a mocked handle."""

    factory = MagicMock(spec=ConnectionFactory)
    factory.connection.return_value.__enter__.return_value = MagicMock()
    factory.connection.return_value.__exit__.return_value = False
    return factory
