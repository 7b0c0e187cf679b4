from unittest.mock import MagicMock, patch

import httpx
import pytest
from pydantic import ValidationError

from ovirt_provider.core.errors import ConnectFailure, InventoryUnavailable
from ovirt_provider.core.models import (
    ApiVersion,
    AuthRole,
    Capability,
    Credentials,
    Endpoint,
    HostTarget,
    RefreshPayload,
    VerifyOptions,
    WholeManager,
)
from ovirt_provider.services.provider_service import OvirtProviderService


@pytest.fixture
def service(fake_factory):
    service = OvirtProviderService(factory=fake_factory)
    service.verifier = MagicMock()
    service.verifier.verify.return_value = True
    return service


@pytest.fixture
def metrics_manager(manager):
    manager.authentications[AuthRole.METRICS] = Credentials(
        userid="ovirt_engine_history", password="dwh", auth_role=AuthRole.METRICS
    )
    manager.metrics_endpoint = Endpoint(hostname="dwh.example.com", port=5433)
    return manager


@pytest.mark.unit
class TestAuthentication:
    def test_supported_auth_types(self, service):
        assert service.supported_auth_types() == ("default", "metrics")
        assert service.supports_authentication(AuthRole.METRICS)
        assert not service.supports_authentication("kerberos")

    def test_authentications_to_validate(self, service, manager, metrics_manager):
        assert service.authentications_to_validate(metrics_manager) == [AuthRole.DEFAULT, AuthRole.METRICS]

    def test_only_default_when_no_metrics_credentials(self, service, manager):
        assert service.authentications_to_validate(manager) == [AuthRole.DEFAULT]


@pytest.mark.unit
class TestVerifyCredentials:
    def test_defaults_to_default_role(self, service, manager):
        assert service.verify_credentials(manager) is True

        role, credentials, endpoint = service.verifier.verify.call_args.args
        assert role is AuthRole.DEFAULT
        assert credentials.userid == "admin@internal"
        assert endpoint == manager.default_endpoint
        assert service.verifier.verify.call_args.kwargs == {"force_legacy_version": False}

    def test_supported_api_validation_is_always_skipped(self, service, manager):
        with patch.object(service.connector, "select_version") as select_version:
            service.verify_credentials(manager, options={"skip_supported_api_validation": False})

        select_version.assert_not_called()

    def test_options_are_forwarded(self, service, manager):
        options = VerifyOptions(force_legacy_version=True, hostname_override="alt.example.com")

        service.verify_credentials(manager, "default", options)

        _, _, endpoint = service.verifier.verify.call_args.args
        assert endpoint.hostname == "alt.example.com"
        assert endpoint.ipaddress is None
        assert service.verifier.verify.call_args.kwargs["force_legacy_version"] is True

    def test_camel_case_options(self, service, manager):
        options = {"forceLegacyVersion": True, "hostnameOverride": "alt.example.com"}

        service.verify_credentials(manager, "default", options)

        _, _, endpoint = service.verifier.verify.call_args.args
        assert endpoint.hostname == "alt.example.com"
        assert service.verifier.verify.call_args.kwargs["force_legacy_version"] is True

    def test_camel_case_skip_flag_is_still_forced(self, service, manager):
        with patch.object(service.connector, "select_version") as select_version:
            service.verify_credentials(manager, options={"skipSupportedApiValidation": False})

        select_version.assert_not_called()

    def test_unknown_options_are_rejected(self, service, manager):
        with pytest.raises(ValidationError):
            service.verify_credentials(manager, "default", {"forceLegacy": True})
        service.verifier.verify.assert_not_called()

    def test_metrics_uses_history_database_endpoint(self, service, metrics_manager):
        service.verify_credentials(metrics_manager, AuthRole.METRICS)

        role, credentials, endpoint = service.verifier.verify.call_args.args
        assert role is AuthRole.METRICS
        assert credentials.userid == "ovirt_engine_history"
        assert endpoint.hostname == "dwh.example.com"
        assert endpoint.port == 5433
        assert service.verifier.verify.call_args.kwargs["database"] == "ovirt_engine_history"

    def test_metrics_overrides(self, service, metrics_manager):
        options = {"hostname_override": "dwh2.example.com", "database_override": "history"}

        service.verify_credentials(metrics_manager, "metrics", options)

        _, _, endpoint = service.verifier.verify.call_args.args
        assert endpoint.hostname == "dwh2.example.com"
        assert service.verifier.verify.call_args.kwargs["database"] == "history"

    def test_metrics_falls_back_to_engine_host(self, service, metrics_manager):
        metrics_manager.metrics_endpoint = None

        service.verify_credentials(metrics_manager, AuthRole.METRICS)

        _, _, endpoint = service.verifier.verify.call_args.args
        assert endpoint.hostname == "engine.example.com"
        assert endpoint.port is None

    def test_unknown_role(self, service, manager):
        with pytest.raises(ValueError, match="Invalid Authentication Type"):
            service.verify_credentials(manager, "kerberos")

    def test_missing_credentials(self, service, manager):
        with pytest.raises(ConnectFailure):
            service.verify_credentials(manager, AuthRole.METRICS)


@pytest.mark.unit
class TestCapabilities:
    def test_supports_feature(self, service, manager):
        manager.api_version = "4.2.0"

        assert service.supports_feature(manager, Capability.SNAPSHOTS)
        assert service.supports_feature(manager, "publish")

    def test_legacy_only_manager(self, service, manager):
        manager.api_version = "3.6.0"

        assert service.supported_features(manager) == frozenset()
        assert not service.supports_feature(manager, Capability.MIGRATE)


@pytest.mark.unit
class TestRefresh:
    def test_refresh_resolves_then_collects(self, service, manager):
        whole = WholeManager(manager_id=manager.id)
        host = HostTarget(manager_id=manager.id, ems_ref="/api/hosts/h1")
        payload = RefreshPayload(api_version="4.4.0")

        with patch.object(service.collector, "fetch", return_value=[(whole, payload)]) as fetch:
            result = service.refresh(manager, [host, whole])

        assert fetch.call_args.args[1] == [whole]
        assert result.manager_id == manager.id
        assert result[whole] is payload

    def test_refresh_all_skips_unknown_managers(self, service, manager):
        host = HostTarget(manager_id=manager.id, ems_ref="/api/hosts/h1")
        stray = HostTarget(manager_id="42", ems_ref="/api/hosts/h9")

        with patch.object(service.collector, "fetch", return_value=[(host, RefreshPayload())]):
            results = service.refresh_all({manager.id: manager}, [host, stray])

        assert list(results) == [manager.id]
        assert results[manager.id].targets() == [host]

    def test_unreachable_engine_raises_inventory_unavailable(self, service, fake_factory, manager):
        fake_factory.open.return_value.product_version.side_effect = httpx.ConnectError(
            "[Errno -2] Name or service not known"
        )
        options = VerifyOptions(skip_supported_api_validation=True, force_legacy_version=True)

        with pytest.raises(InventoryUnavailable):
            service.refresh(manager, [WholeManager(manager_id=manager.id)], options)

        fake_factory.disconnect.assert_called_once_with(fake_factory.open.return_value)

    def test_with_provider_connection(self, service, fake_factory, manager):
        manager.api_version = "4.4.0"

        with service.with_provider_connection(manager) as handle:
            assert handle is fake_factory.open.return_value

        assert fake_factory.open.call_args.args[0] is ApiVersion.V4
        fake_factory.disconnect.assert_called_once_with(handle)
