"""Inventory collection for oVirt managers."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
import ovirtsdk4 as sdk

from ..core.errors import ConnectFailure, InventoryUnavailable
from ..core.models import (
    INVENTORY_KINDS,
    ApiVersion,
    HostTarget,
    OvirtManager,
    RefreshPayload,
    RefreshTarget,
    TargetGroup,
    VerifyOptions,
    VmOrTemplateTarget,
    WholeManager,
)
from ..core.references import id_suffix, to_reference_key
from .connection_service import SERVICE_ROLE_INVENTORY, ConnectionHandle
from .manager_connector import ManagerConnector, manager_connector

logger = logging.getLogger(__name__)


INVALID_ADDRESS_MESSAGE = "Invalid oVirt server ip address."

# Entity kind -> API collection name (identical in both API versions)
INVENTORY_COLLECTIONS: Dict[str, str] = {
    "cluster": "clusters",
    "host": "hosts",
    "vm": "vms",
    "template": "templates",
}


def _link(value: Any) -> Optional[Dict[str, Optional[str]]]:
    if value is None:
        return None
    return {"id": getattr(value, "id", None), "href": getattr(value, "href", None)}


def _enum_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def sdk_record(entity: Any) -> Dict[str, Any]:
    """Convert a version 4 SDK entity into the shared record shape."""

    cores = None
    topology = getattr(getattr(entity, "cpu", None), "topology", None)
    if topology is not None:
        cores = (getattr(topology, "sockets", None) or 1) * (getattr(topology, "cores", None) or 1)

    return {
        "id": getattr(entity, "id", None),
        "href": getattr(entity, "href", None),
        "name": getattr(entity, "name", None),
        "address": getattr(entity, "address", None),
        "status": _enum_value(getattr(entity, "status", None)),
        "memory": getattr(entity, "memory", None),
        "cpu_cores": cores,
        "cluster": _link(getattr(entity, "cluster", None)),
        "host": _link(getattr(entity, "host", None)),
        "template": _link(getattr(entity, "template", None)),
        "data_center": _link(getattr(entity, "data_center", None)),
    }


def normalize_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the reference key and uid derived from the record's href."""

    normalized = dict(record)
    normalized["ems_ref"] = to_reference_key(record.get("href"))
    normalized["uid_ems"] = record.get("id") or id_suffix(record.get("href"))
    return normalized


class InventoryCollector:
    """Fetches raw inventory for resolved refresh targets."""

    def __init__(self, connector: ManagerConnector = manager_connector) -> None:
        self._connector = connector

    @staticmethod
    def targeted_refresh(manager: OvirtManager, target: RefreshTarget) -> bool:
        """Return True when absence of ``target`` must empty its payload."""

        return manager.targeted_refresh and isinstance(target, (HostTarget, VmOrTemplateTarget))

    @staticmethod
    def corresponding_records_missing(target: RefreshTarget, payload: RefreshPayload) -> bool:
        """Return True when the record for a host or VM/template target is absent."""

        if isinstance(target, VmOrTemplateTarget):
            kind = "template" if target.template else "vm"
        elif isinstance(target, HostTarget):
            kind = "host"
        elif isinstance(target, (WholeManager, TargetGroup)):
            return False
        else:  # pragma: no cover - exhaustive over RefreshTarget
            raise TypeError(f"Unknown refresh target {target!r}")

        wanted = to_reference_key(target.ems_ref)
        return not any(record.get("ems_ref") == wanted for record in payload.records(kind))

    @staticmethod
    def empty_payload(payload: RefreshPayload) -> RefreshPayload:
        """Null every entity slot so stale sibling data cannot survive."""

        kinds = set(INVENTORY_KINDS) | set(payload.inventory)
        return RefreshPayload(
            inventory={kind: None for kind in kinds},
            api_version=payload.api_version,
            not_found=True,
        )

    def fetch(
        self,
        manager: OvirtManager,
        targets: Iterable[RefreshTarget],
        options: Optional[VerifyOptions] = None,
    ) -> List[Tuple[RefreshTarget, RefreshPayload]]:
        """Collect inventory for each target over a single scoped connection."""

        targets = list(targets)
        if not manager.default_endpoint.address:
            raise InventoryUnavailable(INVALID_ADDRESS_MESSAGE)

        try:
            handle = self._connector.connect(manager, options, SERVICE_ROLE_INVENTORY)
        except ConnectFailure as exc:
            raise InventoryUnavailable(f"{INVALID_ADDRESS_MESSAGE} {exc}") from exc

        try:
            api_version = handle.product_version()
            if api_version is None:
                raise InventoryUnavailable(INVALID_ADDRESS_MESSAGE)
            if api_version != manager.api_version:
                manager.api_version = api_version

            results: List[Tuple[RefreshTarget, RefreshPayload]] = []
            for target in targets:
                logger.info(
                    "Filtering inventory for %s [%s] on manager [%s]...",
                    type(target).__name__,
                    target.name or getattr(target, "ems_ref", target.manager_id),
                    manager.name,
                )
                start = time.perf_counter()

                # The whole inventory is fetched for every target; absence
                # detection compares against the full sibling data set.
                payload = RefreshPayload(
                    inventory=self._collect(handle),
                    api_version=api_version,
                )
                if self.targeted_refresh(manager, target) and self.corresponding_records_missing(
                    target, payload
                ):
                    logger.info(
                        "Target %s no longer exists on manager [%s]; emptying its payload",
                        getattr(target, "ems_ref", target),
                        manager.name,
                    )
                    payload = self.empty_payload(payload)

                logger.info(
                    "Filtering inventory...Complete (%.2fs)", time.perf_counter() - start
                )
                results.append((target, payload))
            return results
        except (httpx.HTTPError, sdk.Error, OSError) as exc:
            logger.error("Inventory collection from manager [%s] failed: %s", manager.name, exc)
            raise InventoryUnavailable(
                f"Unable to read inventory from manager {manager.name}: {exc}"
            ) from exc
        finally:
            self._connector.factory.disconnect(handle)

    def _collect(self, handle: ConnectionHandle) -> Dict[str, Optional[List[Dict[str, Any]]]]:
        if handle.version is ApiVersion.V4:
            raw = self._collect_v4(handle)
        else:
            raw = self._collect_v3(handle)
        return {kind: [normalize_record(record) for record in records] for kind, records in raw.items()}

    @staticmethod
    def _collect_v4(handle: ConnectionHandle) -> Dict[str, List[Dict[str, Any]]]:
        system = handle.client.system_service()
        services = {
            "cluster": system.clusters_service(),
            "host": system.hosts_service(),
            "vm": system.vms_service(),
            "template": system.templates_service(),
        }
        return {kind: [sdk_record(entity) for entity in service.list()] for kind, service in services.items()}

    @staticmethod
    def _collect_v3(handle: ConnectionHandle) -> Dict[str, List[Dict[str, Any]]]:
        return {
            kind: handle.client.list_records(collection)
            for kind, collection in INVENTORY_COLLECTIONS.items()
        }


__all__ = [
    "INVALID_ADDRESS_MESSAGE",
    "INVENTORY_COLLECTIONS",
    "sdk_record",
    "normalize_record",
    "InventoryCollector",
]
