"""Parsing of raw refresh payloads into persistable inventory records."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..core.models import (
    ClusterRecord,
    HostRecord,
    ParsedInventory,
    RefreshPayload,
    VmRecord,
    calculate_power_state,
)
from ..core.references import to_reference_key

logger = logging.getLogger(__name__)

_BYTES_PER_MB = 1024 * 1024


def _link_ref(record: Dict[str, Any], key: str) -> Optional[str]:
    link = record.get(key)
    if not isinstance(link, dict):
        return None
    return to_reference_key(link.get("href"))


def _memory_mb(value: Any) -> Optional[int]:
    try:
        return int(value) // _BYTES_PER_MB if value is not None else None
    except (TypeError, ValueError):
        return None


def _parse_vms(records: List[Dict[str, Any]], template: bool) -> List[VmRecord]:
    parsed = []
    for record in records:
        if not record.get("ems_ref"):
            logger.debug("Skipping %s record without href: %s", "template" if template else "vm", record.get("name"))
            continue
        parsed.append(
            VmRecord(
                ems_ref=record["ems_ref"],
                uid_ems=record.get("uid_ems"),
                name=record.get("name"),
                template=template,
                # Templates have no runtime state.
                power_state=calculate_power_state(None if template else record.get("status")),
                raw_power_state=record.get("status"),
                memory_mb=_memory_mb(record.get("memory")),
                cpu_total_cores=record.get("cpu_cores"),
                host_ref=_link_ref(record, "host"),
                cluster_ref=_link_ref(record, "cluster"),
            )
        )
    return parsed


def parse_inventory(payload: RefreshPayload) -> ParsedInventory:
    """Turn a refresh payload into typed records.

    A payload whose target was not found parses to an empty inventory with
    ``not_found`` set, telling the caller to remove the target locally.
    """

    if payload.not_found:
        return ParsedInventory(api_version=payload.api_version, not_found=True)

    clusters = [
        ClusterRecord(
            ems_ref=record["ems_ref"],
            uid_ems=record.get("uid_ems"),
            name=record.get("name"),
            datacenter_ref=_link_ref(record, "data_center"),
        )
        for record in payload.records("cluster")
        if record.get("ems_ref")
    ]
    hosts = [
        HostRecord(
            ems_ref=record["ems_ref"],
            uid_ems=record.get("uid_ems"),
            name=record.get("name"),
            hostname=record.get("address"),
            power_state=calculate_power_state(record.get("status")),
            cluster_ref=_link_ref(record, "cluster"),
        )
        for record in payload.records("host")
        if record.get("ems_ref")
    ]

    return ParsedInventory(
        api_version=payload.api_version,
        clusters=clusters,
        hosts=hosts,
        vms=_parse_vms(payload.records("vm"), template=False),
        templates=_parse_vms(payload.records("template"), template=True),
    )


__all__ = ["parse_inventory"]
