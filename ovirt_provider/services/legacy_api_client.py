"""Client for version 3 of the oVirt API (REST with XML bodies)."""
from __future__ import annotations

import logging
import ssl
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)


class LegacyApiClient:
    """Thin synchronous wrapper over the legacy REST API."""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        verify: Union[bool, ssl.SSLContext] = True,
        timeout: Optional[httpx.Timeout] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            auth=(username, password),
            verify=verify,
            timeout=timeout if timeout is not None else httpx.Timeout(None),
            headers={
                "Accept": "application/xml",
                # Engines 4.0-4.2 serve both versions on the same path.
                "Version": "3",
                "Filter": "false",
            },
        )

    def _get(self, path: str) -> ET.Element:
        response = self._client.get(path)
        response.raise_for_status()
        try:
            return ET.fromstring(response.content)
        except ET.ParseError as exc:
            raise ValueError(f"Malformed XML returned by {self.base_url}{path}: {exc}") from exc

    def api(self) -> ET.Element:
        """Fetch the API entry point."""
        return self._get("/")

    def test(self) -> bool:
        self.api()
        return True

    def product_version(self) -> Optional[str]:
        """Return the engine product version, e.g. ``3.6.0.0``."""

        root = self.api()
        version = root.find("product_info/version")
        if version is None:
            return None

        full_version = version.findtext("full_version")
        if full_version:
            return full_version.strip()

        parts = [version.get(part) for part in ("major", "minor", "build", "revision")]
        present = [part for part in parts if part is not None]
        return ".".join(present) or None

    def list_records(self, collection: str) -> List[Dict[str, Any]]:
        """Fetch a top level collection (``hosts``, ``vms``...) as plain records."""

        root = self._get(f"/{collection}")
        return [element_to_record(child) for child in root]

    def close(self) -> None:
        self._client.close()


def _link(element: Optional[ET.Element]) -> Optional[Dict[str, Optional[str]]]:
    if element is None:
        return None
    return {"id": element.get("id"), "href": element.get("href")}


def _int_or_none(text: Optional[str]) -> Optional[int]:
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


def element_to_record(element: ET.Element) -> Dict[str, Any]:
    """Convert a legacy XML entity into the record shape shared with version 4."""

    status = element.find("status")
    state = None
    if status is not None:
        state = status.findtext("state") or (status.text or "").strip() or None

    cores = None
    topology = element.find("cpu/topology")
    if topology is not None:
        sockets = _int_or_none(topology.get("sockets")) or 1
        per_socket = _int_or_none(topology.get("cores")) or 1
        cores = sockets * per_socket

    return {
        "id": element.get("id"),
        "href": element.get("href"),
        "name": element.findtext("name"),
        "address": element.findtext("address"),
        "status": state,
        "memory": _int_or_none(element.findtext("memory")),
        "cpu_cores": cores,
        "cluster": _link(element.find("cluster")),
        "host": _link(element.find("host")),
        "template": _link(element.find("template")),
        "data_center": _link(element.find("data_center")),
    }


__all__ = ["LegacyApiClient", "element_to_record"]
