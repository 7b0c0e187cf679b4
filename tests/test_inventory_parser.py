import pytest

from ovirt_provider.core.models import PowerState, RefreshPayload
from ovirt_provider.services.inventory_parser import parse_inventory
from ovirt_provider.services.inventory_service import normalize_record


def _payload(**inventory):
    return RefreshPayload(
        inventory={kind: [normalize_record(r) for r in records] for kind, records in inventory.items()},
        api_version="4.4.0",
    )


@pytest.mark.unit
class TestParseInventory:
    def test_not_found_payload_parses_to_empty_inventory(self):
        payload = RefreshPayload(
            inventory={"cluster": None, "host": None, "vm": None, "template": None},
            api_version="4.4.0",
            not_found=True,
        )

        parsed = parse_inventory(payload)

        assert parsed.not_found is True
        assert parsed.api_version == "4.4.0"
        assert parsed.hosts == [] and parsed.vms == [] and parsed.clusters == []

    def test_vms_and_templates(self):
        payload = _payload(
            vm=[
                {
                    "id": "v1",
                    "href": "/ovirt-engine/api/vms/v1",
                    "name": "vm1",
                    "status": "up",
                    "memory": 4 * 1024 * 1024 * 1024,
                    "cpu_cores": 4,
                    "host": {"id": "h1", "href": "/ovirt-engine/api/hosts/h1"},
                    "cluster": {"id": "c1", "href": "/ovirt-engine/api/clusters/c1"},
                }
            ],
            template=[{"id": "t1", "href": "/ovirt-engine/api/templates/t1", "name": "Blank", "status": "ok"}],
        )

        parsed = parse_inventory(payload)

        [vm] = parsed.vms
        assert vm.ems_ref == "/api/vms/v1"
        assert vm.uid_ems == "v1"
        assert vm.power_state is PowerState.ON
        assert vm.memory_mb == 4096
        assert vm.cpu_total_cores == 4
        assert vm.host_ref == "/api/hosts/h1"
        assert vm.cluster_ref == "/api/clusters/c1"

        [template] = parsed.templates
        assert template.template is True
        assert template.power_state is PowerState.UNKNOWN
        assert template.raw_power_state == "ok"

    def test_hosts_and_clusters(self):
        payload = _payload(
            cluster=[
                {
                    "id": "c1",
                    "href": "/api/clusters/c1",
                    "name": "Default",
                    "data_center": {"id": "d1", "href": "/api/datacenters/d1"},
                }
            ],
            host=[
                {
                    "id": "h1",
                    "href": "/api/hosts/h1",
                    "name": "host1",
                    "address": "host1.example.com",
                    "status": "maintenance",
                }
            ],
        )

        parsed = parse_inventory(payload)

        assert parsed.clusters[0].datacenter_ref == "/api/datacenters/d1"
        assert parsed.hosts[0].hostname == "host1.example.com"
        assert parsed.hosts[0].power_state is PowerState.UNKNOWN
        assert parsed.not_found is False

    def test_records_without_href_are_skipped(self):
        parsed = parse_inventory(_payload(vm=[{"id": "v1", "name": "orphan"}], host=[{"name": "h"}]))

        assert parsed.vms == []
        assert parsed.hosts == []
