"""Unit tests for the DHCP static mapping service."""

import pytest

from src.opnsense_ui.core.mutation import MutationState
from src.opnsense_ui.models.records import StaticMapping
from src.opnsense_ui.services import dhcp as dhcp_module
from src.opnsense_ui.services.dhcp import DHCPService
from src.opnsense_ui.utils.exceptions import (
    MutationRejectedError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
)


@pytest.fixture
def dhcp(session):
    return DHCPService(session)


class TestCreate:
    async def test_create(self, dhcp, fake_appliance, terraform_mapping):
        created = await dhcp.create(terraform_mapping)

        assert created.position == 0
        assert created.record.ip_address == "10.69.0.99"
        assert created.record.hostname == "terraform"
        assert fake_appliance.static_mappings["opt3"] == [
            {
                "mac": "aa:bb:cc:dd:ee:ff",
                "ip": "10.69.0.99",
                "hostname": "terraform",
                "descr": "terraform",
            }
        ]
        assert fake_appliance.applied == ["dhcp:opt3"]

    async def test_create_appends_after_existing_rows(
        self, dhcp, fake_appliance, terraform_mapping
    ):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:01", "10.69.0.10")

        created = await dhcp.create(terraform_mapping)

        assert created.position == 1

    async def test_create_without_hostname_reads_default(self, dhcp, fake_appliance):
        mapping = StaticMapping(interface="opt3", mac="aa:bb:cc:dd:ee:ff", ip_address="10.0.0.5")

        created = await dhcp.create(mapping)

        assert created.record.hostname == "default"

    async def test_create_existing_mac(self, dhcp, fake_appliance, terraform_mapping):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.50")

        with pytest.raises(RecordAlreadyExistsError) as excinfo:
            await dhcp.create(terraform_mapping)

        assert excinfo.value.identifier == "opt3/aa:bb:cc:dd:ee:ff"
        assert excinfo.value.position == 0
        assert fake_appliance.submissions == []

    async def test_same_mac_on_other_interface_allowed(
        self, dhcp, fake_appliance, terraform_mapping
    ):
        fake_appliance.add_static_mapping("lan", "aa:bb:cc:dd:ee:ff", "10.0.0.50")

        created = await dhcp.create(terraform_mapping)

        assert created.record.interface == "opt3"

    async def test_create_ignored_by_appliance(self, dhcp, fake_appliance, terraform_mapping):
        fake_appliance.ignore_submit = True

        with pytest.raises(MutationRejectedError) as excinfo:
            await dhcp.create(terraform_mapping)

        assert excinfo.value.stage == "verify"
        assert excinfo.value.state is MutationState.APPLIED

    async def test_create_submit_rejected(self, dhcp, fake_appliance, terraform_mapping):
        fake_appliance.fail_submit = True

        with pytest.raises(MutationRejectedError) as excinfo:
            await dhcp.create(terraform_mapping)

        assert excinfo.value.stage == "submit"


class TestRead:
    async def test_read(self, dhcp, fake_appliance):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.99", "terraform")

        found = await dhcp.read("opt3", "AA-BB-CC-DD-EE-FF")

        assert found.record.natural_key == ("opt3", "aa:bb:cc:dd:ee:ff")
        assert found.record.hostname == "terraform"

    async def test_read_missing(self, dhcp, fake_appliance):
        with pytest.raises(RecordNotFoundError):
            await dhcp.read("opt3", "aa:bb:cc:dd:ee:ff")


class TestUpdate:
    async def test_update_in_place(self, dhcp, fake_appliance):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:01", "10.69.0.10")
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.99", "terraform")
        desired = StaticMapping(
            interface="opt3",
            mac="aa:bb:cc:dd:ee:ff",
            ip_address="10.69.0.100",
            hostname="terraform2",
        )

        updated = await dhcp.update(desired)

        assert updated.position == 1
        assert updated.record.ip_address == "10.69.0.100"
        assert updated.record.hostname == "terraform2"
        assert fake_appliance.submissions[-1]["id"] == "1"
        assert len(fake_appliance.static_mappings["opt3"]) == 2

    async def test_update_changes_mac(self, dhcp, fake_appliance):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.99")
        desired = StaticMapping(interface="opt3", mac="aa:bb:cc:dd:ee:00", ip_address="10.69.0.99")

        updated = await dhcp.update(desired, current_mac="aa:bb:cc:dd:ee:ff")

        assert updated.record.mac == "aa:bb:cc:dd:ee:00"
        with pytest.raises(RecordNotFoundError):
            await dhcp.read("opt3", "aa:bb:cc:dd:ee:ff")

    async def test_update_missing(self, dhcp, fake_appliance, terraform_mapping):
        with pytest.raises(RecordNotFoundError):
            await dhcp.update(terraform_mapping)

        assert fake_appliance.submissions == []

    async def test_update_ignored_by_appliance(self, dhcp, fake_appliance, mocker):
        log = mocker.patch.object(dhcp_module, "logger")
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.99", "terraform")
        fake_appliance.ignore_submit = True
        desired = StaticMapping(
            interface="opt3",
            mac="aa:bb:cc:dd:ee:ff",
            ip_address="10.69.0.100",
            hostname="terraform",
        )

        with pytest.raises(MutationRejectedError, match="does not show the submitted values"):
            await dhcp.update(desired)

        assert log.warning.call_args.kwargs["observed_ip"] == "10.69.0.99"


class TestDelete:
    async def test_delete(self, dhcp, fake_appliance):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:01", "10.69.0.10")
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.99")

        await dhcp.delete("opt3", "aa:bb:cc:dd:ee:ff")

        assert [m["mac"] for m in fake_appliance.static_mappings["opt3"]] == ["aa:bb:cc:dd:ee:01"]
        assert fake_appliance.applied == ["dhcp:opt3"]

    async def test_delete_missing(self, dhcp, fake_appliance):
        with pytest.raises(RecordNotFoundError):
            await dhcp.delete("opt3", "aa:bb:cc:dd:ee:ff")

    async def test_delete_rejected(self, dhcp, fake_appliance):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.99")
        fake_appliance.fail_delete = True

        with pytest.raises(MutationRejectedError) as excinfo:
            await dhcp.delete("opt3", "aa:bb:cc:dd:ee:ff")

        assert excinfo.value.stage == "delete"
        assert len(fake_appliance.static_mappings["opt3"]) == 1

    async def test_delete_not_applied(self, dhcp, fake_appliance):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.99")
        fake_appliance.ignore_delete = True

        with pytest.raises(MutationRejectedError) as excinfo:
            await dhcp.delete("opt3", "aa:bb:cc:dd:ee:ff")

        assert excinfo.value.stage == "verify"

    async def test_delete_one_of_duplicate_macs(self, dhcp, fake_appliance):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.98", "first")
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:ff", "10.69.0.99", "second")

        await dhcp.delete("opt3", "aa:bb:cc:dd:ee:ff")

        assert [m["hostname"] for m in fake_appliance.static_mappings["opt3"]] == ["second"]
        assert fake_appliance.applied == ["dhcp:opt3"]


class TestListings:
    async def test_list_static_mappings(self, dhcp, fake_appliance):
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:01", "10.69.0.10", "one")
        fake_appliance.add_static_mapping("opt3", "aa:bb:cc:dd:ee:02", "10.69.0.11")

        mappings = await dhcp.list_static_mappings("opt3")

        assert [(m.position, m.record.hostname) for m in mappings] == [(0, "one"), (1, "default")]

    async def test_list_leases(self, dhcp, fake_appliance):
        fake_appliance.leases.extend(
            [
                {
                    "interface": "LAN",
                    "ip": "10.0.0.20",
                    "mac": "aa:bb:cc:00:11:22",
                    "hostname": "nas",
                },
                {"interface": "opt3", "ip": "10.69.0.30", "mac": "aa:bb:cc:00:11:33"},
            ]
        )

        leases = await dhcp.list_leases()

        assert [lease.mac for lease in leases] == ["aa:bb:cc:00:11:22", "aa:bb:cc:00:11:33"]
        assert leases[0].hostname == "nas"
        assert leases[1].hostname == "default"
        assert leases[1].interface == "opt3"

    async def test_no_leases(self, dhcp, fake_appliance):
        assert await dhcp.list_leases() == []
