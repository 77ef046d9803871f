"""DHCP static mapping service.

Mappings are keyed by (interface, MAC address). Each operation resolves the
row position from the live table, runs the mutation protocol against that
position, and re-reads the table afterwards: the appliance answers an
invalid submission with a normal page, so an unchanged table is the only
sign that it refused the change.
"""

import structlog

from ..appliance.endpoints import ApplianceEndpoints
from ..appliance.session import ApplianceSession
from ..constants import DEFAULT_HOSTNAME, LEASES_HEADER_ROW
from ..core import mutation
from ..core.mutation import MutationState, TableForm
from ..core.resolver import STATIC_MAPPING, IdentityResolver
from ..core.scraper import TableScraper, is_blank_row
from ..models.records import DHCPLease, Resolution, StaticMapping, normalize_mac
from ..utils.exceptions import (
    MutationRejectedError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
)

logger = structlog.get_logger(__name__)


def _applied(observed: StaticMapping, desired: StaticMapping) -> bool:
    """Whether the table shows the desired values."""
    return (
        observed.ip_address == desired.ip_address
        and observed.hostname == (desired.hostname or DEFAULT_HOSTNAME)
    )


class DHCPService:
    """CRUD for DHCP static mappings plus the lease status listing."""

    def __init__(
        self,
        session: ApplianceSession,
        scraper: TableScraper | None = None,
        resolver: IdentityResolver | None = None,
    ):
        self.session = session
        self.scraper = scraper or TableScraper(session)
        self.resolver = resolver or IdentityResolver(self.scraper)

    async def create(self, mapping: StaticMapping) -> Resolution[StaticMapping]:
        """
        Add a new static mapping.

        Returns:
            The mapping as read back from the table.

        Raises:
            RecordAlreadyExistsError: If the interface already maps the MAC.
            MutationRejectedError: If the appliance did not accept the mapping.
        """
        interface, mac = mapping.natural_key
        try:
            existing = await self.resolver.resolve_static_mapping(interface, mac)
        except RecordNotFoundError:
            pass
        else:
            raise RecordAlreadyExistsError(
                STATIC_MAPPING, f"{interface}/{mac}", position=existing.position
            )

        await mutation.create_or_update(
            self.session, TableForm.static_mappings(interface), mapping.to_form()
        )

        created = await self._verify(mapping)
        logger.info(
            "Static mapping created",
            interface=interface,
            mac=mac,
            ip=mapping.ip_address,
            position=created.position,
        )
        return created

    async def read(self, interface: str, mac: str) -> Resolution[StaticMapping]:
        """
        Current state of the mapping for ``mac`` on ``interface``.

        Raises:
            RecordNotFoundError: If no such mapping exists.
        """
        return await self.resolver.resolve_static_mapping(interface, normalize_mac(mac))

    async def update(
        self, mapping: StaticMapping, current_mac: str | None = None
    ) -> Resolution[StaticMapping]:
        """
        Replace the mapping's address and hostname.

        Args:
            mapping: Desired state.
            current_mac: MAC of the row to edit, when it differs from the
                desired one. Defaults to ``mapping.mac``.

        Raises:
            RecordNotFoundError: If the row to edit does not exist.
            MutationRejectedError: If the appliance did not accept the change.
        """
        mac = normalize_mac(current_mac) if current_mac else mapping.mac
        current = await self.resolver.resolve_static_mapping(mapping.interface, mac)

        await mutation.create_or_update(
            self.session,
            TableForm.static_mappings(mapping.interface),
            mapping.to_form(),
            position=current.position,
        )

        updated = await self._verify(mapping)
        logger.info(
            "Static mapping updated",
            interface=mapping.interface,
            mac=mapping.mac,
            ip=mapping.ip_address,
            position=updated.position,
        )
        return updated

    async def delete(self, interface: str, mac: str) -> None:
        """
        Remove the mapping for ``mac`` on ``interface``.

        Raises:
            RecordNotFoundError: If no such mapping exists.
            MutationRejectedError: If the table holds as many rows for ``mac``
                afterwards as before.
        """
        mac = normalize_mac(mac)
        current = await self.resolver.resolve_static_mapping(interface, mac)
        before = await self.resolver.count_static_mappings(interface, mac)

        await mutation.delete(
            self.session, TableForm.static_mappings(interface), current.position
        )

        remaining = await self.resolver.count_static_mappings(interface, mac)
        if remaining < before:
            logger.info(
                "Static mapping deleted",
                interface=interface,
                mac=mac,
                position=current.position,
                remaining=remaining,
            )
            return
        raise MutationRejectedError(
            f"static mapping {interface}/{mac} still present after delete",
            stage="verify",
            state=MutationState.APPLIED,
        )

    async def list_static_mappings(self, interface: str) -> list[Resolution[StaticMapping]]:
        """All static mappings of ``interface`` with their positions."""
        return await self.resolver.list_static_mappings(interface)

    async def list_leases(self) -> list[DHCPLease]:
        """Leases shown on the DHCP status page, all interfaces."""
        rows = await self.scraper.scrape(ApplianceEndpoints.DHCP_LEASES, LEASES_HEADER_ROW)
        leases = [DHCPLease.from_row(row) for row in rows if not is_blank_row(row)]
        logger.debug("Leases listed", count=len(leases))
        return leases

    async def _verify(self, mapping: StaticMapping) -> Resolution[StaticMapping]:
        try:
            observed = await self.resolver.resolve_static_mapping(mapping.interface, mapping.mac)
        except RecordNotFoundError as e:
            raise MutationRejectedError(
                f"static mapping {mapping.interface}/{mapping.mac} not present after apply",
                stage="verify",
                state=MutationState.APPLIED,
            ) from e

        if not _applied(observed.record, mapping):
            logger.warning(
                "Static mapping unchanged after apply",
                interface=mapping.interface,
                mac=mapping.mac,
                expected_ip=mapping.ip_address,
                observed_ip=observed.record.ip_address,
            )
            raise MutationRejectedError(
                f"static mapping {mapping.interface}/{mapping.mac} does not show the "
                f"submitted values",
                stage="verify",
                state=MutationState.APPLIED,
            )
        return observed
