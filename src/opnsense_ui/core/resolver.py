"""Natural key to positional ID resolution.

The appliance addresses records for edit and delete by their row offset in
the rendered table, and that offset shifts whenever a row is added or
removed, by this provider or anyone else. Positions are therefore recomputed
from a fresh page on every call and never cached.

Matching is exact on every key field. Should the appliance ever hold two
rows with the same natural key, the first in document order wins and a
warning is logged.
"""

from collections.abc import Callable, Iterable

import structlog

from ..appliance.endpoints import ApplianceEndpoints
from ..constants import (
    DHCP_FIELD_MAC,
    DHCP_HEADER_ROW,
    DNS_FIELD_DOMAIN,
    DNS_FIELD_HOST,
    DNS_FIELD_TYPE,
    DNS_FIELD_VALUE,
    DNS_HEADER_ROW,
)
from ..models.records import HostOverride, Resolution, StaticMapping
from ..utils.exceptions import RecordNotFoundError
from .scraper import TableScraper, is_blank_row

logger = structlog.get_logger(__name__)

Row = dict[str, str]
RowPredicate = Callable[[Row], bool]

STATIC_MAPPING = "DHCP static mapping"
HOST_OVERRIDE = "DNS host override"


def find_position(rows: Iterable[Row], predicate: RowPredicate) -> tuple[int, Row] | None:
    """
    Locate the first row satisfying ``predicate``.

    Args:
        rows: Table snapshot, body rows in document order.
        predicate: Exact-match test on the row's fields.

    Returns:
        (zero-based offset from the first body row, row), or None.
    """
    for index, row in enumerate(rows):
        if predicate(row):
            return index, row
    return None


def mac_matches(mac: str) -> RowPredicate:
    mac = mac.lower()
    return lambda row: row.get(DHCP_FIELD_MAC) == mac


def host_override_matches(key: tuple[str, str, str, str]) -> RowPredicate:
    def _match(row: Row) -> bool:
        return (
            row.get(DNS_FIELD_TYPE),
            row.get(DNS_FIELD_HOST),
            row.get(DNS_FIELD_DOMAIN),
            row.get(DNS_FIELD_VALUE),
        ) == key

    return _match


def _resolve(
    rows: list[Row], predicate: RowPredicate, record_type: str, identifier: str
) -> tuple[int, Row]:
    found = find_position(rows, predicate)
    if found is None:
        logger.debug("Record not present", record=record_type, key=identifier)
        raise RecordNotFoundError(record_type, identifier)

    matches = sum(1 for row in rows if predicate(row))
    if matches > 1:
        logger.warning(
            "Duplicate natural key on appliance, using first match",
            record=record_type,
            key=identifier,
            matches=matches,
            position=found[0],
        )
    return found


class IdentityResolver:
    """
    Maps natural keys to positional IDs against the live tables.

    Every method fetches and scrapes the relevant page anew.
    """

    def __init__(self, scraper: TableScraper):
        self.scraper = scraper

    async def _static_mapping_rows(self, interface: str) -> list[Row]:
        rows = await self.scraper.scrape(
            ApplianceEndpoints.DHCP_SERVICE, DHCP_HEADER_ROW, params={"if": interface}
        )
        return list(rows)

    async def _host_override_rows(self) -> list[Row]:
        rows = await self.scraper.scrape(ApplianceEndpoints.DNS_OVERRIDES, DNS_HEADER_ROW)
        return list(rows)

    async def resolve_static_mapping(
        self, interface: str, mac: str
    ) -> Resolution[StaticMapping]:
        """
        Find the mapping for ``mac`` in the interface's table.

        Raises:
            RecordNotFoundError: If no row carries that MAC address.
        """
        rows = await self._static_mapping_rows(interface)
        position, row = _resolve(
            rows, mac_matches(mac), STATIC_MAPPING, f"{interface}/{mac}"
        )
        return Resolution(position, StaticMapping.from_row(interface, row))

    async def count_static_mappings(self, interface: str, mac: str) -> int:
        """Rows of the interface's table carrying ``mac``; duplicates included."""
        rows = await self._static_mapping_rows(interface)
        return sum(1 for row in rows if mac_matches(mac)(row))

    async def list_static_mappings(self, interface: str) -> list[Resolution[StaticMapping]]:
        """All mappings of an interface with their positions."""
        rows = await self._static_mapping_rows(interface)
        return [
            Resolution(position, StaticMapping.from_row(interface, row))
            for position, row in enumerate(rows)
            if not is_blank_row(row)
        ]

    async def resolve_host_override(
        self, key: tuple[str, str, str, str]
    ) -> Resolution[HostOverride]:
        """
        Find the override whose (type, host, domain, address) equals ``key``.

        Raises:
            RecordNotFoundError: If no row matches every field.
        """
        rows = await self._host_override_rows()
        position, row = _resolve(
            rows, host_override_matches(key), HOST_OVERRIDE, "/".join(key)
        )
        return Resolution(position, HostOverride.from_row(row))

    async def count_host_overrides(self, key: tuple[str, str, str, str]) -> int:
        rows = await self._host_override_rows()
        return sum(1 for row in rows if host_override_matches(key)(row))

    async def host_override_at(self, position: int) -> Resolution[HostOverride]:
        """
        The override currently rendered at ``position``.

        Raises:
            RecordNotFoundError: If the table has no data row there.
        """
        rows = await self._host_override_rows()
        if position < 0 or position >= len(rows) or is_blank_row(rows[position]):
            logger.debug("No record at position", record=HOST_OVERRIDE, position=position)
            raise RecordNotFoundError(HOST_OVERRIDE, f"position {position}")
        return Resolution(position, HostOverride.from_row(rows[position]))

    async def list_host_overrides(self) -> list[Resolution[HostOverride]]:
        """All host overrides with their positions."""
        rows = await self._host_override_rows()
        return [
            Resolution(position, HostOverride.from_row(row))
            for position, row in enumerate(rows)
            if not is_blank_row(row)
        ]
