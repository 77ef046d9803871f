"""Composite resource identifiers handed to and received from callers.

The appliance has no durable record ID, so the orchestration layer tracks
each resource by a string built from its natural key:

    DHCP static mapping:  <interface>/<mac>
    DNS host override:    <type>/<host>/<domain>/<address>/<position>

The DNS form carries the row position seen at the last read, used only to
locate the row to edit on update.
"""

import re
from dataclasses import dataclass

from ..utils.exceptions import ResourceIDFormatError
from .records import HostOverride, StaticMapping, normalize_mac

_DHCP_ID = re.compile(r"^([^/]+)/([^/]+)$")
_DNS_ID = re.compile(r"^([^/]+)/([^/]+)/([^/]+)/([^/]+)/(\d+)$")

DHCP_ID_LAYOUT = "interface/mac"
DNS_ID_LAYOUT = "type/host/domain/ip/id"


@dataclass(frozen=True)
class StaticMappingID:
    """Identifier of a DHCP static mapping: ``interface/mac``."""

    interface: str
    mac: str

    @classmethod
    def parse(cls, resource_id: str) -> "StaticMappingID":
        """
        Parse ``interface/mac``.

        Raises:
            ResourceIDFormatError: If the layout or the MAC address is invalid.
        """
        match = _DHCP_ID.match(resource_id or "")
        if not match:
            raise ResourceIDFormatError(resource_id, DHCP_ID_LAYOUT)
        try:
            mac = normalize_mac(match.group(2))
        except ValueError as e:
            raise ResourceIDFormatError(resource_id, DHCP_ID_LAYOUT) from e
        return cls(interface=match.group(1), mac=mac)

    @classmethod
    def for_record(cls, record: StaticMapping) -> "StaticMappingID":
        return cls(interface=record.interface, mac=record.mac)

    def __str__(self) -> str:
        return f"{self.interface}/{self.mac}"


@dataclass(frozen=True)
class HostOverrideID:
    """Identifier of a DNS host override: ``type/host/domain/address/position``."""

    record_type: str
    host: str
    domain: str
    ip_address: str
    position: int

    @classmethod
    def parse(cls, resource_id: str) -> "HostOverrideID":
        """
        Parse ``type/host/domain/address/position``.

        Raises:
            ResourceIDFormatError: If the layout is invalid or the position is
                not a non-negative integer.
        """
        match = _DNS_ID.match(resource_id or "")
        if not match:
            raise ResourceIDFormatError(resource_id, DNS_ID_LAYOUT)
        record_type, host, domain, address, position = match.groups()
        return cls(
            record_type=record_type,
            host=host,
            domain=domain,
            ip_address=address,
            position=int(position),
        )

    @classmethod
    def for_record(cls, record: HostOverride, position: int) -> "HostOverrideID":
        return cls(
            record_type=record.record_type,
            host=record.host,
            domain=record.domain,
            ip_address=record.ip_address,
            position=position,
        )

    @property
    def natural_key(self) -> tuple[str, str, str, str]:
        return (self.record_type, self.host, self.domain, self.ip_address)

    def __str__(self) -> str:
        return (
            f"{self.record_type}/{self.host}/{self.domain}/{self.ip_address}/{self.position}"
        )
