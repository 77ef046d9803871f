"""Record models for the two configuration tables.

Desired-state records coming from callers are fully validated. Records
scraped from the appliance are built with ``from_row``, which skips
validation: the appliance is the source of truth and may render values
(an empty IP on a MAC-only reservation, say) a caller could not submit.
"""

import re
from dataclasses import dataclass
from ipaddress import ip_address
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationInfo, field_validator

from ..constants import (
    DEFAULT_HOSTNAME,
    DHCP_FIELD_HOSTNAME,
    DHCP_FIELD_IP,
    DHCP_FIELD_MAC,
    DNS_FIELD_DOMAIN,
    DNS_FIELD_HOST,
    DNS_FIELD_TYPE,
    DNS_FIELD_VALUE,
    LEASE_FIELD_END,
    LEASE_FIELD_HOSTNAME,
    LEASE_FIELD_INTERFACE,
    LEASE_FIELD_IP,
    LEASE_FIELD_MAC,
    LEASE_FIELD_START,
    LEASE_FIELD_STATUS,
    LEASE_FIELD_TYPE,
    MAC_INPUT_PATTERN,
)


def strip_whitespace(v: object) -> object:
    """Strip surrounding whitespace from strings, pass anything else through."""
    if isinstance(v, str):
        return v.strip()
    return v


def normalize_mac(value: str) -> str:
    """
    Validate a MAC address and return it lowercase and colon separated.

    Raises:
        ValueError: If the value is not six hex octets.
    """
    value = value.strip()
    if not MAC_INPUT_PATTERN.match(value):
        raise ValueError(f"Invalid MAC address format: {value}")
    return value.replace("-", ":").lower()


def _require_text(v: str, field_name: str) -> str:
    if not v:
        raise ValueError(f"{field_name} must not be empty")
    if re.search(r"\s", v):
        raise ValueError(f"{field_name} must not contain whitespace: {v!r}")
    return v


def _validate_ip(v: str) -> str:
    try:
        ip_address(v)
    except ValueError as e:
        raise ValueError(f"Invalid IP address '{v}': {e}") from e
    return v


class StaticMapping(BaseModel):
    """
    DHCP static address reservation.

    Natural key is (interface, mac). The row position inside the interface
    table is not part of the record: it is assigned at read time and carried
    by ``Resolution``.
    """

    model_config = ConfigDict(frozen=True)

    interface: Annotated[str, BeforeValidator(strip_whitespace)]
    mac: Annotated[str, BeforeValidator(strip_whitespace)]
    ip_address: Annotated[str, BeforeValidator(strip_whitespace)]
    hostname: Annotated[str | None, Field(default=None), BeforeValidator(strip_whitespace)]

    @field_validator("interface")
    @classmethod
    def validate_interface(cls, v: str) -> str:
        return _require_text(v, "interface")

    @field_validator("mac")
    @classmethod
    def validate_mac(cls, v: str) -> str:
        return normalize_mac(v)

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, v: str) -> str:
        return _validate_ip(v)

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return _require_text(v, "hostname")

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.interface, self.mac)

    def to_form(self) -> dict[str, str]:
        """Edit form fields (services_dhcp_edit.php) for this mapping."""
        hostname = self.hostname or ""
        return {
            "mac": self.mac,
            "cid": hostname,
            "ipaddr": self.ip_address,
            "hostname": hostname,
            "descr": hostname,
            "Submit": "Save",
            "if": self.interface,
        }

    @classmethod
    def from_row(cls, interface: str, row: dict[str, str]) -> "StaticMapping":
        """Build an observed mapping from a scraped table row."""
        return cls.model_construct(
            interface=interface,
            mac=row.get(DHCP_FIELD_MAC, "").lower(),
            ip_address=row.get(DHCP_FIELD_IP, ""),
            hostname=row.get(DHCP_FIELD_HOSTNAME, DEFAULT_HOSTNAME),
        )


class HostOverride(BaseModel):
    """
    Unbound DNS host override.

    The natural key is the full (type, host, domain, address) tuple.
    """

    model_config = ConfigDict(frozen=True)

    record_type: Annotated[str, BeforeValidator(strip_whitespace)]
    host: Annotated[str, BeforeValidator(strip_whitespace)]
    domain: Annotated[str, BeforeValidator(strip_whitespace)]
    ip_address: Annotated[str, BeforeValidator(strip_whitespace)]

    @field_validator("record_type")
    @classmethod
    def validate_record_type(cls, v: str) -> str:
        return _require_text(v, "record_type").upper()

    @field_validator("host", "domain")
    @classmethod
    def validate_names(cls, v: str, info: ValidationInfo) -> str:
        return _require_text(v, info.field_name)

    @field_validator("ip_address")
    @classmethod
    def validate_ip_address(cls, v: str) -> str:
        return _validate_ip(v)

    @property
    def natural_key(self) -> tuple[str, str, str, str]:
        return (self.record_type, self.host, self.domain, self.ip_address)

    def to_form(self) -> dict[str, str]:
        """Edit form fields (services_unbound_host_edit.php) for this override."""
        return {
            "host": self.host,
            "domain": self.domain,
            "rr": self.record_type,
            "ip": self.ip_address,
            "descr": "",
            "Submit": "Save",
        }

    @classmethod
    def from_row(cls, row: dict[str, str]) -> "HostOverride":
        """Build an observed override from a scraped table row."""
        return cls.model_construct(
            record_type=row.get(DNS_FIELD_TYPE, ""),
            host=row.get(DNS_FIELD_HOST, ""),
            domain=row.get(DNS_FIELD_DOMAIN, ""),
            ip_address=row.get(DNS_FIELD_VALUE, ""),
        )


class DHCPLease(BaseModel):
    """A row of the DHCP lease status page. Read only."""

    interface: str = ""
    ip_address: str = ""
    mac: str = ""
    hostname: str = DEFAULT_HOSTNAME
    start: str = ""
    end: str = ""
    status: str = ""
    lease_type: str = ""

    @classmethod
    def from_row(cls, row: dict[str, str]) -> "DHCPLease":
        return cls(
            interface=row.get(LEASE_FIELD_INTERFACE, ""),
            ip_address=row.get(LEASE_FIELD_IP, ""),
            mac=row.get(LEASE_FIELD_MAC, "").lower(),
            hostname=row.get(LEASE_FIELD_HOSTNAME, DEFAULT_HOSTNAME),
            start=row.get(LEASE_FIELD_START, ""),
            end=row.get(LEASE_FIELD_END, ""),
            status=row.get(LEASE_FIELD_STATUS, ""),
            lease_type=row.get(LEASE_FIELD_TYPE, ""),
        )


RecordT = TypeVar("RecordT")


@dataclass(frozen=True)
class Resolution(Generic[RecordT]):
    """
    A record observed in the live table together with its row position.

    Attributes:
        position: Zero-based offset from the first data row. Valid only until
            the table changes; never store it.
        record: The observed record.
    """

    position: int
    record: RecordT
