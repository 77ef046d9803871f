"""Data models for the OPNsense UI provider."""

from .records import DHCPLease, HostOverride, Resolution, StaticMapping, normalize_mac
from .resource_id import HostOverrideID, StaticMappingID

__all__ = [
    # Records
    "StaticMapping",
    "HostOverride",
    "DHCPLease",
    "Resolution",
    "normalize_mac",
    # Identifiers
    "StaticMappingID",
    "HostOverrideID",
]
