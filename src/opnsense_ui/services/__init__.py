"""Record services for the two configuration tables."""

from .dhcp import DHCPService
from .dns import DNSService

__all__ = ["DHCPService", "DNSService"]
