"""OPNsense UI provider - DHCP static mappings and DNS host overrides over the admin web UI."""

from .config import ApplianceConfig, ProviderConfig
from .provider import ApplianceProvider

__version__ = "0.1.0"
__all__ = ["ApplianceConfig", "ApplianceProvider", "ProviderConfig"]
