"""Centralized admin page paths for the OPNsense web UI.

The appliance has no API for these records, so the "endpoints" are the PHP
pages that render the tables and edit forms. All paths are relative to the
appliance root address.

Usage:
    from opnsense_ui.appliance.endpoints import ApplianceEndpoints

    url = f"{root}/{ApplianceEndpoints.DHCP_SERVICE}"
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ApplianceEndpoints:
    """Admin page paths used by the provider."""

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------
    ROOT: str = ""

    # -------------------------------------------------------------------------
    # DHCP static mappings (scoped by ?if=<interface>)
    # -------------------------------------------------------------------------
    DHCP_SERVICE: str = "services_dhcp.php"
    DHCP_EDIT: str = "services_dhcp_edit.php"

    # -------------------------------------------------------------------------
    # DHCP leases (read only)
    # -------------------------------------------------------------------------
    DHCP_LEASES: str = "status_dhcp_leases.php"

    # -------------------------------------------------------------------------
    # Unbound DNS host overrides
    # -------------------------------------------------------------------------
    DNS_OVERRIDES: str = "services_unbound_overrides.php"
    DNS_OVERRIDE_EDIT: str = "services_unbound_host_edit.php"
