"""Constants for the OPNsense UI provider.

Column labels are the header texts rendered by the appliance. Lookups go
through the discovered field schema by label, so a label that moves to a
different column keeps working.
"""

import re

# -----------------------------------------------------------------------------
# Table Layout
# -----------------------------------------------------------------------------

# CSS class attribute shared by the configuration tables on the admin pages
TABLE_CLASS: str = "table table-striped"

# Zero-based index of the header row within the matching table.
# The row before it on the service pages is a section title.
DHCP_HEADER_ROW: int = 1
DNS_HEADER_ROW: int = 1
LEASES_HEADER_ROW: int = 0

# Sentinel positional ID meaning "no existing row", i.e. create
NEW_RECORD_ID: int = -1

# Marker the appliance displays for an empty hostname
DEFAULT_HOSTNAME: str = "default"


# -----------------------------------------------------------------------------
# Column Labels
# -----------------------------------------------------------------------------

# DHCP static mappings (services_dhcp.php)
DHCP_FIELD_MAC: str = "MAC address"
DHCP_FIELD_IP: str = "IP address"
DHCP_FIELD_HOSTNAME: str = "Hostname"
DHCP_FIELD_DESCRIPTION: str = "Description"

# DHCP leases (status_dhcp_leases.php)
LEASE_FIELD_INTERFACE: str = "Interface"
LEASE_FIELD_IP: str = "IP address"
LEASE_FIELD_MAC: str = "MAC address"
LEASE_FIELD_HOSTNAME: str = "Hostname"
LEASE_FIELD_START: str = "Start"
LEASE_FIELD_END: str = "End"
LEASE_FIELD_STATUS: str = "Status"
LEASE_FIELD_TYPE: str = "Lease type"

# DNS host overrides (services_unbound_overrides.php)
DNS_FIELD_HOST: str = "Host"
DNS_FIELD_DOMAIN: str = "Domain"
DNS_FIELD_TYPE: str = "Type"
DNS_FIELD_VALUE: str = "Value"
DNS_FIELD_DESCRIPTION: str = "Description"


# -----------------------------------------------------------------------------
# Patterns
# -----------------------------------------------------------------------------

# Session-level anti-forgery token embedded in an inline script:
#   xhr.setRequestHeader( "X-CSRFToken", "abc123" );
CSRF_TOKEN_PATTERN: re.Pattern[str] = re.compile(r'"X-CSRFToken", "(.*)" \);')

# HTTP header carrying the session-level token
CSRF_HEADER: str = "X-CSRFToken"

# MAC address as rendered in table cells
MAC_PATTERN: re.Pattern[str] = re.compile(r"[0-9a-f]{2}(?::[0-9a-f]{2}){5}", re.IGNORECASE)

# MAC address accepted from callers (colon or dash separated)
MAC_INPUT_PATTERN: re.Pattern[str] = re.compile(r"^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$")

# Name of the password input on the login form, used to detect a login page
LOGIN_FORM_FIELD: str = "passwordfld"
