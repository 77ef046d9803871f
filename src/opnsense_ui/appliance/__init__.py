"""HTTP session and page paths for the OPNsense web UI."""

from .endpoints import ApplianceEndpoints
from .session import ApplianceSession, is_login_page, parse_html

__all__ = ["ApplianceEndpoints", "ApplianceSession", "is_login_page", "parse_html"]
