"""Pytest configuration and shared fixtures.

This module provides reusable fixtures for testing the OPNsense UI provider.
Fixtures are organized by category:
- Config fixtures: Appliance connection settings
- Fake appliance: A stateful respx-backed stand-in for the admin web UI
- Session fixtures: Authenticated sessions and providers
- Data fixtures: Sample records
"""

import itertools
import logging
from collections.abc import AsyncIterator, Iterator
from urllib.parse import parse_qsl

import httpx
import pytest
import respx
import structlog

from src.opnsense_ui.appliance.session import ApplianceSession
from src.opnsense_ui.config import ApplianceConfig
from src.opnsense_ui.models.records import HostOverride, StaticMapping
from src.opnsense_ui.provider import ApplianceProvider
from tests.html_pages import (
    dashboard_page,
    dhcp_page,
    dns_page,
    edit_form_page,
    leases_page,
    login_page,
)

BASE_URL = "https://fw.test"
USERNAME = "root"
PASSWORD = "opnsense"
SESSION_TOKEN = "sess-token-123"


# =============================================================================
# Fake Appliance
# =============================================================================


def _html(text: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=text, headers={"content-type": "text/html"})


def _form(request: httpx.Request) -> dict[str, str]:
    return dict(parse_qsl(request.content.decode(), keep_blank_values=True))


class FakeAppliance:
    """
    In-memory admin UI.

    Holds the DHCP static mappings per interface, the DNS host overrides and
    the lease list, and answers the provider's page fetches and form posts
    the way the appliance does: tables are rendered from the saved state,
    submissions are checked against the hidden input of the last form
    render, and every apply is recorded.

    Failure switches:
        fail_submit: answer edit form posts with HTTP 500
        fail_apply: answer "Apply changes" posts with HTTP 500
        fail_delete: answer delete posts with HTTP 500
        ignore_submit: accept edit form posts but change nothing
        ignore_delete: accept delete posts but change nothing
    """

    def __init__(self, username: str = USERNAME, password: str = PASSWORD):
        self.username = username
        self.password = password
        self.session_token = SESSION_TOKEN
        self.logged_in = False

        self.static_mappings: dict[str, list[dict[str, str]]] = {"opt3": []}
        self.host_overrides: list[dict[str, str]] = []
        self.leases: list[dict[str, str]] = []

        self.fail_submit = False
        self.fail_apply = False
        self.fail_delete = False
        self.ignore_submit = False
        self.ignore_delete = False

        self.applied: list[str] = []
        self.submissions: list[dict[str, str]] = []
        self.form_token: tuple[str, str] | None = None
        self._renders = itertools.count(1)

    # -------------------------------------------------------------------------
    # Wiring
    # -------------------------------------------------------------------------

    def install(self, router: respx.MockRouter) -> None:
        router.route(method="GET", host="fw.test", path="/").mock(side_effect=self._get_root)
        router.route(method="POST", host="fw.test", path="/").mock(side_effect=self._post_root)
        router.route(method="GET", host="fw.test", path="/services_dhcp.php").mock(
            side_effect=self._get_dhcp
        )
        router.route(method="POST", host="fw.test", path="/services_dhcp.php").mock(
            side_effect=self._post_dhcp
        )
        router.route(method="GET", host="fw.test", path="/services_dhcp_edit.php").mock(
            side_effect=self._get_edit_form
        )
        router.route(method="POST", host="fw.test", path="/services_dhcp_edit.php").mock(
            side_effect=self._post_dhcp_edit
        )
        router.route(method="GET", host="fw.test", path="/services_unbound_overrides.php").mock(
            side_effect=self._get_dns
        )
        router.route(method="POST", host="fw.test", path="/services_unbound_overrides.php").mock(
            side_effect=self._post_dns
        )
        router.route(method="GET", host="fw.test", path="/services_unbound_host_edit.php").mock(
            side_effect=self._get_edit_form
        )
        router.route(method="POST", host="fw.test", path="/services_unbound_host_edit.php").mock(
            side_effect=self._post_dns_edit
        )
        router.route(method="GET", host="fw.test", path="/status_dhcp_leases.php").mock(
            side_effect=self._get_leases
        )

    def expire_session(self) -> None:
        self.logged_in = False

    def add_static_mapping(
        self, interface: str, mac: str, ip: str, hostname: str = ""
    ) -> None:
        self.static_mappings.setdefault(interface, []).append(
            {"mac": mac, "ip": ip, "hostname": hostname, "descr": hostname}
        )

    def add_host_override(self, record_type: str, host: str, domain: str, ip: str) -> None:
        self.host_overrides.append({"type": record_type, "host": host, "domain": domain, "ip": ip})

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _authorized(self, request: httpx.Request) -> bool:
        return self.logged_in and request.headers.get("X-CSRFToken") == self.session_token

    def _get_root(self, request: httpx.Request) -> httpx.Response:
        return _html(login_page(self.session_token))

    def _post_root(self, request: httpx.Request) -> httpx.Response:
        form = _form(request)
        if (
            request.headers.get("X-CSRFToken") == self.session_token
            and form.get("login") == "Login"
            and form.get("usernamefld") == self.username
            and form.get("passwordfld") == self.password
        ):
            self.logged_in = True
            return _html(dashboard_page(self.session_token))
        return _html(login_page(self.session_token))

    def _new_form_token(self) -> tuple[str, str]:
        n = next(self._renders)
        self.form_token = (f"fld{n:04x}", f"val-{n}")
        return self.form_token

    def _token_ok(self, form: dict[str, str]) -> bool:
        return self.form_token is not None and form.get(self.form_token[0]) == self.form_token[1]

    def _get_edit_form(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return _html(login_page(self.session_token))
        return _html(edit_form_page(self._new_form_token()))

    def _get_dhcp(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return _html(login_page(self.session_token))
        interface = request.url.params.get("if", "lan")
        return _html(dhcp_page(interface, self.static_mappings.get(interface, [])))

    def _get_dns(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return _html(login_page(self.session_token))
        return _html(dns_page(self.host_overrides))

    def _get_leases(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return _html(login_page(self.session_token))
        return _html(leases_page(self.leases))

    def _post_dhcp_edit(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return _html(login_page(self.session_token))
        form = _form(request)
        self.submissions.append(form)
        if self.fail_submit:
            return _html("<html><body>Internal error</body></html>", 500)
        if not self._token_ok(form):
            return _html("<html><body>CSRF check failed</body></html>", 403)

        interface = request.url.params.get("if", form.get("if", "lan"))
        mappings = self.static_mappings.setdefault(interface, [])
        if not self.ignore_submit:
            entry = {
                "mac": form["mac"],
                "ip": form["ipaddr"],
                "hostname": form.get("hostname", ""),
                "descr": form.get("descr", ""),
            }
            if "id" in form:
                mappings[int(form["id"])] = entry
            else:
                mappings.append(entry)
        return _html(dhcp_page(interface, mappings))

    def _post_dhcp(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return _html(login_page(self.session_token))
        form = _form(request)
        interface = request.url.params.get("if", form.get("if", "lan"))
        mappings = self.static_mappings.setdefault(interface, [])

        if form.get("act") == "del":
            if self.fail_delete:
                return _html("<html><body>Internal error</body></html>", 500)
            if not self.ignore_delete:
                del mappings[int(form["id"])]
        elif form.get("apply") == "Apply changes":
            if self.fail_apply:
                return _html("<html><body>Internal error</body></html>", 500)
            self.applied.append(f"dhcp:{interface}")
        return _html(dhcp_page(interface, mappings))

    def _post_dns_edit(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return _html(login_page(self.session_token))
        form = _form(request)
        self.submissions.append(form)
        if self.fail_submit:
            return _html("<html><body>Internal error</body></html>", 500)
        if not self._token_ok(form):
            return _html("<html><body>CSRF check failed</body></html>", 403)

        if not self.ignore_submit:
            entry = {
                "type": form["rr"],
                "host": form["host"],
                "domain": form["domain"],
                "ip": form["ip"],
                "descr": form.get("descr", ""),
            }
            if "id" in form:
                self.host_overrides[int(form["id"])] = entry
            else:
                self.host_overrides.append(entry)
        return _html(dns_page(self.host_overrides))

    def _post_dns(self, request: httpx.Request) -> httpx.Response:
        if not self._authorized(request):
            return _html(login_page(self.session_token))
        form = _form(request)

        if form.get("act") == "del":
            if self.fail_delete:
                return _html("<html><body>Internal error</body></html>", 500)
            if not self.ignore_delete:
                del self.host_overrides[int(form["id"])]
        elif form.get("apply") == "Apply changes":
            if self.fail_apply:
                return _html("<html><body>Internal error</body></html>", 500)
            self.applied.append("dns")
        return _html(dns_page(self.host_overrides))


def accept_login(router: respx.MockRouter, session_token: str = "tok") -> None:
    """Route a successful login on a standalone router."""
    router.get("/").respond(200, text=login_page(session_token))
    router.post("/").respond(200, text=dashboard_page(session_token))


# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def appliance_config() -> ApplianceConfig:
    """Connection settings pointing at the fake appliance."""
    return ApplianceConfig(base_url=BASE_URL, username=USERNAME, password=PASSWORD)


# =============================================================================
# Logging Fixtures
# =============================================================================


@pytest.fixture
def log_capture(capsys: pytest.CaptureFixture[str]) -> Iterator[pytest.CaptureFixture[str]]:
    """
    Capture what a real structlog configuration writes.

    Tests call ``configure_logging`` themselves; the handlers bound to the
    captured stream are dropped afterwards.
    """
    yield capsys
    structlog.reset_defaults()
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)


# =============================================================================
# Fake Appliance Fixtures
# =============================================================================


@pytest.fixture
def fake_appliance() -> Iterator[FakeAppliance]:
    """A fresh fake appliance with every HTTP call routed to it."""
    appliance = FakeAppliance()
    with respx.mock(assert_all_called=False) as router:
        appliance.install(router)
        yield appliance


@pytest.fixture
async def session(
    appliance_config: ApplianceConfig, fake_appliance: FakeAppliance
) -> AsyncIterator[ApplianceSession]:
    """Authenticated session against the fake appliance."""
    s = ApplianceSession(appliance_config)
    await s.authenticate()
    yield s
    await s.close()


@pytest.fixture
async def provider(
    appliance_config: ApplianceConfig, fake_appliance: FakeAppliance
) -> AsyncIterator[ApplianceProvider]:
    """Configured provider against the fake appliance."""
    p = await ApplianceProvider.configure(appliance_config)
    yield p
    await p.close()


# =============================================================================
# Data Fixtures
# =============================================================================


@pytest.fixture
def terraform_mapping() -> StaticMapping:
    return StaticMapping(
        interface="opt3", mac="aa:bb:cc:dd:ee:ff", ip_address="10.69.0.99", hostname="terraform"
    )


@pytest.fixture
def printer_override() -> HostOverride:
    return HostOverride(
        record_type="A", host="printer", domain="lan.example.com", ip_address="10.69.0.10"
    )
