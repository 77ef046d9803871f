"""Authenticated session against the OPNsense web UI.

Authentication:
--------------
The admin UI has no API for static mappings or host overrides, so the
provider logs in like a browser does:
1. GET / without credentials. The response sets the PHP session cookie and
   embeds the session's anti-forgery token in an inline script.
2. POST / with the login form fields and the token in the X-CSRFToken
   header. The token header stays on the client for every later request.

A session is authenticated exactly when a token has been captured. It is
never refreshed automatically: when the appliance answers with the login
page again, the session has expired and the caller must re-authenticate.

Transport:
---------
One ``httpx.AsyncClient`` per session keeps the cookie jar and the token
header. Redirects are followed because the UI answers form posts with a
redirect to the table page. Network errors propagate unchanged.
"""

import time
from typing import Any

import httpx
import structlog
from bs4 import BeautifulSoup

from ..config import ApplianceConfig
from ..constants import CSRF_HEADER, CSRF_TOKEN_PATTERN, LOGIN_FORM_FIELD
from ..observability.logger import log_verbose
from ..observability.metrics import get_global_collector
from ..utils.exceptions import AuthError, UnauthenticatedError
from .endpoints import ApplianceEndpoints

logger = structlog.get_logger(__name__)


def parse_html(text: str) -> BeautifulSoup:
    """Parse an admin page."""
    return BeautifulSoup(text, "html.parser")


def is_login_page(page: BeautifulSoup) -> bool:
    """True when the page renders the login form."""
    return page.find("input", attrs={"name": LOGIN_FORM_FIELD}) is not None


class ApplianceSession:
    """
    One authenticated connection to an appliance.

    Features:
    - Browser-style login with anti-forgery token capture
    - Authenticated/unauthenticated state gate on every request
    - Page fetch with expired-session detection
    - Form submission returning the raw response for the caller to judge
    """

    def __init__(
        self,
        config: ApplianceConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the session. No request is made until ``authenticate``.

        Args:
            config: Appliance connection details.
            transport: Optional httpx transport, used by tests.
        """
        self.config = config
        self.root_uri = config.root_uri

        # Session-level anti-forgery token; None means unauthenticated
        self.csrf_token: str | None = None

        self._client: httpx.AsyncClient | None = None
        self._transport = transport

        if config.allow_unverified_tls:
            logger.warning(
                "TLS certificate verification disabled for appliance", url=self.root_uri
            )

        self.collector = get_global_collector()

    async def __aenter__(self) -> "ApplianceSession":
        """Context manager entry."""
        await self.authenticate()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client and forget the token."""
        if self._client:
            await self._client.aclose()
            self._client = None
        self.csrf_token = None

    @property
    def client(self) -> httpx.AsyncClient:
        """HTTP client with lazy initialization."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=not self.config.allow_unverified_tls,
                timeout=self.config.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    @property
    def is_authenticated(self) -> bool:
        """Whether an anti-forgery token has been captured."""
        return bool(self.csrf_token)

    def require_authenticated(self) -> None:
        """
        Fail fast when no token is held.

        Raises:
            UnauthenticatedError: If ``authenticate`` has not succeeded.
        """
        if not self.is_authenticated:
            raise UnauthenticatedError(
                f"can't establish a session to the appliance at {self.root_uri}"
            )

    def url(self, path: str) -> str:
        """Absolute URL of an admin page."""
        return f"{self.root_uri}/{path.lstrip('/')}"

    async def authenticate(self) -> None:
        """
        Log into the appliance and capture the anti-forgery token.

        Raises:
            AuthError: If the token cannot be found, the login request fails,
                or the appliance renders the login form again.
        """
        root = self.url(ApplianceEndpoints.ROOT)
        logger.info("Authenticating with appliance", url=self.root_uri)

        try:
            response = await self._send("GET", root)
            match = CSRF_TOKEN_PATTERN.search(response.text)
            if not match:
                logger.error("Anti-forgery token not found", status=response.status_code)
                raise AuthError(
                    "anti-forgery token not found on the login page",
                    status_code=response.status_code,
                )
            token = match.group(1)

            self.client.headers[CSRF_HEADER] = token
            response = await self._send(
                "POST",
                root,
                data={
                    "login": "Login",
                    "usernamefld": self.config.username,
                    "passwordfld": self.config.password,
                },
            )
        except httpx.HTTPError as e:
            self.client.headers.pop(CSRF_HEADER, None)
            logger.error("Authentication connection error", error=str(e))
            raise AuthError(f"Connection error during authentication: {e}") from e

        if response.is_error:
            self.client.headers.pop(CSRF_HEADER, None)
            logger.error("Authentication failed", status=response.status_code)
            raise AuthError(
                f"Authentication failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if is_login_page(parse_html(response.text)):
            self.client.headers.pop(CSRF_HEADER, None)
            logger.error("Authentication rejected", user=self.config.username)
            raise AuthError("Authentication failed: invalid credentials")

        self.csrf_token = token
        logger.info("Authentication successful", user=self.config.username)

    async def fetch_page(self, path: str, params: dict[str, Any] | None = None) -> BeautifulSoup:
        """
        GET an admin page and parse it.

        Args:
            path: Page path relative to the root address.
            params: Query parameters.

        Returns:
            Parsed page.

        Raises:
            UnauthenticatedError: If no token is held or the session expired.
            httpx.HTTPStatusError: If the appliance answers with an error status.
        """
        self.require_authenticated()
        response = await self._send("GET", self.url(path), params=params)
        response.raise_for_status()

        page = parse_html(response.text)
        if is_login_page(page):
            logger.warning("Appliance returned the login page", path=path)
            raise UnauthenticatedError(
                "session to the appliance expired, re-authentication required"
            )
        return page

    async def submit_form(
        self,
        path: str,
        data: dict[str, str],
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        POST a form-encoded body to an admin page.

        The response is returned as-is; judging success is up to the caller.

        Raises:
            UnauthenticatedError: If no token is held.
        """
        self.require_authenticated()
        return await self._send("POST", self.url(path), params=params, data=data)

    async def _send(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        start = time.perf_counter()
        response = await self.client.request(method, url, params=params, data=data)
        duration = (time.perf_counter() - start) * 1000

        page = httpx.URL(url).path
        self.collector.count_request(method, page, response.status_code)
        self.collector.record_latency(method, duration)
        log_verbose(
            logger,
            "Appliance request",
            method=method,
            page=page,
            params=params,
            status=response.status_code,
            duration_ms=round(duration, 1),
        )
        return response
