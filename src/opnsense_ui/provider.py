"""Reconciliation entry points for an orchestration layer.

``ApplianceProvider`` is what a declarative tool drives: it takes desired
records and composite resource identifiers, and answers with the identifier
and the record as the appliance now shows it.

Concurrency:
-----------
The appliance's edit forms are stateful (a primed form token belongs to one
render), so every verb holds the provider's lock for the appliance from the
first resolve to the final read-back. Calls through one provider are
strictly serial; nothing here is retried or rolled back.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog

from .appliance.session import ApplianceSession
from .config import ApplianceConfig
from .core.resolver import HOST_OVERRIDE, STATIC_MAPPING, IdentityResolver
from .core.scraper import TableScraper
from .models.records import DHCPLease, HostOverride, Resolution, StaticMapping
from .models.resource_id import HostOverrideID, StaticMappingID
from .observability.logger import LogContext
from .observability.metrics import get_global_collector
from .services.dhcp import DHCPService
from .services.dns import DNSService
from .utils.exceptions import AuthError
from .utils.locking import KeyedLock

logger = structlog.get_logger(__name__)


class ApplianceProvider:
    """
    One configured appliance and the verbs to reconcile its records.

    Features:
    - Single authenticated session shared by both record services
    - Serialized calls under a lock keyed by the appliance root address
    - Composite resource identifiers in and out
    - Reconciliation outcome metrics per record kind and verb
    """

    def __init__(
        self,
        config: ApplianceConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Build the provider without contacting the appliance.

        Use ``configure`` to get an authenticated provider.

        Args:
            config: Appliance connection details.
            transport: Optional httpx transport, used by tests.
        """
        self.config = config
        self.session = ApplianceSession(config, transport=transport)

        scraper = TableScraper(self.session)
        resolver = IdentityResolver(scraper)
        self.dhcp = DHCPService(self.session, scraper, resolver)
        self.dns = DNSService(self.session, scraper, resolver)

        self._lock = KeyedLock()
        self.collector = get_global_collector()

    @classmethod
    async def configure(
        cls,
        config: ApplianceConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ApplianceProvider":
        """
        Validate the configuration and authenticate once.

        Raises:
            ValueError: If the configuration is incomplete.
            AuthError: If the appliance cannot be logged into.
        """
        config.validate()
        provider = cls(config, transport=transport)
        try:
            await provider.session.authenticate()
        except AuthError as e:
            await provider.close()
            raise AuthError(
                f"Failed to connect to {config.root_uri}: {e}", status_code=e.status_code
            ) from e
        return provider

    async def __aenter__(self) -> "ApplianceProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying session."""
        await self.session.close()

    @asynccontextmanager
    async def _reconcile(self, record_type: str, verb: str, resource: str) -> AsyncIterator[None]:
        async with self._lock(self.config.root_uri):
            with LogContext(record=record_type, verb=verb, resource=resource):
                try:
                    yield
                except Exception as e:
                    self.collector.count_reconciliation(record_type, verb, type(e).__name__)
                    raise
                self.collector.count_reconciliation(record_type, verb, "success")

    # -------------------------------------------------------------------------
    # DHCP static mappings
    # -------------------------------------------------------------------------

    async def create_static_mapping(self, mapping: StaticMapping) -> tuple[str, StaticMapping]:
        """
        Create a mapping and read it back.

        Returns:
            (resource ID ``interface/mac``, observed mapping)
        """
        resource_id = str(StaticMappingID.for_record(mapping))
        async with self._reconcile(STATIC_MAPPING, "create", resource_id):
            created = await self.dhcp.create(mapping)
        return resource_id, created.record

    async def read_static_mapping(self, resource_id: str) -> tuple[str, StaticMapping]:
        """
        Current state of the mapping named by ``resource_id``.

        Raises:
            ResourceIDFormatError: If the identifier is malformed.
            RecordNotFoundError: If the mapping no longer exists.
        """
        handle = StaticMappingID.parse(resource_id)
        async with self._reconcile(STATIC_MAPPING, "read", resource_id):
            current = await self.dhcp.read(handle.interface, handle.mac)
        return str(handle), current.record

    async def update_static_mapping(
        self, resource_id: str, mapping: StaticMapping
    ) -> tuple[str, StaticMapping]:
        """
        Rewrite the mapping named by ``resource_id`` to ``mapping``.

        The interface cannot change; moving a mapping to another interface is
        a delete and a create.

        Raises:
            ResourceIDFormatError: If the identifier is malformed.
            ValueError: If ``mapping`` belongs to another interface.
            RecordNotFoundError: If the mapping no longer exists.
        """
        handle = StaticMappingID.parse(resource_id)
        if mapping.interface != handle.interface:
            raise ValueError(
                f"cannot move static mapping {handle} to interface {mapping.interface}"
            )

        async with self._reconcile(STATIC_MAPPING, "update", resource_id):
            updated = await self.dhcp.update(mapping, current_mac=handle.mac)
        return str(StaticMappingID.for_record(updated.record)), updated.record

    async def delete_static_mapping(self, resource_id: str) -> None:
        """
        Delete the mapping named by ``resource_id``.

        Raises:
            ResourceIDFormatError: If the identifier is malformed.
            RecordNotFoundError: If the mapping no longer exists.
        """
        handle = StaticMappingID.parse(resource_id)
        async with self._reconcile(STATIC_MAPPING, "delete", resource_id):
            await self.dhcp.delete(handle.interface, handle.mac)

    async def list_static_mappings(self, interface: str) -> list[Resolution[StaticMapping]]:
        async with self._reconcile(STATIC_MAPPING, "list", interface):
            return await self.dhcp.list_static_mappings(interface)

    async def list_leases(self) -> list[DHCPLease]:
        async with self._reconcile("DHCP lease", "list", "*"):
            return await self.dhcp.list_leases()

    # -------------------------------------------------------------------------
    # DNS host overrides
    # -------------------------------------------------------------------------

    async def create_host_override(self, override: HostOverride) -> tuple[str, HostOverride]:
        """
        Create an override and read it back.

        Returns:
            (resource ID ``type/host/domain/ip/position``, observed override)
        """
        async with self._reconcile(HOST_OVERRIDE, "create", "/".join(override.natural_key)):
            created = await self.dns.create(override)
        return str(HostOverrideID.for_record(created.record, created.position)), created.record

    async def read_host_override(self, resource_id: str) -> tuple[str, HostOverride]:
        """
        Current state of the override named by ``resource_id``.

        The returned identifier carries the override's current position,
        which may differ from the one passed in.

        Raises:
            ResourceIDFormatError: If the identifier is malformed.
            RecordNotFoundError: If the override no longer exists.
        """
        handle = HostOverrideID.parse(resource_id)
        async with self._reconcile(HOST_OVERRIDE, "read", resource_id):
            current = await self.dns.read(handle.natural_key)
        return str(HostOverrideID.for_record(current.record, current.position)), current.record

    async def update_host_override(
        self, resource_id: str, ip_address: str
    ) -> tuple[str, HostOverride]:
        """
        Point the override named by ``resource_id`` at ``ip_address``.

        Type, host and domain are kept from the identifier.

        Raises:
            ResourceIDFormatError: If the identifier is malformed.
            ValueError: If ``ip_address`` is not a valid address.
            RecordNotFoundError: If the override no longer exists.
        """
        handle = HostOverrideID.parse(resource_id)
        desired = HostOverride(
            record_type=handle.record_type,
            host=handle.host,
            domain=handle.domain,
            ip_address=ip_address,
        )

        async with self._reconcile(HOST_OVERRIDE, "update", resource_id):
            updated = await self.dns.update(
                handle.position, desired, expected=handle.natural_key
            )
        return str(HostOverrideID.for_record(updated.record, updated.position)), updated.record

    async def delete_host_override(self, resource_id: str) -> None:
        """
        Delete the override named by ``resource_id``.

        Raises:
            ResourceIDFormatError: If the identifier is malformed.
            RecordNotFoundError: If the override no longer exists.
        """
        handle = HostOverrideID.parse(resource_id)
        async with self._reconcile(HOST_OVERRIDE, "delete", resource_id):
            await self.dns.delete(handle.natural_key)

    async def list_host_overrides(self) -> list[Resolution[HostOverride]]:
        async with self._reconcile(HOST_OVERRIDE, "list", "*"):
            return await self.dns.list_host_overrides()
