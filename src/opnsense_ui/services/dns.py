"""Unbound DNS host override service.

Overrides are identified by their full (type, host, domain, address) tuple,
so changing the address of an override changes its natural key. Updates
therefore locate the row by the position recorded at the last read and
check that the row still holds the override the caller means.
"""

import structlog

from ..appliance.session import ApplianceSession
from ..core import mutation
from ..core.mutation import MutationState, TableForm
from ..core.resolver import HOST_OVERRIDE, IdentityResolver
from ..core.scraper import TableScraper
from ..models.records import HostOverride, Resolution
from ..utils.exceptions import (
    MutationRejectedError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
)

logger = structlog.get_logger(__name__)

HostKey = tuple[str, str, str, str]


class DNSService:
    """CRUD for Unbound host overrides."""

    def __init__(
        self,
        session: ApplianceSession,
        scraper: TableScraper | None = None,
        resolver: IdentityResolver | None = None,
    ):
        self.session = session
        self.scraper = scraper or TableScraper(session)
        self.resolver = resolver or IdentityResolver(self.scraper)

    async def create(self, override: HostOverride) -> Resolution[HostOverride]:
        """
        Add a new host override.

        Returns:
            The override as read back, with its position.

        Raises:
            RecordAlreadyExistsError: If an identical override exists.
            MutationRejectedError: If the appliance did not accept it.
        """
        key = override.natural_key
        try:
            existing = await self.resolver.resolve_host_override(key)
        except RecordNotFoundError:
            pass
        else:
            raise RecordAlreadyExistsError(
                HOST_OVERRIDE, "/".join(key), position=existing.position
            )

        await mutation.create_or_update(
            self.session, TableForm.host_overrides(), override.to_form()
        )

        created = await self._verify(override)
        logger.info(
            "Host override created",
            host=override.host,
            domain=override.domain,
            type=override.record_type,
            ip=override.ip_address,
            position=created.position,
        )
        return created

    async def read(self, key: HostKey) -> Resolution[HostOverride]:
        """
        Current state of the override matching ``key``.

        Raises:
            RecordNotFoundError: If no row matches every field.
        """
        return await self.resolver.resolve_host_override(key)

    async def update(
        self,
        position: int,
        override: HostOverride,
        expected: HostKey | None = None,
    ) -> Resolution[HostOverride]:
        """
        Rewrite the override at ``position`` with ``override``.

        Args:
            position: Row position from the caller's handle.
            override: Desired state.
            expected: Natural key the caller last saw at ``position``. When
                the row there holds something else, the row is looked up by
                this key instead.

        Raises:
            RecordNotFoundError: If the row cannot be found.
            MutationRejectedError: If the appliance did not accept the change.
        """
        current = await self.resolver.host_override_at(position)
        if expected is not None and current.record.natural_key != expected:
            logger.warning(
                "Host override moved, resolving by key",
                position=position,
                expected="/".join(expected),
                found="/".join(current.record.natural_key),
            )
            current = await self.resolver.resolve_host_override(expected)

        await mutation.create_or_update(
            self.session,
            TableForm.host_overrides(),
            override.to_form(),
            position=current.position,
        )

        updated = await self._verify(override)
        logger.info(
            "Host override updated",
            host=override.host,
            domain=override.domain,
            ip=override.ip_address,
            position=updated.position,
        )
        return updated

    async def delete(self, key: HostKey) -> None:
        """
        Remove the override matching ``key``.

        Raises:
            RecordNotFoundError: If no row matches.
            MutationRejectedError: If as many rows match ``key`` afterwards as
                before.
        """
        current = await self.resolver.resolve_host_override(key)
        before = await self.resolver.count_host_overrides(key)

        await mutation.delete(self.session, TableForm.host_overrides(), current.position)

        remaining = await self.resolver.count_host_overrides(key)
        if remaining < before:
            logger.info(
                "Host override deleted",
                key="/".join(key),
                position=current.position,
                remaining=remaining,
            )
            return
        raise MutationRejectedError(
            f"host override {'/'.join(key)} still present after delete",
            stage="verify",
            state=MutationState.APPLIED,
        )

    async def list_host_overrides(self) -> list[Resolution[HostOverride]]:
        """All host overrides with their positions."""
        return await self.resolver.list_host_overrides()

    async def _verify(self, override: HostOverride) -> Resolution[HostOverride]:
        try:
            return await self.resolver.resolve_host_override(override.natural_key)
        except RecordNotFoundError as e:
            raise MutationRejectedError(
                f"host override {'/'.join(override.natural_key)} not present after apply",
                stage="verify",
                state=MutationState.APPLIED,
            ) from e
