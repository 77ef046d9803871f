"""Create, update and delete through the appliance's edit forms.

Protocol:
--------
A create or update is three HTTP exchanges:

1. Prime   GET the edit form (``id`` query parameter only when updating)
           and read the form's hidden anti-forgery input. Its name and value
           are generated per render and differ from the session token.
2. Submit  POST the record's fields plus the replayed hidden pair.
3. Apply   POST "Apply changes" to the table page, again with the hidden
           pair. Until this succeeds the change is staged but not active.

A delete posts ``act=del`` with the row position straight to the table page
and then applies; there is no form to prime.

State machine:
-------------
    PENDING -> PRIMED -> SUBMITTED -> APPLIED
    (delete)  PENDING -> SUBMITTED -> APPLIED
Any failure moves the mutation to FAILED and records the state it had
reached in ``failed_at``. The appliance reports validation problems only as
rendered HTML, so an error status is surfaced as an opaque
``MutationRejectedError``. A failed apply after a successful submit leaves
the change staged on the appliance; nothing is rolled back and nothing is
retried here.
"""

from dataclasses import dataclass, field
from enum import Enum

import httpx
import structlog
from bs4 import BeautifulSoup

from ..appliance.endpoints import ApplianceEndpoints
from ..appliance.session import ApplianceSession
from ..constants import NEW_RECORD_ID
from ..utils.exceptions import MutationRejectedError, PageStructureError

logger = structlog.get_logger(__name__)


class MutationState(str, Enum):
    """Progress of one mutating call."""

    PENDING = "pending"
    PRIMED = "primed"
    SUBMITTED = "submitted"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass(frozen=True)
class FormToken:
    """Hidden anti-forgery input of one form render. Opaque; replay verbatim."""

    name: str
    value: str

    def as_form(self) -> dict[str, str]:
        return {self.name: self.value}


@dataclass
class TableForm:
    """
    Where a record kind lives in the UI.

    Attributes:
        list_path: Table page; target of delete and apply.
        edit_path: Edit form page; target of prime and submit.
        scope: Query/form parameters selecting the table (e.g. the interface).
    """

    list_path: str
    edit_path: str
    scope: dict[str, str] = field(default_factory=dict)

    @classmethod
    def static_mappings(cls, interface: str) -> "TableForm":
        return cls(
            list_path=ApplianceEndpoints.DHCP_SERVICE,
            edit_path=ApplianceEndpoints.DHCP_EDIT,
            scope={"if": interface},
        )

    @classmethod
    def host_overrides(cls) -> "TableForm":
        return cls(
            list_path=ApplianceEndpoints.DNS_OVERRIDES,
            edit_path=ApplianceEndpoints.DNS_OVERRIDE_EDIT,
        )


def parse_form_token(page: BeautifulSoup, page_name: str = "edit form") -> FormToken:
    """
    Read the hidden anti-forgery input of the page's edit form.

    Raises:
        PageStructureError: If the form or a named hidden input is missing.
    """
    form = page.select_one("div.content-box form")
    if form is None:
        raise PageStructureError(page_name, "no edit form inside div.content-box")

    hidden = form.find("input", attrs={"type": "hidden", "name": True})
    if hidden is None:
        raise PageStructureError(page_name, "edit form has no hidden anti-forgery input")
    return FormToken(name=hidden["name"], value=hidden.get("value", ""))


class Mutation:
    """
    One create, update or delete against a table.

    Use ``create_or_update`` / ``delete`` for the full sequence; the step
    methods are public so callers and tests can drive and inspect each state.
    """

    def __init__(
        self,
        session: ApplianceSession,
        target: TableForm,
        fields: dict[str, str] | None = None,
        position: int = NEW_RECORD_ID,
    ):
        """
        Args:
            session: Authenticated session.
            target: Table and form pages of the record kind.
            fields: Form fields of the desired record (create/update only).
            position: Row position when updating or deleting, NEW_RECORD_ID to create.
        """
        self.session = session
        self.target = target
        self.fields = fields or {}
        self.position = position

        self.state = MutationState.PENDING
        self.failed_at: MutationState | None = None
        self.token: FormToken | None = None

    @property
    def is_update(self) -> bool:
        return self.position != NEW_RECORD_ID

    def _form_params(self) -> dict[str, str]:
        params = dict(self.target.scope)
        if self.is_update:
            params["id"] = str(self.position)
        return params

    def _expect(self, *states: MutationState) -> None:
        if self.state not in states:
            raise RuntimeError(
                f"mutation is {self.state.value}, expected {', '.join(s.value for s in states)}"
            )

    def _reject(
        self, stage: str, message: str, status_code: int | None = None
    ) -> MutationRejectedError:
        self.failed_at = self.state
        self.state = MutationState.FAILED
        logger.error(
            "Mutation rejected",
            stage=stage,
            page=self.target.list_path,
            position=self.position,
            reached=self.failed_at.value,
            status=status_code,
        )
        return MutationRejectedError(
            message, stage=stage, state=self.failed_at, status_code=status_code
        )

    def _mark_failed(self) -> None:
        if self.state is not MutationState.FAILED:
            self.failed_at = self.state
            self.state = MutationState.FAILED

    async def prime(self) -> FormToken:
        """Fetch the edit form and capture its hidden anti-forgery pair."""
        self._expect(MutationState.PENDING)
        try:
            page = await self.session.fetch_page(self.target.edit_path, params=self._form_params())
        except httpx.HTTPStatusError as e:
            raise self._reject(
                "prime",
                f"edit form {self.target.edit_path} unavailable",
                status_code=e.response.status_code,
            ) from e

        self.token = parse_form_token(page, page_name=self.target.edit_path)
        self.state = MutationState.PRIMED
        logger.debug(
            "Edit form primed",
            page=self.target.edit_path,
            position=self.position,
            form_field=self.token.name,
        )
        return self.token

    async def submit(self) -> None:
        """POST the record fields with the replayed hidden pair."""
        self._expect(MutationState.PRIMED)
        if self.token is None:
            raise RuntimeError("mutation is primed but holds no form token")

        data = {**self.token.as_form(), **self.fields}
        if self.is_update:
            data["id"] = str(self.position)

        response = await self.session.submit_form(
            self.target.edit_path, data, params=self._form_params()
        )
        if response.is_error:
            raise self._reject(
                "submit",
                f"appliance rejected the submitted record (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        self.state = MutationState.SUBMITTED
        logger.debug("Record submitted", page=self.target.edit_path, position=self.position)

    async def post_delete(self) -> None:
        """POST the delete action for the row at ``position``."""
        self._expect(MutationState.PENDING)
        if self.position < 0:
            raise ValueError(f"cannot delete row at position {self.position}")

        data = {**self.target.scope, "id": str(self.position), "act": "del"}
        response = await self.session.submit_form(
            self.target.list_path, data, params=self.target.scope or None
        )
        if response.is_error:
            raise self._reject(
                "delete",
                f"appliance rejected deleting row {self.position} (HTTP {response.status_code})",
                status_code=response.status_code,
            )
        self.state = MutationState.SUBMITTED
        logger.debug("Row deleted", page=self.target.list_path, position=self.position)

    async def apply(self) -> None:
        """Commit staged changes on the appliance."""
        self._expect(MutationState.SUBMITTED)

        data = {"apply": "Apply changes", **self.target.scope}
        if self.token is not None:
            data.update(self.token.as_form())

        response = await self.session.submit_form(
            self.target.list_path, data, params=self.target.scope or None
        )
        if response.is_error:
            raise self._reject(
                "apply",
                f"changes submitted but not applied (HTTP {response.status_code}); "
                f"the appliance holds them staged",
                status_code=response.status_code,
            )
        self.state = MutationState.APPLIED
        logger.info(
            "Changes applied",
            page=self.target.list_path,
            scope=self.target.scope or None,
            position=self.position,
        )

    async def run_create_or_update(self) -> "Mutation":
        try:
            await self.prime()
            await self.submit()
            await self.apply()
        except Exception:
            self._mark_failed()
            raise
        return self

    async def run_delete(self) -> "Mutation":
        try:
            await self.post_delete()
            await self.apply()
        except Exception:
            self._mark_failed()
            raise
        return self


async def create_or_update(
    session: ApplianceSession,
    target: TableForm,
    fields: dict[str, str],
    position: int = NEW_RECORD_ID,
) -> Mutation:
    """
    Prime, submit and apply one record.

    Args:
        session: Authenticated session.
        target: Table and form pages.
        fields: Form fields of the desired record.
        position: Row to edit, or NEW_RECORD_ID to create.

    Returns:
        The mutation, in state APPLIED.

    Raises:
        MutationRejectedError: If any step gets an error status.
        PageStructureError: If the edit form cannot be parsed.
        UnauthenticatedError: If the session is not authenticated.
    """
    return await Mutation(session, target, fields, position).run_create_or_update()


async def delete(session: ApplianceSession, target: TableForm, position: int) -> Mutation:
    """
    Delete the row at ``position`` and apply.

    Returns:
        The mutation, in state APPLIED.

    Raises:
        MutationRejectedError: If the delete or apply gets an error status.
        UnauthenticatedError: If the session is not authenticated.
    """
    return await Mutation(session, target, position=position).run_delete()
