"""Custom exceptions for the OPNsense UI provider.

Exception Hierarchy:
-------------------
ApplianceError (base)
├── AuthError                   # Login failed or no anti-forgery token found
├── UnauthenticatedError        # Operation attempted without a live session
├── RecordNotFoundError         # Natural key or position absent from the table
├── RecordAlreadyExistsError    # Create collided with an existing record
├── MutationRejectedError       # Submit, apply or read-back failed
├── ResourceIDFormatError       # Malformed composite resource identifier
└── PageStructureError          # Expected table or form missing from the page

Usage Guidelines:
----------------
1. Catch specific exceptions for specific handling:
   - RecordNotFoundError: expected during drift detection, not a failure
   - UnauthenticatedError: re-authenticate, then re-run the call
   - MutationRejectedError: inspect ``state`` to know whether the change
     may be staged on the appliance but not yet applied

2. Use ApplianceError as catch-all for provider errors

3. Let httpx errors (NetworkError, TimeoutException) bubble up unchanged,
   retry policy belongs to the caller
"""

from typing import Any


class ApplianceError(Exception):
    """Base exception for all provider errors."""

    pass


class AuthError(ApplianceError):
    """Raised when logging into the appliance fails."""

    def __init__(self, message: str = "Authentication failed", status_code: int | None = None):
        """
        Initialize AuthError.

        Args:
            message: Error message.
            status_code: Optional HTTP status code of the failing response.
        """
        super().__init__(message)
        self.status_code = status_code


class UnauthenticatedError(ApplianceError):
    """Raised when a read or mutation runs without an authenticated session."""

    def __init__(self, message: str = "no authenticated session to the appliance") -> None:
        super().__init__(message)


class RecordNotFoundError(ApplianceError):
    """Raised when a record cannot be found in the live table."""

    def __init__(self, record_type: str, identifier: str) -> None:
        """
        Initialize RecordNotFoundError.

        Args:
            record_type: Kind of record that wasn't found.
            identifier: Natural key or position used for the lookup.
        """
        super().__init__(f"{record_type} not found: {identifier}")
        self.record_type = record_type
        self.identifier = identifier


class RecordAlreadyExistsError(ApplianceError):
    """Raised when creating a record whose natural key is already present."""

    def __init__(self, record_type: str, identifier: str, position: int | None = None) -> None:
        """
        Initialize RecordAlreadyExistsError.

        Args:
            record_type: Kind of record that already exists.
            identifier: Natural key of the existing record.
            position: Row position of the existing record, if known.
        """
        super().__init__(f"{record_type} already exists: {identifier}")
        self.record_type = record_type
        self.identifier = identifier
        self.position = position


class MutationRejectedError(ApplianceError):
    """
    Raised when the appliance does not accept a mutation.

    The appliance reports validation problems only as rendered HTML, so the
    reason is opaque. ``stage`` names the protocol step that failed and
    ``state`` the last state reached before it: a failure at the ``apply``
    stage leaves ``state`` at ``submitted``, meaning the change is staged on
    the appliance but not active. Nothing is rolled back.
    """

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        state: Any = None,
        status_code: int | None = None,
    ) -> None:
        """
        Initialize MutationRejectedError.

        Args:
            message: Error message.
            stage: Protocol step that failed (prime, submit, apply, delete, verify).
            state: Mutation state reached before the failure.
            status_code: Optional HTTP status code of the failing response.
        """
        super().__init__(message)
        self.stage = stage
        self.state = state
        self.status_code = status_code


class ResourceIDFormatError(ApplianceError):
    """Raised when a composite resource identifier cannot be parsed."""

    def __init__(self, resource_id: str, expected: str) -> None:
        """
        Initialize ResourceIDFormatError.

        Args:
            resource_id: The malformed identifier.
            expected: Human readable description of the expected layout.
        """
        super().__init__(f"invalid resource format: {resource_id}. must be {expected}")
        self.resource_id = resource_id
        self.expected = expected


class PageStructureError(ApplianceError):
    """Raised when a page lacks the table or form the scraper relies on."""

    def __init__(self, page: str, detail: str) -> None:
        super().__init__(f"{page}: {detail}")
        self.page = page
        self.detail = detail
