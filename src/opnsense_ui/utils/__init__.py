"""Utility functions and exceptions."""

from .exceptions import (
    ApplianceError,
    AuthError,
    MutationRejectedError,
    PageStructureError,
    RecordAlreadyExistsError,
    RecordNotFoundError,
    ResourceIDFormatError,
    UnauthenticatedError,
)
from .locking import KeyedLock

__all__ = [
    "ApplianceError",
    "AuthError",
    "UnauthenticatedError",
    "RecordNotFoundError",
    "RecordAlreadyExistsError",
    "MutationRejectedError",
    "ResourceIDFormatError",
    "PageStructureError",
    "KeyedLock",
]
