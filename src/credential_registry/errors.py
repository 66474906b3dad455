"""
Error codes and exceptions for the credential registry.

Domain failures are reported as RegistryError values inside a result.
Exceptions are reserved for collaborators (storage, height source) failing.
"""

from __future__ import annotations

from enum import Enum


class RegistryError(Enum):
    """Registry error codes, numbered as the ledger contract numbers them."""

    NOT_AUTHORIZED = 100
    DUPLICATE_CREDENTIAL = 101
    NOT_FOUND = 102
    REVOKED = 103
    EXPIRED = 104

    @property
    def code(self) -> int:
        return self.value

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    RegistryError.NOT_AUTHORIZED: "Caller is not authorized for this operation",
    RegistryError.DUPLICATE_CREDENTIAL: "Credential hash is already registered",
    RegistryError.NOT_FOUND: "Credential hash is not registered",
    RegistryError.REVOKED: "Credential has been revoked",
    RegistryError.EXPIRED: "Credential has expired",
}


class CredentialRegistryError(Exception):
    """Base class for credential registry exceptions."""


class RegistryOperationError(CredentialRegistryError):
    """Raised when a failed result is unwrapped."""

    def __init__(self, error: RegistryError) -> None:
        super().__init__(f"{error.name} ({error.code}): {error.message}")
        self.error = error


class StateStoreError(CredentialRegistryError):
    """Raised when registry state cannot be loaded or saved."""


class HeightProviderError(CredentialRegistryError):
    """Raised when the current chain height cannot be determined."""


class StateConflictError(StateStoreError):
    """Raised when stored state changed after it was loaded."""
