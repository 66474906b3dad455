"""
Data model for the credential registry.

A registry owns exactly one RegistryState: the admin identity, the issuer
whitelist and the credential records keyed by hash.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from credential_registry.errors import RegistryError, RegistryOperationError


@dataclass
class CredentialRecord:
    """A credential hash anchored by an issuer."""

    hash: str
    issuer: str
    subject: str
    timestamp: int
    expires_at: int | None = None
    revoked: bool = False

    def is_expired(self, height: int) -> bool:
        """Check whether the record has expired at the given height.

        A record stays valid up to and including its expiry height.
        """
        return self.expires_at is not None and height > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "issuer": self.issuer,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "expires_at": self.expires_at,
            "revoked": self.revoked,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialRecord:
        """Create a CredentialRecord from its dictionary form.

        Raises:
            KeyError: If a required field is missing.
            TypeError, ValueError: If a height is not an integer.
        """
        expires_at = data.get("expires_at")
        return cls(
            hash=data["hash"],
            issuer=data["issuer"],
            subject=data["subject"],
            timestamp=int(data["timestamp"]),
            expires_at=int(expires_at) if expires_at is not None else None,
            revoked=bool(data.get("revoked", False)),
        )


@dataclass
class RegistryState:
    """Everything the registry knows.

    revision counts committed mutations; stores use it to detect writers
    working from stale state.
    """

    admin: str
    issuers: set[str] = field(default_factory=set)
    credentials: dict[str, CredentialRecord] = field(default_factory=dict)
    revision: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "admin": self.admin,
            "revision": self.revision,
            "issuers": sorted(self.issuers),
            "credentials": {
                key: record.to_dict() for key, record in self.credentials.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryState:
        """Create a RegistryState from its dictionary form.

        Raises:
            KeyError: If the admin or a record field is missing.
            TypeError, ValueError: If a field has the wrong shape.
        """
        credentials: dict[str, CredentialRecord] = {}
        for key, item in data.get("credentials", {}).items():
            record = CredentialRecord.from_dict(item)
            if record.hash != key:
                raise ValueError(f"Record key {key!r} does not match hash {record.hash!r}")
            credentials[key] = record

        return cls(
            admin=data["admin"],
            issuers=set(data.get("issuers", [])),
            credentials=credentials,
            revision=int(data.get("revision", 0)),
        )


@dataclass
class RegistryResult:
    """Outcome of a registry operation: a value or an error code."""

    value: Any = None
    error: RegistryError | None = None

    @classmethod
    def success(cls, value: Any = True) -> RegistryResult:
        return cls(value=value)

    @classmethod
    def failure(cls, error: RegistryError) -> RegistryResult:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> int | None:
        """Numeric error code, or None on success."""
        return self.error.code if self.error else None

    def unwrap(self) -> Any:
        """Return the value of a successful result.

        Raises:
            RegistryOperationError: If the result carries an error.
        """
        if self.error is not None:
            raise RegistryOperationError(self.error)
        return self.value

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error.code}
        if isinstance(self.value, CredentialRecord):
            return {"value": self.value.to_dict()}
        return {"value": self.value}
