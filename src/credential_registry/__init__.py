"""
Credential Registry - anchor and check verifiable credential hashes.

Supports:
- A single transferable admin managing an issuer whitelist
- Issuer-anchored credential hashes with optional expiry height
- Issuer-only revocation
- Validity checks against an injected chain height
"""

from credential_registry.errors import (
    CredentialRegistryError,
    HeightProviderError,
    RegistryError,
    RegistryOperationError,
    StateConflictError,
    StateStoreError,
)
from credential_registry.hashing import credential_hash
from credential_registry.height import FixedHeight, StacksNodeHeight
from credential_registry.models import CredentialRecord, RegistryResult, RegistryState
from credential_registry.registry import CredentialRegistry
from credential_registry.store import JsonFileStateStore, MemoryStateStore, StateStore

__version__ = "0.1.0"

__all__ = [
    "CredentialRegistry",
    "CredentialRecord",
    "RegistryState",
    "RegistryResult",
    "RegistryError",
    "RegistryOperationError",
    "CredentialRegistryError",
    "StateStore",
    "MemoryStateStore",
    "JsonFileStateStore",
    "StateStoreError",
    "StateConflictError",
    "FixedHeight",
    "StacksNodeHeight",
    "HeightProviderError",
    "credential_hash",
]
