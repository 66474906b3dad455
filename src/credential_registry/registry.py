"""
Credential hash registry.

Whitelisted issuers anchor credential hashes; anyone can ask whether a hash
currently stands for a valid credential. A single admin controls the issuer
whitelist and can hand that role to someone else.

Every operation returns a RegistryResult. Domain failures are error codes,
not exceptions, and a failed operation never changes state.
"""

from __future__ import annotations

import copy
import logging

from credential_registry.errors import RegistryError, StateStoreError
from credential_registry.height import FixedHeight, HeightProvider
from credential_registry.models import CredentialRecord, RegistryResult, RegistryState
from credential_registry.store import StateStore


logger = logging.getLogger(__name__)


class CredentialRegistry:
    """Registry of issuer-anchored credential hashes."""

    def __init__(
        self,
        admin: str,
        height_provider: HeightProvider | None = None,
        store: StateStore | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            admin: Identity of the initial admin.
            height_provider: Callable returning the current chain height.
                Defaults to a FixedHeight at 0.
            store: Where committed state is persisted. Nothing is written
                until the first mutation or an explicit save().
        """
        self._state = RegistryState(admin=admin)
        self.height_provider = height_provider or FixedHeight()
        self.store = store

    @classmethod
    def from_state(
        cls,
        state: RegistryState,
        height_provider: HeightProvider | None = None,
        store: StateStore | None = None,
    ) -> CredentialRegistry:
        """Create a registry that starts from a copy of existing state."""
        registry = cls(state.admin, height_provider=height_provider, store=store)
        registry._state = copy.deepcopy(state)
        return registry

    @classmethod
    def open(
        cls,
        store: StateStore,
        height_provider: HeightProvider | None = None,
    ) -> CredentialRegistry:
        """Load a registry from a store.

        Raises:
            StateStoreError: If the store holds no state or cannot be read.
        """
        state = store.load()
        if state is None:
            raise StateStoreError("No registry state has been initialized")
        return cls.from_state(state, height_provider=height_provider, store=store)

    @property
    def state(self) -> RegistryState:
        """A snapshot of the current state."""
        return copy.deepcopy(self._state)

    def save(self) -> None:
        """Persist the current state to the store, if there is one."""
        if self.store is not None:
            self.store.save(self._state)

    def _commit(self, state: RegistryState) -> None:
        # Adopt the new state only once it has been persisted on top of the
        # revision it was derived from.
        state.revision = self._state.revision + 1
        if self.store is not None:
            self.store.save(state, expected_revision=self._state.revision)
        self._state = state

    def _is_admin(self, caller: str) -> bool:
        return caller == self._state.admin

    def _denied(self, operation: str, caller: str) -> RegistryResult:
        logger.debug("%s denied for %s", operation, caller)
        return RegistryResult.failure(RegistryError.NOT_AUTHORIZED)

    # Admin operations

    def add_issuer(self, caller: str, issuer: str) -> RegistryResult:
        """Whitelist an issuer. Admin only; adding twice is harmless."""
        if not self._is_admin(caller):
            return self._denied("add_issuer", caller)

        state = copy.deepcopy(self._state)
        state.issuers.add(issuer)
        self._commit(state)
        logger.info("Issuer %s whitelisted", issuer)
        return RegistryResult.success(True)

    def remove_issuer(self, caller: str, issuer: str) -> RegistryResult:
        """Remove an issuer from the whitelist. Admin only.

        Credentials the issuer already stored keep their validity.
        """
        if not self._is_admin(caller):
            return self._denied("remove_issuer", caller)

        state = copy.deepcopy(self._state)
        state.issuers.discard(issuer)
        self._commit(state)
        logger.info("Issuer %s removed from whitelist", issuer)
        return RegistryResult.success(True)

    def transfer_admin(self, caller: str, new_admin: str) -> RegistryResult:
        """Hand the admin role to new_admin. Admin only."""
        if not self._is_admin(caller):
            return self._denied("transfer_admin", caller)

        state = copy.deepcopy(self._state)
        state.admin = new_admin
        self._commit(state)
        logger.info("Admin transferred from %s to %s", caller, new_admin)
        return RegistryResult.success(True)

    # Issuer operations

    def store_credential(
        self,
        caller: str,
        hash: str,
        subject: str,
        expires_at: int | None = None,
    ) -> RegistryResult:
        """Anchor a credential hash.

        The whitelist check comes before the duplicate check, so a
        non-issuer always gets NOT_AUTHORIZED. An expiry at or below the
        current height is accepted as is.

        Args:
            caller: Identity storing the hash; becomes the record's issuer.
            hash: The credential hash.
            subject: Identity the credential is about.
            expires_at: Last height at which the credential is valid.

        Returns:
            RegistryResult with True, NOT_AUTHORIZED or DUPLICATE_CREDENTIAL.
        """
        if caller not in self._state.issuers:
            return self._denied("store_credential", caller)
        if hash in self._state.credentials:
            logger.debug("Credential %s already registered", hash)
            return RegistryResult.failure(RegistryError.DUPLICATE_CREDENTIAL)

        record = CredentialRecord(
            hash=hash,
            issuer=caller,
            subject=subject,
            timestamp=self.height_provider(),
            expires_at=expires_at,
        )
        state = copy.deepcopy(self._state)
        state.credentials[hash] = record
        self._commit(state)
        logger.info("Credential %s stored by %s at height %d", hash, caller, record.timestamp)
        return RegistryResult.success(True)

    def revoke_credential(self, caller: str, hash: str) -> RegistryResult:
        """Revoke a credential. Only its original issuer may do so.

        Revoking an already revoked credential succeeds.
        """
        record = self._state.credentials.get(hash)
        if record is None:
            return RegistryResult.failure(RegistryError.NOT_FOUND)
        if caller != record.issuer:
            return self._denied("revoke_credential", caller)

        state = copy.deepcopy(self._state)
        state.credentials[hash].revoked = True
        self._commit(state)
        logger.info("Credential %s revoked by %s", hash, caller)
        return RegistryResult.success(True)

    # Queries

    def is_valid(self, hash: str, current_height: int | None = None) -> RegistryResult:
        """Check whether a hash stands for a valid credential.

        Checks run in order: existence, revocation, expiry. Whitelist
        membership of the issuer is not consulted.

        Args:
            hash: The credential hash.
            current_height: Height to check expiry against. Defaults to the
                height provider's current height.

        Returns:
            RegistryResult with True, NOT_FOUND, REVOKED or EXPIRED.
        """
        record = self._state.credentials.get(hash)
        if record is None:
            return RegistryResult.failure(RegistryError.NOT_FOUND)
        if record.revoked:
            return RegistryResult.failure(RegistryError.REVOKED)

        if current_height is None:
            current_height = self.height_provider()
        if record.is_expired(current_height):
            return RegistryResult.failure(RegistryError.EXPIRED)

        return RegistryResult.success(True)

    def get_credential(self, hash: str) -> RegistryResult:
        """Return a copy of the record for hash, or NOT_FOUND."""
        record = self._state.credentials.get(hash)
        if record is None:
            return RegistryResult.failure(RegistryError.NOT_FOUND)
        return RegistryResult.success(copy.copy(record))

    def get_admin(self) -> RegistryResult:
        return RegistryResult.success(self._state.admin)

    def is_issuer(self, identity: str) -> RegistryResult:
        return RegistryResult.success(identity in self._state.issuers)
