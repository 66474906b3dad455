"""
Registry state persistence.

A StateStore stands in for the ledger's key-value storage. The registry
hands it a complete state after every successful mutation and only adopts
that state once save() returns. A save that names the revision it was
derived from is refused if another writer committed in the meantime.
"""

from __future__ import annotations

import copy
import fcntl
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from credential_registry.errors import StateConflictError, StateStoreError
from credential_registry.models import RegistryState


logger = logging.getLogger(__name__)

STATE_FORMAT_VERSION = 1


def check_revision(stored: RegistryState | None, expected_revision: int) -> None:
    """Refuse a write derived from anything but the stored revision.

    An empty store counts as revision 0.

    Raises:
        StateConflictError: If the stored revision differs.
    """
    current = stored.revision if stored is not None else 0
    if current != expected_revision:
        raise StateConflictError(
            f"Registry state changed concurrently (expected revision "
            f"{expected_revision}, found {current})"
        )


class StateStore(ABC):
    """Durable storage for a single RegistryState."""

    @abstractmethod
    def load(self) -> RegistryState | None:
        """Load the stored state, or None if nothing has been stored yet.

        Raises:
            StateStoreError: If stored state exists but cannot be read.
        """

    @abstractmethod
    def save(self, state: RegistryState, expected_revision: int | None = None) -> None:
        """Persist the state, replacing whatever was stored.

        Args:
            state: The state to store.
            expected_revision: Revision the stored state must still be at.
                None overwrites unconditionally.

        Raises:
            StateConflictError: If the stored revision is not expected_revision.
            StateStoreError: If the state cannot be written.
        """


class MemoryStateStore(StateStore):
    """Keeps a private copy of the state in memory."""

    def __init__(self, state: RegistryState | None = None) -> None:
        self._state = copy.deepcopy(state)

    def load(self) -> RegistryState | None:
        return copy.deepcopy(self._state)

    def save(self, state: RegistryState, expected_revision: int | None = None) -> None:
        if expected_revision is not None:
            check_revision(self._state, expected_revision)
        self._state = copy.deepcopy(state)


class JsonFileStateStore(StateStore):
    """Stores the state as a JSON document on disk.

    Writers serialize on an exclusive lock held on a sidecar
    ``.<name>.lock`` file, so the revision check and the write happen as
    one step even across processes.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(f".{self.path.name}.lock")

    def exists(self) -> bool:
        return self.path.exists()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self.lock_path.open("a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def load(self) -> RegistryState | None:
        """Read the state file.

        Returns:
            The stored RegistryState, or None if the file does not exist.

        Raises:
            StateStoreError: If the file is unreadable, is not JSON, or does
                not describe a registry state.
        """
        if not self.path.exists():
            return None

        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise StateStoreError(f"Cannot read state file {self.path}: {e}") from e
        except ValueError as e:
            raise StateStoreError(f"Invalid JSON in state file {self.path}") from e

        return self._decode(data)

    def save(self, state: RegistryState, expected_revision: int | None = None) -> None:
        """Write the state file atomically.

        The document is written to a temporary file in the same directory
        and moved over the old file, so readers never see a partial write.
        """
        document = {"version": STATE_FORMAT_VERSION, **state.to_dict()}
        directory = self.path.parent
        tmp_name = None

        try:
            directory.mkdir(parents=True, exist_ok=True)
            with self._locked():
                if expected_revision is not None:
                    check_revision(self.load(), expected_revision)
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2, sort_keys=True)
                    f.write("\n")
                os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StateStoreError(f"Cannot write state file {self.path}: {e}") from e

        logger.debug("Saved registry state revision %d to %s", state.revision, self.path)

    def _decode(self, data: Any) -> RegistryState:
        if not isinstance(data, dict):
            raise StateStoreError(f"State file {self.path} does not hold an object")

        version = data.get("version")
        if version != STATE_FORMAT_VERSION:
            raise StateStoreError(
                f"Unsupported state format version {version!r} in {self.path}"
            )

        try:
            return RegistryState.from_dict(data)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise StateStoreError(f"Malformed state in {self.path}: {e}") from e
