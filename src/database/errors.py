"""Storage error taxonomy."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for storage failures."""


class StorageUnavailable(StoreError):
    """Raised when the database cannot be opened or created."""

    def __init__(self, db_path: str, reason: str):
        self.db_path = db_path
        self.reason = reason
        super().__init__(f"Storage unavailable at '{db_path}': {reason}")


class KeyAlreadyExists(StoreError):
    """Raised by SettingsStore.add when the key is already present."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Record with key '{key}' already exists")


class TransactionFailure(StoreError):
    """Raised when an operation inside a transaction fails."""
