"""Exceptions raised by the SkimGuard core."""

from __future__ import annotations


class SkimGuardError(Exception):
    """Base class for all SkimGuard errors."""
    pass


class ValidationError(SkimGuardError):
    """Record is malformed or violates an evidence rule. Nothing was written."""

    def __init__(self, message: str, rule: str):
        super().__init__(message)
        self.rule = rule


class TransitionError(SkimGuardError):
    """Requested status change is not allowed. Nothing was written."""

    def __init__(self, message: str, current: str | None, requested: str):
        super().__init__(message)
        self.current = current
        self.requested = requested


class RecordNotFoundError(SkimGuardError):
    """No record with the given ID exists in the vault."""

    def __init__(self, record_id: str):
        super().__init__(f"Record not found: {record_id}")
        self.record_id = record_id


class DecryptionError(SkimGuardError):
    """Ciphertext could not be decrypted (key mismatch or corruption)."""

    def __init__(self, message: str, record_id: str | None = None):
        super().__init__(message)
        self.record_id = record_id


class StorageError(SkimGuardError):
    """The evidence store is unavailable or rejected the write."""
    pass


class DisclosureError(SkimGuardError):
    """Record is not authorized to leave the device."""

    def __init__(self, record_id: str, status: str):
        super().__init__(f"Record {record_id} is not authorized for disclosure (status: {status})")
        self.record_id = record_id
        self.status = status
