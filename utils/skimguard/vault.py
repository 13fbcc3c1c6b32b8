"""
Encrypted evidence vault.

Detection records are stored in sqlite with their evidence payload
(analysis, image, location, notes, terminal type) encrypted with
AES-256-GCM. Only id, timestamp, lifecycle status and sync status are kept
in plaintext so the custody layer can check transitions without a key.

Each write is a single sqlite transaction; readers never see a partially
written record.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from utils import database as db
from utils.constants import AES_GCM_IV_BYTES, AES_KEY_BITS, HIGH_RISK_THRESHOLD
from utils.logging import vault_logger as logger
from utils.skimguard.errors import DecryptionError, RecordNotFoundError, StorageError
from utils.skimguard.models import (
    DetectionRecord,
    DetectionStats,
    DetectionStatus,
    SyncStatus,
)


# Sync states still waiting for a successful upload
_QUEUED = (SyncStatus.PENDING.value, SyncStatus.FAILED.value)


def compute_integrity_hash(record_id: str, timestamp: int, status: str) -> str:
    """SHA-256 hex digest of "id:timestamp:status"."""
    return hashlib.sha256(f'{record_id}:{timestamp}:{status}'.encode('utf-8')).hexdigest()


# =============================================================================
# Key Providers
# =============================================================================

class KeyProvider(ABC):
    """Source of the vault's symmetric key."""

    @abstractmethod
    def get_key(self) -> bytes:
        """Return the raw 256-bit key."""


class StaticKeyProvider(KeyProvider):
    """Key supplied by the caller."""

    def __init__(self, key: bytes):
        if len(key) * 8 != AES_KEY_BITS:
            raise ValueError(f"Key must be {AES_KEY_BITS} bits")
        self._key = key

    def get_key(self) -> bytes:
        return self._key


class FileKeyProvider(KeyProvider):
    """
    Key generated on first use and kept in a local file.

    The file is created with owner-only permissions. Losing it makes every
    encrypted record unreadable.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._key: bytes | None = None
        self._lock = threading.Lock()

    def get_key(self) -> bytes:
        with self._lock:
            if self._key is None:
                self._key = self._load_or_create()
            return self._key

    def _load(self) -> bytes:
        key = self.path.read_bytes()
        if len(key) * 8 != AES_KEY_BITS:
            raise StorageError(f"Key file {self.path} is not a {AES_KEY_BITS}-bit key")
        return key

    def _load_or_create(self) -> bytes:
        if self.path.exists():
            return self._load()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        key = AESGCM.generate_key(bit_length=AES_KEY_BITS)

        # Write a private temp file, then link it into place so the key file
        # only ever appears complete
        tmp_path = self.path.with_name(f'.{self.path.name}.{os.getpid()}.{threading.get_ident()}')
        fd = os.open(str(tmp_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(key)
            os.link(tmp_path, self.path)
        except FileExistsError:
            # Another process created the key first; use theirs
            return self._load()
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.info(f"Generated new vault key at {self.path}")
        return key


# =============================================================================
# Cipher
# =============================================================================

class EvidenceCipher:
    """AES-256-GCM over UTF-8 text, base64 on the wire."""

    def __init__(self, key_provider: KeyProvider):
        self.key_provider = key_provider

    def encrypt(self, plaintext: str) -> tuple[str, str]:
        """
        Encrypt a string with a fresh random IV.

        Returns:
            Tuple of (iv_b64, content_b64)
        """
        iv = os.urandom(AES_GCM_IV_BYTES)
        content = AESGCM(self.key_provider.get_key()).encrypt(iv, plaintext.encode('utf-8'), None)
        return (
            base64.b64encode(iv).decode('ascii'),
            base64.b64encode(content).decode('ascii'),
        )

    def decrypt(self, iv_b64: str, content_b64: str) -> str:
        """
        Decrypt content produced by encrypt().

        Raises:
            DecryptionError: Wrong key, tampered content or malformed input
        """
        try:
            iv = base64.b64decode(iv_b64, validate=True)
            content = base64.b64decode(content_b64, validate=True)
            plaintext = AESGCM(self.key_provider.get_key()).decrypt(iv, content, None)
            return plaintext.decode('utf-8')
        except InvalidTag:
            raise DecryptionError("Authentication failed (wrong key or tampered data)")
        except (binascii.Error, ValueError, TypeError) as e:
            raise DecryptionError(f"Malformed ciphertext: {e}")


# =============================================================================
# Vault
# =============================================================================

@dataclass
class VaultEntry:
    """One listed record, or a placeholder for a record that failed to open."""
    record_id: str
    timestamp: int
    status: str
    sync_status: str
    revision: int = 0
    record: DetectionRecord | None = None
    error: str | None = None

    @property
    def corrupted(self) -> bool:
        return self.record is None

    def to_dict(self) -> dict:
        if self.record is not None:
            return {**self.record.to_dict(), 'corrupted': False}
        return {
            'id': self.record_id,
            'timestamp': self.timestamp,
            'status': self.status,
            'syncStatus': self.sync_status,
            'corrupted': True,
            'error': self.error,
        }


class EvidenceVault:
    """Durable, encrypted store of detection records."""

    def __init__(self, cipher: EvidenceCipher):
        self.cipher = cipher
        # Re-entrant so custody can hold it across read-validate-write
        self.write_lock = threading.RLock()

    # -- encoding ------------------------------------------------------------

    def _seal(self, record: DetectionRecord) -> tuple[str, str, str]:
        payload = json.dumps(record.payload_dict(), separators=(',', ':'))
        iv, content = self.cipher.encrypt(payload)
        integrity_hash = compute_integrity_hash(record.id, record.timestamp, record.status.value)
        return content, iv, integrity_hash

    def _open(self, row: dict) -> DetectionRecord:
        record_id = row['id']

        expected = row['integrity_hash']
        if expected and expected != compute_integrity_hash(record_id, row['timestamp'], row['status']):
            raise DecryptionError("Integrity check failed", record_id)

        if row['encrypted']:
            try:
                payload_json = self.cipher.decrypt(row['iv'] or '', row['payload'])
            except DecryptionError as e:
                raise DecryptionError(str(e), record_id)
        else:
            payload_json = row['payload']

        try:
            payload = json.loads(payload_json)
            return DetectionRecord.from_dict({
                **payload,
                'id': record_id,
                'timestamp': row['timestamp'],
                'status': row['status'],
                'syncStatus': row['sync_status'],
            })
        except (ValueError, TypeError, AttributeError) as e:
            raise DecryptionError(f"Unreadable payload: {e}", record_id)

    # -- writes --------------------------------------------------------------

    def save(self, record: DetectionRecord) -> DetectionRecord:
        """
        Insert a new record. Its sync status is always reset to PENDING.

        Raises:
            StorageError: Duplicate ID or database failure
        """
        record = record.evolve(sync_status=SyncStatus.PENDING)
        content, iv, integrity_hash = self._seal(record)
        with self.write_lock:
            try:
                with db.write_transaction() as conn:
                    db.insert_detection_row(
                        conn, record.id, record.timestamp, record.status.value,
                        record.sync_status.value, content, iv, integrity_hash,
                    )
            except sqlite3.IntegrityError:
                raise StorageError(f"Record already exists: {record.id}")
            except sqlite3.Error as e:
                raise StorageError(f"Failed to save record {record.id}: {e}")
        logger.info(f"Saved record {record.id} ({record.status.value})")
        return record

    def modify(
        self,
        record_id: str,
        mutate: Callable[[DetectionRecord], DetectionRecord]
    ) -> DetectionRecord:
        """
        Read-modify-write one record under the write lock.

        mutate() receives the record as currently persisted and returns the
        replacement; anything it raises aborts the write.
        """
        with self.write_lock:
            try:
                with db.write_transaction() as conn:
                    row = db.fetch_detection_row(conn, record_id)
                    if row is None:
                        raise RecordNotFoundError(record_id)
                    updated = mutate(self._open(row)).evolve(sync_status=SyncStatus.PENDING)
                    content, iv, integrity_hash = self._seal(updated)
                    db.replace_detection_row(
                        conn, updated.id, updated.status.value, updated.sync_status.value,
                        content, iv, integrity_hash,
                    )
            except sqlite3.Error as e:
                raise StorageError(f"Failed to update record {record_id}: {e}")
        logger.info(f"Updated record {record_id} ({updated.status.value})")
        return updated

    def mark_synced(self, record_id: str, revision: int | None = None) -> bool:
        """
        Mark a record as uploaded.

        Pass the revision that was uploaded: if the record was rewritten in
        the meantime it stays queued and False is returned.
        """
        return self._set_sync_status(record_id, SyncStatus.SYNCED, revision)

    def mark_sync_failed(self, record_id: str, revision: int | None = None) -> bool:
        return self._set_sync_status(record_id, SyncStatus.FAILED, revision)

    def _set_sync_status(self, record_id: str, sync_status: SyncStatus, revision: int | None) -> bool:
        with self.write_lock:
            try:
                return db.set_detection_sync_status(record_id, sync_status.value, revision)
            except sqlite3.Error as e:
                raise StorageError(f"Failed to update sync status of {record_id}: {e}")

    def purge(self) -> int:
        """Delete every record. Returns the number removed."""
        with self.write_lock:
            try:
                deleted = db.delete_all_detections()
            except sqlite3.Error as e:
                raise StorageError(f"Purge failed: {e}")
        logger.warning(f"Purged {deleted} records from the vault")
        return deleted

    # -- reads ---------------------------------------------------------------

    def get(self, record_id: str) -> DetectionRecord | None:
        """
        Get and decrypt one record.

        Raises:
            DecryptionError: Record exists but cannot be opened
        """
        row = db.get_detection_row(record_id)
        if row is None:
            return None
        return self._open(row)

    def list(self) -> list[VaultEntry]:
        """All records, most recent first. Unreadable records are flagged, not dropped."""
        return [self._entry(row) for row in db.get_detection_rows()]

    def pending_sync(
        self,
        limit: int | None = None,
        statuses: Iterable[DetectionStatus] | None = None
    ) -> list[VaultEntry]:
        """
        Records waiting for upload (PENDING or FAILED), oldest first.

        statuses restricts the lifecycle states returned; the limit applies
        after that filter.
        """
        rows = db.get_detection_rows(
            sync_statuses=_QUEUED,
            statuses=[s.value for s in statuses] if statuses is not None else None,
            limit=limit,
            newest_first=False,
        )
        return [self._entry(row) for row in rows]

    def count_pending_sync(self, statuses: Iterable[DetectionStatus] | None = None) -> int:
        return db.count_detections(
            sync_statuses=_QUEUED,
            statuses=[s.value for s in statuses] if statuses is not None else None,
        )

    def _entry(self, row: dict) -> VaultEntry:
        entry = VaultEntry(
            record_id=row['id'],
            timestamp=row['timestamp'],
            status=row['status'],
            sync_status=row['sync_status'],
            revision=row['revision'],
        )
        try:
            entry.record = self._open(row)
        except DecryptionError as e:
            logger.error(f"Record {row['id']} could not be opened: {e}")
            entry.error = str(e)
        return entry

    def stats(self) -> DetectionStats:
        """Dashboard counters over every stored record."""
        stats = DetectionStats()
        for entry in self.list():
            stats.total_scans += 1
            if entry.status in (DetectionStatus.CONFIRMED.value, DetectionStatus.PUBLISHED.value):
                stats.confirmed += 1
            if entry.sync_status != SyncStatus.SYNCED.value:
                stats.pending_sync += 1
            if entry.record is None:
                stats.corrupted += 1
            elif entry.record.analysis.risk_score > HIGH_RISK_THRESHOLD:
                stats.high_risk += 1
        return stats
