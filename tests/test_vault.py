"""
Tests for the encrypted evidence vault.

Tests cover:
- AES-GCM cipher round trips and failure modes
- Key providers
- Record persistence, listing and corruption isolation
- Legacy plaintext records
- Sync queue primitives and stats
"""

import hashlib
import json
import os
import stat

import pytest

from conftest import SAMPLE_IMAGE, make_record
from utils import database as db
from utils.skimguard.errors import DecryptionError, RecordNotFoundError, StorageError
from utils.skimguard.models import DetectionStatus, SyncStatus
from utils.skimguard.vault import (
    EvidenceCipher,
    FileKeyProvider,
    StaticKeyProvider,
    compute_integrity_hash,
)


@pytest.fixture
def cipher(key_provider):
    return EvidenceCipher(key_provider)


# =============================================================================
# Cipher
# =============================================================================

class TestEvidenceCipher:

    @pytest.mark.parametrize('payload', [
        '',
        'plain text',
        '{"unicode": "Geldautomat üé ✓"}',
        SAMPLE_IMAGE * 50000,
    ])
    def test_round_trip(self, cipher, payload):
        iv, content = cipher.encrypt(payload)
        assert cipher.decrypt(iv, content) == payload

    def test_fresh_iv_per_encryption(self, cipher):
        first = cipher.encrypt('same')
        second = cipher.encrypt('same')
        assert first[0] != second[0]
        assert first[1] != second[1]

    def test_wrong_key_fails(self, cipher):
        iv, content = cipher.encrypt('secret')
        other = EvidenceCipher(StaticKeyProvider(b'\x01' * 32))
        with pytest.raises(DecryptionError):
            other.decrypt(iv, content)

    def test_tampered_content_fails(self, cipher):
        iv, content = cipher.encrypt('secret evidence')
        tampered = content[:-4] + ('AAAA' if content[-4:] != 'AAAA' else 'BBBB')
        with pytest.raises(DecryptionError):
            cipher.decrypt(iv, tampered)

    def test_malformed_base64_fails(self, cipher):
        with pytest.raises(DecryptionError):
            cipher.decrypt('not base64!', 'also not')


class TestKeyProviders:

    def test_static_key_length_enforced(self):
        with pytest.raises(ValueError):
            StaticKeyProvider(b'short')

    def test_file_key_generated_once_and_reused(self, tmp_path):
        path = tmp_path / 'keys' / 'vault.key'
        first = FileKeyProvider(path).get_key()
        second = FileKeyProvider(path).get_key()

        assert len(first) == 32
        assert first == second
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_file_key_created_concurrently_is_adopted(self, tmp_path, mocker):
        path = tmp_path / 'vault.key'
        winner = b'\x07' * 32

        def lose_race(src, dst):
            path.write_bytes(winner)
            raise FileExistsError(dst)

        mocker.patch('utils.skimguard.vault.os.link', side_effect=lose_race)

        assert FileKeyProvider(path).get_key() == winner
        assert [p.name for p in tmp_path.iterdir()] == ['vault.key']

    def test_file_key_rejects_bad_file(self, tmp_path):
        path = tmp_path / 'vault.key'
        path.write_bytes(b'too short')
        with pytest.raises(StorageError):
            FileKeyProvider(path).get_key()


def test_integrity_hash_format():
    expected = hashlib.sha256(b'det-001:1700000000000:CONFIRMED').hexdigest()
    assert compute_integrity_hash('det-001', 1700000000000, 'CONFIRMED') == expected


# =============================================================================
# Vault
# =============================================================================

class TestVaultStorage:

    def test_save_and_get(self, vault):
        record = make_record()
        vault.save(record)
        assert vault.get('det-001') == record

    def test_get_missing(self, vault):
        assert vault.get('nope') is None

    def test_payload_is_encrypted_at_rest(self, vault):
        vault.save(make_record())
        row = db.get_detection_row('det-001')

        assert row['encrypted'] == 1
        assert row['iv']
        assert 'Overlay' not in row['payload']
        assert SAMPLE_IMAGE not in row['payload']
        assert row['integrity_hash'] == compute_integrity_hash('det-001', 1700000000000, 'PENDING')

    def test_sync_status_forced_pending(self, vault):
        saved = vault.save(make_record().evolve(sync_status=SyncStatus.SYNCED))
        assert saved.sync_status == SyncStatus.PENDING
        assert vault.get('det-001').sync_status == SyncStatus.PENDING

    def test_duplicate_id_rejected(self, vault):
        vault.save(make_record())
        with pytest.raises(StorageError):
            vault.save(make_record())
        assert db.count_detections() == 1

    def test_modify_rewrites_and_requeues(self, vault):
        vault.save(make_record())
        vault.mark_synced('det-001')

        vault.modify('det-001', lambda r: r.evolve(status=DetectionStatus.CONFIRMED, notes='Verified'))

        stored = vault.get('det-001')
        assert stored.status == DetectionStatus.CONFIRMED
        assert stored.notes == 'Verified'
        assert stored.sync_status == SyncStatus.PENDING
        assert db.get_detection_row('det-001')['revision'] == 1

    def test_modify_aborts_on_error(self, vault):
        vault.save(make_record())

        def boom(record):
            raise RuntimeError('rejected')

        with pytest.raises(RuntimeError):
            vault.modify('det-001', boom)
        assert vault.get('det-001').status == DetectionStatus.PENDING
        assert db.get_detection_row('det-001')['revision'] == 0

    def test_modify_missing_record(self, vault):
        with pytest.raises(RecordNotFoundError):
            vault.modify('ghost', lambda r: r)


class TestVaultListing:

    def test_most_recent_first(self, vault):
        vault.save(make_record(record_id='old', timestamp=1700000000000))
        vault.save(make_record(record_id='new', timestamp=1700000900000))
        vault.save(make_record(record_id='mid', timestamp=1700000500000))

        assert [e.record_id for e in vault.list()] == ['new', 'mid', 'old']

    def test_corrupted_record_is_isolated(self, vault):
        vault.save(make_record(record_id='good', timestamp=1700000000000))
        vault.save(make_record(record_id='bad', timestamp=1700000001000))
        with db.get_db() as conn:
            conn.execute("UPDATE detections SET payload = 'AAAAAAAAAAAAAAAAAAAAAAAA' WHERE id = 'bad'")

        entries = vault.list()

        assert [e.record_id for e in entries] == ['bad', 'good']
        assert entries[0].corrupted is True
        assert entries[0].error
        assert entries[0].to_dict()['corrupted'] is True
        assert entries[1].corrupted is False
        assert entries[1].record.id == 'good'

        with pytest.raises(DecryptionError) as exc_info:
            vault.get('bad')
        assert exc_info.value.record_id == 'bad'

    def test_status_tampering_detected(self, vault):
        vault.save(make_record())
        with db.get_db() as conn:
            conn.execute("UPDATE detections SET status = 'CONFIRMED' WHERE id = 'det-001'")

        with pytest.raises(DecryptionError, match='Integrity'):
            vault.get('det-001')

    def test_wrong_key_yields_placeholders(self, vault):
        from utils.skimguard.vault import EvidenceVault
        vault.save(make_record())

        other = EvidenceVault(EvidenceCipher(StaticKeyProvider(b'\x02' * 32)))
        entries = other.list()
        assert len(entries) == 1
        assert entries[0].corrupted

    def test_legacy_plaintext_record(self, vault):
        legacy = make_record(record_id='legacy-1')
        with db.get_db() as conn:
            db.insert_detection_row(
                conn, 'legacy-1', legacy.timestamp, 'PENDING', 'PENDING',
                json.dumps(legacy.payload_dict()), None, None, encrypted=False,
            )

        assert vault.get('legacy-1') == legacy
        assert vault.list()[0].corrupted is False


class TestSyncQueueAndStats:

    def test_pending_sync_oldest_first(self, vault):
        vault.save(make_record(record_id='b', timestamp=1700000002000))
        vault.save(make_record(record_id='a', timestamp=1700000001000))
        vault.save(make_record(record_id='c', timestamp=1700000003000))
        vault.mark_synced('c')
        vault.mark_sync_failed('b')

        pending = vault.pending_sync()
        assert [e.record_id for e in pending] == ['a', 'b']
        assert pending[1].record.sync_status == SyncStatus.FAILED

    def test_pending_sync_status_filter_applies_before_limit(self, vault):
        for i in range(5):
            vault.save(make_record(record_id=f'p{i}', timestamp=1700000000000 + i))
        vault.save(make_record(record_id='conf', timestamp=1700000009000, status=DetectionStatus.CONFIRMED))

        pending = vault.pending_sync(limit=2, statuses=[DetectionStatus.CONFIRMED])

        assert [e.record_id for e in pending] == ['conf']
        assert vault.count_pending_sync([DetectionStatus.PENDING]) == 5
        assert vault.count_pending_sync() == 6

    def test_mark_synced_ignores_stale_revision(self, vault):
        vault.save(make_record(status=DetectionStatus.CONFIRMED))
        entry = vault.pending_sync()[0]

        vault.modify('det-001', lambda r: r.evolve(status=DetectionStatus.PUBLISHED))

        assert vault.mark_synced('det-001', entry.revision) is False
        assert vault.get('det-001').sync_status == SyncStatus.PENDING

        fresh = vault.pending_sync()[0]
        assert vault.mark_synced('det-001', fresh.revision) is True
        assert vault.get('det-001').sync_status == SyncStatus.SYNCED

    def test_mark_synced_keeps_record_readable(self, vault):
        vault.save(make_record())
        assert vault.mark_synced('det-001') is True
        assert vault.get('det-001').sync_status == SyncStatus.SYNCED
        assert vault.mark_synced('ghost') is False

    def test_stats(self, vault):
        vault.save(make_record(record_id='r1', score=90))
        vault.save(make_record(record_id='r2', score=70, status=DetectionStatus.CONFIRMED))
        vault.save(make_record(record_id='r3', score=10, suspicious=False, status=DetectionStatus.CLEARED))
        vault.save(make_record(record_id='r4', score=71, status=DetectionStatus.CONFIRMED))
        vault.modify('r4', lambda r: r.evolve(status=DetectionStatus.PUBLISHED))
        vault.mark_synced('r3')

        stats = vault.stats()

        assert stats.total_scans == 4
        assert stats.high_risk == 2
        assert stats.confirmed == 2
        assert stats.pending_sync == 3
        assert stats.corrupted == 0
        assert stats.to_dict()['totalScans'] == 4

    def test_purge(self, vault):
        vault.save(make_record(record_id='r1'))
        vault.save(make_record(record_id='r2'))

        assert vault.purge() == 2
        assert vault.list() == []
        assert vault.stats().total_scans == 0
