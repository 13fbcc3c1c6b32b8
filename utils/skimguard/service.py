"""
Facade over the SkimGuard core used by the HTTP layer.

Wires classifier, risk engine, custody authority, vault and the optional
sync client together and converts loosely-typed request input into model
objects. Scan settings are always passed in explicitly as a ScanConfig.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import config
from utils import database as db
from utils.logging import app_logger as logger
from utils.skimguard.classifier import ThreatClassifier
from utils.skimguard.custody import CustodyAuthority
from utils.skimguard.errors import RecordNotFoundError, ValidationError
from utils.skimguard.models import (
    AnalysisResult,
    ClassificationOutcome,
    DetectionRecord,
    DetectionStats,
    DetectionStatus,
    EmitterObservation,
    InspectionChecklist,
    ScanConfig,
    parse_enum,
)
from utils.skimguard.risk_engine import RiskConfig, compute_risk
from utils.skimguard.sync import SyncClient, SyncResult, sync_pending_records
from utils.skimguard.vault import (
    EvidenceCipher,
    EvidenceVault,
    FileKeyProvider,
    KeyProvider,
    VaultEntry,
)
from utils.validation import validate_record_id


class SkimGuardService:
    """Operations exposed to the local UI."""

    def __init__(
        self,
        vault: EvidenceVault,
        classifier: ThreatClassifier | None = None,
        risk_config: RiskConfig | None = None,
        sync_client: SyncClient | None = None
    ):
        self.vault = vault
        self.authority = CustodyAuthority(vault)
        self.classifier = classifier or ThreatClassifier()
        self.risk_config = risk_config
        self.sync_client = sync_client

    # -- analysis ------------------------------------------------------------

    def classify(self, name: str | None, scan: ScanConfig) -> ClassificationOutcome | None:
        return self.classifier.classify(name, scan.smart_filter_enabled, scan.environment)

    def analyze(
        self,
        checklist: InspectionChecklist,
        observations: Iterable[EmitterObservation],
        scan: ScanConfig
    ) -> AnalysisResult:
        """Classify observations and score them together with the checklist."""
        classified = self.classifier.classify_all(
            list(observations), scan.smart_filter_enabled, scan.environment
        )
        return compute_risk(checklist, classified, scan.environment, self.risk_config)

    # -- custody -------------------------------------------------------------

    def submit_detection(self, data: DetectionRecord | dict) -> DetectionRecord:
        """
        Validate and store a detection.

        Raises:
            ValidationError: Malformed input or evidence rule violated
            TransitionError: Record submitted as PUBLISHED
        """
        record = data if isinstance(data, DetectionRecord) else _parse_record(data)
        return self.authority.submit(record)

    def update_status(self, record_id: str, status: DetectionStatus | str, notes: str | None = None) -> DetectionRecord:
        """
        Raises:
            ValidationError: Unknown status or invalid notes
            RecordNotFoundError: No such record
            TransitionError: Transition not permitted
        """
        try:
            new_status = parse_enum(DetectionStatus, status, 'status')
        except ValueError as e:
            raise ValidationError(str(e), rule='invalid_status')
        try:
            return self.authority.update_status(record_id, new_status, notes)
        except ValueError as e:
            raise ValidationError(str(e), rule='invalid_notes')

    def list_detections(self) -> list[VaultEntry]:
        """Every stored record, most recent first."""
        return self.vault.list()

    def get_detection(self, record_id: str) -> DetectionRecord:
        """
        Raises:
            RecordNotFoundError: No such record
            DecryptionError: Record cannot be opened
        """
        record = self.vault.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def authorize_export(self, record: DetectionRecord) -> bool:
        return self.authority.authorize_export(record)

    def export_detection(self, record_id: str) -> dict:
        """
        Sanitized view of one record for disclosure.

        Raises:
            RecordNotFoundError: No such record
            DisclosureError: Record not authorized for export
        """
        return self.authority.sanitize_for_disclosure(self.get_detection(record_id))

    def export_report(self) -> dict:
        """Disclosure report of all authorized, readable records."""
        records = [entry.record for entry in self.vault.list() if entry.record is not None]
        return self.authority.export_report(records)

    def get_stats(self) -> DetectionStats:
        return self.vault.stats()

    def purge(self) -> int:
        return self.vault.purge()

    # -- sync ----------------------------------------------------------------

    def sync_pending(self) -> SyncResult:
        """Drain the sync queue. Never raises on network failure."""
        if self.sync_client is None:
            return SyncResult(aborted=True, error='Sync is not configured')
        return sync_pending_records(self.vault, self.authority, self.sync_client)


def _parse_record(data: Any) -> DetectionRecord:
    if not isinstance(data, dict):
        raise ValidationError("Detection must be a JSON object", rule='malformed')
    if data.get('id'):
        try:
            validate_record_id(data['id'])
        except ValueError as e:
            raise ValidationError(str(e), rule='invalid_id')
    try:
        return DetectionRecord.from_dict(data)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValidationError(f"Malformed detection: {e}", rule='malformed')


def default_key_path() -> Path:
    """Key file location: SKIMGUARD_KEY_PATH, else next to the database."""
    if config.KEY_PATH:
        return Path(config.KEY_PATH)
    return db.DB_DIR / 'skimguard.key'


def create_service(key_provider: KeyProvider | None = None) -> SkimGuardService:
    """Build the service from application configuration."""
    provider = key_provider or FileKeyProvider(default_key_path())
    vault = EvidenceVault(EvidenceCipher(provider))

    sync_client = None
    if config.SYNC_URL:
        sync_client = SyncClient(config.SYNC_URL, config.SYNC_API_KEY or None, config.SYNC_TIMEOUT)
        logger.info(f"Sync enabled: {config.SYNC_URL}")

    return SkimGuardService(vault, sync_client=sync_client)
