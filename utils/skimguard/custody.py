"""
Custody authority: the only gate between the capture flow and the vault.

Enforces evidence completeness before anything is stored, the detection
status lifecycle, and which records may leave the device.

Status lifecycle:

    (new) -> PENDING | CONFIRMED | CLEARED
    PENDING -> CONFIRMED | CLEARED
    CONFIRMED -> PUBLISHED          (Irreversible Confirmation Rule)
    CLEARED, PUBLISHED: terminal

Staying in the current status is always allowed (used to amend notes).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from utils.constants import MAX_RISK_SCORE, MIN_RISK_SCORE, SUSPICIOUS_THRESHOLD
from utils.logging import custody_logger as logger
from utils.skimguard.errors import DisclosureError, TransitionError, ValidationError
from utils.skimguard.models import DetectionRecord, DetectionStatus
from utils.skimguard.vault import EvidenceVault
from utils.validation import sanitize_notes

IRREVERSIBLE_CONFIRMATION_RULE = 'Irreversible Confirmation Rule'

_TRANSITIONS: dict[DetectionStatus | None, frozenset[DetectionStatus]] = {
    None: frozenset({
        DetectionStatus.PENDING, DetectionStatus.CONFIRMED, DetectionStatus.CLEARED,
    }),
    DetectionStatus.PENDING: frozenset({
        DetectionStatus.PENDING, DetectionStatus.CONFIRMED, DetectionStatus.CLEARED,
    }),
    DetectionStatus.CONFIRMED: frozenset({
        DetectionStatus.CONFIRMED, DetectionStatus.PUBLISHED,
    }),
    DetectionStatus.CLEARED: frozenset({DetectionStatus.CLEARED}),
    DetectionStatus.PUBLISHED: frozenset({DetectionStatus.PUBLISHED}),
}

# Statuses allowed to leave the device
EXPORTABLE_STATUSES = frozenset({DetectionStatus.CONFIRMED, DetectionStatus.PUBLISHED})

# Fields allowed to leave the device. Review before adding anything.
DISCLOSURE_FIELDS = ('id', 'timestamp', 'status', 'deviceType', 'analysis', 'imageData', 'location')


# =============================================================================
# Evidence Rules
# =============================================================================

def check_evidence(record: DetectionRecord) -> None:
    """
    Raise ValidationError naming the first evidence rule the record breaks.
    """
    if not record.id:
        raise ValidationError("Record ID is required", rule='missing_id')
    if not record.timestamp or record.timestamp <= 0:
        raise ValidationError("Record timestamp is required", rule='missing_timestamp')

    score = record.analysis.risk_score
    if not MIN_RISK_SCORE <= score <= MAX_RISK_SCORE:
        raise ValidationError(
            f"Risk score {score} outside [{MIN_RISK_SCORE}, {MAX_RISK_SCORE}]",
            rule='risk_score_range',
        )

    # Above the threshold is always suspicious. At or below it the verdict may
    # still be suspicious, since it is taken before rounding.
    if not record.analysis.is_suspicious and score > SUSPICIOUS_THRESHOLD:
        raise ValidationError(
            f"Risk score {score} contradicts a non-suspicious verdict",
            rule='inconsistent_verdict',
        )

    if record.analysis.is_suspicious and not record.image_data:
        raise ValidationError(
            "Suspicious verdict requires image evidence",
            rule='missing_image_evidence',
        )


def validate_evidence(record: DetectionRecord) -> bool:
    """True if the record satisfies every evidence rule. Rejections are logged."""
    try:
        check_evidence(record)
    except ValidationError as e:
        logger.warning(f"Rejected record {record.id or '<no id>'}: {e} [{e.rule}]")
        return False
    return True


# =============================================================================
# Transition Rules
# =============================================================================

def check_transition(new_status: DetectionStatus, current_status: DetectionStatus | None) -> None:
    """Raise TransitionError if current_status may not move to new_status."""
    if new_status in _TRANSITIONS[current_status]:
        return

    current = current_status.value if current_status else None
    if current_status is None:
        message = f"Cannot create record directly in {new_status.value}"
    elif current_status == DetectionStatus.CONFIRMED:
        message = f"{IRREVERSIBLE_CONFIRMATION_RULE}: CONFIRMED cannot become {new_status.value}"
    else:
        message = f"Cannot change status from {current} to {new_status.value}"
    raise TransitionError(message, current=current, requested=new_status.value)


def validate_transition(new_status: DetectionStatus, current_status: DetectionStatus | None = None) -> bool:
    """True if the transition is permitted. A missing current status means a new record."""
    try:
        check_transition(new_status, current_status)
    except TransitionError as e:
        logger.error(str(e))
        return False
    return True


# =============================================================================
# Authority
# =============================================================================

def authorize_export(record: DetectionRecord) -> bool:
    """Only CONFIRMED or PUBLISHED records may leave the device."""
    authorized = record.status in EXPORTABLE_STATUSES
    if not authorized:
        logger.warning(f"Export denied for record {record.id} (status: {record.status.value})")
    return authorized


def sanitize_for_disclosure(record: DetectionRecord) -> dict:
    """
    External view of an authorized record.

    Operator notes and sync bookkeeping stay on the device.

    Raises:
        DisclosureError: Record is not authorized for export
    """
    if not authorize_export(record):
        raise DisclosureError(record.id, record.status.value)
    full = record.to_dict()
    return {key: full[key] for key in DISCLOSURE_FIELDS}


class CustodyAuthority:
    """Validates and commits detection records to an EvidenceVault."""

    def __init__(self, vault: EvidenceVault):
        self.vault = vault

    def submit(self, record: DetectionRecord) -> DetectionRecord:
        """
        Validate and store a new record.

        Raises:
            ValidationError: Evidence incomplete; nothing was stored
            TransitionError: Record created directly in PUBLISHED
            StorageError: Vault rejected the write
        """
        check_evidence(record)
        check_transition(record.status, None)
        stored = self.vault.save(record)
        logger.info(f"Accepted record {stored.id} (risk {stored.analysis.risk_score}, {stored.status.value})")
        return stored

    def update_status(
        self,
        record_id: str,
        new_status: DetectionStatus,
        notes: str | None = None
    ) -> DetectionRecord:
        """
        Move a stored record to a new status, optionally replacing its notes.

        The transition is checked against the persisted status inside the
        vault's write transaction, so a concurrent writer cannot slip a
        stale status past the check.

        Args:
            record_id: ID of the stored record
            new_status: Requested status
            notes: Replacement notes; None keeps the current notes

        Raises:
            RecordNotFoundError: No such record
            TransitionError: Transition not permitted; nothing was written
        """
        cleaned_notes = sanitize_notes(notes) if notes is not None else None

        def apply(current: DetectionRecord) -> DetectionRecord:
            check_transition(new_status, current.status)
            changes = {'status': new_status}
            if notes is not None:
                changes['notes'] = cleaned_notes
            return current.evolve(**changes)

        updated = self.vault.modify(record_id, apply)
        logger.info(f"Record {record_id} is now {new_status.value}")
        return updated

    def authorize_export(self, record: DetectionRecord) -> bool:
        return authorize_export(record)

    def sanitize_for_disclosure(self, record: DetectionRecord) -> dict:
        return sanitize_for_disclosure(record)

    def export_report(
        self,
        records: Iterable[DetectionRecord],
        generated_at: datetime | None = None
    ) -> dict:
        """
        Build a disclosure report of every authorized record.

        Unauthorized records are counted but never included.
        """
        generated_at = generated_at or datetime.now(timezone.utc)
        included = []
        withheld = 0
        for record in records:
            if record.status in EXPORTABLE_STATUSES:
                included.append(sanitize_for_disclosure(record))
            else:
                withheld += 1

        logger.info(f"Export report: {len(included)} records, {withheld} withheld")
        return {
            'generatedAt': generated_at.isoformat(),
            'count': len(included),
            'withheld': withheld,
            'records': included,
        }
