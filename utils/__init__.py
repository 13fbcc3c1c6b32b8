# Utility modules for SKIMGUARD
from .logging import (
    get_logger,
    app_logger,
    classifier_logger,
    risk_logger,
    vault_logger,
    custody_logger,
    sync_logger,
    scan_logger,
)
from .validation import (
    validate_latitude,
    validate_longitude,
    validate_accuracy,
    validate_rssi,
    validate_timestamp,
    validate_record_id,
    validate_bool,
    sanitize_notes,
)
