"""
SkimGuard routes: local HTTP interface for the capture and review UI.

This blueprint provides:
- Name classification and signal smoothing helpers
- Live scan state (observation queue -> tracker -> classified snapshot)
- Risk scoring
- Detection custody (submit, status changes, export, report)
- Best-effort sync and local purge
- Operator scan settings
"""

from __future__ import annotations

import math
import queue
from typing import Any

from flask import Blueprint, jsonify, request

import config
from utils.constants import MAX_RSSI, MIN_RSSI
from utils.database import get_setting, set_setting
from utils.logging import get_logger
from utils.skimguard.errors import (
    DecryptionError,
    DisclosureError,
    RecordNotFoundError,
    StorageError,
    TransitionError,
    ValidationError,
)
from utils.skimguard.models import (
    EmitterObservation,
    InspectionChecklist,
    ScanConfig,
    ScanEnvironment,
    emitters_from_dicts,
    parse_enum,
)
from utils.skimguard.risk_engine import compute_risk
from utils.skimguard.service import SkimGuardService
from utils.skimguard.signal import NO_READING, ObservationTracker, filter_signal
from utils.validation import validate_bool, validate_record_id

logger = get_logger('routes')

skimguard_bp = Blueprint('skimguard', __name__, url_prefix='/skim')

# Set by init_skimguard_state() from app.py
service: SkimGuardService | None = None
scan_tracker: ObservationTracker | None = None
observation_queue: queue.Queue | None = None

# Settings table keys
SETTING_ENVIRONMENT = 'skim.environment'
SETTING_SMART_FILTER = 'skim.smart_filter'
SETTING_RSSI_THRESHOLD = 'skim.rssi_alert_threshold'
SETTING_LOW_POWER = 'skim.low_power'
SETTING_HAPTIC = 'skim.haptic'


def init_skimguard_state(
    skim_service: SkimGuardService,
    tracker: ObservationTracker,
    obs_queue: queue.Queue
) -> None:
    """Initialize SkimGuard state from app.py."""
    global service, scan_tracker, observation_queue
    service = skim_service
    scan_tracker = tracker
    observation_queue = obs_queue


def _error(message: str, code: int, **extra: Any):
    return jsonify({'status': 'error', 'message': message, **extra}), code


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def _load_scan_config() -> ScanConfig:
    """Operator scan settings, falling back to configured defaults."""
    environment = get_setting(SETTING_ENVIRONMENT, config.DEFAULT_ENVIRONMENT)
    try:
        env = parse_enum(ScanEnvironment, environment, 'environment')
    except ValueError:
        logger.warning(f"Ignoring invalid stored environment: {environment}")
        env = ScanEnvironment.ATM
    return ScanConfig(
        environment=env,
        smart_filter_enabled=bool(get_setting(SETTING_SMART_FILTER, config.SMART_FILTER)),
        rssi_alert_threshold=int(get_setting(SETTING_RSSI_THRESHOLD, config.RSSI_ALERT_THRESHOLD)),
    )


def _scan_config_for(data: dict) -> ScanConfig:
    """Stored scan settings with per-request overrides applied. Raises ValueError."""
    scan = _load_scan_config()
    environment = scan.environment
    smart_filter = scan.smart_filter_enabled
    if data.get('environment') is not None:
        environment = parse_enum(ScanEnvironment, data['environment'], 'environment')
    if data.get('smartFilter') is not None:
        smart_filter = validate_bool(data['smartFilter'], 'smartFilter')
    return ScanConfig(environment, smart_filter, scan.rssi_alert_threshold)


# =============================================================================
# Analysis
# =============================================================================

@skimguard_bp.route('/classify', methods=['POST'])
def classify_name():
    """Classify one advertised device name."""
    data = _json_body()
    name = data.get('name')
    if name is not None and not isinstance(name, str):
        return _error('name must be a string', 400)
    try:
        scan = _scan_config_for(data)
    except ValueError as e:
        return _error(str(e), 400)

    outcome = service.classify(name, scan)
    return jsonify({
        'status': 'success',
        'match': outcome.to_dict() if outcome else None,
        'environment': scan.environment.value,
    })


@skimguard_bp.route('/signal/filter', methods=['POST'])
def filter_reading():
    """Smooth one RSSI reading against the previous estimate."""
    data = _json_body()
    current = data.get('current')
    previous = data.get('previous', NO_READING)

    if not _is_number(current):
        return _error('current must be a number', 400)
    if previous is not NO_READING and not _is_number(previous):
        return _error('previous must be a number or null', 400)

    return jsonify({'status': 'success', 'estimate': filter_signal(current, previous)})


@skimguard_bp.route('/risk', methods=['POST'])
def score_risk():
    """
    Compute a risk verdict.

    Accepts either raw 'observations' (classified here with the current scan
    settings), already classified 'devices', or 'useScan': true to score the
    live scan.
    """
    data = _json_body()
    try:
        scan = _scan_config_for(data)
        checklist = InspectionChecklist.from_dict(data.get('checklist'))
        if data.get('useScan'):
            scan_tracker.drain(observation_queue)
            result = service.analyze(checklist, scan_tracker.snapshot(), scan)
        elif data.get('observations') is not None:
            observations = [EmitterObservation.from_dict(o) for o in data['observations']]
            result = service.analyze(checklist, observations, scan)
        else:
            devices = emitters_from_dicts(data.get('devices') or [])
            result = compute_risk(checklist, devices, scan.environment, service.risk_config)
    except (ValueError, TypeError, AttributeError) as e:
        return _error(f'Invalid risk request: {e}', 400)

    return jsonify({'status': 'success', 'analysis': result.to_dict()})


# =============================================================================
# Live Scan
# =============================================================================

@skimguard_bp.route('/scan/observations', methods=['POST'])
def push_observations():
    """Queue raw wireless observations from the scanner."""
    data = _json_body()
    items = data.get('observations')
    if not isinstance(items, list):
        return _error('observations must be a list', 400)

    queued = 0
    dropped = 0
    for item in items:
        try:
            observation_queue.put_nowait(item)
            queued += 1
        except queue.Full:
            dropped += 1

    if dropped:
        logger.warning(f"Observation queue full, dropped {dropped}")
    return jsonify({'status': 'success', 'queued': queued, 'dropped': dropped})


@skimguard_bp.route('/scan/devices', methods=['GET'])
def scan_devices():
    """Classified snapshot of the live scan."""
    scan = _load_scan_config()
    scan_tracker.drain(observation_queue)

    observations = scan_tracker.snapshot()
    classified = service.classifier.classify_all(
        observations, scan.smart_filter_enabled, scan.environment
    )
    alerts = scan_tracker.proximity_alerts(scan.rssi_alert_threshold)

    return jsonify({
        'status': 'success',
        'observed': len(observations),
        'devices': [d.to_dict() for d in classified],
        'proximityAlerts': [o.identifier for o in alerts],
        'settings': scan.to_dict(),
    })


@skimguard_bp.route('/scan/reset', methods=['POST'])
def reset_scan():
    """Discard the live scan state."""
    while True:
        try:
            observation_queue.get_nowait()
        except queue.Empty:
            break
    scan_tracker.reset()
    return jsonify({'status': 'success'})


# =============================================================================
# Detections
# =============================================================================

@skimguard_bp.route('/detections', methods=['POST'])
def submit_detection():
    """Validate and store a detection record."""
    try:
        record = service.submit_detection(request.get_json(silent=True))
    except ValidationError as e:
        return _error(str(e), 400, rule=e.rule)
    except TransitionError as e:
        return _error(str(e), 400, rule='transition')
    except StorageError as e:
        logger.error(f"Failed to store detection: {e}")
        return _error(str(e), 409 if 'already exists' in str(e) else 500)

    return jsonify({'status': 'success', 'record': record.to_dict()}), 201


@skimguard_bp.route('/detections', methods=['GET'])
def list_detections():
    """All stored records, most recent first. Unreadable records are flagged."""
    entries = service.list_detections()
    return jsonify({
        'status': 'success',
        'count': len(entries),
        'detections': [entry.to_dict() for entry in entries],
    })


@skimguard_bp.route('/detections', methods=['DELETE'])
def purge_detections():
    """Delete every stored record. Requires {"confirm": true}."""
    if _json_body().get('confirm') is not True:
        return _error('Purge requires {"confirm": true}', 400)
    deleted = service.purge()
    return jsonify({'status': 'success', 'deleted': deleted})


@skimguard_bp.route('/detections/<record_id>', methods=['GET'])
def get_detection(record_id: str):
    """Local view of one record, including notes."""
    try:
        record = service.get_detection(validate_record_id(record_id))
    except ValueError as e:
        return _error(str(e), 400)
    except RecordNotFoundError as e:
        return _error(str(e), 404)
    except DecryptionError as e:
        return _error(str(e), 422)
    return jsonify({'status': 'success', 'record': record.to_dict()})


@skimguard_bp.route('/detections/<record_id>/status', methods=['PUT'])
def update_detection_status(record_id: str):
    """Move a record through the custody lifecycle."""
    data = _json_body()
    try:
        record = service.update_status(
            validate_record_id(record_id), data.get('status'), data.get('notes')
        )
    except ValidationError as e:
        return _error(str(e), 400, rule=e.rule)
    except ValueError as e:
        return _error(str(e), 400)
    except RecordNotFoundError as e:
        return _error(str(e), 404)
    except TransitionError as e:
        return _error(str(e), 409, current=e.current, requested=e.requested)
    except DecryptionError as e:
        return _error(str(e), 422)

    return jsonify({'status': 'success', 'record': record.to_dict()})


@skimguard_bp.route('/detections/<record_id>/export', methods=['GET'])
def export_detection(record_id: str):
    """Sanitized record for disclosure. Only CONFIRMED/PUBLISHED records."""
    try:
        disclosure = service.export_detection(validate_record_id(record_id))
    except ValueError as e:
        return _error(str(e), 400)
    except RecordNotFoundError as e:
        return _error(str(e), 404)
    except DisclosureError as e:
        return _error(str(e), 403)
    except DecryptionError as e:
        return _error(str(e), 422)
    return jsonify({'status': 'success', 'record': disclosure})


@skimguard_bp.route('/report', methods=['GET'])
def export_report():
    """Disclosure report of every authorized record."""
    return jsonify({'status': 'success', 'report': service.export_report()})


@skimguard_bp.route('/stats', methods=['GET'])
def get_stats():
    return jsonify({'status': 'success', 'stats': service.get_stats().to_dict()})


@skimguard_bp.route('/sync', methods=['POST'])
def sync_now():
    """Drain the sync queue once. Network failures are reported, not raised."""
    result = service.sync_pending()
    return jsonify({'status': 'success', 'sync': result.to_dict()})


# =============================================================================
# Settings
# =============================================================================

@skimguard_bp.route('/settings', methods=['GET'])
def get_scan_settings():
    scan = _load_scan_config()
    return jsonify({
        'status': 'success',
        'settings': {
            **scan.to_dict(),
            'lowPower': bool(get_setting(SETTING_LOW_POWER, False)),
            'haptic': bool(get_setting(SETTING_HAPTIC, True)),
            'syncEnabled': service.sync_client is not None,
        },
    })


@skimguard_bp.route('/settings', methods=['PUT'])
def update_scan_settings():
    """Update any subset of the operator scan settings."""
    data = _json_body()
    updates: dict[str, Any] = {}
    try:
        if 'environment' in data:
            updates[SETTING_ENVIRONMENT] = parse_enum(
                ScanEnvironment, data['environment'], 'environment'
            ).value
        if 'smartFilter' in data:
            updates[SETTING_SMART_FILTER] = validate_bool(data['smartFilter'], 'smartFilter')
        if 'rssiAlertThreshold' in data:
            threshold = data['rssiAlertThreshold']
            if isinstance(threshold, bool) or not isinstance(threshold, int) \
                    or not MIN_RSSI <= threshold <= MAX_RSSI:
                raise ValueError(f"rssiAlertThreshold must be an integer between {MIN_RSSI} and {MAX_RSSI}")
            updates[SETTING_RSSI_THRESHOLD] = threshold
        if 'lowPower' in data:
            updates[SETTING_LOW_POWER] = validate_bool(data['lowPower'], 'lowPower')
        if 'haptic' in data:
            updates[SETTING_HAPTIC] = validate_bool(data['haptic'], 'haptic')
    except ValueError as e:
        return _error(str(e), 400)

    for key, value in updates.items():
        set_setting(key, value)

    logger.info(f"Updated settings: {', '.join(sorted(updates)) or 'none'}")
    return get_scan_settings()
