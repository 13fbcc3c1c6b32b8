"""
Data model for skimmer detections.

Plain dataclasses with to_dict()/from_dict() helpers. Wire keys are
camelCase so persisted payloads stay readable by older SkimGuard clients.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable

from utils.constants import DEFAULT_RSSI_ALERT_THRESHOLD
from utils.validation import (
    validate_accuracy,
    validate_latitude,
    validate_longitude,
    validate_rssi,
    validate_timestamp,
)


# =============================================================================
# Enums
# =============================================================================

class DetectionStatus(Enum):
    """Lifecycle status of a detection record."""
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CLEARED = 'CLEARED'
    PUBLISHED = 'PUBLISHED'


class SyncStatus(Enum):
    """Upload state of a detection record."""
    SYNCED = 'SYNCED'
    PENDING = 'PENDING'
    FAILED = 'FAILED'


class ScanEnvironment(Enum):
    """Deployment environment of the inspected terminal."""
    ATM = 'ATM'                    # High sensitivity, strict isolation
    FUEL_PUMP = 'FUEL_PUMP'        # High sensitivity, industrial interference
    RETAIL_POS = 'RETAIL_POS'      # Medium sensitivity, expects peripherals
    PUBLIC_SPACE = 'PUBLIC_SPACE'  # Low sensitivity, high noise


class DetectionMethod(Enum):
    """How a wireless emitter was classified."""
    EXACT = 'EXACT'          # Signature table match
    FUZZY = 'FUZZY'          # Bounded edit distance to a keyword
    HEURISTIC = 'HEURISTIC'  # Generic/default device name
    MANUAL = 'MANUAL'        # Unverified, surfaced for operator audit


class RiskTier(Enum):
    """Risk tier of a classified emitter."""
    LOW = 'LOW'
    MED = 'MED'
    HIGH = 'HIGH'
    CRITICAL = 'CRITICAL'


# Older payloads used REGEX for signature matches
_LEGACY_ENUM_VALUES = {
    DetectionMethod: {'REGEX': 'EXACT'},
    RiskTier: {'MEDIUM': 'MED'},
}


def parse_enum(enum_cls: type[Enum], value: Any, name: str | None = None) -> Any:
    """Parse an enum member from a member, value or name (case-insensitive)."""
    if isinstance(value, enum_cls):
        return value
    label = name or enum_cls.__name__
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} is required")
    raw = value.strip().upper()
    raw = _LEGACY_ENUM_VALUES.get(enum_cls, {}).get(raw, raw)
    try:
        return enum_cls(raw)
    except ValueError as e:
        allowed = ', '.join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {label}: {value} (expected one of {allowed})") from e


# =============================================================================
# Inspection / Observation
# =============================================================================

@dataclass(frozen=True)
class InspectionChecklist:
    """Physical inspection flags set by the operator before analysis."""
    loose_parts: bool = False
    mismatched_material: bool = False
    hidden_camera: bool = False
    keypad_obstruction: bool = False
    wireless_signal: bool = False  # Operator flagged a signal manually

    def to_dict(self) -> dict:
        return {
            'looseParts': self.loose_parts,
            'mismatchedMaterial': self.mismatched_material,
            'hiddenCamera': self.hidden_camera,
            'keypadObstruction': self.keypad_obstruction,
            'wirelessSignal': self.wireless_signal,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> 'InspectionChecklist':
        data = data or {}

        def flag(*keys: str) -> bool:
            for key in keys:
                if key in data:
                    return bool(data[key])
            return False

        return cls(
            loose_parts=flag('looseParts', 'loose_parts'),
            mismatched_material=flag('mismatchedMaterial', 'mismatchedColors', 'mismatched_material'),
            hidden_camera=flag('hiddenCamera', 'hidden_camera'),
            keypad_obstruction=flag('keypadObstruction', 'keypad_obstruction'),
            wireless_signal=flag('wirelessSignal', 'bluetoothSignal', 'wireless_signal'),
        )


@dataclass(frozen=True)
class EmitterObservation:
    """A single sighting of a wireless emitter."""
    identifier: str
    name: str
    rssi: int
    timestamp: int  # epoch milliseconds

    def with_rssi(self, rssi: int) -> 'EmitterObservation':
        return replace(self, rssi=rssi)

    def to_dict(self) -> dict:
        return {
            'id': self.identifier,
            'name': self.name,
            'rssi': self.rssi,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'EmitterObservation':
        identifier = data.get('id') or data.get('identifier')
        if not identifier or not isinstance(identifier, str):
            raise ValueError("Observation identifier is required")
        return cls(
            identifier=identifier,
            name=str(data.get('name') or ''),
            rssi=validate_rssi(data.get('rssi')),
            timestamp=validate_timestamp(data.get('timestamp')),
        )


# =============================================================================
# Classification
# =============================================================================

@dataclass(frozen=True)
class ClassificationOutcome:
    """Result of matching a device name against the signature database."""
    method: DetectionMethod
    tier: RiskTier
    label: str
    matched_keyword: str | None = None  # FUZZY only
    distance: int | None = None         # FUZZY only

    def to_dict(self) -> dict:
        result = {
            'method': self.method.value,
            'tier': self.tier.value,
            'label': self.label,
        }
        if self.method is DetectionMethod.FUZZY:
            result['matchedKeyword'] = self.matched_keyword
            result['distance'] = self.distance
        return result


@dataclass(frozen=True)
class ClassifiedEmitter:
    """An observation plus its classification. Never mutated after creation."""
    identifier: str
    name: str
    rssi: int
    timestamp: int
    is_threat: bool
    risk_tier: RiskTier
    method: DetectionMethod
    threat_label: str | None = None
    matched_keyword: str | None = None

    def __post_init__(self) -> None:
        if self.is_threat != (self.threat_label is not None):
            raise ValueError("threat_label must be present iff is_threat")
        if (self.method is DetectionMethod.FUZZY) != (self.matched_keyword is not None):
            raise ValueError("matched_keyword must be present iff method is FUZZY")

    @classmethod
    def from_outcome(
        cls,
        observation: EmitterObservation,
        outcome: ClassificationOutcome
    ) -> 'ClassifiedEmitter':
        return cls(
            identifier=observation.identifier,
            name=observation.name,
            rssi=observation.rssi,
            timestamp=observation.timestamp,
            is_threat=True,
            risk_tier=outcome.tier,
            method=outcome.method,
            threat_label=outcome.label,
            matched_keyword=outcome.matched_keyword,
        )

    def to_dict(self) -> dict:
        result = {
            'id': self.identifier,
            'name': self.name,
            'rssi': self.rssi,
            'timestamp': self.timestamp,
            'isThreat': self.is_threat,
            'riskTier': self.risk_tier.value,
            'detectionMethod': self.method.value,
        }
        if self.threat_label is not None:
            result['threatLabel'] = self.threat_label
        if self.matched_keyword is not None:
            result['matchedKeyword'] = self.matched_keyword
        return result

    @classmethod
    def from_dict(cls, data: dict) -> 'ClassifiedEmitter':
        observation = EmitterObservation.from_dict(data)
        label = data.get('threatLabel', data.get('threatType'))
        method = parse_enum(DetectionMethod, data.get('detectionMethod') or 'MANUAL', 'detection method')
        return cls(
            identifier=observation.identifier,
            name=observation.name,
            rssi=observation.rssi,
            timestamp=observation.timestamp,
            is_threat=bool(data.get('isThreat', label is not None)),
            risk_tier=parse_enum(RiskTier, data.get('riskTier') or 'LOW', 'risk tier'),
            method=method,
            threat_label=label,
            matched_keyword=(data.get('matchedKeyword') or '') if method is DetectionMethod.FUZZY else None,
        )


# =============================================================================
# Analysis / Record
# =============================================================================

@dataclass(frozen=True)
class AnalysisResult:
    """Risk verdict for one scan. Computed once, immutable."""
    checklist: InspectionChecklist
    detected_devices: tuple[ClassifiedEmitter, ...]
    risk_score: int
    is_suspicious: bool
    environment: ScanEnvironment

    def to_dict(self) -> dict:
        return {
            'isSuspicious': self.is_suspicious,
            'riskScore': self.risk_score,
            'checklist': self.checklist.to_dict(),
            'detectedDevices': [d.to_dict() for d in self.detected_devices],
            'environment': self.environment.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AnalysisResult':
        score = data.get('riskScore')
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValueError(f"Invalid risk score: {score}")
        # Scores are whole points; 80.0 is accepted, 100.7 and Infinity are not
        if isinstance(score, float) and not score.is_integer():
            raise ValueError(f"Risk score must be a whole number, got {score}")
        return cls(
            checklist=InspectionChecklist.from_dict(data.get('checklist')),
            detected_devices=tuple(
                ClassifiedEmitter.from_dict(d) for d in data.get('detectedDevices') or []
            ),
            risk_score=int(score),
            is_suspicious=bool(data.get('isSuspicious', False)),
            environment=parse_enum(ScanEnvironment, data.get('environment') or 'ATM', 'environment'),
        )


@dataclass(frozen=True)
class GeoLocation:
    """Capture location of a detection."""
    latitude: float
    longitude: float
    accuracy: float | None = None

    def to_dict(self) -> dict:
        result = {'latitude': self.latitude, 'longitude': self.longitude}
        if self.accuracy is not None:
            result['accuracy'] = self.accuracy
        return result

    @classmethod
    def from_dict(cls, data: dict | None) -> 'GeoLocation | None':
        if not data:
            return None
        accuracy = data.get('accuracy')
        return cls(
            latitude=validate_latitude(data.get('latitude')),
            longitude=validate_longitude(data.get('longitude')),
            accuracy=validate_accuracy(accuracy) if accuracy is not None else None,
        )


@dataclass(frozen=True)
class DetectionRecord:
    """A captured incident: image evidence, location and risk analysis."""
    id: str
    timestamp: int
    image_data: str
    analysis: AnalysisResult
    status: DetectionStatus = DetectionStatus.PENDING
    sync_status: SyncStatus = SyncStatus.PENDING
    location: GeoLocation | None = None
    notes: str | None = None
    device_type: str | None = None

    def evolve(self, **changes: Any) -> 'DetectionRecord':
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def payload_dict(self) -> dict:
        """Fields stored inside the encrypted payload."""
        return {
            'analysis': self.analysis.to_dict(),
            'imageData': self.image_data,
            'location': self.location.to_dict() if self.location else None,
            'notes': self.notes,
            'deviceType': self.device_type,
        }

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'timestamp': self.timestamp,
            'status': self.status.value,
            'syncStatus': self.sync_status.value,
            **self.payload_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'DetectionRecord':
        analysis = data.get('analysis')
        if not isinstance(analysis, dict):
            raise ValueError("Analysis result is required")
        image = data.get('imageData')
        timestamp = data.get('timestamp')
        return cls(
            id=str(data.get('id') or ''),
            timestamp=validate_timestamp(timestamp) if timestamp else 0,
            image_data=image if isinstance(image, str) else '',
            analysis=AnalysisResult.from_dict(analysis),
            status=parse_enum(DetectionStatus, data.get('status') or 'PENDING', 'status'),
            sync_status=parse_enum(SyncStatus, data.get('syncStatus') or 'PENDING', 'sync status'),
            location=GeoLocation.from_dict(data.get('location')),
            notes=data.get('notes') or None,
            device_type=data.get('deviceType') or None,
        )


@dataclass
class DetectionStats:
    """Dashboard counters."""
    total_scans: int = 0
    high_risk: int = 0
    confirmed: int = 0
    pending_sync: int = 0
    corrupted: int = 0

    def to_dict(self) -> dict:
        return {
            'totalScans': self.total_scans,
            'highRisk': self.high_risk,
            'confirmed': self.confirmed,
            'pendingSync': self.pending_sync,
            'corrupted': self.corrupted,
        }


@dataclass(frozen=True)
class ScanConfig:
    """Operator scan settings, passed explicitly into the core."""
    environment: ScanEnvironment = ScanEnvironment.ATM
    smart_filter_enabled: bool = True
    rssi_alert_threshold: int = DEFAULT_RSSI_ALERT_THRESHOLD

    def to_dict(self) -> dict:
        return {
            'environment': self.environment.value,
            'smartFilter': self.smart_filter_enabled,
            'rssiAlertThreshold': self.rssi_alert_threshold,
        }


def emitters_from_dicts(items: Iterable[dict]) -> list[ClassifiedEmitter]:
    """Parse a list of classified emitter dicts."""
    return [ClassifiedEmitter.from_dict(item) for item in items]

