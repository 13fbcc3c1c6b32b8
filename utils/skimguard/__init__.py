# SkimGuard core: classification, risk scoring, evidence custody
from .models import (
    AnalysisResult,
    ClassificationOutcome,
    ClassifiedEmitter,
    DetectionMethod,
    DetectionRecord,
    DetectionStats,
    DetectionStatus,
    EmitterObservation,
    GeoLocation,
    InspectionChecklist,
    RiskTier,
    ScanConfig,
    ScanEnvironment,
    SyncStatus,
)
from .errors import (
    SkimGuardError,
    ValidationError,
    TransitionError,
    RecordNotFoundError,
    DecryptionError,
    StorageError,
    DisclosureError,
)
from .signal import filter_signal, ObservationTracker
from .classifier import classify, ThreatClassifier
from .risk_engine import compute_risk, RiskConfig
from .vault import (
    EvidenceCipher,
    EvidenceVault,
    FileKeyProvider,
    KeyProvider,
    StaticKeyProvider,
    compute_integrity_hash,
)
from .custody import CustodyAuthority, authorize_export, validate_evidence, validate_transition
from .sync import SyncClient, sync_pending_records
from .service import SkimGuardService, create_service
