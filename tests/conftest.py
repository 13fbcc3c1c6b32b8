"""
Shared test configuration.

Fixtures here give every test module an isolated sqlite database and an
evidence vault with a fixed key.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from utils.skimguard.models import (
    AnalysisResult,
    ClassifiedEmitter,
    DetectionMethod,
    DetectionRecord,
    DetectionStatus,
    GeoLocation,
    InspectionChecklist,
    RiskTier,
    ScanEnvironment,
)

TEST_KEY = bytes(range(32))
SAMPLE_IMAGE = 'data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAAgGBgcGBQgHBwcJCQgKDBQNDAsLDBkSEw8U'


@pytest.fixture
def setup_db(tmp_path):
    """Set up a temporary database."""
    import utils.database as db_module
    from utils.database import init_db

    original_db_path = db_module.DB_PATH
    original_db_dir = db_module.DB_DIR
    db_module.DB_PATH = tmp_path / 'test.db'
    db_module.DB_DIR = tmp_path

    db_module.close_db()
    init_db()

    yield tmp_path

    db_module.close_db()
    db_module.DB_PATH = original_db_path
    db_module.DB_DIR = original_db_dir


@pytest.fixture
def key_provider():
    from utils.skimguard.vault import StaticKeyProvider
    return StaticKeyProvider(TEST_KEY)


@pytest.fixture
def vault(setup_db, key_provider):
    from utils.skimguard.vault import EvidenceCipher, EvidenceVault
    return EvidenceVault(EvidenceCipher(key_provider))


@pytest.fixture
def authority(vault):
    from utils.skimguard.custody import CustodyAuthority
    return CustodyAuthority(vault)


def make_analysis(score=80, suspicious=True, environment=ScanEnvironment.ATM, devices=None):
    """AnalysisResult with a hidden-camera checklist and one HC-06 emitter."""
    if devices is None:
        devices = (
            ClassifiedEmitter(
                identifier='AA:BB:CC:DD:EE:01',
                name='HC-06',
                rssi=-45,
                timestamp=1700000000000,
                is_threat=True,
                risk_tier=RiskTier.HIGH,
                method=DetectionMethod.EXACT,
                threat_label='HC-0x Serial Bluetooth Module',
            ),
        )
    return AnalysisResult(
        checklist=InspectionChecklist(hidden_camera=True),
        detected_devices=tuple(devices),
        risk_score=score,
        is_suspicious=suspicious,
        environment=environment,
    )


def make_record(
    record_id='det-001',
    timestamp=1700000000000,
    status=DetectionStatus.PENDING,
    image_data=SAMPLE_IMAGE,
    **analysis_kwargs
):
    return DetectionRecord(
        id=record_id,
        timestamp=timestamp,
        image_data=image_data,
        analysis=make_analysis(**analysis_kwargs),
        status=status,
        location=GeoLocation(latitude=40.7128, longitude=-74.0060, accuracy=8.5),
        notes='Overlay on card slot',
        device_type='ATM-NCR-6622',
    )


@pytest.fixture
def record_factory():
    return make_record
