"""Tests for the deterministic risk engine."""

import itertools

import pytest

from utils.skimguard.models import (
    ClassifiedEmitter,
    DetectionMethod,
    InspectionChecklist,
    RiskTier,
    ScanEnvironment,
)
from utils.skimguard.risk_engine import (
    RiskConfig,
    checklist_score,
    compute_risk,
    device_weight,
)


def _threat(method=DetectionMethod.EXACT, rssi=-60, identifier='AA:00'):
    return ClassifiedEmitter(
        identifier=identifier,
        name='test',
        rssi=rssi,
        timestamp=1700000000000,
        is_threat=True,
        risk_tier=RiskTier.HIGH,
        method=method,
        threat_label='Test Threat',
        matched_keyword='HC06' if method is DetectionMethod.FUZZY else None,
    )


class TestChecklist:

    def test_hidden_camera_only(self):
        result = compute_risk(InspectionChecklist(hidden_camera=True), [], ScanEnvironment.ATM)
        assert result.risk_score == 50
        assert result.is_suspicious is True

    def test_empty_is_clean(self):
        result = compute_risk(InspectionChecklist(), [], ScanEnvironment.ATM)
        assert result.risk_score == 0
        assert result.is_suspicious is False

    def test_flag_weights(self):
        assert checklist_score(InspectionChecklist(loose_parts=True)) == 30
        assert checklist_score(InspectionChecklist(mismatched_material=True)) == 15
        assert checklist_score(InspectionChecklist(keypad_obstruction=True)) == 20

    def test_everything_clamps_to_100(self):
        checklist = InspectionChecklist(True, True, True, True, True)
        assert compute_risk(checklist, [_threat(rssi=-30)]).risk_score == 100

    def test_manual_wireless_flag_is_flat(self):
        result = compute_risk(InspectionChecklist(wireless_signal=True), [], ScanEnvironment.PUBLIC_SPACE)
        assert result.risk_score == 20
        assert result.is_suspicious is False

    def test_threshold_is_strict(self):
        # Exactly 25 is not suspicious
        config = RiskConfig(mismatched_material=25)
        result = compute_risk(InspectionChecklist(mismatched_material=True), [], config=config)
        assert result.risk_score == 25
        assert result.is_suspicious is False


class TestWireless:

    def test_exact_close_in_atm_clamps(self):
        # 50 * 1.5 (close) * 1.5 (ATM) = 112.5 -> 100
        result = compute_risk(InspectionChecklist(), [_threat(rssi=-40)], ScanEnvironment.ATM)
        assert result.risk_score == 100
        assert result.is_suspicious is True

    @pytest.mark.parametrize('rssi,expected', [
        (-40, 75.0),   # stronger than -50
        (-50, 50.0),   # boundary is not "stronger than"
        (-80, 50.0),   # boundary is not "weaker than"
        (-81, 25.0),   # weaker than -80
    ])
    def test_proximity_scaling(self, rssi, expected):
        assert device_weight(_threat(rssi=rssi)) == pytest.approx(expected)

    @pytest.mark.parametrize('method,weight', [
        (DetectionMethod.EXACT, 50),
        (DetectionMethod.FUZZY, 35),
        (DetectionMethod.HEURISTIC, 15),
        (DetectionMethod.MANUAL, 10),
    ])
    def test_method_weights(self, method, weight):
        assert device_weight(_threat(method=method, rssi=-60)) == weight

    def test_maximum_not_sum(self):
        emitters = [_threat(DetectionMethod.HEURISTIC, identifier=str(i)) for i in range(10)]
        # 15 * 1.5 = 22.5, rounds half up
        result = compute_risk(InspectionChecklist(), emitters, ScanEnvironment.ATM)
        assert result.risk_score == 23

    def test_rounds_half_up(self):
        # 35 * 1.5 = 52.5
        result = compute_risk(InspectionChecklist(), [_threat(DetectionMethod.FUZZY)], ScanEnvironment.ATM)
        assert result.risk_score == 53

    @pytest.mark.parametrize('environment,expected', [
        (ScanEnvironment.ATM, 75),
        (ScanEnvironment.FUEL_PUMP, 65),
        (ScanEnvironment.RETAIL_POS, 40),
        (ScanEnvironment.PUBLIC_SPACE, 25),
    ])
    def test_environment_weights(self, environment, expected):
        result = compute_risk(InspectionChecklist(), [_threat()], environment)
        assert result.risk_score == expected

    def test_non_threats_are_ignored(self):
        benign = ClassifiedEmitter(
            identifier='x', name='Sony', rssi=-30, timestamp=1700000000000,
            is_threat=False, risk_tier=RiskTier.LOW, method=DetectionMethod.MANUAL,
        )
        assert compute_risk(InspectionChecklist(), [benign]).risk_score == 0

    def test_far_fuzzy_in_atm_is_suspicious(self):
        # 35 * 0.5 * 1.5 = 26.25
        result = compute_risk(InspectionChecklist(), [_threat(DetectionMethod.FUZZY, rssi=-85)])
        assert result.risk_score == 26
        assert result.is_suspicious is True


class TestResult:

    def test_deterministic(self):
        checklist = InspectionChecklist(loose_parts=True)
        emitters = [_threat(rssi=-70), _threat(DetectionMethod.FUZZY, rssi=-45, identifier='b')]
        assert compute_risk(checklist, emitters) == compute_risk(checklist, emitters)

    def test_devices_are_kept_in_order(self):
        emitters = [_threat(identifier='b'), _threat(identifier='a')]
        result = compute_risk(InspectionChecklist(), emitters)
        assert [d.identifier for d in result.detected_devices] == ['b', 'a']
        assert result.environment == ScanEnvironment.ATM

    def test_to_dict_shape(self):
        data = compute_risk(InspectionChecklist(hidden_camera=True), [_threat()]).to_dict()
        assert set(data) == {'isSuspicious', 'riskScore', 'checklist', 'detectedDevices', 'environment'}
        assert data['detectedDevices'][0]['detectionMethod'] == 'EXACT'

    def test_score_always_in_bounds(self):
        emitter_sets = [
            [],
            [_threat(rssi=-20)],
            [_threat(DetectionMethod.MANUAL, rssi=-100)],
            [_threat(DetectionMethod.FUZZY, rssi=-45), _threat(DetectionMethod.HEURISTIC, rssi=-90)],
        ]
        for flags in itertools.product([False, True], repeat=5):
            checklist = InspectionChecklist(*flags)
            for emitters in emitter_sets:
                for environment in ScanEnvironment:
                    score = compute_risk(checklist, emitters, environment).risk_score
                    assert 0 <= score <= 100
