"""
Deterministic risk engine.

Combines the physical inspection checklist with classified wireless
emitters into a bounded 0-100 score. No clock, no randomness: the same
inputs always replay to the same verdict, which is what makes a stored
analysis auditable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from utils import constants as c
from utils.logging import risk_logger as logger
from utils.skimguard.models import (
    AnalysisResult,
    ClassifiedEmitter,
    DetectionMethod,
    InspectionChecklist,
    ScanEnvironment,
)


def _default_method_weights() -> dict[DetectionMethod, float]:
    return {
        DetectionMethod.EXACT: c.DEVICE_WEIGHT_EXACT,
        DetectionMethod.FUZZY: c.DEVICE_WEIGHT_FUZZY,
        DetectionMethod.HEURISTIC: c.DEVICE_WEIGHT_HEURISTIC,
        DetectionMethod.MANUAL: c.DEVICE_WEIGHT_MANUAL,
    }


def _default_environment_weights() -> dict[ScanEnvironment, float]:
    return {
        ScanEnvironment.ATM: c.ENV_WEIGHT_ATM,
        ScanEnvironment.FUEL_PUMP: c.ENV_WEIGHT_FUEL_PUMP,
        ScanEnvironment.RETAIL_POS: c.ENV_WEIGHT_RETAIL_POS,
        ScanEnvironment.PUBLIC_SPACE: c.ENV_WEIGHT_PUBLIC_SPACE,
    }


@dataclass(frozen=True)
class RiskConfig:
    """All weights and thresholds used by compute_risk()."""
    loose_parts: int = c.WEIGHT_LOOSE_PARTS
    mismatched_material: int = c.WEIGHT_MISMATCHED_MATERIAL
    keypad_obstruction: int = c.WEIGHT_KEYPAD_OBSTRUCTION
    hidden_camera: int = c.WEIGHT_HIDDEN_CAMERA
    manual_wireless_flag: int = c.WEIGHT_MANUAL_WIRELESS_FLAG
    method_weights: dict = field(default_factory=_default_method_weights)
    environment_weights: dict = field(default_factory=_default_environment_weights)
    rssi_near: int = c.RSSI_NEAR_THRESHOLD
    rssi_near_multiplier: float = c.RSSI_NEAR_MULTIPLIER
    rssi_far: int = c.RSSI_FAR_THRESHOLD
    rssi_far_multiplier: float = c.RSSI_FAR_MULTIPLIER
    suspicious_threshold: int = c.SUSPICIOUS_THRESHOLD


DEFAULT_RISK_CONFIG = RiskConfig()


def checklist_score(checklist: InspectionChecklist, config: RiskConfig = DEFAULT_RISK_CONFIG) -> int:
    """Base score from physical inspection flags."""
    score = 0
    if checklist.loose_parts:
        score += config.loose_parts
    if checklist.mismatched_material:
        score += config.mismatched_material
    if checklist.keypad_obstruction:
        score += config.keypad_obstruction
    if checklist.hidden_camera:
        score += config.hidden_camera
    return score


def device_weight(emitter: ClassifiedEmitter, config: RiskConfig = DEFAULT_RISK_CONFIG) -> float:
    """Weight of one emitter by detection confidence, scaled by proximity."""
    weight = config.method_weights.get(emitter.method, c.DEVICE_WEIGHT_MANUAL)
    if emitter.rssi > config.rssi_near:
        weight *= config.rssi_near_multiplier
    elif emitter.rssi < config.rssi_far:
        weight *= config.rssi_far_multiplier
    return weight


def signal_score(
    emitters: Iterable[ClassifiedEmitter],
    environment: ScanEnvironment,
    config: RiskConfig = DEFAULT_RISK_CONFIG
) -> float:
    """
    Wireless contribution: the strongest single threat, not the sum.

    One confirmed nearby threat dominates; a crowd of weak, ambiguous
    emitters must not outscore it.
    """
    strongest = 0.0
    for emitter in emitters:
        if emitter.is_threat:
            strongest = max(strongest, device_weight(emitter, config))
    return strongest * config.environment_weights[environment]


def compute_risk(
    checklist: InspectionChecklist,
    classified_emitters: Iterable[ClassifiedEmitter],
    environment: ScanEnvironment = ScanEnvironment.ATM,
    config: RiskConfig | None = None
) -> AnalysisResult:
    """
    Score a scan.

    Args:
        checklist: Physical inspection flags
        classified_emitters: Output of the threat classifier
        environment: Deployment environment
        config: Weight overrides (defaults from utils.constants)

    Returns:
        AnalysisResult with risk_score in [0, 100]
    """
    config = config or DEFAULT_RISK_CONFIG
    emitters = tuple(classified_emitters)

    score = float(checklist_score(checklist, config))
    score += signal_score(emitters, environment, config)

    # Operator override, independent of classifier output
    if checklist.wireless_signal:
        score += config.manual_wireless_flag

    score = max(float(c.MIN_RISK_SCORE), min(score, float(c.MAX_RISK_SCORE)))
    # Half-up rounding, not banker's rounding
    risk_score = int(score + 0.5)

    result = AnalysisResult(
        checklist=checklist,
        detected_devices=emitters,
        risk_score=risk_score,
        is_suspicious=score > config.suspicious_threshold,
        environment=environment,
    )
    logger.debug(
        f"Risk {risk_score}/100 ({environment.value}, {len(emitters)} emitters, "
        f"suspicious={result.is_suspicious})"
    )
    return result
