"""
Threat classifier for wireless emitters.

Matches an advertised device name against the skimmer signature database
using three strategies in strict priority order:

1. Exact signature (regex table of known hardware families)
2. Fuzzy keyword match (bounded Levenshtein distance)
3. Heuristic generic-name match (tier depends on environment)

Anything else is either suppressed as benign (smart filter on) or surfaced
as an unverified inventory item (smart filter off).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from data.skimmer_signatures import (
    FUZZY_KEYWORDS,
    GENERIC_DEVICE_NAMES,
    match_exact_signature,
)
from utils.constants import FUZZY_MAX_NAME_LENGTH, FUZZY_MIN_NAME_LENGTH
from utils.logging import classifier_logger as logger
from utils.skimguard.models import (
    ClassificationOutcome,
    ClassifiedEmitter,
    DetectionMethod,
    EmitterObservation,
    RiskTier,
    ScanEnvironment,
)

_SEPARATORS = re.compile(r'[\s\-_.:]+')

UNVERIFIED_LABEL = 'Unverified Device'
GENERIC_LABEL = 'Generic/Default Device Name'


def normalize_name(name: str | None) -> str:
    """Lowercase a device name and strip separators."""
    if not name:
        return ''
    return _SEPARATORS.sub('', name.lower())


def bounded_levenshtein(a: str, b: str, cap: int) -> int:
    """
    Edit distance between a and b, giving up once it must exceed cap.

    Returns the exact distance when it is <= cap, otherwise cap + 1.
    """
    if a == b:
        return 0
    if abs(len(a) - len(b)) > cap:
        return cap + 1
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        row_min = current[0]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current[j] = min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            )
            if current[j] < row_min:
                row_min = current[j]
        # Every later row is at least this row's minimum
        if row_min > cap:
            return cap + 1
        previous = current

    distance = previous[-1]
    return distance if distance <= cap else cap + 1


def edit_distance(a: str, b: str) -> int:
    """Unbounded Levenshtein distance."""
    return bounded_levenshtein(a, b, max(len(a), len(b)))


def fuzzy_threshold(keyword: str) -> int:
    """Allowed edit distance for a normalized keyword, by its length."""
    if len(keyword) < 6:
        return 1
    if len(keyword) < 10:
        return 2
    return 3


def _fuzzy_tier(distance: int) -> RiskTier:
    if distance == 0:
        return RiskTier.CRITICAL
    if distance == 1:
        return RiskTier.HIGH
    return RiskTier.MED


@dataclass(frozen=True)
class ClassifierConfig:
    """Tunable inputs of the classifier. Defaults come from data/."""
    fuzzy_keywords: tuple[str, ...] = field(default_factory=lambda: tuple(FUZZY_KEYWORDS))
    generic_names: tuple[str, ...] = field(default_factory=lambda: tuple(GENERIC_DEVICE_NAMES))
    # Environments where a generic name is escalated to HIGH
    strict_environments: frozenset = frozenset({ScanEnvironment.ATM, ScanEnvironment.FUEL_PUMP})


class ThreatClassifier:
    """Stateless classifier; safe to share between threads."""

    def __init__(self, config: ClassifierConfig | None = None):
        self.config = config or ClassifierConfig()
        self._keywords = [
            (kw, normalize_name(kw)) for kw in self.config.fuzzy_keywords
        ]
        self._generic = {normalize_name(n) for n in self.config.generic_names}

    def classify(
        self,
        name: str | None,
        smart_filter_enabled: bool,
        environment: ScanEnvironment
    ) -> ClassificationOutcome | None:
        """
        Classify an advertised device name.

        Args:
            name: Raw advertised name (may be empty)
            smart_filter_enabled: Suppress unmatched names instead of
                surfacing them as unverified
            environment: Deployment environment of the terminal

        Returns:
            ClassificationOutcome, or None when suppressed as benign
        """
        raw = name or ''

        signature = match_exact_signature(raw)
        if signature:
            return ClassificationOutcome(
                method=DetectionMethod.EXACT,
                tier=RiskTier(signature.tier),
                label=signature.label,
            )

        normalized = normalize_name(raw)

        fuzzy = self._match_fuzzy(normalized)
        if fuzzy:
            return fuzzy

        # Nameless devices are treated like default names
        if (normalized or 'unnamed') in self._generic:
            tier = RiskTier.HIGH if environment in self.config.strict_environments else RiskTier.MED
            return ClassificationOutcome(
                method=DetectionMethod.HEURISTIC,
                tier=tier,
                label=GENERIC_LABEL,
            )

        if smart_filter_enabled:
            return None

        return ClassificationOutcome(
            method=DetectionMethod.MANUAL,
            tier=RiskTier.LOW,
            label=UNVERIFIED_LABEL,
        )

    def _match_fuzzy(self, normalized: str) -> ClassificationOutcome | None:
        if not FUZZY_MIN_NAME_LENGTH < len(normalized) < FUZZY_MAX_NAME_LENGTH:
            return None

        best: tuple[int, str] | None = None
        for keyword, normalized_kw in self._keywords:
            threshold = fuzzy_threshold(normalized_kw)
            distance = bounded_levenshtein(normalized, normalized_kw, threshold)
            if distance <= threshold and (best is None or distance < best[0]):
                best = (distance, keyword)
                if distance == 0:
                    break

        if best is None:
            return None

        distance, keyword = best
        logger.debug(f"Fuzzy match {normalized!r} ~ {keyword!r} (distance {distance})")
        return ClassificationOutcome(
            method=DetectionMethod.FUZZY,
            tier=_fuzzy_tier(distance),
            label=f'Possible {keyword} variant',
            matched_keyword=keyword,
            distance=distance,
        )

    def classify_observation(
        self,
        observation: EmitterObservation,
        smart_filter_enabled: bool,
        environment: ScanEnvironment
    ) -> ClassifiedEmitter | None:
        """Classify an observation, returning None when suppressed."""
        outcome = self.classify(observation.name, smart_filter_enabled, environment)
        if outcome is None:
            return None
        return ClassifiedEmitter.from_outcome(observation, outcome)

    def classify_all(
        self,
        observations: list[EmitterObservation],
        smart_filter_enabled: bool,
        environment: ScanEnvironment
    ) -> list[ClassifiedEmitter]:
        """Classify a batch, preserving order and dropping suppressed items."""
        results = []
        for observation in observations:
            classified = self.classify_observation(observation, smart_filter_enabled, environment)
            if classified is not None:
                results.append(classified)
        return results


_default_classifier = ThreatClassifier()


def classify(
    name: str | None,
    smart_filter_enabled: bool = True,
    environment: ScanEnvironment = ScanEnvironment.ATM
) -> ClassificationOutcome | None:
    """Classify a device name with the default signature database."""
    return _default_classifier.classify(name, smart_filter_enabled, environment)
