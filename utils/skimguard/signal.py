"""
Signal conditioning for wireless strength readings.

RSSI samples from phone radios jump around by several dB between
advertisements. The adaptive EMA below barely moves on small jitter but
follows a genuine proximity change (operator walking up to the terminal)
within one or two samples.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass

from utils.constants import (
    SIGNAL_ALPHA_LARGE,
    SIGNAL_ALPHA_MEDIUM,
    SIGNAL_ALPHA_SMALL,
    SIGNAL_LARGE_JUMP_DB,
    SIGNAL_MEDIUM_JUMP_DB,
)
from utils.logging import scan_logger as logger
from utils.skimguard.models import EmitterObservation

# Sentinel for "no prior reading"
NO_READING = None


def filter_signal(current: float, previous: float | None) -> float:
    """
    Smooth a raw RSSI sample against the previous estimate.

    Args:
        current: New raw reading (dBm)
        previous: Previous smoothed estimate, or NO_READING on cold start

    Returns:
        New smoothed estimate
    """
    if previous is NO_READING:
        return current

    diff = abs(current - previous)
    if diff > SIGNAL_LARGE_JUMP_DB:
        alpha = SIGNAL_ALPHA_LARGE
    elif diff > SIGNAL_MEDIUM_JUMP_DB:
        alpha = SIGNAL_ALPHA_MEDIUM
    else:
        alpha = SIGNAL_ALPHA_SMALL

    return alpha * current + (1 - alpha) * previous


@dataclass
class TrackedEmitter:
    """Latest state of one emitter during a live scan."""
    observation: EmitterObservation
    smoothed_rssi: float

    def to_observation(self) -> EmitterObservation:
        """Latest observation with the smoothed RSSI substituted."""
        return self.observation.with_rssi(int(round(self.smoothed_rssi)))


class ObservationTracker:
    """
    Incremental consumer of wireless observations for a live scan.

    Observations arrive in any order from the scanner. A repeat sighting of
    the same identifier replaces the previous one; its RSSI is smoothed
    against the previous estimate.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._emitters: dict[str, TrackedEmitter] = {}

    def update(self, observation: EmitterObservation) -> EmitterObservation:
        """
        Apply one observation.

        Returns:
            The stored observation, carrying the smoothed RSSI
        """
        with self._lock:
            tracked = self._emitters.get(observation.identifier)
            if tracked is None:
                tracked = TrackedEmitter(
                    observation=observation,
                    smoothed_rssi=filter_signal(observation.rssi, NO_READING),
                )
                self._emitters[observation.identifier] = tracked
                logger.debug(f"New emitter {observation.identifier} ({observation.name!r})")
            else:
                # Out-of-order sample: keep the newer name/timestamp
                latest = observation if observation.timestamp >= tracked.observation.timestamp \
                    else tracked.observation
                tracked.smoothed_rssi = filter_signal(observation.rssi, tracked.smoothed_rssi)
                tracked.observation = latest
            return tracked.to_observation()

    def drain(self, source: queue.Queue) -> int:
        """
        Consume every observation currently waiting in a queue.

        Returns:
            Number of observations applied
        """
        count = 0
        while True:
            try:
                item = source.get_nowait()
            except queue.Empty:
                break
            if isinstance(item, dict):
                try:
                    item = EmitterObservation.from_dict(item)
                except ValueError as e:
                    logger.warning(f"Dropping malformed observation: {e}")
                    continue
            self.update(item)
            count += 1
        return count

    def snapshot(self) -> list[EmitterObservation]:
        """Current observations (smoothed RSSI), in first-seen order."""
        with self._lock:
            return [t.to_observation() for t in self._emitters.values()]

    def proximity_alerts(self, threshold: int) -> list[EmitterObservation]:
        """Emitters whose smoothed RSSI is stronger than threshold."""
        with self._lock:
            return [
                t.to_observation() for t in self._emitters.values()
                if t.smoothed_rssi > threshold
            ]

    def reset(self) -> None:
        with self._lock:
            self._emitters.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._emitters)
