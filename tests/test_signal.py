"""Tests for RSSI smoothing and the live observation tracker."""

import queue

import pytest

from utils.skimguard.models import EmitterObservation
from utils.skimguard.signal import NO_READING, ObservationTracker, filter_signal


def _obs(identifier='AA:BB:CC:00:00:01', name='HC-06', rssi=-60, timestamp=1700000000000):
    return EmitterObservation(identifier=identifier, name=name, rssi=rssi, timestamp=timestamp)


class TestFilterSignal:
    """Tests for the adaptive EMA."""

    def test_cold_start_returns_current(self):
        assert filter_signal(-72, NO_READING) == -72

    def test_large_jump_follows_quickly(self):
        # diff 12 > 10 -> alpha 0.7
        assert filter_signal(-40, -52) == pytest.approx(-43.6)

    def test_medium_jump(self):
        # diff 6 > 5 -> alpha 0.4
        assert filter_signal(-60, -66) == pytest.approx(-63.6)

    def test_small_jitter_barely_moves(self):
        # diff 2 -> alpha 0.1
        assert filter_signal(-70, -72) == pytest.approx(-71.8)

    def test_boundaries_use_lower_band(self):
        # Exactly 10 is not > 10, exactly 5 is not > 5
        assert filter_signal(-50, -60) == pytest.approx(-56.0)
        assert filter_signal(-55, -60) == pytest.approx(-59.5)

    def test_zero_previous_is_a_reading(self):
        assert filter_signal(-4, 0) == pytest.approx(-0.4)

    def test_equal_readings_are_stable(self):
        assert filter_signal(-65, -65) == pytest.approx(-65)


class TestObservationTracker:
    """Tests for incremental observation handling."""

    def test_repeat_observation_replaces(self):
        tracker = ObservationTracker()
        tracker.update(_obs(rssi=-60))
        stored = tracker.update(_obs(rssi=-40, timestamp=1700000001000))

        assert len(tracker) == 1
        # diff 20 -> alpha 0.7: 0.7 * -40 + 0.3 * -60 = -46
        assert stored.rssi == -46
        assert tracker.snapshot()[0].timestamp == 1700000001000

    def test_out_of_order_keeps_newer_identity(self):
        tracker = ObservationTracker()
        tracker.update(_obs(name='HC-06', timestamp=1700000005000))
        tracker.update(_obs(name='old-name', timestamp=1700000001000))

        snapshot = tracker.snapshot()
        assert snapshot[0].name == 'HC-06'
        assert snapshot[0].timestamp == 1700000005000

    def test_snapshot_preserves_first_seen_order(self):
        tracker = ObservationTracker()
        tracker.update(_obs(identifier='b'))
        tracker.update(_obs(identifier='a'))
        tracker.update(_obs(identifier='b', rssi=-61))

        assert [o.identifier for o in tracker.snapshot()] == ['b', 'a']

    def test_drain_parses_dicts_and_drops_malformed(self):
        tracker = ObservationTracker()
        q = queue.Queue()
        q.put({'id': 'x1', 'name': 'JDY-08', 'rssi': -55, 'timestamp': 1700000000000})
        q.put({'name': 'no id', 'rssi': -55, 'timestamp': 1700000000000})
        q.put({'id': 'x2', 'name': 'bad rssi', 'rssi': 'loud', 'timestamp': 1700000000000})
        q.put(_obs(identifier='x3'))

        applied = tracker.drain(q)

        assert applied == 2
        assert q.empty()
        assert {o.identifier for o in tracker.snapshot()} == {'x1', 'x3'}

    def test_drain_empty_queue(self):
        tracker = ObservationTracker()
        assert tracker.drain(queue.Queue()) == 0
        assert len(tracker) == 0

    def test_proximity_alerts_use_smoothed_rssi(self):
        tracker = ObservationTracker()
        tracker.update(_obs(identifier='near', rssi=-45))
        tracker.update(_obs(identifier='far', rssi=-85))
        # One strong spike on 'far' is not enough to cross -60
        tracker.update(_obs(identifier='far', rssi=-58, timestamp=1700000001000))

        alerts = tracker.proximity_alerts(-60)
        assert [o.identifier for o in alerts] == ['near']

    def test_reset(self):
        tracker = ObservationTracker()
        tracker.update(_obs())
        tracker.reset()
        assert len(tracker) == 0
        assert tracker.snapshot() == []
