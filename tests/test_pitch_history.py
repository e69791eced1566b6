"""Tests for the pitch history module."""

import pytest

from instrument_tuner.errors import ConfigurationError
from instrument_tuner.pitch_detector import PitchEstimate
from instrument_tuner.pitch_history import (
    PitchHistory,
    capacity_for_duration,
    stale_threshold_for_duration,
)


def estimate(frequency: float | None) -> PitchEstimate | None:
    if frequency is None:
        return None
    return PitchEstimate(frequency=frequency, confidence=1.0)


class TestPitchHistory:
    """Moving average and bounded storage."""

    def test_empty_history(self):
        history = PitchHistory(capacity=5)
        assert history.averaged_frequency is None
        assert len(history) == 0
        assert not history.is_stale()

    def test_moving_average_skips_absent_frames(self):
        """Absent frames are excluded and only the latest accepted ones count."""
        history = PitchHistory(capacity=5, moving_average_count=3)
        for frequency in [440.0, 441.0, None, 442.0, 443.0]:
            history.append(estimate(frequency))

        assert history.averaged_frequency == pytest.approx((441.0 + 442.0 + 443.0) / 3)

    def test_single_estimate(self):
        history = PitchHistory(capacity=5)
        snapshot = history.append(estimate(440.0))
        assert snapshot.averaged_frequency == pytest.approx(440.0)
        assert snapshot.current_frequency == pytest.approx(440.0)

    def test_capacity(self):
        """Oldest entries are dropped once the history is full."""
        history = PitchHistory(capacity=3)
        for frequency in [100.0, 200.0, 300.0, 400.0]:
            history.append(estimate(frequency))

        snapshot = history.snapshot
        assert snapshot.size == 3
        assert [e.frequency for e in snapshot.estimates] == [200.0, 300.0, 400.0]
        assert len(snapshot.averaged_values) == 3

    def test_absent_frame_keeps_average(self):
        history = PitchHistory(capacity=5, moving_average_count=2)
        history.append(estimate(440.0))
        snapshot = history.append(None)
        assert snapshot.averaged_frequency == pytest.approx(440.0)
        assert snapshot.current_frequency is None
        assert snapshot.frames_since_accepted == 1

    def test_evicted_estimates_leave_the_average(self):
        history = PitchHistory(capacity=3, moving_average_count=3, stale_threshold=5)
        history.append(estimate(440.0))
        for _ in range(3):
            snapshot = history.append(None)

        assert snapshot.estimates == (None, None, None)
        assert snapshot.averaged_frequency is None

    def test_versions_increase(self):
        history = PitchHistory(capacity=5)
        first = history.append(estimate(440.0))
        second = history.append(None)
        third = history.clear()
        assert first.version < second.version < third.version

    def test_snapshots_are_not_modified(self):
        """Published snapshots stay unchanged by later appends."""
        history = PitchHistory(capacity=5)
        before = history.append(estimate(440.0))
        history.append(estimate(450.0))
        assert before.size == 1
        assert before.averaged_frequency == pytest.approx(440.0)

    def test_clear(self):
        history = PitchHistory(capacity=5)
        history.append(estimate(440.0))
        snapshot = history.clear()
        assert snapshot.size == 0
        assert snapshot.averaged_frequency is None
        assert len(history) == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"capacity": 0},
            {"capacity": 5, "moving_average_count": 0},
            {"capacity": 5, "stale_threshold": 0},
        ],
    )
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ConfigurationError):
            PitchHistory(**kwargs)


class TestStaleness:
    def test_stale_after_threshold(self):
        """Stale once more than stale_threshold frames in a row had no pitch."""
        history = PitchHistory(capacity=10, stale_threshold=2)
        history.append(estimate(440.0))
        history.append(None)
        history.append(None)
        assert not history.is_stale()

        history.append(None)
        assert history.is_stale()

    def test_accepted_estimate_resets(self):
        history = PitchHistory(capacity=10, stale_threshold=1)
        history.append(None)
        history.append(None)
        assert history.is_stale()

        history.append(estimate(440.0))
        assert not history.is_stale()
        assert history.frames_since_accepted == 0


class TestDurations:
    def test_capacity_for_duration(self):
        assert capacity_for_duration(3.0, 0.5) == 6
        assert capacity_for_duration(0.01, 0.5) == 1

    def test_stale_threshold_for_duration(self):
        assert stale_threshold_for_duration(0.5, 0.1) == 5
        assert stale_threshold_for_duration(0.3, 0.035) == 8
        assert stale_threshold_for_duration(0.01, 0.5) == 1

    def test_invalid_interval(self):
        with pytest.raises(ConfigurationError):
            capacity_for_duration(3.0, 0.0)
