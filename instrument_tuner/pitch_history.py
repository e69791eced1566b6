"""
Temporal smoothing of pitch estimates.

This module keeps a bounded history of per-frame estimates and averages the
most recent accepted frequencies, which turns jittery frame-by-frame
detections into a stable tuner reading. Frames without a pitch are recorded
too, so consumers can tell when the reading has gone stale.
"""

import math
import threading
from collections import deque
from dataclasses import dataclass

import numpy as np

from .errors import ConfigurationError
from .pitch_detector import PitchEstimate


@dataclass(frozen=True)
class PitchHistorySnapshot:
    """Immutable view of the history, replaced on every change."""

    version: int = 0  # Increases with every append or clear
    estimates: tuple[PitchEstimate | None, ...] = ()  # Oldest first, None = no pitch
    averaged_frequency: float | None = None  # None if no accepted estimate exists
    averaged_values: tuple[float, ...] = ()  # Averaged frequency after each accepted frame
    frames_since_accepted: int = 0  # Consecutive frames without pitch
    is_stale: bool = False

    @property
    def size(self) -> int:
        return len(self.estimates)

    @property
    def current_frequency(self) -> float | None:
        """Frequency of the latest frame, None if it had no pitch."""
        if not self.estimates or self.estimates[-1] is None:
            return None
        return self.estimates[-1].frequency


class PitchHistory:
    """
    Ring buffer of pitch estimates with a moving average.

    A single writer appends estimates; readers use `snapshot`, which is
    replaced (never modified) on each update and can be read from any thread
    without locking.
    """

    def __init__(self, capacity: int, moving_average_count: int = 5, stale_threshold: int = 1):
        """
        Initialize history.

        Args:
            capacity: Maximum number of estimates kept
            moving_average_count: Number of most recent accepted estimates averaged
            stale_threshold: The reading is stale once more than this many
                consecutive frames had no pitch
        """
        if capacity < 1:
            raise ConfigurationError(f"capacity must be at least 1, got {capacity}")
        if moving_average_count < 1:
            raise ConfigurationError(
                f"moving_average_count must be at least 1, got {moving_average_count}"
            )
        if stale_threshold < 1:
            raise ConfigurationError(f"stale_threshold must be at least 1, got {stale_threshold}")

        self.capacity = capacity
        self.moving_average_count = moving_average_count
        self.stale_threshold = stale_threshold

        self._lock = threading.Lock()
        self._estimates: deque[PitchEstimate | None] = deque(maxlen=capacity)
        self._averaged_values: deque[float] = deque(maxlen=capacity)
        self._frames_since_accepted = 0
        self._snapshot = PitchHistorySnapshot()

    @property
    def snapshot(self) -> PitchHistorySnapshot:
        """Latest published state."""
        return self._snapshot

    @property
    def averaged_frequency(self) -> float | None:
        return self._snapshot.averaged_frequency

    @property
    def frames_since_accepted(self) -> int:
        return self._snapshot.frames_since_accepted

    def __len__(self) -> int:
        return self._snapshot.size

    def append(self, estimate: PitchEstimate | None) -> PitchHistorySnapshot:
        """
        Add the estimate of a new frame.

        Args:
            estimate: Detected pitch, or None if the frame had none

        Returns:
            The new snapshot
        """
        with self._lock:
            self._estimates.append(estimate)
            if estimate is None:
                self._frames_since_accepted += 1
            else:
                self._frames_since_accepted = 0
                self._averaged_values.append(self._average())
            return self._publish()

    def clear(self) -> PitchHistorySnapshot:
        """Remove all estimates (e.g. after the scale or input device changed)."""
        with self._lock:
            self._estimates.clear()
            self._averaged_values.clear()
            self._frames_since_accepted = 0
            return self._publish()

    def is_stale(self) -> bool:
        """True once too many consecutive frames had no pitch."""
        return self._snapshot.is_stale

    def _average(self) -> float | None:
        """Mean of the latest accepted frequencies still held in the buffer."""
        accepted = [e.frequency for e in reversed(self._estimates) if e is not None]
        if not accepted:
            return None
        return float(np.mean(accepted[: self.moving_average_count]))

    def _publish(self) -> PitchHistorySnapshot:
        snapshot = PitchHistorySnapshot(
            version=self._snapshot.version + 1,
            estimates=tuple(self._estimates),
            averaged_frequency=self._average(),
            averaged_values=tuple(self._averaged_values),
            frames_since_accepted=self._frames_since_accepted,
            is_stale=self._frames_since_accepted > self.stale_threshold,
        )
        self._snapshot = snapshot
        return snapshot


def capacity_for_duration(duration: float, update_interval: float) -> int:
    """Number of frames covering a duration in seconds (at least 1)."""
    if update_interval <= 0:
        raise ConfigurationError(f"update_interval must be positive, got {update_interval}")
    return max(1, int(round(duration / update_interval)))


def stale_threshold_for_duration(max_inactive_time: float, update_interval: float) -> int:
    """Number of frames without pitch tolerated before a reading counts as stale."""
    if update_interval <= 0:
        raise ConfigurationError(f"update_interval must be positive, got {update_interval}")
    return max(1, int(math.floor(max_inactive_time / update_interval)))
