"""
Audio frame sources.

Audio arrives in blocks of arbitrary length (sound card callbacks, file
chunks). FrameAssembler turns them into overlapping analysis frames of a fixed
window size, emitted every hop_size samples.
"""

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

import numpy as np

from .errors import ConfigurationError


def hop_size_for(window_size: int, overlap: float) -> int:
    """Samples between frame starts for a window size and overlap fraction."""
    if window_size < 1:
        raise ConfigurationError(f"Window size must be positive, got {window_size}")
    if not 0.0 <= overlap < 1.0:
        raise ConfigurationError(f"overlap must be in [0, 1), got {overlap}")
    return max(1, int(round(window_size * (1.0 - overlap))))


@runtime_checkable
class FrameSource(Protocol):
    """Anything yielding analysis frames at a known sample rate."""

    sample_rate: int

    def __iter__(self) -> Iterator[np.ndarray]: ...


class FrameAssembler:
    """Collects audio blocks and cuts them into overlapping frames."""

    def __init__(self, window_size: int, overlap: float = 0.25):
        """
        Initialize assembler.

        Args:
            window_size: Samples per frame
            overlap: Fraction of a frame shared with the next one
        """
        self.window_size = window_size
        self.hop_size = hop_size_for(window_size, overlap)
        self._buffer = np.zeros(0, dtype=np.float32)

    @property
    def pending(self) -> int:
        """Samples buffered but not yet emitted as a full frame."""
        return len(self._buffer)

    def push(self, block: np.ndarray) -> list[np.ndarray]:
        """
        Add a block of samples.

        Args:
            block: Mono samples; 2D input uses the first channel

        Returns:
            Frames completed by this block, oldest first (possibly empty)
        """
        block = np.asarray(block, dtype=np.float32)
        if block.ndim > 1:
            block = block[:, 0]
        self._buffer = np.concatenate([self._buffer, block])

        frames = []
        while len(self._buffer) >= self.window_size:
            frames.append(self._buffer[: self.window_size].copy())
            self._buffer = self._buffer[self.hop_size :]
        return frames

    def reset(self):
        self._buffer = np.zeros(0, dtype=np.float32)


class ArrayFrameSource:
    """Frames of an in-memory recording."""

    def __init__(self, samples: np.ndarray, sample_rate: int, window_size: int, overlap: float = 0.25):
        samples = np.asarray(samples, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples[:, 0]
        self.samples = samples
        self.sample_rate = sample_rate
        self.window_size = window_size
        self.hop_size = hop_size_for(window_size, overlap)

    def __len__(self) -> int:
        if len(self.samples) < self.window_size:
            return 0
        return (len(self.samples) - self.window_size) // self.hop_size + 1

    def __iter__(self) -> Iterator[np.ndarray]:
        for start in range(0, len(self.samples) - self.window_size + 1, self.hop_size):
            yield self.samples[start : start + self.window_size]

    def frame_times(self) -> np.ndarray:
        """Start time in seconds of each frame."""
        return np.arange(len(self)) * self.hop_size / self.sample_rate
