"""
Power spectrum of windowed audio frames.
"""

from dataclasses import dataclass

import numpy as np

from .constants import MAX_WINDOW_SIZE, MIN_WINDOW_SIZE, SAMPLE_RATE
from .errors import ConfigurationError
from .window_function import WindowType, get_window


def is_power_of_two(value: int) -> bool:
    """Check whether an integer is a positive power of two."""
    return value > 0 and (value & (value - 1)) == 0


def validate_window_size(window_size: int) -> int:
    """
    Validate an analysis window size.

    Raises:
        ConfigurationError: If the size is not a power of two within the
            supported range
    """
    if not isinstance(window_size, (int, np.integer)) or not is_power_of_two(int(window_size)):
        raise ConfigurationError(f"Window size must be a power of two, got {window_size}")
    if not MIN_WINDOW_SIZE <= window_size <= MAX_WINDOW_SIZE:
        raise ConfigurationError(
            f"Window size must be between {MIN_WINDOW_SIZE} and {MAX_WINDOW_SIZE}, got {window_size}"
        )
    return int(window_size)


@dataclass(frozen=True)
class Spectrum:
    """Power spectrum of one frame, ordered by ascending frequency."""

    frequencies: np.ndarray  # Bin frequencies in Hz
    squared_amplitudes: np.ndarray  # Power |X|^2 per bin

    @property
    def size(self) -> int:
        return len(self.frequencies)

    @property
    def frequency_resolution(self) -> float:
        """Distance between two bins in Hz."""
        if self.size < 2:
            return 0.0
        return float(self.frequencies[1] - self.frequencies[0])

    @property
    def total_power(self) -> float:
        return float(np.sum(self.squared_amplitudes))

    def bin_index(self, frequency: float) -> int:
        """Index of the bin closest to a frequency (clamped to the spectrum)."""
        resolution = self.frequency_resolution
        if resolution <= 0:
            return 0
        index = int(round(frequency / resolution))
        return min(max(index, 0), self.size - 1)

    def power_near(self, frequency: float, bins: int = 1) -> float:
        """Largest power within `bins` bins of a frequency."""
        center = self.bin_index(frequency)
        low = max(0, center - bins)
        high = min(self.size, center + bins + 1)
        return float(np.max(self.squared_amplitudes[low:high]))


class SpectrumAnalyzer:
    """
    Transforms windowed frames into power spectra.

    The analyzer keeps its window for the configured size; frames of other
    lengths get a window of their own length (cached by the window module).
    """

    def __init__(
        self,
        window_size: int,
        sample_rate: int = SAMPLE_RATE,
        window_type: WindowType = WindowType.HANN,
    ):
        """
        Initialize analyzer.

        Args:
            window_size: FFT size, a power of two (128 to 16384)
            sample_rate: Audio sample rate in Hz
            window_type: Tapering window applied before the FFT

        Raises:
            ConfigurationError: If window size or sample rate are invalid
        """
        self.window_size = validate_window_size(window_size)
        if sample_rate <= 0:
            raise ConfigurationError(f"Sample rate must be positive, got {sample_rate}")
        self.sample_rate = sample_rate
        self.window_type = WindowType.from_name(window_type)

        self._window = get_window(self.window_type, self.window_size)
        self._frequencies = np.fft.rfftfreq(self.window_size, 1.0 / self.sample_rate)
        self._frequencies.setflags(write=False)

    @property
    def frequencies(self) -> np.ndarray:
        """Bin frequencies, bin i at i * sample_rate / window_size."""
        return self._frequencies

    def analyze(self, frame: np.ndarray) -> Spectrum:
        """
        Compute the power spectrum of a frame.

        Args:
            frame: Mono audio samples

        Returns:
            Spectrum with window_size // 2 + 1 bins
        """
        samples = np.asarray(frame, dtype=np.float64)
        if len(samples) >= self.window_size:
            windowed = samples[-self.window_size :] * self._window
        else:
            windowed = samples * get_window(self.window_type, max(len(samples), 1))[: len(samples)]

        transformed = np.fft.rfft(windowed, n=self.window_size)
        power = transformed.real**2 + transformed.imag**2
        power.setflags(write=False)

        return Spectrum(frequencies=self._frequencies, squared_amplitudes=power)
