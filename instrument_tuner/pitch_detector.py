"""
Fundamental frequency detection from correlation and spectrum.

The correlation peak gives a precise period estimate; the spectrum is used to
catch octave errors, where the correlation locks onto a harmonic because the
fundamental is weak. Every frame is processed independently, so the detector
holds no state beyond its configuration and cached windows.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np
from scipy.signal import find_peaks

from .constants import DEFAULT_WINDOW_SIZE, SAMPLE_RATE
from .correlation import CorrelationEstimator, CorrelationTrace
from .errors import ConfigurationError
from .spectrum import Spectrum, SpectrumAnalyzer
from .window_function import WindowType

logger = logging.getLogger(__name__)

MIN_FRAME_LENGTH = 32


@dataclass(frozen=True)
class PitchEstimate:
    """Detected fundamental frequency of one frame."""

    frequency: float  # Hz, always positive
    confidence: float  # 0.0 to 1.0, higher = sharper and higher correlation peak


@dataclass(frozen=True)
class Harmonic:
    """Spectral peak at an integer multiple of the detected frequency."""

    number: int  # 1 = fundamental
    frequency: float
    power: float


@dataclass(frozen=True)
class FrameAnalysis:
    """Everything the detector derived from one frame."""

    spectrum: Spectrum | None = None
    correlation: CorrelationTrace | None = None
    estimate: PitchEstimate | None = None  # None = no pitch this frame
    harmonics: tuple[Harmonic, ...] = ()
    level: float = 0.0  # RMS of the frame

    @property
    def valid(self) -> bool:
        return self.estimate is not None

    @property
    def frequency(self) -> float | None:
        return self.estimate.frequency if self.estimate is not None else None


@dataclass(frozen=True)
class PitchDetectorConfig:
    """
    Tunable parameters of the pitch detector.

    Attributes:
        min_frequency: Lowest detectable frequency in Hz (sets the largest lag)
        max_frequency: Highest detectable frequency in Hz (sets the smallest lag)
        noise_floor: Frames with a mean power (per sample) below this are rejected
        max_noise: Correlation peaks must reach 1 - max_noise to count
        first_peak_ratio: Earliest correlation peak reaching this fraction of
            the highest peak is taken as the period
        harmonic_correction: Retarget to a lower fundamental seen in the spectrum
        max_subharmonic: Largest divisor checked by the harmonic correction
        subharmonic_power_ratio: Spectral power at f/m relative to f needed to
            accept f/m as the fundamental
        max_harmonics: Number of harmonics reported for display
    """

    min_frequency: float = 2.0 * SAMPLE_RATE / DEFAULT_WINDOW_SIZE
    max_frequency: float = 4000.0
    noise_floor: float = 1e-7
    max_noise: float = 0.1
    first_peak_ratio: float = 0.9
    harmonic_correction: bool = True
    max_subharmonic: int = 4
    subharmonic_power_ratio: float = 0.05
    max_harmonics: int = 8

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.min_frequency <= 0:
            raise ConfigurationError(f"min_frequency must be positive, got {self.min_frequency}")
        if self.max_frequency <= self.min_frequency:
            raise ConfigurationError(
                f"max_frequency ({self.max_frequency}) must exceed min_frequency ({self.min_frequency})"
            )
        if self.noise_floor < 0:
            raise ConfigurationError(f"noise_floor must be non-negative, got {self.noise_floor}")
        if not 0.0 <= self.max_noise < 1.0:
            raise ConfigurationError(f"max_noise must be in [0, 1), got {self.max_noise}")
        if not 0.0 < self.first_peak_ratio <= 1.0:
            raise ConfigurationError(f"first_peak_ratio must be in (0, 1], got {self.first_peak_ratio}")
        if self.max_subharmonic < 1:
            raise ConfigurationError(f"max_subharmonic must be at least 1, got {self.max_subharmonic}")
        if self.subharmonic_power_ratio < 0:
            raise ConfigurationError(
                f"subharmonic_power_ratio must be non-negative, got {self.subharmonic_power_ratio}"
            )
        if self.max_harmonics < 1:
            raise ConfigurationError(f"max_harmonics must be at least 1, got {self.max_harmonics}")

    @property
    def correlation_threshold(self) -> float:
        return 1.0 - self.max_noise


def parabolic_peak(values: np.ndarray, index: int) -> tuple[float, float] | None:
    """
    Refine a discrete maximum by fitting a parabola through three points.

    Args:
        values: Sampled function
        index: Index of the discrete maximum (needs both neighbors)

    Returns:
        (fractional position, interpolated height), or None if the three points
        do not form a maximum
    """
    if index <= 0 or index >= len(values) - 1:
        return None
    y1, y2, y3 = values[index - 1], values[index], values[index + 1]
    denom = y1 - 2 * y2 + y3
    if denom >= 0 or abs(denom) < 1e-12:
        return None
    delta = 0.5 * (y1 - y3) / denom
    if abs(delta) > 1.0:
        return None
    height = y2 - 0.25 * (y1 - y3) * delta
    return index + delta, float(height)


class PitchDetector:
    """
    Single-pitch detector for tuner frames.

    Combines a normalized autocorrelation (time domain, precise at low
    frequencies) with the power spectrum (used to resolve octave errors).
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        window_size: int = DEFAULT_WINDOW_SIZE,
        window_type: WindowType = WindowType.HANN,
        config: PitchDetectorConfig | None = None,
    ):
        """
        Initialize detector.

        Args:
            sample_rate: Audio sample rate in Hz
            window_size: Frame length, power of two
            window_type: Window applied before the spectrum is computed
            config: Detection parameters (defaults if None)
        """
        self.sample_rate = sample_rate
        self.window_size = window_size
        self._spectrum_analyzer = SpectrumAnalyzer(window_size, sample_rate, window_type)
        self._correlation_estimator = CorrelationEstimator(sample_rate)
        self.config = config or PitchDetectorConfig()

    @property
    def window_type(self) -> WindowType:
        return self._spectrum_analyzer.window_type

    @property
    def min_lag(self) -> int:
        """Smallest lag searched, from the highest detectable frequency."""
        return max(1, math.ceil(self.sample_rate / self.config.max_frequency))

    @property
    def max_lag(self) -> int:
        """Largest lag searched, from the lowest detectable frequency."""
        return int(math.floor(self.sample_rate / self.config.min_frequency))

    @property
    def min_frame_length(self) -> int:
        return max(MIN_FRAME_LENGTH, 2 * self.min_lag + 3)

    def set_config(self, config: PitchDetectorConfig):
        self.config = config

    def process(self, frame: np.ndarray) -> FrameAnalysis:
        """
        Analyze a frame.

        Args:
            frame: Mono audio samples; longer frames use the trailing window

        Returns:
            FrameAnalysis with spectrum, correlation and the estimate (None when
            no reliable pitch is present)
        """
        samples = np.asarray(frame, dtype=np.float64).ravel()
        if len(samples) > self.window_size:
            samples = samples[-self.window_size :]

        level = float(np.sqrt(np.mean(samples**2))) if len(samples) else 0.0
        if len(samples) < self.min_frame_length:
            logger.debug("Frame of %d samples is too short for analysis", len(samples))
            return FrameAnalysis(level=level)

        spectrum = self._spectrum_analyzer.analyze(samples)
        correlation = self._correlation_estimator.estimate(samples)
        estimate = self.detect(samples, spectrum, correlation)

        harmonics: tuple[Harmonic, ...] = ()
        if estimate is not None:
            harmonics = self.find_harmonics(spectrum, estimate.frequency)

        return FrameAnalysis(
            spectrum=spectrum,
            correlation=correlation,
            estimate=estimate,
            harmonics=harmonics,
            level=level,
        )

    def detect(
        self,
        frame: np.ndarray,
        spectrum: Spectrum | None,
        correlation: CorrelationTrace,
    ) -> PitchEstimate | None:
        """
        Estimate the fundamental frequency of a frame.

        Args:
            frame: Mono audio samples the analysis was computed from
            spectrum: Power spectrum of the frame (None skips harmonic correction)
            correlation: Normalized autocorrelation of the frame

        Returns:
            PitchEstimate, or None if the frame holds no reliable pitch
        """
        samples = np.asarray(frame, dtype=np.float64)
        if len(samples) < self.min_frame_length:
            return None

        mean_power = float(np.mean(samples**2))
        if mean_power <= 0.0 or mean_power < self.config.noise_floor:
            logger.debug("Frame rejected by noise gate (power %.3g)", mean_power)
            return None

        values = correlation.values
        threshold = self.config.correlation_threshold
        low = self.min_lag
        high = min(self.max_lag, correlation.size - 2)
        if high - low < 2:
            return None

        peak = self._select_peak(values, high, threshold)
        if peak is None:
            logger.debug("No correlation peak above %.2f", threshold)
            return None

        refined = parabolic_peak(values, peak)
        if refined is None:
            return None
        lag, height = refined
        if lag < self.sample_rate / self.config.max_frequency:
            logger.debug("Correlation peak at lag %.2f is above the frequency range", lag)
            return None

        if self.config.harmonic_correction and spectrum is not None:
            lag, height = self._correct_octave_error(lag, height, spectrum, values, high, threshold)

        frequency = self.sample_rate / lag
        return PitchEstimate(frequency=frequency, confidence=self._confidence(values, lag, height))

    def _select_peak(
        self, values: np.ndarray, high: int, threshold: float
    ) -> int | None:
        """Pick the correlation maximum that marks the period."""
        # Lags below the range are searched too, so a period just short of
        # min_lag is rejected instead of locking onto its double
        lags = np.arange(1, high)
        center = values[lags]
        is_peak = (
            (center > values[lags - 1])
            & (center >= values[lags + 1])
            & (center >= threshold)
        )
        peaks = lags[is_peak]
        if len(peaks) == 0:
            return None

        highest = np.max(values[peaks])
        candidates = peaks[values[peaks] >= self.config.first_peak_ratio * highest]
        return int(candidates[0])

    def _correct_octave_error(
        self,
        lag: float,
        height: float,
        spectrum: Spectrum,
        values: np.ndarray,
        high: int,
        threshold: float,
    ) -> tuple[float, float]:
        """
        Retarget to a lower fundamental if the candidate is one of its harmonics.

        The lower frequency f/m must be a separate spectral peak with enough
        power relative to f, and the correlation must peak near m times the lag.
        """
        frequency = self.sample_rate / lag
        resolution = spectrum.frequency_resolution
        if resolution <= 0:
            return lag, height

        power = spectrum.squared_amplitudes
        peak_bins, _ = find_peaks(power)
        if len(peak_bins) == 0:
            return lag, height

        candidate_bin = peak_bins[np.argmin(np.abs(peak_bins - frequency / resolution))]
        candidate_power = spectrum.power_near(frequency)
        if candidate_power <= 0:
            return lag, height

        for divisor in range(self.config.max_subharmonic, 1, -1):
            sub_frequency = frequency / divisor
            sub_lag = lag * divisor
            if sub_frequency < self.config.min_frequency or sub_lag >= high:
                continue

            sub_position = sub_frequency / resolution
            # Too close to the candidate to be resolved as a separate peak
            if frequency / resolution - sub_position < 2.0:
                continue

            near = peak_bins[np.abs(peak_bins - sub_position) <= 1.0]
            near = near[near != candidate_bin]
            if len(near) == 0:
                continue
            if np.max(power[near]) < self.config.subharmonic_power_ratio * candidate_power:
                continue

            refined = self._peak_near(values, sub_lag, high, threshold)
            if refined is None:
                continue

            logger.debug(
                "Octave correction: %.2f Hz -> %.2f Hz (divisor %d)",
                frequency,
                self.sample_rate / refined[0],
                divisor,
            )
            return refined

        return lag, height

    @staticmethod
    def _peak_near(
        values: np.ndarray, lag: float, high: int, threshold: float, search: int = 2
    ) -> tuple[float, float] | None:
        """Interpolated correlation maximum within a few samples of a lag."""
        center = int(round(lag))
        start = max(1, center - search)
        stop = min(high - 1, center + search)
        if start > stop:
            return None
        best = start + int(np.argmax(values[start : stop + 1]))
        if values[best] < threshold:
            return None
        if not (values[best] > values[best - 1] and values[best] >= values[best + 1]):
            return None
        return parabolic_peak(values, best)

    @staticmethod
    def _confidence(values: np.ndarray, lag: float, height: float) -> float:
        """Peak height times its relative depth over the preceding trough."""
        index = int(round(lag))
        trough = float(np.min(values[: index + 1]))
        peak = min(max(height, 0.0), 1.0)
        sharpness = min(max((peak - trough) / 2.0, 0.0), 1.0)
        return peak * sharpness

    def find_harmonics(self, spectrum: Spectrum, frequency: float) -> tuple[Harmonic, ...]:
        """
        Locate spectral peaks at integer multiples of a frequency.

        Args:
            spectrum: Power spectrum of the frame
            frequency: Detected fundamental in Hz

        Returns:
            Harmonics found, ordered by harmonic number
        """
        resolution = spectrum.frequency_resolution
        power = spectrum.squared_amplitudes
        if resolution <= 0 or frequency <= 0 or len(power) < 3:
            return ()

        max_power = float(np.max(power))
        peak_bins, _ = find_peaks(power, height=max_power * 1e-3)
        if len(peak_bins) == 0:
            return ()

        nyquist = spectrum.frequencies[-1]
        tolerance = max(1.0, 0.25 * frequency / resolution)
        harmonics = []
        for number in range(1, self.config.max_harmonics + 1):
            target = number * frequency
            if target > nyquist:
                break
            distance = np.abs(peak_bins - target / resolution)
            nearest = int(np.argmin(distance))
            if distance[nearest] > tolerance:
                continue
            peak_bin = int(peak_bins[nearest])
            refined = parabolic_peak(power, peak_bin)
            if refined is not None:
                position, peak_power = refined
            else:
                position, peak_power = float(peak_bin), float(power[peak_bin])
            harmonics.append(
                Harmonic(number=number, frequency=position * resolution, power=peak_power)
            )
        return tuple(harmonics)
