"""
Normalized autocorrelation for time-domain pitch estimation.

At low frequencies the spectrum is too coarse to locate a fundamental
precisely, while the period shows up as a sharp correlation maximum. The raw
correlation at lag tau is divided by the geometric mean of the energies of
the two overlapping parts of the frame:

    r(tau) = sum_t x[t] x[t + tau] / sqrt(E_head(tau) * E_tail(tau))

so every lag is compared on equal footing and, by Cauchy-Schwarz, the result
is bounded by [-1, 1] with r(0) = 1 for any non-silent frame.
"""

from dataclasses import dataclass

import numpy as np

from .constants import SAMPLE_RATE
from .errors import ConfigurationError

# Overlap energies below this fraction of the frame energy are treated as silence
_ENERGY_EPSILON = 1e-12


@dataclass(frozen=True)
class CorrelationTrace:
    """Normalized correlation over time lags."""

    lags: np.ndarray  # Lag in samples (0, 1, 2, ...)
    times: np.ndarray  # Lag in seconds
    values: np.ndarray  # Correlation in [-1, 1]

    @property
    def size(self) -> int:
        return len(self.values)


class CorrelationEstimator:
    """
    Computes the normalized autocorrelation of frames.

    The raw correlation is evaluated through zero-padded FFTs (Wiener-Khinchin),
    which gives the same values as the direct sum in O(N log N).
    """

    def __init__(self, sample_rate: int = SAMPLE_RATE, max_lag: int | None = None):
        """
        Initialize estimator.

        Args:
            sample_rate: Audio sample rate in Hz
            max_lag: Largest lag in samples; None uses half the frame length
        """
        if sample_rate <= 0:
            raise ConfigurationError(f"Sample rate must be positive, got {sample_rate}")
        if max_lag is not None and max_lag < 1:
            raise ConfigurationError(f"Maximum lag must be positive, got {max_lag}")
        self.sample_rate = sample_rate
        self.max_lag = max_lag

    def lag_count(self, frame_length: int) -> int:
        """Number of lags (including lag 0) computed for a frame length."""
        if frame_length <= 0:
            return 0
        max_lag = frame_length // 2 if self.max_lag is None else self.max_lag
        return min(max_lag, frame_length - 1) + 1

    def estimate(self, frame: np.ndarray) -> CorrelationTrace:
        """
        Compute the normalized autocorrelation of a frame.

        Args:
            frame: Mono audio samples

        Returns:
            CorrelationTrace for lags 0 .. max_lag
        """
        samples = np.asarray(frame, dtype=np.float64)
        n = len(samples)
        num_lags = self.lag_count(n)
        lags = np.arange(num_lags)
        times = lags / self.sample_rate

        if num_lags == 0:
            return CorrelationTrace(lags=lags, times=times, values=np.zeros(0))

        raw = self._raw_correlation(samples, num_lags)

        # Energies of x[0 : n - tau] and x[tau : n]
        squared = samples**2
        cumulative = np.concatenate(([0.0], np.cumsum(squared)))
        total = cumulative[-1]
        head = cumulative[n - lags]
        tail = total - cumulative[lags]
        norm = np.sqrt(np.maximum(head, 0.0) * np.maximum(tail, 0.0))

        values = np.zeros(num_lags)
        valid = norm > _ENERGY_EPSILON * max(total, np.finfo(float).tiny)
        values[valid] = raw[valid] / norm[valid]
        np.clip(values, -1.0, 1.0, out=values)
        values.setflags(write=False)

        return CorrelationTrace(lags=lags, times=times, values=values)

    @staticmethod
    def _raw_correlation(samples: np.ndarray, num_lags: int) -> np.ndarray:
        """Raw autocorrelation sum_t x[t] x[t + tau] for tau < num_lags."""
        n = len(samples)
        # Zero padding to at least 2n avoids circular wrap-around
        n_fft = 1 << (2 * n - 1).bit_length()
        transformed = np.fft.rfft(samples, n=n_fft)
        power = transformed.real**2 + transformed.imag**2
        return np.fft.irfft(power, n=n_fft)[:num_lags]


def direct_correlation(frame: np.ndarray, num_lags: int) -> np.ndarray:
    """
    Normalized autocorrelation computed with plain sums.

    Reference implementation in O(N * lags), used to check the FFT path.
    """
    samples = np.asarray(frame, dtype=np.float64)
    n = len(samples)
    values = np.zeros(num_lags)
    for lag in range(min(num_lags, n)):
        head = samples[: n - lag]
        tail = samples[lag:]
        norm = np.sqrt(np.dot(head, head) * np.dot(tail, tail))
        if norm > 0:
            values[lag] = np.dot(head, tail) / norm
    return np.clip(values, -1.0, 1.0)
