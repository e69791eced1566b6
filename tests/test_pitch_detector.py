"""
Tests for PitchDetector using synthetic signals.

These tests generate sine waves at known frequencies and verify that the
detector finds them within a cent, rejects silence, and resolves octave
errors with the help of the spectrum.
"""

import math

import numpy as np
import pytest

from instrument_tuner import SAMPLE_RATE
from instrument_tuner.errors import ConfigurationError
from instrument_tuner.pitch_detector import PitchDetector, PitchDetectorConfig, parabolic_peak


def generate_sine_wave(
    frequency: float,
    duration_samples: int,
    sample_rate: int = SAMPLE_RATE,
    amplitude: float = 0.8,
) -> np.ndarray:
    """Generate a sine wave at the given frequency."""
    t = np.arange(duration_samples) / sample_rate
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float64)


def generate_harmonic_signal(
    fundamental: float,
    amplitudes: list[float],
    duration_samples: int,
    sample_rate: int = SAMPLE_RATE,
) -> np.ndarray:
    """Generate a tone with the given amplitude for each harmonic (first = fundamental)."""
    t = np.arange(duration_samples) / sample_rate
    signal = np.zeros(duration_samples)
    for number, amplitude in enumerate(amplitudes, start=1):
        signal += amplitude * np.sin(2 * np.pi * number * fundamental * t)
    return signal


def cents(frequency: float, reference: float) -> float:
    return 1200.0 * math.log2(frequency / reference)


class TestPitchDetectorBasic:
    """Basic pitch detection tests with pure sine waves."""

    def setup_method(self):
        """Create a fresh detector for each test."""
        self.detector = PitchDetector(SAMPLE_RATE, 2048)

    @pytest.mark.parametrize("frequency", [82.41, 110.0, 261.63, 440.0, 1000.0, 1760.0, 3000.0, 3600.0, 3950.0])
    def test_pure_sine_within_one_cent(self, frequency):
        """Pure tones are detected within 1 cent."""
        analysis = self.detector.process(generate_sine_wave(frequency, 2048))

        assert analysis.valid
        assert abs(cents(analysis.frequency, frequency)) < 1.0

    def test_confidence_of_pure_sine(self):
        analysis = self.detector.process(generate_sine_wave(440.0, 2048))
        assert 0.9 <= analysis.estimate.confidence <= 1.0

    def test_a4_with_phase_offset(self):
        """Detection does not depend on where the frame starts."""
        signal = generate_sine_wave(440.0, 4096)
        analysis = self.detector.process(signal[777 : 777 + 2048])
        assert abs(cents(analysis.frequency, 440.0)) < 1.0

    def test_zero_frame(self):
        analysis = self.detector.process(np.zeros(2048))
        assert analysis.estimate is None
        assert analysis.level == 0.0

    def test_below_noise_floor(self):
        """A tone quieter than the noise floor is rejected."""
        signal = generate_sine_wave(440.0, 2048, amplitude=1e-5)
        assert self.detector.process(signal).estimate is None

    def test_noise_floor_is_configurable(self):
        signal = generate_sine_wave(440.0, 2048, amplitude=1e-5)
        self.detector.set_config(PitchDetectorConfig(min_frequency=43.0, noise_floor=0.0))
        assert self.detector.process(signal).valid

    def test_white_noise(self):
        """Noise has no correlation peak high enough."""
        rng = np.random.default_rng(42)
        assert self.detector.process(rng.normal(scale=0.3, size=2048)).estimate is None

    def test_short_frame(self):
        analysis = self.detector.process(generate_sine_wave(440.0, 20))
        assert analysis.estimate is None
        assert analysis.spectrum is None

    @pytest.mark.parametrize("frequency", [3600.0, 3950.0])
    def test_top_of_range_without_correction(self, frequency):
        """Periods near the smallest lag are found by the correlation alone."""
        self.detector.set_config(PitchDetectorConfig(harmonic_correction=False))
        analysis = self.detector.process(generate_sine_wave(frequency, 2048))
        assert abs(cents(analysis.frequency, frequency)) < 1.0

    @pytest.mark.parametrize("frequency", [4100.0, 4500.0])
    def test_frequency_above_range(self, frequency):
        """A tone above the highest detectable frequency is not reported an octave low."""
        assert self.detector.process(generate_sine_wave(frequency, 2048)).estimate is None

    def test_frequency_below_range(self):
        """A tone below the lowest detectable frequency is not reported."""
        analysis = self.detector.process(generate_sine_wave(30.0, 2048))
        assert analysis.estimate is None or analysis.frequency >= self.detector.config.min_frequency

    def test_longer_frame_uses_trailing_window(self):
        signal = np.concatenate([np.zeros(3000), generate_sine_wave(440.0, 2048)])
        analysis = self.detector.process(signal)
        assert abs(cents(analysis.frequency, 440.0)) < 1.0

    def test_level(self):
        """Level is the RMS of the frame."""
        analysis = self.detector.process(generate_sine_wave(441.0, 2048, amplitude=1.0))
        assert analysis.level == pytest.approx(1.0 / math.sqrt(2.0), rel=1e-2)

    def test_lag_range(self):
        assert self.detector.min_lag == math.ceil(SAMPLE_RATE / 4000.0)
        assert self.detector.max_lag == 1024


class TestOctaveCorrection:
    """A weak fundamental below a strong second harmonic."""

    def setup_method(self):
        self.signal = generate_harmonic_signal(110.0, [0.3, 1.0], 2048)
        self.config = PitchDetectorConfig(
            min_frequency=43.0,
            max_noise=0.3,
            first_peak_ratio=0.8,
        )

    def test_corrected_to_fundamental(self):
        detector = PitchDetector(SAMPLE_RATE, 2048, config=self.config)
        analysis = detector.process(self.signal)
        assert analysis.frequency == pytest.approx(110.0, abs=0.5)

    def test_without_correction(self):
        """Without correction the correlation locks onto the strong harmonic."""
        config = PitchDetectorConfig(
            min_frequency=43.0,
            max_noise=0.3,
            first_peak_ratio=0.8,
            harmonic_correction=False,
        )
        detector = PitchDetector(SAMPLE_RATE, 2048, config=config)
        analysis = detector.process(self.signal)
        # Lands on the second harmonic, within 15 cents
        assert abs(cents(analysis.frequency, 220.0)) < 15.0

    def test_full_harmonic_tone(self):
        """A tone with a normal harmonic series is detected at its fundamental."""
        detector = PitchDetector(SAMPLE_RATE, 2048)
        signal = generate_harmonic_signal(196.0, [1.0, 0.6, 0.4, 0.2], 2048)
        analysis = detector.process(signal)
        assert abs(cents(analysis.frequency, 196.0)) < 2.0


class TestHarmonics:
    def test_harmonics_of_detected_tone(self):
        detector = PitchDetector(SAMPLE_RATE, 4096, config=PitchDetectorConfig(min_frequency=43.0))
        signal = generate_harmonic_signal(220.0, [1.0, 0.5, 0.25], 4096)
        analysis = detector.process(signal)

        numbers = [h.number for h in analysis.harmonics]
        assert numbers[:3] == [1, 2, 3]
        resolution = analysis.spectrum.frequency_resolution
        for harmonic in analysis.harmonics[:3]:
            assert abs(harmonic.frequency - 220.0 * harmonic.number) < resolution

    def test_no_harmonics_without_pitch(self):
        detector = PitchDetector(SAMPLE_RATE, 2048)
        assert detector.process(np.zeros(2048)).harmonics == ()


class TestParabolicPeak:
    def test_symmetric_peak(self):
        position, height = parabolic_peak(np.array([0.0, 1.0, 0.0]), 1)
        assert position == pytest.approx(1.0)
        assert height == pytest.approx(1.0)

    def test_shifted_peak(self):
        # Samples of -(x - 1.25)^2
        values = -((np.arange(3) - 1.25) ** 2)
        position, height = parabolic_peak(values, 1)
        assert position == pytest.approx(1.25)
        assert height == pytest.approx(0.0)

    def test_boundary_and_minimum(self):
        assert parabolic_peak(np.array([1.0, 0.5, 0.0]), 0) is None
        assert parabolic_peak(np.array([1.0, 0.0, 1.0]), 1) is None


class TestPitchDetectorConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_frequency": 0.0},
            {"min_frequency": 500.0, "max_frequency": 400.0},
            {"noise_floor": -1.0},
            {"max_noise": 1.0},
            {"first_peak_ratio": 0.0},
            {"max_subharmonic": 0},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            PitchDetectorConfig(**kwargs)

    def test_correlation_threshold(self):
        assert PitchDetectorConfig(max_noise=0.2).correlation_threshold == pytest.approx(0.8)
