"""
Configuration of the tuner pipeline.

TunerConfig is immutable and validated on construction, so a bad setting
fails before the first frame is processed. Changed settings are applied by
creating a new config with `with_changes()`.
"""

import dataclasses
from dataclasses import dataclass

from .constants import A4_REFERENCE, DEFAULT_WINDOW_SIZE, FREQUENCY_MIN, SAMPLE_RATE
from .errors import ConfigurationError
from .frames import hop_size_for
from .musical_scale import MusicalNote, MusicalScale
from .pitch_detector import PitchDetectorConfig
from .pitch_history import capacity_for_duration, stale_threshold_for_duration
from .spectrum import validate_window_size
from .temperaments import Temperament, TemperamentType, create_temperament
from .window_function import WindowType

# Selectable tolerances of the settings screen, in cents
TOLERANCES = (1, 2, 3, 5, 7, 10, 15, 20, 25, 30, 40, 50)

# Window sizes 128 * 2**index
NUM_WINDOW_SIZES = 8


def index_to_window_size(index: int) -> int:
    """Window size for a settings index (0 -> 128, 4 -> 2048, 7 -> 16384)."""
    if not 0 <= index < NUM_WINDOW_SIZES:
        raise ConfigurationError(f"Window size index must be in 0..{NUM_WINDOW_SIZES - 1}, got {index}")
    return 2 ** (7 + index)


def index_to_tolerance(index: int) -> int:
    """Tolerance in cents for a settings index."""
    if not 0 <= index < len(TOLERANCES):
        raise ConfigurationError(f"Tolerance index must be in 0..{len(TOLERANCES) - 1}, got {index}")
    return TOLERANCES[index]


@dataclass(frozen=True)
class TunerConfig:
    """
    Settings of a tuning session.

    Attributes:
        sample_rate: Audio sample rate in Hz
        window_size: Samples per analysis frame, power of two (128 to 16384)
        overlap: Fraction of a frame shared with the next one, in [0, 1)
        window_type: Window applied before the spectrum
        min_frequency: Lowest detectable frequency; None uses two periods per
            window (2 * sample_rate / window_size), but at least 16 Hz
        max_frequency: Highest detectable frequency
        noise_floor: Frames with lower mean power are treated as silence
        max_noise: Maximum allowed noise, 1 - required correlation peak height
        harmonic_correction: Resolve octave errors with the spectrum
        moving_average_count: Accepted estimates averaged for the reading
        pitch_history_duration: Seconds of estimates kept in the history
        max_inactive_time: Seconds without pitch before the reading is stale
        tolerance_cents: Half width of the in-tune band
        temperament: Built-in temperament type or a custom Temperament
        root_note: Temperament step of the tonic
        reference_note: Note with the reference frequency, e.g. "A4"
        reference_frequency: Frequency of the reference note in Hz
        prefer_flat: Spell note names with flats
    """

    sample_rate: int = SAMPLE_RATE
    window_size: int = DEFAULT_WINDOW_SIZE
    overlap: float = 0.25
    window_type: WindowType = WindowType.HANN
    min_frequency: float | None = None
    max_frequency: float = 4000.0
    noise_floor: float = 1e-7
    max_noise: float = 0.1
    harmonic_correction: bool = True
    moving_average_count: int = 5
    pitch_history_duration: float = 3.0
    max_inactive_time: float = 0.3
    tolerance_cents: float = 5.0
    temperament: TemperamentType | Temperament = TemperamentType.EDO12
    root_note: int = 0
    reference_note: str | MusicalNote = "A4"
    reference_frequency: float = A4_REFERENCE
    prefer_flat: bool = False

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.sample_rate <= 0:
            raise ConfigurationError(f"sample_rate must be positive, got {self.sample_rate}")
        validate_window_size(self.window_size)
        if not 0.0 <= self.overlap < 1.0:
            raise ConfigurationError(f"overlap must be in [0, 1), got {self.overlap}")
        object.__setattr__(self, "window_type", WindowType.from_name(self.window_type))

        if self.max_frequency > self.sample_rate / 2:
            raise ConfigurationError(
                f"max_frequency ({self.max_frequency}) exceeds the Nyquist frequency"
            )
        if self.effective_min_frequency >= self.max_frequency:
            raise ConfigurationError(
                f"min_frequency ({self.effective_min_frequency}) must be below "
                f"max_frequency ({self.max_frequency})"
            )
        if self.moving_average_count < 1:
            raise ConfigurationError(
                f"moving_average_count must be at least 1, got {self.moving_average_count}"
            )
        if self.pitch_history_duration <= 0:
            raise ConfigurationError(
                f"pitch_history_duration must be positive, got {self.pitch_history_duration}"
            )
        if self.max_inactive_time <= 0:
            raise ConfigurationError(
                f"max_inactive_time must be positive, got {self.max_inactive_time}"
            )
        if not self.tolerance_cents >= 0:
            raise ConfigurationError(f"tolerance_cents must be non-negative, got {self.tolerance_cents}")

        # Detector and scale settings are checked by building them once
        self.detector_config()
        self.create_scale()

    @property
    def effective_min_frequency(self) -> float:
        if self.min_frequency is not None:
            return self.min_frequency
        return max(FREQUENCY_MIN, 2.0 * self.sample_rate / self.window_size)

    @property
    def hop_size(self) -> int:
        """Samples between the starts of two consecutive frames."""
        return hop_size_for(self.window_size, self.overlap)

    @property
    def update_interval(self) -> float:
        """Seconds between two pitch estimates."""
        return self.hop_size / self.sample_rate

    @property
    def pitch_history_capacity(self) -> int:
        return capacity_for_duration(self.pitch_history_duration, self.update_interval)

    @property
    def stale_threshold(self) -> int:
        return stale_threshold_for_duration(self.max_inactive_time, self.update_interval)

    def detector_config(self) -> PitchDetectorConfig:
        return PitchDetectorConfig(
            min_frequency=self.effective_min_frequency,
            max_frequency=self.max_frequency,
            noise_floor=self.noise_floor,
            max_noise=self.max_noise,
            harmonic_correction=self.harmonic_correction,
        )

    def create_temperament(self) -> Temperament:
        if isinstance(self.temperament, Temperament):
            return self.temperament
        return create_temperament(self.temperament)

    def create_scale(self) -> MusicalScale:
        return MusicalScale.from_temperament(
            self.create_temperament(),
            self.reference_note,
            self.reference_frequency,
            root_note=self.root_note,
            prefer_flat=self.prefer_flat,
        )

    def with_changes(self, **changes) -> "TunerConfig":
        """Copy with some settings replaced (validated again)."""
        return dataclasses.replace(self, **changes)

    def scale_settings(self) -> tuple:
        """Settings the musical scale depends on."""
        return (
            self.temperament,
            self.root_note,
            self.reference_note,
            self.reference_frequency,
            self.prefer_flat,
        )

    def analysis_settings(self) -> tuple:
        """Settings the frame analysis depends on."""
        return (self.sample_rate, self.window_size, self.window_type)

    def __str__(self) -> str:
        temperament = self.create_temperament().name
        return (
            f"window={self.window_size} overlap={self.overlap:.2f} "
            f"{self.window_type.value} {temperament} {self.reference_note}={self.reference_frequency} Hz "
            f"tolerance={self.tolerance_cents} cents"
        )


def window_size_for_frequency(lowest_frequency: float, sample_rate: int = SAMPLE_RATE) -> int:
    """Smallest supported window holding two periods of a frequency."""
    if lowest_frequency <= 0:
        raise ConfigurationError(f"Frequency must be positive, got {lowest_frequency}")
    required = 2.0 * sample_rate / lowest_frequency
    for index in range(NUM_WINDOW_SIZES):
        size = index_to_window_size(index)
        if size >= required:
            return size
    return index_to_window_size(NUM_WINDOW_SIZES - 1)
