"""
Musical scale: note indices mapped to frequencies.

A scale is generated from a temperament, a root note (the tonic the
temperament ratios refer to) and a reference note with its frequency, e.g.
A4 = 440 Hz. Note indices count temperament steps from step 0 of octave 0:

    index = octave * steps_per_octave + step

so in 12-tone scales C4 is 48 and A4 is 57. Nothing here assumes twelve
steps per octave.
"""

import logging
import math
import re
from dataclasses import dataclass

import numpy as np

from .constants import CENTS_PER_OCTAVE, FREQUENCY_MAX, FREQUENCY_MIN, NOTE_NAMES, NOTE_NAMES_FLAT
from .errors import ConfigurationError, ScaleInvariantError
from .temperaments import Temperament

logger = logging.getLogger(__name__)

# Pattern to match note names like "C2", "F#3", "Bb4", "A-1"
_NOTE_PATTERN = re.compile(r"^([A-Ga-g])([#b]?)(-?\d+)$")


@dataclass(frozen=True)
class MusicalNote:
    """A note given by its temperament step and octave."""

    step: int
    octave: int
    name: str = ""

    def __str__(self) -> str:
        return f"{self.name or self.step}{self.octave}"


def parse_note(text: str, temperament: Temperament) -> MusicalNote:
    """
    Parse a note like "A4" or "Bb3" for a temperament.

    Names of 12-step temperaments match exactly. For other temperaments the
    step closest (in cents above C) to the 12-tone position of the name is used.

    Raises:
        ConfigurationError: If the text is not a note name
    """
    match = _NOTE_PATTERN.match(text.strip())
    if not match:
        raise ConfigurationError(f"Invalid note name: {text!r}")

    letter, accidental, octave_str = match.groups()
    name = letter.upper() + accidental
    octave = int(octave_str)

    for names in (temperament.note_names, temperament.flat_names):
        if name in names:
            step = names.index(name)
            return MusicalNote(step=step, octave=octave, name=temperament.note_name(step))

    if name in NOTE_NAMES:
        semitone = NOTE_NAMES.index(name)
    elif name in NOTE_NAMES_FLAT:
        semitone = NOTE_NAMES_FLAT.index(name)
    else:
        # E# and similar spellings
        base = NOTE_NAMES.index(letter.upper())
        semitone = base + (1 if accidental == "#" else -1)
        octave += semitone // 12
        semitone %= 12

    target = 100.0 * semitone
    distances = [abs(c - target) for c in temperament.cents]
    # Distance to the next octave's tonic counts too (e.g. B in coarse EDOs)
    if CENTS_PER_OCTAVE - target < min(distances):
        return MusicalNote(step=0, octave=octave + 1, name=temperament.note_name(0))
    step = int(np.argmin(distances))
    return MusicalNote(step=step, octave=octave, name=temperament.note_name(step))


def cents_between(frequency: float, reference: float) -> float:
    """Distance from reference to frequency in cents (positive = higher)."""
    return CENTS_PER_OCTAVE * math.log2(frequency / reference)


class MusicalScale:
    """
    Ordered table of note frequencies for a temperament.

    The supported index range [note_index_begin, note_index_end) contains all
    notes whose frequency lies within [frequency_min, frequency_max].
    Frequencies are strictly increasing with the note index.
    """

    def __init__(
        self,
        temperament: Temperament,
        reference_note: MusicalNote,
        reference_frequency: float,
        root_note: int = 0,
        frequency_min: float = FREQUENCY_MIN,
        frequency_max: float = FREQUENCY_MAX,
        prefer_flat: bool = False,
    ):
        """
        Initialize scale.

        Args:
            temperament: Step ratios within the octave
            reference_note: Note with a known frequency (e.g. A4)
            reference_frequency: Frequency of the reference note in Hz
            root_note: Step of the tonic the temperament ratios refer to
            frequency_min: Lowest frequency of the supported range
            frequency_max: Highest frequency of the supported range
            prefer_flat: Spell note names with flats

        Raises:
            ConfigurationError: For a non-positive reference frequency or an
                empty frequency range
            ScaleInvariantError: If the generated frequencies are not strictly
                increasing
        """
        if not reference_frequency > 0 or not math.isfinite(reference_frequency):
            raise ConfigurationError(
                f"Reference frequency must be positive, got {reference_frequency}"
            )
        if not 0 < frequency_min < frequency_max:
            raise ConfigurationError(
                f"Invalid frequency range {frequency_min} .. {frequency_max}"
            )

        self.temperament = temperament
        self.reference_note = reference_note
        self.reference_frequency = float(reference_frequency)
        self.root_note = root_note % temperament.steps_per_octave
        self.frequency_min = frequency_min
        self.frequency_max = frequency_max
        self.prefer_flat = prefer_flat

        n = temperament.steps_per_octave
        self.reference_index = reference_note.octave * n + reference_note.step
        self._reference_ratio = temperament.ratio(self.reference_index - self.root_note)

        # Candidate range covering the bounds with one octave of margin
        octaves_below = math.ceil(math.log2(self.reference_frequency / frequency_min)) + 1
        octaves_above = math.ceil(math.log2(frequency_max / self.reference_frequency)) + 1
        candidates = np.arange(
            self.reference_index - n * octaves_below,
            self.reference_index + n * octaves_above + 1,
        )
        frequencies = self._frequencies_of(candidates)

        if np.any(np.diff(frequencies) <= 0):
            raise ScaleInvariantError(
                f"Frequencies of scale {temperament.name!r} are not strictly increasing"
            )

        in_range = np.nonzero((frequencies >= frequency_min) & (frequencies <= frequency_max))[0]
        if len(in_range) == 0:
            raise ConfigurationError(
                f"No note of {temperament.name!r} lies within {frequency_min} .. {frequency_max} Hz"
            )

        self.note_index_begin = int(candidates[in_range[0]])
        self.note_index_end = int(candidates[in_range[-1]]) + 1

        self._frequencies = frequencies[in_range[0] : in_range[-1] + 1].copy()
        self._frequencies.setflags(write=False)
        self._log_frequencies = np.log2(self._frequencies)

        logger.debug(
            "Created scale %s: %s = %.2f Hz, indices %d .. %d",
            temperament.name,
            reference_note,
            self.reference_frequency,
            self.note_index_begin,
            self.note_index_end,
        )

    @classmethod
    def from_temperament(
        cls,
        temperament: Temperament,
        reference_note: MusicalNote | str,
        reference_frequency: float,
        root_note: int = 0,
        **kwargs,
    ) -> "MusicalScale":
        """Create a scale; the reference note may be given as a name like "A4"."""
        if isinstance(reference_note, str):
            reference_note = parse_note(reference_note, temperament)
        return cls(temperament, reference_note, reference_frequency, root_note, **kwargs)

    def _frequencies_of(self, indices: np.ndarray) -> np.ndarray:
        ratios = self.temperament.ratio_array(indices - self.root_note)
        return self.reference_frequency * ratios / self._reference_ratio

    @property
    def steps_per_octave(self) -> int:
        return self.temperament.steps_per_octave

    @property
    def num_notes(self) -> int:
        return self.note_index_end - self.note_index_begin

    @property
    def frequencies(self) -> np.ndarray:
        """Frequencies of all supported notes, starting at note_index_begin."""
        return self._frequencies

    def contains(self, index: int) -> bool:
        """Whether a note index lies in the supported range."""
        return self.note_index_begin <= index < self.note_index_end

    def frequency(self, index: int) -> float:
        """
        Frequency of a note index.

        Indices outside the supported range are computed from the same
        temperament formula.
        """
        if self.contains(index):
            return float(self._frequencies[index - self.note_index_begin])
        return float(self._frequencies_of(np.array([index]))[0])

    def nearest_note_index(self, frequency: float) -> int:
        """
        Index of the note closest to a frequency in cents.

        Ties go to the lower index; frequencies outside the table map to the
        first or last supported note.

        Raises:
            ValueError: If the frequency is not positive
        """
        if not frequency > 0 or not math.isfinite(frequency):
            raise ValueError(f"Frequency must be positive, got {frequency}")

        log_frequency = math.log2(frequency)
        position = int(np.searchsorted(self._log_frequencies, log_frequency))
        if position == 0:
            return self.note_index_begin
        if position == len(self._log_frequencies):
            return self.note_index_end - 1

        below = log_frequency - self._log_frequencies[position - 1]
        above = self._log_frequencies[position] - log_frequency
        offset = position - 1 if below <= above else position
        return self.note_index_begin + offset

    def note(self, index: int) -> MusicalNote:
        """Note for an index (need not be inside the supported range)."""
        n = self.steps_per_octave
        step = index % n
        return MusicalNote(
            step=step,
            octave=index // n,
            name=self.temperament.note_name(step, self.prefer_flat),
        )

    def index_of(self, note: MusicalNote) -> int:
        return note.octave * self.steps_per_octave + note.step

    def cents_from_note(self, frequency: float, index: int) -> float:
        """Deviation of a frequency from a note in cents."""
        return cents_between(frequency, self.frequency(index))

    def __repr__(self) -> str:
        return (
            f"MusicalScale({self.temperament.name!r}, {self.reference_note}={self.reference_frequency} Hz, "
            f"root={self.root_note}, indices={self.note_index_begin}..{self.note_index_end})"
        )
