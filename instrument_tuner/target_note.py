"""
Target note selection and tuning verdict.

The target is either pinned by the user (a note or one of the instrument's
strings) or follows the detected frequency: the nearest note of the musical
scale, or the nearest string when an instrument supplies its string notes.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from .constants import CENTS_PER_OCTAVE
from .errors import ConfigurationError
from .musical_scale import MusicalNote, MusicalScale, cents_between

logger = logging.getLogger(__name__)


class TuningStatus(Enum):
    """Verdict of a frequency relative to the target note's tolerance band."""

    TOO_LOW = "too_low"
    IN_TUNE = "in_tune"
    TOO_HIGH = "too_high"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TargetNote:
    """
    The note currently tuned to.

    A target without frequency is unavailable: nothing is detected yet, or the
    pinned note is not part of the musical scale.
    """

    note_index: int | None = None
    note: MusicalNote | None = None
    frequency: float | None = None  # Center frequency in Hz
    lower_frequency: float | None = None  # Lower edge of the tolerance band
    upper_frequency: float | None = None  # Upper edge of the tolerance band
    tolerance_cents: float = 0.0
    is_user_defined: bool = False  # Pinned by the user instead of auto-selected
    string_index: int | None = None  # Instrument string this target belongs to
    is_part_of_scale: bool = True  # False if the requested note is outside the scale
    has_strings_not_part_of_scale: bool = False

    @property
    def is_available(self) -> bool:
        return self.frequency is not None

    def tuning_status(self, frequency: float | None) -> TuningStatus:
        """
        Classify a frequency against the tolerance band.

        Args:
            frequency: Detected frequency in Hz, None if nothing is detected

        Returns:
            TuningStatus, UNKNOWN without frequency or target
        """
        if frequency is None or frequency <= 0 or not self.is_available:
            return TuningStatus.UNKNOWN
        if frequency < self.lower_frequency:
            return TuningStatus.TOO_LOW
        if frequency > self.upper_frequency:
            return TuningStatus.TOO_HIGH
        return TuningStatus.IN_TUNE

    def cents_deviation(self, frequency: float | None) -> float | None:
        """Deviation of a frequency from the target in cents."""
        if frequency is None or frequency <= 0 or not self.is_available:
            return None
        return cents_between(frequency, self.frequency)


def tolerance_band(frequency: float, tolerance_cents: float) -> tuple[float, float]:
    """Lower and upper frequency within tolerance_cents of a frequency."""
    factor = 2.0 ** (tolerance_cents / CENTS_PER_OCTAVE)
    return frequency / factor, frequency * factor


class TargetNoteMatcher:
    """
    Chooses the target note for detected frequencies.

    Every call to update() returns a new TargetNote; the previous one is
    never modified.
    """

    def __init__(
        self,
        scale: MusicalScale,
        tolerance_cents: float = 5.0,
        strings: Sequence[MusicalNote] | None = None,
    ):
        """
        Initialize matcher.

        Args:
            scale: Musical scale providing notes and frequencies
            tolerance_cents: Half width of the in-tune band in cents
            strings: Notes of the instrument's strings; None for chromatic
                instruments, where every scale note is a target
        """
        self.scale = scale
        self.tolerance_cents = self._validate_tolerance(tolerance_cents)
        self.strings: tuple[MusicalNote, ...] | None = tuple(strings) if strings else None

        self._pinned_index: int | None = None
        self._pinned_string: int | None = None
        self._target = TargetNote(tolerance_cents=self.tolerance_cents)

    @staticmethod
    def _validate_tolerance(tolerance_cents: float) -> float:
        if not tolerance_cents >= 0 or not math.isfinite(tolerance_cents):
            raise ConfigurationError(f"Tolerance must be non-negative, got {tolerance_cents}")
        return float(tolerance_cents)

    @property
    def target(self) -> TargetNote:
        """Most recently computed target."""
        return self._target

    @property
    def is_user_defined(self) -> bool:
        return self._pinned_index is not None or self._pinned_string is not None

    def set_scale(self, scale: MusicalScale) -> TargetNote:
        self.scale = scale
        return self.refresh()

    def set_tolerance(self, tolerance_cents: float) -> TargetNote:
        self.tolerance_cents = self._validate_tolerance(tolerance_cents)
        return self.refresh()

    def set_strings(self, strings: Sequence[MusicalNote] | None) -> TargetNote:
        """Set the instrument's string notes (None = chromatic)."""
        self.strings = tuple(strings) if strings else None
        self._pinned_string = None
        # String numbers of the old instrument mean nothing for the new one
        self._target = TargetNote(tolerance_cents=self.tolerance_cents)
        return self.refresh()

    def pin_note(self, note: int | MusicalNote) -> TargetNote:
        """Use a fixed note as target, regardless of the detected frequency."""
        index = self.scale.index_of(note) if isinstance(note, MusicalNote) else int(note)
        self._pinned_index = index
        self._pinned_string = None
        logger.debug("Pinned target note index %d", index)
        return self.refresh()

    def pin_string(self, string_index: int) -> TargetNote:
        """Use the note of an instrument string as target."""
        if self.strings is None or not 0 <= string_index < len(self.strings):
            raise IndexError(f"No string with index {string_index}")
        self._pinned_string = string_index
        self._pinned_index = None
        return self.refresh()

    def unpin(self) -> TargetNote:
        """Return to automatic target selection; the target is empty until the next update."""
        self._pinned_index = None
        self._pinned_string = None
        self._target = TargetNote(
            tolerance_cents=self.tolerance_cents,
            has_strings_not_part_of_scale=self._has_invalid_strings(self.string_indices()),
        )
        return self._target

    def refresh(self) -> TargetNote:
        """
        Recompute the current target after a setting changed.

        Pinned targets are rebuilt from the pin; an automatic target keeps its
        note until the next detected frequency.
        """
        string_indices = self.string_indices()
        if self.is_user_defined:
            return self.update(None)

        index = self._target.note_index
        string_index = self._target.string_index
        if string_index is not None:
            index = string_indices[string_index]
        self._target = self._make_target(index, string_index, self._has_invalid_strings(string_indices))
        return self._target

    def _has_invalid_strings(self, string_indices: list[int]) -> bool:
        return any(not self.scale.contains(i) for i in string_indices)

    def string_indices(self) -> list[int]:
        """Note indices of the strings in the current scale."""
        if self.strings is None:
            return []
        return [self.scale.index_of(note) for note in self.strings]

    def update(self, frequency: float | None) -> TargetNote:
        """
        Recompute the target for a detected frequency.

        Args:
            frequency: Detected (usually averaged) frequency, None if absent

        Returns:
            The new TargetNote
        """
        string_indices = self.string_indices()
        invalid_strings = self._has_invalid_strings(string_indices)

        index = None
        string_index = None
        if self._pinned_string is not None:
            string_index = self._pinned_string
            index = string_indices[string_index]
        elif self._pinned_index is not None:
            index = self._pinned_index
        elif frequency is not None and frequency > 0:
            string_index = self._nearest_string(frequency, string_indices)
            if string_index is not None:
                index = string_indices[string_index]
            else:
                index = self.scale.nearest_note_index(frequency)

        self._target = self._make_target(index, string_index, invalid_strings)
        return self._target

    def _nearest_string(self, frequency: float, string_indices: list[int]) -> int | None:
        """String whose note is closest in cents; None for chromatic instruments."""
        best = None
        best_distance = math.inf
        for i, index in enumerate(string_indices):
            if not self.scale.contains(index):
                continue
            distance = abs(cents_between(frequency, self.scale.frequency(index)))
            if distance < best_distance:
                best = i
                best_distance = distance
        return best

    def _make_target(
        self, index: int | None, string_index: int | None, invalid_strings: bool
    ) -> TargetNote:
        if index is None:
            return TargetNote(
                tolerance_cents=self.tolerance_cents,
                has_strings_not_part_of_scale=invalid_strings,
            )

        if not self.scale.contains(index):
            return TargetNote(
                note_index=index,
                note=self.scale.note(index),
                tolerance_cents=self.tolerance_cents,
                is_user_defined=self.is_user_defined,
                string_index=string_index,
                is_part_of_scale=False,
                has_strings_not_part_of_scale=invalid_strings,
            )

        frequency = self.scale.frequency(index)
        lower, upper = tolerance_band(frequency, self.tolerance_cents)
        return TargetNote(
            note_index=index,
            note=self.scale.note(index),
            frequency=frequency,
            lower_frequency=lower,
            upper_frequency=upper,
            tolerance_cents=self.tolerance_cents,
            is_user_defined=self.is_user_defined,
            string_index=string_index,
            is_part_of_scale=True,
            has_strings_not_part_of_scale=invalid_strings,
        )
