"""Tests for target note selection."""

import math

import pytest

from instrument_tuner.errors import ConfigurationError
from instrument_tuner.musical_scale import MusicalNote, MusicalScale
from instrument_tuner.target_note import TargetNoteMatcher, TuningStatus, tolerance_band
from instrument_tuner.temperaments import TEMPERAMENTS, TemperamentType

A4 = 57

# Standard guitar tuning E2 A2 D3 G3 B3 E4
GUITAR = [
    MusicalNote(4, 2, "E"),
    MusicalNote(9, 2, "A"),
    MusicalNote(2, 3, "D"),
    MusicalNote(7, 3, "G"),
    MusicalNote(11, 3, "B"),
    MusicalNote(4, 4, "E"),
]


def make_scale() -> MusicalScale:
    return MusicalScale.from_temperament(TEMPERAMENTS[TemperamentType.EDO12], "A4", 440.0)


class TestAutomaticTarget:
    """Target follows the detected frequency."""

    def setup_method(self):
        self.matcher = TargetNoteMatcher(make_scale(), tolerance_cents=5.0)

    def test_in_tune(self):
        target = self.matcher.update(439.9)
        assert target.note_index == A4
        assert str(target.note) == "A4"
        assert target.frequency == pytest.approx(440.0)
        assert target.tuning_status(439.9) == TuningStatus.IN_TUNE

    def test_too_high(self):
        target = self.matcher.update(445.0)
        assert target.note_index == A4
        assert target.tuning_status(445.0) == TuningStatus.TOO_HIGH

    def test_too_low(self):
        target = self.matcher.update(436.0)
        assert target.tuning_status(436.0) == TuningStatus.TOO_LOW
        assert target.cents_deviation(436.0) == pytest.approx(1200 * math.log2(436.0 / 440.0))

    def test_tolerance_band(self):
        target = self.matcher.update(440.0)
        lower, upper = tolerance_band(440.0, 5.0)
        assert target.lower_frequency == pytest.approx(lower)
        assert target.upper_frequency == pytest.approx(upper)
        assert target.lower_frequency < 440.0 < target.upper_frequency
        assert not target.is_user_defined

    def test_no_frequency(self):
        target = self.matcher.update(None)
        assert not target.is_available
        assert target.tuning_status(440.0) == TuningStatus.UNKNOWN
        assert target.cents_deviation(440.0) is None

    def test_targets_are_replaced(self):
        first = self.matcher.update(440.0)
        second = self.matcher.update(880.0)
        assert first is not second
        assert first.note_index == A4
        assert second.note_index == A4 + 12

    def test_set_tolerance_recomputes_band(self):
        self.matcher.update(440.0)
        target = self.matcher.set_tolerance(20.0)
        assert target.note_index == A4
        assert target.tolerance_cents == 20.0
        assert target.tuning_status(445.0) == TuningStatus.IN_TUNE

    def test_invalid_tolerance(self):
        with pytest.raises(ConfigurationError):
            self.matcher.set_tolerance(-1.0)


class TestPinnedTarget:
    def setup_method(self):
        self.matcher = TargetNoteMatcher(make_scale(), tolerance_cents=5.0)

    def test_pinned_note_ignores_frequency(self):
        self.matcher.pin_note(MusicalNote(4, 4))  # E4
        target = self.matcher.update(440.0)
        assert target.note_index == 52
        assert target.is_user_defined
        assert target.tuning_status(440.0) == TuningStatus.TOO_HIGH

    def test_pin_outside_scale(self):
        """A pinned note outside the scale range is flagged, whatever is detected."""
        target = self.matcher.pin_note(200)
        assert not target.is_part_of_scale
        assert not target.is_available

        target = self.matcher.update(440.0)
        assert not target.is_part_of_scale
        assert target.tuning_status(440.0) == TuningStatus.UNKNOWN

        target = self.matcher.update(None)
        assert not target.is_part_of_scale

    def test_unpin(self):
        self.matcher.pin_note(50)
        target = self.matcher.unpin()
        assert not target.is_available
        assert not self.matcher.is_user_defined
        assert self.matcher.update(440.0).note_index == A4


class TestStrings:
    def setup_method(self):
        self.matcher = TargetNoteMatcher(make_scale(), tolerance_cents=5.0, strings=GUITAR)

    def test_nearest_string(self):
        target = self.matcher.update(112.0)
        assert target.string_index == 1
        assert str(target.note) == "A2"

    def test_frequency_between_strings(self):
        """Frequencies away from any string still select the closest string."""
        target = self.matcher.update(180.0)
        assert target.string_index == 3  # G3 = 196 Hz is closer than D3 = 146.8 Hz

    def test_pin_string(self):
        target = self.matcher.pin_string(0)
        assert str(target.note) == "E2"
        assert target.is_user_defined
        assert self.matcher.update(440.0).string_index == 0

    def test_pin_missing_string(self):
        with pytest.raises(IndexError):
            self.matcher.pin_string(6)

    def test_strings_outside_scale(self):
        strings = GUITAR + [MusicalNote(0, 11, "C")]
        matcher = TargetNoteMatcher(make_scale(), strings=strings)
        target = matcher.update(440.0)
        assert target.has_strings_not_part_of_scale
        assert target.string_index == 5  # E4 is closest among the valid strings

    def test_set_strings_clears_string_pin(self):
        self.matcher.pin_string(2)
        self.matcher.set_strings(None)
        assert not self.matcher.is_user_defined
        assert self.matcher.update(440.0).string_index is None
