"""
Musical temperaments.

A temperament assigns each step of an octave a frequency ratio relative to
the tonic. Equal divisions of the octave (EDO) with any number of steps are
supported, as well as historical 12-step temperaments, most of which are
built from a chain of fifths where selected fifths are narrowed by a fraction
of a comma.
"""

import math
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .constants import CENTS_PER_OCTAVE, NOTE_NAMES, NOTE_NAMES_FLAT
from .errors import ConfigurationError

PURE_FIFTH = CENTS_PER_OCTAVE * math.log2(3.0 / 2.0)
PYTHAGOREAN_COMMA = CENTS_PER_OCTAVE * math.log2(3.0**12 / 2.0**19)
SYNTONIC_COMMA = CENTS_PER_OCTAVE * math.log2(81.0 / 80.0)
SCHISMA = PYTHAGOREAN_COMMA - SYNTONIC_COMMA

# Chain of fifths Eb-Bb-F-C-G-D-A-E-B-F#-C#-G#, starting at Eb (pitch class 3)
_CHAIN_START = 3
_FIFTH_INDEX = {
    name: i
    for i, name in enumerate(
        ["Eb-Bb", "Bb-F", "F-C", "C-G", "G-D", "D-A", "A-E", "E-B", "B-F#", "F#-C#", "C#-G#"]
    )
}


class TemperamentType(Enum):
    """Built-in temperaments."""

    EDO12 = "edo12"
    EDO17 = "edo17"
    EDO19 = "edo19"
    EDO22 = "edo22"
    EDO24 = "edo24"
    EDO27 = "edo27"
    EDO29 = "edo29"
    EDO31 = "edo31"
    EDO41 = "edo41"
    EDO53 = "edo53"
    PYTHAGOREAN = "pythagorean"
    PURE = "pure"
    QUARTER_COMMA_MEANTONE = "quarter_comma_meantone"
    THIRD_COMMA_MEANTONE = "third_comma_meantone"
    FIFTH_COMMA_MEANTONE = "fifth_comma_meantone"
    WERCKMEISTER_III = "werckmeister_iii"
    KIRNBERGER_III = "kirnberger_iii"
    VALLOTTI = "vallotti"
    YOUNG_II = "young_ii"


@dataclass(frozen=True)
class Temperament:
    """
    Ratios of the steps of one octave relative to the tonic.

    Attributes:
        name: Display name
        cents: Position of each step above the tonic in cents, starting at 0
        note_names: Name of each step (sharp spelling)
        flat_names: Name of each step (flat spelling)
    """

    name: str
    cents: tuple[float, ...]
    note_names: tuple[str, ...] = ()
    flat_names: tuple[str, ...] = ()
    ratios: tuple[float, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate steps and fill in derived values."""
        if len(self.cents) == 0:
            raise ConfigurationError(f"Temperament {self.name!r} has no steps")
        cents = np.asarray(self.cents, dtype=np.float64)
        if not np.all(np.isfinite(cents)):
            raise ConfigurationError(f"Temperament {self.name!r} has non-finite steps")
        if abs(cents[0]) > 1e-9:
            raise ConfigurationError(f"Temperament {self.name!r} must start at the tonic (0 cents)")
        if np.any(np.diff(cents) <= 0):
            raise ConfigurationError(f"Temperament {self.name!r} steps must be strictly increasing")
        if cents[-1] >= CENTS_PER_OCTAVE:
            raise ConfigurationError(f"Temperament {self.name!r} steps must lie within one octave")

        object.__setattr__(self, "cents", tuple(float(c) for c in cents))
        object.__setattr__(self, "ratios", tuple(float(r) for r in 2.0 ** (cents / CENTS_PER_OCTAVE)))

        if not self.note_names:
            object.__setattr__(self, "note_names", _default_note_names(self.cents))
        elif len(self.note_names) != len(self.cents):
            raise ConfigurationError(
                f"Temperament {self.name!r} has {len(self.note_names)} names for {len(self.cents)} steps"
            )
        if not self.flat_names:
            object.__setattr__(self, "flat_names", self.note_names)
        elif len(self.flat_names) != len(self.cents):
            raise ConfigurationError(f"Temperament {self.name!r} has a wrong number of flat names")

    @classmethod
    def from_cents(
        cls,
        name: str,
        cents: list[float] | tuple[float, ...],
        note_names: list[str] | tuple[str, ...] = (),
    ) -> "Temperament":
        """Create a temperament from step positions in cents."""
        return cls(name=name, cents=tuple(cents), note_names=tuple(note_names))

    @classmethod
    def from_ratios(
        cls,
        name: str,
        ratios: list[float] | tuple[float, ...],
        note_names: list[str] | tuple[str, ...] = (),
    ) -> "Temperament":
        """Create a temperament from frequency ratios relative to the tonic."""
        ratios_arr = np.asarray(ratios, dtype=np.float64)
        if len(ratios_arr) == 0:
            raise ConfigurationError(f"Temperament {name!r} has no steps")
        if np.any(ratios_arr <= 0):
            raise ConfigurationError(f"Temperament {name!r} ratios must be positive")
        cents = CENTS_PER_OCTAVE * np.log2(ratios_arr)
        return cls(name=name, cents=tuple(cents), note_names=tuple(note_names))

    @classmethod
    def edo(cls, steps: int, name: str | None = None) -> "Temperament":
        """Equal division of the octave into `steps` steps."""
        if steps < 1:
            raise ConfigurationError(f"EDO needs at least one step, got {steps}")
        cents = [CENTS_PER_OCTAVE * k / steps for k in range(steps)]
        if steps == 12:
            return cls(
                name=name or "12-tone equal temperament",
                cents=tuple(cents),
                note_names=tuple(NOTE_NAMES),
                flat_names=tuple(NOTE_NAMES_FLAT),
            )
        return cls(name=name or f"{steps}-tone equal temperament", cents=tuple(cents))

    @property
    def steps_per_octave(self) -> int:
        return len(self.cents)

    def ratio(self, step: int) -> float:
        """Ratio of a step relative to the tonic; steps beyond the octave double per octave."""
        n = self.steps_per_octave
        return self.ratios[step % n] * 2.0 ** (step // n)

    def ratio_array(self, steps: np.ndarray) -> np.ndarray:
        """Vectorized version of ratio()."""
        steps = np.asarray(steps, dtype=np.int64)
        n = self.steps_per_octave
        return np.asarray(self.ratios)[steps % n] * 2.0 ** (steps // n)

    def note_name(self, step: int, prefer_flat: bool = False) -> str:
        names = self.flat_names if prefer_flat else self.note_names
        return names[step % self.steps_per_octave]


def _default_note_names(cents: tuple[float, ...]) -> tuple[str, ...]:
    """Nearest 12-tone name plus deviation in cents, e.g. "C#-37"."""
    names = []
    for position in cents:
        semitone = int(round(position / 100.0))
        deviation = position - 100.0 * semitone
        base = NOTE_NAMES[semitone % 12]
        names.append(base if abs(deviation) < 0.5 else f"{base}{deviation:+.0f}")
    return tuple(names)


def _twelve_tone(name: str, cents: list[float]) -> Temperament:
    return Temperament(
        name=name,
        cents=tuple(cents),
        note_names=tuple(NOTE_NAMES),
        flat_names=tuple(NOTE_NAMES_FLAT),
    )


def _from_fifths(narrowing: dict[str, float] | float) -> list[float]:
    """
    Step positions (relative to C) from a chain of fifths.

    Args:
        narrowing: Cents by which each fifth is narrower than pure, either per
            fifth (missing fifths stay pure) or one value for all fifths
    """
    if isinstance(narrowing, dict):
        deviations = [0.0] * len(_FIFTH_INDEX)
        for fifth, amount in narrowing.items():
            deviations[_FIFTH_INDEX[fifth]] = amount
    else:
        deviations = [narrowing] * len(_FIFTH_INDEX)

    positions = [0.0]
    for deviation in deviations:
        positions.append(positions[-1] + PURE_FIFTH - deviation)

    cents = [0.0] * 12
    for k, position in enumerate(positions):
        cents[(_CHAIN_START + 7 * k) % 12] = position
    tonic = cents[0]
    return [(c - tonic) % CENTS_PER_OCTAVE for c in cents]


def create_temperament(temperament_type: TemperamentType) -> Temperament:
    """
    Create a built-in temperament.

    Args:
        temperament_type: Which temperament

    Returns:
        Temperament with C as step 0
    """
    if not isinstance(temperament_type, TemperamentType):
        raise ConfigurationError(f"Unknown temperament: {temperament_type!r}")

    if temperament_type.value.startswith("edo"):
        return Temperament.edo(int(temperament_type.value[3:]))

    if temperament_type == TemperamentType.PYTHAGOREAN:
        return _twelve_tone("Pythagorean", _from_fifths(0.0))
    if temperament_type == TemperamentType.PURE:
        ratios = [1, 16 / 15, 9 / 8, 6 / 5, 5 / 4, 4 / 3, 45 / 32, 3 / 2, 8 / 5, 5 / 3, 9 / 5, 15 / 8]
        return _twelve_tone("Pure (just intonation)", [CENTS_PER_OCTAVE * math.log2(r) for r in ratios])
    if temperament_type == TemperamentType.QUARTER_COMMA_MEANTONE:
        return _twelve_tone("Quarter-comma meantone", _from_fifths(SYNTONIC_COMMA / 4))
    if temperament_type == TemperamentType.THIRD_COMMA_MEANTONE:
        return _twelve_tone("Third-comma meantone", _from_fifths(SYNTONIC_COMMA / 3))
    if temperament_type == TemperamentType.FIFTH_COMMA_MEANTONE:
        return _twelve_tone("Fifth-comma meantone", _from_fifths(SYNTONIC_COMMA / 5))
    if temperament_type == TemperamentType.WERCKMEISTER_III:
        quarter = PYTHAGOREAN_COMMA / 4
        return _twelve_tone(
            "Werckmeister III",
            _from_fifths({"C-G": quarter, "G-D": quarter, "D-A": quarter, "B-F#": quarter}),
        )
    if temperament_type == TemperamentType.KIRNBERGER_III:
        quarter = SYNTONIC_COMMA / 4
        return _twelve_tone(
            "Kirnberger III",
            _from_fifths(
                {"C-G": quarter, "G-D": quarter, "D-A": quarter, "A-E": quarter, "F#-C#": SCHISMA}
            ),
        )
    if temperament_type == TemperamentType.VALLOTTI:
        sixth = PYTHAGOREAN_COMMA / 6
        return _twelve_tone(
            "Vallotti",
            _from_fifths({f: sixth for f in ["F-C", "C-G", "G-D", "D-A", "A-E", "E-B"]}),
        )
    sixth = PYTHAGOREAN_COMMA / 6
    return _twelve_tone(
        "Young II",
        _from_fifths({f: sixth for f in ["C-G", "G-D", "D-A", "A-E", "E-B", "B-F#"]}),
    )


TEMPERAMENTS = {t: create_temperament(t) for t in TemperamentType}
