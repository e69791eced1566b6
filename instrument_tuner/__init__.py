"""
instrument_tuner - Pitch detection and note matching for instrument tuners
"""

from .config import TunerConfig, index_to_tolerance, index_to_window_size
from .constants import A4_REFERENCE, DEFAULT_WINDOW_SIZE, NOTE_NAMES, SAMPLE_RATE
from .correlation import CorrelationEstimator, CorrelationTrace
from .errors import ConfigurationError, ScaleInvariantError
from .frames import ArrayFrameSource, FrameAssembler, FrameSource
from .musical_scale import MusicalNote, MusicalScale, parse_note
from .pitch_detector import FrameAnalysis, PitchDetector, PitchDetectorConfig, PitchEstimate
from .pitch_history import PitchHistory, PitchHistorySnapshot
from .session import TunerSession, TunerState
from .spectrum import Spectrum, SpectrumAnalyzer
from .target_note import TargetNote, TargetNoteMatcher, TuningStatus
from .temperaments import TEMPERAMENTS, Temperament, TemperamentType, create_temperament
from .window_function import WindowType, get_window

__version__ = "0.1.0"
__all__ = [
    "TunerSession",
    "TunerState",
    "TunerConfig",
    "index_to_tolerance",
    "index_to_window_size",
    "PitchDetector",
    "PitchDetectorConfig",
    "PitchEstimate",
    "FrameAnalysis",
    "CorrelationEstimator",
    "CorrelationTrace",
    "SpectrumAnalyzer",
    "Spectrum",
    "WindowType",
    "get_window",
    "PitchHistory",
    "PitchHistorySnapshot",
    "MusicalNote",
    "MusicalScale",
    "parse_note",
    "Temperament",
    "TemperamentType",
    "TEMPERAMENTS",
    "create_temperament",
    "TargetNote",
    "TargetNoteMatcher",
    "TuningStatus",
    "FrameSource",
    "ArrayFrameSource",
    "FrameAssembler",
    "ConfigurationError",
    "ScaleInvariantError",
    "SAMPLE_RATE",
    "DEFAULT_WINDOW_SIZE",
    "A4_REFERENCE",
    "NOTE_NAMES",
]
