"""
Tuning session: the full pipeline from audio frames to a tuning verdict.

A session owns the detector, the pitch history and the target note matcher.
After every frame or setting change it publishes a new TunerState. States are
immutable and carry one change id per part, so a display only redraws the
parts whose id moved since the state it rendered last.
"""

import logging
import threading
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from itertools import islice

import numpy as np

from .config import TunerConfig
from .frames import FrameSource
from .musical_scale import MusicalNote, MusicalScale
from .pitch_detector import FrameAnalysis, PitchDetector
from .pitch_history import PitchHistory, PitchHistorySnapshot
from .target_note import TargetNote, TargetNoteMatcher, TuningStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TunerState:
    """Published state of a session."""

    change_id: int
    config: TunerConfig
    scale: MusicalScale
    analysis: FrameAnalysis = field(default_factory=FrameAnalysis)
    history: PitchHistorySnapshot = field(default_factory=PitchHistorySnapshot)
    target: TargetNote = field(default_factory=TargetNote)
    tuning_status: TuningStatus = TuningStatus.UNKNOWN
    cents_deviation: float | None = None

    # change_id of the state in which each part was last replaced
    analysis_change_id: int = 0
    history_change_id: int = 0
    target_change_id: int = 0
    scale_change_id: int = 0

    @property
    def frequency(self) -> float | None:
        """Smoothed frequency, None while the reading is stale."""
        if self.history.is_stale:
            return None
        return self.history.averaged_frequency

    @property
    def level(self) -> float:
        return self.analysis.level


class TunerSession:
    """
    Runs frames through detection, smoothing and note matching.

    Frames come from one producer. All mutations are serialized by a lock and
    end with a new `state`; readers on other threads just read the attribute.
    """

    def __init__(self, config: TunerConfig | None = None, strings: Sequence[MusicalNote] | None = None):
        """
        Initialize session.

        Args:
            config: Settings (defaults if None)
            strings: Notes of the instrument's strings, None for chromatic tuning
        """
        self.config = config or TunerConfig()
        self._lock = threading.Lock()

        scale = self.config.create_scale()
        self._detector = self._create_detector(self.config)
        self._history = self._create_history(self.config)
        self._matcher = TargetNoteMatcher(scale, self.config.tolerance_cents, strings)

        self._state = TunerState(
            change_id=0,
            config=self.config,
            scale=scale,
            target=self._matcher.update(None),
        )
        logger.info("Tuner session started: %s", self.config)

    @staticmethod
    def _create_detector(config: TunerConfig) -> PitchDetector:
        return PitchDetector(
            sample_rate=config.sample_rate,
            window_size=config.window_size,
            window_type=config.window_type,
            config=config.detector_config(),
        )

    @staticmethod
    def _create_history(config: TunerConfig) -> PitchHistory:
        return PitchHistory(
            capacity=config.pitch_history_capacity,
            moving_average_count=config.moving_average_count,
            stale_threshold=config.stale_threshold,
        )

    @property
    def state(self) -> TunerState:
        """Latest published state."""
        return self._state

    @property
    def scale(self) -> MusicalScale:
        return self._state.scale

    @property
    def detector(self) -> PitchDetector:
        return self._detector

    def process_frame(self, frame: np.ndarray) -> TunerState:
        """
        Analyze one frame and publish the resulting state.

        Frames without a reliable pitch never raise; they count towards the
        reading going stale.
        """
        with self._lock:
            detector = self._detector
        analysis = detector.process(frame)
        with self._lock:
            if detector is not self._detector:
                # Reconfigured while the frame was analyzed
                logger.debug("Dropping frame analyzed with replaced detector")
                return self._state
            history = self._history.append(analysis.estimate)
            changes = {"analysis": analysis, "history": history}

            frequency = None if history.is_stale else history.averaged_frequency
            if frequency is not None or self._matcher.is_user_defined:
                target = self._matcher.update(frequency)
                if target != self._state.target:
                    changes["target"] = target
            return self._publish(**changes)

    def run(self, source: FrameSource | Iterator[np.ndarray], max_frames: int | None = None) -> Iterator[TunerState]:
        """
        Process frames of a source.

        Args:
            source: Frames to process
            max_frames: Stop after this many frames (None = until exhausted)

        Yields:
            State after each frame
        """
        sample_rate = getattr(source, "sample_rate", None)
        if sample_rate is not None and sample_rate != self.config.sample_rate:
            logger.warning(
                "Source sample rate %d Hz differs from configured %d Hz",
                sample_rate,
                self.config.sample_rate,
            )
        for frame in islice(source, max_frames):
            yield self.process_frame(frame)

    def set_config(self, config: TunerConfig) -> TunerState:
        """
        Apply new settings.

        The history is cleared when the analysis window or the musical scale
        change, since earlier estimates no longer match the new setup.
        """
        with self._lock:
            old = self.config
            self.config = config
            changes = {}

            if config.analysis_settings() != old.analysis_settings() or config.overlap != old.overlap:
                self._detector = self._create_detector(config)
                self._history = self._create_history(config)
                changes["analysis"] = FrameAnalysis()
                changes["history"] = self._history.snapshot
            else:
                self._detector.set_config(config.detector_config())
                if (
                    config.moving_average_count != old.moving_average_count
                    or config.pitch_history_capacity != old.pitch_history_capacity
                    or config.stale_threshold != old.stale_threshold
                ):
                    self._history = self._create_history(config)
                    changes["history"] = self._history.snapshot

            if config.scale_settings() != old.scale_settings():
                changes["scale"] = config.create_scale()
                self._matcher.set_scale(changes["scale"])
                if "history" not in changes:
                    changes["history"] = self._history.clear()

            self._matcher.set_tolerance(config.tolerance_cents)
            changes["target"] = self._retarget()

            logger.info("Tuner session reconfigured: %s", config)
            return self._publish(**changes)

    def pin_note(self, note: int | MusicalNote) -> TunerState:
        """Tune to a fixed note."""
        with self._lock:
            self._matcher.pin_note(note)
            return self._publish(target=self._retarget())

    def pin_string(self, string_index: int) -> TunerState:
        """Tune to one of the instrument's strings."""
        with self._lock:
            self._matcher.pin_string(string_index)
            return self._publish(target=self._retarget())

    def unpin(self) -> TunerState:
        """Return to automatic target selection."""
        with self._lock:
            self._matcher.unpin()
            return self._publish(target=self._retarget())

    def set_strings(self, strings: Sequence[MusicalNote] | None) -> TunerState:
        with self._lock:
            self._matcher.set_strings(strings)
            return self._publish(target=self._retarget())

    def reset(self) -> TunerState:
        """Forget all estimates, e.g. after the input device changed."""
        with self._lock:
            history = self._history.clear()
            return self._publish(analysis=FrameAnalysis(), history=history, target=self._retarget())

    def _retarget(self) -> TargetNote:
        history = self._history.snapshot
        if history.is_stale or history.averaged_frequency is None:
            return self._matcher.target
        return self._matcher.update(history.averaged_frequency)

    def _publish(self, **changes) -> TunerState:
        """Replace the state; the parts passed in get the new change id."""
        previous = self._state
        change_id = previous.change_id + 1

        target = changes.get("target", previous.target)
        history = changes.get("history", previous.history)
        frequency = None if history.is_stale else history.averaged_frequency

        state = TunerState(
            change_id=change_id,
            config=self.config,
            scale=changes.get("scale", previous.scale),
            analysis=changes.get("analysis", previous.analysis),
            history=history,
            target=target,
            tuning_status=target.tuning_status(frequency),
            cents_deviation=target.cents_deviation(frequency),
            analysis_change_id=change_id if "analysis" in changes else previous.analysis_change_id,
            history_change_id=change_id if "history" in changes else previous.history_change_id,
            target_change_id=change_id if "target" in changes else previous.target_change_id,
            scale_change_id=change_id if "scale" in changes else previous.scale_change_id,
        )
        self._state = state
        return state
