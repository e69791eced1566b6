"""Tests for TunerSession, the complete pipeline."""

import numpy as np
import pytest

from instrument_tuner import SAMPLE_RATE
from instrument_tuner.config import TunerConfig
from instrument_tuner.errors import ConfigurationError
from instrument_tuner.frames import ArrayFrameSource
from instrument_tuner.musical_scale import MusicalNote
from instrument_tuner.session import TunerSession
from instrument_tuner.target_note import TuningStatus

A4 = 57


def generate_sine_wave(
    frequency: float,
    duration_samples: int,
    sample_rate: int = SAMPLE_RATE,
    amplitude: float = 0.8,
) -> np.ndarray:
    """Generate a sine wave at the given frequency."""
    t = np.arange(duration_samples) / sample_rate
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float64)


class TestTunerSession:
    """Frames in, tuning verdicts out."""

    def setup_method(self):
        self.config = TunerConfig()
        self.session = TunerSession(self.config)
        self.tone = generate_sine_wave(440.0, SAMPLE_RATE)

    def feed(self, signal: np.ndarray, max_frames: int | None = None) -> list:
        source = ArrayFrameSource(signal, SAMPLE_RATE, self.config.window_size, self.config.overlap)
        return list(self.session.run(source, max_frames=max_frames))

    def test_initial_state(self):
        state = self.session.state
        assert state.change_id == 0
        assert state.frequency is None
        assert state.tuning_status == TuningStatus.UNKNOWN
        assert not state.target.is_available

    def test_a4_in_tune(self):
        state = self.feed(self.tone, max_frames=5)[-1]

        assert state.frequency == pytest.approx(440.0, abs=0.3)
        assert state.target.note_index == A4
        assert state.tuning_status == TuningStatus.IN_TUNE
        assert abs(state.cents_deviation) < 1.0
        assert state.level > 0.0

    def test_detuned_tone(self):
        state = self.feed(generate_sine_wave(446.0, SAMPLE_RATE), max_frames=5)[-1]
        assert state.target.note_index == A4
        assert state.tuning_status == TuningStatus.TOO_HIGH

    def test_max_frames(self):
        assert len(self.feed(self.tone, max_frames=3)) == 3

    def test_change_ids(self):
        """Each part carries the id of the state that last replaced it."""
        first, second = self.feed(self.tone, max_frames=2)

        assert second.change_id == first.change_id + 1
        assert second.analysis_change_id == second.change_id
        assert second.history_change_id == second.change_id
        # Same note detected again: the target is not replaced
        assert second.target_change_id == first.change_id
        assert second.scale_change_id == 0

    def test_states_are_immutable_snapshots(self):
        first = self.feed(self.tone, max_frames=1)[0]
        self.feed(np.zeros(SAMPLE_RATE), max_frames=3)
        assert first.history.size == 1
        assert first.frequency == pytest.approx(440.0, abs=0.5)

    def test_stale_after_silence(self):
        """The reading goes stale but the last target stays."""
        self.feed(self.tone, max_frames=3)
        states = self.feed(np.zeros(SAMPLE_RATE * 2), max_frames=self.config.stale_threshold + 1)

        assert states[0].frequency is not None
        state = states[-1]
        assert state.history.is_stale
        assert state.frequency is None
        assert state.tuning_status == TuningStatus.UNKNOWN
        assert state.target.note_index == A4

    def test_reset(self):
        self.feed(self.tone, max_frames=3)
        state = self.session.reset()
        assert state.history.size == 0
        assert state.frequency is None
        assert state.analysis.estimate is None


class TestSessionSettings:
    def setup_method(self):
        self.session = TunerSession(TunerConfig())
        self.tone = generate_sine_wave(440.0, 2048)

    def test_pin_note_outside_scale(self):
        self.session.process_frame(self.tone)
        state = self.session.pin_note(300)

        assert not state.target.is_part_of_scale
        assert state.tuning_status == TuningStatus.UNKNOWN
        assert state.target_change_id == state.change_id

        state = self.session.process_frame(self.tone)
        assert not state.target.is_part_of_scale

    def test_pin_and_unpin(self):
        state = self.session.pin_note(MusicalNote(7, 4))  # G4
        assert state.target.is_user_defined

        state = self.session.process_frame(self.tone)
        assert state.target.note_index == 55
        assert state.tuning_status == TuningStatus.TOO_HIGH

        self.session.unpin()
        state = self.session.process_frame(self.tone)
        assert state.target.note_index == A4
        assert not state.target.is_user_defined

    def test_strings(self):
        strings = [MusicalNote(4, 2, "E"), MusicalNote(9, 2, "A"), MusicalNote(9, 4, "A")]
        session = TunerSession(TunerConfig(), strings=strings)
        state = session.pin_string(1)
        assert state.target.string_index == 1
        assert str(state.target.note) == "A2"

        state = session.set_strings(None)
        assert not state.target.is_user_defined

    def test_new_reference_frequency(self):
        """A new scale clears the history and moves the scale change id."""
        self.session.process_frame(self.tone)
        state = self.session.set_config(self.session.config.with_changes(reference_frequency=442.0))

        assert state.scale_change_id == state.change_id
        assert state.scale.frequency(A4) == pytest.approx(442.0)
        assert state.history.size == 0
        assert state.target.frequency == pytest.approx(442.0)

    def test_new_tolerance_keeps_history(self):
        self.session.process_frame(self.tone)
        state = self.session.set_config(self.session.config.with_changes(tolerance_cents=20.0))

        assert state.history.size == 1
        assert state.target.tolerance_cents == 20.0
        assert state.scale_change_id == 0

    def test_new_window_size(self):
        self.session.process_frame(self.tone)
        config = self.session.config.with_changes(window_size=4096)
        state = self.session.set_config(config)

        assert state.history.size == 0
        assert state.analysis_change_id == state.change_id
        assert self.session.detector.window_size == 4096

    def test_invalid_config_fails_before_processing(self):
        with pytest.raises(ConfigurationError):
            self.session.config.with_changes(window_size=1000)
        assert self.session.config.window_size == 2048

    def test_reconfigured_during_analysis(self, monkeypatch):
        """A frame analyzed with the replaced detector is not added to the new history."""
        detector = self.session.detector
        analyze = detector.process

        def analyze_then_reconfigure(frame):
            analysis = analyze(frame)
            self.session.set_config(self.session.config.with_changes(window_size=4096))
            return analysis

        monkeypatch.setattr(detector, "process", analyze_then_reconfigure)
        state = self.session.process_frame(self.tone)

        assert state.history.size == 0
        assert state is self.session.state
        assert self.session.detector.window_size == 4096
