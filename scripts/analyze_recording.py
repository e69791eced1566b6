"""
Analyze recorded audio with the tuner pipeline.

Recordings are mono float arrays saved with numpy (.npy). Each file is run
frame by frame through a TunerSession, and the script reports the detected
note, the median frequency and how stable the reading was. With --plot the
pitch track, the cents deviation and the spectrum of the last voiced frame
are saved as PNG next to the recording.

Usage:
    python analyze_recording.py recordings/*.npy
    python analyze_recording.py take1.npy --window-size 4096 --plot
    python analyze_recording.py --record 3 --output a4.npy
"""

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from instrument_tuner import SAMPLE_RATE, TunerConfig, TunerSession
from instrument_tuner.frames import ArrayFrameSource

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the tuner pipeline on recorded audio.")
    parser.add_argument("files", nargs="*", type=Path, help="Recordings (.npy) to analyze")
    parser.add_argument("--sample-rate", type=int, default=SAMPLE_RATE, help="Sample rate of the recordings")
    parser.add_argument("--window-size", type=int, default=2048, help="Analysis window, power of two (default: 2048)")
    parser.add_argument("--overlap", type=float, default=0.25, help="Frame overlap in [0, 1) (default: 0.25)")
    parser.add_argument("--reference", type=float, default=440.0, help="Frequency of A4 (default: 440)")
    parser.add_argument("--tolerance", type=float, default=5.0, help="In-tune tolerance in cents (default: 5)")
    parser.add_argument("--plot", action="store_true", help="Save a PNG with pitch track and spectrum per file")
    parser.add_argument("--record", type=float, default=None, help="Record this many seconds from the microphone first")
    parser.add_argument("--output", type=Path, default=Path("recording.npy"), help="File for --record")
    parser.add_argument("--log-level", default="INFO", help="Python logging level (default: INFO)")
    return parser.parse_args(argv)


def record_audio(duration: float, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Record audio for specified duration.

    Args:
        duration: Recording duration in seconds
        sample_rate: Audio sample rate

    Returns:
        Recorded audio as numpy array
    """
    import sounddevice as sd

    num_samples = int(duration * sample_rate)
    logger.info("Recording %.1f s at %d Hz...", duration, sample_rate)

    audio = sd.rec(num_samples, samplerate=sample_rate, channels=1, dtype="float64")
    sd.wait()

    return audio.flatten()


def analyze(audio: np.ndarray, config: TunerConfig) -> dict:
    """Run a recording through a fresh session.

    Returns:
        Dictionary with per-frame times, frequencies, cents and a summary
    """
    session = TunerSession(config)
    source = ArrayFrameSource(audio, config.sample_rate, config.window_size, config.overlap)

    times = source.frame_times()
    frequencies = np.full(len(source), np.nan)
    deviations = np.full(len(source), np.nan)
    notes: Counter = Counter()
    statuses: Counter = Counter()
    last_voiced = None

    for i, state in enumerate(session.run(source)):
        if state.frequency is None:
            continue
        frequencies[i] = state.frequency
        if state.cents_deviation is not None:
            deviations[i] = state.cents_deviation
        notes[str(state.target.note)] += 1
        statuses[state.tuning_status.value] += 1
        if state.analysis.valid:
            last_voiced = state.analysis

    voiced = ~np.isnan(frequencies)
    summary = {
        "frames": len(source),
        "voiced_frames": int(np.sum(voiced)),
        "note": notes.most_common(1)[0][0] if notes else None,
        "median_frequency": float(np.median(frequencies[voiced])) if voiced.any() else None,
        "median_cents": float(np.nanmedian(deviations)) if voiced.any() else None,
        "cents_spread": float(np.nanstd(deviations)) if voiced.any() else None,
        "statuses": dict(statuses),
    }
    return {
        "times": times,
        "frequencies": frequencies,
        "deviations": deviations,
        "last_voiced": last_voiced,
        "summary": summary,
    }


def plot_analysis(result: dict, title: str, output: Path, tolerance: float) -> None:
    """Plot pitch track, cents deviation and the spectrum of the last voiced frame."""
    fig, (ax1, ax2, ax3) = plt.subplots(3, 1, figsize=(12, 10))

    ax1.plot(result["times"], result["frequencies"], "b.-", linewidth=0.8, markersize=3)
    ax1.set_xlabel("Time (s)")
    ax1.set_ylabel("Frequency (Hz)")
    ax1.set_title(title)
    ax1.grid(True, alpha=0.3)

    ax2.plot(result["times"], result["deviations"], "g.-", linewidth=0.8, markersize=3)
    ax2.axhspan(-tolerance, tolerance, color="green", alpha=0.15, label=f"+-{tolerance:g} cents")
    ax2.set_xlabel("Time (s)")
    ax2.set_ylabel("Deviation (cents)")
    ax2.set_ylim(-50, 50)
    ax2.legend(loc="upper right")
    ax2.grid(True, alpha=0.3)

    analysis = result["last_voiced"]
    if analysis is not None:
        spectrum = analysis.spectrum
        fmax = min(spectrum.frequencies[-1], 8 * analysis.frequency)
        valid = spectrum.frequencies <= fmax
        ax3.semilogy(spectrum.frequencies[valid], spectrum.squared_amplitudes[valid] + 1e-12, "b-", linewidth=0.6)
        for harmonic in analysis.harmonics:
            ax3.axvline(harmonic.frequency, color="red", linestyle=":", alpha=0.7)
        ax3.set_title(f"Last voiced frame: {analysis.frequency:.2f} Hz, {len(analysis.harmonics)} harmonics")
    ax3.set_xlabel("Frequency (Hz)")
    ax3.set_ylabel("Power")
    ax3.grid(True, alpha=0.3)

    fig.tight_layout()
    fig.savefig(output, dpi=120)
    plt.close(fig)
    logger.info("Plot written to %s", output)


def run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    config = TunerConfig(
        sample_rate=args.sample_rate,
        window_size=args.window_size,
        overlap=args.overlap,
        reference_frequency=args.reference,
        tolerance_cents=args.tolerance,
    )

    files = list(args.files)
    if args.record:
        audio = record_audio(args.record, config.sample_rate)
        np.save(args.output, audio)
        logger.info("Saved %s (%d samples)", args.output, len(audio))
        files.append(args.output)

    if not files:
        logger.error("No recordings given")
        return 1

    for path in files:
        audio = np.load(path)
        result = analyze(audio, config)
        summary = result["summary"]

        print(f"\n{path}")
        print(f"  Frames: {summary['voiced_frames']}/{summary['frames']} voiced")
        if summary["note"] is None:
            print("  No pitch detected")
            continue
        print(f"  Note: {summary['note']}")
        print(f"  Median frequency: {summary['median_frequency']:.2f} Hz")
        print(f"  Deviation: {summary['median_cents']:+.1f} cents (spread {summary['cents_spread']:.1f})")
        print(f"  Verdicts: {summary['statuses']}")

        if args.plot:
            plot_analysis(result, path.name, path.with_suffix(".png"), config.tolerance_cents)

    return 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
