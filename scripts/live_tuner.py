"""
Console tuner reading from the microphone.

Audio blocks from the sound card are cut into overlapping frames and run
through a TunerSession; every new reading is printed on one line.

Usage:
    python live_tuner.py
    python live_tuner.py --window-size 4096 --reference 442 --tolerance 3
    python live_tuner.py --strings E2 A2 D3 G3 B3 E4

Press Ctrl+C to stop.
"""

import argparse
import logging
import queue
import sys

import numpy as np

from instrument_tuner import TunerConfig, TunerSession, TuningStatus
from instrument_tuner.frames import FrameAssembler
from instrument_tuner.musical_scale import parse_note
from instrument_tuner.temperaments import TemperamentType

logger = logging.getLogger(__name__)

BAR_WIDTH = 41  # Characters of the deviation bar, +-50 cents


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Live instrument tuner on the console.")
    parser.add_argument("--device", default=None, help="Input device name or index (default: system default)")
    parser.add_argument("--sample-rate", type=int, default=44100, help="Sample rate in Hz (default: 44100)")
    parser.add_argument("--window-size", type=int, default=2048, help="Analysis window, power of two (default: 2048)")
    parser.add_argument("--overlap", type=float, default=0.25, help="Frame overlap in [0, 1) (default: 0.25)")
    parser.add_argument(
        "--temperament",
        default=TemperamentType.EDO12.value,
        choices=[t.value for t in TemperamentType],
        help="Temperament (default: edo12)",
    )
    parser.add_argument("--reference", type=float, default=440.0, help="Frequency of the reference note (default: 440)")
    parser.add_argument("--reference-note", default="A4", help="Reference note (default: A4)")
    parser.add_argument("--tolerance", type=float, default=5.0, help="In-tune tolerance in cents (default: 5)")
    parser.add_argument("--strings", nargs="*", default=None, help="String notes of the instrument, e.g. E2 A2 D3")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level (default: WARNING)")
    return parser.parse_args(argv)


def deviation_bar(cents: float | None) -> str:
    """Text bar with a marker at the deviation, clamped to +-50 cents."""
    bar = ["-"] * BAR_WIDTH
    center = BAR_WIDTH // 2
    bar[center] = "|"
    if cents is not None:
        offset = int(round(np.clip(cents, -50.0, 50.0) / 50.0 * center))
        bar[center + offset] = "#"
    return "".join(bar)


def format_state(state) -> str:
    target = state.target
    if not target.is_part_of_scale:
        return f"{str(target.note):>6}  not part of the scale"
    if state.frequency is None or not target.is_available:
        note = str(target.note) if target.note is not None else "--"
        return f"{note:>6}  {'':>9}  {deviation_bar(None)}"

    marker = {
        TuningStatus.TOO_LOW: "low ",
        TuningStatus.IN_TUNE: " OK ",
        TuningStatus.TOO_HIGH: "high",
    }.get(state.tuning_status, "    ")
    return (
        f"{str(target.note):>6}  {state.frequency:8.2f} Hz  {deviation_bar(state.cents_deviation)}"
        f"  {state.cents_deviation:+6.1f} cents  {marker}"
    )


def run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    import sounddevice as sd

    config = TunerConfig(
        sample_rate=args.sample_rate,
        window_size=args.window_size,
        overlap=args.overlap,
        temperament=TemperamentType(args.temperament),
        reference_note=args.reference_note,
        reference_frequency=args.reference,
        tolerance_cents=args.tolerance,
    )
    strings = None
    if args.strings:
        temperament = config.create_temperament()
        strings = [parse_note(name, temperament) for name in args.strings]

    session = TunerSession(config, strings=strings)
    assembler = FrameAssembler(config.window_size, config.overlap)
    blocks: "queue.Queue[np.ndarray]" = queue.Queue(maxsize=64)

    def callback(indata, frames, time_info, status):
        if status:
            logger.warning("Audio input status: %s", status)
        try:
            blocks.put_nowait(indata[:, 0].copy())
        except queue.Full:
            logger.warning("Dropped audio block, processing is too slow")

    print(f"Tuning with {config}")
    print("Press Ctrl+C to stop.")
    try:
        with sd.InputStream(
            channels=1,
            samplerate=config.sample_rate,
            blocksize=config.hop_size,
            device=args.device,
            callback=callback,
            dtype="float32",
        ):
            while True:
                block = blocks.get()
                for frame in assembler.push(block):
                    state = session.process_frame(frame)
                    print("\r" + format_state(state), end="", flush=True)
    except KeyboardInterrupt:
        print()
    return 0


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
