"""
Shared constants for the tuner pipeline.
"""

SAMPLE_RATE = 44100
DEFAULT_WINDOW_SIZE = 2048
MIN_WINDOW_SIZE = 128
MAX_WINDOW_SIZE = 16384

A4_REFERENCE = 440.0
CENTS_PER_OCTAVE = 1200.0

# Audible bounds for generated scale frequencies
FREQUENCY_MIN = 16.0
FREQUENCY_MAX = 16000.0

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
NOTE_NAMES_FLAT = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]
