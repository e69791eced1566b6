"""
Window functions applied to audio frames before spectral analysis.

Tapering the frame edges reduces spectral leakage, so peaks of the power
spectrum stay narrow and harmonics of a tone are easier to separate.
"""

from enum import Enum
from functools import lru_cache

import numpy as np
from scipy.signal import windows

from .errors import ConfigurationError


class WindowType(Enum):
    """Kind of tapering window."""

    RECTANGULAR = "rectangular"  # No tapering
    HANN = "hann"
    HAMMING = "hamming"
    BLACKMAN = "blackman"
    TUKEY = "tukey"  # Flat top with cosine tapered edges

    @classmethod
    def from_name(cls, name: "str | WindowType") -> "WindowType":
        """Look up a window type by its value, e.g. "hann"."""
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            raise ConfigurationError(f"Unsupported window function: {name!r}") from None


TUKEY_ALPHA = 0.5


def get_window(window_type: WindowType, size: int) -> np.ndarray:
    """
    Get window coefficients.

    Args:
        window_type: Kind of window
        size: Number of coefficients (frame length)

    Returns:
        Read-only array of `size` coefficients in [0, 1]

    Raises:
        ConfigurationError: If the kind is unsupported or size < 1
    """
    if not isinstance(window_type, WindowType):
        raise ConfigurationError(f"Unsupported window function: {window_type!r}")
    if size < 1:
        raise ConfigurationError(f"Window size must be positive, got {size}")
    return _cached_window(window_type, int(size))


@lru_cache(maxsize=32)
def _cached_window(window_type: WindowType, size: int) -> np.ndarray:
    if window_type == WindowType.RECTANGULAR:
        coefficients = np.ones(size)
    elif window_type == WindowType.HANN:
        coefficients = windows.hann(size, sym=False)
    elif window_type == WindowType.HAMMING:
        coefficients = windows.hamming(size, sym=False)
    elif window_type == WindowType.BLACKMAN:
        coefficients = windows.blackman(size, sym=False)
    else:
        coefficients = windows.tukey(size, alpha=TUKEY_ALPHA, sym=False)

    # Blackman produces tiny negative values at the edges
    coefficients = np.clip(np.asarray(coefficients, dtype=np.float64), 0.0, 1.0)
    coefficients.setflags(write=False)
    return coefficients
