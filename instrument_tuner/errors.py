"""
Exceptions raised while setting up the tuner.

Per-frame problems never raise; they show up as a missing pitch estimate.
Both classes derive from ValueError so callers can treat them as bad input.
"""


class ConfigurationError(ValueError):
    """Invalid configuration value, detected before any frame is processed."""


class ScaleInvariantError(ValueError):
    """A musical scale violates an invariant (e.g. non-increasing frequencies)."""
