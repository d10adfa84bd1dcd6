"""Physical unit conversions used by the search pipeline."""

SPEED_OF_LIGHT = 299792458.0
"""Speed of light in m/s."""

DISPERSION_CONSTANT = 4.148741601e3
"""Dispersion constant in MHz^2 s cm^3 / pc."""


def fdot2acc(fdot: float, f: float) -> float:
    """Convert a frequency derivative at frequency ``f`` to a line-of-sight acceleration."""
    return -fdot / f * SPEED_OF_LIGHT


def acc2fdot(acc: float, f: float) -> float:
    """Convert a line-of-sight acceleration to a frequency derivative at frequency ``f``."""
    return -f * acc / SPEED_OF_LIGHT


def dmdelay(dm: float, fh: float, fl: float) -> float:
    """Dispersive delay in seconds of frequency ``fl`` relative to ``fh`` (both in MHz)."""
    return DISPERSION_CONSTANT * dm * (1.0 / (fl * fl) - 1.0 / (fh * fh))