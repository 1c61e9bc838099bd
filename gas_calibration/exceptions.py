"""Error types raised by the calibration engine.

Only structural problems are raised. Per-row conditions (no bracketing
standard, degenerate regression, tolerance violations) are absorbed into the
output as omitted rows or NaN fits.
"""


class CalibrationError(ValueError):
    """Base class for calibration failures."""


class NoReferenceData(CalibrationError):
    """The input holds no reference (standard gas) observations."""


class MalformedInput(CalibrationError):
    """Input vectors are inconsistent and cannot be processed."""
