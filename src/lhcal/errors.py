"""
Exception types raised by the calibration host.

Per-instant pose failures and degenerate alignments are not exceptions; they
are carried as tagged results (see ``PoseResult`` and ``AlignmentResult``).
"""


class CalibrationError(Exception):
    """Base class for calibration failures."""


class InsufficientDataError(CalibrationError):
    """Raised when a session holds no measurements to solve with."""


class MalformedConfigurationError(CalibrationError, ValueError):
    """Raised when static configuration cannot be parsed."""
