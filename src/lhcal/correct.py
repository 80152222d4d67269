"""
Angle correction for lighthouse sweep measurements.

Each lighthouse ships factory calibration describing how far its sweeps
deviate from an ideal rotating plane. Per axis ``a`` (other axis ``b``):

    measured[a] = ideal[a] + phase[a]
                  + tan(tilt[a]) * tan(ideal[b])
                  + curve[a] * tan(ideal[b]) ** 2
                  + gibmag[a] * sin(ideal[a] + gibphase[a])

``distort_angles`` evaluates this forward model and ``correct_angles``
inverts it by fixed-point iteration.
"""

import math
from typing import Any, Dict, Optional, Sequence, Tuple
from dataclasses import dataclass, field

from .errors import MalformedConfigurationError

# Iterations used to invert the sweep model
CORRECTION_ITERATIONS = 10

PARAM_NAMES = ("phase", "tilt", "curve", "gibphase", "gibmag")


def _pair() -> Tuple[float, float]:
    return (0.0, 0.0)


@dataclass(frozen=True)
class LighthouseParams:
    """Factory calibration coefficients, one value per sweep axis."""
    phase: Tuple[float, float] = field(default_factory=_pair)
    tilt: Tuple[float, float] = field(default_factory=_pair)
    curve: Tuple[float, float] = field(default_factory=_pair)
    gibphase: Tuple[float, float] = field(default_factory=_pair)
    gibmag: Tuple[float, float] = field(default_factory=_pair)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LighthouseParams":
        if not data:
            return cls()
        unknown = set(data) - set(PARAM_NAMES)
        if unknown:
            raise MalformedConfigurationError(
                f"Unknown lighthouse parameters: {sorted(unknown)}"
            )
        values = {}
        for name in PARAM_NAMES:
            pair = data.get(name, (0.0, 0.0))
            if len(pair) != 2:
                raise MalformedConfigurationError(
                    f"Lighthouse parameter {name!r} needs 2 values, got {len(pair)}"
                )
            values[name] = (float(pair[0]), float(pair[1]))
        return cls(**values)

    def to_dict(self) -> Dict[str, list]:
        return {name: list(getattr(self, name)) for name in PARAM_NAMES}


def _in_range(angles: Sequence[float]) -> bool:
    return all(math.isfinite(a) and abs(a) < math.pi / 2 for a in angles)


def _sweep_error(params: LighthouseParams, ideal: Sequence[float], axis: int) -> float:
    other = math.tan(ideal[1 - axis])
    return (
        params.phase[axis]
        + math.tan(params.tilt[axis]) * other
        + params.curve[axis] * other * other
        + params.gibmag[axis] * math.sin(ideal[axis] + params.gibphase[axis])
    )


def distort_angles(
    params: Optional[LighthouseParams],
    angles: Sequence[float],
    enabled: bool = True
) -> Tuple[float, float]:
    """Apply the sweep model to ideal (azimuth, elevation) angles."""
    az, el = float(angles[0]), float(angles[1])
    if not enabled or params is None or not _in_range((az, el)):
        return az, el
    ideal = (az, el)
    return (
        az + _sweep_error(params, ideal, 0),
        el + _sweep_error(params, ideal, 1),
    )


def correct_angles(
    params: Optional[LighthouseParams],
    angles: Sequence[float],
    enabled: bool = True
) -> Tuple[float, float]:
    """
    Recover ideal (azimuth, elevation) angles from measured ones.

    Args:
        params: Lighthouse calibration (None disables correction)
        angles: Measured (azimuth, elevation) in radians
        enabled: Global correction toggle

    Returns:
        Corrected (azimuth, elevation). Inputs are returned unchanged when
        correction is disabled or they are outside (-pi/2, pi/2).
    """
    measured = (float(angles[0]), float(angles[1]))
    if not enabled or params is None or not _in_range(measured):
        return measured

    ideal = list(measured)
    for _ in range(CORRECTION_ITERATIONS):
        estimate = (
            measured[0] - _sweep_error(params, ideal, 0),
            measured[1] - _sweep_error(params, ideal, 1),
        )
        if not _in_range(estimate):
            return measured
        ideal = list(estimate)
    return ideal[0], ideal[1]
