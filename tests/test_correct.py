import sys
import math
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from lhcal.correct import LighthouseParams, correct_angles, distort_angles  # type: ignore
from lhcal.errors import MalformedConfigurationError  # type: ignore


PARAMS = LighthouseParams(
    phase=(0.012, -0.008),
    tilt=(0.004, -0.006),
    curve=(0.002, 0.001),
    gibphase=(0.3, -1.2),
    gibmag=(0.003, -0.002),
)


def test_disabled_is_identity():
    angles = (0.31, -0.22)
    assert correct_angles(PARAMS, angles, enabled=False) == angles
    assert distort_angles(PARAMS, angles, enabled=False) == angles


def test_missing_params_is_identity():
    angles = (0.1, 0.2)
    assert correct_angles(None, angles) == angles


@pytest.mark.parametrize("angles", [(0.0, 0.0), (0.4, -0.3), (-0.7, 0.55)])
def test_correct_inverts_distort(angles):
    measured = distort_angles(PARAMS, angles)
    assert measured != pytest.approx(angles)

    recovered = correct_angles(PARAMS, measured)

    assert recovered[0] == pytest.approx(angles[0], abs=1e-9)
    assert recovered[1] == pytest.approx(angles[1], abs=1e-9)


def test_zero_params_is_identity():
    angles = (0.25, -0.15)
    assert correct_angles(LighthouseParams(), angles) == pytest.approx(angles)


def test_out_of_range_angles_pass_through():
    angles = (math.pi / 2, 0.1)
    assert correct_angles(PARAMS, angles) == angles

    nan = (float("nan"), 0.0)
    out = correct_angles(PARAMS, nan)
    assert math.isnan(out[0])


def test_params_from_dict():
    params = LighthouseParams.from_dict({"phase": [0.1, 0.2], "gibmag": [0.0, 0.01]})
    assert params.phase == (0.1, 0.2)
    assert params.gibmag == (0.0, 0.01)
    assert params.tilt == (0.0, 0.0)
    assert LighthouseParams.from_dict(params.to_dict()) == params


def test_params_from_dict_rejects_unknown_and_wrong_arity():
    with pytest.raises(MalformedConfigurationError):
        LighthouseParams.from_dict({"skew": [0.0, 0.0]})
    with pytest.raises(MalformedConfigurationError):
        LighthouseParams.from_dict({"phase": [0.0]})
