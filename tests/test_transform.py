import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from lhcal.errors import MalformedConfigurationError  # type: ignore
from lhcal.transform import Transform  # type: ignore


def _transform():
    return Transform(np.array([1.0, -2.0, 0.5]), np.array([0.1, 0.4, -0.7]))


def test_identity_leaves_points_unchanged():
    pts = np.array([[1.0, 2.0, 3.0], [-1.0, 0.0, 4.0]])
    np.testing.assert_allclose(Transform.identity().apply(pts), pts)


def test_compose_with_inverse_is_identity():
    T = _transform()
    np.testing.assert_allclose(T.compose(T.inverse()).as_homogeneous(), np.eye(4), atol=1e-12)
    np.testing.assert_allclose(T.inverse().compose(T).as_homogeneous(), np.eye(4), atol=1e-12)


def test_compose_applies_right_operand_first():
    a = _transform()
    b = Transform(np.array([0.0, 0.3, 0.0]), np.array([0.5, 0.0, 0.0]))
    p = np.array([0.2, 0.1, -0.4])

    np.testing.assert_allclose(a.compose(b).apply(p), a.apply(b.apply(p)), atol=1e-12)


def test_xyzquat_round_trip():
    T = _transform()
    back = Transform.from_xyzquat(T.as_xyzquat())
    dt, dr = T.distance_to(back)
    assert dt < 1e-12
    assert dr < 1e-9


def test_from_matrix_matches_homogeneous():
    T = _transform()
    H = T.as_homogeneous()
    np.testing.assert_allclose(
        Transform.from_matrix(H[:3, :3], H[:3, 3]).as_homogeneous(), H, atol=1e-12
    )


@pytest.mark.parametrize("values", [[0.0] * 5, [0.0] * 8])
def test_from_array_rejects_wrong_arity(values):
    with pytest.raises(MalformedConfigurationError):
        Transform.from_array(values)


def test_from_xyzquat_rejects_zero_quaternion():
    with pytest.raises(MalformedConfigurationError):
        Transform.from_xyzquat([0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0])


def test_distance_to_self_is_zero():
    T = _transform()
    assert T.distance_to(T) == pytest.approx((0.0, 0.0), abs=1e-12)
