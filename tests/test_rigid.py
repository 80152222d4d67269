import sys
from pathlib import Path

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from lhcal.rigid import KabschEstimator, AlignmentResult, DEGENERATE_ALIGNMENT  # type: ignore
from lhcal.transform import Transform  # type: ignore


def _points(seed=0, n=10):
    rng = np.random.default_rng(seed)
    return rng.uniform(-1.0, 1.0, size=(n, 3))


def _ground_truth():
    R = Rotation.from_euler("xyz", [0.3, -0.5, 1.1]).as_matrix()
    t = np.array([0.4, -1.2, 2.5])
    return R, t


def test_recovers_known_transform():
    src = _points()
    R, t = _ground_truth()
    dst = (R @ src.T).T + t

    result = KabschEstimator.estimate(src, dst)

    assert result.ok
    assert result.correspondences == len(src)
    np.testing.assert_allclose(result.transform.matrix, R, atol=1e-9)
    np.testing.assert_allclose(result.transform.translation, t, atol=1e-9)
    assert result.rms_error < 1e-9


def test_maps_source_centroid_to_target_centroid():
    src = _points(seed=1)
    R, t = _ground_truth()
    rng = np.random.default_rng(2)
    dst = (R @ src.T).T + t + rng.normal(0.0, 0.01, size=src.shape)

    result = KabschEstimator.estimate(src, dst)

    mapped = result.transform.apply(src.mean(axis=0))
    np.testing.assert_allclose(mapped, dst.mean(axis=0), atol=1e-9)


def test_same_permutation_of_both_sets_gives_same_result():
    src = _points(seed=3)
    R, t = _ground_truth()
    dst = (R @ src.T).T + t
    perm = np.random.default_rng(4).permutation(len(src))

    a = KabschEstimator.estimate(src, dst).transform
    b = KabschEstimator.estimate(src[perm], dst[perm]).transform

    np.testing.assert_allclose(a.as_homogeneous(), b.as_homogeneous(), atol=1e-9)


def test_permuting_one_set_changes_result():
    src = _points(seed=5)
    R, t = _ground_truth()
    dst = (R @ src.T).T + t
    shuffled = dst[::-1]

    good = KabschEstimator.estimate(src, dst)
    bad = KabschEstimator.estimate(src, shuffled)

    assert bad.rms_error > good.rms_error + 1e-3
    assert not np.allclose(bad.transform.as_homogeneous(), good.transform.as_homogeneous())


def test_result_is_a_proper_rotation_for_reflected_input():
    src = _points(seed=6)
    dst = src * np.array([1.0, 1.0, -1.0])

    result = KabschEstimator.estimate(src, dst)

    assert np.linalg.det(result.transform.matrix) == pytest.approx(1.0)


@pytest.mark.parametrize("n", [0, 1, 2])
def test_too_few_correspondences_gives_identity(n):
    src = _points(n=n)

    result = KabschEstimator.estimate(src, src + 1.0)

    assert not result.ok
    assert result.reason == DEGENERATE_ALIGNMENT
    assert result.correspondences == n
    np.testing.assert_allclose(result.transform.as_homogeneous(), np.eye(4))


def test_mismatched_lengths_gives_identity():
    result = KabschEstimator.estimate(_points(n=5), _points(n=4))

    assert not result.ok
    np.testing.assert_allclose(result.transform.as_array(), np.zeros(6))


def test_solve_raises_on_bad_input():
    with pytest.raises(ValueError):
        KabschEstimator.solve(_points(n=2), _points(n=2))


def test_deterministic():
    src = _points(seed=7)
    R, t = _ground_truth()
    dst = (R @ src.T).T + t

    a = KabschEstimator.estimate(src, dst)
    b = KabschEstimator.estimate(src, dst)

    np.testing.assert_array_equal(a.transform.as_array(), b.transform.as_array())


def test_default_result_is_identity():
    result = AlignmentResult()
    assert result.ok
    assert isinstance(result.transform, Transform)
    np.testing.assert_allclose(result.transform.as_array(), np.zeros(6))
