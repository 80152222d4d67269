import sys
import math
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from lhcal.geo import (  # type: ignore
    LighthouseCamera, PerspectivePoseSolver, PnPSettings,
    TOO_FEW_CORRESPONDENCES, sweep_angles
)
from lhcal.sim import SENSOR_LAYOUT  # type: ignore
from lhcal.transform import Transform  # type: ignore


def _observe(pose, sensors):
    camera = LighthouseCamera()
    img = []
    for p in pose.apply(sensors):
        az, el = sweep_angles(p)
        img.append(camera.image_point(az, el))
    return img


def test_camera_intrinsics():
    camera = LighthouseCamera()
    z = 1.0 / (2.0 * math.tan(math.radians(60.0)))
    assert camera.principal_distance == pytest.approx(z)
    np.testing.assert_allclose(camera.intrinsic_matrix, np.diag([z, z, 1.0]))
    np.testing.assert_allclose(camera.distortion_coeffs, np.zeros(5))


def test_sweep_angles_behind_lighthouse_is_none():
    assert sweep_angles([0.1, 0.2, -1.0]) is None
    assert sweep_angles([0.1, 0.2, 0.0]) is None


def test_image_point_matches_perspective_projection():
    camera = LighthouseCamera()
    p = np.array([0.3, -0.2, 2.0])
    u, v = camera.image_point(*sweep_angles(p))
    z = camera.principal_distance
    assert u == pytest.approx(z * p[0] / p[2])
    assert v == pytest.approx(z * p[1] / p[2])


def test_recovers_tracker_pose():
    pose = Transform(np.array([0.2, -0.1, 2.5]), np.array([0.3, -0.2, 0.9]))
    img = _observe(pose, SENSOR_LAYOUT)

    result = PerspectivePoseSolver().solve(SENSOR_LAYOUT, img)

    assert result.ok
    assert result.correspondences == len(SENSOR_LAYOUT)
    dt, dr = result.transform.distance_to(pose)
    assert dt < 1e-4
    assert dr < 1e-4
    assert PerspectivePoseSolver().reprojection_error(result.transform, SENSOR_LAYOUT, img) < 1e-6


def test_too_few_correspondences_fails():
    pose = Transform(np.array([0.0, 0.0, 2.0]), np.zeros(3))
    img = _observe(pose, SENSOR_LAYOUT[:6])

    result = PerspectivePoseSolver().solve(SENSOR_LAYOUT[:6], img)

    assert not result.ok
    assert result.reason == TOO_FEW_CORRESPONDENCES
    assert result.correspondences == 6


def test_minimum_correspondences_is_configurable():
    settings = PnPSettings(min_correspondences=9)
    pose = Transform(np.array([0.0, 0.0, 2.0]), np.zeros(3))

    result = PerspectivePoseSolver(settings=settings).solve(SENSOR_LAYOUT, _observe(pose, SENSOR_LAYOUT))

    assert not result.ok
