"""
Geometry module for tracker pose recovery from lighthouse sweep angles.

Provides functionality to:
- Model a lighthouse as a synthetic pinhole camera
- Map (azimuth, elevation) sweep angles onto its image plane
- Recover the tracker pose in the lighthouse frame with RANSAC PnP
"""

import math
import numpy as np
import cv2 as cv
from typing import Optional, Sequence, Tuple
from dataclasses import dataclass, field

from .transform import Transform

UNSOLVABLE_POSE = "unsolvable_pose"
TOO_FEW_CORRESPONDENCES = "too_few_correspondences"


@dataclass
class LighthouseCamera:
    """Synthetic camera standing in for a lighthouse."""
    width: float = 1.0                     # synthetic image plane width
    fov: float = math.radians(120.0)       # field of view

    @property
    def principal_distance(self) -> float:
        return self.width / (2.0 * math.tan(self.fov / 2.0))

    @property
    def intrinsic_matrix(self) -> np.ndarray:
        z = self.principal_distance
        return np.array([
            [z, 0.0, 0.0],
            [0.0, z, 0.0],
            [0.0, 0.0, 1.0]
        ], dtype=np.float64)

    @property
    def distortion_coeffs(self) -> np.ndarray:
        return np.zeros(5, dtype=np.float64)

    def image_point(self, azimuth: float, elevation: float) -> Tuple[float, float]:
        """Project a sweep angle pair onto the synthetic image plane."""
        z = self.principal_distance
        return z * math.tan(azimuth), z * math.tan(elevation)


@dataclass(eq=False)
class PoseResult:
    """Tracker pose in a lighthouse frame, or the reason there is none."""
    transform: Transform = field(default_factory=Transform.identity)  # tracker -> lighthouse
    correspondences: int = 0
    inliers: int = 0
    ok: bool = True
    reason: Optional[str] = None

    @classmethod
    def failed(cls, reason: str, correspondences: int = 0) -> "PoseResult":
        return cls(correspondences=correspondences, ok=False, reason=reason)

    @property
    def position(self) -> np.ndarray:
        return self.transform.translation


@dataclass
class PnPSettings:
    """RANSAC PnP parameters."""
    min_correspondences: int = 7
    iterations: int = 100
    reprojection_error: float = 8.0
    confidence: float = 0.99


class PerspectivePoseSolver:
    """
    Estimate tracker pose from angle-derived 2D-3D correspondences.

    Object points are the sensor positions in the tracker frame; image
    points come from ``LighthouseCamera.image_point``.
    """

    def __init__(
        self,
        camera: Optional[LighthouseCamera] = None,
        settings: Optional[PnPSettings] = None
    ):
        self.camera = camera or LighthouseCamera()
        self.settings = settings or PnPSettings()

    def solve(
        self,
        object_points: Sequence[Sequence[float]],
        image_points: Sequence[Sequence[float]]
    ) -> PoseResult:
        """
        Recover the pose of the tracker in the lighthouse frame.

        Args:
            object_points: Nx3 sensor positions in the tracker frame
            image_points: Nx2 synthetic image coordinates

        Returns:
            PoseResult with ``ok=False`` when there are too few
            correspondences or RANSAC finds no consensus
        """
        obj = np.asarray(object_points, dtype=np.float64).reshape(-1, 3)
        img = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
        n = len(obj)

        if n != len(img) or n < self.settings.min_correspondences:
            return PoseResult.failed(TOO_FEW_CORRESPONDENCES, n)

        try:
            success, rvec, tvec, inliers = cv.solvePnPRansac(
                obj,
                img,
                self.camera.intrinsic_matrix,
                self.camera.distortion_coeffs,
                useExtrinsicGuess=False,
                iterationsCount=self.settings.iterations,
                reprojectionError=self.settings.reprojection_error,
                confidence=self.settings.confidence,
                flags=cv.SOLVEPNP_EPNP
            )
        except cv.error:
            return PoseResult.failed(UNSOLVABLE_POSE, n)

        if not success or rvec is None or tvec is None:
            return PoseResult.failed(UNSOLVABLE_POSE, n)

        R, _ = cv.Rodrigues(rvec)
        t = tvec.reshape(3)
        if not (np.all(np.isfinite(R)) and np.all(np.isfinite(t))):
            return PoseResult.failed(UNSOLVABLE_POSE, n)

        return PoseResult(
            transform=Transform.from_matrix(R, t),
            correspondences=n,
            inliers=len(inliers) if inliers is not None else 0,
        )

    def reprojection_error(
        self,
        pose: Transform,
        object_points: Sequence[Sequence[float]],
        image_points: Sequence[Sequence[float]]
    ) -> float:
        """RMS reprojection error of a pose on the synthetic image plane."""
        obj = np.asarray(object_points, dtype=np.float64).reshape(-1, 3)
        img = np.asarray(image_points, dtype=np.float64).reshape(-1, 2)
        if len(obj) == 0:
            return 0.0
        projected, _ = cv.projectPoints(
            obj,
            pose.rotvec,
            pose.translation,
            self.camera.intrinsic_matrix,
            self.camera.distortion_coeffs
        )
        errors = np.linalg.norm(img - projected.reshape(-1, 2), axis=1)
        return float(np.sqrt(np.mean(errors ** 2)))


def sweep_angles(point: Sequence[float]) -> Optional[Tuple[float, float]]:
    """
    Ideal sweep angles of a point expressed in the lighthouse frame.

    Returns None for points behind the lighthouse.
    """
    x, y, z = (float(v) for v in point)
    if z <= 0.0:
        return None
    return math.atan2(x, z), math.atan2(y, z)
