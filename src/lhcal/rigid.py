"""
Rigid alignment between paired 3D point sets.

Provides functionality to:
- Estimate rotation + translation with the Kabsch algorithm
- Report degenerate input as a tagged result instead of raising
"""

import numpy as np
from typing import Optional, Dict, Any, Sequence, Tuple
from dataclasses import dataclass, field

from .transform import Transform

DEGENERATE_ALIGNMENT = "degenerate_alignment"

# Minimum correspondences for a unique rotation
MIN_CORRESPONDENCES = 3


@dataclass(eq=False)
class AlignmentResult:
    """Outcome of a rigid alignment. ``transform`` maps source -> target."""
    transform: Transform = field(default_factory=Transform.identity)
    rms_error: float = 0.0
    correspondences: int = 0
    ok: bool = True
    reason: Optional[str] = None

    @classmethod
    def degenerate(cls, correspondences: int, reason: str = DEGENERATE_ALIGNMENT) -> "AlignmentResult":
        return cls(
            transform=Transform.identity(),
            rms_error=float("nan"),
            correspondences=correspondences,
            ok=False,
            reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transform": self.transform.to_dict(),
            "rms_error": self.rms_error,
            "correspondences": self.correspondences,
            "ok": self.ok,
            "reason": self.reason,
        }


class KabschEstimator:
    """
    Estimate a rigid transform using the Kabsch algorithm.

    Finds the rotation and translation minimising the squared distance
    between transformed source points and their paired target points.
    """

    @staticmethod
    def solve(
        source_points: np.ndarray,
        target_points: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Estimate rotation and translation using Kabsch algorithm.

        Args:
            source_points: Nx3 array of points in the source frame
            target_points: Nx3 array of the same points in the target frame

        Returns:
            Tuple of (rotation_matrix, translation_vector, rms_error)

        Raises:
            ValueError: On mismatched or insufficient points
        """
        source_points = np.asarray(source_points, dtype=np.float64).reshape(-1, 3)
        target_points = np.asarray(target_points, dtype=np.float64).reshape(-1, 3)

        if len(source_points) != len(target_points):
            raise ValueError("Point counts must match")

        if len(source_points) < MIN_CORRESPONDENCES:
            raise ValueError(f"Need at least {MIN_CORRESPONDENCES} points")

        # Center the point sets
        src_centroid = np.mean(source_points, axis=0)
        dst_centroid = np.mean(target_points, axis=0)

        src_centered = source_points - src_centroid
        dst_centered = target_points - dst_centroid

        # Compute cross-covariance matrix
        H = src_centered.T @ dst_centered

        # SVD
        U, S, Vt = np.linalg.svd(H)

        # Compute rotation
        R = Vt.T @ U.T

        # Handle reflection case
        if np.linalg.det(R) < 0:
            Vt[-1, :] *= -1
            R = Vt.T @ U.T

        # Compute translation
        t = dst_centroid - R @ src_centroid

        # Compute RMS error
        transformed = (R @ source_points.T).T + t
        errors = np.linalg.norm(transformed - target_points, axis=1)
        rms_error = float(np.sqrt(np.mean(errors ** 2)))

        return R, t, rms_error

    @classmethod
    def estimate(
        cls,
        source_points: Sequence[Sequence[float]],
        target_points: Sequence[Sequence[float]]
    ) -> AlignmentResult:
        """
        Align source to target, reporting degenerate input as a failed result.

        Args:
            source_points: Ordered source points (Nx3)
            target_points: Ordered target points (Nx3), paired by index

        Returns:
            AlignmentResult; identity with ``ok=False`` on fewer than three
            correspondences or mismatched lengths
        """
        src = np.asarray(source_points, dtype=np.float64).reshape(-1, 3)
        dst = np.asarray(target_points, dtype=np.float64).reshape(-1, 3)
        n = min(len(src), len(dst))

        if len(src) != len(dst) or n < MIN_CORRESPONDENCES:
            return AlignmentResult.degenerate(n)

        R, t, rms_error = cls.solve(src, dst)
        return AlignmentResult(
            transform=Transform.from_matrix(R, t),
            rms_error=rms_error,
            correspondences=n,
        )
