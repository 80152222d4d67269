"""
Six degree-of-freedom rigid transforms.

A ``Transform`` maps points from a child frame into a parent frame:
``x_parent = R @ x_child + t``. Rotations are stored as axis-angle vectors,
which is the form the solvers produce and the calibration file records.
"""

import numpy as np
from typing import Any, Dict, Iterable, Sequence
from dataclasses import dataclass, field
from scipy.spatial.transform import Rotation

from .errors import MalformedConfigurationError


@dataclass(eq=False)
class Transform:
    """Rigid transform stored as translation + axis-angle rotation."""
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotvec: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.translation = np.asarray(self.translation, dtype=np.float64).reshape(3)
        self.rotvec = np.asarray(self.rotvec, dtype=np.float64).reshape(3)

    @classmethod
    def identity(cls) -> "Transform":
        return cls(np.zeros(3), np.zeros(3))

    @classmethod
    def from_matrix(cls, rotation: np.ndarray, translation: np.ndarray) -> "Transform":
        """Build from a 3x3 rotation matrix and a translation vector."""
        rotvec = Rotation.from_matrix(np.asarray(rotation, dtype=np.float64)).as_rotvec()
        return cls(translation, rotvec)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "Transform":
        """Build from ``[x, y, z, rx, ry, rz]``."""
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        if values.shape[0] != 6:
            raise MalformedConfigurationError(
                f"Expected 6 transform components, got {values.shape[0]}"
            )
        return cls(values[:3], values[3:])

    @classmethod
    def from_xyzquat(cls, values: Sequence[float]) -> "Transform":
        """Build from ``[x, y, z, qx, qy, qz, qw]``."""
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        if values.shape[0] != 7:
            raise MalformedConfigurationError(
                f"Expected 7 transform components, got {values.shape[0]}"
            )
        quat = values[3:]
        if np.linalg.norm(quat) == 0.0:
            raise MalformedConfigurationError("Transform quaternion has zero norm")
        return cls(values[:3], Rotation.from_quat(quat).as_rotvec())

    @property
    def rotation(self) -> Rotation:
        return Rotation.from_rotvec(self.rotvec)

    @property
    def matrix(self) -> np.ndarray:
        """3x3 rotation matrix."""
        return self.rotation.as_matrix()

    @property
    def angle(self) -> float:
        return float(np.linalg.norm(self.rotvec))

    def as_array(self) -> np.ndarray:
        return np.concatenate([self.translation, self.rotvec])

    def as_xyzquat(self) -> np.ndarray:
        return np.concatenate([self.translation, self.rotation.as_quat()])

    def as_homogeneous(self) -> np.ndarray:
        T = np.eye(4)
        T[:3, :3] = self.matrix
        T[:3, 3] = self.translation
        return T

    def apply(self, points: Iterable[Iterable[float]]) -> np.ndarray:
        """Map points (3, or Nx3) from the child into the parent frame."""
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim == 1:
            return self.matrix @ pts + self.translation
        return (self.matrix @ pts.T).T + self.translation

    def compose(self, other: "Transform") -> "Transform":
        """Return ``self * other`` (apply ``other`` first)."""
        R = self.matrix @ other.matrix
        t = self.matrix @ other.translation + self.translation
        return Transform.from_matrix(R, t)

    def inverse(self) -> "Transform":
        R_inv = self.matrix.T
        return Transform.from_matrix(R_inv, -R_inv @ self.translation)

    def distance_to(self, other: "Transform") -> tuple:
        """Translation (m) and rotation (rad) difference to another transform."""
        dt = float(np.linalg.norm(self.translation - other.translation))
        dr = (self.rotation.inv() * other.rotation).magnitude()
        return dt, float(dr)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "translation": self.translation.tolist(),
            "rotvec": self.rotvec.tolist(),
        }

    def __repr__(self) -> str:
        t = ", ".join(f"{v:.4f}" for v in self.translation)
        r = ", ".join(f"{v:.4f}" for v in self.rotvec)
        return f"Transform(t=[{t}], r=[{r}])"
