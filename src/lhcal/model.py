"""
Core records for lighthouse calibration.

Provides:
- Sensor / Tracker: photosensor geometry of a tracked rigid body
- Lighthouse: sweeping beacon with factory calibration
- Pulse / Measurement: one sweep of one lighthouse over one tracker
- Correction: externally supplied world -> body pose
"""

import numpy as np
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass, field

from .correct import LighthouseParams
from .transform import Transform

AZIMUTH = 0
ELEVATION = 1
AXES = (AZIMUTH, ELEVATION)


@dataclass
class Sensor:
    """Photodiode position and outward normal in the tracker frame."""
    position: np.ndarray
    normal: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64).reshape(3)
        self.normal = np.asarray(self.normal, dtype=np.float64).reshape(3)


@dataclass
class Tracker:
    """Rigid body carrying photosensors."""
    serial: str
    extrinsics: Transform = field(default_factory=Transform.identity)  # body -> tracker
    sensors: List[Sensor] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return len(self.sensors) > 0

    @property
    def num_sensors(self) -> int:
        return len(self.sensors)

    @property
    def sensor_positions(self) -> np.ndarray:
        if not self.sensors:
            return np.zeros((0, 3))
        return np.array([s.position for s in self.sensors], dtype=np.float64)


@dataclass
class Lighthouse:
    """Sweeping beacon. ``transform`` maps lighthouse -> reference frame."""
    serial: str
    params: Optional[LighthouseParams] = None
    transform: Transform = field(default_factory=Transform.identity)
    ready: bool = True


@dataclass(frozen=True)
class Pulse:
    """A single sensor hit within a sweep."""
    sensor: int
    angle: float     # radians
    duration: float  # seconds


@dataclass(frozen=True)
class Measurement:
    """All pulses from one sweep of one lighthouse axis over one tracker."""
    timestamp: float  # seconds
    tracker: str
    lighthouse: str
    axis: int
    pulses: Tuple[Pulse, ...] = ()

    def with_pulses(self, pulses) -> "Measurement":
        return Measurement(
            timestamp=self.timestamp,
            tracker=self.tracker,
            lighthouse=self.lighthouse,
            axis=self.axis,
            pulses=tuple(pulses),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "tracker": self.tracker,
            "lighthouse": self.lighthouse,
            "axis": self.axis,
            "pulses": [
                {"sensor": p.sensor, "angle": p.angle, "duration": p.duration}
                for p in self.pulses
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Measurement":
        return cls(
            timestamp=float(data["timestamp"]),
            tracker=str(data["tracker"]),
            lighthouse=str(data["lighthouse"]),
            axis=int(data["axis"]),
            pulses=tuple(
                Pulse(int(p["sensor"]), float(p["angle"]), float(p["duration"]))
                for p in data.get("pulses", [])
            ),
        )


@dataclass(frozen=True, eq=False)
class Correction:
    """Pose of the body frame in the world frame at a point in time."""
    timestamp: float
    transform: Transform

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "transform": self.transform.as_xyzquat().tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Correction":
        return cls(
            timestamp=float(data["timestamp"]),
            transform=Transform.from_xyzquat(data["transform"]),
        )
