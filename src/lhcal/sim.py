"""Simulation utilities for synthetic lighthouse sweeps.

Virtual lighthouses observe a virtual tracker moving through the room and
emit the measurements and corrections a live system would, together with
the ground-truth transforms the pipeline should recover.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .config import CalibrationConfig
from .correct import LighthouseParams, distort_angles
from .geo import sweep_angles
from .model import AXES, Correction, Lighthouse, Measurement, Pulse, Sensor, Tracker
from .transform import Transform

# Non-coplanar photodiode layout in the tracker frame (meters)
SENSOR_LAYOUT = np.array(
    [
        [0.080, 0.050, 0.020],
        [-0.070, 0.060, -0.030],
        [0.060, -0.080, 0.040],
        [-0.050, -0.060, 0.070],
        [0.020, 0.090, 0.060],
        [-0.090, 0.010, 0.050],
        [0.040, 0.020, -0.080],
        [-0.030, -0.040, -0.060],
    ],
    dtype=np.float64,
)

PULSE_DURATION = 1e-5  # seconds


def look_at(eye: Sequence[float], target: Sequence[float], up: Sequence[float] = (0.0, 0.0, 1.0)) -> Transform:
    """Lighthouse -> world transform for a lighthouse at ``eye`` facing ``target``.

    The lighthouse looks down its +z axis.
    """
    eye = np.asarray(eye, dtype=np.float64)
    z = np.asarray(target, dtype=np.float64) - eye
    z /= np.linalg.norm(z)
    x = np.cross(np.asarray(up, dtype=np.float64), z)
    x /= np.linalg.norm(x)
    y = np.cross(z, x)
    return Transform.from_matrix(np.column_stack([x, y, z]), eye)


def rotation_error_deg(estimate: Transform, truth: Transform) -> float:
    """Rotation error in degrees between two transforms."""
    return float(np.degrees(estimate.distance_to(truth)[1]))


def translation_error_m(estimate: Transform, truth: Transform) -> float:
    return estimate.distance_to(truth)[0]


class VirtualLighthouse:
    """Sweep-angle generator for one lighthouse placed in the world."""

    def __init__(self, serial: str, world_T_lighthouse: Transform, params: LighthouseParams | None = None):
        self.serial = serial
        self.world_T_lighthouse = world_T_lighthouse
        self.params = params
        self._lighthouse_T_world = world_T_lighthouse.inverse()

    def observe(self, points_world: np.ndarray) -> list[tuple[float, float] | None]:
        """Measured (azimuth, elevation) for each world point, None if behind."""
        points = self._lighthouse_T_world.apply(np.asarray(points_world, dtype=np.float64).reshape(-1, 3))
        results: list[tuple[float, float] | None] = []
        for p in points:
            angles = sweep_angles(p)
            if angles is None:
                results.append(None)
                continue
            results.append(distort_angles(self.params, angles, enabled=self.params is not None))
        return results


class SimulatedTracker:
    """Deterministic tracker trajectory and sensor ground truth."""

    TRAJECTORIES = {"circle", "figure8"}

    def __init__(
        self,
        serial: str = "LHR-SIM",
        sensors: np.ndarray | None = None,
        seed: int = 0,
        trajectory: str = "circle",
        center: Sequence[float] = (0.0, 0.0, 1.0),
    ):
        if trajectory not in self.TRAJECTORIES:
            raise ValueError(
                f"Unknown trajectory {trajectory!r}; expected one of: {', '.join(sorted(self.TRAJECTORIES))}"
            )
        self.serial = serial
        self.sensors = SENSOR_LAYOUT.copy() if sensors is None else np.asarray(sensors, dtype=np.float64)
        self.trajectory = trajectory
        rng = np.random.default_rng(int(seed))
        # Small per-seed offsets so simulations vary by seed
        self._center = np.asarray(center, dtype=np.float64) + rng.uniform(-0.05, 0.05, size=3)
        self._phase = float(rng.uniform(0.0, 2.0 * np.pi))

    def pose(self, t: float) -> Transform:
        """Tracker -> world pose at time ``t`` (seconds)."""
        omega = 0.8  # rad/s
        a = omega * t + self._phase
        if self.trajectory == "circle":
            offset = np.array([0.3 * np.cos(a), 0.3 * np.sin(a), 0.1 * np.sin(2.0 * a)])
        else:
            offset = np.array([0.3 * np.sin(a), 0.2 * np.sin(2.0 * a), 0.15 * np.cos(a)])
        rotvec = np.array([0.2 * np.sin(a), 0.15 * np.cos(a), 0.5 * a])
        return Transform(self._center + offset, rotvec)

    def sensors_world(self, t: float) -> np.ndarray:
        return self.pose(t).apply(self.sensors)

    def to_tracker(self) -> Tracker:
        sensors = [
            Sensor(position=p, normal=p / np.linalg.norm(p)) for p in self.sensors
        ]
        return Tracker(serial=self.serial, sensors=sensors)


@dataclass(eq=False)
class GroundTruth:
    """Transforms the pipeline is expected to recover."""
    registration: Transform                                        # vive -> world
    lighthouses: dict[str, Transform] = field(default_factory=dict)  # lighthouse -> vive


@dataclass(eq=False)
class SimulatedSession:
    config: CalibrationConfig
    measurements: list[Measurement]
    corrections: list[Correction]
    truth: GroundTruth


def default_lighthouses(distance: float = 2.5, height: float = 2.0) -> dict[str, Transform]:
    """Two lighthouses in opposite corners facing the middle of the room."""
    target = (0.0, 0.0, 1.0)
    return {
        "LHB-A": look_at((distance, -distance * 0.6, height), target),
        "LHB-B": look_at((-distance * 0.8, distance * 0.7, height + 0.3), target),
    }


def simulate_session(
    *,
    duration: float = 4.0,
    resolution: float = 0.1,
    lighthouses: dict[str, Transform] | None = None,
    params: dict[str, LighthouseParams] | None = None,
    trajectory: str = "circle",
    noise_rad: float = 0.0,
    offset: Sequence[float] = (0.0, 0.0, 0.0),
    with_corrections: bool = True,
    seed: int = 0,
) -> SimulatedSession:
    """Generate one recording session with known ground truth.

    Every lighthouse sweeps both axes once per bucket, at the bucket
    centre. Corrections report the tracker origin minus ``offset``, so the
    pipeline's centroid + offset pairing recovers the true registration.
    """
    if duration <= 0.0:
        raise ValueError("duration must be > 0")
    if resolution <= 0.0:
        raise ValueError("resolution must be > 0")
    if noise_rad < 0.0:
        raise ValueError("noise_rad must be >= 0")

    rng = np.random.default_rng(int(seed))
    placements = lighthouses or default_lighthouses()
    params = params or {}
    offset = np.asarray(offset, dtype=np.float64).reshape(3)

    virtual = {
        serial: VirtualLighthouse(serial, placements[serial], params.get(serial))
        for serial in sorted(placements)
    }
    tracker = SimulatedTracker(seed=seed, trajectory=trajectory)

    measurements: list[Measurement] = []
    corrections: list[Correction] = []
    for k in range(1, int(round(duration / resolution)) + 1):
        t = k * resolution
        sensors_world = tracker.sensors_world(t)
        for serial, lh in virtual.items():
            observed = lh.observe(sensors_world)
            for axis in AXES:
                pulses = []
                for s, angles in enumerate(observed):
                    if angles is None:
                        continue
                    angle = angles[axis]
                    if noise_rad > 0.0:
                        angle += float(rng.normal(0.0, noise_rad))
                    pulses.append(Pulse(sensor=s, angle=float(angle), duration=PULSE_DURATION))
                measurements.append(Measurement(
                    timestamp=t,
                    tracker=tracker.serial,
                    lighthouse=serial,
                    axis=axis,
                    pulses=tuple(pulses),
                ))
        if with_corrections:
            pose = tracker.pose(t)
            corrections.append(Correction(t, Transform(pose.translation - offset, pose.rotvec)))

    master = sorted(placements)[0]
    world_T_master = placements[master]
    master_T_world = world_T_master.inverse()
    truth = GroundTruth(
        registration=world_T_master if with_corrections else Transform.identity(),
        lighthouses={s: master_T_world.compose(placements[s]) for s in sorted(placements)},
    )

    config = CalibrationConfig(
        lighthouses={
            s: Lighthouse(serial=s, params=params.get(s)) for s in sorted(placements)
        },
        trackers={tracker.serial: tracker.to_tracker()},
        resolution=resolution,
        correct=bool(params),
        offset=offset,
    )
    return SimulatedSession(config=config, measurements=measurements, corrections=corrections, truth=truth)


def evaluate(graph, truth: GroundTruth) -> dict:
    """Per-transform translation (m) and rotation (deg) errors against ground truth."""
    errors = {
        "registration": {
            "translation_m": translation_error_m(graph.registration, truth.registration),
            "rotation_deg": rotation_error_deg(graph.registration, truth.registration),
        }
    }
    for serial, expected in sorted(truth.lighthouses.items()):
        estimate = graph.lighthouses.get(serial)
        if estimate is None:
            errors[serial] = {"translation_m": float("nan"), "rotation_deg": float("nan")}
            continue
        errors[serial] = {
            "translation_m": translation_error_m(estimate, expected),
            "rotation_deg": rotation_error_deg(estimate, expected),
        }
    return errors


def assert_errors(
    errors: dict,
    *,
    max_translation_m: float,
    max_rotation_deg: float | None = None,
) -> None:
    for name, err in errors.items():
        dt = float(err["translation_m"])
        if not np.isfinite(dt) or dt > float(max_translation_m):
            raise AssertionError(f"{name}: translation error {dt} exceeds {float(max_translation_m)}")
        if max_rotation_deg is None:
            continue
        dr = float(err["rotation_deg"])
        if not np.isfinite(dr) or dr > float(max_rotation_deg):
            raise AssertionError(f"{name}: rotation error {dr} exceeds {float(max_rotation_deg)}")
