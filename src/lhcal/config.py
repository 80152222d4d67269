"""
Configuration loading for the calibration host.

Configuration is a YAML (or JSON) document:

    calfile: calibration.yaml
    record_dir: logs
    offline: false
    correct: false
    resolution: 0.1
    idle_timeout: 1.0
    offset: [0.0, 0.0, 0.0]
    frames: {world: world, vive: vive, body: body, truth: truth}
    thresholds: {count: 4, angle: 60.0, duration: 1.0}
    lighthouses:
      - serial: LHB-A
        transform: [x, y, z, qx, qy, qz, qw]
        params: {phase: [0, 0], tilt: [0, 0], ...}
    trackers:
      - serial: LHR-A
        extrinsics: [x, y, z, qx, qy, qz, qw]
        sensors: [[x, y, z, nx, ny, nz], ...]
"""

import yaml
import numpy as np
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field

from .correct import LighthouseParams
from .errors import MalformedConfigurationError
from .geo import PnPSettings
from .model import Lighthouse, Sensor, Tracker
from .transform import Transform


@dataclass
class Frames:
    """Names of the frames published with the solution."""
    world: str = "world"
    vive: str = "vive"
    body: str = "body"
    truth: str = "truth"


@dataclass
class Thresholds:
    """Per-pulse rejection thresholds."""
    count: int = 4          # minimum surviving pulses per measurement
    angle: float = 60.0     # degrees
    duration: float = 1.0   # microseconds


@dataclass
class CalibrationConfig:
    """Static configuration for one calibration host."""
    lighthouses: Dict[str, Lighthouse] = field(default_factory=dict)
    trackers: Dict[str, Tracker] = field(default_factory=dict)
    frames: Frames = field(default_factory=Frames)
    thresholds: Thresholds = field(default_factory=Thresholds)
    pnp: PnPSettings = field(default_factory=PnPSettings)
    resolution: float = 0.1
    correct: bool = False
    offset: np.ndarray = field(default_factory=lambda: np.zeros(3))
    offline: bool = False
    idle_timeout: float = 1.0
    calfile: Optional[str] = None
    record_dir: Optional[str] = None
    clear_corrections: bool = False
    queue_size: int = 10000

    @property
    def reference(self) -> str:
        """Serial of the reference lighthouse (first in sorted order)."""
        return sorted(self.lighthouses)[0]


def _vector(value: Any, size: int, what: str) -> np.ndarray:
    try:
        arr = np.asarray(value, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as e:
        raise MalformedConfigurationError(f"Failed to parse {what}: {e}") from e
    if arr.shape[0] != size:
        raise MalformedConfigurationError(
            f"Failed to parse {what}: expected {size} values, got {arr.shape[0]}"
        )
    return arr


def _parse_lighthouse(data: Dict[str, Any]) -> Lighthouse:
    serial = data.get("serial")
    if not serial:
        raise MalformedConfigurationError("Lighthouse entry is missing a serial")
    transform = Transform.identity()
    if data.get("transform") is not None:
        transform = Transform.from_xyzquat(
            _vector(data["transform"], 7, f"lighthouse {serial} transform")
        )
    params = data.get("params")
    return Lighthouse(
        serial=str(serial),
        params=LighthouseParams.from_dict(params) if params is not None else None,
        transform=transform,
        ready=bool(data.get("ready", True)),
    )


def _parse_tracker(data: Dict[str, Any]) -> Tracker:
    serial = data.get("serial")
    if not serial:
        raise MalformedConfigurationError("Tracker entry is missing a serial")
    extrinsics = Transform.identity()
    if data.get("extrinsics") is not None:
        extrinsics = Transform.from_xyzquat(
            _vector(data["extrinsics"], 7, f"tracker {serial} extrinsics")
        )
    sensors: List[Sensor] = []
    for i, row in enumerate(data.get("sensors") or []):
        values = _vector(row, 6, f"tracker {serial} sensor {i}")
        sensors.append(Sensor(position=values[:3], normal=values[3:]))
    return Tracker(serial=str(serial), extrinsics=extrinsics, sensors=sensors)


def parse_config(data: Dict[str, Any]) -> CalibrationConfig:
    """
    Build a CalibrationConfig from a parsed document.

    Raises:
        MalformedConfigurationError: On missing or wrong-arity fields
    """
    if not isinstance(data, dict):
        raise MalformedConfigurationError("Configuration must be a mapping")

    lighthouses = {}
    for entry in data.get("lighthouses") or []:
        lh = _parse_lighthouse(entry)
        lighthouses[lh.serial] = lh
    if not lighthouses:
        raise MalformedConfigurationError("At least one lighthouse is required")

    trackers = {}
    for entry in data.get("trackers") or []:
        tr = _parse_tracker(entry)
        trackers[tr.serial] = tr

    try:
        frames = Frames(**(data.get("frames") or {}))
    except TypeError as e:
        raise MalformedConfigurationError(f"Failed to parse frames: {e}") from e
    thresholds_data = data.get("thresholds") or {}
    thresholds = Thresholds(
        count=int(thresholds_data.get("count", 4)),
        angle=float(thresholds_data.get("angle", 60.0)),
        duration=float(thresholds_data.get("duration", 1.0)),
    )
    pnp_data = data.get("pnp") or {}
    pnp = PnPSettings(
        min_correspondences=int(pnp_data.get("min_correspondences", 7)),
        iterations=int(pnp_data.get("iterations", 100)),
        reprojection_error=float(pnp_data.get("reprojection_error", 8.0)),
        confidence=float(pnp_data.get("confidence", 0.99)),
    )

    resolution = float(data.get("resolution", 0.1))
    if resolution <= 0.0:
        raise MalformedConfigurationError("resolution must be > 0")

    offset = _vector(data.get("offset", [0.0, 0.0, 0.0]), 3, "offset")

    # The reference lighthouse defines the shared frame
    reference = sorted(lighthouses)[0]
    lighthouses[reference].transform = Transform.identity()

    return CalibrationConfig(
        lighthouses=lighthouses,
        trackers=trackers,
        frames=frames,
        thresholds=thresholds,
        pnp=pnp,
        resolution=resolution,
        correct=bool(data.get("correct", False)),
        offset=offset,
        offline=bool(data.get("offline", False)),
        idle_timeout=float(data.get("idle_timeout", 1.0)),
        calfile=data.get("calfile"),
        record_dir=data.get("record_dir"),
        clear_corrections=bool(data.get("clear_corrections", False)),
        queue_size=int(data.get("queue_size", 10000)),
    )


def load_config(filepath: str) -> CalibrationConfig:
    """Load configuration from a YAML or JSON file."""
    path = Path(filepath)
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise MalformedConfigurationError(f"Failed to parse {path}: {e}") from e
    return parse_config(data or {})


def config_to_dict(config: CalibrationConfig) -> Dict[str, Any]:
    """Inverse of ``parse_config``."""
    data: Dict[str, Any] = {
        "offline": config.offline,
        "correct": config.correct,
        "resolution": config.resolution,
        "idle_timeout": config.idle_timeout,
        "offset": np.asarray(config.offset, dtype=np.float64).tolist(),
        "clear_corrections": config.clear_corrections,
        "queue_size": config.queue_size,
        "frames": {
            "world": config.frames.world,
            "vive": config.frames.vive,
            "body": config.frames.body,
            "truth": config.frames.truth,
        },
        "thresholds": {
            "count": config.thresholds.count,
            "angle": config.thresholds.angle,
            "duration": config.thresholds.duration,
        },
        "pnp": {
            "min_correspondences": config.pnp.min_correspondences,
            "iterations": config.pnp.iterations,
            "reprojection_error": config.pnp.reprojection_error,
            "confidence": config.pnp.confidence,
        },
        "lighthouses": [],
        "trackers": [],
    }
    if config.calfile:
        data["calfile"] = str(config.calfile)
    if config.record_dir:
        data["record_dir"] = str(config.record_dir)
    for serial in sorted(config.lighthouses):
        lh = config.lighthouses[serial]
        entry = {
            "serial": serial,
            "transform": lh.transform.as_xyzquat().tolist(),
            "ready": lh.ready,
        }
        if lh.params is not None:
            entry["params"] = lh.params.to_dict()
        data["lighthouses"].append(entry)
    for serial in sorted(config.trackers):
        tr = config.trackers[serial]
        data["trackers"].append({
            "serial": serial,
            "extrinsics": tr.extrinsics.as_xyzquat().tolist(),
            "sensors": [
                np.concatenate([s.position, s.normal]).tolist() for s in tr.sensors
            ],
        })
    return data


def save_config(config: CalibrationConfig, filepath: str) -> str:
    """Write configuration as YAML."""
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(config_to_dict(config), f, default_flow_style=None, sort_keys=False)
    return str(path)
