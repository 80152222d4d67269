"""
Lighthouse calibration host.

Modules:
- transform: Rigid transforms (translation + axis-angle)
- correct: Lighthouse sweep model and angle correction
- model: Sensors, trackers, lighthouses, measurements, corrections
- config: YAML configuration loading
- bundle: Temporal aggregation into fixed-width buckets
- geo: Lighthouse-as-camera model and RANSAC PnP
- rigid: Kabsch rigid alignment
- registration: Pose table, lighthouse chaining, world registration
- graph: Calibrated transform graph and named transforms
- pipeline: Complete calibration pipeline
- session: Recording state machine and worker thread
- calfile: Calibration file read/write
- recorder / replay: Session recording and offline playback
- metrics: Ingestion and solve metrics
- sim: Synthetic sessions with ground truth
- visualize: Trajectory export and summaries
"""

from .errors import CalibrationError, InsufficientDataError, MalformedConfigurationError
from .transform import Transform
from .correct import LighthouseParams, correct_angles, distort_angles
from .model import (
    AZIMUTH, ELEVATION, Sensor, Tracker, Lighthouse,
    Pulse, Measurement, Correction
)
from .config import (
    CalibrationConfig, Frames, Thresholds,
    load_config, parse_config, save_config
)
from .bundle import Bundle, TemporalAggregator, bucket_index
from .geo import LighthouseCamera, PerspectivePoseSolver, PnPSettings, PoseResult, sweep_angles
from .rigid import AlignmentResult, KabschEstimator
from .registration import PoseTable, estimate_poses, chain_lighthouses, register_world
from .graph import TransformGraph
from .pipeline import CalibrationPipeline, SolveResult, SolveStats
from .session import (
    CalibrationSession, SessionRunner, SessionState,
    TriggerResponse, filter_pulses
)
from .calfile import read_calibration, write_calibration
from .recorder import SessionRecorder
from .replay import SessionReplay, validate_log_integrity
from .metrics import MetricsCollector, MetricsExporter
from .visualize import TrajectoryExporter

__all__ = [
    # Errors
    "CalibrationError",
    "InsufficientDataError",
    "MalformedConfigurationError",
    # Geometry primitives
    "Transform",
    "LighthouseParams",
    "correct_angles",
    "distort_angles",
    "sweep_angles",
    # Model
    "AZIMUTH",
    "ELEVATION",
    "Sensor",
    "Tracker",
    "Lighthouse",
    "Pulse",
    "Measurement",
    "Correction",
    # Config
    "CalibrationConfig",
    "Frames",
    "Thresholds",
    "load_config",
    "parse_config",
    "save_config",
    # Estimation
    "Bundle",
    "TemporalAggregator",
    "bucket_index",
    "LighthouseCamera",
    "PerspectivePoseSolver",
    "PnPSettings",
    "PoseResult",
    "AlignmentResult",
    "KabschEstimator",
    "PoseTable",
    "estimate_poses",
    "chain_lighthouses",
    "register_world",
    # Pipeline
    "TransformGraph",
    "CalibrationPipeline",
    "SolveResult",
    "SolveStats",
    # Session
    "CalibrationSession",
    "SessionRunner",
    "SessionState",
    "TriggerResponse",
    "filter_pulses",
    # I/O
    "read_calibration",
    "write_calibration",
    "SessionRecorder",
    "SessionReplay",
    "validate_log_integrity",
    "MetricsCollector",
    "MetricsExporter",
    "TrajectoryExporter",
]
