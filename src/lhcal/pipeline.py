"""
Calibration pipeline that integrates all estimation stages.

Provides the complete processing chain:
- Measurements/corrections -> time buckets -> per-bucket PnP poses
  -> lighthouse chaining (Kabsch) -> world registration -> transform graph
"""

import logging
from typing import Dict, Any, List, Iterable, Tuple
from dataclasses import dataclass, field

from .bundle import TemporalAggregator
from .config import CalibrationConfig
from .geo import LighthouseCamera, PerspectivePoseSolver
from .graph import TransformGraph
from .model import Measurement, Correction
from .registration import PoseTable, chain_lighthouses, estimate_poses, register_world
from .rigid import AlignmentResult
from .transform import Transform

logger = logging.getLogger(__name__)

Trajectory = List[Tuple[float, Transform]]


@dataclass
class SolveStats:
    """Diagnostic counters from one solve."""
    measurements: int = 0
    corrections: int = 0
    duration_seconds: float = 0.0
    samples: int = 0
    pnp_attempts: int = 0
    pnp_solutions: int = 0
    pnp_failures: Dict[str, int] = field(default_factory=dict)
    mean_height: float = 0.0
    lighthouse_correspondences: Dict[str, int] = field(default_factory=dict)
    world_correspondences: int = 0
    degraded: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "measurements": self.measurements,
            "corrections": self.corrections,
            "duration_seconds": self.duration_seconds,
            "samples": self.samples,
            "pnp_attempts": self.pnp_attempts,
            "pnp_solutions": self.pnp_solutions,
            "pnp_failures": dict(self.pnp_failures),
            "mean_height": self.mean_height,
            "lighthouse_correspondences": dict(self.lighthouse_correspondences),
            "world_correspondences": self.world_correspondences,
            "degraded": list(self.degraded),
        }


@dataclass(eq=False)
class SolveResult:
    """Output of one pipeline run."""
    graph: TransformGraph
    world: AlignmentResult
    lighthouses: Dict[str, AlignmentResult]
    poses: PoseTable
    stats: SolveStats
    trajectories: Dict[Tuple[str, str], Trajectory] = field(default_factory=dict)
    truth: Trajectory = field(default_factory=list)


class CalibrationPipeline:
    """
    Batch estimator for lighthouse and world registration.

    Usage:
        pipeline = CalibrationPipeline(config)
        result = pipeline.solve(measurements, corrections)
        result.graph.named_transforms()
    """

    def __init__(self, config: CalibrationConfig):
        """
        Initialize calibration pipeline.

        Args:
            config: Static configuration (lighthouses, trackers, thresholds)
        """
        self.config = config
        self.aggregator = TemporalAggregator(resolution=config.resolution)
        self.solver = PerspectivePoseSolver(camera=LighthouseCamera(), settings=config.pnp)

    def solve(
        self,
        measurements: Iterable[Measurement],
        corrections: Iterable[Correction] = ()
    ) -> SolveResult:
        """
        Run every estimation stage over one session's data.

        Inputs are not modified, so solving the same data twice gives the
        same transforms.

        Raises:
            InsufficientDataError: If there are no measurements
        """
        measurements = sorted(measurements, key=lambda m: m.timestamp)
        corrections = sorted(corrections, key=lambda c: c.timestamp)
        stats = SolveStats(measurements=len(measurements), corrections=len(corrections))

        if measurements:
            stats.duration_seconds = measurements[-1].timestamp - measurements[0].timestamp
            logger.info(
                "Processing %d measurements running for %.3f seconds from %.3f to %.3f",
                len(measurements), stats.duration_seconds,
                measurements[0].timestamp, measurements[-1].timestamp
            )
        else:
            logger.warning("Insufficient measurements received, so cannot solve problem.")

        if not corrections:
            logger.info("No corrections in dataset. Assuming reference frame is the world frame.")
        else:
            logger.info(
                "Processing %d corrections running for %.3f seconds from %.3f to %.3f",
                len(corrections), corrections[-1].timestamp - corrections[0].timestamp,
                corrections[0].timestamp, corrections[-1].timestamp
            )

        bundle = self.aggregator.aggregate(measurements, corrections)
        stats.samples = bundle.sample_count
        stats.mean_height = bundle.mean_height

        trackers = self.config.trackers
        lighthouses = self.config.lighthouses
        reference = self.config.reference

        poses = estimate_poses(bundle, trackers, lighthouses, self.solver, self.config.correct)
        stats.pnp_attempts = poses.attempts
        stats.pnp_solutions = poses.solutions
        stats.pnp_failures = poses.failures()

        chained = chain_lighthouses(poses, lighthouses, trackers)
        for serial, result in chained.items():
            stats.lighthouse_correspondences[serial] = result.correspondences
            if not result.ok:
                stats.degraded.append(serial)

        world = register_world(poses, bundle.corrections, trackers, reference, self.config.offset)
        stats.world_correspondences = world.correspondences
        if not world.ok and bundle.corrections:
            stats.degraded.append(self.config.frames.world)

        graph = TransformGraph.from_config(self.config)
        graph.registration = world.transform
        graph.lighthouses = {serial: result.transform for serial, result in chained.items()}
        graph.solved = True

        trajectories = {}
        for lserial in sorted(lighthouses):
            for tserial in sorted(trackers):
                trajectories[(lserial, tserial)] = [
                    (bundle.bucket_time(b), pose) for b, pose in poses.trajectory(tserial, lserial)
                ]
        truth = [(bundle.bucket_time(b), t) for b, t in sorted(bundle.corrections.items())]

        return SolveResult(
            graph=graph,
            world=world,
            lighthouses=chained,
            poses=poses,
            stats=stats,
            trajectories=trajectories,
            truth=truth,
        )
