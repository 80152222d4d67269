"""
Frame registration from per-instant tracker poses.

Provides functionality to:
- Solve the tracker pose in every lighthouse frame for every time bucket
- Chain every lighthouse into the reference lighthouse frame (Kabsch)
- Register the reference frame to the world using pose corrections
"""

import logging
import numpy as np
from typing import Optional, Dict, List, Iterable, Mapping, Sequence, Tuple
from collections import Counter
from dataclasses import dataclass, field

from .bundle import Bundle
from .correct import correct_angles
from .geo import PerspectivePoseSolver, PoseResult
from .model import AZIMUTH, ELEVATION, Lighthouse, Tracker
from .rigid import AlignmentResult, KabschEstimator
from .transform import Transform

logger = logging.getLogger(__name__)

# (tracker, bucket, lighthouse)
PoseKey = Tuple[str, int, str]


@dataclass
class PoseTable:
    """Every pose attempt, successful or not, keyed flat by ``PoseKey``."""
    results: Dict[PoseKey, PoseResult] = field(default_factory=dict)

    def record(self, tracker: str, bucket: int, lighthouse: str, result: PoseResult) -> None:
        self.results[(tracker, bucket, lighthouse)] = result

    def get(self, tracker: str, bucket: int, lighthouse: str) -> Optional[PoseResult]:
        """Result for a key, or None if no pose was attempted."""
        return self.results.get((tracker, bucket, lighthouse))

    def pose(self, tracker: str, bucket: int, lighthouse: str) -> Optional[Transform]:
        """Solved pose for a key, or None if missing or failed."""
        result = self.results.get((tracker, bucket, lighthouse))
        if result is None or not result.ok:
            return None
        return result.transform

    def position(self, tracker: str, bucket: int, lighthouse: str) -> Optional[np.ndarray]:
        pose = self.pose(tracker, bucket, lighthouse)
        return None if pose is None else pose.translation

    def buckets(self, tracker: str) -> List[int]:
        return sorted({b for t, b, _ in self.results if t == tracker})

    def trajectory(self, tracker: str, lighthouse: str) -> List[Tuple[int, Transform]]:
        """Time-ordered solved poses of a tracker in one lighthouse frame."""
        out = []
        for (t, b, l), result in self.results.items():
            if t == tracker and l == lighthouse and result.ok:
                out.append((b, result.transform))
        return sorted(out, key=lambda item: item[0])

    @property
    def attempts(self) -> int:
        return len(self.results)

    @property
    def solutions(self) -> int:
        return sum(1 for r in self.results.values() if r.ok)

    def failures(self) -> Dict[str, int]:
        return dict(Counter(r.reason for r in self.results.values() if not r.ok))


def estimate_poses(
    bundle: Bundle,
    trackers: Mapping[str, Tracker],
    lighthouses: Mapping[str, Lighthouse],
    solver: PerspectivePoseSolver,
    correct: bool = False
) -> PoseTable:
    """
    Solve the tracker pose in each lighthouse frame for each time bucket.

    A sensor contributes a correspondence only when both sweep axes were
    observed in the bucket. Angles are corrected before projection.
    """
    logger.info("Using PnP to estimate pose sequence in every lighthouse frame.")
    table = PoseTable()
    for lserial in sorted(lighthouses):
        lighthouse = lighthouses[lserial]
        for tserial in sorted(trackers):
            tracker = trackers[tserial]
            logger.info("- Lighthouse %s and tracker %s", lserial, tserial)
            for bucket in bundle.buckets(tserial, lserial):
                obj = []
                img = []
                for s, sensor in enumerate(tracker.sensors):
                    az = bundle.mean(tserial, lserial, bucket, s, AZIMUTH)
                    el = bundle.mean(tserial, lserial, bucket, s, ELEVATION)
                    if az is None or el is None:
                        continue
                    az, el = correct_angles(lighthouse.params, (az, el), correct)
                    obj.append(sensor.position)
                    img.append(solver.camera.image_point(az, el))
                table.record(tserial, bucket, lserial, solver.solve(obj, img))
    logger.info("Using %d PnP solutions", table.solutions)
    if table.attempts > table.solutions:
        logger.debug("Skipped pose instants: %s", table.failures())
    return table


def _align(source: List[np.ndarray], target: List[np.ndarray]) -> AlignmentResult:
    logger.info("- Using %d correspondences", len(source))
    result = KabschEstimator.estimate(
        np.asarray(source, dtype=np.float64).reshape(-1, 3),
        np.asarray(target, dtype=np.float64).reshape(-1, 3),
    )
    if result.ok:
        logger.info("- Solution %.4f (rms %.6f)", np.linalg.norm(result.transform.translation), result.rms_error)
    return result


def chain_lighthouses(
    poses: PoseTable,
    lighthouses: Iterable[str],
    trackers: Iterable[str]
) -> Dict[str, AlignmentResult]:
    """
    Estimate every lighthouse -> reference lighthouse transform.

    The reference is the first lighthouse in sorted order. For every other
    lighthouse, each (tracker, bucket) with a pose in both frames pairs the
    tracker position in that lighthouse with its position in the reference.
    """
    logger.info("Estimating reference -> lighthouse transforms.")
    serials = sorted(lighthouses)
    tracker_serials = sorted(trackers)
    reference = serials[0]

    results: Dict[str, AlignmentResult] = {reference: AlignmentResult()}
    for serial in serials[1:]:
        source: List[np.ndarray] = []
        target: List[np.ndarray] = []
        for tracker in tracker_serials:
            for bucket in poses.buckets(tracker):
                p_this = poses.position(tracker, bucket, serial)
                p_ref = poses.position(tracker, bucket, reference)
                if p_this is None or p_ref is None:
                    continue
                source.append(p_this)
                target.append(p_ref)
        result = _align(source, target)
        if not result.ok:
            logger.warning(
                "- Lighthouse %s: solution not found with %d correspondences, using identity",
                serial, result.correspondences
            )
        results[serial] = result
    return results


def register_world(
    poses: PoseTable,
    corrections: Mapping[int, Transform],
    trackers: Iterable[str],
    reference: str,
    offset: Sequence[float] = (0.0, 0.0, 0.0)
) -> AlignmentResult:
    """
    Estimate the reference -> world transform.

    For every correction bucket where all trackers have a pose in the
    reference frame, their mean position is paired with the corrected body
    position plus the tracker centroid offset.
    """
    logger.info("Using corrections to register reference frame to world frame.")
    tracker_serials = sorted(trackers)
    offset = np.asarray(offset, dtype=np.float64).reshape(3)

    source: List[np.ndarray] = []
    target: List[np.ndarray] = []
    if tracker_serials:
        for bucket in sorted(corrections):
            positions = [poses.position(t, bucket, reference) for t in tracker_serials]
            if any(p is None for p in positions):
                continue
            source.append(np.mean(positions, axis=0))
            target.append(corrections[bucket].translation + offset)

    result = _align(source, target)
    if not result.ok:
        logger.info("- No correspondences so reference -> world frame is identity")
    return result
