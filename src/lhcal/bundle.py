"""
Temporal aggregation of sweep measurements and corrections.

Measurements arrive irregularly; averaging everything that falls into a
fixed-width time bucket reduces noise and lines up observations from
different lighthouses so they can be compared at the same instant.
"""

import math
import logging
import numpy as np
from typing import Optional, Dict, List, Iterable, Tuple
from collections import defaultdict
from dataclasses import dataclass, field

from .errors import InsufficientDataError
from .model import Measurement, Correction
from .transform import Transform

logger = logging.getLogger(__name__)

# (tracker, lighthouse, bucket, sensor, axis)
BundleKey = Tuple[str, str, int, int, int]


def bucket_index(timestamp: float, resolution: float) -> int:
    """Index of the bucket nearest to ``timestamp`` (halves round up)."""
    return int(math.floor(timestamp / resolution + 0.5))


@dataclass
class Bundle:
    """Aggregated observations, keyed flat by ``BundleKey``."""
    resolution: float
    samples: Dict[BundleKey, List[float]] = field(default_factory=dict)
    corrections: Dict[int, Transform] = field(default_factory=dict)
    mean_height: float = 0.0
    _buckets: Dict[Tuple[str, str], List[int]] = field(default_factory=dict, repr=False)

    def add(self, key: BundleKey, angle: float) -> None:
        self.samples.setdefault(key, []).append(float(angle))

    def index(self) -> None:
        """Rebuild the (tracker, lighthouse) -> buckets lookup."""
        buckets: Dict[Tuple[str, str], set] = defaultdict(set)
        for tracker, lighthouse, bucket, _, _ in self.samples:
            buckets[(tracker, lighthouse)].add(bucket)
        self._buckets = {k: sorted(v) for k, v in buckets.items()}

    def bucket_time(self, bucket: int) -> float:
        return bucket * self.resolution

    def buckets(self, tracker: str, lighthouse: str) -> List[int]:
        """Sorted buckets with any samples for a tracker/lighthouse pair."""
        return self._buckets.get((tracker, lighthouse), [])

    def mean(
        self,
        tracker: str,
        lighthouse: str,
        bucket: int,
        sensor: int,
        axis: int
    ) -> Optional[float]:
        """Mean angle for a key, or None when nothing was observed."""
        values = self.samples.get((tracker, lighthouse, bucket, sensor, axis))
        if not values:
            return None
        return float(np.mean(values))

    @property
    def sample_count(self) -> int:
        return sum(len(v) for v in self.samples.values())


class TemporalAggregator:
    """
    Bucket measurements and corrections into fixed-width time bins.

    Usage:
        bundle = TemporalAggregator(resolution=0.1).aggregate(measurements, corrections)
        az = bundle.mean("LHR-1", "LHB-1", bucket, sensor=3, axis=0)
    """

    def __init__(self, resolution: float = 0.1):
        if resolution <= 0.0:
            raise ValueError("resolution must be > 0")
        self.resolution = float(resolution)

    def aggregate(
        self,
        measurements: Iterable[Measurement],
        corrections: Iterable[Correction] = ()
    ) -> Bundle:
        """
        Build a bundle from raw measurements and corrections.

        Raises:
            InsufficientDataError: If there are no measurements
        """
        measurements = list(measurements)
        corrections = sorted(corrections, key=lambda c: c.timestamp)

        if not measurements:
            raise InsufficientDataError("Insufficient measurements received")

        bundle = Bundle(resolution=self.resolution)

        logger.info("Bundling measurements into larger discrete time units.")
        for m in measurements:
            bucket = bucket_index(m.timestamp, self.resolution)
            for pulse in m.pulses:
                bundle.add((m.tracker, m.lighthouse, bucket, pulse.sensor, m.axis), pulse.angle)
        bundle.index()

        logger.info("Bundling corrections into larger discrete time units.")
        height = 0.0
        for c in corrections:
            bundle.corrections[bucket_index(c.timestamp, self.resolution)] = c.transform
            height += float(c.transform.translation[2])
        if corrections:
            height /= len(corrections)
        bundle.mean_height = height
        logger.info("Average height is %.4f meters", height)

        return bundle
