import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from lhcal.bundle import TemporalAggregator, bucket_index  # type: ignore
from lhcal.errors import InsufficientDataError  # type: ignore
from lhcal.model import AZIMUTH, ELEVATION, Correction, Measurement, Pulse  # type: ignore
from lhcal.transform import Transform  # type: ignore


def _measurement(t, axis, angles, tracker="LHR-1", lighthouse="LHB-1"):
    return Measurement(
        timestamp=t,
        tracker=tracker,
        lighthouse=lighthouse,
        axis=axis,
        pulses=tuple(Pulse(sensor=i, angle=a, duration=1e-5) for i, a in enumerate(angles)),
    )


@pytest.mark.parametrize(
    "timestamp,expected",
    [(0.0, 0), (0.04, 0), (0.06, 1), (0.14, 1), (0.26, 3), (-0.04, 0), (-0.06, -1)],
)
def test_bucket_index_rounds_to_nearest(timestamp, expected):
    assert bucket_index(timestamp, 0.1) == expected


def test_angles_are_averaged_per_key():
    aggregator = TemporalAggregator(resolution=0.1)
    bundle = aggregator.aggregate([
        _measurement(1.00, AZIMUTH, [0.1, 0.2]),
        _measurement(1.02, AZIMUTH, [0.3, 0.4]),
        _measurement(1.01, ELEVATION, [-0.1]),
    ])

    assert bundle.buckets("LHR-1", "LHB-1") == [10]
    assert bundle.mean("LHR-1", "LHB-1", 10, 0, AZIMUTH) == pytest.approx(0.2)
    assert bundle.mean("LHR-1", "LHB-1", 10, 1, AZIMUTH) == pytest.approx(0.3)
    assert bundle.mean("LHR-1", "LHB-1", 10, 0, ELEVATION) == pytest.approx(-0.1)
    assert bundle.mean("LHR-1", "LHB-1", 10, 1, ELEVATION) is None
    assert bundle.sample_count == 5


def test_buckets_are_sorted_and_separate_pairs():
    bundle = TemporalAggregator(resolution=0.1).aggregate([
        _measurement(0.5, AZIMUTH, [0.1]),
        _measurement(0.2, AZIMUTH, [0.1]),
        _measurement(0.3, AZIMUTH, [0.1], lighthouse="LHB-2"),
    ])

    assert bundle.buckets("LHR-1", "LHB-1") == [2, 5]
    assert bundle.buckets("LHR-1", "LHB-2") == [3]
    assert bundle.buckets("LHR-2", "LHB-1") == []
    assert bundle.bucket_time(5) == pytest.approx(0.5)


def test_empty_measurements_raise():
    with pytest.raises(InsufficientDataError):
        TemporalAggregator().aggregate([], [Correction(0.0, Transform.identity())])


def test_corrections_last_in_bucket_wins_and_mean_height():
    first = Transform(np.array([0.0, 0.0, 1.0]), np.zeros(3))
    second = Transform(np.array([0.0, 0.0, 2.0]), np.zeros(3))
    third = Transform(np.array([1.0, 0.0, 3.0]), np.zeros(3))

    bundle = TemporalAggregator(resolution=0.1).aggregate(
        [_measurement(0.0, AZIMUTH, [0.1])],
        [Correction(0.51, second), Correction(0.49, first), Correction(1.0, third)],
    )

    assert sorted(bundle.corrections) == [5, 10]
    np.testing.assert_allclose(bundle.corrections[5].translation, [0.0, 0.0, 2.0])
    assert bundle.mean_height == pytest.approx(2.0)


def test_non_positive_resolution_rejected():
    with pytest.raises(ValueError):
        TemporalAggregator(resolution=0.0)
