import sys
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from lhcal.geo import PoseResult, UNSOLVABLE_POSE  # type: ignore
from lhcal.registration import PoseTable, chain_lighthouses, register_world  # type: ignore
from lhcal.transform import Transform  # type: ignore

WORLD_T_REF = Transform(np.array([1.0, 2.0, 0.5]), np.array([0.0, 0.0, 0.7]))
REF_T_SLAVE = Transform(np.array([-2.0, 0.3, 0.1]), np.array([0.1, -0.4, 2.0]))

POSITIONS = np.array([
    [0.0, 0.0, 1.0],
    [0.5, 0.1, 1.2],
    [0.2, 0.6, 0.9],
    [-0.3, 0.2, 1.4],
    [0.1, -0.4, 1.1],
])


def _pose(position):
    return PoseResult(transform=Transform(np.asarray(position), np.zeros(3)), correspondences=8)


def test_chain_recovers_slave_transform():
    table = PoseTable()
    slave_T_ref = REF_T_SLAVE.inverse()
    for b, p in enumerate(POSITIONS):
        table.record("LHR-1", b, "LHB-A", _pose(p))
        table.record("LHR-1", b, "LHB-B", _pose(slave_T_ref.apply(p)))

    results = chain_lighthouses(table, ["LHB-B", "LHB-A"], ["LHR-1"])

    assert results["LHB-A"].ok
    np.testing.assert_allclose(results["LHB-A"].transform.as_array(), np.zeros(6))
    assert results["LHB-B"].correspondences == len(POSITIONS)
    dt, dr = results["LHB-B"].transform.distance_to(REF_T_SLAVE)
    assert dt < 1e-9
    assert dr < 1e-9


def test_chain_without_overlap_falls_back_to_identity():
    table = PoseTable()
    for b, p in enumerate(POSITIONS):
        table.record("LHR-1", b, "LHB-A", _pose(p))
        table.record("LHR-1", b + 100, "LHB-B", _pose(p))
    table.record("LHR-1", 0, "LHB-C", PoseResult.failed(UNSOLVABLE_POSE, 8))

    results = chain_lighthouses(table, ["LHB-A", "LHB-B", "LHB-C"], ["LHR-1"])

    for serial in ("LHB-B", "LHB-C"):
        assert not results[serial].ok
        assert results[serial].correspondences == 0
        np.testing.assert_allclose(results[serial].transform.as_array(), np.zeros(6))


def test_world_registration_uses_tracker_centroid_plus_offset():
    offset = np.array([0.0, 0.0, -0.1])
    ref_T_world = WORLD_T_REF.inverse()
    spread = np.array([0.05, 0.0, 0.0])
    table = PoseTable()
    corrections = {}
    for b, p in enumerate(POSITIONS):
        # Two trackers straddling the body origin
        table.record("LHR-1", b, "LHB-A", _pose(ref_T_world.apply(p + spread)))
        table.record("LHR-2", b, "LHB-A", _pose(ref_T_world.apply(p - spread)))
        corrections[b] = Transform(p - offset, np.zeros(3))

    result = register_world(table, corrections, ["LHR-1", "LHR-2"], "LHB-A", offset)

    assert result.ok
    assert result.correspondences == len(POSITIONS)
    dt, dr = result.transform.distance_to(WORLD_T_REF)
    assert dt < 1e-9
    assert dr < 1e-9


def test_world_registration_skips_buckets_missing_a_tracker():
    table = PoseTable()
    corrections = {}
    for b, p in enumerate(POSITIONS):
        table.record("LHR-1", b, "LHB-A", _pose(p))
        if b < 2:
            table.record("LHR-2", b, "LHB-A", _pose(p))
        corrections[b] = Transform(p, np.zeros(3))

    result = register_world(table, corrections, ["LHR-1", "LHR-2"], "LHB-A")

    assert not result.ok
    assert result.correspondences == 2
    np.testing.assert_allclose(result.transform.as_array(), np.zeros(6))


def test_world_registration_without_corrections_is_identity():
    table = PoseTable()
    for b, p in enumerate(POSITIONS):
        table.record("LHR-1", b, "LHB-A", _pose(p))

    result = register_world(table, {}, ["LHR-1"], "LHB-A")

    assert not result.ok
    np.testing.assert_allclose(result.transform.as_array(), np.zeros(6))


def test_pose_table_counts_failures():
    table = PoseTable()
    table.record("LHR-1", 0, "LHB-A", _pose(POSITIONS[0]))
    table.record("LHR-1", 1, "LHB-A", PoseResult.failed(UNSOLVABLE_POSE, 8))

    assert table.attempts == 2
    assert table.solutions == 1
    assert table.failures() == {UNSOLVABLE_POSE: 1}
    assert table.pose("LHR-1", 1, "LHB-A") is None
    assert table.get("LHR-1", 1, "LHB-A").reason == UNSOLVABLE_POSE
    assert [b for b, _ in table.trajectory("LHR-1", "LHB-A")] == [0]
