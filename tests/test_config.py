import sys
from pathlib import Path

import numpy as np
import pytest
import yaml

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from lhcal.config import load_config, parse_config, save_config  # type: ignore
from lhcal.errors import MalformedConfigurationError  # type: ignore

CONFIG = """
calfile: cal.yaml
correct: true
resolution: 0.05
offset: [0.0, 0.0, 0.1]
frames: {world: map, body: base}
thresholds: {count: 5, angle: 45.0}
lighthouses:
  - serial: LHB-B
    transform: [1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0]
    params: {phase: [0.01, -0.02]}
  - serial: LHB-A
    transform: [2.0, 0.0, 0.0, 0.0, 0.0, 0.0, 1.0]
trackers:
  - serial: LHR-1
    sensors:
      - [0.1, 0.0, 0.0, 1.0, 0.0, 0.0]
      - [0.0, 0.1, 0.0, 0.0, 1.0, 0.0]
"""


@pytest.fixture()
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


def test_load_config(config_file):
    config = load_config(str(config_file))

    assert config.calfile == "cal.yaml"
    assert config.correct
    assert config.resolution == pytest.approx(0.05)
    np.testing.assert_allclose(config.offset, [0.0, 0.0, 0.1])
    assert config.frames.world == "map"
    assert config.frames.vive == "vive"
    assert config.frames.body == "base"
    assert config.thresholds.count == 5
    assert config.thresholds.angle == pytest.approx(45.0)
    assert config.thresholds.duration == pytest.approx(1.0)
    assert config.lighthouses["LHB-B"].params.phase == (0.01, -0.02)
    assert config.lighthouses["LHB-A"].params is None
    assert config.trackers["LHR-1"].num_sensors == 2
    assert config.trackers["LHR-1"].ready


def test_reference_lighthouse_is_first_sorted_and_pinned(config_file):
    config = load_config(str(config_file))

    assert config.reference == "LHB-A"
    np.testing.assert_allclose(config.lighthouses["LHB-A"].transform.as_array(), np.zeros(6))
    np.testing.assert_allclose(config.lighthouses["LHB-B"].transform.translation, [1.0, 0.0, 0.0])


def test_defaults():
    config = parse_config({"lighthouses": [{"serial": "LHB-A"}]})

    assert not config.offline
    assert not config.correct
    assert config.resolution == pytest.approx(0.1)
    assert config.idle_timeout == pytest.approx(1.0)
    assert config.thresholds.count == 4
    assert config.pnp.min_correspondences == 7
    assert config.trackers == {}


@pytest.mark.parametrize(
    "data",
    [
        {"lighthouses": []},
        {"lighthouses": [{"serial": "A", "transform": [0.0] * 6}]},
        {"lighthouses": [{"serial": "A"}], "trackers": [{"serial": "T", "extrinsics": [0.0] * 3}]},
        {"lighthouses": [{"serial": "A"}], "trackers": [{"serial": "T", "sensors": [[0.0] * 5]}]},
        {"lighthouses": [{"serial": "A"}], "offset": [0.0, 0.0]},
        {"lighthouses": [{"serial": "A"}], "resolution": 0.0},
        {"lighthouses": [{"serial": "A"}], "frames": {"odom": "odom"}},
        {"lighthouses": [{"serial": "A", "params": {"phase": [0.0, 0.0, 0.0]}}]},
        {"lighthouses": [{"transform": [0.0] * 7}]},
    ],
)
def test_malformed_configuration(data):
    with pytest.raises(MalformedConfigurationError):
        parse_config(data)


def test_save_and_load(tmp_path, config_file):
    config = load_config(str(config_file))
    path = save_config(config, str(tmp_path / "saved.yaml"))

    loaded = load_config(path)

    assert sorted(loaded.lighthouses) == ["LHB-A", "LHB-B"]
    assert loaded.frames.world == "map"
    assert loaded.lighthouses["LHB-B"].params == config.lighthouses["LHB-B"].params
    np.testing.assert_allclose(
        loaded.trackers["LHR-1"].sensor_positions, config.trackers["LHR-1"].sensor_positions
    )
    with open(path, encoding="utf-8") as f:
        assert isinstance(yaml.safe_load(f), dict)
