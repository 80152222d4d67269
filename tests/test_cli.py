import sys
import json
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / 'src'
sys.path.insert(0, str(SRC))

from lhcal.calfile import read_calibration  # type: ignore
from lhcal.cli import main  # type: ignore
from lhcal.pipeline import CalibrationPipeline  # type: ignore
from lhcal.sim import simulate_session  # type: ignore
from lhcal.visualize import TrajectoryExporter, create_solve_summary  # type: ignore


def test_simulate_then_replay(tmp_path, capsys):
    out_dir = tmp_path / "sim"

    assert main(["simulate", "--duration", "2.0", "--seed", "1", "--out-dir", str(out_dir)]) == 0
    printed = capsys.readouterr().out
    assert "LHB-B" in printed

    for name in ("config.yaml", "session.jsonl", "calibration.yaml", "sim_trajectories.jsonl"):
        assert (out_dir / name).exists(), name

    calfile = tmp_path / "replayed.yaml"
    code = main([
        "replay",
        "--config", str(out_dir / "config.yaml"),
        "--log", str(out_dir / "session.jsonl"),
        "--calfile", str(calfile),
    ])
    assert code == 0
    assert "Solution found." in capsys.readouterr().out

    simulated = read_calibration(str(out_dir / "calibration.yaml"))
    replayed = read_calibration(str(calfile))
    for serial, transform in simulated.lighthouses.items():
        dt, dr = replayed.lighthouses[serial].distance_to(transform)
        assert dt < 1e-6 and dr < 1e-6


def test_replay_missing_config(tmp_path):
    code = main(["replay", "--config", str(tmp_path / "nope.yaml"), "--log", str(tmp_path / "nope.jsonl")])
    assert code == 2


def test_bad_arguments():
    assert main(["simulate", "--duration", "-1"]) == 2
    assert main(["unknown"]) == 2


def test_trajectory_export(tmp_path):
    sim = simulate_session(duration=1.0, seed=2)
    result = CalibrationPipeline(sim.config).solve(sim.measurements, sim.corrections)
    exporter = TrajectoryExporter(output_dir=str(tmp_path))

    path = exporter.export_jsonl(result, session_name="run")
    with open(path, encoding="utf-8") as f:
        entries = [json.loads(line) for line in f]
    assert entries[0]["_type"] == "header"
    assert entries[-1] == {"_type": "footer", "total_poses": len(entries) - 2}
    assert sum(1 for e in entries if e.get("frame") == "truth") == 10

    paths = exporter.export_csv(result, session_name="run")
    assert sorted(Path(p).name for p in paths) == [
        "run_LHB-A_LHR-SIM.csv",
        "run_LHB-B_LHR-SIM.csv",
        "run_truth.csv",
    ]
    with open(paths[0], encoding="utf-8") as f:
        assert f.readline().strip() == "timestamp,x,y,z,qx,qy,qz,qw"

    summary = create_solve_summary(result)
    assert "world <- vive" in summary
