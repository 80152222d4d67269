"""Command line entry point: ``python -m lhcal``.

Subcommands:
  replay    Solve a recorded session offline and write the calibration
  simulate  Generate a synthetic session, solve it and report errors
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .calfile import write_calibration
from .config import load_config, save_config
from .errors import CalibrationError
from .pipeline import CalibrationPipeline
from .recorder import SessionRecorder
from .replay import SessionReplay, validate_log_integrity
from .session import CalibrationSession
from .sim import evaluate, simulate_session
from .visualize import TrajectoryExporter, create_solve_summary

logger = logging.getLogger("lhcal")

LOG_LEVEL_ENV = "LHCAL_LOG_LEVEL"


def configure_logging(level: Optional[str] = None) -> None:
    level = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _err(msg: str) -> int:
    print(f"error: {msg}", file=sys.stderr)
    return 2


def _cmd_replay(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except (OSError, CalibrationError) as e:
        return _err(f"could not load configuration: {e}")

    validation = validate_log_integrity(args.log)
    for warning in validation["warnings"]:
        logger.warning("%s", warning)
    if not validation["valid"]:
        return _err(f"invalid log: {'; '.join(validation['errors'])}")

    config.offline = True
    config.record_dir = args.record_dir
    if args.calfile:
        config.calfile = args.calfile

    session = CalibrationSession(config)
    counts = SessionReplay(args.log).feed(session, realtime=args.realtime, speed=args.speed)
    logger.info(
        "Replayed %d measurements and %d corrections",
        counts["measurements"], counts["corrections"]
    )

    response = session.trigger()
    print(response.message)
    if session.last_result is not None:
        print(create_solve_summary(session.last_result))
        if args.export_dir:
            exporter = TrajectoryExporter(output_dir=args.export_dir)
            exporter.export_jsonl(session.last_result, session_name=Path(args.log).stem)
    return 0 if response.success else 1


def _cmd_simulate(args: argparse.Namespace) -> int:
    if args.duration <= 0:
        return _err("--duration must be > 0")
    if args.resolution <= 0:
        return _err("--resolution must be > 0")
    if args.noise < 0:
        return _err("--noise must be >= 0")

    sim = simulate_session(
        duration=args.duration,
        resolution=args.resolution,
        trajectory=args.trajectory,
        noise_rad=args.noise,
        with_corrections=not args.no_corrections,
        seed=args.seed,
    )

    if args.out_dir:
        out = Path(args.out_dir)
        save_config(sim.config, str(out / "config.yaml"))
        recorder = SessionRecorder(log_dir=str(out))
        recorder.start(session_name="session")
        for m in sim.measurements:
            recorder.record_measurement(m)
        for c in sim.corrections:
            recorder.record_correction(sim.config.frames.world, sim.config.frames.body, c)
        recorder.stop()

    try:
        result = CalibrationPipeline(sim.config).solve(sim.measurements, sim.corrections)
    except CalibrationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(create_solve_summary(result))
    errors = evaluate(result.graph, sim.truth)
    print(json.dumps(errors, indent=2, sort_keys=True))

    if args.out_dir:
        write_calibration(str(Path(args.out_dir) / "calibration.yaml"), result.graph)
        TrajectoryExporter(output_dir=args.out_dir).export_jsonl(result, session_name="sim")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m lhcal")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help=f"Logging level (default: ${LOG_LEVEL_ENV} or INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Solve a recorded session")
    replay.add_argument("--config", type=str, required=True, help="Configuration YAML")
    replay.add_argument("--log", type=str, required=True, help="Recorded session (JSONL)")
    replay.add_argument("--calfile", type=str, default=None, help="Override calibration output path")
    replay.add_argument("--realtime", action="store_true", help="Replay with recorded timing")
    replay.add_argument("--speed", type=float, default=1.0, help="Realtime playback speed")
    replay.add_argument("--export-dir", type=str, default=None, help="Write trajectories here")
    replay.add_argument("--record-dir", type=str, default=None, help="Re-record the replayed input here")
    replay.set_defaults(func=_cmd_replay)

    simulate = sub.add_parser("simulate", help="Solve a synthetic session")
    simulate.add_argument("--duration", type=float, default=4.0, help="Session length (s)")
    simulate.add_argument("--resolution", type=float, default=0.1, help="Bucket width (s)")
    simulate.add_argument("--noise", type=float, default=0.0, help="Angle noise stddev (rad)")
    simulate.add_argument("--trajectory", type=str, default="circle", choices=["circle", "figure8"])
    simulate.add_argument("--no-corrections", action="store_true", help="Omit world corrections")
    simulate.add_argument("--seed", type=int, default=0, help="RNG seed")
    simulate.add_argument("--out-dir", type=str, default=None, help="Write config, log and results here")
    simulate.set_defaults(func=_cmd_simulate)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return int(e.code) if isinstance(e.code, int) else 2

    configure_logging(args.log_level)
    return args.func(args)
