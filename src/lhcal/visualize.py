"""
Trajectory export and console summaries for solved sessions.

Writes the per-lighthouse tracker trajectories and the correction
("truth") trajectory of a SolveResult to JSONL or CSV so they can be
plotted with external tools.
"""

import csv
import json
from datetime import datetime
from typing import Optional, Dict, Any, List
from pathlib import Path

from .pipeline import SolveResult
from .transform import Transform


def _pose_row(timestamp: float, transform: Transform) -> Dict[str, Any]:
    x, y, z, qx, qy, qz, qw = transform.as_xyzquat().tolist()
    return {
        "timestamp": timestamp,
        "x": x, "y": y, "z": z,
        "qx": qx, "qy": qy, "qz": qz, "qw": qw,
    }


class TrajectoryExporter:
    """
    Export solved trajectories to disk.

    Usage:
        exporter = TrajectoryExporter(output_dir="./output")
        exporter.export_jsonl(result, session_name="run1")
        exporter.export_csv(result, session_name="run1")
    """

    def __init__(self, output_dir: str = "./output"):
        """
        Initialize exporter.

        Args:
            output_dir: Directory for output files
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _session_name(session_name: Optional[str]) -> str:
        return session_name or datetime.now().strftime("%Y%m%d_%H%M%S")

    def export_jsonl(self, result: SolveResult, session_name: Optional[str] = None) -> str:
        """
        Write one JSON object per pose.

        Trajectory entries carry ``lighthouse`` and ``tracker``; truth entries
        carry ``frame`` set to ``"truth"``.

        Returns:
            Path to the written file
        """
        session_name = self._session_name(session_name)
        path = self.output_dir / f"{session_name}_trajectories.jsonl"
        with open(path, 'w', encoding='utf-8') as f:
            f.write(json.dumps({
                "_type": "header",
                "session": session_name,
                "exported_at": datetime.now().isoformat()
            }) + '\n')
            count = 0
            for (lighthouse, tracker), poses in sorted(result.trajectories.items()):
                for timestamp, transform in poses:
                    entry = {"_type": "pose", "lighthouse": lighthouse, "tracker": tracker}
                    entry.update(_pose_row(timestamp, transform))
                    f.write(json.dumps(entry) + '\n')
                    count += 1
            for timestamp, transform in result.truth:
                entry = {"_type": "pose", "frame": "truth"}
                entry.update(_pose_row(timestamp, transform))
                f.write(json.dumps(entry) + '\n')
                count += 1
            f.write(json.dumps({"_type": "footer", "total_poses": count}) + '\n')
        return str(path)

    def export_csv(self, result: SolveResult, session_name: Optional[str] = None) -> List[str]:
        """
        Write one CSV per (lighthouse, tracker) trajectory plus one for truth.

        Returns:
            Paths to the written files
        """
        session_name = self._session_name(session_name)
        fields = ["timestamp", "x", "y", "z", "qx", "qy", "qz", "qw"]
        series = {
            f"{lighthouse}_{tracker}": poses
            for (lighthouse, tracker), poses in sorted(result.trajectories.items())
        }
        if result.truth:
            series["truth"] = result.truth

        paths = []
        for name, poses in series.items():
            path = self.output_dir / f"{session_name}_{name}.csv"
            with open(path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=fields)
                writer.writeheader()
                for timestamp, transform in poses:
                    writer.writerow(_pose_row(timestamp, transform))
            paths.append(str(path))
        return paths


def format_transform(transform: Transform) -> str:
    """Format a transform for one-line log output."""
    t = transform.translation
    return f"({t[0]:.3f}, {t[1]:.3f}, {t[2]:.3f}) rot={transform.angle:.3f} rad"


def create_solve_summary(result: SolveResult) -> str:
    """Multi-line console summary of a solve."""
    stats = result.stats
    lines = [
        f"Measurements: {stats.measurements}  Corrections: {stats.corrections}",
        f"PnP: {stats.pnp_solutions}/{stats.pnp_attempts} solved",
        "-" * 50,
        f"  {result.graph.world_frame} <- {result.graph.vive_frame}: "
        f"{format_transform(result.graph.registration)} [{result.world.correspondences} pts]",
    ]
    for serial, transform in sorted(result.graph.lighthouses.items()):
        alignment = result.lighthouses.get(serial)
        status = "OK" if alignment is None or alignment.ok else "IDENTITY"
        count = alignment.correspondences if alignment is not None else 0
        lines.append(
            f"  {result.graph.vive_frame} <- {serial}: {format_transform(transform)} [{count} pts, {status}]"
        )
    if stats.degraded:
        lines.append(f"  Degraded: {', '.join(stats.degraded)}")
    return '\n'.join(lines)
