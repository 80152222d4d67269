"""
Read and write calibration files.

The file is YAML holding frame names and one transform per key, each as
``[x, y, z, qx, qy, qz, qw]``. Six-number ``[x, y, z, rx, ry, rz]``
axis-angle entries are accepted on read.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Sequence

from .errors import MalformedConfigurationError
from .graph import TransformGraph
from .transform import Transform


def _transform(values: Sequence[float], key: str) -> Transform:
    if values is None or len(values) not in (6, 7):
        raise MalformedConfigurationError(f"Calibration entry {key!r} needs 6 or 7 numbers")
    if len(values) == 7:
        return Transform.from_xyzquat(values)
    return Transform.from_array(values)


def write_calibration(filepath: str, graph: TransformGraph) -> str:
    """
    Write a transform graph to a calibration file.

    Returns:
        Path of the written file
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(graph.to_dict(), f, default_flow_style=None, sort_keys=False)
    return str(path)


def read_calibration(filepath: str) -> TransformGraph:
    """Load a transform graph written by ``write_calibration``."""
    with open(filepath, 'r', encoding='utf-8') as f:
        data: Dict[str, Any] = yaml.safe_load(f) or {}

    frames = data.get("frames") or {}
    return TransformGraph(
        world_frame=frames.get("world", "world"),
        vive_frame=frames.get("vive", "vive"),
        body_frame=frames.get("body", "body"),
        registration=_transform(data.get("registration", [0.0] * 6), "registration"),
        lighthouses={
            str(s): _transform(v, s) for s, v in (data.get("lighthouses") or {}).items()
        },
        trackers={
            str(s): _transform(v, s) for s, v in (data.get("trackers") or {}).items()
        },
        solved=True,
    )
