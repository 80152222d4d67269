"""
The calibrated transform graph.

    world --(registration)--> vive --(per lighthouse)--> <lighthouse serial>
    body  --(extrinsics)----> <tracker serial>

Each edge maps points in the child frame into the parent frame.
"""

from typing import Dict, Any, List, Optional, Tuple
from dataclasses import dataclass, field

from .transform import Transform

NamedTransform = Tuple[str, str, Transform]  # (parent, child, transform)


@dataclass(eq=False)
class TransformGraph:
    world_frame: str = "world"
    vive_frame: str = "vive"
    body_frame: str = "body"
    registration: Transform = field(default_factory=Transform.identity)
    lighthouses: Dict[str, Transform] = field(default_factory=dict)
    trackers: Dict[str, Transform] = field(default_factory=dict)
    solved: bool = False

    @classmethod
    def from_config(cls, config) -> "TransformGraph":
        """Initial graph built from configured guesses and extrinsics."""
        return cls(
            world_frame=config.frames.world,
            vive_frame=config.frames.vive,
            body_frame=config.frames.body,
            lighthouses={s: lh.transform for s, lh in config.lighthouses.items()},
            trackers={s: tr.extrinsics for s, tr in config.trackers.items()},
        )

    @property
    def reference(self) -> Optional[str]:
        return sorted(self.lighthouses)[0] if self.lighthouses else None

    def lighthouse_in_world(self, serial: str) -> Transform:
        return self.registration.compose(self.lighthouses[serial])

    def named_transforms(self) -> List[NamedTransform]:
        transforms = [(self.world_frame, self.vive_frame, self.registration)]
        for serial in sorted(self.lighthouses):
            transforms.append((self.vive_frame, serial, self.lighthouses[serial]))
        for serial in sorted(self.trackers):
            transforms.append((self.body_frame, serial, self.trackers[serial]))
        return transforms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frames": {
                "world": self.world_frame,
                "vive": self.vive_frame,
                "body": self.body_frame,
            },
            "registration": self.registration.as_xyzquat().tolist(),
            "lighthouses": {
                s: t.as_xyzquat().tolist() for s, t in sorted(self.lighthouses.items())
            },
            "trackers": {
                s: t.as_xyzquat().tolist() for s, t in sorted(self.trackers.items())
            },
        }
