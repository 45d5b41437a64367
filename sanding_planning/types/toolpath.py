from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator

import numpy as np

from sanding_planning.types.geometry import SE3Pose


@dataclass
class CylinderPathConfig:
    """Geometric parameters of a slice-by-slice scan over a cylinder surface."""

    radius: float = 0.2  # meters
    slice_height: float = 0.1  # meters between consecutive slices
    n_slices: int = 5
    angular_step: float = math.pi / 12.0  # radians between samples on a slice
    origin: SE3Pose = field(default_factory=SE3Pose.identity)  # centre of slice 0

    def __post_init__(self):
        if self.radius <= 0:
            raise ValueError("radius must be > 0")
        if self.slice_height < 0:
            raise ValueError("slice_height must be >= 0")
        if self.n_slices < 1:
            raise ValueError("n_slices must be >= 1")
        if not 0 < self.angular_step <= 2 * math.pi:
            raise ValueError("angular_step must be in (0, 2*pi]")


@dataclass(frozen=True)
class ToolPath:
    """Ordered target frames for the tool control point.

    Order is the trajectory step order: slice index outer, angle inner.
    """

    poses: tuple[SE3Pose, ...]
    slice_centers: tuple[SE3Pose, ...] = ()
    samples_per_revolution: int = 0

    def __len__(self) -> int:
        return len(self.poses)

    def __iter__(self) -> Iterator[SE3Pose]:
        return iter(self.poses)

    def __getitem__(self, index: int) -> SE3Pose:
        return self.poses[index]

    def slice_center_of(self, index: int) -> SE3Pose:
        """Slice centre the waypoint at `index` was generated around."""
        if self.samples_per_revolution < 1:
            raise ValueError("ToolPath carries no slice layout")
        return self.slice_centers[index // self.samples_per_revolution]

    def to_pose_array(self) -> np.ndarray:
        """Poses as rows of [x, y, z, qw, qx, qy, qz], shape (N, 7)."""
        if not self.poses:
            return np.zeros((0, 7))
        return np.array(
            [np.concatenate([p.position, p.to_quaternion()]) for p in self.poses]
        )
