from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass(frozen=True)
class GroupConfig:
    """A named kinematic group: the joints moved to drive base_link -> tip_link."""

    name: str
    base_link: str
    tip_link: str
    joint_names: tuple[str, ...]


@dataclass
class CollisionObjectConfig:
    """A shaped collision body attached to a link of the world."""

    name: str
    shape: str  # "cylinder" | "box" | "sphere"
    parent_link: str
    radius: float = 0.0  # cylinder, sphere
    length: float = 0.0  # cylinder height along local z
    half_extents: tuple[float, float, float] = (0.0, 0.0, 0.0)  # box
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(
        default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0])
    )  # (w, x, y, z)

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64)
        self.orientation = np.asarray(self.orientation, dtype=np.float64)
        if self.shape not in ("cylinder", "box", "sphere"):
            raise ValueError(
                f"Unknown shape '{self.shape}'. Supported: cylinder, box, sphere"
            )
        if self.shape in ("cylinder", "sphere") and self.radius <= 0:
            raise ValueError("radius must be > 0")
        if self.shape == "cylinder" and self.length <= 0:
            raise ValueError("length must be > 0")
        if self.shape == "box" and min(self.half_extents) <= 0:
            raise ValueError("half_extents must be > 0")


@dataclass
class RobotConfig:
    urdf_path: str
    groups: list[GroupConfig]
    collision_links: list[str]  # links with collision geometry checked by the planner
    allowed_collisions: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class KinematicGroup:
    """Group handle resolved against a loaded world."""

    name: str
    base_link: str
    tip_link: str
    joint_names: tuple[str, ...]

    @property
    def num_joints(self) -> int:
        return len(self.joint_names)


@dataclass
class ContactResult:
    """Closest points between two collision bodies.

    `normal` points from body B towards body A, so moving A along it
    increases `distance`. A negative distance is penetration depth.
    """

    body_a: str
    body_b: str
    distance: float
    point_a: np.ndarray  # (3,) world frame
    point_b: np.ndarray  # (3,) world frame
    normal: np.ndarray  # (3,) world frame
