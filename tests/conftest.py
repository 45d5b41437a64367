"""Shared pytest fixtures."""

import numpy as np
import pytest

from sanding_planning.envs.base_env import BaseWorld
from sanding_planning.errors import ResolutionError
from sanding_planning.types import (
    ContactResult,
    CylinderPathConfig,
    GroupConfig,
    KinematicGroup,
    SE3Pose,
    pair_key,
)

GANTRY_GROUP = "gantry"
GANTRY_JOINTS = ("x", "y", "z")
GANTRY_TCP = "sander_tcp"


class FakeGantryWorld(BaseWorld):
    """Cartesian gantry whose joint values are the tool position.

    The tool never rotates. Optional spherical obstacles are checked
    against a spherical tool of radius `tool_radius`. `limits` is an
    optional (lower, upper) pair of joint bounds.
    """

    def __init__(self, tool_radius=0.0, connected=True, limits=None):
        self.tool_radius = tool_radius
        self.limits = limits
        self.connected = connected
        self.obstacles = {}  # name -> (center, radius)
        self.joint_values = {name: 0.0 for name in GANTRY_JOINTS}
        self.drawn = []
        self.distance_queries = 0
        self._groups = {
            GANTRY_GROUP: KinematicGroup(
                name=GANTRY_GROUP,
                base_link="world",
                tip_link=GANTRY_TCP,
                joint_names=GANTRY_JOINTS,
            )
        }

    def add_group(self, config: GroupConfig) -> KinematicGroup:
        group = KinematicGroup(
            config.name, config.base_link, config.tip_link, config.joint_names
        )
        self._groups[config.name] = group
        return group

    def get_group(self, name):
        if name not in self._groups:
            raise ResolutionError(f"Unknown kinematic group '{name}'")
        return self._groups[name]

    def has_link(self, name):
        return name in ("world", GANTRY_TCP)

    def get_current_joint_values(self, group):
        return np.array([self.joint_values[n] for n in group.joint_names])

    def set_joint_values(self, joint_names, values):
        for name, value in zip(joint_names, values):
            if name not in self.joint_values:
                raise ResolutionError(f"Joint '{name}' not found")
            self.joint_values[name] = float(value)

    def joint_limits(self, group):
        if self.limits is None:
            return super().joint_limits(group)
        lower, upper = self.limits
        return np.asarray(lower, dtype=float), np.asarray(upper, dtype=float)

    def attach_body(self, obj):
        self.obstacles[obj.name] = (np.asarray(obj.position, dtype=float), obj.radius)

    def add_sphere(self, name, center, radius):
        self.obstacles[name] = (np.asarray(center, dtype=float), float(radius))

    def forward_kinematics(self, group, link, q):
        return SE3Pose(position=np.asarray(q, dtype=float)[:3], rotation=np.eye(3))

    def frame_jacobian(self, group, link, q, local=False):
        return np.vstack([np.eye(3), np.zeros((3, 3))])

    def point_jacobian(self, group, link, q, point):
        if link == GANTRY_TCP:
            return np.eye(3)
        return np.zeros((3, 3))

    def collision_pairs(self, group):
        return [(GANTRY_TCP, name) for name in self.obstacles]

    def compute_distances(self, group, q, pairs, max_distance):
        self.distance_queries += 1
        tool = np.asarray(q, dtype=float)[:3]
        contacts = {}
        for link, name in pairs:
            center, radius = self.obstacles[name]
            offset = tool - center
            dist_centers = np.linalg.norm(offset)
            normal = offset / dist_centers
            distance = dist_centers - radius - self.tool_radius
            if distance > max_distance:
                continue
            contacts[pair_key(link, name)] = ContactResult(
                body_a=link,
                body_b=name,
                distance=distance,
                point_a=tool - self.tool_radius * normal,
                point_b=center + radius * normal,
                normal=normal,
            )
        return contacts

    def snapshot(self):
        return {
            "joint_state": dict(self.joint_values),
            "obstacles": {
                name: {"center": c.tolist(), "radius": r}
                for name, (c, r) in self.obstacles.items()
            },
        }

    def is_connected(self):
        return self.connected

    def draw_poses(self, poses, axis_length=0.03):
        self.drawn.extend(poses)


@pytest.fixture
def gantry_world():
    """Gantry world at the origin with no obstacles."""
    return FakeGantryWorld()


@pytest.fixture
def small_path_config():
    """Two slices of eight samples around the origin."""
    return CylinderPathConfig(
        radius=0.2, slice_height=0.1, n_slices=2, angular_step=np.pi / 4
    )


@pytest.fixture
def circle_targets():
    """Twelve tool positions on a horizontal circle, identity orientation."""
    angles = np.arange(12) * (2 * np.pi / 12)
    return np.column_stack(
        [0.2 * np.cos(angles), 0.2 * np.sin(angles), np.full(12, 0.5)]
    )
