from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from sanding_planning.types import (
    CollisionObjectConfig,
    ContactResult,
    GroupConfig,
    KinematicGroup,
    SE3Pose,
)


class BaseWorld(ABC):
    """Kinematic and collision world consumed by the planning pipeline.

    Constructed before the pipeline runs; planning stages only read from it.
    """

    @abstractmethod
    def add_group(self, config: GroupConfig) -> KinematicGroup:
        """Register a named kinematic group."""
        raise NotImplementedError

    @abstractmethod
    def get_group(self, name: str) -> KinematicGroup:
        """Resolve a named kinematic group. Raises ResolutionError if unknown."""
        raise NotImplementedError

    @abstractmethod
    def has_link(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get_current_joint_values(self, group: KinematicGroup) -> np.ndarray:
        """Current joint positions of the group, in group joint order."""
        raise NotImplementedError

    @abstractmethod
    def set_joint_values(self, joint_names: list[str], values: np.ndarray):
        """Set joint positions by name."""

    def joint_limits(self, group: KinematicGroup) -> tuple[np.ndarray, np.ndarray]:
        """(lower, upper) position limits in group joint order. Unbounded by default."""
        n = group.num_joints
        return np.full(n, -np.inf), np.full(n, np.inf)

    @abstractmethod
    def attach_body(self, obj: CollisionObjectConfig):
        """Add a named collision body at a pose relative to its parent link."""

    @abstractmethod
    def forward_kinematics(
        self, group: KinematicGroup, link: str, q: np.ndarray
    ) -> SE3Pose:
        raise NotImplementedError

    @abstractmethod
    def frame_jacobian(
        self, group: KinematicGroup, link: str, q: np.ndarray, local: bool = False
    ) -> np.ndarray:
        """[linear; angular] Jacobian of a link frame, shape (6, dof)."""
        raise NotImplementedError

    @abstractmethod
    def point_jacobian(
        self, group: KinematicGroup, link: str, q: np.ndarray, point: np.ndarray
    ) -> np.ndarray:
        """Linear Jacobian of a world point moving with a link, shape (3, dof)."""
        raise NotImplementedError

    @abstractmethod
    def collision_pairs(self, group: KinematicGroup) -> list[tuple[str, str]]:
        """Body pairs checked for the group, (robot link, other body)."""
        raise NotImplementedError

    @abstractmethod
    def compute_distances(
        self,
        group: KinematicGroup,
        q: np.ndarray,
        pairs: list[tuple[str, str]],
        max_distance: float,
    ) -> dict[frozenset[str], ContactResult]:
        """Closest points for each pair closer than max_distance."""
        raise NotImplementedError

    def compute_distance_sweep(
        self,
        group: KinematicGroup,
        qs: np.ndarray,
        pairs: list[tuple[str, str]],
        max_distance: float,
    ) -> list[dict[frozenset[str], ContactResult]]:
        """compute_distances for each row of qs, in order."""
        return [self.compute_distances(group, q, pairs, max_distance) for q in qs]

    @abstractmethod
    def snapshot(self) -> dict[str, Any]:
        """JSON-serialisable state of the world."""
        raise NotImplementedError

    def is_connected(self) -> bool:
        return True

    def draw_poses(self, poses: list[SE3Pose], axis_length: float = 0.03):
        """Visualise poses. Headless worlds ignore this."""
