from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from sanding_planning.utils.rot_utils import (
    matrix_to_quaternion,
    matrix_to_rpy,
    orthonormality_error,
    quaternion_to_matrix,
)


@dataclass
class SE3Pose:
    """
    Represents a 6D pose in SE(3) - position and orientation.
    Orientation is stored as a 3x3 rotation matrix whose columns are the
    frame's x, y and z axes expressed in the parent frame.
    """

    position: np.ndarray  # (3,) xyz
    rotation: np.ndarray  # (3, 3) rotation matrix

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64)
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        if self.position.shape != (3,):
            raise ValueError(f"Position must be shape (3,), got {self.position.shape}")
        if self.rotation.shape != (3, 3):
            raise ValueError(
                f"Rotation must be shape (3, 3), got {self.rotation.shape}"
            )

    @classmethod
    def identity(cls) -> SE3Pose:
        return cls(position=np.zeros(3), rotation=np.eye(3))

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> SE3Pose:
        """Create SE3Pose from 4x4 homogeneous transformation matrix."""
        matrix = np.asarray(matrix)
        if matrix.shape != (4, 4):
            raise ValueError(f"Matrix must be shape (4, 4), got {matrix.shape}")
        return cls(position=matrix[:3, 3], rotation=matrix[:3, :3])

    @classmethod
    def from_position_quat(
        cls, position: np.ndarray, quaternion: np.ndarray
    ) -> SE3Pose:
        """Create SE3Pose from position and quaternion (w, x, y, z)."""
        return cls(position=position, rotation=quaternion_to_matrix(quaternion))

    @classmethod
    def from_translation(cls, x: float, y: float, z: float) -> SE3Pose:
        """Pure translation with identity orientation."""
        return cls(position=np.array([x, y, z]), rotation=np.eye(3))

    @property
    def x_axis(self) -> np.ndarray:
        return self.rotation[:, 0]

    @property
    def y_axis(self) -> np.ndarray:
        return self.rotation[:, 1]

    @property
    def z_axis(self) -> np.ndarray:
        return self.rotation[:, 2]

    def compose(self, other: SE3Pose) -> SE3Pose:
        """Rigid-transform product self * other."""
        return SE3Pose(
            position=self.rotation @ other.position + self.position,
            rotation=self.rotation @ other.rotation,
        )

    def __matmul__(self, other: SE3Pose) -> SE3Pose:
        return self.compose(other)

    def inverse(self) -> SE3Pose:
        rot_t = self.rotation.T
        return SE3Pose(position=-rot_t @ self.position, rotation=rot_t)

    def translated(self, offset: np.ndarray) -> SE3Pose:
        """Move the pose by an offset expressed in its own (local) frame."""
        offset = np.asarray(offset, dtype=np.float64)
        return SE3Pose(
            position=self.position + self.rotation @ offset,
            rotation=self.rotation.copy(),
        )

    def is_orthonormal(self, tol: float = 1e-9) -> bool:
        """True if the rotation is orthonormal and right-handed within tol."""
        if orthonormality_error(self.rotation) > tol:
            return False
        return abs(np.linalg.det(self.rotation) - 1.0) <= tol

    def to_matrix(self) -> np.ndarray:
        """Convert to 4x4 homogeneous transformation matrix."""
        matrix = np.eye(4)
        matrix[:3, :3] = self.rotation
        matrix[:3, 3] = self.position
        return matrix

    def to_quaternion(self) -> np.ndarray:
        """Convert rotation to quaternion (w, x, y, z)."""
        return matrix_to_quaternion(self.rotation)

    def to_rpy(self) -> np.ndarray:
        """Convert rotation to roll-pitch-yaw (fixed-axis XYZ) angles."""
        return matrix_to_rpy(self.rotation)

    def to_dict(self) -> dict[str, list[float]]:
        return {
            "position": self.position.tolist(),
            "orientation_wxyz": self.to_quaternion().tolist(),
        }
