"""Rotation utility functions for conversions between representations."""

import numpy as np
from scipy.spatial.transform import Rotation

_SMALL_ANGLE = 1e-6


def skew(vec: np.ndarray) -> np.ndarray:
    """
    Build the skew-symmetric cross-product matrix of a 3-vector.

    Input:
        vec: Vector, shape (3,)
    Output:
        matrix K with K @ w == vec x w, shape (3, 3)
    """
    x, y, z = np.asarray(vec, dtype=np.float64)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def quaternion_to_matrix(quat: np.ndarray) -> np.ndarray:
    """
    Convert quaternion to 3x3 rotation matrix.

    Input:
        quat: Quaternion in (w, x, y, z) format, shape (4,)
    Output:
        rotation matrix, shape (3, 3)
    """
    w, x, y, z = np.asarray(quat, dtype=np.float64)
    return Rotation.from_quat([x, y, z, w]).as_matrix()


def matrix_to_quaternion(rot: np.ndarray) -> np.ndarray:
    """
    Convert 3x3 rotation matrix to quaternion.

    The scalar part is kept non-negative so equal rotations map to equal
    quaternions.

    Input:
        rot: Rotation matrix, shape (3, 3)
    Output:
        quaternion in (w, x, y, z) format, shape (4,)
    """
    x, y, z, w = Rotation.from_matrix(np.asarray(rot, dtype=np.float64)).as_quat()
    quat = np.array([w, x, y, z])
    if quat[0] < 0.0:
        quat = -quat
    return quat


def log3(rot: np.ndarray) -> np.ndarray:
    """
    Logarithm map of SO(3): rotation matrix to rotation vector.

    Input:
        rot: Rotation matrix, shape (3, 3)
    Output:
        rotation vector (axis * angle), shape (3,)
    """
    return Rotation.from_matrix(np.asarray(rot, dtype=np.float64)).as_rotvec()


def inverse_right_jacobian(rotvec: np.ndarray) -> np.ndarray:
    """
    Inverse right Jacobian of SO(3) evaluated at a rotation vector.

    Maps a body-frame angular perturbation w to the change of the rotation
    vector: log(R exp(w)) ~= log(R) + Jr^-1(log R) @ w.

    Input:
        rotvec: Rotation vector, shape (3,)
    Output:
        Jacobian, shape (3, 3)
    """
    rotvec = np.asarray(rotvec, dtype=np.float64)
    theta = float(np.linalg.norm(rotvec))
    K = skew(rotvec)

    if theta < _SMALL_ANGLE:
        coeff = 1.0 / 12.0
    else:
        coeff = 1.0 / theta**2 - (1.0 + np.cos(theta)) / (2.0 * theta * np.sin(theta))

    return np.eye(3) + 0.5 * K + coeff * (K @ K)


def orthonormality_error(rot: np.ndarray) -> float:
    """
    Largest deviation of R^T R from identity.

    Input:
        rot: Candidate rotation matrix, shape (3, 3)
    Output:
        max absolute entry of (R^T R - I)
    """
    rot = np.asarray(rot, dtype=np.float64)
    return float(np.max(np.abs(rot.T @ rot - np.eye(3))))


def matrix_to_rpy(rot: np.ndarray) -> np.ndarray:
    """
    Convert rotation matrix to roll-pitch-yaw (fixed-axis XYZ) angles.

    Input:
        rot: Rotation matrix, shape (3, 3)
    Output:
        (roll, pitch, yaw) in radians, shape (3,)
    """
    return Rotation.from_matrix(np.asarray(rot, dtype=np.float64)).as_euler("xyz")
