"""
Pinocchio-based forward kinematics and Jacobian computation.

Used by the trajectory optimizer for pose constraints and collision
gradients. Signed-distance queries are handled by the pybullet world.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any

import numpy as np

from sanding_planning.errors import ConfigurationError, ResolutionError
from sanding_planning.types import SE3Pose
from sanding_planning.utils.rot_utils import skew

pin = importlib.import_module("pinocchio")


@dataclass
class PinocchioContext:
    """Context holding Pinocchio model and data for FK/Jacobian computations."""

    model: Any
    data: Any
    joint_names: list[str]
    joint_ids: list[int]
    reference_q: np.ndarray  # full configuration used for joints outside joint_ids


def create_pinocchio_context(
    urdf_path: str,
    joint_names: list[str] | None = None,
) -> PinocchioContext:
    """
    Create a Pinocchio context from URDF file.

    Input:
        urdf_path: Path to the URDF file
        joint_names: Optional list of joint names to control (if None, uses all joints)
    Output:
        PinocchioContext containing model and data for FK/Jacobian computations
    """
    try:
        model = pin.buildModelFromUrdf(urdf_path)
    except (ValueError, RuntimeError, OSError) as exc:
        raise ConfigurationError(f"Could not parse URDF '{urdf_path}': {exc}") from exc
    data = model.createData()

    if joint_names is None:
        # Use all actuated joints (exclude universe joint)
        joint_ids = list(range(1, int(model.njoints)))  # type: ignore[arg-type]
        actual_joint_names = [str(model.names[i]) for i in joint_ids]  # type: ignore[index]
    else:
        joint_ids = _resolve_joint_ids(model, joint_names)
        actual_joint_names = list(joint_names)

    return PinocchioContext(
        model=model,
        data=data,
        joint_names=actual_joint_names,
        joint_ids=joint_ids,
        reference_q=pin.neutral(model),
    )


def with_joints(context: PinocchioContext, joint_names: list[str]) -> PinocchioContext:
    """Context sharing model/data but controlling a different joint subset."""
    return PinocchioContext(
        model=context.model,
        data=context.data,
        joint_names=list(joint_names),
        joint_ids=_resolve_joint_ids(context.model, joint_names),
        reference_q=context.reference_q,
    )


def has_frame(context: PinocchioContext, frame_name: str) -> bool:
    return bool(context.model.existFrame(frame_name))


def frame_id(context: PinocchioContext, frame_name: str) -> int:
    if not context.model.existFrame(frame_name):
        raise ResolutionError(f"Frame '{frame_name}' not found in model")
    return int(context.model.getFrameId(frame_name))


def set_reference_joint(context: PinocchioContext, joint_name: str, value: float) -> None:
    """Update the value used for a joint whenever it is not being controlled."""
    jid = _resolve_joint_ids(context.model, [joint_name])[0]
    context.reference_q[context.model.joints[jid].idx_q] = value


def joint_position_limits(
    context: PinocchioContext,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Position limits of the controlled joints as read from the URDF.

    Input:
        context: Pinocchio context with model and data
    Output:
        (lower, upper) arrays, shape (n_joints,) each
    """
    idx_q = [context.model.joints[jid].idx_q for jid in context.joint_ids]
    lower = np.array(context.model.lowerPositionLimit)[idx_q]
    upper = np.array(context.model.upperPositionLimit)[idx_q]
    return lower.astype(np.float64), upper.astype(np.float64)


def compute_forward_kinematics(
    context: PinocchioContext,
    frame_name: str,
    joint_positions: np.ndarray,
) -> SE3Pose:
    """
    Compute forward kinematics for a named frame.

    Input:
        context: Pinocchio context with model and data
        frame_name: Link or frame whose pose is returned
        joint_positions: Joint positions array for the controlled joints
    Output:
        SE3Pose of the frame in the world
    """
    fid = frame_id(context, frame_name)
    q = _to_pinocchio_config(context, joint_positions)
    pin.forwardKinematics(context.model, context.data, q)
    pin.updateFramePlacements(context.model, context.data)

    oMf = context.data.oMf[fid]

    return SE3Pose(
        position=np.array(oMf.translation),
        rotation=np.array(oMf.rotation),
    )


def compute_jacobian(
    context: PinocchioContext,
    frame_name: str,
    joint_positions: np.ndarray,
    local_frame: bool = False,
) -> np.ndarray:
    """
    Compute the Jacobian matrix at a named frame.

    Input:
        context: Pinocchio context with model and data
        frame_name: Link or frame name
        joint_positions: Joint positions array
        local_frame: If True, compute Jacobian in local frame; else world-aligned
    Output:
        Jacobian matrix [linear; angular], shape (6, n_joints)
    """
    fid = frame_id(context, frame_name)
    q = _to_pinocchio_config(context, joint_positions)
    pin.computeJointJacobians(context.model, context.data, q)
    pin.updateFramePlacements(context.model, context.data)

    reference_frame = pin.LOCAL if local_frame else pin.LOCAL_WORLD_ALIGNED

    J_full = pin.getFrameJacobian(
        context.model,
        context.data,
        fid,
        reference_frame,
    )

    return _extract_controlled_jacobian(context, J_full)


def compute_point_jacobian(
    context: PinocchioContext,
    frame_name: str,
    joint_positions: np.ndarray,
    point: np.ndarray,
) -> np.ndarray:
    """
    Linear Jacobian of a world point rigidly attached to a frame.

    Input:
        context: Pinocchio context with model and data
        frame_name: Frame the point moves with
        joint_positions: Joint positions array
        point: Point in world coordinates, shape (3,)
    Output:
        Jacobian, shape (3, n_joints)
    """
    J = compute_jacobian(context, frame_name, joint_positions, local_frame=False)
    origin = context.data.oMf[frame_id(context, frame_name)].translation
    lever = np.asarray(point, dtype=np.float64) - np.array(origin)
    # v_point = v_origin + w x lever = v_origin - [lever]x w
    return J[:3] - skew(lever) @ J[3:]


# --- Internal helper functions ---


def _resolve_joint_ids(model: Any, joint_names: list[str]) -> list[int]:
    model_names_list = list(model.names)  # type: ignore[arg-type]
    joint_ids = []
    for name in joint_names:
        if name not in model_names_list:
            raise ResolutionError(f"Joint '{name}' not found in model")
        joint_ids.append(int(model.getJointId(name)))
    return joint_ids


def _to_pinocchio_config(
    context: PinocchioContext, joint_positions: np.ndarray
) -> np.ndarray:
    """Convert controlled joint positions to full Pinocchio configuration."""
    q = context.reference_q.copy()
    for i, jid in enumerate(context.joint_ids):
        idx = context.model.joints[jid].idx_q
        q[idx] = joint_positions[i]
    return q


def _extract_controlled_jacobian(
    context: PinocchioContext, J_full: np.ndarray
) -> np.ndarray:
    """Extract Jacobian columns for controlled joints only."""
    cols = []
    for jid in context.joint_ids:
        idx_v = context.model.joints[jid].idx_v
        cols.append(J_full[:, idx_v])
    return np.column_stack(cols)
