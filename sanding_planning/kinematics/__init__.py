from .pinocchio_fk import (
    PinocchioContext,
    compute_forward_kinematics,
    compute_jacobian,
    compute_point_jacobian,
    create_pinocchio_context,
    frame_id,
    has_frame,
    joint_position_limits,
    set_reference_joint,
    with_joints,
)

__all__ = [
    "PinocchioContext",
    "create_pinocchio_context",
    "compute_forward_kinematics",
    "compute_jacobian",
    "compute_point_jacobian",
    "frame_id",
    "has_frame",
    "joint_position_limits",
    "set_reference_joint",
    "with_joints",
]
