"""Assemble the trajectory optimization problem for a tool path."""

from __future__ import annotations

import logging

import numpy as np

from sanding_planning.envs.base_env import BaseWorld
from sanding_planning.errors import ResolutionError
from sanding_planning.types import (
    CollisionCost,
    JointAccelerationCost,
    JointVelocityCost,
    PoseEqualityConstraint,
    ProblemConfig,
    ProblemDescription,
    SafetyMargin,
    ToolPath,
    pair_key,
)

logger = logging.getLogger(__name__)


def build_problem(
    toolpath: ToolPath,
    world: BaseWorld,
    group_name: str,
    config: ProblemConfig | None = None,
) -> ProblemDescription:
    """
    Build a ProblemDescription with one trajectory step per waypoint.

    Input:
        toolpath: Target tool frames, one per step
        world: World providing the kinematic group and current joint state
        group_name: Kinematic group moved by the optimizer
        config: Cost and constraint weights (uses defaults if None)
    Output:
        ProblemDescription with joint velocity, joint acceleration and
        collision costs plus one pose equality constraint per waypoint
    """
    if config is None:
        config = ProblemConfig()
    if len(toolpath) == 0:
        raise ValueError("toolpath has no waypoints")

    group = world.get_group(group_name)
    if not world.has_link(config.tcp_link):
        raise ResolutionError(f"Tool link '{config.tcp_link}' not found in world")

    n_steps = len(toolpath)
    dof = group.num_joints

    current = world.get_current_joint_values(group)
    initial_guess = np.tile(current, (n_steps, 1))

    last_step = n_steps - 1
    costs = (
        JointVelocityCost(
            coeffs=np.full(dof, config.joint_vel_coeff),
            first_step=0,
            last_step=last_step,
        ),
        JointAccelerationCost(
            coeffs=np.full(dof, config.joint_acc_coeff),
            first_step=0,
            last_step=last_step,
        ),
        CollisionCost(
            first_step=0,
            last_step=last_step,
            default=SafetyMargin(config.collision_margin, config.collision_weight),
            pair_overrides={
                pair_key(a, b): SafetyMargin(margin, weight)
                for (a, b), (margin, weight) in config.collision_overrides.items()
            },
            continuous=False,
        ),
    )

    constraints = tuple(
        PoseEqualityConstraint(
            name=f"waypoint_cart_{i}",
            link=config.tcp_link,
            step=i,
            position=pose.position,
            rotation=pose.rotation,
            pos_coeffs=np.array(config.pos_coeffs, dtype=np.float64),
            rot_coeffs=np.array(config.rot_coeffs, dtype=np.float64),
        )
        for i, pose in enumerate(toolpath)
    )

    logger.info(
        "Built problem for group '%s': %d steps, %d dof, %d pose constraints",
        group.name,
        n_steps,
        dof,
        len(constraints),
    )

    return ProblemDescription(
        n_steps=n_steps,
        group=group.name,
        joint_names=list(group.joint_names),
        initial_guess=initial_guess,
        costs=costs,
        constraints=constraints,
        start_fixed=config.start_fixed,
    )
