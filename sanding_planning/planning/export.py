"""Convert an optimized joint matrix into a time-stamped trajectory."""

from __future__ import annotations

import logging

import numpy as np

from sanding_planning.types import (
    JointTrajectory,
    OptimizationResult,
    TrajectoryPoint,
)

logger = logging.getLogger(__name__)


def export_trajectory(
    result: OptimizationResult | None,
    joint_names: list[str],
    time_step: float = 1.0,
) -> JointTrajectory:
    """
    Stamp each row of the optimized matrix with time index * time_step.

    Spacing is index based and ignores the joint velocities the timing
    implies. Non-converged results are exported in full.

    Input:
        result: Optimization result holding an (n_steps, dof) trajectory
        joint_names: Names matching the trajectory columns
        time_step: Seconds between consecutive points, > 0
    Output:
        JointTrajectory with one point per row, first at t = 0
    """
    if result is None or result.trajectory is None:
        raise ValueError("No optimization result to export")
    if time_step <= 0:
        raise ValueError("time_step must be > 0")

    matrix = np.asarray(result.trajectory, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError(f"trajectory must be 2-D, got shape {matrix.shape}")
    if matrix.shape[1] != len(joint_names):
        raise ValueError(
            f"trajectory has {matrix.shape[1]} columns for {len(joint_names)} joints"
        )

    if not result.success:
        logger.warning("Exporting trajectory from a non-converged optimization")

    points = [
        TrajectoryPoint(positions=row.copy(), time_from_start=i * time_step)
        for i, row in enumerate(matrix)
    ]
    return JointTrajectory(joint_names=list(joint_names), points=points)
