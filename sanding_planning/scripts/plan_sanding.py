import json
import logging
import math
import os

import numpy as np
from fire import Fire

from sanding_planning.config.robot_config import (
    MANIPULATOR_GROUP,
    PART_POSITION,
    PART_RADIUS,
)
from sanding_planning.core.pipeline import SandingPipeline
from sanding_planning.envs.pybullet_env import create_sanding_world
from sanding_planning.types import (
    CylinderPathConfig,
    ExecutionConfig,
    OptimizerConfig,
    SE3Pose,
)


def main(
    radius=PART_RADIUS,
    slice_height=0.1,
    n_slices=5,
    angular_step=math.pi / 12.0,
    max_iterations=100,
    time_step=1.0,
    execute=True,
    visualize=False,
    output=None,
    snapshot=None,
):
    """Plan a sanding trajectory over the bundled cylinder part.

    Every solver evaluation runs a distance query per waypoint, so the
    default 120-waypoint path takes several minutes. Use fewer slices or
    a larger angular step for a quick run.

    Args:
        radius: Cylinder radius the tool follows (m)
        slice_height: Distance between slices (m)
        n_slices: Number of slices
        angular_step: Angle between samples on a slice (rad)
        max_iterations: Function evaluations per trust-region solve
        time_step: Seconds between trajectory points
        execute: Play the trajectory back in simulation
        visualize: Open the pybullet GUI
        output: Write the trajectory to this JSON file
        snapshot: Write the world snapshot to this JSON file
    """
    logging.basicConfig(level=logging.INFO)

    path_config = CylinderPathConfig(
        radius=radius,
        slice_height=slice_height,
        n_slices=n_slices,
        angular_step=angular_step,
        origin=SE3Pose(position=PART_POSITION, rotation=np.eye(3)),
    )
    execution_config = ExecutionConfig(
        time_step=time_step, real_time_factor=1.0 if visualize else 0.0
    )

    with create_sanding_world(visualize=visualize) as world:
        pipeline = SandingPipeline(
            world,
            group_name=MANIPULATOR_GROUP,
            path_config=path_config,
            optimizer_config=OptimizerConfig(max_iterations=max_iterations),
            execution_config=execution_config,
        )
        result = pipeline.run(execute=execute, snapshot_path=snapshot)

    opt = result.optimization
    print(f"Waypoints:  {len(result.toolpath)}")
    print(f"Status:     {opt.status.value}")
    print(f"Evaluations: {opt.iterations}")
    print(f"Cost:       {opt.cost:.4f}")
    print(f"Violation:  {opt.constraint_violation:.2e}")
    print(f"Solve time: {opt.solve_time_ns / 1e9:.2f}s")
    if result.executed is not None:
        print(f"Executed:   {result.executed}")

    if output is not None:
        os.makedirs(os.path.dirname(os.path.abspath(output)), exist_ok=True)
        with open(output, "w") as f:
            json.dump(result.trajectory.to_dict(), f, indent=2)
        print(f"Trajectory written to {output}")

    if not result.success:
        raise SystemExit(1)


def cli():
    Fire(main)


if __name__ == "__main__":
    cli()
