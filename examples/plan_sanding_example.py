"""Plan and replay a sanding trajectory over the cylinder part.

Opens the pybullet GUI, draws the tool path, optimizes the joint trajectory
and plays it back in real time.
"""

import logging
import math

from fire import Fire

from sanding_planning.config.robot_config import DEFAULT_PATH_CONFIG, MANIPULATOR_GROUP
from sanding_planning.core.pipeline import SandingPipeline
from sanding_planning.envs.pybullet_env import create_sanding_world
from sanding_planning.types import CylinderPathConfig, ExecutionConfig, OptimizerConfig


def main(n_slices=2, angular_step=math.pi / 6, speed=2.0, visualize=True):
    logging.basicConfig(level=logging.INFO)

    path_config = CylinderPathConfig(
        radius=DEFAULT_PATH_CONFIG.radius,
        slice_height=DEFAULT_PATH_CONFIG.slice_height,
        n_slices=n_slices,
        angular_step=angular_step,
        origin=DEFAULT_PATH_CONFIG.origin,
    )

    with create_sanding_world(visualize=visualize) as world:
        pipeline = SandingPipeline(
            world,
            group_name=MANIPULATOR_GROUP,
            path_config=path_config,
            optimizer_config=OptimizerConfig(time_limit=120.0),
            execution_config=ExecutionConfig(
                time_step=0.5, real_time_factor=speed if visualize else 0.0
            ),
        )
        result = pipeline.run()

        print(f"Status: {result.optimization.status.value}")
        print(f"Constraint violation: {result.optimization.constraint_violation:.2e}")
        print(f"Executed: {result.executed}")

        if visualize:
            input("Press Enter to exit...")


if __name__ == "__main__":
    Fire(main)
