import logging
from dataclasses import dataclass
from typing import Any

from sanding_planning.envs.base_env import BaseWorld
from sanding_planning.errors import ExecutionConnectionError
from sanding_planning.interfaces.execution import (
    SimulatedExecutor,
    TrajectoryExecutorBase,
)
from sanding_planning.interfaces.telemetry import (
    publish_toolpath,
    publish_world_snapshot,
)
from sanding_planning.planning import (
    OptimizationRunner,
    build_problem,
    export_trajectory,
    make_cylinder_path,
)
from sanding_planning.planning.optimizer import OptimizerFactory
from sanding_planning.types import (
    CylinderPathConfig,
    ExecutionConfig,
    JointTrajectory,
    OptimizationResult,
    OptimizerConfig,
    ProblemConfig,
    ProblemDescription,
    ToolPath,
)

logger = logging.getLogger("SandingPipeline")


@dataclass
class PipelineResult:
    toolpath: ToolPath
    problem: ProblemDescription
    optimization: OptimizationResult
    trajectory: JointTrajectory
    executed: bool | None  # None when execution was not requested
    snapshot: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.optimization.success and self.executed is not False


class SandingPipeline:
    """
    Runs path generation, problem building, optimization, export and
    execution against one world, in that order.
    """

    def __init__(
        self,
        world: BaseWorld,
        group_name: str = "manipulator",
        path_config: CylinderPathConfig | None = None,
        problem_config: ProblemConfig | None = None,
        optimizer_config: OptimizerConfig | None = None,
        execution_config: ExecutionConfig | None = None,
        executor: TrajectoryExecutorBase | None = None,
        optimizer_factory: OptimizerFactory | None = None,
    ):
        self.world = world
        self.group_name = group_name
        self.path_config = path_config or CylinderPathConfig()
        self.problem_config = problem_config or ProblemConfig()
        self.optimizer_config = optimizer_config or OptimizerConfig()
        self.execution_config = execution_config or ExecutionConfig()
        self.executor = executor or SimulatedExecutor(
            world, self.execution_config.real_time_factor
        )
        self.optimizer_factory = optimizer_factory

    def run(self, execute: bool = True, snapshot_path: str | None = None) -> PipelineResult:
        toolpath = make_cylinder_path(self.path_config)
        logger.info(
            f"Generated {len(toolpath)} waypoints over "
            f"{self.path_config.n_slices} slices"
        )
        publish_toolpath(self.world, toolpath)

        # Resolution errors abort here, before any optimization
        problem = build_problem(
            toolpath, self.world, self.group_name, self.problem_config
        )
        snapshot = publish_world_snapshot(self.world, snapshot_path)

        runner = OptimizationRunner(
            problem, self.world, self.optimizer_config, self.optimizer_factory
        )
        optimization = runner.run()
        logger.info(f"Optimizer finished with status {optimization.status.value}")

        trajectory = export_trajectory(
            optimization, problem.joint_names, self.execution_config.time_step
        )

        executed = None
        if execute:
            executed = self._execute(trajectory)

        return PipelineResult(
            toolpath=toolpath,
            problem=problem,
            optimization=optimization,
            trajectory=trajectory,
            executed=executed,
            snapshot=snapshot,
        )

    def _execute(self, trajectory: JointTrajectory) -> bool:
        try:
            executed = self.executor.execute(
                trajectory,
                goal_time_tolerance=self.execution_config.goal_time_tolerance,
                connect_timeout=self.execution_config.connect_timeout,
            )
        except ExecutionConnectionError as exc:
            logger.error(f"Trajectory execution failed: {exc}")
            return False

        if not executed:
            logger.error("Trajectory execution did not complete")
        return executed
