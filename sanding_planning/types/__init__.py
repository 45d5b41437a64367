from .geometry import SE3Pose
from .planning import (
    CollisionCost,
    ConstraintTerm,
    CostTerm,
    JointAccelerationCost,
    JointVelocityCost,
    OptimizationResult,
    OptimizerConfig,
    OptStatus,
    PoseEqualityConstraint,
    ProblemConfig,
    ProblemDescription,
    RunnerState,
    SafetyMargin,
    pair_key,
)
from .robot import (
    CollisionObjectConfig,
    ContactResult,
    GroupConfig,
    KinematicGroup,
    RobotConfig,
)
from .toolpath import CylinderPathConfig, ToolPath
from .trajectory import ExecutionConfig, JointTrajectory, TrajectoryPoint

__all__ = [
    # Geometry
    "SE3Pose",
    "CylinderPathConfig",
    "ToolPath",
    # Problem
    "SafetyMargin",
    "pair_key",
    "CostTerm",
    "JointVelocityCost",
    "JointAccelerationCost",
    "CollisionCost",
    "ConstraintTerm",
    "PoseEqualityConstraint",
    "ProblemConfig",
    "ProblemDescription",
    # Optimization
    "OptimizerConfig",
    "OptimizationResult",
    "OptStatus",
    "RunnerState",
    # Robot / world
    "GroupConfig",
    "CollisionObjectConfig",
    "RobotConfig",
    "KinematicGroup",
    "ContactResult",
    # Trajectory
    "ExecutionConfig",
    "JointTrajectory",
    "TrajectoryPoint",
]
