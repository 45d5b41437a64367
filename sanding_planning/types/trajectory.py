from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np


@dataclass
class TrajectoryPoint:
    positions: np.ndarray  # (dof,)
    time_from_start: float  # seconds

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64)
        if self.time_from_start < 0:
            raise ValueError("time_from_start must be >= 0")


@dataclass
class JointTrajectory:
    """Ordered, time-stamped joint trajectory ready for execution."""

    joint_names: list[str]
    points: list[TrajectoryPoint] = field(default_factory=list)

    def __post_init__(self):
        previous = 0.0
        for point in self.points:
            if len(point.positions) != len(self.joint_names):
                raise ValueError(
                    f"Point has {len(point.positions)} values, "
                    f"expected {len(self.joint_names)}"
                )
            if point.time_from_start < previous:
                raise ValueError("time_from_start must be non-decreasing")
            previous = point.time_from_start

    def __len__(self) -> int:
        return len(self.points)

    @property
    def duration(self) -> float:
        return self.points[-1].time_from_start if self.points else 0.0

    def positions(self) -> np.ndarray:
        """Stacked joint values, shape (N, dof)."""
        if not self.points:
            return np.zeros((0, len(self.joint_names)))
        return np.vstack([p.positions for p in self.points])

    def to_dict(self) -> dict[str, Any]:
        return {
            "joint_names": list(self.joint_names),
            "points": [
                {
                    "positions": p.positions.tolist(),
                    "time_from_start": p.time_from_start,
                }
                for p in self.points
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JointTrajectory:
        return cls(
            joint_names=list(data["joint_names"]),
            points=[
                TrajectoryPoint(
                    positions=np.array(p["positions"]),
                    time_from_start=float(p["time_from_start"]),
                )
                for p in data["points"]
            ],
        )


@dataclass
class ExecutionConfig:
    """Timing constants for exporting and executing a trajectory."""

    time_step: float = 1.0  # seconds between consecutive trajectory points
    connect_timeout: float = 2.0  # seconds to wait for the controller
    goal_time_tolerance: float = 1.0  # seconds allowed past the final point
    real_time_factor: float = 0.0  # 0 plays back without pacing

    def __post_init__(self):
        if self.time_step <= 0:
            raise ValueError("time_step must be > 0")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be > 0")
        if self.goal_time_tolerance < 0:
            raise ValueError("goal_time_tolerance must be >= 0")
        if self.real_time_factor < 0:
            raise ValueError("real_time_factor must be >= 0")
