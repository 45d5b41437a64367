"""Trajectory execution backends."""

from __future__ import annotations

import logging
import time
from typing import Protocol, runtime_checkable

from sanding_planning.envs.base_env import BaseWorld
from sanding_planning.errors import ExecutionConnectionError
from sanding_planning.types import JointTrajectory

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05  # seconds


@runtime_checkable
class TrajectoryExecutorBase(Protocol):
    """Protocol for anything that can play a joint trajectory."""

    def execute(
        self,
        trajectory: JointTrajectory,
        goal_time_tolerance: float = 1.0,
        connect_timeout: float = 2.0,
    ) -> bool:
        ...


class SimulatedExecutor:
    """Plays a trajectory back by writing joint values into a world.

    With real_time_factor 0 the points are applied back to back. Otherwise
    each point is applied at time_from_start / real_time_factor.
    """

    def __init__(self, world: BaseWorld, real_time_factor: float = 0.0):
        if real_time_factor < 0:
            raise ValueError("real_time_factor must be >= 0")
        self.world = world
        self.real_time_factor = real_time_factor

    def _wait_for_connection(self, connect_timeout: float):
        deadline = time.monotonic() + connect_timeout
        while not self.world.is_connected():
            if time.monotonic() >= deadline:
                raise ExecutionConnectionError(
                    f"World not connected after {connect_timeout:.1f}s"
                )
            time.sleep(_POLL_INTERVAL)

    def execute(
        self,
        trajectory: JointTrajectory,
        goal_time_tolerance: float = 1.0,
        connect_timeout: float = 2.0,
    ) -> bool:
        """
        Apply every trajectory point in order.

        Input:
            trajectory: Time-stamped joint trajectory
            goal_time_tolerance: Seconds the playback may overrun its duration
            connect_timeout: Seconds to wait for the world connection
        Output:
            True if all points were applied within the goal time tolerance
        """
        self._wait_for_connection(connect_timeout)

        if len(trajectory) == 0:
            logger.warning("Empty trajectory, nothing to execute")
            return True

        start = time.monotonic()
        for point in trajectory.points:
            if self.real_time_factor > 0:
                delay = start + point.time_from_start / self.real_time_factor
                delay -= time.monotonic()
                if delay > 0:
                    time.sleep(delay)
            self.world.set_joint_values(trajectory.joint_names, point.positions)

        if self.real_time_factor > 0:
            expected = trajectory.duration / self.real_time_factor
            overrun = time.monotonic() - start - expected
            if overrun > goal_time_tolerance:
                logger.warning(
                    "Execution overran goal time by %.2fs (tolerance %.2fs)",
                    overrun,
                    goal_time_tolerance,
                )
                return False

        logger.info(
            "Executed %d points (%.1fs trajectory)", len(trajectory), trajectory.duration
        )
        return True
