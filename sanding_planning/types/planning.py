from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Union

import numpy as np


def pair_key(body_a: str, body_b: str) -> frozenset[str]:
    """Unordered key for a pair of collision bodies."""
    return frozenset((body_a, body_b))


@dataclass(frozen=True)
class SafetyMargin:
    """Minimum signed distance between two bodies and the cost weight."""

    margin: float
    weight: float

    def __post_init__(self):
        if self.weight < 0:
            raise ValueError("weight must be >= 0")


# --- Cost terms ---


@dataclass
class JointVelocityCost:
    """Penalise squared joint displacement between consecutive steps."""

    coeffs: np.ndarray  # (dof,)
    first_step: int
    last_step: int
    name: str = "joint_vel"

    def __post_init__(self):
        self.coeffs = np.asarray(self.coeffs, dtype=np.float64)


@dataclass
class JointAccelerationCost:
    """Penalise squared second differences of joint values."""

    coeffs: np.ndarray  # (dof,)
    first_step: int
    last_step: int
    name: str = "joint_acc"

    def __post_init__(self):
        self.coeffs = np.asarray(self.coeffs, dtype=np.float64)


@dataclass
class CollisionCost:
    """Hinge penalty on signed distance below a per-pair safety margin.

    Pairs not present in `pair_overrides` use `default`.
    """

    first_step: int
    last_step: int
    default: SafetyMargin
    pair_overrides: Mapping[frozenset[str], SafetyMargin] = field(default_factory=dict)
    continuous: bool = False
    name: str = "collision"

    def margin_for(self, body_a: str, body_b: str) -> SafetyMargin:
        return self.pair_overrides.get(pair_key(body_a, body_b), self.default)

    @property
    def max_margin(self) -> float:
        margins = [self.default.margin]
        margins.extend(m.margin for m in self.pair_overrides.values())
        return max(margins)


CostTerm = Union[JointVelocityCost, JointAccelerationCost, CollisionCost]


# --- Constraint terms ---


@dataclass
class PoseEqualityConstraint:
    """Require `link` to reach a target pose at trajectory step `step`.

    A zero rotational weight leaves rotation about that tool axis free.
    """

    name: str
    link: str
    step: int
    position: np.ndarray  # (3,)
    rotation: np.ndarray  # (3, 3)
    pos_coeffs: np.ndarray  # (3,)
    rot_coeffs: np.ndarray  # (3,)

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64)
        self.rotation = np.asarray(self.rotation, dtype=np.float64)
        self.pos_coeffs = np.asarray(self.pos_coeffs, dtype=np.float64)
        self.rot_coeffs = np.asarray(self.rot_coeffs, dtype=np.float64)
        if self.pos_coeffs.shape != (3,) or self.rot_coeffs.shape != (3,):
            raise ValueError("pos_coeffs and rot_coeffs must be shape (3,)")

    @property
    def coeffs(self) -> np.ndarray:
        return np.concatenate([self.pos_coeffs, self.rot_coeffs])


ConstraintTerm = PoseEqualityConstraint


@dataclass
class ProblemDescription:
    """Everything the trajectory optimizer needs, fixed once built."""

    n_steps: int
    group: str
    joint_names: list[str]
    initial_guess: np.ndarray  # (n_steps, dof)
    costs: tuple[CostTerm, ...]
    constraints: tuple[ConstraintTerm, ...]
    start_fixed: bool = False

    def __post_init__(self):
        self.initial_guess = np.asarray(self.initial_guess, dtype=np.float64)
        if self.n_steps < 1:
            raise ValueError("n_steps must be >= 1")
        expected = (self.n_steps, len(self.joint_names))
        if self.initial_guess.shape != expected:
            raise ValueError(
                f"initial_guess must be shape {expected}, "
                f"got {self.initial_guess.shape}"
            )
        for cnt in self.constraints:
            if not 0 <= cnt.step < self.n_steps:
                raise ValueError(
                    f"Constraint '{cnt.name}' step {cnt.step} outside "
                    f"[0, {self.n_steps - 1}]"
                )
        for cost in self.costs:
            if not 0 <= cost.first_step <= cost.last_step < self.n_steps:
                raise ValueError(
                    f"Cost '{cost.name}' steps [{cost.first_step}, "
                    f"{cost.last_step}] outside horizon of {self.n_steps}"
                )

    @property
    def num_joints(self) -> int:
        return len(self.joint_names)


@dataclass
class ProblemConfig:
    """Tuning constants used to assemble a ProblemDescription."""

    tcp_link: str = "sander_tcp"
    joint_vel_coeff: float = 2.5
    joint_acc_coeff: float = 5.0
    collision_margin: float = 0.025  # meters
    collision_weight: float = 20.0
    collision_overrides: dict[tuple[str, str], tuple[float, float]] = field(
        default_factory=lambda: {
            ("sander_disk", "part"): (-0.01, 20.0),
            ("sander_shaft", "part"): (0.0, 20.0),
        }
    )
    pos_coeffs: tuple[float, float, float] = (10.0, 10.0, 10.0)
    rot_coeffs: tuple[float, float, float] = (10.0, 10.0, 0.0)
    start_fixed: bool = False

    def __post_init__(self):
        if self.joint_vel_coeff < 0 or self.joint_acc_coeff < 0:
            raise ValueError("joint cost coefficients must be >= 0")
        if self.collision_weight < 0:
            raise ValueError("collision_weight must be >= 0")
        if len(self.pos_coeffs) != 3 or len(self.rot_coeffs) != 3:
            raise ValueError("pos_coeffs and rot_coeffs need 3 values each")
        if min(self.pos_coeffs) < 0 or min(self.rot_coeffs) < 0:
            raise ValueError("pose coefficients must be >= 0")


# --- Optimization ---


class OptStatus(Enum):
    """Terminal status reported by the optimizer."""

    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"


class RunnerState(Enum):
    """Lifecycle of a single optimization run."""

    INITIALIZED = "initialized"
    RUNNING = "running"
    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"


@dataclass
class OptimizerConfig:
    """Configuration parameters for the trust-region SQP optimizer."""

    initial_merit_coeff: float = 10.0  # Penalty on constraint violation
    merit_coeff_increase_ratio: float = 10.0
    max_merit_coeff_increases: int = 5
    cnt_tolerance: float = 1e-4  # Max weighted constraint violation
    max_iterations: int = 100  # Function evaluations per trust-region solve
    ftol: float = 1e-8
    xtol: float = 1e-8
    gtol: float = 1e-8
    collision_buffer: float = 0.05  # Extra distance queried beyond the margin
    time_limit: float | None = None  # Seconds; None means unlimited

    def __post_init__(self):
        if self.initial_merit_coeff <= 0:
            raise ValueError("initial_merit_coeff must be > 0")
        if self.merit_coeff_increase_ratio <= 1:
            raise ValueError("merit_coeff_increase_ratio must be > 1")
        if self.max_merit_coeff_increases < 0:
            raise ValueError("max_merit_coeff_increases must be >= 0")
        if self.cnt_tolerance <= 0:
            raise ValueError("cnt_tolerance must be > 0")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.collision_buffer < 0:
            raise ValueError("collision_buffer must be >= 0")
        if self.time_limit is not None and self.time_limit <= 0:
            raise ValueError("time_limit must be > 0")


@dataclass
class OptimizationResult:
    """Result of a trajectory optimization run."""

    status: OptStatus
    trajectory: np.ndarray  # (n_steps, dof)
    iterations: int  # Function evaluations across all trust-region solves
    cost: float  # Final cost excluding constraint penalties
    constraint_violation: float  # Max weighted pose error
    solve_time_ns: int

    @property
    def success(self) -> bool:
        return self.status == OptStatus.CONVERGED
