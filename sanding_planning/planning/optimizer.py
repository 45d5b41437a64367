"""Trajectory optimization over a fixed-horizon joint matrix.

The solver backend is hidden behind OptimizerBase. The bundled backend is a
penalty-based sequential trust-region method: costs and merit-weighted pose
constraints are stacked into one residual vector that
scipy.optimize.least_squares minimises with its trust-region reflective
algorithm. Whenever the solution still violates the pose constraints, the
merit coefficient is increased and the problem is solved again from the
last iterate.
"""

from __future__ import annotations

import logging
import time
import warnings
from typing import Callable, Protocol, runtime_checkable

import numpy as np
from scipy.optimize import least_squares

from sanding_planning.envs.base_env import BaseWorld
from sanding_planning.errors import ConfigurationError, ConvergenceWarning
from sanding_planning.types import (
    CollisionCost,
    JointAccelerationCost,
    JointVelocityCost,
    OptimizationResult,
    OptimizerConfig,
    OptStatus,
    PoseEqualityConstraint,
    ProblemDescription,
    RunnerState,
    pair_key,
)
from sanding_planning.utils.rot_utils import inverse_right_jacobian, log3

logger = logging.getLogger(__name__)

_VELOCITY_STENCIL = (-1.0, 1.0)
_ACCELERATION_STENCIL = (1.0, -2.0, 1.0)


@runtime_checkable
class OptimizerBase(Protocol):
    """Protocol for trajectory optimizer backends."""

    def initialize(self, x0: np.ndarray) -> None:
        ...

    def optimize(self) -> OptStatus:
        ...

    @property
    def x(self) -> np.ndarray:
        ...

    @property
    def iterations(self) -> int:
        ...

    @property
    def cost(self) -> float:
        ...

    @property
    def constraint_violation(self) -> float:
        ...


OptimizerFactory = Callable[
    [ProblemDescription, BaseWorld, OptimizerConfig], OptimizerBase
]


class TrustRegionSQP:
    """Sequential trust-region solver for a ProblemDescription.

    All world access goes through BaseWorld, so any world exposing
    kinematics and distance queries can be optimized over.
    """

    def __init__(
        self,
        problem: ProblemDescription,
        world: BaseWorld,
        config: OptimizerConfig | None = None,
    ) -> None:
        if config is None:
            config = OptimizerConfig()

        self._problem = problem
        self._world = world
        self._config = config
        self._group = world.get_group(problem.group)

        self._n_steps = problem.n_steps
        self._dof = problem.num_joints
        # Row 0 is excluded from the decision variables when the start is fixed
        self._first_free = 1 if problem.start_fixed else 0

        self._velocity_costs = [
            c for c in problem.costs if isinstance(c, JointVelocityCost)
        ]
        self._acceleration_costs = [
            c for c in problem.costs if isinstance(c, JointAccelerationCost)
        ]
        self._collision_costs = [
            c for c in problem.costs if isinstance(c, CollisionCost)
        ]
        self._pairs = (
            world.collision_pairs(self._group) if self._collision_costs else []
        )

        lower, upper = world.joint_limits(self._group)
        self._lower = np.asarray(lower, dtype=np.float64)
        self._upper = np.asarray(upper, dtype=np.float64)
        if np.any(self._lower >= self._upper):
            raise ConfigurationError(
                f"Group '{problem.group}' has empty joint limit intervals"
            )
        # (step, max_distance) -> (q bytes, contacts)
        self._contacts: dict[tuple[int, float], tuple[bytes, dict]] = {}

        self._x = problem.initial_guess.copy()
        self._merit_coeff = config.initial_merit_coeff
        self._iterations = 0
        self._cost = float("inf")
        self._violation = float("inf")
        self._cache_key: bytes | None = None
        self._cache: tuple[np.ndarray, np.ndarray] | None = None

    # --- OptimizerBase ---

    def initialize(self, x0: np.ndarray) -> None:
        x0 = np.asarray(x0, dtype=np.float64)
        if x0.shape != (self._n_steps, self._dof):
            raise ValueError(
                f"x0 must be shape {(self._n_steps, self._dof)}, got {x0.shape}"
            )
        self._x = x0.copy()
        self._iterations = 0
        self._cache_key = None

    @property
    def x(self) -> np.ndarray:
        return self._x.copy()

    @property
    def iterations(self) -> int:
        return self._iterations

    @property
    def cost(self) -> float:
        return self._cost

    @property
    def constraint_violation(self) -> float:
        return self._violation

    def optimize(self) -> OptStatus:
        """Run the merit loop until constraints hold or the budget is spent."""
        cfg = self._config
        start = time.monotonic()
        fixed = self._x[: self._first_free].copy()
        z = self._x[self._first_free :].ravel()
        status = OptStatus.NOT_CONVERGED

        n_free = self._n_steps - self._first_free
        lower = np.tile(self._lower, n_free)
        upper = np.tile(self._upper, n_free)
        clipped = np.clip(z, lower, upper)
        if not np.array_equal(clipped, z):
            logger.info("Initial guess clipped into the joint limits")
            z = clipped
            self._x = self._unpack(z, fixed)

        n_residuals = self._residuals(z).size if z.size else 0
        if z.size == 0 or n_residuals == 0:
            self._violation = self._constraint_violation(self._x)
            self._cost = self._cost_value(self._x)
            if self._violation <= cfg.cnt_tolerance:
                return OptStatus.CONVERGED
            return OptStatus.NOT_CONVERGED

        for increase in range(cfg.max_merit_coeff_increases + 1):
            self._merit_coeff = cfg.initial_merit_coeff * (
                cfg.merit_coeff_increase_ratio**increase
            )
            self._cache_key = None

            res = least_squares(
                self._residuals,
                z,
                jac=self._jacobian,
                bounds=(lower, upper),
                method="trf",
                ftol=cfg.ftol,
                xtol=cfg.xtol,
                gtol=cfg.gtol,
                max_nfev=cfg.max_iterations,
            )
            z = res.x
            self._iterations += int(res.nfev)
            self._x = self._unpack(z, fixed)
            self._violation = self._constraint_violation(self._x)

            logger.debug(
                "merit %.1e: status %d, nfev %d, violation %.3e",
                self._merit_coeff,
                res.status,
                res.nfev,
                self._violation,
            )

            if res.status > 0 and self._violation <= cfg.cnt_tolerance:
                status = OptStatus.CONVERGED
                break
            if cfg.time_limit is not None and time.monotonic() - start > cfg.time_limit:
                logger.warning("Time limit of %.1fs reached", cfg.time_limit)
                break

        self._cost = self._cost_value(self._x)
        return status

    # --- Residual model ---

    def _unpack(self, z: np.ndarray, fixed: np.ndarray) -> np.ndarray:
        free = z.reshape(self._n_steps - self._first_free, self._dof)
        return np.vstack([fixed, free])

    def _residuals(self, z: np.ndarray) -> np.ndarray:
        return self._evaluate(z)[0]

    def _jacobian(self, z: np.ndarray) -> np.ndarray:
        return self._evaluate(z)[1]

    def _evaluate(self, z: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        key = z.tobytes()
        if key == self._cache_key and self._cache is not None:
            return self._cache

        x = self._unpack(z, self._x[: self._first_free])
        blocks = self._cost_blocks(x)
        blocks.extend(self._pose_blocks(x, np.sqrt(self._merit_coeff)))
        if not blocks:
            blocks = [(np.zeros(0), np.zeros((0, self._n_steps * self._dof)))]

        residuals = np.concatenate([b[0] for b in blocks])
        jacobian = np.vstack([b[1] for b in blocks])
        # Drop the columns of the fixed start row
        jacobian = jacobian[:, self._first_free * self._dof :]

        self._cache_key = key
        self._cache = (residuals, jacobian)
        return self._cache

    def _cost_blocks(self, x: np.ndarray) -> list[tuple[np.ndarray, np.ndarray]]:
        blocks = []
        for cost in self._velocity_costs:
            blocks.append(self._difference_block(x, cost, _VELOCITY_STENCIL))
        for cost in self._acceleration_costs:
            blocks.append(self._difference_block(x, cost, _ACCELERATION_STENCIL))
        for cost in self._collision_costs:
            blocks.append(self._collision_block(x, cost))
        return blocks

    def _difference_block(
        self,
        x: np.ndarray,
        cost: JointVelocityCost | JointAccelerationCost,
        stencil: tuple[float, ...],
    ) -> tuple[np.ndarray, np.ndarray]:
        """sqrt(c) * sum_k stencil[k] * q[t + k] for every window in the cost range."""
        dof = self._dof
        starts = range(cost.first_step, cost.last_step - len(stencil) + 2)
        sqrt_c = np.sqrt(cost.coeffs)
        joints = np.arange(dof)

        res = np.zeros((len(starts), dof))
        jac = np.zeros((len(starts) * dof, self._n_steps * dof))
        for row, t0 in enumerate(starts):
            for k, weight in enumerate(stencil):
                res[row] += weight * x[t0 + k]
                jac[row * dof + joints, (t0 + k) * dof + joints] = weight * sqrt_c
        return (res * sqrt_c).ravel(), jac

    def _collision_block(
        self, x: np.ndarray, cost: CollisionCost
    ) -> tuple[np.ndarray, np.ndarray]:
        """Hinge sqrt(w) * max(0, margin - distance) per (step, pair)."""
        dof = self._dof
        n_pairs = len(self._pairs)
        steps = range(cost.first_step, cost.last_step + 1)
        query_distance = cost.max_margin + self._config.collision_buffer

        res = np.zeros(len(steps) * n_pairs)
        jac = np.zeros((len(steps) * n_pairs, self._n_steps * dof))
        if n_pairs == 0:
            return res, jac

        step_contacts = self._step_contacts(x, steps, query_distance)
        for i, t in enumerate(steps):
            q = x[t]
            contacts = step_contacts[t]
            for p, (body_a, body_b) in enumerate(self._pairs):
                contact = contacts.get(pair_key(body_a, body_b))
                if contact is None:
                    continue
                margin = cost.margin_for(body_a, body_b)
                if contact.distance >= margin.margin or margin.weight == 0:
                    continue

                sqrt_w = np.sqrt(margin.weight)
                row = i * n_pairs + p
                res[row] = sqrt_w * (margin.margin - contact.distance)

                # d(distance)/dq = n^T (J_A(p_A) - J_B(p_B)), n points B -> A
                J_a = self._world.point_jacobian(
                    self._group, contact.body_a, q, contact.point_a
                )
                J_b = self._world.point_jacobian(
                    self._group, contact.body_b, q, contact.point_b
                )
                grad = contact.normal @ (J_a - J_b)
                jac[row, t * dof : (t + 1) * dof] = -sqrt_w * grad
        return res, jac

    def _step_contacts(
        self, x: np.ndarray, steps: range, max_distance: float
    ) -> dict[int, dict]:
        """Contacts per step, querying the world only for rows that changed."""
        stale = [
            t
            for t in steps
            if self._contacts.get((t, max_distance), (None,))[0] != x[t].tobytes()
        ]
        if stale:
            sweep = self._world.compute_distance_sweep(
                self._group, x[stale], self._pairs, max_distance
            )
            for t, contacts in zip(stale, sweep):
                self._contacts[(t, max_distance)] = (x[t].tobytes(), contacts)
        return {t: self._contacts[(t, max_distance)][1] for t in steps}

    def _pose_blocks(
        self, x: np.ndarray, scale: float
    ) -> list[tuple[np.ndarray, np.ndarray]]:
        dof = self._dof
        blocks = []
        for cnt in self._problem.constraints:
            q = x[cnt.step]
            error, J = self._pose_error(cnt, q)
            weights = scale * cnt.coeffs

            jac = np.zeros((6, self._n_steps * dof))
            jac[:, cnt.step * dof : (cnt.step + 1) * dof] = weights[:, None] * J
            blocks.append((weights * error, jac))
        return blocks

    def _pose_error(
        self, cnt: PoseEqualityConstraint, q: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """[p - p*, log(R*^T R)] and its Jacobian with respect to q."""
        pose = self._world.forward_kinematics(self._group, cnt.link, q)
        J_local = self._world.frame_jacobian(self._group, cnt.link, q, local=True)

        rot_error = log3(cnt.rotation.T @ pose.rotation)
        error = np.concatenate([pose.position - cnt.position, rot_error])
        J = np.vstack(
            [
                pose.rotation @ J_local[:3],
                inverse_right_jacobian(rot_error) @ J_local[3:],
            ]
        )
        return error, J

    # --- Reporting ---

    def _constraint_violation(self, x: np.ndarray) -> float:
        """Largest weighted pose error over all constraints."""
        worst = 0.0
        for cnt in self._problem.constraints:
            pose = self._world.forward_kinematics(self._group, cnt.link, x[cnt.step])
            error = np.concatenate(
                [
                    pose.position - cnt.position,
                    log3(cnt.rotation.T @ pose.rotation),
                ]
            )
            worst = max(worst, float(np.max(np.abs(cnt.coeffs * error))))
        return worst

    def _cost_value(self, x: np.ndarray) -> float:
        """Sum of squared cost residuals, constraint penalties excluded."""
        return float(sum(np.sum(r**2) for r, _ in self._cost_blocks(x)))


def create_optimizer(
    problem: ProblemDescription,
    world: BaseWorld,
    config: OptimizerConfig | None = None,
) -> TrustRegionSQP:
    """Factory function to create the default optimizer backend.

    Input:
        problem: Problem to solve
        world: World used for kinematics and distance queries
        config: Optimizer configuration (uses defaults if None)
    Output:
        TrustRegionSQP instance
    """
    return TrustRegionSQP(problem, world, config)


class OptimizationRunner:
    """Drives one optimizer run: INITIALIZED -> RUNNING -> CONVERGED | NOT_CONVERGED."""

    def __init__(
        self,
        problem: ProblemDescription,
        world: BaseWorld,
        config: OptimizerConfig | None = None,
        optimizer_factory: OptimizerFactory | None = None,
    ) -> None:
        self.problem = problem
        self.world = world
        self.config = config if config is not None else OptimizerConfig()
        self._factory = optimizer_factory or create_optimizer
        self._state = RunnerState.INITIALIZED

    @property
    def state(self) -> RunnerState:
        return self._state

    def run(self, initial_guess: np.ndarray | None = None) -> OptimizationResult:
        """
        Solve the problem from an initial guess.

        Input:
            initial_guess: (n_steps, dof) joint matrix; the problem's own
                guess is used if None
        Output:
            OptimizationResult holding the final iterate, converged or not
        """
        if self._state != RunnerState.INITIALIZED:
            raise RuntimeError(f"Runner already used (state {self._state.value})")

        if initial_guess is None:
            initial_guess = self.problem.initial_guess
        guess = self._check_guess(initial_guess)

        optimizer = self._factory(self.problem, self.world, self.config)
        optimizer.initialize(guess)

        self._state = RunnerState.RUNNING
        logger.info(
            "Optimizing %d steps x %d joints", self.problem.n_steps, self.problem.num_joints
        )
        start_ns = time.perf_counter_ns()
        try:
            status = optimizer.optimize()
        except Exception:
            self._state = RunnerState.NOT_CONVERGED
            raise
        solve_time_ns = time.perf_counter_ns() - start_ns

        trajectory = np.asarray(optimizer.x, dtype=np.float64).reshape(
            self.problem.n_steps, self.problem.num_joints
        )
        result = OptimizationResult(
            status=status,
            trajectory=trajectory,
            iterations=int(optimizer.iterations),
            cost=float(optimizer.cost),
            constraint_violation=float(optimizer.constraint_violation),
            solve_time_ns=solve_time_ns,
        )

        if result.success:
            self._state = RunnerState.CONVERGED
            logger.info(
                "Optimization converged: %d evaluations, cost %.4g, %.2fs",
                result.iterations,
                result.cost,
                solve_time_ns / 1e9,
            )
        else:
            self._state = RunnerState.NOT_CONVERGED
            message = (
                f"Optimization did not converge after {result.iterations} "
                f"evaluations (constraint violation {result.constraint_violation:.3e})"
            )
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning, stacklevel=2)

        return result

    def _check_guess(self, guess: np.ndarray) -> np.ndarray:
        guess = np.asarray(guess, dtype=np.float64)
        expected = (self.problem.n_steps, self.problem.num_joints)
        if guess.size == 0:
            raise ValueError("initial_guess is empty")
        if guess.shape != expected:
            raise ValueError(f"initial_guess must be shape {expected}, got {guess.shape}")
        if not np.all(np.isfinite(guess)):
            raise ValueError("initial_guess contains non-finite values")
        return guess


def run_optimization(
    problem: ProblemDescription,
    world: BaseWorld,
    config: OptimizerConfig | None = None,
    initial_guess: np.ndarray | None = None,
    optimizer_factory: OptimizerFactory | None = None,
) -> OptimizationResult:
    """Run a fresh OptimizationRunner once and return its result."""
    runner = OptimizationRunner(problem, world, config, optimizer_factory)
    return runner.run(initial_guess)
