"""Integration tests for the URDF-backed world.

Skipped when pybullet or pinocchio are not installed.
"""

import json

import numpy as np
import pytest

pytest.importorskip("pybullet")
pytest.importorskip("pinocchio")

from sanding_planning.config.robot_config import (  # noqa: E402
    JOINT_NAMES,
    MANIPULATOR_GROUP,
    PART_OBJECT,
    TCP_LINK,
)
from sanding_planning.envs.pybullet_env import (  # noqa: E402
    PyBulletWorld,
    create_sanding_world,
)
from sanding_planning.errors import ConfigurationError, ResolutionError  # noqa: E402
from sanding_planning.planning import (  # noqa: E402
    TrustRegionSQP,
    build_problem,
    make_cylinder_path,
    run_optimization,
)
from sanding_planning.types import (  # noqa: E402
    CollisionObjectConfig,
    CylinderPathConfig,
    GroupConfig,
    JointAccelerationCost,
    JointVelocityCost,
    OptimizerConfig,
    PoseEqualityConstraint,
    ProblemDescription,
    RobotConfig,
    SE3Pose,
    pair_key,
)
from sanding_planning.utils.rot_utils import log3  # noqa: E402

Q_TEST = np.array([0.3, -0.4, 0.5, 0.2, -0.6, 0.7])


@pytest.fixture
def world():
    w = create_sanding_world()
    yield w
    w.close()


class TestWorldLoading:
    def test_group_and_links(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        assert group.joint_names == tuple(JOINT_NAMES)
        assert group.num_joints == 6
        assert world.has_link(TCP_LINK)
        assert not world.has_link("no_such_link")

    def test_joints_start_at_zero(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        np.testing.assert_allclose(world.get_current_joint_values(group), np.zeros(6))

    def test_missing_urdf(self):
        config = RobotConfig(
            urdf_path="/nonexistent/robot.urdf", groups=[], collision_links=[]
        )
        with pytest.raises(ConfigurationError):
            PyBulletWorld(config)

    def test_unknown_group(self, world):
        with pytest.raises(ResolutionError):
            world.get_group("no_such_group")

    def test_group_with_unknown_joint(self, world):
        with pytest.raises(ResolutionError):
            world.add_group(
                GroupConfig(
                    name="bad",
                    base_link="world_frame",
                    tip_link=TCP_LINK,
                    joint_names=("joint_1", "joint_9"),
                )
            )

    def test_duplicate_body(self, world):
        with pytest.raises(ConfigurationError):
            world.attach_body(PART_OBJECT)

    def test_context_manager_disconnects(self):
        with create_sanding_world() as w:
            assert w.is_connected()
        assert not w.is_connected()


class TestKinematics:
    def test_tcp_at_zero(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        pose = world.forward_kinematics(group, TCP_LINK, np.zeros(6))
        np.testing.assert_allclose(pose.position, [0.92, 0.0, 1.0], atol=1e-9)
        # Tool z points along world x
        np.testing.assert_allclose(pose.z_axis, [1.0, 0.0, 0.0], atol=1e-4)

    def test_pinocchio_matches_pybullet(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        world.set_joint_values(list(JOINT_NAMES), Q_TEST)

        fk = world.forward_kinematics(group, TCP_LINK, Q_TEST)
        bullet = world._link_pose(TCP_LINK)

        np.testing.assert_allclose(fk.position, bullet.position, atol=1e-5)
        np.testing.assert_allclose(fk.rotation, bullet.rotation, atol=1e-5)

    def test_point_jacobian_finite_differences(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        pose = world.forward_kinematics(group, "link_6", Q_TEST)
        local_point = np.array([0.03, 0.02, -0.01])
        point = pose.position + pose.rotation @ local_point

        analytic = world.point_jacobian(group, "link_6", Q_TEST, point)

        eps = 1e-6
        numeric = np.zeros((3, 6))
        for k in range(6):
            dq = np.zeros(6)
            dq[k] = eps
            plus = world.forward_kinematics(group, "link_6", Q_TEST + dq)
            minus = world.forward_kinematics(group, "link_6", Q_TEST - dq)
            numeric[:, k] = (
                plus.position
                + plus.rotation @ local_point
                - minus.position
                - minus.rotation @ local_point
            ) / (2 * eps)
        np.testing.assert_allclose(analytic, numeric, atol=1e-6)

    def test_joint_limits_from_urdf(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        lower, upper = world.joint_limits(group)
        np.testing.assert_allclose(upper, [3.1416, 2.0, 2.5, 3.1416, 2.2, 6.2832])
        np.testing.assert_allclose(lower, -upper)


class TestCollisionQueries:
    def test_pairs(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        pairs = {pair_key(a, b) for a, b in world.collision_pairs(group)}

        assert pair_key("sander_disk", "part") in pairs
        assert pair_key("link_3", "part") in pairs
        # Adjacent and allowed pairs are skipped
        assert pair_key("link_1", "link_2") not in pairs
        assert pair_key("sander_disk", "sander_shaft") not in pairs

    def test_distance_to_part(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        q = np.zeros(6)
        contacts = world.compute_distances(
            group, q, [("link_2", "part")], max_distance=2.0
        )
        contact = contacts[pair_key("link_2", "part")]
        # Upper arm radius 0.07 at x=0, part surface at x=0.8
        assert contact.distance == pytest.approx(0.73, abs=1e-3)
        np.testing.assert_allclose(contact.normal, [-1.0, 0.0, 0.0], atol=1e-3)

    def test_distance_query_keeps_joint_state(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        world.compute_distances(
            group, Q_TEST, world.collision_pairs(group), max_distance=0.1
        )
        np.testing.assert_allclose(world.get_current_joint_values(group), np.zeros(6))

    def test_sweep_matches_single_queries(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        qs = np.vstack([np.zeros(6), Q_TEST])
        pairs = [("link_2", "part"), ("sander_disk", "part")]

        sweep = world.compute_distance_sweep(group, qs, pairs, max_distance=2.0)

        assert len(sweep) == 2
        for q, contacts in zip(qs, sweep):
            single = world.compute_distances(group, q, pairs, max_distance=2.0)
            assert set(contacts) == set(single)
            for key, contact in contacts.items():
                assert contact.distance == pytest.approx(single[key].distance)
        np.testing.assert_allclose(world.get_current_joint_values(group), np.zeros(6))

    def test_snapshot_is_json(self, world):
        snapshot = world.snapshot()
        json.dumps(snapshot)
        assert snapshot["attached_bodies"][0]["name"] == "part"
        assert set(snapshot["joint_state"]) == set(JOINT_NAMES)


class TestProblemOnSander:
    def test_build_problem(self, world):
        path = make_cylinder_path(CylinderPathConfig(n_slices=1))
        problem = build_problem(path, world, MANIPULATOR_GROUP)
        assert problem.n_steps == 24
        assert problem.initial_guess.shape == (24, 6)
        assert len(problem.constraints) == 24


def _rotation_about_z(angle):
    c, s = np.cos(angle), np.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def _pose_constraint(step, pose, rot_coeffs):
    return PoseEqualityConstraint(
        name=f"waypoint_cart_{step}",
        link=TCP_LINK,
        step=step,
        position=pose.position,
        rotation=pose.rotation,
        pos_coeffs=np.full(3, 10.0),
        rot_coeffs=np.asarray(rot_coeffs, dtype=float),
    )


class TestAttachedBodies:
    def test_body_on_flange_moves_with_arm(self, world):
        world.attach_body(
            CollisionObjectConfig(
                name="tool_ball",
                shape="sphere",
                parent_link="link_6",
                radius=0.02,
                position=[0.05, 0.0, 0.0],
            )
        )
        group = world.get_group(MANIPULATOR_GROUP)
        local_point = np.array([0.06, 0.01, 0.0])
        pose = world.forward_kinematics(group, "link_6", Q_TEST)
        point = pose.position + pose.rotation @ local_point

        analytic = world.point_jacobian(group, "tool_ball", Q_TEST, point)

        eps = 1e-6
        numeric = np.zeros((3, 6))
        for k in range(6):
            dq = np.zeros(6)
            dq[k] = eps
            plus = world.forward_kinematics(group, "link_6", Q_TEST + dq)
            minus = world.forward_kinematics(group, "link_6", Q_TEST - dq)
            numeric[:, k] = (
                plus.rotation @ local_point
                + plus.position
                - minus.rotation @ local_point
                - minus.position
            ) / (2 * eps)
        np.testing.assert_allclose(analytic, numeric, atol=1e-6)
        assert np.linalg.norm(analytic) > 0.1

    def test_world_fixed_body_has_zero_jacobian(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        jac = world.point_jacobian(group, "part", Q_TEST, np.array([0.8, 0.0, 1.0]))
        np.testing.assert_array_equal(jac, np.zeros((3, 6)))


class TestOptimizerOnSander:
    def test_pose_jacobian_finite_differences(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        guess = np.array([Q_TEST + 0.1 * i for i in range(3)])
        constraints = tuple(
            _pose_constraint(
                i,
                world.forward_kinematics(group, TCP_LINK, guess[i] + 0.15),
                [10.0, 10.0, 10.0],
            )
            for i in range(3)
        )
        problem = ProblemDescription(
            n_steps=3,
            group=MANIPULATOR_GROUP,
            joint_names=list(JOINT_NAMES),
            initial_guess=guess,
            costs=(
                JointVelocityCost(coeffs=np.full(6, 2.5), first_step=0, last_step=2),
                JointAccelerationCost(
                    coeffs=np.full(6, 5.0), first_step=0, last_step=2
                ),
            ),
            constraints=constraints,
        )
        solver = TrustRegionSQP(problem, world)

        z = guess.ravel()
        analytic = solver._jacobian(z)
        eps = 1e-6
        numeric = np.zeros_like(analytic)
        for k in range(z.size):
            step = np.zeros_like(z)
            step[k] = eps
            numeric[:, k] = (solver._residuals(z + step) - solver._residuals(z - step)) / (
                2 * eps
            )
        np.testing.assert_allclose(analytic, numeric, atol=1e-5)

    def test_rotation_about_tool_axis_is_free(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        reference = world.forward_kinematics(group, TCP_LINK, Q_TEST)
        target = SE3Pose(
            position=reference.position,
            rotation=reference.rotation @ _rotation_about_z(0.5),
        )
        problem = ProblemDescription(
            n_steps=1,
            group=MANIPULATOR_GROUP,
            joint_names=list(JOINT_NAMES),
            initial_guess=(Q_TEST + [0.03, -0.02, 0.02, 0.0, 0.03, 0.0])[None, :],
            costs=(),
            constraints=(_pose_constraint(0, target, [10.0, 10.0, 0.0]),),
        )

        result = run_optimization(problem, world)

        assert result.success
        assert result.constraint_violation <= 1e-4
        solved = world.forward_kinematics(group, TCP_LINK, result.trajectory[0])
        np.testing.assert_allclose(solved.position, target.position, atol=1e-5)
        # Tool axes agree, the spin about them does not
        np.testing.assert_allclose(solved.z_axis, target.z_axis, atol=1e-5)
        assert abs(log3(target.rotation.T @ solved.rotation)[2]) > 0.2

    @pytest.mark.filterwarnings("ignore::sanding_planning.errors.ConvergenceWarning")
    def test_target_past_joint_limit_stays_inside(self, world):
        group = world.get_group(MANIPULATOR_GROUP)
        beyond = np.array([0.0, 2.6, 0.0, 0.0, 0.0, 0.0])
        target = world.forward_kinematics(group, TCP_LINK, beyond)
        problem = ProblemDescription(
            n_steps=1,
            group=MANIPULATOR_GROUP,
            joint_names=list(JOINT_NAMES),
            initial_guess=np.array([[0.0, 1.9, 0.0, 0.0, 0.0, 0.0]]),
            costs=(),
            constraints=(_pose_constraint(0, target, [10.0, 10.0, 0.0]),),
        )

        result = run_optimization(
            problem, world, OptimizerConfig(max_merit_coeff_increases=1)
        )

        lower, upper = world.joint_limits(group)
        assert np.all(result.trajectory >= lower)
        assert np.all(result.trajectory <= upper)
