import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator

import numpy as np
import pybullet as pb
from pybullet_utils import bullet_client

from sanding_planning.config.robot_config import PART_OBJECT, sander_robot_config
from sanding_planning.envs.base_env import BaseWorld
from sanding_planning.errors import ConfigurationError, ResolutionError
from sanding_planning.kinematics import (
    compute_forward_kinematics,
    compute_jacobian,
    compute_point_jacobian,
    create_pinocchio_context,
    has_frame,
    joint_position_limits,
    set_reference_joint,
    with_joints,
)
from sanding_planning.types import (
    CollisionObjectConfig,
    ContactResult,
    GroupConfig,
    KinematicGroup,
    RobotConfig,
    SE3Pose,
    pair_key,
)

logger = logging.getLogger(__name__)

_AXIS_COLORS = ([1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0])


class PyBulletWorld(BaseWorld):
    """URDF-backed world: pinocchio for kinematics, pybullet for distances."""

    def __init__(self, config: RobotConfig, visualize: bool = False):
        if not os.path.isfile(config.urdf_path):
            raise ConfigurationError(f"URDF not found: {config.urdf_path}")

        self.config = config
        self.visualize = visualize
        self.client = bullet_client.BulletClient(
            connection_mode=pb.GUI if visualize else pb.DIRECT
        )
        try:
            self.robot_id = self.client.loadURDF(
                config.urdf_path,
                useFixedBase=True,
                flags=pb.URDF_USE_IMPLICIT_CYLINDER,
            )
        except pb.error as exc:
            self.client.disconnect()
            raise ConfigurationError(
                f"Could not load URDF '{config.urdf_path}': {exc}"
            ) from exc

        try:
            self._kin = create_pinocchio_context(config.urdf_path)
        except ConfigurationError:
            self.client.disconnect()
            raise

        base_name = self.client.getBodyInfo(self.robot_id)[0].decode("utf-8")
        self._link_index: dict[str, int] = {base_name: -1}
        self._link_parent: dict[str, str | None] = {base_name: None}
        self._joint_index: dict[str, int] = {}
        self._link_joint: dict[str, str] = {}
        index_to_link = {-1: base_name}

        # Use robot_id (body id) to query joints
        num_joints = self.client.getNumJoints(self.robot_id)
        for i in range(num_joints):
            info = self.client.getJointInfo(self.robot_id, i)
            # info[1] joint name, info[12] child link name, info[16] parent link index
            link_name = info[12].decode("utf-8")
            self._link_index[link_name] = i
            index_to_link[i] = link_name
            if info[2] != pb.JOINT_FIXED:
                joint_name = info[1].decode("utf-8")
                self._joint_index[joint_name] = i
                self._link_joint[link_name] = joint_name
            self._link_parent[link_name] = index_to_link.get(info[16])

        self._groups: dict[str, KinematicGroup] = {}
        self._group_kin: dict[str, Any] = {}
        self._bodies: dict[str, tuple[int, CollisionObjectConfig]] = {}

        for group_config in config.groups:
            self.add_group(group_config)

    # --- Groups and joint state ---

    def add_group(self, config: GroupConfig) -> KinematicGroup:
        for link in (config.base_link, config.tip_link):
            if not self.has_link(link):
                raise ResolutionError(
                    f"Group '{config.name}': link '{link}' not found in model"
                )
        for name in config.joint_names:
            if name not in self._joint_index:
                raise ResolutionError(
                    f"Group '{config.name}': joint '{name}' not found in model"
                )

        group = KinematicGroup(
            name=config.name,
            base_link=config.base_link,
            tip_link=config.tip_link,
            joint_names=tuple(config.joint_names),
        )
        self._group_kin[config.name] = with_joints(self._kin, list(config.joint_names))
        self._groups[config.name] = group
        return group

    def get_group(self, name: str) -> KinematicGroup:
        if name not in self._groups:
            available = ", ".join(sorted(self._groups)) or "none"
            raise ResolutionError(
                f"Unknown kinematic group '{name}'. Available groups: {available}"
            )
        return self._groups[name]

    def has_link(self, name: str) -> bool:
        return name in self._link_index or has_frame(self._kin, name)

    @property
    def joint_names(self) -> list[str]:
        return list(self._joint_index)

    def get_current_joint_values(self, group: KinematicGroup) -> np.ndarray:
        states = []
        for name in group.joint_names:
            state = self.client.getJointState(self.robot_id, self._joint_index[name])
            states.append(state[0])
        return np.array(states, dtype=np.float64)

    def set_joint_values(self, joint_names: list[str], values: np.ndarray):
        values = np.asarray(values, dtype=np.float64)
        if len(joint_names) != len(values):
            raise ValueError(
                f"Got {len(values)} values for {len(joint_names)} joint names"
            )
        for name, value in zip(joint_names, values):
            if name not in self._joint_index:
                raise ResolutionError(f"Joint '{name}' not found in model")
            self.client.resetJointState(self.robot_id, self._joint_index[name], value)
            set_reference_joint(self._kin, name, float(value))
        self._place_attached_bodies()

    def joint_limits(self, group: KinematicGroup) -> tuple[np.ndarray, np.ndarray]:
        return joint_position_limits(self._group_kin[group.name])

    def _apply_configuration(self, group: KinematicGroup, q: np.ndarray):
        for name, value in zip(group.joint_names, q):
            self.client.resetJointState(self.robot_id, self._joint_index[name], value)
        self._place_attached_bodies()

    @contextmanager
    def _restoring_configuration(self, group: KinematicGroup) -> Iterator[None]:
        current = self.get_current_joint_values(group)
        try:
            yield
        finally:
            self._apply_configuration(group, current)

    # --- Kinematics ---

    def forward_kinematics(
        self, group: KinematicGroup, link: str, q: np.ndarray
    ) -> SE3Pose:
        return compute_forward_kinematics(self._group_kin[group.name], link, q)

    def frame_jacobian(
        self, group: KinematicGroup, link: str, q: np.ndarray, local: bool = False
    ) -> np.ndarray:
        return compute_jacobian(self._group_kin[group.name], link, q, local_frame=local)

    def point_jacobian(
        self, group: KinematicGroup, link: str, q: np.ndarray, point: np.ndarray
    ) -> np.ndarray:
        if link in self._bodies:
            # Attached bodies move rigidly with their parent link
            link = self._bodies[link][1].parent_link
        if not self._moves_with_group(group, link):
            return np.zeros((3, group.num_joints))
        return compute_point_jacobian(self._group_kin[group.name], link, q, point)

    def _moves_with_group(self, group: KinematicGroup, link: str) -> bool:
        """True if any group joint lies between the root and `link`."""
        current: str | None = link
        while current is not None:
            if self._link_joint.get(current) in group.joint_names:
                return True
            current = self._link_parent.get(current)
        return False

    # --- Collision bodies ---

    def attach_body(self, obj: CollisionObjectConfig):
        if obj.name in self._bodies or obj.name in self._link_index:
            raise ConfigurationError(f"Body '{obj.name}' already exists")
        if obj.parent_link not in self._link_index:
            raise ConfigurationError(
                f"Body '{obj.name}': parent link '{obj.parent_link}' not found"
            )

        # Keep rendering off while loading
        if self.visualize:
            self.client.configureDebugVisualizer(pb.COV_ENABLE_RENDERING, 0)

        col_shape_id, vis_shape_id = self._create_shapes(obj)
        pose = self._link_pose(obj.parent_link) @ SE3Pose.from_position_quat(
            obj.position, obj.orientation
        )
        body_id = self.client.createMultiBody(
            baseMass=0.0,
            baseCollisionShapeIndex=col_shape_id,
            baseVisualShapeIndex=vis_shape_id,
            basePosition=pose.position.tolist(),
            baseOrientation=_to_xyzw(pose.to_quaternion()),
        )
        self._bodies[obj.name] = (body_id, obj)

        if self.visualize:
            self.client.configureDebugVisualizer(pb.COV_ENABLE_RENDERING, 1)

        logger.info("Attached %s '%s' to '%s'", obj.shape, obj.name, obj.parent_link)

    def _create_shapes(self, obj: CollisionObjectConfig) -> tuple[int, int]:
        if obj.shape == "cylinder":
            col = self.client.createCollisionShape(
                pb.GEOM_CYLINDER, radius=obj.radius, height=obj.length
            )
            vis_kwargs = {"radius": obj.radius, "length": obj.length}
            geom = pb.GEOM_CYLINDER
        elif obj.shape == "box":
            col = self.client.createCollisionShape(
                pb.GEOM_BOX, halfExtents=list(obj.half_extents)
            )
            vis_kwargs = {"halfExtents": list(obj.half_extents)}
            geom = pb.GEOM_BOX
        else:
            col = self.client.createCollisionShape(pb.GEOM_SPHERE, radius=obj.radius)
            vis_kwargs = {"radius": obj.radius}
            geom = pb.GEOM_SPHERE

        vis = -1
        if self.visualize:
            vis = self.client.createVisualShape(
                geom, rgbaColor=[0.8, 0.7, 0.5, 1.0], **vis_kwargs
            )
        return col, vis

    def _link_pose(self, link: str) -> SE3Pose:
        index = self._link_index[link]
        if index == -1:
            pos, orn = self.client.getBasePositionAndOrientation(self.robot_id)
        else:
            state = self.client.getLinkState(
                self.robot_id, index, computeForwardKinematics=True
            )
            # state[4], state[5] are the URDF link frame, not the inertial frame
            pos, orn = state[4], state[5]
        return SE3Pose.from_position_quat(pos, [orn[3], orn[0], orn[1], orn[2]])

    def _place_attached_bodies(self):
        for body_id, obj in self._bodies.values():
            pose = self._link_pose(obj.parent_link) @ SE3Pose.from_position_quat(
                obj.position, obj.orientation
            )
            self.client.resetBasePositionAndOrientation(
                body_id, pose.position.tolist(), _to_xyzw(pose.to_quaternion())
            )

    def _collision_handle(self, name: str) -> tuple[int, int]:
        if name in self._bodies:
            return self._bodies[name][0], -1
        if name in self._link_index:
            return self.robot_id, self._link_index[name]
        raise ResolutionError(f"Collision body '{name}' not found")

    def _adjacent(self, link_a: str, link_b: str) -> bool:
        return (
            self._link_parent.get(link_a) == link_b
            or self._link_parent.get(link_b) == link_a
        )

    def collision_pairs(self, group: KinematicGroup) -> list[tuple[str, str]]:
        links = [l for l in self.config.collision_links if l in self._link_index]
        allowed = {pair_key(a, b) for a, b in self.config.allowed_collisions}

        pairs = []
        for link in links:
            for name, (_, obj) in self._bodies.items():
                if obj.parent_link != link:
                    pairs.append((link, name))
        for i, link_a in enumerate(links):
            for link_b in links[i + 1 :]:
                if self._adjacent(link_a, link_b):
                    continue
                if pair_key(link_a, link_b) in allowed:
                    continue
                pairs.append((link_a, link_b))
        return pairs

    def compute_distances(
        self,
        group: KinematicGroup,
        q: np.ndarray,
        pairs: list[tuple[str, str]],
        max_distance: float,
    ) -> dict[frozenset[str], ContactResult]:
        with self._restoring_configuration(group):
            self._apply_configuration(group, q)
            return self._closest_points(pairs, max_distance)

    def compute_distance_sweep(
        self,
        group: KinematicGroup,
        qs: np.ndarray,
        pairs: list[tuple[str, str]],
        max_distance: float,
    ) -> list[dict[frozenset[str], ContactResult]]:
        # One save/restore of the joint state for the whole sweep
        sweep = []
        with self._restoring_configuration(group):
            for q in qs:
                self._apply_configuration(group, q)
                sweep.append(self._closest_points(pairs, max_distance))
        return sweep

    def _closest_points(
        self, pairs: list[tuple[str, str]], max_distance: float
    ) -> dict[frozenset[str], ContactResult]:
        contacts: dict[frozenset[str], ContactResult] = {}
        for name_a, name_b in pairs:
            body_a, link_a = self._collision_handle(name_a)
            body_b, link_b = self._collision_handle(name_b)
            points = self.client.getClosestPoints(
                bodyA=body_a,
                bodyB=body_b,
                distance=max_distance,
                linkIndexA=link_a,
                linkIndexB=link_b,
            )
            if not points:
                continue
            # point[5] on A, point[6] on B, point[7] normal on B (B -> A), point[8] distance
            closest = min(points, key=lambda p: p[8])
            contacts[pair_key(name_a, name_b)] = ContactResult(
                body_a=name_a,
                body_b=name_b,
                distance=float(closest[8]),
                point_a=np.array(closest[5]),
                point_b=np.array(closest[6]),
                normal=np.array(closest[7]),
            )
        return contacts

    # --- Telemetry ---

    def snapshot(self) -> dict[str, Any]:
        joint_state = {
            name: float(self.client.getJointState(self.robot_id, idx)[0])
            for name, idx in self._joint_index.items()
        }
        bodies = []
        for name, (body_id, obj) in self._bodies.items():
            pos, orn = self.client.getBasePositionAndOrientation(body_id)
            pose = SE3Pose.from_position_quat(pos, [orn[3], orn[0], orn[1], orn[2]])
            bodies.append(
                {
                    "name": name,
                    "shape": obj.shape,
                    "parent_link": obj.parent_link,
                    "radius": obj.radius,
                    "length": obj.length,
                    "half_extents": list(obj.half_extents),
                    "pose": pose.to_dict(),
                }
            )
        return {
            "urdf_path": self.config.urdf_path,
            "joint_state": joint_state,
            "groups": {
                name: {
                    "base_link": g.base_link,
                    "tip_link": g.tip_link,
                    "joint_names": list(g.joint_names),
                }
                for name, g in self._groups.items()
            },
            "attached_bodies": bodies,
        }

    def draw_poses(self, poses: list[SE3Pose], axis_length: float = 0.03):
        if not self.visualize:
            return
        for pose in poses:
            for axis, color in enumerate(_AXIS_COLORS):
                end = pose.position + axis_length * pose.rotation[:, axis]
                self.client.addUserDebugLine(
                    pose.position.tolist(), end.tolist(), lineColorRGB=color
                )

    def is_connected(self) -> bool:
        return bool(self.client.isConnected())

    def close(self):
        if self.is_connected():
            self.client.disconnect()

    def __enter__(self) -> "PyBulletWorld":
        return self

    def __exit__(self, *exc_info):
        self.close()


def _to_xyzw(quat_wxyz: np.ndarray) -> list[float]:
    w, x, y, z = quat_wxyz
    return [float(x), float(y), float(z), float(w)]


def create_sanding_world(
    robot_config: RobotConfig | None = None,
    attached: list[CollisionObjectConfig] | None = None,
    visualize: bool = False,
) -> PyBulletWorld:
    """
    Load the sander robot, attach the workpiece and zero every joint.

    Input:
        robot_config: Robot description (defaults to the bundled sander)
        attached: Collision bodies to attach (defaults to the cylinder part)
        visualize: Open the pybullet GUI instead of a headless client
    Output:
        PyBulletWorld ready for planning
    """
    if robot_config is None:
        robot_config = sander_robot_config
    if attached is None:
        attached = [PART_OBJECT]

    world = PyBulletWorld(robot_config, visualize=visualize)
    try:
        for obj in attached:
            world.attach_body(obj)
        world.set_joint_values(world.joint_names, np.zeros(len(world.joint_names)))
    except Exception:
        world.close()
        raise

    logger.info(
        "Loaded %s with %d joints and %d attached bodies",
        os.path.basename(robot_config.urdf_path),
        len(world.joint_names),
        len(attached),
    )
    return world
