import math
import os

import numpy as np

from sanding_planning.types import (
    CollisionObjectConfig,
    CylinderPathConfig,
    GroupConfig,
    RobotConfig,
    SE3Pose,
)

_RESOURCES_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "resources",
    "robot",
    "sander",
)

WORLD_FRAME = "world_frame"
TCP_LINK = "sander_tcp"
MANIPULATOR_GROUP = "manipulator"

JOINT_NAMES = [
    "joint_1",
    "joint_2",
    "joint_3",
    "joint_4",
    "joint_5",
    "joint_6",
]

GROUP_CONFIGS: dict[str, GroupConfig] = {
    MANIPULATOR_GROUP: GroupConfig(
        name=MANIPULATOR_GROUP,
        base_link=WORLD_FRAME,
        tip_link=TCP_LINK,
        joint_names=tuple(JOINT_NAMES),
    ),
}

sander_robot_config = RobotConfig(
    urdf_path=os.path.join(_RESOURCES_DIR, "sander.urdf"),
    groups=list(GROUP_CONFIGS.values()),
    collision_links=[
        "base_link",
        "link_1",
        "link_2",
        "link_3",
        "link_4",
        "link_5",
        "link_6",
        "sander_shaft",
        "sander_disk",
    ],
    # The disk is mounted on the shaft, the shaft on the flange.
    allowed_collisions=[
        ("sander_disk", "sander_shaft"),
        ("sander_shaft", "link_6"),
        ("sander_disk", "link_6"),
    ],
)

# Workpiece: 1 m tall cylinder standing 1 m in front of the robot.
PART_RADIUS = 0.2
PART_POSITION = np.array([1.0, 0.0, 0.5])

PART_OBJECT = CollisionObjectConfig(
    name="part",
    shape="cylinder",
    parent_link=WORLD_FRAME,
    radius=PART_RADIUS,
    length=1.0,
    position=PART_POSITION,
)

DEFAULT_PATH_CONFIG = CylinderPathConfig(
    radius=PART_RADIUS,
    slice_height=0.1,
    n_slices=5,
    angular_step=math.pi / 12.0,
    origin=SE3Pose(position=PART_POSITION, rotation=np.eye(3)),
)
