"""Minimal tool path example: no robot, no PyBullet.

Generates the default cylinder scan and prints a few waypoints.

CylinderPathConfig fields:
    radius          0.2     cylinder radius (m)
    slice_height    0.1     distance between slices (m)
    n_slices        5
    angular_step    pi/12   angle between samples on a slice (rad)
    origin          identity  centre of the first slice
"""

import math
from dataclasses import replace

import numpy as np

from sanding_planning.config.robot_config import DEFAULT_PATH_CONFIG
from sanding_planning.planning.toolpath import make_cylinder_path


def main():
    path = make_cylinder_path(DEFAULT_PATH_CONFIG)

    print(f"Waypoints: {len(path)} ({path.samples_per_revolution} per slice)")
    for i in (0, 6, 12, len(path) - 1):
        pose = path[i]
        print(f"  [{i:3d}] position {np.round(pose.position, 4)}")
        print(f"        tool z   {np.round(pose.z_axis, 4)}")
        print(f"        rpy      {np.round(pose.to_rpy(), 4)}")

    # Coarser sampling: pi/2 gives four points per slice
    coarse = replace(DEFAULT_PATH_CONFIG, angular_step=math.pi / 2.0)
    print(f"Coarse path: {len(make_cylinder_path(coarse))} waypoints")


if __name__ == "__main__":
    main()
