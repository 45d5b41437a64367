"""Target tool frames over the surface of a cylindrical workpiece.

The path is a stack of circular slices. Each waypoint faces the cylinder
axis: its z axis points inward along the surface normal, its y axis is the
tangent of the slice circle and x completes a right-handed frame (along
the cylinder axis for an upright part).
"""

from __future__ import annotations

import math

import numpy as np

from sanding_planning.types import CylinderPathConfig, SE3Pose, ToolPath

_SNAP_TOLERANCE = 1e-9


def samples_per_revolution(angular_step: float) -> int:
    """
    Number of angles sampled on one slice, ceil(2*pi / angular_step).

    Ratios within floating point noise of an integer snap to that integer,
    so a step of pi/12 gives exactly 24 samples.

    Input:
        angular_step: Angle between consecutive samples (radians), > 0
    Output:
        sample count, >= 1
    """
    if angular_step <= 0:
        raise ValueError("angular_step must be > 0")
    ratio = 2.0 * math.pi / angular_step
    nearest = round(ratio)
    if abs(ratio - nearest) <= _SNAP_TOLERANCE * max(1.0, ratio):
        return max(1, int(nearest))
    return max(1, math.ceil(ratio))


def _normalize(vec: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vec)
    if norm == 0.0:
        raise ValueError("Cannot normalize a zero vector")
    return vec / norm


def _surface_frame(center: SE3Pose, radius: float, angle: float) -> SE3Pose:
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    position = center.translated((radius * cos_a, radius * sin_a, 0.0)).position

    z_axis = _normalize(center.position - position)
    y_axis = _normalize(center.rotation @ np.array([-sin_a, cos_a, 0.0]))
    x_axis = _normalize(np.cross(y_axis, z_axis))

    return SE3Pose(
        position=position,
        rotation=np.column_stack([x_axis, y_axis, z_axis]),
    )


def make_cylinder_path(config: CylinderPathConfig | None = None) -> ToolPath:
    """
    Generate the ordered waypoints of a slice-by-slice cylinder scan.

    Input:
        config: Cylinder geometry and sampling (uses defaults if None)
    Output:
        ToolPath of n_slices * samples_per_revolution poses, slice-major
    """
    if config is None:
        config = CylinderPathConfig()

    n_samples = samples_per_revolution(config.angular_step)
    centers = tuple(
        config.origin @ SE3Pose.from_translation(0.0, 0.0, i * config.slice_height)
        for i in range(config.n_slices)
    )

    poses = []
    for center in centers:
        for k in range(n_samples):
            poses.append(_surface_frame(center, config.radius, k * config.angular_step))

    return ToolPath(
        poses=tuple(poses),
        slice_centers=centers,
        samples_per_revolution=n_samples,
    )
