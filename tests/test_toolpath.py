"""Tests for cylinder tool path generation."""

import math

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from sanding_planning.planning import make_cylinder_path, samples_per_revolution
from sanding_planning.types import CylinderPathConfig, SE3Pose


class TestSamplesPerRevolution:
    @pytest.mark.parametrize(
        "step, expected",
        [(math.pi / 12, 24), (math.pi / 2, 4), (1.0, 7), (2 * math.pi, 1)],
    )
    def test_counts(self, step, expected):
        assert samples_per_revolution(step) == expected

    def test_rejects_non_positive_step(self):
        with pytest.raises(ValueError):
            samples_per_revolution(0.0)


class TestCylinderPathConfig:
    def test_rejects_invalid_values(self):
        with pytest.raises(ValueError):
            CylinderPathConfig(radius=0.0)
        with pytest.raises(ValueError):
            CylinderPathConfig(n_slices=0)
        with pytest.raises(ValueError):
            CylinderPathConfig(angular_step=-0.1)
        with pytest.raises(ValueError):
            CylinderPathConfig(slice_height=-0.1)


class TestMakeCylinderPath:
    def test_default_length(self):
        path = make_cylinder_path(CylinderPathConfig())
        assert len(path) == 120
        assert path.samples_per_revolution == 24
        assert len(path.slice_centers) == 5

    def test_first_waypoint_at_identity_origin(self):
        path = make_cylinder_path(CylinderPathConfig())
        first = path[0]
        np.testing.assert_allclose(first.position, [0.2, 0.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(first.z_axis, [-1.0, 0.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(first.y_axis, [0.0, 1.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(first.x_axis, [0.0, 0.0, 1.0], atol=1e-12)

    def test_all_frames_orthonormal(self):
        path = make_cylinder_path(CylinderPathConfig())
        assert all(pose.is_orthonormal(1e-9) for pose in path)

    def test_z_axis_points_to_slice_center(self):
        config = CylinderPathConfig()
        path = make_cylinder_path(config)
        for i, pose in enumerate(path):
            center = path.slice_center_of(i)
            inward = center.position - pose.position
            assert np.linalg.norm(inward) == pytest.approx(config.radius)
            np.testing.assert_allclose(
                pose.z_axis, inward / config.radius, atol=1e-12
            )

    def test_slice_major_ordering(self, small_path_config):
        path = make_cylinder_path(small_path_config)
        assert len(path) == 16
        z_values = np.array([pose.position[2] for pose in path])
        np.testing.assert_allclose(z_values[:8], 0.0, atol=1e-12)
        np.testing.assert_allclose(z_values[8:], 0.1, atol=1e-12)

    def test_no_duplicate_closing_sample(self, small_path_config):
        path = make_cylinder_path(small_path_config)
        first_slice = np.array([pose.position for pose in path][:8])
        gaps = np.linalg.norm(first_slice[1:] - first_slice[:-1], axis=1)
        assert np.all(gaps > 1e-6)
        assert np.linalg.norm(first_slice[-1] - first_slice[0]) > 1e-6

    def test_deterministic(self):
        first = make_cylinder_path(CylinderPathConfig()).to_pose_array()
        second = make_cylinder_path(CylinderPathConfig()).to_pose_array()
        np.testing.assert_array_equal(first, second)
        assert first.shape == (120, 7)

    def test_translated_origin_offsets_positions(self):
        origin = SE3Pose.from_translation(1.0, 0.0, 0.5)
        path = make_cylinder_path(CylinderPathConfig(origin=origin))
        np.testing.assert_allclose(path[0].position, [1.2, 0.0, 0.5], atol=1e-12)
        np.testing.assert_allclose(path[0].z_axis, [-1.0, 0.0, 0.0], atol=1e-12)

    def test_rotated_origin_keeps_inward_normal(self):
        origin = SE3Pose(
            position=np.array([0.5, 0.5, 0.0]),
            rotation=Rotation.from_euler("x", np.pi / 2).as_matrix(),
        )
        config = CylinderPathConfig(origin=origin, n_slices=2)
        path = make_cylinder_path(config)
        # Slices advance along the origin's z axis, which is world -y here
        np.testing.assert_allclose(
            path.slice_centers[1].position, [0.5, 0.4, 0.0], atol=1e-12
        )
        for i, pose in enumerate(path):
            assert pose.is_orthonormal(1e-9)
            inward = path.slice_center_of(i).position - pose.position
            np.testing.assert_allclose(pose.z_axis, inward / 0.2, atol=1e-12)
