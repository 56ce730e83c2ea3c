"""Unit tests for initialization of control point positions from their measures, with known cameras.

Cameras are laid out on a line, all looking at the same target about 40 m ahead.
"""
import unittest
from typing import List, Optional
from unittest import mock

import numpy as np
from gtsam import Cal3Bundler, PinholeCameraCal3Bundler, Point3, Rot3

import gtcnet.data_association.point3d_initializer as point3d_initializer
from gtcnet.common.camera_model import CameraModel, PinholeCameraModel, PixelToRayError
from gtcnet.common.control_network import ControlMeasure, ControlPoint
from gtcnet.data_association.point3d_initializer import (
    FALLBACK_DISTANCE,
    ControlPointTriangulator,
    TriangulationExitCode,
    TriangulationOptions,
)

# focal length set to 50 px, with `px`, `py` set to zero
CALIBRATION = Cal3Bundler(50, 0, 0, 0, 0)
TARGET = Point3(10.0, 0.0, 40.0)
UP = Point3(0, 1, 0)
CAMERAS = [
    PinholeCameraModel(PinholeCameraCal3Bundler.Lookat(Point3(x, 0, 0), TARGET, UP, CALIBRATION))
    for x in (0.0, 10.0, 20.0)
]
LANDMARK_POINT = np.array([8.0, -3.0, 38.0])


def _measures(camera_models: List[CameraModel], landmark: np.ndarray) -> List[ControlMeasure]:
    measures = []
    for i, camera_model in enumerate(camera_models):
        u, v = camera_model.point_to_pixel(landmark)
        measures.append(ControlMeasure(u, v, 1.0, 1.0, image_id=i))
    return measures


class RaylessCameraModel(CameraModel):
    """Camera model which cannot produce viewing rays."""

    def __init__(self, center: np.ndarray, wRi: Rot3) -> None:
        self._center = center
        self._wRi = wRi

    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        return np.zeros(2)

    def pixel_to_vector(self, pixel: np.ndarray) -> np.ndarray:
        raise PixelToRayError("no ray")

    def camera_center(self, pixel: Optional[np.ndarray] = None) -> np.ndarray:
        return self._center

    def camera_pose(self, pixel: Optional[np.ndarray] = None) -> Rot3:
        return self._wRi


class TestControlPointTriangulator(unittest.TestCase):
    def test_two_views(self) -> None:
        triangulator = ControlPointTriangulator(CAMERAS[:2], TriangulationOptions())

        result = triangulator.compute_position(_measures(CAMERAS[:2], LANDMARK_POINT))

        self.assertEqual(result.exit_code, TriangulationExitCode.SUCCESS)
        self.assertEqual(result.num_accepted_pairs, 1)
        np.testing.assert_allclose(result.position, LANDMARK_POINT, atol=1e-6)
        self.assertLess(result.avg_error, 1e-6)

    def test_three_views_use_adjacent_pairs(self) -> None:
        triangulator = ControlPointTriangulator(CAMERAS, TriangulationOptions())

        result = triangulator.compute_position(_measures(CAMERAS, LANDMARK_POINT))

        self.assertEqual(result.num_accepted_pairs, 2)
        np.testing.assert_allclose(result.position, LANDMARK_POINT, atol=1e-6)

    def test_triangulate_sets_position(self) -> None:
        triangulator = ControlPointTriangulator(CAMERAS, TriangulationOptions())
        point = ControlPoint(measures=_measures(CAMERAS, LANDMARK_POINT))

        triangulator.triangulate(point)

        np.testing.assert_allclose(point.position, LANDMARK_POINT, atol=1e-6)

    def test_coincident_centers_fall_back(self) -> None:
        """Pairs with the same camera center are skipped before any ray is intersected."""
        camera_models = [CAMERAS[0], CAMERAS[0]]
        measures = _measures(camera_models, LANDMARK_POINT)
        triangulator = ControlPointTriangulator(camera_models, TriangulationOptions())

        with mock.patch.object(point3d_initializer, "StereoModel") as mock_stereo_model:
            result = triangulator.compute_position(measures)
        mock_stereo_model.assert_not_called()

        self.assertEqual(result.exit_code, TriangulationExitCode.FALLBACK)
        self.assertEqual(result.num_accepted_pairs, 0)
        self.assertIsNone(result.avg_error)
        expected_position = CAMERAS[0].camera_center() + FALLBACK_DISTANCE * CAMERAS[0].pixel_to_vector(
            measures[0].pixel
        )
        np.testing.assert_allclose(result.position, expected_position)
        np.testing.assert_allclose(np.linalg.norm(result.position - CAMERAS[0].camera_center()), FALLBACK_DISTANCE)

    def test_min_convergence_angle(self) -> None:
        """Pairs whose rays converge by less than the threshold are skipped."""
        triangulator = ControlPointTriangulator(CAMERAS[:2], TriangulationOptions(min_convergence_angle=45.0))

        with self.assertLogs("gtcnet", level="WARNING") as logs:
            result = triangulator.compute_position(_measures(CAMERAS[:2], LANDMARK_POINT))

        self.assertEqual(result.exit_code, TriangulationExitCode.FALLBACK)
        self.assertTrue(any("Unable to triangulate point!" in line for line in logs.output))

    def test_only_good_pairs_contribute(self) -> None:
        """A pair with coincident centers is skipped, the remaining pair gives the position."""
        camera_models = [CAMERAS[0], CAMERAS[0], CAMERAS[2]]
        triangulator = ControlPointTriangulator(camera_models, TriangulationOptions())

        result = triangulator.compute_position(_measures(camera_models, LANDMARK_POINT))

        self.assertEqual(result.exit_code, TriangulationExitCode.SUCCESS)
        self.assertEqual(result.num_accepted_pairs, 1)
        np.testing.assert_allclose(result.position, LANDMARK_POINT, atol=1e-6)

    def test_pair_without_ray_is_skipped(self) -> None:
        """The first pair has no ray in its first image, the second pair still gives the position."""
        camera_models = [RaylessCameraModel(np.array([-5.0, 0.0, 0.0]), Rot3()), CAMERAS[1], CAMERAS[2]]
        measures = [ControlMeasure(0, 0, 1, 1, image_id=0)] + _measures(CAMERAS, LANDMARK_POINT)[1:]
        triangulator = ControlPointTriangulator(camera_models, TriangulationOptions())

        result = triangulator.compute_position(measures)

        self.assertEqual(result.exit_code, TriangulationExitCode.SUCCESS)
        self.assertEqual(result.num_accepted_pairs, 1)
        np.testing.assert_allclose(result.position, LANDMARK_POINT, atol=1e-6)

    def test_fallback_without_rays_uses_camera_orientation(self) -> None:
        wRi = Rot3.Yaw(np.pi / 2)
        camera_models = [
            RaylessCameraModel(np.array([1.0, 2.0, 3.0]), wRi),
            RaylessCameraModel(np.array([5.0, 2.0, 3.0]), wRi),
        ]
        measures = [ControlMeasure(0, 0, 1, 1, image_id=0), ControlMeasure(0, 0, 1, 1, image_id=1)]
        triangulator = ControlPointTriangulator(camera_models, TriangulationOptions())

        result = triangulator.compute_position(measures)

        self.assertEqual(result.exit_code, TriangulationExitCode.FALLBACK)
        expected_position = np.array([1.0, 2.0, 3.0]) + wRi.rotate(np.array([0.0, 0.0, FALLBACK_DISTANCE]))
        np.testing.assert_allclose(result.position, expected_position)

    def test_single_measure_falls_back(self) -> None:
        triangulator = ControlPointTriangulator(CAMERAS, TriangulationOptions())

        result = triangulator.compute_position(_measures(CAMERAS[:1], LANDMARK_POINT))

        self.assertEqual(result.exit_code, TriangulationExitCode.FALLBACK)
        # The fallback point is on the viewing ray of the landmark.
        ray = (LANDMARK_POINT - CAMERAS[0].camera_center()) / np.linalg.norm(LANDMARK_POINT)
        np.testing.assert_allclose(result.position, FALLBACK_DISTANCE * ray, atol=1e-9)


if __name__ == "__main__":
    unittest.main()
