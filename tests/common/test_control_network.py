"""Unit tests for the control network containers."""
import unittest

import numpy as np

from gtcnet.common.control_network import ControlMeasure, ControlNetwork, ControlPoint, ControlPointType


def _make_point(point_type: ControlPointType, num_measures: int) -> ControlPoint:
    point = ControlPoint(point_type, point_id=7)
    for i in range(num_measures):
        point.add_measure(ControlMeasure(10.0 * i, 5.0, 1.5, 1.5, image_id=i, serial=f"img{i}"))
    return point


class TestControlMeasure(unittest.TestCase):
    def test_fields(self) -> None:
        measure = ControlMeasure(12.5, -3.0, 2.0, 4.0, image_id=3, serial="left")
        np.testing.assert_allclose(measure.position, [12.5, -3.0])
        np.testing.assert_allclose(measure.sigma, [2.0, 4.0])
        self.assertEqual(measure.image_id, 3)
        self.assertEqual(measure.serial, "left")

    def test_equality(self) -> None:
        measure = ControlMeasure(1.0, 2.0, 1.0, 1.0, image_id=0)
        self.assertEqual(measure, ControlMeasure(1.0 + 1e-7, 2.0, 1.0, 1.0, image_id=0))
        self.assertNotEqual(measure, ControlMeasure(1.0, 2.0, 1.0, 1.0, image_id=1))
        self.assertNotEqual(measure, ControlMeasure(1.5, 2.0, 1.0, 1.0, image_id=0))
        self.assertNotEqual(measure, (1.0, 2.0))


class TestControlPoint(unittest.TestCase):
    def test_defaults(self) -> None:
        point = ControlPoint()
        self.assertEqual(point.type, ControlPointType.FREE)
        self.assertFalse(point.is_ground_control_point())
        self.assertIsNone(point.position)
        self.assertIsNone(point.sigma)
        self.assertEqual(len(point), 0)

    def test_measures_keep_insertion_order(self) -> None:
        point = _make_point(ControlPointType.FREE, num_measures=3)
        self.assertEqual(point.image_ids(), [0, 1, 2])
        self.assertEqual([m.serial for m in point], ["img0", "img1", "img2"])
        self.assertEqual(point[1].image_id, 1)

    def test_set_position_and_sigma(self) -> None:
        point = ControlPoint()
        point.set_position(1.0, 2.0, 3.0)
        point.set_sigma(0.1, 0.2, 0.3)
        np.testing.assert_allclose(point.position, [1.0, 2.0, 3.0])
        np.testing.assert_allclose(point.sigma, [0.1, 0.2, 0.3])

    def test_with_type(self) -> None:
        """Changing the type returns a copy with the same id, position and measures."""
        point = _make_point(ControlPointType.FREE, num_measures=2)
        point.set_position(4.0, 5.0, 6.0)

        gcp = point.with_type(ControlPointType.GROUND_CONTROL_POINT)

        self.assertTrue(gcp.is_ground_control_point())
        self.assertEqual(point.type, ControlPointType.FREE)
        self.assertEqual(gcp.id, point.id)
        self.assertEqual(gcp.image_ids(), point.image_ids())
        np.testing.assert_allclose(gcp.position, point.position)


class TestControlNetwork(unittest.TestCase):
    def test_counts(self) -> None:
        cnet = ControlNetwork("test")
        cnet.add_control_points(
            [
                _make_point(ControlPointType.FREE, num_measures=2),
                _make_point(ControlPointType.FREE, num_measures=3),
                _make_point(ControlPointType.GROUND_CONTROL_POINT, num_measures=1),
            ]
        )

        self.assertEqual(len(cnet), 3)
        self.assertEqual(cnet.num_measures(), 6)
        self.assertEqual(cnet.num_points_of_type(ControlPointType.FREE), 2)
        self.assertEqual(cnet.num_points_of_type(ControlPointType.GROUND_CONTROL_POINT), 1)
        self.assertEqual([len(point) for point in cnet], [2, 3, 1])
        self.assertTrue(cnet[2].is_ground_control_point())

    def test_clear(self) -> None:
        cnet = ControlNetwork()
        cnet.add_control_point(ControlPoint())
        cnet.clear()
        self.assertEqual(len(cnet), 0)


if __name__ == "__main__":
    unittest.main()
