"""Unit tests for ground control point ingestion."""
import tempfile
import unittest
from pathlib import Path

import numpy as np

import gtcnet.utils.io as io_utils
from gtcnet.common.control_network import ControlMeasure, ControlNetwork, ControlPoint, ControlPointType
from gtcnet.loader.ground_control_loader import (
    GroundControlParseError,
    add_ground_control_cnets,
    add_ground_control_points,
    build_image_lookup,
    parse_ground_control_line,
)
from gtcnet.utils.datum import Datum

WGS84 = Datum.from_name("WGS84")
IMAGE_FILES = ["/data/img0.tif", "/data/img1.tif"]

GCP_FILE_CONTENTS = """# id lat lon height sigmas [image px py sigmas]...
1, 10.0, 20.0, 100.0, 1.0, 1.0, 2.0, img0.tif, 5.0, 6.0, 1.0, 1.0, /data/img1.tif, 7.0, 8.0, 1.0, 1.0

2 -5.0 30.0 0.0 1 1 1 img1.tif 50 60 2 2
"""


class TestParseGroundControlLine(unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.image_lookup = build_image_lookup(IMAGE_FILES)

    def test_image_lookup(self) -> None:
        self.assertEqual(self.image_lookup["img1.tif"], 1)
        self.assertEqual(self.image_lookup["/data/img1.tif"], 1)
        self.assertEqual(self.image_lookup["img1"], 1)

    def test_parse_point(self) -> None:
        line = "1, 10.0, 20.0, 100.0, 1.0, 1.5, 2.0, img0.tif, 5.0, 6.0, 0.5, 0.75, img1.tif, 7.0, 8.0, 1.0, 1.0"

        point = parse_ground_control_line(line, self.image_lookup, WGS84)

        self.assertEqual(point.type, ControlPointType.GROUND_CONTROL_POINT)
        self.assertEqual(point.id, 1)
        # Latitude comes first in the file, longitude first in the datum.
        np.testing.assert_allclose(point.position, WGS84.geodetic_to_cartesian(np.array([20.0, 10.0, 100.0])))
        np.testing.assert_allclose(point.sigma, [1.0, 1.5, 2.0])
        self.assertEqual(point.image_ids(), [0, 1])
        self.assertEqual(point[0], ControlMeasure(5.0, 6.0, 0.5, 0.75, image_id=0))
        self.assertEqual(point[1].serial, "img1.tif")

    def test_comment_and_empty_lines(self) -> None:
        self.assertIsNone(parse_ground_control_line("# a comment", self.image_lookup, WGS84))
        self.assertIsNone(parse_ground_control_line("   ", self.image_lookup, WGS84))

    def test_unparseable_line(self) -> None:
        with self.assertLogs("gtcnet", level="WARNING"):
            self.assertIsNone(parse_ground_control_line("1 2 3", self.image_lookup, WGS84))

    def test_unknown_image_drops_measure(self) -> None:
        line = "3 0 0 0 1 1 1 other.tif 1 2 1 1 img1.tif 3 4 1 1"

        with self.assertLogs("gtcnet", level="WARNING") as logs:
            point = parse_ground_control_line(line, self.image_lookup, WGS84)

        self.assertTrue(any("other.tif" in msg for msg in logs.output))
        self.assertEqual(point.image_ids(), [1])

    def test_point_without_known_image_is_skipped(self) -> None:
        with self.assertLogs("gtcnet", level="WARNING"):
            point = parse_ground_control_line("3 0 0 0 1 1 1 other.tif 1 2 1 1", self.image_lookup, WGS84)
        self.assertIsNone(point)

    def test_zero_world_sigma(self) -> None:
        with self.assertRaises(GroundControlParseError):
            parse_ground_control_line("3 0 0 0 0 1 1 img0.tif 1 2 1 1", self.image_lookup, WGS84)

    def test_zero_pixel_sigma(self) -> None:
        with self.assertRaises(GroundControlParseError):
            parse_ground_control_line("3 0 0 0 1 1 1 img0.tif 1 2 1 0", self.image_lookup, WGS84)


class TestAddGroundControl(unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        self._tempdir = tempfile.TemporaryDirectory()
        self.tempdir = Path(self._tempdir.name)

    def tearDown(self) -> None:
        self._tempdir.cleanup()
        super().tearDown()

    def test_add_ground_control_points(self) -> None:
        gcp_file = self.tempdir / "survey.gcp"
        gcp_file.write_text(GCP_FILE_CONTENTS)
        cnet = ControlNetwork()
        cnet.add_control_point(ControlPoint())

        num_added = add_ground_control_points(
            cnet, IMAGE_FILES, [gcp_file, self.tempdir / "missing.gcp"], WGS84
        )

        self.assertEqual(num_added, 2)
        self.assertEqual(len(cnet), 3)
        self.assertEqual(cnet.num_points_of_type(ControlPointType.GROUND_CONTROL_POINT), 2)
        self.assertEqual([point.id for point in cnet], [0, 1, 2])
        self.assertEqual(cnet[1].image_ids(), [0, 1])
        self.assertEqual(cnet[2].image_ids(), [1])

    def test_zero_sigma_adds_nothing(self) -> None:
        """An invalid line aborts ingestion before any point of the file is added."""
        gcp_file = self.tempdir / "survey.gcp"
        gcp_file.write_text("1 10 20 100 1 1 1 img0.tif 5 6 1 1\n2 10 20 100 0 1 1 img0.tif 5 6 1 1\n")
        cnet = ControlNetwork()

        with self.assertRaises(GroundControlParseError):
            add_ground_control_points(cnet, IMAGE_FILES, [gcp_file], WGS84)

        self.assertEqual(len(cnet), 0)

    def test_add_ground_control_cnets(self) -> None:
        """Measures are re-indexed by image name, and the points become ground control points."""
        source = ControlNetwork("source")
        point = ControlPoint(ControlPointType.FREE, 4)
        point.set_position(1.0, 2.0, 3.0)
        point.add_measure(ControlMeasure(1.0, 1.0, 1.0, 1.0, image_id=0, serial="img1.tif"))
        point.add_measure(ControlMeasure(2.0, 2.0, 1.0, 1.0, image_id=5, serial="unknown.tif"))
        source.add_control_point(point)
        cnet_file = self.tempdir / "source.json"
        io_utils.write_control_network(cnet_file, source)
        cnet = ControlNetwork()

        num_added = add_ground_control_cnets(cnet, IMAGE_FILES, [cnet_file, self.tempdir / "missing.json"])

        self.assertEqual(num_added, 1)
        self.assertEqual(len(cnet), 1)
        self.assertTrue(cnet[0].is_ground_control_point())
        self.assertEqual(cnet[0].image_ids(), [1, 5])
        np.testing.assert_allclose(cnet[0].position, [1.0, 2.0, 3.0])


if __name__ == "__main__":
    unittest.main()
