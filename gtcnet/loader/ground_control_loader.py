"""Adds ground control points, from text files or from other control networks, to a control network.

Text format, one point per line (commas are treated as whitespace, lines starting with '#' are comments):

    point_id lat lon height sigma_lat sigma_lon sigma_height [image_name px py sigma_px sigma_py]...

Image names are matched against the full path, the file name or the file stem of the images.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

import gtcnet.utils.io as io_utils
import gtcnet.utils.logger as logger_utils
from gtcnet.common.control_network import ControlMeasure, ControlNetwork, ControlPoint, ControlPointType
from gtcnet.utils.datum import Datum

logger = logger_utils.get_logger()

NUM_POINT_FIELDS = 7
NUM_MEASURE_FIELDS = 5


class GroundControlParseError(ValueError):
    """Raised on invalid ground control input, e.g. a non-positive standard deviation."""


def build_image_lookup(image_files: Sequence[str]) -> Dict[str, int]:
    """Maps the full path, the file name and the file stem of every image to its index."""
    lookup: Dict[str, int] = {}
    for i, image_file in enumerate(image_files):
        lookup[image_file] = i
        lookup[Path(image_file).name] = i
        lookup[Path(image_file).stem] = i
    return lookup


def _parse_point_header(tokens: List[str]) -> Optional[Tuple[int, np.ndarray, np.ndarray]]:
    """Parses the point id, its [lat, lon, height] and their sigmas, or returns None."""
    if len(tokens) < NUM_POINT_FIELDS:
        return None
    try:
        point_id = int(tokens[0])
        values = np.array([float(token) for token in tokens[1:NUM_POINT_FIELDS]])
    except ValueError:
        return None
    return point_id, values[:3], values[3:]


def _parse_measures(tokens: List[str]) -> List[Tuple[str, np.ndarray]]:
    """Parses (image_name, [px, py, sigma_px, sigma_py]) groups until the line ends or a group is malformed."""
    measures = []
    for start in range(0, len(tokens) - NUM_MEASURE_FIELDS + 1, NUM_MEASURE_FIELDS):
        try:
            values = np.array([float(token) for token in tokens[start + 1 : start + NUM_MEASURE_FIELDS]])
        except ValueError:
            break
        measures.append((tokens[start], values))
    return measures


def parse_ground_control_line(
    line: str, image_lookup: Dict[str, int], datum: Datum
) -> Optional[ControlPoint]:
    """Creates a ground control point from one line of a ground control file.

    Args:
        line: line of the file, without the trailing newline.
        image_lookup: image name -> index, see `build_image_lookup`.
        datum: datum of the geodetic coordinates.

    Returns:
        The ground control point, or None if the line is a comment, is empty, cannot be parsed, or has no measure
        in the current images.

    Raises:
        GroundControlParseError: if any standard deviation is not strictly positive.
    """
    if len(line.strip()) == 0 or line.startswith("#"):
        return None

    tokens = line.replace(",", " ").split()
    header = _parse_point_header(tokens)
    if header is None:
        logger.warning("Could not parse a ground control point from line: %s", line)
        return None
    point_id, lat_lon_height, world_sigma = header

    measures = _parse_measures(tokens[NUM_POINT_FIELDS:])
    for _, values in measures:
        if values[2] <= 0 or values[3] <= 0:
            raise GroundControlParseError("Standard deviations must be positive when loading ground control points.")
    if np.any(world_sigma <= 0):
        raise GroundControlParseError("Standard deviations must be positive when loading ground control points.")

    # Make lat,lon into lon,lat.
    lon_lat_height = np.array([lat_lon_height[1], lat_lon_height[0], lat_lon_height[2]])
    xyz = datum.geodetic_to_cartesian(lon_lat_height)
    logger.debug("\t\tLocation: %s", xyz)

    point = ControlPoint(ControlPointType.GROUND_CONTROL_POINT, point_id)
    point.set_position(*xyz)
    point.set_sigma(*world_sigma)
    for image_name, (px, py, sigma_px, sigma_py) in measures:
        image_id = image_lookup.get(image_name)
        if image_id is None:
            logger.warning("\t\tWarning: no image found matching %s", image_name)
            continue
        logger.debug("\t\tAdded Measure: %s #%d", image_name, image_id)
        point.add_measure(ControlMeasure(px, py, sigma_px, sigma_py, image_id, image_name))

    if len(point) == 0:
        logger.warning("Ground control point %d has no measure in the current images, skipping it.", point_id)
        return None
    return point


def add_ground_control_points(
    cnet: ControlNetwork,
    image_files: Sequence[str],
    gcp_files: Sequence[Union[str, Path]],
    datum: Datum,
) -> int:
    """Appends the ground control points of text files to a control network.

    Missing files are skipped. Points are appended file by file, and a file is parsed entirely before any of its
    points is added, so an invalid line leaves the network unchanged for that file.

    Args:
        cnet: network to extend.
        image_files: paths of the images, in image-list order.
        gcp_files: paths of the ground control files.
        datum: datum of the geodetic coordinates in the files.

    Returns:
        Number of points added.

    Raises:
        GroundControlParseError: if a standard deviation in the files is not strictly positive.
    """
    image_lookup = build_image_lookup(image_files)
    num_added = 0
    for gcp_file in gcp_files:
        if not Path(gcp_file).exists():
            logger.warning("Missing ground control file: %s", gcp_file)
            continue

        logger.info("Loading: %s", gcp_file)
        with open(gcp_file, "r") as f:
            lines = f.read().splitlines()

        points = [parse_ground_control_line(line, image_lookup, datum) for line in lines]
        points = [point for point in points if point is not None]
        cnet.add_control_points(points)
        num_added += len(points)
    return num_added


def add_ground_control_cnets(
    cnet: ControlNetwork, image_files: Sequence[str], gcp_cnet_files: Sequence[Union[str, Path]]
) -> int:
    """Appends the points of other control networks as ground control points.

    Measures are re-indexed against `image_files` using the image name stored with each measure. Measures of unknown
    images keep their index, with a warning.

    Args:
        cnet: network to extend.
        image_files: paths of the images, in image-list order.
        gcp_cnet_files: paths of control networks saved by `io_utils.write_control_network`.

    Returns:
        Number of points added.
    """
    image_lookup = build_image_lookup(image_files)
    num_added = 0
    for gcp_cnet_file in gcp_cnet_files:
        if not Path(gcp_cnet_file).exists():
            logger.warning("Missing ground control network: %s", gcp_cnet_file)
            continue

        logger.debug("\tLoading \"%s\".", gcp_cnet_file)
        for point in io_utils.read_control_network(gcp_cnet_file):
            for measure in point:
                image_id = image_lookup.get(measure.serial)
                if image_id is None:
                    logger.warning("\t\tWarning: no image found matching %s", measure.serial)
                    continue
                measure.image_id = image_id

            cnet.add_control_point(point.with_type(ControlPointType.GROUND_CONTROL_POINT))
            num_added += 1
            logger.debug("\t\tAdded GCP: %s", point.position)
    return num_added
