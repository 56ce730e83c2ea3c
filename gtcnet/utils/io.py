"""Reading and writing of match files, control networks and JSON files."""
import os
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

import numpy as np
import simplejson as json
from gtsam import Cal3Bundler, Pose3, Rot3

import gtcnet.utils.logger as logger_utils
from gtcnet.common.camera_model import PinholeCameraModel
from gtcnet.common.control_network import ControlMeasure, ControlNetwork, ControlPoint, ControlPointType
from gtcnet.common.interest_point import InterestPoint

logger = logger_utils.get_logger()

MATCH_FILE_EXTENSION = ".match"

# Fixed-size part of one interest point record in a binary match file. Fields are packed, little-endian.
IP_RECORD_DTYPE = np.dtype(
    [
        ("x", "<f4"),
        ("y", "<f4"),
        ("ix", "<i4"),
        ("iy", "<i4"),
        ("orientation", "<f4"),
        ("scale", "<f4"),
        ("interest", "<f4"),
        ("polarity", "u1"),
        ("octave", "<u4"),
        ("scale_lvl", "<u4"),
        ("descriptor_len", "<u8"),
    ]
)
MATCH_FILE_HEADER_DTYPE = np.dtype("<u8")
DESCRIPTOR_DTYPE = np.dtype("<f4")


class MatchFileError(Exception):
    """Raised when a binary match file is truncated or inconsistent."""


def match_filename(prefix: str, image_file_1: str, image_file_2: str) -> str:
    """Returns the path of the file holding the matches between two images.

    Example: ("out/run", "/data/left.tif", "/data/right.tif") -> "out/run-left__right.match"

    Args:
        prefix: output prefix of the matcher, possibly with a directory.
        image_file_1: path of the first image.
        image_file_2: path of the second image.
    """
    return f"{prefix}-{Path(image_file_1).stem}__{Path(image_file_2).stem}{MATCH_FILE_EXTENSION}"


def _read_ip_records(data: bytes, offset: int, count: int, fpath: str) -> Tuple[List[InterestPoint], int]:
    """Parses `count` consecutive interest point records starting at `offset`."""
    ips: List[InterestPoint] = []
    for _ in range(count):
        if offset + IP_RECORD_DTYPE.itemsize > len(data):
            raise MatchFileError(f"Truncated interest point record in {fpath}")
        record = np.frombuffer(data, dtype=IP_RECORD_DTYPE, count=1, offset=offset)[0]
        offset += IP_RECORD_DTYPE.itemsize

        descriptor_len = int(record["descriptor_len"])
        if offset + descriptor_len * DESCRIPTOR_DTYPE.itemsize > len(data):
            raise MatchFileError(f"Truncated descriptor in {fpath}")
        descriptor = np.frombuffer(data, dtype=DESCRIPTOR_DTYPE, count=descriptor_len, offset=offset).astype(
            np.float32
        )
        offset += descriptor_len * DESCRIPTOR_DTYPE.itemsize

        ips.append(
            InterestPoint(
                x=float(record["x"]),
                y=float(record["y"]),
                scale=float(record["scale"]),
                ix=int(record["ix"]),
                iy=int(record["iy"]),
                orientation=float(record["orientation"]),
                interest=float(record["interest"]),
                polarity=bool(record["polarity"]),
                octave=int(record["octave"]),
                scale_lvl=int(record["scale_lvl"]),
                descriptor=descriptor,
            )
        )
    return ips, offset


def read_binary_match_file(fpath: Union[str, Path]) -> Tuple[List[InterestPoint], List[InterestPoint]]:
    """Reads the matched interest points of an image pair.

    File layout: uint64 n1, uint64 n2, then n1 records for the first image followed by n2 records for the second
    image. Record i of the first image matches record i of the second one.

    Args:
        fpath: path of the match file.

    Returns:
        Interest points of the first image, and their matches in the second image.

    Raises:
        MatchFileError: if the file is truncated, or the two lists have different lengths.
    """
    with open(fpath, "rb") as f:
        data = f.read()

    header_size = 2 * MATCH_FILE_HEADER_DTYPE.itemsize
    if len(data) < header_size:
        raise MatchFileError(f"Missing header in {fpath}")
    size_1, size_2 = (int(n) for n in np.frombuffer(data, dtype=MATCH_FILE_HEADER_DTYPE, count=2))
    if size_1 != size_2:
        raise MatchFileError(f"Unequal number of interest points ({size_1} vs. {size_2}) in {fpath}")
    if (size_1 + size_2) * IP_RECORD_DTYPE.itemsize > len(data) - header_size:
        raise MatchFileError(f"Header of {fpath} announces more records than the file holds")

    ips_1, offset = _read_ip_records(data, header_size, size_1, str(fpath))
    ips_2, offset = _read_ip_records(data, offset, size_2, str(fpath))
    if offset != len(data):
        logger.debug("Ignoring %d trailing bytes in %s", len(data) - offset, fpath)
    return ips_1, ips_2


def write_binary_match_file(
    fpath: Union[str, Path], ips_1: List[InterestPoint], ips_2: List[InterestPoint]
) -> None:
    """Writes matched interest points in the layout read by `read_binary_match_file`."""
    if len(ips_1) != len(ips_2):
        raise ValueError(f"Each interest point needs a match, got {len(ips_1)} and {len(ips_2)} points.")

    Path(fpath).parent.mkdir(parents=True, exist_ok=True)
    with open(fpath, "wb") as f:
        f.write(np.array([len(ips_1), len(ips_2)], dtype=MATCH_FILE_HEADER_DTYPE).tobytes())
        for ip in list(ips_1) + list(ips_2):
            record = np.array(
                [
                    (
                        ip.x,
                        ip.y,
                        ip.ix,
                        ip.iy,
                        ip.orientation,
                        ip.scale,
                        ip.interest,
                        ip.polarity,
                        ip.octave,
                        ip.scale_lvl,
                        len(ip.descriptor),
                    )
                ],
                dtype=IP_RECORD_DTYPE,
            )
            f.write(record.tobytes())
            f.write(np.asarray(ip.descriptor, dtype=DESCRIPTOR_DTYPE).tobytes())


def save_json_file(
    json_fpath: Union[str, Path],
    data: Union[Dict[Any, Any], List[Any]],
) -> None:
    """Save a Python dictionary or list to a JSON file.

    Args:
        json_fpath: Path to file to create.
        data: Python dictionary or list to be serialized.
    """
    dirname = os.path.dirname(str(json_fpath))
    if dirname:
        os.makedirs(dirname, exist_ok=True)
    with open(json_fpath, "w") as f:
        # ignore_nan replaces any NaN with null.
        json.dump(data, f, indent=4, ignore_nan=True)


def read_json_file(fpath: Union[str, Path]) -> Any:
    """Load dictionary from JSON file.

    Args:
        fpath: Path to JSON file.

    Returns:
        Deserialized Python dictionary or list.
    """
    with open(fpath, "r") as f:
        return json.load(f)


def read_cameras_json(fpath: Union[str, Path]) -> List[PinholeCameraModel]:
    """Reads one pinhole camera per image, in image-list order.

    Each entry holds Bundler intrinsics and the pose of the camera in the world frame:
        {"fx": 50, "k1": 0, "k2": 0, "u0": 0, "v0": 0, "wRi": [[...], [...], [...]], "wti": [x, y, z]}

    Args:
        fpath: path of a JSON file containing a list of such entries.

    Returns:
        Camera models, one per entry.
    """
    cameras = []
    for entry in read_json_file(fpath):
        calibration = Cal3Bundler(
            entry["fx"], entry.get("k1", 0.0), entry.get("k2", 0.0), entry.get("u0", 0.0), entry.get("v0", 0.0)
        )
        wTi = Pose3(Rot3(np.array(entry["wRi"], dtype=float)), np.array(entry["wti"], dtype=float))
        cameras.append(PinholeCameraModel.from_pose_and_calibration(wTi, calibration))
    return cameras


def _array_to_list(array: Any) -> Any:
    return None if array is None else np.asarray(array).tolist()


def write_control_network(fpath: Union[str, Path], cnet: ControlNetwork) -> None:
    """Saves a control network as JSON, readable by `read_control_network`."""
    points = []
    for point in cnet:
        measures = [
            {
                "image_id": measure.image_id,
                "serial": measure.serial,
                "pixel": _array_to_list(measure.pixel),
                "sigma": _array_to_list(measure.sigma),
            }
            for measure in point
        ]
        points.append(
            {
                "id": point.id,
                "type": point.type.value,
                "position": _array_to_list(point.position),
                "sigma": _array_to_list(point.sigma),
                "measures": measures,
            }
        )
    save_json_file(fpath, {"name": cnet.name, "points": points})


def read_control_network(fpath: Union[str, Path]) -> ControlNetwork:
    """Loads a control network saved by `write_control_network`."""
    data = read_json_file(fpath)

    cnet = ControlNetwork(data.get("name", ""))
    for point_data in data["points"]:
        point = ControlPoint(ControlPointType(point_data["type"]), point_data["id"])
        if point_data.get("position") is not None:
            point.set_position(*point_data["position"])
        if point_data.get("sigma") is not None:
            point.set_sigma(*point_data["sigma"])
        for measure_data in point_data["measures"]:
            x, y = measure_data["pixel"]
            sigma_x, sigma_y = measure_data["sigma"]
            point.add_measure(
                ControlMeasure(x, y, sigma_x, sigma_y, measure_data["image_id"], measure_data.get("serial", ""))
            )
        cnet.add_control_point(point)
    return cnet
