"""Classes holding the control network: 3D points with their image measurements, as consumed by bundle adjustment.

A control point is either free (its position is estimated, e.g. by triangulation) or a ground control point (its
position is surveyed, and its sigma tells how much bundle adjustment may move it).
"""

from enum import Enum
from typing import Iterator, List, Optional, Sequence

import numpy as np

EQUALITY_TOLERANCE = 1e-5


class ControlPointType(str, Enum):
    """Kind of a control point.

    FREE: position comes from the images alone.
    GROUND_CONTROL_POINT: position is known a priori, e.g. from survey data.
    """

    FREE = "FREE"
    GROUND_CONTROL_POINT = "GROUND_CONTROL_POINT"


class ControlMeasure:
    """Observation of a control point in one image.

    Args:
        x, y: pixel location of the observation.
        sigma_x, sigma_y: standard deviation of the location, in pixels.
        image_id: index of the observing image in the image list.
        serial: name of the observing image. Used to re-index measures read from other networks.
    """

    def __init__(
        self, x: float, y: float, sigma_x: float, sigma_y: float, image_id: int, serial: str = ""
    ) -> None:
        self.pixel = np.array([x, y], dtype=float)
        self.sigma = np.array([sigma_x, sigma_y], dtype=float)
        self.image_id = image_id
        self.serial = serial

    @property
    def position(self) -> np.ndarray:
        """Pixel location of the observation, of shape (2,)."""
        return self.pixel

    def __repr__(self) -> str:
        return f"ControlMeasure(image_id={self.image_id}, pixel={self.pixel}, sigma={self.sigma})"

    def __eq__(self, other: object) -> bool:
        """Checks equality with the other measure."""
        if not isinstance(other, ControlMeasure):
            return False

        return (
            self.image_id == other.image_id
            and np.allclose(self.pixel, other.pixel, atol=EQUALITY_TOLERANCE)
            and np.allclose(self.sigma, other.sigma, atol=EQUALITY_TOLERANCE)
        )

    def __ne__(self, other: object) -> bool:
        """Checks inequality with the other object."""
        return not self == other


class ControlPoint:
    """A 3D point and the ordered list of its image measurements."""

    def __init__(
        self,
        point_type: ControlPointType = ControlPointType.FREE,
        point_id: int = 0,
        measures: Optional[Sequence[ControlMeasure]] = None,
    ) -> None:
        self._type = point_type
        self.id = point_id
        self.position: Optional[np.ndarray] = None
        self.sigma: Optional[np.ndarray] = None
        self._measures: List[ControlMeasure] = list(measures) if measures is not None else []

    @property
    def type(self) -> ControlPointType:
        return self._type

    def is_ground_control_point(self) -> bool:
        return self._type == ControlPointType.GROUND_CONTROL_POINT

    def with_type(self, point_type: ControlPointType) -> "ControlPoint":
        """Returns a copy of this point with another type, sharing the measures."""
        point = ControlPoint(point_type, self.id, self._measures)
        point.position = None if self.position is None else self.position.copy()
        point.sigma = None if self.sigma is None else self.sigma.copy()
        return point

    def add_measure(self, measure: ControlMeasure) -> None:
        self._measures.append(measure)

    def set_position(self, x: float, y: float, z: float) -> None:
        self.position = np.array([x, y, z], dtype=float)

    def set_sigma(self, sigma_x: float, sigma_y: float, sigma_z: float) -> None:
        self.sigma = np.array([sigma_x, sigma_y, sigma_z], dtype=float)

    @property
    def measures(self) -> List[ControlMeasure]:
        return self._measures

    def image_ids(self) -> List[int]:
        """Returns the image index of every measure, in measure order."""
        return [measure.image_id for measure in self._measures]

    def __len__(self) -> int:
        return len(self._measures)

    def __getitem__(self, idx: int) -> ControlMeasure:
        return self._measures[idx]

    def __iter__(self) -> Iterator[ControlMeasure]:
        return iter(self._measures)

    def __repr__(self) -> str:
        return (
            f"ControlPoint(id={self.id}, type={self._type.value}, position={self.position}, "
            f"num_measures={len(self._measures)})"
        )


class ControlNetwork:
    """Ordered collection of control points.

    Points keep their insertion order: tracks found in the images first, ground control points appended after.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._points: List[ControlPoint] = []

    def add_control_point(self, point: ControlPoint) -> None:
        self._points.append(point)

    def add_control_points(self, points: Sequence[ControlPoint]) -> None:
        for point in points:
            self.add_control_point(point)

    def clear(self) -> None:
        self._points = []

    def num_points_of_type(self, point_type: ControlPointType) -> int:
        return sum(1 for point in self._points if point.type == point_type)

    def num_measures(self) -> int:
        """Total number of measures over all points."""
        return sum(len(point) for point in self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __getitem__(self, idx: int) -> ControlPoint:
        return self._points[idx]

    def __iter__(self) -> Iterator[ControlPoint]:
        return iter(self._points)

    def __repr__(self) -> str:
        return (
            f"ControlNetwork(name={self.name!r}, num_points={len(self._points)}, "
            f"num_gcps={self.num_points_of_type(ControlPointType.GROUND_CONTROL_POINT)})"
        )
