"""Initializes the 3D position of control points from their image measurements, with known cameras.

Each pair of consecutive measures of a point is intersected, and the accepted intersections are averaged. Only
adjacent pairs are used (not every combination), which keeps the cost linear in the number of measures.

References:
1. Richard I. Hartley and Peter Sturm. Triangulation. Computer Vision and Image Understanding, Vol. 68, No. 2,
   November, pp. 146–157, 1997
"""

from enum import Enum
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

import gtcnet.utils.logger as logger_utils
from gtcnet.common.camera_model import CameraModel, PixelToRayError
from gtcnet.common.control_network import ControlMeasure, ControlPoint
from gtcnet.utils.triangulation import StereoModel

logger = logger_utils.get_logger()

# Camera centers closer than this carry no triangulation information.
CAMERA_CENTER_TOLERANCE = 1e-6

# Distance along the viewing ray at which a point is placed when it cannot be triangulated.
FALLBACK_DISTANCE = 10.0


class TriangulationExitCode(Enum):
    """Exit codes for triangulation computation."""

    SUCCESS = 0  # position is the mean of the accepted pairwise intersections
    FALLBACK = 1  # no usable pair, position placed along the first measure's viewing ray


class TriangulationOptions(NamedTuple):
    """Options for triangulation.

    Args:
        min_convergence_angle: threshold (in degrees) on the angle between the two rays of a pair. Pairs whose
            angle is not strictly larger are near-parallel, numerically unstable, and skipped.
    """

    min_convergence_angle: float = 0.0


class TriangulationResult(NamedTuple):
    """Outcome of triangulating one control point.

    Args:
        position: estimated 3D position.
        num_accepted_pairs: number of measure pairs which contributed to the position.
        avg_error: mean distance between the two rays over the accepted pairs. None for the fallback.
        exit_code: whether triangulation succeeded or fell back.
    """

    position: np.ndarray
    num_accepted_pairs: int
    avg_error: Optional[float]
    exit_code: TriangulationExitCode


class ControlPointTriangulator:
    """Computes the position of control points by intersecting the viewing rays of their measures.

    Args:
        camera_models: camera model of each image, indexed by image id.
        options: triangulation options.
    """

    def __init__(self, camera_models: Sequence[CameraModel], options: TriangulationOptions) -> None:
        self.camera_models = camera_models
        self.options = options

    def _fallback_position(self, measure: ControlMeasure) -> np.ndarray:
        """A point in the general viewing area of the first measure's camera."""
        camera = self.camera_models[measure.image_id]
        center = camera.camera_center(measure.pixel)
        try:
            return center + camera.pixel_to_vector(measure.pixel) * FALLBACK_DISTANCE
        except PixelToRayError:
            return center + camera.camera_pose(measure.pixel).rotate(np.array([0.0, 0.0, FALLBACK_DISTANCE]))

    def compute_position(self, measures: Sequence[ControlMeasure]) -> TriangulationResult:
        """Triangulates the position observed by a sequence of measures, without side effects.

        Args:
            measures: measures of one control point, at least one.

        Returns:
            The estimated position, with diagnostics.
        """
        accepted_positions: List[np.ndarray] = []
        errors: List[float] = []

        for measure_1, measure_2 in zip(measures[:-1], measures[1:]):
            camera_1 = self.camera_models[measure_1.image_id]
            camera_2 = self.camera_models[measure_2.image_id]

            center_distance = np.linalg.norm(
                camera_1.camera_center(measure_1.pixel) - camera_2.camera_center(measure_2.pixel)
            )
            if center_distance <= CAMERA_CENTER_TOLERANCE:
                continue

            stereo_model = StereoModel(camera_1, camera_2)
            try:
                angle = stereo_model.convergence_angle(measure_1.pixel, measure_2.pixel)
                if angle <= self.options.min_convergence_angle:
                    continue
                intersection = stereo_model.triangulate(measure_1.pixel, measure_2.pixel)
            except PixelToRayError:
                continue

            if intersection is None:
                continue
            position, error = intersection
            accepted_positions.append(position)
            errors.append(error)

        if len(accepted_positions) == 0:
            logger.warning("Unable to triangulate point!")
            return TriangulationResult(
                position=self._fallback_position(measures[0]),
                num_accepted_pairs=0,
                avg_error=None,
                exit_code=TriangulationExitCode.FALLBACK,
            )

        return TriangulationResult(
            position=np.mean(accepted_positions, axis=0),
            num_accepted_pairs=len(accepted_positions),
            avg_error=float(np.mean(errors)),
            exit_code=TriangulationExitCode.SUCCESS,
        )

    def triangulate(self, control_point: ControlPoint) -> TriangulationResult:
        """Sets the position of a control point from its measures.

        Never raises for degenerate geometry: pairs with coincident camera centers, rays that cannot be computed or
        too small a convergence angle are skipped, and a heuristic position is used if no pair remains.

        Args:
            control_point: point to update in place.

        Returns:
            The triangulation outcome, including the average ray distance as diagnostic.
        """
        result = self.compute_position(control_point.measures)
        control_point.set_position(*result.position)
        return result
