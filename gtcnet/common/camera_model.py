"""Camera model interface consumed by triangulation, and its adapter for GTSAM's pinhole cameras.

All quantities are expressed in the world frame. Methods accept the pixel that is being processed because some
camera models (e.g. pushbroom sensors) have a center and orientation that vary across the image.
"""

import abc
from typing import Dict, Optional, Type, Union

import gtsam  # type: ignore
import numpy as np
from gtsam import Point2, Rot3

CALIBRATION_TYPE = Union[gtsam.Cal3Bundler, gtsam.Cal3_S2, gtsam.Cal3DS2, gtsam.Cal3Fisheye]
CAMERA_TYPE = Union[
    gtsam.PinholeCameraCal3Bundler,
    gtsam.PinholeCameraCal3_S2,
    gtsam.PinholeCameraCal3DS2,
    gtsam.PinholeCameraCal3Fisheye,
]

_CAMERA_CLASS_BY_CALIBRATION: Dict[type, Type] = {
    gtsam.Cal3Bundler: gtsam.PinholeCameraCal3Bundler,
    gtsam.Cal3_S2: gtsam.PinholeCameraCal3_S2,
    gtsam.Cal3DS2: gtsam.PinholeCameraCal3DS2,
    gtsam.Cal3Fisheye: gtsam.PinholeCameraCal3Fisheye,
}


class PixelToRayError(RuntimeError):
    """Raised when a camera model cannot produce a viewing ray for a pixel."""


class CameraModel(abc.ABC):
    """Projects world points into the image, and pixels back into world rays."""

    @abc.abstractmethod
    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        """Projects a 3D world point to a 2D pixel, of shape (2,)."""

    @abc.abstractmethod
    def pixel_to_vector(self, pixel: np.ndarray) -> np.ndarray:
        """Returns the unit viewing ray through the pixel, in the world frame, of shape (3,).

        Raises:
            PixelToRayError: if no ray exists for this pixel.
        """

    @abc.abstractmethod
    def camera_center(self, pixel: Optional[np.ndarray] = None) -> np.ndarray:
        """Returns the camera center in the world frame, of shape (3,)."""

    @abc.abstractmethod
    def camera_pose(self, pixel: Optional[np.ndarray] = None) -> Rot3:
        """Returns the orientation of the camera, i.e. the rotation from camera frame to world frame."""


class PinholeCameraModel(CameraModel):
    """Adapter around a GTSAM pinhole camera, with any calibration in `CALIBRATION_TYPE`."""

    def __init__(self, camera: CAMERA_TYPE) -> None:
        self._camera = camera

    @classmethod
    def from_pose_and_calibration(cls, wTi: gtsam.Pose3, calibration: CALIBRATION_TYPE) -> "PinholeCameraModel":
        """Creates the model from the camera pose in the world frame and its intrinsics."""
        camera_class = _CAMERA_CLASS_BY_CALIBRATION.get(type(calibration))
        if camera_class is None:
            raise ValueError(f"Unsupported calibration type: {type(calibration)}.")
        return cls(camera_class(wTi, calibration))

    @property
    def camera(self) -> CAMERA_TYPE:
        return self._camera

    def point_to_pixel(self, point: np.ndarray) -> np.ndarray:
        return np.asarray(self._camera.project(np.asarray(point, dtype=float)))

    def pixel_to_vector(self, pixel: np.ndarray) -> np.ndarray:
        uv = Point2(float(pixel[0]), float(pixel[1]))
        try:
            point_at_unit_depth = np.asarray(self._camera.backproject(uv, 1.0))
        except RuntimeError as e:
            # Calibrations with distortion iterate to undistort, and can fail to converge.
            raise PixelToRayError(f"Unable to backproject pixel {uv}: {e}") from e

        ray = point_at_unit_depth - self.camera_center()
        norm = np.linalg.norm(ray)
        if not np.isfinite(norm) or norm == 0:
            raise PixelToRayError(f"Degenerate ray for pixel {uv}.")
        return ray / norm

    def camera_center(self, pixel: Optional[np.ndarray] = None) -> np.ndarray:
        return np.asarray(self._camera.pose().translation())

    def camera_pose(self, pixel: Optional[np.ndarray] = None) -> Rot3:
        return self._camera.pose().rotation()

    def __repr__(self) -> str:
        return f"PinholeCameraModel(center={self.camera_center()})"
