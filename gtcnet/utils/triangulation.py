"""Utilities to support triangulation from a pair of cameras."""
from typing import Optional, Tuple

import numpy as np
from gtsam import Unit3

from gtcnet.common.camera_model import CameraModel

# Below this value of (1 - cos^2) between the rays, they are treated as parallel.
PARALLEL_RAYS_TOL = 1e-12


def compute_ray_angle_in_degrees(ray_1: np.ndarray, ray_2: np.ndarray) -> float:
    """Compute the angle between two rays.

    Args:
        ray_1: direction of the first ray, of shape (3,).
        ray_2: direction of the second ray, of shape (3,).

    Returns:
        The angle between the two rays, in degrees.
    """
    dot_product = np.dot(Unit3(ray_1).point3(), Unit3(ray_2).point3())
    dot_product = np.clip(dot_product, -1, 1)
    return float(np.rad2deg(np.arccos(dot_product)))


def intersect_rays(
    center_1: np.ndarray, ray_1: np.ndarray, center_2: np.ndarray, ray_2: np.ndarray
) -> Optional[Tuple[np.ndarray, float]]:
    """Finds the point closest to two rays, as the mid-point of their segment of closest approach.

        X1 -- X -- X2
       /            \
      /              \
     C1              C2

    Args:
        center_1: origin of the first ray.
        ray_1: unit direction of the first ray.
        center_2: origin of the second ray.
        ray_2: unit direction of the second ray.

    Returns:
        The mid-point X and the distance |X1 - X2| between the rays, or None if the rays are parallel.
    """
    w0 = center_1 - center_2
    b = np.dot(ray_1, ray_2)
    d = np.dot(ray_1, w0)
    e = np.dot(ray_2, w0)
    denom = 1.0 - b * b
    if denom < PARALLEL_RAYS_TOL:
        return None

    s = (b * e - d) / denom
    t = (e - b * d) / denom
    closest_1 = center_1 + s * ray_1
    closest_2 = center_2 + t * ray_2
    return (closest_1 + closest_2) / 2, float(np.linalg.norm(closest_1 - closest_2))


class StereoModel:
    """Intersects the viewing rays of a pixel observed in two cameras.

    Args:
        camera_1: camera model of the first image.
        camera_2: camera model of the second image.
    """

    def __init__(self, camera_1: CameraModel, camera_2: CameraModel) -> None:
        self._camera_1 = camera_1
        self._camera_2 = camera_2

    def convergence_angle(self, pixel_1: np.ndarray, pixel_2: np.ndarray) -> float:
        """Angle in degrees between the two viewing rays, near zero for unstable (near-parallel) geometry.

        Raises:
            PixelToRayError: if either camera cannot produce a ray for its pixel.
        """
        return compute_ray_angle_in_degrees(
            self._camera_1.pixel_to_vector(pixel_1), self._camera_2.pixel_to_vector(pixel_2)
        )

    def triangulate(self, pixel_1: np.ndarray, pixel_2: np.ndarray) -> Optional[Tuple[np.ndarray, float]]:
        """Returns the best-fit 3D point and the distance between the two rays, or None for parallel rays.

        Raises:
            PixelToRayError: if either camera cannot produce a ray for its pixel.
        """
        return intersect_rays(
            self._camera_1.camera_center(pixel_1),
            self._camera_1.pixel_to_vector(pixel_1),
            self._camera_2.camera_center(pixel_2),
            self._camera_2.pixel_to_vector(pixel_2),
        )
