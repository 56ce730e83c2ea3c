"""Interest point record, as stored in binary match files written by the feature matcher.

Coordinate system convention:
    1. The x coordinate denotes the horizontal direction (+ve direction towards the right).
    2. The y coordinate denotes the vertical direction (+ve direction downwards).
    3. Origin is at the top left corner of the image.
"""
from typing import NamedTuple

import numpy as np

# Scale assigned to features whose detector reported a non-positive scale.
DEFAULT_SAFE_SCALE = 10.0


class InterestPoint(NamedTuple):
    """A single detection in an image, with its optional descriptor payload."""

    x: float
    y: float
    scale: float = 1.0
    ix: int = 0
    iy: int = 0
    orientation: float = 0.0
    interest: float = 0.0
    polarity: bool = False
    octave: int = 0
    scale_lvl: int = 0
    descriptor: np.ndarray = np.zeros(0, dtype=np.float32)

    @property
    def location(self) -> tuple:
        """The (x, y) location of the detection, used as the de-duplication key."""
        return (self.x, self.y)

    def remove_descriptor(self) -> "InterestPoint":
        """Returns a copy without the descriptor, which is not needed once matching is done."""
        return self._replace(descriptor=np.zeros(0, dtype=np.float32))

    def safe_measurement(self) -> "InterestPoint":
        """Returns a copy whose scale is valid for bundle adjustment, which treats scale <= 0 as invalid."""
        if self.scale <= 0:
            return self._replace(scale=DEFAULT_SAFE_SCALE)
        return self

    def __eq__(self, other: object) -> bool:
        """Checks equality with the other interest point, including the descriptor."""
        if not isinstance(other, InterestPoint):
            return False

        return tuple(self[:-1]) == tuple(other[:-1]) and np.array_equal(self.descriptor, other.descriptor)

    def __ne__(self, other: object) -> bool:
        """Checks inequality with the other object."""
        return not self == other
