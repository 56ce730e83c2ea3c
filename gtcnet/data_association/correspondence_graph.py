"""Implements the CorrespondenceGraph class, which merges pairwise matches into multi-image tracks.

Features are stored in an arena and addressed by an integer handle. Each image owns the handles of the features
observed in it (its CameraTrackTable), and features link to the features they were matched with through a set of
handles. A track is a connected component of this graph.

References:
1. P. Moulon, P. Monasse. Unordered Feature Tracking Made Fast and Easy, 2012, HAL Archives.
   https://hal-enpc.archives-ouvertes.fr/hal-00769267/file/moulon_monasse_featureTracking_CVMP12.pdf
"""

from collections import deque
from typing import Dict, List, Optional, Sequence, Set, Tuple

from gtcnet.common.control_network import ControlMeasure, ControlNetwork, ControlPoint, ControlPointType
from gtcnet.common.interest_point import InterestPoint

import gtcnet.utils.logger as logger_utils

logger = logger_utils.get_logger()

Location = Tuple[float, float]


class FeatureNode:
    """A 2D observation in one image, linked to the observations of the same scene point in other images."""

    __slots__ = ("location", "scale", "image_id", "connections")

    def __init__(self, location: Location, scale: float, image_id: int) -> None:
        self.location = location
        self.scale = scale
        self.image_id = image_id
        self.connections: Set[int] = set()

    def __repr__(self) -> str:
        return (
            f"FeatureNode(image_id={self.image_id}, location={self.location}, "
            f"num_connections={len(self.connections)})"
        )


class CameraTrackTable:
    """Handles of the features observed in one image, indexed by their exact location.

    Args:
        image_id: index of the image in the image list.
        name: display name of the image, i.e. its file stem.
    """

    def __init__(self, image_id: int, name: str) -> None:
        self.image_id = image_id
        self.name = name
        self._handles: List[int] = []
        self._handle_by_location: Dict[Location, int] = {}

    def find(self, location: Location) -> Optional[int]:
        """Returns the handle of the feature at exactly this location, if one exists."""
        return self._handle_by_location.get(location)

    def add(self, location: Location, handle: int) -> None:
        self._handles.append(handle)
        self._handle_by_location[location] = handle

    @property
    def handles(self) -> List[int]:
        return self._handles

    def __len__(self) -> int:
        return len(self._handles)


class CorrespondenceGraph:
    """Graph of features across all images, where matched features are linked."""

    def __init__(self) -> None:
        self._nodes: List[FeatureNode] = []
        self._tables: List[CameraTrackTable] = []
        self.num_inconsistent_tracks = 0

    @property
    def num_images(self) -> int:
        return len(self._tables)

    @property
    def num_features(self) -> int:
        return len(self._nodes)

    def node(self, handle: int) -> FeatureNode:
        return self._nodes[handle]

    def table(self, image_id: int) -> CameraTrackTable:
        return self._tables[image_id]

    def add_node(self, image_id: int, name: str) -> None:
        """Registers an image. Images must be registered in image-list order, i.e. with ids 0..N-1.

        Args:
            image_id: index of the image in the image list.
            name: display name of the image.
        """
        if image_id != len(self._tables):
            raise ValueError(f"Expected image id {len(self._tables)}, got {image_id}.")
        self._tables.append(CameraTrackTable(image_id, name))

    def _find_or_insert(self, image_id: int, ip: InterestPoint) -> int:
        """Returns the handle of the feature at the interest point's location, creating the feature if needed."""
        table = self._tables[image_id]
        location = ip.location
        handle = table.find(location)
        if handle is None:
            handle = len(self._nodes)
            self._nodes.append(FeatureNode(location, ip.scale, image_id))
            table.add(location, handle)
        return handle

    def ingest_pair(
        self,
        image_id_a: int,
        image_id_b: int,
        matches_a: Sequence[InterestPoint],
        matches_b: Sequence[InterestPoint],
    ) -> None:
        """Adds the matches between two images, linking the matched features.

        Args:
            image_id_a: index of the first image.
            image_id_b: index of the second image.
            matches_a: observations in the first image.
            matches_b: observations in the second image, where matches_b[k] matches matches_a[k].
        """
        if len(matches_a) != len(matches_b):
            raise ValueError(f"Each observation needs a match, got {len(matches_a)} and {len(matches_b)}.")

        for ip_a, ip_b in zip(matches_a, matches_b):
            handle_a = self._find_or_insert(image_id_a, ip_a)
            handle_b = self._find_or_insert(image_id_b, ip_b)
            if handle_a == handle_b:
                continue
            self._nodes[handle_a].connections.add(handle_b)
            self._nodes[handle_b].connections.add(handle_a)

    def _component(self, start: int, visited: List[bool]) -> List[int]:
        """Breadth-first search of the features connected to `start`."""
        component = [start]
        visited[start] = True
        queue = deque([start])
        while queue:
            handle = queue.popleft()
            for neighbor in self._nodes[handle].connections:
                if not visited[neighbor]:
                    visited[neighbor] = True
                    component.append(neighbor)
                    queue.append(neighbor)
        return component

    def tracks(self) -> List[List[int]]:
        """Returns the tracks as lists of feature handles, with at least 2 features each.

        Features are sorted by image registration order. Tracks are ordered by their first feature, in image
        registration order then insertion order, so the output does not depend on set iteration order.
        """
        visited = [False] * len(self._nodes)
        tracks = []
        for table in self._tables:
            for handle in table.handles:
                if visited[handle]:
                    continue
                component = self._component(handle, visited)
                if len(component) < 2:
                    continue
                tracks.append(sorted(component, key=lambda h: (self._nodes[h].image_id, h)))
        return tracks

    def materialize(self) -> Optional[ControlNetwork]:
        """Creates one free control point per track, with one measure per image of the track.

        A track which contains several features of the same image is inconsistent: it is kept, but only the first
        registered feature (lowest handle) of each image becomes a measure. Inconsistent tracks are counted.

        Returns:
            The control network, or None if no image was registered.
        """
        if not self._tables:
            logger.warning("No images were registered, unable to build a control network.")
            return None

        cnet = ControlNetwork()
        self.num_inconsistent_tracks = 0
        for track in self.tracks():
            # Handles are sorted by (image id, handle), so the first handle seen for an image is its lowest.
            kept: List[int] = []
            for handle in track:
                if kept and self._nodes[kept[-1]].image_id == self._nodes[handle].image_id:
                    continue
                kept.append(handle)
            if len(kept) != len(track):
                self.num_inconsistent_tracks += 1
            if len(kept) < 2:
                continue

            point = ControlPoint(ControlPointType.FREE, point_id=len(cnet))
            for handle in kept:
                node = self._nodes[handle]
                x, y = node.location
                point.add_measure(
                    ControlMeasure(x, y, node.scale, node.scale, node.image_id, self._tables[node.image_id].name)
                )
            cnet.add_control_point(point)

        if self.num_inconsistent_tracks > 0:
            logger.warning(
                "%d tracks had several features in one image; kept the first feature of each image.",
                self.num_inconsistent_tracks,
            )
        logger.info(
            "Built %d control points from %d features in %d images.", len(cnet), len(self._nodes), len(self._tables)
        )
        return cnet
