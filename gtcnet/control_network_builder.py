"""Builds a control network from images, their pairwise match files and their camera models.

1. Registers the images in a CorrespondenceGraph.
2. Loads the match files of every image pair into the graph.
3. Materializes one control point per track observed in at least 2 images.
4. Optionally triangulates the position of every control point.
"""

import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Hashable, List, NamedTuple, Optional, Sequence, Tuple

import dask
from dask.callbacks import Callback

import gtcnet.utils.logger as logger_utils
from gtcnet.common.camera_model import CameraModel
from gtcnet.common.control_network import ControlMeasure, ControlNetwork
from gtcnet.data_association.correspondence_graph import CorrespondenceGraph
from gtcnet.data_association.match_ingestion import MatchIngestion, MatchIngestionReport
from gtcnet.data_association.point3d_initializer import (
    ControlPointTriangulator,
    TriangulationOptions,
    TriangulationResult,
)
from gtcnet.utils.progress import LoggingProgressCallback, ProgressCallback

logger = logger_utils.get_logger()


class ControlNetworkBuildResult(NamedTuple):
    """Output of a build, with diagnostics.

    Args:
        cnet: the control network.
        success: False if the network could not be materialized.
        ingestion_report: counts of loaded and rejected matches.
        triangulation_results: outcome for each control point, in network order. Empty if not triangulated.
    """

    cnet: ControlNetwork
    success: bool
    ingestion_report: MatchIngestionReport
    triangulation_results: List[TriangulationResult]


def triangulate_batch(
    triangulator: ControlPointTriangulator, measures_batch: List[List[ControlMeasure]]
) -> List[TriangulationResult]:
    """Triangulates a batch of control points sequentially."""
    return [triangulator.compute_position(measures) for measures in measures_batch]


class BatchProgressCallback(Callback):
    """Dask scheduler callback which reports progress each time a triangulation batch finishes.

    Only the local schedulers invoke it. Under a distributed client, progress is reported once all batches are done.

    Args:
        batch_keys: dask keys of the batch tasks.
        progress_callback: receives the progress.
        inc_progress: progress made by one control point.
    """

    def __init__(self, batch_keys: Sequence[Hashable], progress_callback: ProgressCallback, inc_progress: float):
        super().__init__()
        self._batch_keys = set(batch_keys)
        self._progress_callback = progress_callback
        self._inc_progress = inc_progress

    def _posttask(self, key, result, dsk, state, worker_id) -> None:
        if key in self._batch_keys:
            self._progress_callback.report_incremental_progress(self._inc_progress * len(result))


@dataclass(frozen=True)
class ControlNetworkBuilder:
    """Class to build a control network; see module docstring for the steps.

    Args:
        min_matches: minimum number of matches for a match file to be used.
        match_prefix: prefix of the match files.
        min_convergence_angle: minimum angle (in degrees) between the rays of a measure pair used for triangulation.
        triangulate: whether to compute the position of the control points.
        parallel_load: read the match files concurrently.
        triangulation_batch_size: if set, triangulate in batches of this size as parallel dask tasks.
    """

    min_matches: int = 30
    match_prefix: str = ""
    min_convergence_angle: float = 0.0
    triangulate: bool = True
    parallel_load: bool = False
    triangulation_batch_size: Optional[int] = None

    def _triangulate_all(
        self,
        cnet: ControlNetwork,
        camera_models: Sequence[CameraModel],
        progress_callback: ProgressCallback,
    ) -> List[TriangulationResult]:
        triangulator = ControlPointTriangulator(
            camera_models, TriangulationOptions(min_convergence_angle=self.min_convergence_angle)
        )
        inc_progress = 1.0 / len(cnet)
        progress_callback.report_progress(0)

        if self.triangulation_batch_size is None:
            results = []
            for point in cnet:
                progress_callback.report_incremental_progress(inc_progress)
                results.append(triangulator.triangulate(point))
            progress_callback.report_finished()
            return results

        # Points are independent, so batches can run in any order; results are written back in network order.
        measures = [point.measures for point in cnet]
        delayed_batches = [
            dask.delayed(triangulate_batch)(triangulator, measures[j : j + self.triangulation_batch_size])
            for j in range(0, len(measures), self.triangulation_batch_size)
        ]
        batch_keys = [delayed_batch.key for delayed_batch in delayed_batches]
        with BatchProgressCallback(batch_keys, progress_callback, inc_progress):
            batch_results = dask.compute(*delayed_batches)

        results = [result for batch in batch_results for result in batch]
        for point, result in zip(cnet, results):
            point.set_position(*result.position)
        progress_callback.report_finished()
        return results

    def build(
        self,
        camera_models: Sequence[CameraModel],
        image_files: Sequence[str],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ControlNetworkBuildResult:
        """Builds the control network.

        Args:
            camera_models: camera model of each image, in image-list order.
            image_files: paths of the images, in image-list order.
            progress_callback: receives triangulation progress. Defaults to logging it.

        Returns:
            The network, with diagnostics. Triangulation failures on single points do not make the build fail.
        """
        start_time = time.time()
        if progress_callback is None:
            progress_callback = LoggingProgressCallback("Triangulating:")

        # The graph only lives for the duration of this call.
        graph = CorrespondenceGraph()
        for image_id, image_file in enumerate(image_files):
            graph.add_node(image_id, Path(image_file).stem)

        ingestion = MatchIngestion(self.min_matches, self.match_prefix, parallel_load=self.parallel_load)
        ingestion_report = ingestion.run(graph, image_files)

        cnet = graph.materialize()
        if cnet is None:
            return ControlNetworkBuildResult(ControlNetwork(), False, ingestion_report, [])

        triangulation_results: List[TriangulationResult] = []
        if self.triangulate and len(cnet) > 0:
            triangulation_results = self._triangulate_all(cnet, camera_models, progress_callback)
            exit_codes = Counter(result.exit_code.name for result in triangulation_results)
            logger.info("Triangulation exit codes: %s", dict(exit_codes))

        logger.info("🚀 Control network with %d points built in %.2f sec.", len(cnet), time.time() - start_time)
        return ControlNetworkBuildResult(cnet, True, ingestion_report, triangulation_results)

    def run(
        self,
        camera_models: Sequence[CameraModel],
        image_files: Sequence[str],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Tuple[ControlNetwork, bool]:
        """Builds the control network, returning it with the success flag."""
        result = self.build(camera_models, image_files, progress_callback)
        return result.cnet, result.success


def build_control_network(
    do_triangulate: bool,
    camera_models: Sequence[CameraModel],
    image_files: Sequence[str],
    min_matches: int,
    match_prefix: str,
    min_angle: float,
    progress_callback: Optional[ProgressCallback] = None,
) -> Tuple[ControlNetwork, bool]:
    """Builds a control network from the match files of all image pairs.

    Args:
        do_triangulate: whether to compute the position of the control points.
        camera_models: camera model of each image, in image-list order.
        image_files: paths of the images.
        min_matches: match files with fewer matches are rejected as a whole.
        match_prefix: prefix of the match files.
        min_angle: minimum convergence angle in degrees for a measure pair to be triangulated.
        progress_callback: receives triangulation progress.

    Returns:
        The control network, and False if it could not be materialized.
    """
    builder = ControlNetworkBuilder(
        min_matches=min_matches,
        match_prefix=match_prefix,
        min_convergence_angle=min_angle,
        triangulate=do_triangulate,
    )
    return builder.run(camera_models, image_files, progress_callback)
