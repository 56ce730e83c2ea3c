"""Loads the pairwise match files of a set of images into a CorrespondenceGraph.

Match files are looked up for every unordered pair of images, using the naming convention of the matcher. Files with
too few matches are rejected as a whole, since a small set of matches is likely to be mostly outliers.
"""
import itertools
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import dask

import gtcnet.utils.io as io_utils
import gtcnet.utils.logger as logger_utils
from gtcnet.common.interest_point import InterestPoint
from gtcnet.data_association.correspondence_graph import CorrespondenceGraph

logger = logger_utils.get_logger()

# (i1, i2) image indices, with i1 < i2.
ImagePair = Tuple[int, int]
MatchesType = Tuple[List[InterestPoint], List[InterestPoint]]


@dataclass
class MatchIngestionReport:
    """Counts of what was loaded.

    Args:
        num_loaded: number of matches added to the graph.
        num_rejected: number of matches in files rejected for having fewer than `min_matches` matches.
        num_missing_files: number of image pairs without a match file.
        num_corrupt_files: number of match files which could not be read.
        loaded_files: accepted match files, in pair order.
        rejected_files: match files rejected for having too few matches, in pair order.
    """

    num_loaded: int = 0
    num_rejected: int = 0
    num_missing_files: int = 0
    num_corrupt_files: int = 0
    loaded_files: List[str] = field(default_factory=list)
    rejected_files: List[str] = field(default_factory=list)


def load_match_file(fpath: str) -> Optional[MatchesType]:
    """Reads a match file, returning None (with a warning) if it cannot be read."""
    logger.debug("Loading: %s", fpath)
    try:
        return io_utils.read_binary_match_file(fpath)
    except (io_utils.MatchFileError, OSError) as e:
        logger.warning("Unable to read match file %s: %s", fpath, e)
        return None


class MatchIngestion:
    """Finds, filters and loads the match files of all image pairs.

    Args:
        min_matches: minimum number of matches for a match file to be used.
        match_prefix: prefix of the match files, see `io_utils.match_filename`.
        parallel_load: read the match files concurrently. Matches are still added to the graph one file at a time,
            in pair order, so the graph is the same as with sequential loading.
    """

    def __init__(self, min_matches: int, match_prefix: str, parallel_load: bool = False) -> None:
        self.min_matches = min_matches
        self.match_prefix = match_prefix
        self.parallel_load = parallel_load

    @staticmethod
    def image_pairs(num_images: int) -> List[ImagePair]:
        """All unordered pairs (i, j) with i < j, in lexicographic order."""
        return list(itertools.combinations(range(num_images), 2))

    def find_match_files(
        self, image_files: Sequence[str], report: MatchIngestionReport
    ) -> List[Tuple[ImagePair, str]]:
        """Returns the existing match file of each image pair, warning about the missing ones.

        Missing files are expected when matching was limited to nearby image pairs.
        """
        match_files = []
        for i1, i2 in self.image_pairs(len(image_files)):
            fpath = io_utils.match_filename(self.match_prefix, image_files[i1], image_files[i2])
            if not Path(fpath).exists():
                logger.warning("Missing match file: %s", fpath)
                report.num_missing_files += 1
                continue
            match_files.append(((i1, i2), fpath))
        return match_files

    def _load_all(self, fpaths: List[str]) -> List[Optional[MatchesType]]:
        if not self.parallel_load:
            return [load_match_file(fpath) for fpath in fpaths]

        delayed_loads = [dask.delayed(load_match_file)(fpath) for fpath in fpaths]
        return list(dask.compute(*delayed_loads, scheduler="threads"))

    def run(self, graph: CorrespondenceGraph, image_files: Sequence[str]) -> MatchIngestionReport:
        """Adds the matches of all image pairs to the graph.

        Args:
            graph: graph with one registered node per image, in image-list order.
            image_files: paths of the images.

        Returns:
            Counts of loaded and rejected matches.
        """
        report = MatchIngestionReport()
        match_files = self.find_match_files(image_files, report)
        all_matches = self._load_all([fpath for _, fpath in match_files])

        for ((i1, i2), fpath), matches in zip(match_files, all_matches):
            if matches is None:
                report.num_corrupt_files += 1
                continue

            ips_1, ips_2 = matches
            if len(ips_1) < self.min_matches:
                logger.debug("\t%s    %d matches. [rejected]", fpath, len(ips_1))
                report.num_rejected += len(ips_1)
                report.rejected_files.append(fpath)
                continue

            logger.debug("\t%s    %d matches.", fpath, len(ips_1))
            report.num_loaded += len(ips_1)
            report.loaded_files.append(fpath)

            # Descriptors are not needed past matching.
            ips_1 = [ip.remove_descriptor().safe_measurement() for ip in ips_1]
            ips_2 = [ip.remove_descriptor().safe_measurement() for ip in ips_2]
            graph.ingest_pair(i1, i2, ips_1, ips_2)

        if report.num_rejected != 0:
            logger.warning(
                "\tDidn't load %d matches due to inadequacy. Decrease the min_matches parameter to load smaller sets "
                "of matches.",
                report.num_rejected,
            )
            logger.warning("\tLoaded %d matches.", report.num_loaded)
        return report
