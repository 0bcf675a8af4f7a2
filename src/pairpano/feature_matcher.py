"""
Correspondence Matcher for Pair Stitching

Finds the two nearest image-2 descriptors for every image-1 descriptor and
filters the candidates with Lowe's ratio test.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

import cv2
import numpy as np

from .errors import InsufficientDataError
from .feature_extractor import FeatureExtractor, FeatureSet, MatchMetric

logger = logging.getLogger(__name__)

FLANN_INDEX_KDTREE = 1


@dataclass(frozen=True)
class Correspondence:
    """Index into image-1 keypoints, index into image-2 keypoints, distance"""
    query_idx: int
    train_idx: int
    distance: float


@dataclass
class MatchResult:
    """Raw kNN candidates and the accepted correspondences"""
    knn_matches: List[List[Correspondence]]
    correspondences: List[Correspondence]

    @property
    def knn_count(self) -> int:
        return len(self.knn_matches)

    @property
    def good_count(self) -> int:
        return len(self.correspondences)


def filter_candidates(
    knn_matches: Sequence[Sequence[Correspondence]],
    use_ratio_test: bool = True,
    ratio_threshold: float = 0.75
) -> List[Correspondence]:
    """
    Reduce kNN candidate lists to one correspondence per query

    With the ratio test a query is accepted only when it has two candidates
    and best.distance < ratio_threshold * second.distance. Without it, the
    best candidate of every non-empty list is accepted.
    """
    good = []
    for candidates in knn_matches:
        if use_ratio_test:
            if len(candidates) >= 2 and candidates[0].distance < ratio_threshold * candidates[1].distance:
                good.append(candidates[0])
        elif candidates:
            good.append(candidates[0])
    return good


class CorrespondenceMatcher:
    """
    k=2 nearest-neighbour descriptor matcher

    Euclidean descriptors go through a FLANN kd-tree index, binary
    descriptors through a brute-force Hamming matcher.
    """

    K = 2

    def __init__(
        self,
        metric: MatchMetric,
        use_ratio_test: bool = True,
        ratio_threshold: float = 0.75
    ):
        """
        Args:
            metric: Distance metric matching the detector's descriptor type
            use_ratio_test: Apply Lowe's ratio test to the kNN candidates
            ratio_threshold: Ratio test threshold (default: 0.75)
        """
        self.metric = metric
        self.use_ratio_test = use_ratio_test
        self.ratio_threshold = ratio_threshold

    @classmethod
    def for_extractor(cls, extractor: FeatureExtractor, **kwargs) -> "CorrespondenceMatcher":
        return cls(extractor.metric, **kwargs)

    def _create_matcher(self, train_size: int) -> cv2.DescriptorMatcher:
        if self.metric is MatchMetric.HAMMING:
            return cv2.BFMatcher(cv2.NORM_HAMMING)
        # FLANN cannot build a useful index over a single descriptor
        if train_size < self.K:
            return cv2.BFMatcher(cv2.NORM_L2)
        index_params = dict(algorithm=FLANN_INDEX_KDTREE, trees=5)
        search_params = dict(checks=50)
        return cv2.FlannBasedMatcher(index_params, search_params)

    def knn_match(self, features1: FeatureSet, features2: FeatureSet) -> List[List[Correspondence]]:
        """
        Find the two nearest image-2 descriptors for each image-1 descriptor

        Returns:
            One list per image-1 descriptor, ordered by ascending distance

        Raises:
            InsufficientDataError: If either image has no descriptors
        """
        n1 = features1.descriptor_count
        n2 = features2.descriptor_count
        if n1 == 0 or n2 == 0:
            raise InsufficientDataError(
                f"No descriptors to match (image1={n1}, image2={n2})",
                stage="matching"
            )

        desc1, desc2 = features1.descriptors, features2.descriptors
        if self.metric is MatchMetric.EUCLIDEAN_INDEX:
            desc1 = np.asarray(desc1, dtype=np.float32)
            desc2 = np.asarray(desc2, dtype=np.float32)

        matcher = self._create_matcher(n2)
        raw = matcher.knnMatch(desc1, desc2, k=self.K)

        return [
            [Correspondence(m.queryIdx, m.trainIdx, float(m.distance)) for m in candidates]
            for candidates in raw
        ]

    def match(self, features1: FeatureSet, features2: FeatureSet) -> MatchResult:
        """Run kNN matching followed by the configured filter"""
        knn = self.knn_match(features1, features2)
        good = filter_candidates(knn, self.use_ratio_test, self.ratio_threshold)

        logger.info(
            f"Matched descriptors: {len(knn)} knn matches, {len(good)} good "
            f"(ratio test {'ON' if self.use_ratio_test else 'OFF'}, threshold={self.ratio_threshold})"
        )

        return MatchResult(knn_matches=knn, correspondences=good)
