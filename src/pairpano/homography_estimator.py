"""
Homography Estimator for Pair Stitching

Robustly fits the projective transform mapping image-2 pixel coordinates
into image-1's frame.

RANSAC loop:
- draw 4 correspondences from a seedable numpy Generator
- skip samples with three collinear points in either image
- fit a normalized DLT homography to the sample
- count correspondences whose reprojection error is below the threshold
- keep the model with most inliers (ties: lower mean inlier error)
- refit on all inliers of the best model

The iteration count adapts to the observed inlier ratio and never exceeds
`max_iters`.
"""

import itertools
import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import DegenerateGeometryError, InsufficientDataError
from .feature_extractor import FeatureSet
from .feature_matcher import Correspondence

logger = logging.getLogger(__name__)

MIN_CORRESPONDENCES = 4
MIN_INLIERS = 4
SAMPLE_SIZE = 4

# Twice the triangle area below which three points count as collinear
COLLINEAR_EPS = 1e-6
DET_EPS = 1e-10


@dataclass
class HomographyResult:
    """Estimated homography (image-2 -> image-1) and per-correspondence inliers"""
    matrix: np.ndarray
    inlier_mask: np.ndarray
    iterations: int = 0
    mean_error: float = 0.0

    @property
    def inlier_count(self) -> int:
        return int(np.count_nonzero(self.inlier_mask))

    @property
    def inlier_ratio(self) -> float:
        total = len(self.inlier_mask)
        return self.inlier_count / total if total > 0 else 0.0


def project_points(H: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a homography to an (N, 2) array of points"""
    points_h = np.concatenate([points, np.ones((len(points), 1))], axis=1)
    transformed = (H @ points_h.T).T
    with np.errstate(divide='ignore', invalid='ignore'):
        return transformed[:, :2] / transformed[:, 2:3]


def reprojection_errors(H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """
    Per-point reprojection error in pixels

    Points that project to infinity get an infinite error.
    """
    projected = project_points(H, src)
    errors = np.sqrt(np.sum((projected - dst) ** 2, axis=1))
    return np.where(np.isfinite(errors), errors, np.inf)


def _normalization_transform(points: np.ndarray) -> Optional[np.ndarray]:
    """Similarity moving the centroid to the origin with mean distance sqrt(2)"""
    centroid = points.mean(axis=0)
    mean_dist = np.mean(np.sqrt(np.sum((points - centroid) ** 2, axis=1)))
    if mean_dist < 1e-12:
        return None
    s = math.sqrt(2.0) / mean_dist
    return np.array([
        [s, 0.0, -s * centroid[0]],
        [0.0, s, -s * centroid[1]],
        [0.0, 0.0, 1.0]
    ])


def fit_homography(src: np.ndarray, dst: np.ndarray) -> Optional[np.ndarray]:
    """
    Normalized DLT fit of H with dst ~ H @ src

    Args:
        src: (N, 2) source points, N >= 4
        dst: (N, 2) destination points

    Returns:
        3x3 homography with H[2, 2] == 1, or None if the points do not
        determine a unique invertible transform
    """
    if len(src) < SAMPLE_SIZE:
        return None

    T_src = _normalization_transform(src)
    T_dst = _normalization_transform(dst)
    if T_src is None or T_dst is None:
        return None

    src_n = project_points(T_src, src)
    dst_n = project_points(T_dst, dst)

    A = []
    for (x, y), (u, v) in zip(src_n, dst_n):
        A.append([-x, -y, -1, 0, 0, 0, u * x, u * y, u])
        A.append([0, 0, 0, -x, -y, -1, v * x, v * y, v])
    A = np.array(A)

    _, S, Vt = np.linalg.svd(A)

    # Null space must be one-dimensional
    if S[7] < 1e-10 * S[0]:
        return None

    H_n = Vt[-1].reshape(3, 3)
    H = np.linalg.inv(T_dst) @ H_n @ T_src

    if abs(H[2, 2]) < 1e-12:
        return None
    H = H / H[2, 2]

    if abs(np.linalg.det(H)) < DET_EPS or not np.all(np.isfinite(H)):
        return None

    return H


def has_collinear_triple(points: np.ndarray, eps: float = COLLINEAR_EPS) -> bool:
    """True if any three of the points are (nearly) collinear"""
    for a, b, c in itertools.combinations(range(len(points)), 3):
        ab = points[b] - points[a]
        ac = points[c] - points[a]
        if abs(ab[0] * ac[1] - ab[1] * ac[0]) < eps:
            return True
    return False


def update_num_iters(confidence: float, outlier_ratio: float, max_iters: int) -> int:
    """Number of samples needed to draw one all-inlier sample with `confidence`"""
    outlier_ratio = min(max(outlier_ratio, 0.0), 1.0)
    num = max(1.0 - confidence, np.finfo(float).tiny)
    denom = 1.0 - (1.0 - outlier_ratio) ** SAMPLE_SIZE
    if denom < np.finfo(float).tiny:
        return 0

    num = math.log(num)
    denom = math.log(denom)
    if denom >= 0 or -num >= max_iters * (-denom):
        return max_iters
    return int(round(num / denom))


class HomographyEstimator:
    """
    RANSAC homography estimation with an injectable random source

    Two estimators built with the same seed produce identical results on
    identical input.
    """

    def __init__(
        self,
        reproj_threshold: float = 3.0,
        max_iters: int = 2000,
        confidence: float = 0.995,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            reproj_threshold: Inlier threshold in pixels
            max_iters: Hard cap on RANSAC samples
            confidence: Required probability of drawing an all-inlier sample
            seed: Seed for the sampling generator (ignored when rng is given)
            rng: Random generator to draw samples from
        """
        self.reproj_threshold = reproj_threshold
        self.max_iters = max_iters
        self.confidence = confidence
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def estimate(self, src_pts: np.ndarray, dst_pts: np.ndarray) -> HomographyResult:
        """
        Estimate H such that dst ~ H @ src

        Args:
            src_pts: (N, 2) image-2 points
            dst_pts: (N, 2) image-1 points

        Returns:
            HomographyResult with an inlier flag per input pair

        Raises:
            InsufficientDataError: If fewer than 4 pairs are given
            DegenerateGeometryError: If no model reaches 4 inliers
        """
        src = np.asarray(src_pts, dtype=np.float64).reshape(-1, 2)
        dst = np.asarray(dst_pts, dtype=np.float64).reshape(-1, 2)
        if len(src) != len(dst):
            raise ValueError(f"Point count mismatch: src={len(src)}, dst={len(dst)}")

        n = len(src)
        if n < MIN_CORRESPONDENCES:
            raise InsufficientDataError(
                "Not enough correspondences for homography",
                stage="homography",
                achieved=n,
                required=MIN_CORRESPONDENCES
            )

        best_H = None
        best_mask = np.zeros(n, dtype=bool)
        best_count = 0
        best_error = np.inf
        required_iters = self.max_iters
        iteration = 0

        while iteration < min(required_iters, self.max_iters):
            iteration += 1
            sample = self.rng.choice(n, SAMPLE_SIZE, replace=False)
            if has_collinear_triple(src[sample]) or has_collinear_triple(dst[sample]):
                continue

            H = fit_homography(src[sample], dst[sample])
            if H is None:
                continue

            errors = reprojection_errors(H, src, dst)
            mask = errors < self.reproj_threshold
            count = int(np.count_nonzero(mask))
            if count == 0:
                continue
            mean_error = float(np.mean(errors[mask]))

            if count > best_count or (count == best_count and mean_error < best_error):
                best_H, best_mask, best_count, best_error = H, mask, count, mean_error
                required_iters = update_num_iters(
                    self.confidence, 1.0 - count / n, self.max_iters
                )

        logger.debug(f"RANSAC stopped after {iteration} iterations, best inliers={best_count}/{n}")

        if best_H is None or best_count < MIN_INLIERS:
            raise DegenerateGeometryError(
                f"RANSAC found no homography with at least {MIN_INLIERS} inliers "
                f"(best={best_count} of {n} correspondences, threshold={self.reproj_threshold}px)"
            )

        H, mask, mean_error = self._refine(best_H, best_mask, src, dst)

        logger.info(
            f"RANSAC homography: {int(mask.sum())}/{n} inliers "
            f"({mask.sum() / n:.2%}), mean error={mean_error:.2f}px"
        )

        return HomographyResult(matrix=H, inlier_mask=mask, iterations=iteration, mean_error=mean_error)

    def _refine(
        self,
        H: np.ndarray,
        mask: np.ndarray,
        src: np.ndarray,
        dst: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """Least-squares refit on all inliers; kept only if it loses no inliers"""
        errors = reprojection_errors(H, src, dst)
        best = (H, mask, float(np.mean(errors[mask])))

        refined = fit_homography(src[mask], dst[mask])
        if refined is None:
            return best

        refined_errors = reprojection_errors(refined, src, dst)
        refined_mask = refined_errors < self.reproj_threshold
        if np.count_nonzero(refined_mask) >= np.count_nonzero(mask):
            return refined, refined_mask, float(np.mean(refined_errors[refined_mask]))
        return best

    def estimate_from_matches(
        self,
        features1: FeatureSet,
        features2: FeatureSet,
        correspondences: Sequence[Correspondence]
    ) -> HomographyResult:
        """Resolve correspondences to pixel coordinates and estimate image-2 -> image-1"""
        pts1 = features1.points()
        pts2 = features2.points()
        if len(correspondences) == 0:
            src = dst = np.empty((0, 2))
        else:
            dst = pts1[[c.query_idx for c in correspondences]]
            src = pts2[[c.train_idx for c in correspondences]]
        return self.estimate(src, dst)
