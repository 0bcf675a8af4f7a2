"""
Pair Stitcher - Two-Image Panorama Pipeline

Runs the full stitching chain for one image pair:
features -> matches -> homography -> canvas -> warp -> seam -> blend

Architecture:
- Feature extraction for both images runs on a two-worker thread pool
- Every later stage consumes the previous stage's output only
- Seam labeling failures degrade to blending with the raw overlap masks
- Diagnostics (keypoints, matches, inliers, canvas size, timings) are
  collected in StitchingStats for external reporting
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from .canvas_planner import CanvasPlan, plan_canvas
from .config_manager import StitchConfig
from .errors import InsufficientDataError, SeamFindingUnavailable
from .feature_extractor import FeatureExtractor, FeatureSet, create_extractor
from .feature_matcher import Correspondence, CorrespondenceMatcher, MatchResult
from .homography_estimator import MIN_CORRESPONDENCES, HomographyEstimator, HomographyResult
from .image_warper import ImageWarper, WarpedPair
from .pyramid_blender import PyramidBlender
from .seam_labeler import SeamLabeler, create_seam_labeler

logger = logging.getLogger(__name__)


@dataclass
class StitchingStats:
    """Diagnostics for one stitching run"""
    detector: str = ""
    keypoints_image1: int = 0
    keypoints_image2: int = 0
    knn_matches: int = 0
    good_matches: int = 0
    inliers: int = 0
    ransac_iterations: int = 0
    canvas_width: int = 0
    canvas_height: int = 0
    seam_applied: bool = False
    timings_ms: Dict[str, float] = field(default_factory=dict)

    @property
    def inlier_percent(self) -> int:
        """Inliers as a whole percentage of the good matches"""
        if self.good_matches == 0:
            return 0
        return int(100.0 * self.inliers / self.good_matches)

    def record_timing(self, stage: str, start: float) -> None:
        self.timings_ms[stage] = (time.perf_counter() - start) * 1000

    def to_dict(self) -> Dict:
        """Convert statistics to dictionary"""
        return {
            'detector': self.detector,
            'keypoints_image1': self.keypoints_image1,
            'keypoints_image2': self.keypoints_image2,
            'knn_matches': self.knn_matches,
            'good_matches': self.good_matches,
            'inliers': self.inliers,
            'inlier_percent': self.inlier_percent,
            'ransac_iterations': self.ransac_iterations,
            'canvas_width': self.canvas_width,
            'canvas_height': self.canvas_height,
            'seam_applied': self.seam_applied,
            'timings_ms': {k: round(v, 2) for k, v in self.timings_ms.items()}
        }


@dataclass
class StitchResult:
    """Panorama plus the intermediate artifacts needed for reporting"""
    panorama: np.ndarray
    coverage: np.ndarray
    stats: StitchingStats
    homography: np.ndarray
    plan: CanvasPlan
    features1: FeatureSet
    features2: FeatureSet
    correspondences: List[Correspondence]
    inlier_mask: np.ndarray


def scale_image(image: np.ndarray, scale: float) -> np.ndarray:
    """Resize by a uniform factor; a factor of 1.0 returns the input unchanged"""
    if scale == 1.0:
        return image
    return cv2.resize(image, None, fx=scale, fy=scale, interpolation=cv2.INTER_LINEAR)


class PairStitcher:
    """
    Stitches image-2 onto image-1's frame

    Stage collaborators are built from the configuration; the seam labeler,
    blender and random generator can be injected (tests use this to force
    the seam fallback and to fix RANSAC sampling).
    """

    def __init__(
        self,
        config: Optional[StitchConfig] = None,
        seam_labeler: Optional[SeamLabeler] = None,
        blender: Optional[PyramidBlender] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Initialize the stitcher

        Args:
            config: Validated stitch configuration (defaults when None)
            seam_labeler: Overrides the labeler named by config.seam_finder
            blender: Overrides the blender built from config.max_bands
            rng: Random generator for RANSAC sampling (seeded from
                config.seed when None)

        Raises:
            ConfigurationError: If the detector or seam finder is unknown
        """
        self.config = config or StitchConfig()

        self.extractor: FeatureExtractor = create_extractor(
            self.config.detector, max_features=self.config.max_features
        )
        self.matcher = CorrespondenceMatcher.for_extractor(
            self.extractor,
            use_ratio_test=self.config.use_ratio_test,
            ratio_threshold=self.config.ratio_threshold
        )
        self.estimator = HomographyEstimator(
            reproj_threshold=self.config.ransac_reproj_threshold,
            max_iters=self.config.ransac_max_iters,
            confidence=self.config.ransac_confidence,
            seed=self.config.seed,
            rng=rng
        )
        self.warper = ImageWarper()
        self.seam_labeler = seam_labeler or create_seam_labeler(self.config.seam_finder)
        self.blender = blender or PyramidBlender(max_bands=self.config.max_bands)

        logger.info(
            f"PairStitcher initialized: detector={self.config.detector}, "
            f"ratio_test={'ON' if self.config.use_ratio_test else 'OFF'}, "
            f"ratio={self.config.ratio_threshold}, ransac={self.config.ransac_reproj_threshold}px, "
            f"seam={self.seam_labeler.name}"
        )

    def extract_pair(self, image1: np.ndarray, image2: np.ndarray) -> Tuple[FeatureSet, FeatureSet]:
        """Extract features of both images concurrently"""
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="extract") as executor:
            future1 = executor.submit(self.extractor.extract, image1)
            future2 = executor.submit(self.extractor.extract, image2)
            return future1.result(), future2.result()

    def match(self, features1: FeatureSet, features2: FeatureSet) -> MatchResult:
        """Match descriptors and require enough correspondences for a homography"""
        result = self.matcher.match(features1, features2)
        if result.good_count < MIN_CORRESPONDENCES:
            raise InsufficientDataError(
                "Not enough matches after filtering",
                stage="matching",
                achieved=result.good_count,
                required=MIN_CORRESPONDENCES
            )
        return result

    def label_seams(self, warped: WarpedPair) -> Tuple[np.ndarray, np.ndarray, bool]:
        """
        Run the seam labeler, falling back to the initial masks

        Returns:
            Tuple of (mask1, mask2, seam_applied)
        """
        try:
            mask1, mask2 = self.seam_labeler.label(warped)
            return mask1, mask2, True
        except SeamFindingUnavailable as e:
            logger.warning(f"{e}; skipping seam finding, both images vote in the overlap")
            return warped.mask1, warped.mask2, False

    def compose(
        self,
        image1: np.ndarray,
        image2: np.ndarray,
        homography: np.ndarray,
        stats: Optional[StitchingStats] = None
    ) -> Tuple[np.ndarray, np.ndarray, CanvasPlan]:
        """
        Warp, seam-label and blend a pair with a known homography

        Args:
            image1: Reference image (H, W, 3) BGR uint8
            image2: Moving image (H, W, 3) BGR uint8
            homography: 3x3 image-2 -> image-1 transform
            stats: Statistics to fill in (optional)

        Returns:
            Tuple of (panorama, coverage mask, canvas plan)
        """
        stats = stats if stats is not None else StitchingStats(detector=self.extractor.name)

        start = time.perf_counter()
        plan = plan_canvas(image1.shape, image2.shape, homography)
        warped = self.warper.warp(image1, image2, plan)
        stats.canvas_width, stats.canvas_height = plan.size
        stats.record_timing('warp', start)

        start = time.perf_counter()
        mask1, mask2, stats.seam_applied = self.label_seams(warped)
        stats.record_timing('seam', start)

        start = time.perf_counter()
        panorama, coverage = self.blender.blend([warped.image1, warped.image2], [mask1, mask2])
        stats.record_timing('blend', start)

        return panorama, coverage, plan

    def stitch(self, image1: np.ndarray, image2: np.ndarray, scale: Optional[float] = None) -> StitchResult:
        """
        Stitch two overlapping images into a panorama

        Args:
            image1: Left/reference image (H, W, 3) BGR uint8
            image2: Right/moving image (H, W, 3) BGR uint8
            scale: Resize factor applied to both images first
                (defaults to config.scale)

        Returns:
            StitchResult

        Raises:
            InsufficientDataError: Too few descriptors or correspondences
            DegenerateGeometryError: No homography with enough inliers
        """
        scale = self.config.scale if scale is None else scale
        stats = StitchingStats(detector=self.extractor.name)
        total_start = time.perf_counter()

        image1 = scale_image(image1, scale)
        image2 = scale_image(image2, scale)

        start = time.perf_counter()
        features1, features2 = self.extract_pair(image1, image2)
        stats.keypoints_image1 = len(features1)
        stats.keypoints_image2 = len(features2)
        stats.record_timing('features', start)
        logger.info(f"Detected keypoints: img1={len(features1)} img2={len(features2)}")

        start = time.perf_counter()
        matches = self.match(features1, features2)
        stats.knn_matches = matches.knn_count
        stats.good_matches = matches.good_count
        stats.record_timing('matching', start)

        start = time.perf_counter()
        homography = self.estimator.estimate_from_matches(
            features1, features2, matches.correspondences
        )
        stats.inliers = homography.inlier_count
        stats.ransac_iterations = homography.iterations
        stats.record_timing('homography', start)
        logger.info(f"RANSAC inliers: {stats.inliers} / {stats.good_matches} ({stats.inlier_percent}%)")

        panorama, coverage, plan = self.compose(image1, image2, homography.matrix, stats)
        stats.record_timing('total', total_start)

        logger.info(
            f"Panorama stitched: {plan.width}x{plan.height} in {stats.timings_ms['total']:.1f} ms"
        )

        return StitchResult(
            panorama=panorama,
            coverage=coverage,
            stats=stats,
            homography=homography.matrix,
            plan=plan,
            features1=features1,
            features2=features2,
            correspondences=matches.correspondences,
            inlier_mask=homography.inlier_mask
        )

    def __repr__(self) -> str:
        return (
            f"PairStitcher("
            f"detector={self.extractor.name}, "
            f"metric={self.extractor.metric.value}, "
            f"seam={self.seam_labeler.name}, "
            f"max_bands={self.blender.max_bands})"
        )
