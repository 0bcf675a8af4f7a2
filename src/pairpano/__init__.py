"""
PairPano - Two-Image Panorama Stitching

Stitches a pair of overlapping photographs into one seamless panorama.

Key Features:
- SIFT, ORB and AKAZE feature detection with matching metric per detector
- kNN descriptor matching with Lowe's ratio test
- Seedable RANSAC homography estimation
- Voronoi seam labeling with graceful fallback
- Multi-band (Laplacian pyramid) blending

Architecture:
- feature_extractor / feature_matcher: correspondences between the images
- homography_estimator: robust image-2 -> image-1 transform
- canvas_planner / image_warper: panorama geometry and resampling
- seam_labeler / pyramid_blender: compositing
- pair_stitcher: pipeline orchestration and statistics
- config_manager, image_io, match_report, cli: surrounding tooling
"""

__version__ = "1.0.0"

from .config_manager import StitchConfig, StitchConfigManager
from .errors import (
    ConfigurationError,
    DegenerateGeometryError,
    InsufficientDataError,
    SeamFindingUnavailable,
    StitchingError,
)
from .homography_estimator import HomographyEstimator
from .pair_stitcher import PairStitcher, StitchingStats, StitchResult

__all__ = [
    "PairStitcher",
    "StitchResult",
    "StitchingStats",
    "StitchConfig",
    "StitchConfigManager",
    "HomographyEstimator",
    "StitchingError",
    "ConfigurationError",
    "InsufficientDataError",
    "DegenerateGeometryError",
    "SeamFindingUnavailable",
]
