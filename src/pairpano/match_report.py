"""
Match Report Rendering

Draws the feature-matching statistics panel above the inlier matches of a
stitching run.
"""

from typing import List, Optional, Tuple

import cv2
import numpy as np

from .config_manager import StitchConfig
from .pair_stitcher import StitchResult

PANEL_HEIGHT = 250
PANEL_COLOR = (40, 40, 40)
FONT = cv2.FONT_HERSHEY_SIMPLEX


def _to_dmatches(result: StitchResult) -> List[cv2.DMatch]:
    return [
        cv2.DMatch(c.query_idx, c.train_idx, c.distance)
        for c in result.correspondences
    ]


def stats_lines(
    result: StitchResult,
    config: StitchConfig,
    names: Optional[Tuple[str, str]] = None
) -> List[Tuple[str, float, Tuple[int, int, int], int]]:
    """Text lines of the panel as (text, font scale, BGR color, thickness)"""
    stats = result.stats
    left, right = names or ("image1", "image2")
    return [
        ("PANORAMA STITCHING STATISTICS", 0.8, (255, 255, 255), 2),
        (f"Detector: {stats.detector}", 0.6, (100, 255, 100), 1),
        (f"Left Image: {left}  |  Right Image: {right}", 0.5, (200, 200, 200), 1),
        (f"Keypoints - Left: {stats.keypoints_image1}  |  Right: {stats.keypoints_image2}",
         0.6, (255, 200, 100), 1),
        (f"Matches: {stats.knn_matches}  |  Good Matches (ratio={config.ratio_threshold:.2f}): "
         f"{stats.good_matches}", 0.6, (255, 200, 100), 1),
        (f"RANSAC Inliers: {stats.inliers} ({stats.inlier_percent}%)  |  "
         f"Threshold: {config.ransac_reproj_threshold:.1f}px", 0.6, (100, 255, 255), 1),
        (f"Scale: {config.scale}", 0.5, (200, 200, 200), 1),
    ]


def render_match_report(
    image1: np.ndarray,
    image2: np.ndarray,
    result: StitchResult,
    config: StitchConfig,
    names: Optional[Tuple[str, str]] = None
) -> np.ndarray:
    """
    Statistics panel stacked above the drawn inlier matches

    Args:
        image1, image2: The images as they entered feature extraction
            (after scaling), so keypoint coordinates line up
        result: Output of PairStitcher.stitch()
        config: Configuration the run used
        names: Display names of the left and right image

    Returns:
        BGR uint8 report image
    """
    inliers = [1 if flag else 0 for flag in result.inlier_mask]
    match_img = cv2.drawMatches(
        image1, list(result.features1.keypoints),
        image2, list(result.features2.keypoints),
        _to_dmatches(result), None,
        matchesMask=inliers,
        flags=cv2.DrawMatchesFlags_NOT_DRAW_SINGLE_POINTS
    )

    report = np.full(
        (PANEL_HEIGHT + match_img.shape[0], match_img.shape[1], 3),
        PANEL_COLOR,
        dtype=np.uint8
    )
    report[PANEL_HEIGHT:, :] = match_img

    y = 35
    for i, (text, font_scale, color, thickness) in enumerate(stats_lines(result, config, names)):
        cv2.putText(report, text, (20, y), FONT, font_scale, color, thickness)
        y += 40 if i == 0 else 30

    return report
