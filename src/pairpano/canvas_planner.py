"""
Canvas Planner for Pair Stitching

Computes the panorama canvas that holds image-1 at its native placement
and image-2 mapped through the homography.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .homography_estimator import project_points

logger = logging.getLogger(__name__)

# Extents within this of an integer are snapped before rounding up
SIZE_EPS = 1e-6


@dataclass(frozen=True)
class CanvasPlan:
    """
    Canvas geometry shared by the warper and the blender

    Attributes:
        width, height: Canvas size in pixels
        min_x, min_y: Minimum of the joint bounding box in image-1's frame
        translation: 3x3 shift moving (min_x, min_y) to the canvas origin
        homography: Image-2 -> canvas transform (translation @ H)
        image1_offset: Integer (x, y) where image-1's top-left pixel lands
        image2_corners: Image-2 corners mapped into canvas coordinates
    """
    width: int
    height: int
    min_x: float
    min_y: float
    translation: np.ndarray
    homography: np.ndarray
    image1_offset: Tuple[int, int]
    image2_corners: np.ndarray

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height), the order OpenCV expects for dsize"""
        return self.width, self.height


def image_corners(width: int, height: int) -> np.ndarray:
    """Corners of a width x height image, clockwise from the origin"""
    return np.array([
        [0.0, 0.0],
        [float(width), 0.0],
        [float(width), float(height)],
        [0.0, float(height)]
    ])


def plan_canvas(
    image1_shape: Tuple[int, ...],
    image2_shape: Tuple[int, ...],
    homography: np.ndarray
) -> CanvasPlan:
    """
    Bounding canvas of image-1 and the warped image-2

    Args:
        image1_shape: Shape of image-1, (H, W[, C])
        image2_shape: Shape of image-2, (H, W[, C])
        homography: 3x3 image-2 -> image-1 transform, already validated
            as invertible by the estimator

    Returns:
        CanvasPlan
    """
    if homography.shape != (3, 3):
        raise ValueError(f"Expected 3x3 homography matrix, got {homography.shape}")

    h1, w1 = image1_shape[:2]
    h2, w2 = image2_shape[:2]

    corners2 = project_points(homography, image_corners(w2, h2))
    if not np.all(np.isfinite(corners2)):
        raise ValueError("Homography maps an image-2 corner to infinity")

    all_corners = np.vstack([image_corners(w1, h1), corners2])
    min_x, min_y = all_corners.min(axis=0)
    max_x, max_y = all_corners.max(axis=0)

    translation = np.array([
        [1.0, 0.0, -min_x],
        [0.0, 1.0, -min_y],
        [0.0, 0.0, 1.0]
    ])
    translated = translation @ homography

    width = int(np.ceil(max_x - min_x - SIZE_EPS))
    height = int(np.ceil(max_y - min_y - SIZE_EPS))

    # min_x, min_y <= 0 because image-1's origin corner is in the box
    offset = (int(-min_x), int(-min_y))

    logger.info(
        f"Canvas planned: {width}x{height}, origin shift=({-min_x:.1f}, {-min_y:.1f}), "
        f"image1 offset={offset}"
    )

    return CanvasPlan(
        width=width,
        height=height,
        min_x=float(min_x),
        min_y=float(min_y),
        translation=translation,
        homography=translated,
        image1_offset=offset,
        image2_corners=corners2 - np.array([min_x, min_y])
    )
