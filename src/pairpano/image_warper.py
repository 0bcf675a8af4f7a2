"""
Image Warper for Pair Stitching

Places image-1 on the canvas without resampling and warps image-2 into the
canvas with bilinear interpolation. Each placed image gets a coverage mask
(255 = covered, 0 = background).
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from .canvas_planner import CanvasPlan

logger = logging.getLogger(__name__)


@dataclass
class WarpedPair:
    """Both images on the canvas with their initial coverage masks"""
    image1: np.ndarray
    image2: np.ndarray
    mask1: np.ndarray
    mask2: np.ndarray

    @property
    def canvas_shape(self) -> Tuple[int, int]:
        return self.image1.shape[:2]

    def overlap(self) -> np.ndarray:
        return (self.mask1 > 0) & (self.mask2 > 0)


class ImageWarper:
    """Resamples the pair into canvas coordinates"""

    def __init__(self, interpolation: int = cv2.INTER_LINEAR):
        self.interpolation = interpolation

    def place_base(self, image1: np.ndarray, plan: CanvasPlan) -> Tuple[np.ndarray, np.ndarray]:
        """Copy image-1 into a zero canvas at the plan's integer offset"""
        h1, w1 = image1.shape[:2]
        ox, oy = plan.image1_offset

        canvas = np.zeros((plan.height, plan.width, 3), dtype=np.uint8)
        canvas[oy:oy + h1, ox:ox + w1] = image1

        mask = np.zeros((plan.height, plan.width), dtype=np.uint8)
        mask[oy:oy + h1, ox:ox + w1] = 255

        return canvas, mask

    def warp_moving(self, image2: np.ndarray, plan: CanvasPlan) -> Tuple[np.ndarray, np.ndarray]:
        """
        Warp image-2 with the translated homography

        The mask is every canvas pixel whose warped value is non-black, since
        the projective footprint is not a rectangle.
        """
        warped = cv2.warpPerspective(
            image2,
            plan.homography,
            plan.size,
            flags=self.interpolation,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(0, 0, 0)
        )

        gray = cv2.cvtColor(warped, cv2.COLOR_BGR2GRAY)
        _, mask = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY)

        return warped, mask

    def warp(self, image1: np.ndarray, image2: np.ndarray, plan: CanvasPlan) -> WarpedPair:
        """
        Place both images on the canvas

        Args:
            image1: Reference image (H, W, 3) BGR uint8
            image2: Moving image (H, W, 3) BGR uint8
            plan: Canvas plan from plan_canvas()

        Returns:
            WarpedPair with freshly allocated canvas buffers
        """
        placed1, mask1 = self.place_base(image1, plan)
        placed2, mask2 = self.warp_moving(image2, plan)

        logger.debug(
            f"Warped pair onto {plan.width}x{plan.height} canvas: "
            f"coverage image1={int(np.count_nonzero(mask1))}px, image2={int(np.count_nonzero(mask2))}px"
        )

        return WarpedPair(image1=placed1, image2=placed2, mask1=mask1, mask2=mask2)
