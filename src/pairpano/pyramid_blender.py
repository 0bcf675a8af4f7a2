"""
Pyramid Blender for Pair Stitching

Multi-band compositing: each image is split into a Laplacian pyramid, each
mask into a Gaussian pyramid, and every band is blended with its own
smoothed weights before the bands are summed back up from coarse to fine.
"""

import logging
from typing import List, Sequence, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def gaussian_pyramid(image: np.ndarray, levels: int) -> List[np.ndarray]:
    """Build Gaussian pyramid by repeated downsampling"""
    pyr = [image.astype(np.float32)]
    for _ in range(levels):
        pyr.append(cv2.pyrDown(pyr[-1]))
    return pyr


def laplacian_pyramid(image: np.ndarray, levels: int) -> List[np.ndarray]:
    """
    Build Laplacian pyramid: L[i] = G[i] - expand(G[i+1])

    The last entry is the coarsest Gaussian level (the residual).
    """
    gauss = gaussian_pyramid(image, levels)
    pyr = []
    for i in range(levels):
        h, w = gauss[i].shape[:2]
        pyr.append(gauss[i] - cv2.pyrUp(gauss[i + 1], dstsize=(w, h)))
    pyr.append(gauss[-1])
    return pyr


def reconstruct(pyramid: Sequence[np.ndarray]) -> np.ndarray:
    """Sum a Laplacian pyramid from coarsest to finest level"""
    image = pyramid[-1]
    for level in reversed(pyramid[:-1]):
        h, w = level.shape[:2]
        image = cv2.pyrUp(image, dstsize=(w, h)) + level
    return image


class PyramidBlender:
    """
    Laplacian-pyramid blender for same-size canvas images

    The number of bands is the largest count that keeps the coarsest level's
    smaller side at or above `min_level_size`, capped at `max_bands`.
    """

    def __init__(self, max_bands: int = 5, min_level_size: int = 1):
        self.max_bands = max_bands
        self.min_level_size = min_level_size

    def num_bands(self, width: int, height: int) -> int:
        bands = 0
        size = min(width, height)
        while bands < self.max_bands and (size + 1) // 2 >= self.min_level_size and size > 1:
            size = (size + 1) // 2
            bands += 1
        return bands

    def blend(
        self,
        images: Sequence[np.ndarray],
        masks: Sequence[np.ndarray]
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Composite images across their masks

        Args:
            images: Canvas images (H, W, 3) uint8, all the same size
            masks: Single-channel uint8 masks (H, W), 255 = contributes

        Returns:
            Tuple of (panorama uint8 (H, W, 3), coverage mask uint8 (H, W))
        """
        assert len(images) == len(masks) and len(images) > 0, "need one mask per image"
        height, width = images[0].shape[:2]
        for image, mask in zip(images, masks):
            assert image.shape[:2] == (height, width), f"image shape {image.shape} != canvas {(height, width)}"
            assert mask.shape == (height, width), f"mask shape {mask.shape} != canvas {(height, width)}"

        bands = self.num_bands(width, height)
        logger.debug(f"Blending {len(images)} images on {width}x{height} canvas with {bands} bands")

        blended = None
        weight_sums = None
        for image, mask in zip(images, masks):
            lap = laplacian_pyramid(image, bands)
            weights = gaussian_pyramid(mask.astype(np.float32) / 255.0, bands)

            if blended is None:
                blended = [np.zeros_like(level) for level in lap]
                weight_sums = [np.zeros_like(w) for w in weights]

            for i in range(bands + 1):
                blended[i] += lap[i] * weights[i][..., np.newaxis]
                weight_sums[i] += weights[i]

        for i in range(bands + 1):
            w = weight_sums[i][..., np.newaxis]
            blended[i] = np.divide(
                blended[i], w,
                out=np.zeros_like(blended[i]),
                where=w > 0
            )

        result = reconstruct(blended)
        result = np.clip(np.rint(result), 0, 255).astype(np.uint8)

        coverage = weight_sums[0] > 0
        result[~coverage] = 0

        return result, np.where(coverage, 255, 0).astype(np.uint8)
