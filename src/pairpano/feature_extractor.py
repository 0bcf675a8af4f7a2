"""
Feature Extractor for Pair Stitching

Detects keypoints and computes descriptors for a single image.

Two detector families are supported, each tied to the distance metric its
descriptors require:
- FloatingDescriptorDetector (SIFT): float32 descriptors, matched with a
  Euclidean approximate-nearest-neighbour index
- BinaryDescriptorDetector (ORB, AKAZE): uint8 bit-string descriptors,
  matched with Hamming distance

Detector names are resolved once, when the extractor is created. Everything
downstream dispatches on the extractor's `metric` attribute.
"""

import functools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple

import cv2
import numpy as np

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class MatchMetric(Enum):
    """Distance metric paired with a descriptor type"""
    EUCLIDEAN_INDEX = "euclidean_index"
    HAMMING = "hamming"


@dataclass
class FeatureSet:
    """Keypoints of one image and their descriptors, parallel by index"""
    keypoints: Tuple[cv2.KeyPoint, ...] = field(default_factory=tuple)
    descriptors: np.ndarray = field(default_factory=lambda: np.empty((0, 0), dtype=np.float32))

    def __len__(self) -> int:
        return len(self.keypoints)

    @property
    def descriptor_count(self) -> int:
        return 0 if self.descriptors is None else int(self.descriptors.shape[0])

    def points(self) -> np.ndarray:
        """Keypoint positions as an (N, 2) float64 array of (x, y)"""
        if not self.keypoints:
            return np.empty((0, 2), dtype=np.float64)
        return np.array([kp.pt for kp in self.keypoints], dtype=np.float64)


class FeatureExtractor:
    """
    Base class for keypoint detection and description.

    Subclasses set `metric` and implement `_create_detector()`. A fresh
    OpenCV detector is built on every `extract()` call, so one extractor can
    serve both images from different threads.
    """

    name = "base"
    metric: MatchMetric = MatchMetric.EUCLIDEAN_INDEX
    descriptor_dtype = np.float32
    honors_max_features = False

    def __init__(self, max_features: int = 2000):
        """
        Args:
            max_features: Upper bound on keypoints per image. Only honored by
                detectors with `honors_max_features`.
        """
        self.max_features = max_features

    def _create_detector(self) -> cv2.Feature2D:
        raise NotImplementedError

    def extract(self, image: np.ndarray) -> FeatureSet:
        """
        Detect keypoints and compute descriptors.

        Args:
            image: Input image (H, W, 3) BGR uint8, or (H, W) grayscale

        Returns:
            FeatureSet whose descriptors array has one row per keypoint.
            When nothing is detected the descriptors array is empty (0, D).
        """
        if image is None or image.size == 0:
            raise ValueError("Cannot extract features from an empty image")

        if len(image.shape) == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        else:
            gray = image

        detector = self._create_detector()
        keypoints, descriptors = detector.detectAndCompute(gray, None)

        if descriptors is None or len(keypoints) == 0:
            descriptors = np.empty((0, detector.descriptorSize()), dtype=self.descriptor_dtype)
            keypoints = ()

        logger.debug(f"{self.name}: {len(keypoints)} keypoints on {gray.shape[1]}x{gray.shape[0]} image")

        return FeatureSet(keypoints=tuple(keypoints), descriptors=descriptors)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name}, metric={self.metric.value})"


class FloatingDescriptorDetector(FeatureExtractor):
    """SIFT detector with float32 gradient-histogram descriptors"""

    name = "SIFT"
    metric = MatchMetric.EUCLIDEAN_INDEX
    descriptor_dtype = np.float32

    def _create_detector(self) -> cv2.Feature2D:
        return cv2.SIFT_create()


class BinaryDescriptorDetector(FeatureExtractor):
    """ORB or AKAZE detector with binary descriptors"""

    metric = MatchMetric.HAMMING
    descriptor_dtype = np.uint8
    ALGORITHMS = ("ORB", "AKAZE")

    def __init__(self, algorithm: str = "ORB", max_features: int = 2000):
        if algorithm not in self.ALGORITHMS:
            raise ConfigurationError(f"Unknown binary detector: {algorithm}")
        super().__init__(max_features=max_features)
        self.name = algorithm
        self.honors_max_features = algorithm == "ORB"
        if self.honors_max_features:
            self._factory = functools.partial(cv2.ORB_create, nfeatures=max_features)
        else:
            self._factory = cv2.AKAZE_create

    def _create_detector(self) -> cv2.Feature2D:
        return self._factory()


DETECTOR_NAMES: List[str] = ["SIFT", "ORB", "AKAZE"]

_FACTORIES: Dict[str, object] = {
    "SIFT": lambda max_features: FloatingDescriptorDetector(max_features=max_features),
    "ORB": lambda max_features: BinaryDescriptorDetector("ORB", max_features=max_features),
    "AKAZE": lambda max_features: BinaryDescriptorDetector("AKAZE", max_features=max_features),
}


def create_extractor(name: str, max_features: int = 2000) -> FeatureExtractor:
    """
    Build the extractor for a detector name

    Args:
        name: One of SIFT, ORB, AKAZE
        max_features: Keypoint cap (ORB only)

    Returns:
        FeatureExtractor variant for the name

    Raises:
        ConfigurationError: If the name is not a known detector
    """
    factory = _FACTORIES.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown detector: {name} (expected one of {', '.join(DETECTOR_NAMES)})"
        )
    return factory(max_features)
