"""
Stitching Errors

Error taxonomy for the two-image stitching pipeline. Every error names the
pipeline stage that raised it so failures can be reported and tuned
(scale, ratio threshold, RANSAC threshold) without reading a traceback.
"""

from typing import Optional


class StitchingError(Exception):
    """Base class for all pipeline failures"""

    stage = "pipeline"

    def __init__(self, message: str, stage: Optional[str] = None):
        if stage is not None:
            self.stage = stage
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class ConfigurationError(StitchingError, ValueError):
    """Unknown detector/seam finder name or out-of-range configuration value"""

    stage = "configuration"


class InsufficientDataError(StitchingError):
    """Not enough descriptors or correspondences to continue"""

    def __init__(self, message: str, stage: Optional[str] = None,
                 achieved: Optional[int] = None, required: Optional[int] = None):
        self.achieved = achieved
        self.required = required
        if achieved is not None and required is not None:
            message = f"{message} (got {achieved}, need at least {required})"
        super().__init__(message, stage)


class DegenerateGeometryError(StitchingError):
    """No usable homography could be fitted to the correspondences"""

    stage = "homography"


class SeamFindingUnavailable(StitchingError):
    """
    Seam labeling backend failed or is not available on this platform.

    Recoverable: the pipeline keeps the unmodified overlap masks.
    """

    stage = "seam"


class ImageLoadError(StitchingError):
    stage = "io"


class ImageNotFoundError(ImageLoadError):
    pass


class ImageDecodeError(ImageLoadError):
    pass


class ImageWriteError(StitchingError):
    stage = "io"
