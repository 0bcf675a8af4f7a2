"""
Image I/O for Pair Stitching

Decoding, encoding and output naming around the stitching pipeline.
The pipeline itself only ever sees decoded arrays.
"""

import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from .errors import ImageDecodeError, ImageNotFoundError, ImageWriteError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".jpg"


def resolve_image_path(name: Union[str, Path], images_dir: Union[str, Path, None] = None) -> Path:
    """
    Resolve a user-supplied image name

    Bare names without an extension get `.jpg` appended; relative names are
    looked up inside `images_dir` when it is given.
    """
    path = Path(name)
    if not path.suffix:
        path = path.with_suffix(DEFAULT_EXTENSION)
    if images_dir is not None and not path.is_absolute():
        path = Path(images_dir) / path
    return path


def load_image(path: Union[str, Path]) -> np.ndarray:
    """
    Load an image as 3-channel BGR uint8

    Raises:
        ImageNotFoundError: If the path does not exist
        ImageDecodeError: If OpenCV cannot decode the file
    """
    path = Path(path)
    if not path.exists():
        raise ImageNotFoundError(f"Image not found: {path.absolute()}")

    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None or image.size == 0:
        raise ImageDecodeError(f"Failed to decode image: {path.absolute()}")

    logger.debug(f"Loaded {path} ({image.shape[1]}x{image.shape[0]})")
    return image


def output_basename(left: Union[str, Path], right: Union[str, Path], detector: str) -> str:
    """`<left-stem>_<right-stem>_det-<detector>`"""
    return f"{Path(left).stem}_{Path(right).stem}_det-{detector}"


def unique_output_path(directory: Union[str, Path], basename: str, extension: str = ".png") -> Path:
    """First of `base.ext`, `base_1.ext`, `base_2.ext`, ... that does not exist"""
    directory = Path(directory)
    path = directory / f"{basename}{extension}"
    counter = 1
    while path.exists():
        path = directory / f"{basename}_{counter}{extension}"
        counter += 1
    return path


def write_image(
    image: np.ndarray,
    directory: Union[str, Path],
    basename: str,
    extension: str = ".png"
) -> Path:
    """
    Write an image without overwriting an existing file

    Args:
        image: Image to encode
        directory: Output folder, created if missing
        basename: File name without extension
        extension: File extension selecting the encoder

    Returns:
        Path the image was written to

    Raises:
        ImageWriteError: If encoding or writing fails
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    path = unique_output_path(directory, basename, extension)
    try:
        ok = cv2.imwrite(str(path), image)
    except cv2.error as e:
        raise ImageWriteError(f"Failed to save image at {path.absolute()}: {e}") from e

    if not ok:
        raise ImageWriteError(f"Failed to save image at {path.absolute()}")

    logger.info(f"Saved image at: {path.absolute()}")
    return path
