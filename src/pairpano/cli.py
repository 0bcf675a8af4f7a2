#!/usr/bin/env python3
"""
Stitch two overlapping photographs into a panorama

Usage:
    pairpano ship_1 ship_2 \
        --images-dir images \
        --detector ORB \
        --scale 0.5 \
        --ratio 0.7 \
        --ransac-threshold 4.0
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import cv2

from .config_manager import StitchConfigManager
from .errors import ConfigurationError, ImageWriteError, StitchingError
from .feature_extractor import DETECTOR_NAMES
from .image_io import load_image, output_basename, resolve_image_path, write_image
from .match_report import render_match_report
from .pair_stitcher import PairStitcher, scale_image

logger = logging.getLogger("pairpano")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Stitch two overlapping images into a single panorama'
    )

    parser.add_argument('left', help='Left image (name without extension resolves to .jpg)')
    parser.add_argument('right', help='Right image (name without extension resolves to .jpg)')
    parser.add_argument('--images-dir', default='images', help='Folder holding the input images')
    parser.add_argument('--output-dir', default=None,
                        help='Output folder (default: <images-dir>/stored_images)')
    parser.add_argument('--config', default=None, help='JSON configuration file')
    parser.add_argument('--detector', choices=DETECTOR_NAMES, default=None,
                        help='Feature detector (default: SIFT)')
    parser.add_argument('--scale', type=float, default=None,
                        help='Scale factor applied to both images (default: 0.25)')
    parser.add_argument('--no-ratio-test', action='store_true', help="Disable Lowe's ratio test")
    parser.add_argument('--ratio', type=float, default=None,
                        help="Lowe's ratio threshold (default: 0.75)")
    parser.add_argument('--ransac-threshold', type=float, default=None,
                        help='RANSAC reprojection threshold in pixels (default: 3.0)')
    parser.add_argument('--seed', type=int, default=None, help='Seed for RANSAC sampling')
    parser.add_argument('--show', action='store_true', help='Display the panorama and report')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    return parser


def config_overrides(args: argparse.Namespace) -> dict:
    """Translate command-line flags into a partial configuration document"""
    updates = {}
    if args.detector is not None:
        updates.setdefault('detector', {})['name'] = args.detector
    if args.scale is not None:
        updates.setdefault('preprocess', {})['scale'] = args.scale
    if args.no_ratio_test:
        updates.setdefault('matching', {})['use_ratio_test'] = False
    if args.ratio is not None:
        updates.setdefault('matching', {})['ratio_threshold'] = args.ratio
    if args.ransac_threshold is not None:
        updates.setdefault('ransac', {})['reproj_threshold'] = args.ransac_threshold
    if args.seed is not None:
        updates.setdefault('ransac', {})['seed'] = args.seed
    return updates


def write_outputs(panorama, report, output_dir: Path, basename: str) -> Tuple[Path, Path]:
    """
    Write the panorama and its statistics image as one unit

    Raises:
        ImageWriteError: If either image cannot be written; a panorama
            already on disk is removed again
    """
    panorama_path = write_image(panorama, output_dir, basename)
    try:
        report_path = write_image(report, output_dir, f"{basename}_stats")
    except ImageWriteError:
        panorama_path.unlink()
        raise
    return panorama_path, report_path


def _silence_opencv() -> None:
    utils = getattr(cv2, 'utils', None)
    cv_logging = getattr(utils, 'logging', None) if utils is not None else None
    if cv_logging is not None and hasattr(cv_logging, 'setLogLevel'):
        cv_logging.setLogLevel(cv_logging.LOG_LEVEL_SILENT)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    _silence_opencv()

    try:
        manager = StitchConfigManager(args.config, create_if_missing=False)
        overrides = config_overrides(args)
        if overrides:
            manager.update_config(overrides, persist=False)
        config = manager.get_stitch_config()
        stitcher = PairStitcher(config)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    left_path = resolve_image_path(args.left, args.images_dir)
    right_path = resolve_image_path(args.right, args.images_dir)
    output_dir = Path(args.output_dir) if args.output_dir else Path(args.images_dir) / 'stored_images'

    logger.info("--- Configuration ---")
    logger.info(f"Left image:  {left_path}")
    logger.info(f"Right image: {right_path}")
    logger.info(f"Detector: {config.detector} | Ratio test: {'ON' if config.use_ratio_test else 'OFF'}")
    logger.info(
        f"Scale: {config.scale} | Ratio threshold: {config.ratio_threshold} | "
        f"RANSAC threshold: {config.ransac_reproj_threshold}"
    )

    try:
        image1 = scale_image(load_image(left_path), config.scale)
        image2 = scale_image(load_image(right_path), config.scale)

        result = stitcher.stitch(image1, image2, scale=1.0)
        report = render_match_report(
            image1, image2, result, config, names=(left_path.name, right_path.name)
        )

        basename = output_basename(left_path, right_path, config.detector)
        write_outputs(result.panorama, report, output_dir, basename)
    except StitchingError as e:
        logger.error(f"Stitching failed: {e}")
        return 1

    logger.info(f"Statistics: {result.stats.to_dict()}")

    if args.show:
        cv2.imshow("Panorama", result.panorama)
        cv2.imshow("Statistics & Feature Matching", report)
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    return 0


if __name__ == '__main__':
    sys.exit(main())
