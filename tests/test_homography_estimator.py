#!/usr/bin/env python3
"""
Unit tests for RANSAC homography estimation
"""

import sys
import unittest
from pathlib import Path

import cv2
import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pairpano.errors import DegenerateGeometryError, InsufficientDataError
from pairpano.feature_extractor import FeatureSet
from pairpano.feature_matcher import Correspondence
from pairpano.homography_estimator import (
    HomographyEstimator,
    fit_homography,
    has_collinear_triple,
    project_points,
    reprojection_errors,
    update_num_iters,
)

KNOWN_H = np.array([
    [1.02, 0.03, 15.0],
    [-0.02, 0.98, -7.0],
    [1e-4, -5e-5, 1.0]
])


def sample_points(n: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.uniform(0, 400, size=(n, 2))


class TestFitHomography(unittest.TestCase):
    """Test the minimal/least-squares DLT fit"""

    def test_identity_from_unit_square(self):
        square = np.array([[0, 0], [3, 0], [3, 3], [0, 3]], dtype=float)
        H = fit_homography(square, square)
        np.testing.assert_allclose(H, np.eye(3), atol=1e-9)

    def test_recovers_known_homography(self):
        src = sample_points(12)
        dst = project_points(KNOWN_H, src)
        H = fit_homography(src, dst)
        np.testing.assert_allclose(H, KNOWN_H, rtol=1e-6, atol=1e-8)

    def test_collinear_points_rejected(self):
        line = np.array([[0, 1], [1, 3], [2, 5], [3, 7]], dtype=float)
        self.assertIsNone(fit_homography(line, line))

    def test_coincident_points_rejected(self):
        same = np.ones((4, 2))
        self.assertIsNone(fit_homography(same, same))

    def test_too_few_points(self):
        self.assertIsNone(fit_homography(np.zeros((3, 2)), np.zeros((3, 2))))


class TestHelpers(unittest.TestCase):

    def test_collinear_triple_detection(self):
        self.assertTrue(has_collinear_triple(np.array([[0, 0], [1, 1], [2, 2], [0, 5]], dtype=float)))
        self.assertFalse(has_collinear_triple(np.array([[0, 0], [4, 0], [4, 4], [0, 4]], dtype=float)))

    def test_reprojection_errors(self):
        src = np.array([[0.0, 0.0], [10.0, 0.0]])
        dst = np.array([[3.0, 4.0], [10.0, 0.0]])
        np.testing.assert_allclose(reprojection_errors(np.eye(3), src, dst), [5.0, 0.0])

    def test_update_num_iters(self):
        self.assertEqual(update_num_iters(0.995, 0.0, 2000), 0)
        self.assertEqual(update_num_iters(0.995, 1.0, 2000), 2000)
        half = update_num_iters(0.995, 0.5, 2000)
        self.assertGreater(half, 0)
        self.assertLess(half, 2000)


class TestHomographyEstimator(unittest.TestCase):
    """Test the RANSAC loop"""

    def setUp(self):
        self.src = sample_points(40, seed=1)
        self.dst = project_points(KNOWN_H, self.src)

    def test_clean_correspondences(self):
        result = HomographyEstimator(seed=0).estimate(self.src, self.dst)

        self.assertEqual(result.matrix.shape, (3, 3))
        self.assertAlmostEqual(result.matrix[2, 2], 1.0)
        self.assertNotAlmostEqual(np.linalg.det(result.matrix), 0.0)
        np.testing.assert_allclose(result.matrix, KNOWN_H, rtol=1e-5, atol=1e-7)
        self.assertTrue(result.inlier_mask.all())
        self.assertEqual(result.inlier_count, 40)
        self.assertEqual(result.inlier_ratio, 1.0)

    def test_outliers_are_flagged(self):
        rng = np.random.default_rng(5)
        dst = self.dst.copy()
        outliers = np.arange(0, 40, 4)
        dst[outliers] += rng.uniform(50, 100, size=(len(outliers), 2))

        result = HomographyEstimator(reproj_threshold=3.0, seed=0).estimate(self.src, dst)

        expected = np.ones(40, dtype=bool)
        expected[outliers] = False
        np.testing.assert_array_equal(result.inlier_mask, expected)
        np.testing.assert_allclose(result.matrix, KNOWN_H, rtol=1e-5, atol=1e-7)

    def test_same_seed_is_reproducible(self):
        rng = np.random.default_rng(9)
        dst = self.dst + rng.normal(0, 1.0, size=self.dst.shape)
        dst[::3] += 40.0

        first = HomographyEstimator(seed=42).estimate(self.src, dst)
        second = HomographyEstimator(seed=42).estimate(self.src, dst)

        np.testing.assert_array_equal(first.inlier_mask, second.inlier_mask)
        np.testing.assert_array_equal(first.matrix, second.matrix)
        self.assertEqual(first.iterations, second.iterations)

    def test_injected_generator_is_used(self):
        rng = np.random.default_rng(3)
        result = HomographyEstimator(rng=rng).estimate(self.src, self.dst)
        self.assertEqual(result.inlier_count, 40)

    def test_iteration_cap(self):
        rng = np.random.default_rng(2)
        dst = rng.uniform(0, 400, size=self.src.shape)
        dst[:8] = self.dst[:8]
        try:
            result = HomographyEstimator(max_iters=5, seed=0).estimate(self.src, dst)
            self.assertLessEqual(result.iterations, 5)
        except DegenerateGeometryError:
            pass

    def test_fewer_than_four_raises_insufficient_data(self):
        with self.assertRaises(InsufficientDataError) as ctx:
            HomographyEstimator(seed=0).estimate(self.src[:3], self.dst[:3])
        self.assertEqual(ctx.exception.achieved, 3)
        self.assertEqual(ctx.exception.required, 4)

    def test_collinear_raises_degenerate_geometry(self):
        xs = np.arange(10, dtype=float)
        line = np.stack([xs, 2 * xs + 1], axis=1)
        with self.assertRaises(DegenerateGeometryError) as ctx:
            HomographyEstimator(seed=0).estimate(line, line + 5.0)
        self.assertEqual(ctx.exception.stage, "homography")

    def test_mismatched_lengths(self):
        with self.assertRaises(ValueError):
            HomographyEstimator(seed=0).estimate(self.src[:5], self.dst[:6])

    def test_estimate_from_matches_maps_image2_to_image1(self):
        pts2 = sample_points(10, seed=4)
        pts1 = pts2 + np.array([10.0, 5.0])
        features1 = FeatureSet(
            keypoints=tuple(cv2.KeyPoint(float(x), float(y), 1.0) for x, y in pts1),
            descriptors=np.zeros((10, 32), dtype=np.uint8)
        )
        features2 = FeatureSet(
            keypoints=tuple(cv2.KeyPoint(float(x), float(y), 1.0) for x, y in pts2),
            descriptors=np.zeros((10, 32), dtype=np.uint8)
        )
        correspondences = [Correspondence(i, i, 0.0) for i in range(10)]

        result = HomographyEstimator(seed=0).estimate_from_matches(features1, features2, correspondences)

        expected = np.array([[1.0, 0.0, 10.0], [0.0, 1.0, 5.0], [0.0, 0.0, 1.0]])
        np.testing.assert_allclose(result.matrix, expected, atol=1e-3)

    def test_estimate_from_no_matches(self):
        with self.assertRaises(InsufficientDataError):
            HomographyEstimator(seed=0).estimate_from_matches(FeatureSet(), FeatureSet(), [])


if __name__ == '__main__':
    unittest.main()
