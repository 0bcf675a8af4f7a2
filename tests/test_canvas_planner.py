#!/usr/bin/env python3
"""
Unit tests for canvas planning
"""

import sys
import unittest
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pairpano.canvas_planner import image_corners, plan_canvas
from pairpano.homography_estimator import project_points


def translation(tx: float, ty: float) -> np.ndarray:
    return np.array([[1.0, 0.0, tx], [0.0, 1.0, ty], [0.0, 0.0, 1.0]])


class TestPlanCanvas(unittest.TestCase):

    def test_identity_keeps_image_size(self):
        plan = plan_canvas((80, 100, 3), (80, 100, 3), np.eye(3))

        self.assertEqual(plan.size, (100, 80))
        self.assertEqual(plan.image1_offset, (0, 0))
        np.testing.assert_allclose(plan.translation, np.eye(3))
        np.testing.assert_allclose(plan.homography, np.eye(3))

    def test_translation_to_the_right_and_up(self):
        plan = plan_canvas((80, 100, 3), (80, 100, 3), translation(30, -10))

        self.assertEqual((plan.width, plan.height), (130, 90))
        self.assertEqual((plan.min_x, plan.min_y), (0.0, -10.0))
        self.assertEqual(plan.image1_offset, (0, 10))
        np.testing.assert_allclose(plan.homography, translation(30, 0))

    def test_negative_offset_shifts_image1(self):
        plan = plan_canvas((50, 60, 3), (50, 60, 3), translation(-25.5, 0))

        self.assertEqual(plan.width, int(np.ceil(60 + 25.5)))
        self.assertEqual(plan.image1_offset, (25, 0))
        np.testing.assert_allclose(plan.translation, translation(25.5, 0))

    def test_all_corners_inside_canvas(self):
        rng = np.random.default_rng(0)
        h1, w1, h2, w2 = 120, 160, 100, 140
        for _ in range(50):
            H = np.eye(3)
            H[:2, :2] += rng.uniform(-0.2, 0.2, size=(2, 2))
            H[:2, 2] = rng.uniform(-150, 150, size=2)
            H[2, :2] = rng.uniform(-1e-4, 1e-4, size=2)

            plan = plan_canvas((h1, w1, 3), (h2, w2, 3), H)

            ox, oy = plan.image1_offset
            corners1 = image_corners(w1, h1) + np.array([ox, oy])
            corners2 = project_points(plan.homography, image_corners(w2, h2))
            for corners in (corners1, corners2):
                self.assertTrue(np.all(corners >= -1e-9))
                self.assertTrue(np.all(corners[:, 0] <= plan.width + 1e-6))
                self.assertTrue(np.all(corners[:, 1] <= plan.height + 1e-6))

            # last pixel centers land strictly inside [0, width) x [0, height)
            last1 = np.array([ox + w1 - 1, oy + h1 - 1])
            last2 = project_points(plan.homography, np.array([[w2 - 1.0, h2 - 1.0]]))[0]
            for point in (last1, last2):
                self.assertLess(point[0], plan.width)
                self.assertLess(point[1], plan.height)

            np.testing.assert_allclose(plan.image2_corners, corners2, atol=1e-9)

    def test_rejects_non_3x3(self):
        with self.assertRaises(ValueError):
            plan_canvas((10, 10, 3), (10, 10, 3), np.eye(2))


if __name__ == '__main__':
    unittest.main()
