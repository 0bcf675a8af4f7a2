#!/usr/bin/env python3
"""
Unit tests for the statistics report image
"""

import sys
import unittest
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pairpano.config_manager import StitchConfig
from pairpano.match_report import PANEL_COLOR, PANEL_HEIGHT, render_match_report, stats_lines
from pairpano.pair_stitcher import PairStitcher
from tests.synthetic import overlapping_pair


class TestMatchReport(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.config = StitchConfig(seed=0, scale=1.0)
        cls.left, cls.right = overlapping_pair(seed=1)
        cls.result = PairStitcher(cls.config).stitch(cls.left, cls.right)

    def test_layout(self):
        report = render_match_report(self.left, self.right, self.result, self.config)

        self.assertEqual(report.shape, (PANEL_HEIGHT + 240, 400, 3))
        self.assertEqual(report.dtype, np.uint8)
        # bottom-right panel corner is untouched background
        np.testing.assert_array_equal(report[PANEL_HEIGHT - 2, -2], PANEL_COLOR)

    def test_lines_mention_counts(self):
        text = "\n".join(line[0] for line in stats_lines(self.result, self.config, ("a.jpg", "b.jpg")))
        stats = self.result.stats

        self.assertIn("Detector: SIFT", text)
        self.assertIn("a.jpg", text)
        self.assertIn(f"Good Matches (ratio=0.75): {stats.good_matches}", text)
        self.assertIn(f"RANSAC Inliers: {stats.inliers} ({stats.inlier_percent}%)", text)


if __name__ == '__main__':
    unittest.main()
