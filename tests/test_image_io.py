#!/usr/bin/env python3
"""
Unit tests for image loading, naming and writing
"""

import sys
import tempfile
import unittest
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from pairpano.errors import ImageDecodeError, ImageLoadError, ImageNotFoundError
from pairpano.image_io import (
    load_image,
    output_basename,
    resolve_image_path,
    unique_output_path,
    write_image,
)
from tests.synthetic import textured_image


class TestPaths(unittest.TestCase):

    def test_bare_name_gets_jpg(self):
        self.assertEqual(resolve_image_path("ship_1", "images"), Path("images/ship_1.jpg"))

    def test_extension_kept(self):
        self.assertEqual(resolve_image_path("a.png", "imgs"), Path("imgs/a.png"))

    def test_absolute_path_ignores_folder(self):
        self.assertEqual(resolve_image_path("/data/a.png", "imgs"), Path("/data/a.png"))

    def test_output_basename(self):
        name = output_basename(Path("images/ship_1.jpg"), Path("images/ship_2.jpg"), "AKAZE")
        self.assertEqual(name, "ship_1_ship_2_det-AKAZE")


class TestReadWrite(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_missing_file(self):
        with self.assertRaises(ImageNotFoundError):
            load_image(self.dir / "nope.jpg")

    def test_undecodable_file(self):
        path = self.dir / "garbage.jpg"
        path.write_bytes(b"definitely not an image")
        with self.assertRaises(ImageDecodeError) as ctx:
            load_image(path)
        self.assertIsInstance(ctx.exception, ImageLoadError)
        self.assertEqual(ctx.exception.stage, "io")

    def test_png_round_trip(self):
        image = textured_image(30, 40)
        path = write_image(image, self.dir / "out", "pano")

        self.assertEqual(path, self.dir / "out" / "pano.png")
        np.testing.assert_array_equal(load_image(path), image)

    def test_existing_files_not_overwritten(self):
        image = textured_image(10, 10)
        first = write_image(image, self.dir, "pano")
        second = write_image(image, self.dir, "pano")
        third = write_image(image, self.dir, "pano")

        self.assertEqual([p.name for p in (first, second, third)],
                         ["pano.png", "pano_1.png", "pano_2.png"])

    def test_unique_output_path(self):
        self.assertEqual(unique_output_path(self.dir, "x"), self.dir / "x.png")
        (self.dir / "x.png").touch()
        self.assertEqual(unique_output_path(self.dir, "x"), self.dir / "x_1.png")


if __name__ == '__main__':
    unittest.main()
