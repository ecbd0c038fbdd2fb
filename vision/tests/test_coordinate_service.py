"""
Tests for pixel <-> viewport mapping.
"""

import unittest

from vision.config import Detection, ViewportPoint
from vision.coordinate_service import CoordinateMapper


def _centered(cx, cy, half=10.0):
    return Detection(cx - half, cy - half, cx + half, cy + half, 0.9)


class TestCoordinateMapper(unittest.TestCase):
    """Tests for CoordinateMapper."""

    def test_upper_right_quadrant(self):
        """(960, 180) in 1280x720 maps to (0.75, 0.75)."""
        point = CoordinateMapper.to_viewport(_centered(960, 180), 1280, 720)
        self.assertAlmostEqual(point.u, 0.75)
        self.assertAlmostEqual(point.v, 0.75)

    def test_frame_center(self):
        """The frame center maps to (0.5, 0.5)."""
        point = CoordinateMapper.to_viewport(_centered(640, 360), 1280, 720)
        self.assertEqual(point.as_tuple(), (0.5, 0.5))

    def test_vertical_flip(self):
        """Pixel top is viewport top (v = 1)."""
        point = CoordinateMapper.to_viewport(Detection(0, 0, 0, 0, 1.0), 100, 100)
        self.assertEqual(point.as_tuple(), (0.0, 1.0))

    def test_not_clamped(self):
        """Centers outside the frame map outside [0, 1]."""
        point = CoordinateMapper.to_viewport(_centered(-64, 800), 1280, 720)
        self.assertLess(point.u, 0.0)
        self.assertLess(point.v, 0.0)

    def test_round_trip(self):
        """to_pixel inverts to_viewport."""
        for cx, cy in [(0, 0), (123.5, 456.25), (1280, 720), (960, 180)]:
            point = CoordinateMapper.to_viewport(_centered(cx, cy), 1280, 720)
            x, y = CoordinateMapper.to_pixel(point, 1280, 720)
            self.assertAlmostEqual(x, cx)
            self.assertAlmostEqual(y, cy)

    def test_invalid_frame(self):
        """Non-positive frame sizes are rejected."""
        with self.assertRaises(ValueError):
            CoordinateMapper.to_viewport(_centered(10, 10), 0, 720)
        with self.assertRaises(ValueError):
            CoordinateMapper.to_pixel(ViewportPoint(0.5, 0.5), 1280, -1)


if __name__ == '__main__':
    unittest.main()
