"""
Pixel <-> viewport coordinate conversion.

Pixel space: origin top-left, y grows downward.
Viewport space: normalized, origin bottom-left, v grows upward.
"""

from typing import Tuple

from .config import Detection, ViewportPoint


def _check_frame(frame_width: float, frame_height: float) -> None:
    if frame_width <= 0 or frame_height <= 0:
        raise ValueError(f"Frame size must be positive, got {frame_width}x{frame_height}")


class CoordinateMapper:
    """Maps a detection's box center into viewport coordinates (no clamping)."""

    @staticmethod
    def to_viewport(detection: Detection, frame_width: int, frame_height: int) -> ViewportPoint:
        _check_frame(frame_width, frame_height)
        cx, cy = detection.center
        u = cx / float(frame_width)
        v = 1.0 - cy / float(frame_height)
        return ViewportPoint(u, v)

    @staticmethod
    def to_pixel(point: ViewportPoint, frame_width: int, frame_height: int) -> Tuple[float, float]:
        """Inverse of to_viewport for a box center."""
        _check_frame(frame_width, frame_height)
        return (point.u * frame_width, (1.0 - point.v) * frame_height)
