"""
Inference Service for ONNX YOLO exports.
Runs the forward pass with OpenCV DNN and hands back a raw output buffer.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Sequence

import cv2
import numpy as np

from .config import RawOutputBuffer

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)


@dataclass
class InputLayout:
    """Model input layout; -1 means unknown."""
    is_nhwc: bool = False
    height: int = -1
    width: int = -1
    channels: int = -1

    @property
    def known(self) -> bool:
        return self.height > 0 and self.width > 0


def infer_input_layout(dims: Optional[Sequence[int]]) -> InputLayout:
    """
    Guess NHWC vs NCHW from an input tensor shape.

    A trailing 3 means NHWC (N, H, W, 3); otherwise a 4-d shape with 1 or 3
    in the second position is read as NCHW.
    """
    if not dims:
        return InputLayout()

    dims = [int(d) for d in dims]
    if dims[-1] == 3 and len(dims) >= 3:
        return InputLayout(is_nhwc=True, height=dims[-3], width=dims[-2], channels=3)

    if len(dims) >= 4 and dims[1] in (1, 3):
        return InputLayout(is_nhwc=False, height=dims[2], width=dims[3], channels=dims[1])

    return InputLayout()


class OnnxForwardPass:
    """
    Forward pass for an ONNX detector.

    Example:
        forward = OnnxForwardPass("resources/faucet.onnx", input_shape=(1, 3, 640, 640))
        buffer = forward(frame)  # RawOutputBuffer
    """

    def __init__(
        self,
        model_path: str,
        input_shape: Optional[Sequence[int]] = None,
        input_size: int = 640,
        normalize_input: bool = True,
    ):
        """
        Load an ONNX model.

        Args:
            model_path: Path to the .onnx file.
            input_shape: Model input shape, used to infer layout and size.
            input_size: Square input size when the shape is not given.
            normalize_input: Scale pixels from 0-255 to 0-1.

        Raises:
            FileNotFoundError: If model not found.
        """
        if not os.path.exists(model_path):
            raise FileNotFoundError(f"Model not found: {model_path}")

        self.layout = infer_input_layout(input_shape)
        self.input_size = max(self.layout.height, self.layout.width) if self.layout.known else input_size
        self.normalize_input = normalize_input
        self.model_path = model_path
        self.net = cv2.dnn.readNetFromONNX(model_path)
        logging.info(
            f"Model loaded from {model_path} "
            f"(input {self.input_size}x{self.input_size}, {'NHWC' if self.layout.is_nhwc else 'NCHW'})"
        )

    def make_input(self, frame: np.ndarray) -> np.ndarray:
        """BGR frame -> RGB blob resized to the square model input."""
        scale = 1.0 / 255.0 if self.normalize_input else 1.0
        blob = cv2.dnn.blobFromImage(
            frame,
            scalefactor=scale,
            size=(self.input_size, self.input_size),
            swapRB=True,
            crop=False,
        )
        if self.layout.is_nhwc:
            blob = np.ascontiguousarray(blob.transpose(0, 2, 3, 1))
        return blob

    def __call__(self, frame: np.ndarray) -> RawOutputBuffer:
        self.net.setInput(self.make_input(frame))
        output = np.asarray(self.net.forward())

        # (1, features, anchors) exports are transposed to one row per anchor
        channels_first = output.ndim == 3 and output.shape[1] < output.shape[2]
        return RawOutputBuffer.from_array(output, channels_first=channels_first)
