"""
Decode Service for raw YOLO output.
Turns a flat inference buffer into detections in frame pixels.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_CLASS_NAMES, Detection, RawOutputBuffer

logger = logging.getLogger(__name__)

BOX_FEATURES = 4  # cx, cy, w, h
BOX_FORMATS = ("auto", "pixels", "normalized")
# auto: kept boxes up to this magnitude are read as normalized
NORMALIZED_BOX_LIMIT = 2.0


class ConfigurationError(ValueError):
    """Decoder cannot interpret the buffer (uninitialized or wrong stride)."""


class ScoringStrategy(ABC):
    """Turns the per-slot feature rows into (scores, class_ids)."""

    def __init__(self, num_classes: int):
        self.num_classes = num_classes

    @property
    @abstractmethod
    def feature_stride(self) -> int:
        """Number of floats per detection slot."""
        pass

    @abstractmethod
    def score(self, features: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Score an (N, stride) feature matrix."""
        pass


class SingleClassScoring(ScoringStrategy):
    """Fifth value is the final score; every slot is class 0."""

    def __init__(self):
        super().__init__(1)

    @property
    def feature_stride(self) -> int:
        return BOX_FEATURES + 1

    def score(self, features: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        scores = features[:, BOX_FEATURES]
        return scores, np.zeros(len(scores), dtype=np.int64)


class MultiClassScoring(ScoringStrategy):
    """
    Packed 4 + n rows: objectness at offset 4, class probabilities from offset 5.

    The last class probability would sit one past the slot, so it reads as
    zero. Exports that carry every probability should use the objectness_row
    or class_scores layout.
    """

    @property
    def feature_stride(self) -> int:
        return BOX_FEATURES + self.num_classes

    def score(self, features: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        objectness = features[:, BOX_FEATURES:BOX_FEATURES + 1]
        probs = np.zeros((len(features), self.num_classes))
        packed = features[:, BOX_FEATURES + 1:]
        probs[:, :packed.shape[1]] = packed
        return _best_class(objectness * probs)


class ObjectnessRowScoring(ScoringStrategy):
    """5 + n rows: objectness followed by every class probability."""

    @property
    def feature_stride(self) -> int:
        return BOX_FEATURES + 1 + self.num_classes

    def score(self, features: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        objectness = features[:, BOX_FEATURES:BOX_FEATURES + 1]
        probs = features[:, BOX_FEATURES + 1:BOX_FEATURES + 1 + self.num_classes]
        return _best_class(objectness * probs)


class ClassScoresScoring(ScoringStrategy):
    """Anchor-free exports: the values after the box are class scores."""

    @property
    def feature_stride(self) -> int:
        return BOX_FEATURES + self.num_classes

    def score(self, features: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        return _best_class(features[:, BOX_FEATURES:BOX_FEATURES + self.num_classes])


def _best_class(combined: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    # argmax returns the lowest index on ties
    class_ids = np.argmax(combined, axis=1)
    scores = combined[np.arange(len(combined)), class_ids]
    return scores, class_ids


MULTI_CLASS_LAYOUTS = {
    "packed": MultiClassScoring,
    "objectness_row": ObjectnessRowScoring,
    "class_scores": ClassScoresScoring,
}


def build_scoring(num_classes: int, layout: str = "packed") -> Optional[ScoringStrategy]:
    """Pick the scoring variant for a class count (None if uninitialized)."""
    if layout not in MULTI_CLASS_LAYOUTS:
        raise ValueError(f"Unknown multi_class_layout: {layout}")
    if num_classes <= 0:
        return None
    if num_classes == 1:
        return SingleClassScoring()
    return MULTI_CLASS_LAYOUTS[layout](num_classes)


class TensorDecoder:
    """
    Decodes raw detector output into frame-pixel detections.

    The scoring variant is chosen once, when the class list is loaded.

    Example:
        decoder = TensorDecoder(class_names=["faucet"])
        dets = decoder.decode(buffer, 1280, 720, input_size=640, conf_threshold=0.1)
    """

    def __init__(
        self,
        class_names: Optional[Sequence[str]] = None,
        num_classes: Optional[int] = None,
        multi_class_layout: str = "packed",
        box_format: str = "auto",
    ):
        if box_format not in BOX_FORMATS:
            raise ValueError(f"Unknown box_format: {box_format}")
        if multi_class_layout not in MULTI_CLASS_LAYOUTS:
            raise ValueError(f"Unknown multi_class_layout: {multi_class_layout}")
        self.multi_class_layout = multi_class_layout
        self.box_format = box_format
        self.class_names: List[str] = []
        self.num_classes = -1
        self._scoring: Optional[ScoringStrategy] = None
        self.last_error: Optional[str] = None

        if class_names is not None:
            self.initialize(class_names)
        elif num_classes is not None:
            self.initialize([str(i) for i in range(num_classes)])

    @property
    def initialized(self) -> bool:
        return self._scoring is not None

    @property
    def scoring(self) -> Optional[ScoringStrategy]:
        return self._scoring

    def initialize(self, class_names: Optional[Sequence[str]] = None) -> None:
        """Load the class list and select the scoring variant."""
        names = list(class_names) if class_names is not None else list(DEFAULT_CLASS_NAMES)
        self.class_names = names
        self.num_classes = len(names)
        self._scoring = build_scoring(self.num_classes, self.multi_class_layout)
        if self._scoring is None:
            logger.error("[Decoder] Empty class list; decoder stays uninitialized")
        else:
            logger.info(
                f"[Decoder] {self.num_classes} classes, "
                f"{type(self._scoring).__name__}, stride {self._scoring.feature_stride}"
            )

    def class_name(self, class_id: int) -> str:
        if 0 <= class_id < len(self.class_names):
            return self.class_names[class_id]
        return str(class_id)

    def _feature_rows(self, buffer: Any) -> np.ndarray:
        if self._scoring is None:
            raise ConfigurationError("NumClasses was not initialized")

        if isinstance(buffer, RawOutputBuffer):
            data = buffer.data
        else:
            data = np.asarray(buffer, dtype=np.float64).reshape(-1)

        stride = self._scoring.feature_stride
        if data.size % stride != 0:
            raise ConfigurationError(
                f"Tensor length({data.size}) is not divisible by feature stride {stride}. "
                f"Check the ONNX export or numClasses ({self.num_classes})."
            )
        return data.reshape(-1, stride)

    def _is_normalized(self, kept_boxes: np.ndarray) -> bool:
        """Decide box units from the slots that survived the confidence filter."""
        if self.box_format == "normalized":
            return True
        if self.box_format == "pixels" or kept_boxes.size == 0:
            return False
        # Normalized edge boxes overshoot 1.0 slightly
        return float(np.max(np.abs(kept_boxes))) <= NORMALIZED_BOX_LIMIT

    def decode(
        self,
        buffer: Any,
        frame_width: int,
        frame_height: int,
        input_size: int = 640,
        conf_threshold: float = 0.1,
    ) -> List[Detection]:
        """
        Decode a raw buffer into detections.

        Args:
            buffer: RawOutputBuffer or any flat/N-d numeric array.
            frame_width: Width of the source frame in pixels.
            frame_height: Height of the source frame in pixels.
            input_size: Square model input resolution.
            conf_threshold: Slots scoring below this are dropped.

        Returns:
            Detections in slot order. Empty on configuration errors.
        """
        self.last_error = None
        try:
            features = self._feature_rows(buffer)
        except ConfigurationError as e:
            self.last_error = str(e)
            logger.error(f"[Decoder] {e}")
            return []

        if features.shape[0] == 0:
            return []

        scores, class_ids = self._scoring.score(features)
        keep = np.flatnonzero(scores >= conf_threshold)
        if keep.size == 0:
            return []

        boxes = features[keep, :BOX_FEATURES].astype(np.float64)
        if self._is_normalized(boxes):
            boxes = boxes * input_size

        scale_x = frame_width / float(input_size)
        scale_y = frame_height / float(input_size)

        cx, cy, w, h = (boxes[:, i] for i in range(BOX_FEATURES))
        x1 = (cx - w / 2) * scale_x
        y1 = (cy - h / 2) * scale_y
        x2 = (cx + w / 2) * scale_x
        y2 = (cy + h / 2) * scale_y

        detections = [
            Detection(
                x1=float(x1[i]),
                y1=float(y1[i]),
                x2=float(x2[i]),
                y2=float(y2[i]),
                score=float(scores[idx]),
                class_id=int(class_ids[idx]),
            )
            for i, idx in enumerate(keep)
        ]
        logger.debug(
            f"[Decoder] slots={features.shape[0]} kept={len(detections)} "
            f"threshold={conf_threshold}"
        )
        return detections
