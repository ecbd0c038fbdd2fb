"""
Suppression Service - greedy Non-Max Suppression over decoded detections.
"""

import logging
from typing import List, Optional, Sequence

from .config import Detection, SuppressionConfig

logger = logging.getLogger(__name__)


def iou(a: Detection, b: Detection) -> float:
    """
    Intersection over Union of two boxes.

    Degenerate or inverted boxes contribute no intersection; the result is 0
    whenever the union area is not positive.
    """
    xx1 = max(a.x1, b.x1)
    yy1 = max(a.y1, b.y1)
    xx2 = min(a.x2, b.x2)
    yy2 = min(a.y2, b.y2)

    inter = max(0.0, xx2 - xx1) * max(0.0, yy2 - yy1)
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def non_max_suppression(
    detections: Sequence[Detection],
    iou_threshold: float = 0.45,
    top_k: int = 100,
) -> List[Detection]:
    """
    Greedy NMS.

    Detections are visited by descending score (stable, so equal scores keep
    their input order). A detection is dropped when its IoU with any kept box
    is strictly above the threshold. Stops once top_k boxes are kept.
    """
    if top_k <= 0:
        return []

    ordered = sorted(detections, key=lambda d: -d.score)
    keep: List[Detection] = []
    for det in ordered:
        if any(iou(det, k) > iou_threshold for k in keep):
            continue
        keep.append(det)
        if len(keep) >= top_k:
            break
    return keep


class SuppressionEngine:
    """
    Stateless NMS with default thresholds.

    Example:
        engine = SuppressionEngine(iou_threshold=0.45, top_k=100)
        final = engine.suppress(detections)
    """

    def __init__(self, iou_threshold: float = 0.45, top_k: int = 100):
        self.iou_threshold = iou_threshold
        self.top_k = top_k

    @classmethod
    def from_config(cls, config: Optional[SuppressionConfig] = None) -> 'SuppressionEngine':
        config = config or SuppressionConfig()
        return cls(iou_threshold=config.iou_threshold, top_k=config.top_k)

    def suppress(
        self,
        detections: Sequence[Detection],
        iou_threshold: Optional[float] = None,
        top_k: Optional[int] = None,
    ) -> List[Detection]:
        threshold = self.iou_threshold if iou_threshold is None else iou_threshold
        limit = self.top_k if top_k is None else top_k
        kept = non_max_suppression(detections, threshold, limit)
        logger.debug(f"[NMS] {len(detections)} -> {len(kept)} (iou>{threshold}, top_k={limit})")
        return kept
