"""
Candidate selection - picks the single detection to anchor.
"""

from typing import Optional, Sequence

from .config import Detection, SelectionConfig


class CandidateSelector:
    """Best-scoring detection of the target class above a minimum score."""

    def __init__(self, target_class_id: int = 0, min_score: float = 0.4):
        self.target_class_id = target_class_id
        self.min_score = min_score

    @classmethod
    def from_config(cls, config: Optional[SelectionConfig] = None) -> 'CandidateSelector':
        config = config or SelectionConfig()
        return cls(target_class_id=config.target_class_id, min_score=config.min_score)

    def select(
        self,
        detections: Optional[Sequence[Detection]],
        target_class_id: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> Optional[Detection]:
        """
        Linear scan for the strictly highest score; first occurrence wins ties.

        Returns:
            The chosen detection, or None when nothing qualifies.
        """
        target = self.target_class_id if target_class_id is None else target_class_id
        threshold = self.min_score if min_score is None else min_score

        best: Optional[Detection] = None
        for det in detections or ():
            if det.class_id != target:
                continue
            if det.score < threshold:
                continue
            if best is None or det.score > best.score:
                best = det
        return best
