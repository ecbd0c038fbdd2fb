"""
Detection-to-Anchor Vision Layer

Decodes raw detector output, suppresses overlapping boxes, picks the target
candidate and maps it into viewport space for anchor placement.

Example usage:
    from vision import (
        TensorDecoder, SuppressionEngine, CandidateSelector, CoordinateMapper,
    )

    decoder = TensorDecoder(class_names=["faucet"])
    dets = decoder.decode(buffer, 1280, 720, input_size=640, conf_threshold=0.1)
    final = SuppressionEngine(iou_threshold=0.45, top_k=100).suppress(dets)
    best = CandidateSelector(target_class_id=0, min_score=0.4).select(final)
    if best is not None:
        point = CoordinateMapper.to_viewport(best, 1280, 720)
"""

__version__ = "0.1.0"

# Configuration and value types
from .config import (
    AbsencePolicy,
    AnchoringConfig,
    DecoderConfig,
    Detection,
    FrameMetadata,
    OrientationMode,
    PlacementConfig,
    RawOutputBuffer,
    SelectionConfig,
    SuppressionConfig,
    ViewportPoint,
    load_class_names,
)

# Stages
from .decode_service import (
    ClassScoresScoring,
    ConfigurationError,
    MultiClassScoring,
    ObjectnessRowScoring,
    SingleClassScoring,
    TensorDecoder,
)
from .suppression_service import SuppressionEngine, iou, non_max_suppression
from .selection_service import CandidateSelector
from .coordinate_service import CoordinateMapper

# Anchoring
from .anchor import (
    AnchorState,
    MeshRaycaster,
    PinholeCamera,
    Ray,
    RayCaster,
    RayHit,
    SpatialAnchorPlacer,
)

__all__ = [
    # Version
    "__version__",
    # Configs
    "AbsencePolicy",
    "AnchoringConfig",
    "DecoderConfig",
    "OrientationMode",
    "PlacementConfig",
    "SelectionConfig",
    "SuppressionConfig",
    "load_class_names",
    # Value types
    "Detection",
    "FrameMetadata",
    "RawOutputBuffer",
    "ViewportPoint",
    # Stages
    "TensorDecoder",
    "ConfigurationError",
    "SingleClassScoring",
    "MultiClassScoring",
    "ObjectnessRowScoring",
    "ClassScoresScoring",
    "SuppressionEngine",
    "iou",
    "non_max_suppression",
    "CandidateSelector",
    "CoordinateMapper",
    # Anchoring
    "AnchorState",
    "SpatialAnchorPlacer",
    "PinholeCamera",
    "Ray",
    "RayHit",
    "RayCaster",
    "MeshRaycaster",
]
