"""
Composable Frame Pipeline Module.

Example:
    from frame_pipeline import AnchoringPipeline

    pipeline = AnchoringPipeline(config, camera=camera, ray_caster=scene)
    result = pipeline.process_frame(buffer, (1280, 720))
    # result.anchor_state - pose and visibility of the anchor
    # result.diagnostics - counts, chosen detection, hit
"""

from .base import (
    PipelineStage,
    Pipeline,
    PipelineContext,
    FunctionStage,
)
from .anchor_pipeline import (
    AnchoringPipeline,
    DecodeStage,
    FrameDiagnostics,
    FrameResult,
    PlacementStage,
    SelectionStage,
    SuppressionStage,
    create_viewport_stage,
)

__all__ = [
    # Base abstractions
    "PipelineStage",
    "Pipeline",
    "PipelineContext",
    "FunctionStage",
    # Anchoring
    "AnchoringPipeline",
    "FrameResult",
    "FrameDiagnostics",
    "DecodeStage",
    "SuppressionStage",
    "SelectionStage",
    "PlacementStage",
    "create_viewport_stage",
]
