"""
Anchoring Pipeline.

Chains decode, suppression, selection, viewport mapping and placement for one
frame at a time, and owns the anchor state between frames.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from vision.anchor import (
    AnchorState,
    PinholeCamera,
    PlacementResult,
    RayCaster,
    RayHit,
    SpatialAnchorPlacer,
    rotate_vector,
)
from vision.anchor.anchor_service import OUTCOME_NO_DETECTION
from vision.config import (
    AnchoringConfig,
    DecoderConfig,
    Detection,
    FrameMetadata,
    ViewportPoint,
    as_frame,
)
from vision.coordinate_service import CoordinateMapper
from vision.decode_service import TensorDecoder
from vision.selection_service import CandidateSelector
from vision.suppression_service import SuppressionEngine

from .base import FunctionStage, Pipeline, PipelineContext, PipelineStage

logger = logging.getLogger(__name__)

OUTCOME_ERROR = "error"

# Context keys
FRAME = "frame"
CAMERA = "camera"
RAY_CASTER = "ray_caster"
PRIOR_STATE = "prior_state"
COUNT_BEFORE = "detection_count_before_suppression"
COUNT_AFTER = "detection_count_after_suppression"
CHOSEN = "chosen_detection"
VIEWPORT_POINT = "viewport_point"
PLACEMENT = "placement"


def _fmt_vec(v: Optional[Any]) -> str:
    if v is None:
        return "-"
    return "(" + ", ".join(f"{float(c):.3f}" for c in v) + ")"


@dataclass
class FrameDiagnostics:
    """What happened in one frame, for logs and debug overlays."""
    detection_count_before_suppression: int = 0
    detection_count_after_suppression: int = 0
    chosen_detection: Optional[Detection] = None
    chosen_class_name: Optional[str] = None
    viewport_point: Optional[ViewportPoint] = None
    hit: Optional[RayHit] = None
    outcome: str = OUTCOME_NO_DETECTION
    anchor_position: Optional[Tuple[float, float, float]] = None
    camera_position: Optional[Tuple[float, float, float]] = None
    facing_dot: Optional[float] = None  # anchor forward . direction to camera

    def to_dict(self) -> Dict[str, Any]:
        hit = None
        if self.hit is not None:
            hit = {
                "point": [float(c) for c in self.hit.point],
                "normal": [float(c) for c in self.hit.normal],
                "distance": self.hit.distance,
                "collider": self.hit.collider,
            }
        return {
            "detection_count_before_suppression": self.detection_count_before_suppression,
            "detection_count_after_suppression": self.detection_count_after_suppression,
            "chosen_detection": self.chosen_detection.to_dict() if self.chosen_detection else None,
            "chosen_class_name": self.chosen_class_name,
            "viewport_point": list(self.viewport_point.as_tuple()) if self.viewport_point else None,
            "hit": hit,
            "outcome": self.outcome,
            "anchor_position": list(self.anchor_position) if self.anchor_position else None,
            "camera_position": list(self.camera_position) if self.camera_position else None,
            "facing_dot": self.facing_dot,
        }

    def format(self) -> str:
        lines = [
            f"outcome: {self.outcome}",
            f"detections: {self.detection_count_before_suppression} -> "
            f"{self.detection_count_after_suppression} after NMS",
        ]
        if self.chosen_detection is not None:
            d = self.chosen_detection
            lines.append(
                f"chosen: {self.chosen_class_name or d.class_id} {d.score:.2f} "
                f"[{d.x1:.1f}, {d.y1:.1f}, {d.x2:.1f}, {d.y2:.1f}]"
            )
        if self.viewport_point is not None:
            lines.append(f"uv: ({self.viewport_point.u:.3f}, {self.viewport_point.v:.3f})")
        if self.hit is not None:
            lines.append(f"hit pos: {_fmt_vec(self.hit.point)}")
            lines.append(f"hit normal: {_fmt_vec(self.hit.normal)}")
            lines.append(f"distance: {self.hit.distance:.3f}")
        lines.append(f"anchor pos: {_fmt_vec(self.anchor_position)}")
        lines.append(f"cam pos: {_fmt_vec(self.camera_position)}")
        if self.facing_dot is not None:
            lines.append(f"dot(fwd, toCam): {self.facing_dot:.3f}")
        return "\n".join(lines)


@dataclass
class FrameResult:
    """Result from one pipeline step."""
    frame_id: int
    anchor_state: AnchorState
    diagnostics: FrameDiagnostics
    errors: List[str] = field(default_factory=list)
    timings_ms: Dict[str, float] = field(default_factory=dict)
    total_time_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors


class DecodeStage(PipelineStage):
    """Raw buffer -> detections in frame pixels."""

    def __init__(self, decoder: TensorDecoder, config: Optional[DecoderConfig] = None):
        self.decoder = decoder
        self.config = config or DecoderConfig()

    @property
    def name(self) -> str:
        return "decode"

    def process(self, buffer: Any, context: PipelineContext) -> List[Detection]:
        frame: FrameMetadata = context.get(FRAME)
        detections = self.decoder.decode(
            buffer,
            frame.width,
            frame.height,
            input_size=self.config.input_size,
            conf_threshold=self.config.conf_threshold,
        )
        if self.decoder.last_error:
            context.add_error(f"[{self.name}] {self.decoder.last_error}")
        context.set(COUNT_BEFORE, len(detections))
        return detections


class SuppressionStage(PipelineStage):
    """Non-maximum suppression."""

    def __init__(self, engine: SuppressionEngine):
        self.engine = engine

    @property
    def name(self) -> str:
        return "suppress"

    def process(self, detections: List[Detection], context: PipelineContext) -> List[Detection]:
        kept = self.engine.suppress(detections)
        context.set(COUNT_AFTER, len(kept))
        return kept


class SelectionStage(PipelineStage):
    """Pick the single target detection (or none)."""

    def __init__(self, selector: CandidateSelector):
        self.selector = selector

    @property
    def name(self) -> str:
        return "select"

    def process(self, detections: List[Detection], context: PipelineContext) -> Optional[Detection]:
        chosen = self.selector.select(detections)
        context.set(CHOSEN, chosen)
        return chosen


class PlacementStage(PipelineStage):
    """Viewport point -> placement against the frame's camera and geometry."""

    def __init__(self, placer: SpatialAnchorPlacer):
        self.placer = placer

    @property
    def name(self) -> str:
        return "place"

    def process(self, point: Optional[ViewportPoint], context: PipelineContext) -> PlacementResult:
        result = self.placer.place_detailed(
            point,
            context.get(RAY_CASTER),
            context.get(CAMERA),
            context.get(PRIOR_STATE, AnchorState.hidden()),
        )
        context.set(PLACEMENT, result)
        return result


def create_viewport_stage(debug_point: Optional[Tuple[float, float]] = None) -> FunctionStage:
    """Detection center -> viewport point; a debug point replaces it when set."""
    override = ViewportPoint(*debug_point) if debug_point is not None else None

    def to_viewport(detection: Optional[Detection], context: PipelineContext) -> Optional[ViewportPoint]:
        if override is not None:
            point = override
        elif detection is None:
            point = None
        else:
            frame: FrameMetadata = context.get(FRAME)
            point = CoordinateMapper.to_viewport(detection, frame.width, frame.height)
        context.set(VIEWPORT_POINT, point)
        return point

    return FunctionStage("viewport", to_viewport)


class AnchoringPipeline:
    """
    Detection-to-anchor pipeline driven explicitly once per frame.

    Example:
        scene = MeshRaycaster()
        scene.add_plane("wall", center=(0, 0, 2), normal=(0, 0, -1), width=4, height=3)
        pipeline = AnchoringPipeline(
            AnchoringConfig.from_yaml("resources/anchoring.yaml"),
            camera=PinholeCamera(),
            ray_caster=scene,
        )

        for buffer in model_outputs:
            result = pipeline.process_frame(buffer, (1280, 720))
            if result.anchor_state.visible:
                draw(result.anchor_state.position)
    """

    def __init__(
        self,
        config: Optional[AnchoringConfig] = None,
        decoder: Optional[TensorDecoder] = None,
        suppression: Optional[SuppressionEngine] = None,
        selector: Optional[CandidateSelector] = None,
        placer: Optional[SpatialAnchorPlacer] = None,
        camera: Optional[PinholeCamera] = None,
        ray_caster: Optional[RayCaster] = None,
    ):
        self.config = config or AnchoringConfig()
        cfg = self.config

        self.decoder = decoder or TensorDecoder(
            class_names=cfg.decoder.class_names,
            multi_class_layout=cfg.decoder.multi_class_layout,
            box_format=cfg.decoder.box_format,
        )
        self.suppression = suppression or SuppressionEngine.from_config(cfg.suppression)
        self.selector = selector or CandidateSelector.from_config(cfg.selection)
        self.placer = placer or SpatialAnchorPlacer(cfg.placement)
        self.camera = camera
        self.ray_caster = ray_caster

        self.pipeline = Pipeline([
            DecodeStage(self.decoder, cfg.decoder),
            SuppressionStage(self.suppression),
            SelectionStage(self.selector),
            create_viewport_stage(cfg.debug_viewport_point),
            PlacementStage(self.placer),
        ])

        self._state = AnchorState.hidden()
        self._frame_count = 0
        self._busy = False
        logger.info(f"[AnchoringPipeline] Stages: {self.pipeline.name}")

    @property
    def anchor_state(self) -> AnchorState:
        return self._state

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def process_frame(
        self,
        buffer: Any,
        frame: Any,
        camera: Optional[PinholeCamera] = None,
        ray_caster: Optional[RayCaster] = None,
    ) -> FrameResult:
        """
        Run one frame through the pipeline and update the anchor.

        Args:
            buffer: Raw model output (RawOutputBuffer or array).
            frame: FrameMetadata or (width, height) of the source frame.
            camera: Overrides the injected camera for this frame.
            ray_caster: Overrides the injected geometry for this frame.

        Returns:
            FrameResult with the new anchor state and diagnostics.

        Raises:
            RuntimeError: If called while a frame is already in progress.
            ValueError: If the frame size is not positive.
        """
        if self._busy:
            raise RuntimeError("process_frame is already running; one frame at a time")

        self._busy = True
        try:
            return self._step(buffer, as_frame(frame), camera, ray_caster)
        finally:
            self._busy = False

    def _step(
        self,
        buffer: Any,
        frame: FrameMetadata,
        camera: Optional[PinholeCamera],
        ray_caster: Optional[RayCaster],
    ) -> FrameResult:
        start_time = time.perf_counter()
        self._frame_count += 1
        camera = camera if camera is not None else self.camera
        ray_caster = ray_caster if ray_caster is not None else self.ray_caster

        context = PipelineContext()
        context.set(FRAME, frame)
        context.set(CAMERA, camera)
        context.set(RAY_CASTER, ray_caster)
        context.set(PRIOR_STATE, self._state)

        try:
            placement: PlacementResult = self.pipeline.run(buffer, context)
            self._state = placement.state
            outcome = placement.outcome
        except Exception as e:
            # Anchor keeps its previous state for this frame
            logger.error(f"[AnchoringPipeline] Frame {self._frame_count} failed: {e}")
            placement = None
            outcome = OUTCOME_ERROR

        diagnostics = self._diagnostics(context, placement, outcome, camera)
        logger.debug(f"[AnchoringPipeline] Frame {self._frame_count}\n{diagnostics.format()}")

        return FrameResult(
            frame_id=self._frame_count,
            anchor_state=self._state,
            diagnostics=diagnostics,
            errors=list(context.errors),
            timings_ms=dict(context.timings_ms),
            total_time_ms=(time.perf_counter() - start_time) * 1000,
        )

    def _diagnostics(
        self,
        context: PipelineContext,
        placement: Optional[PlacementResult],
        outcome: str,
        camera: Optional[PinholeCamera],
    ) -> FrameDiagnostics:
        chosen = context.get(CHOSEN)
        diag = FrameDiagnostics(
            detection_count_before_suppression=context.get(COUNT_BEFORE, 0),
            detection_count_after_suppression=context.get(COUNT_AFTER, 0),
            chosen_detection=chosen,
            chosen_class_name=self.decoder.class_name(chosen.class_id) if chosen else None,
            viewport_point=context.get(VIEWPORT_POINT),
            hit=placement.hit if placement else None,
            outcome=outcome,
        )
        if camera is not None:
            diag.camera_position = tuple(float(c) for c in camera.position)

        state = self._state
        if state.visible:
            diag.anchor_position = state.position
            if camera is not None:
                to_cam = camera.position - np.asarray(state.position)
                norm = np.linalg.norm(to_cam)
                if norm > 0:
                    forward = rotate_vector(state.orientation, (0.0, 0.0, 1.0))
                    diag.facing_dot = float(np.dot(forward, to_cam / norm))
        return diag

    def reset(self) -> None:
        """Hide the anchor and restart frame numbering."""
        self._state = SpatialAnchorPlacer.hide(self._state)
        self._frame_count = 0
        logger.info("[AnchoringPipeline] Reset")
