"""
FastAPI routes for the Detection Anchoring API.
"""

import logging
from typing import Optional

import numpy as np
from fastapi import APIRouter, HTTPException

from frame_pipeline import AnchoringPipeline
from vision import (
    AnchorState,
    AnchoringConfig,
    MeshRaycaster,
    PinholeCamera,
    RawOutputBuffer,
    SuppressionEngine,
    TensorDecoder,
)

from .schemas import (
    AnchorInitRequest,
    AnchorStateResponse,
    AnchorStatusResponse,
    CameraModel,
    DecodeRequest,
    DecodeResponse,
    DetectionResult,
    FrameRequest,
    FrameResponse,
    HealthResponse,
    MeshRequest,
    PlaneRequest,
    SceneResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_buffer(values, shape, channels_first: bool) -> RawOutputBuffer:
    arr = np.asarray(values, dtype=np.float64)
    if shape:
        arr = arr.reshape(shape)  # ValueError on size mismatch
    return RawOutputBuffer.from_array(arr, channels_first=channels_first)


def _state_response(state: AnchorState) -> AnchorStateResponse:
    return AnchorStateResponse(
        visible=state.visible,
        position=list(state.position),
        orientation=list(state.orientation),
    )


# === Health ===

@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check API health."""
    return HealthResponse()


# === Decode ===

@router.post("/detect/decode", response_model=DecodeResponse, tags=["Detection"])
async def decode_buffer(request: DecodeRequest):
    """Decode a raw buffer and suppress overlapping detections."""
    try:
        buffer = _to_buffer(request.buffer, request.shape, request.channels_first)
        decoder = TensorDecoder(
            class_names=request.class_names,
            multi_class_layout=request.multi_class_layout,
            box_format=request.box_format,
        )
        detections = decoder.decode(
            buffer,
            request.frame_width,
            request.frame_height,
            input_size=request.input_size,
            conf_threshold=request.conf_threshold,
        )
        kept = SuppressionEngine(request.iou_threshold, request.top_k).suppress(detections)

        return DecodeResponse(
            detections=[
                DetectionResult(class_name=decoder.class_name(d.class_id), **d.to_dict())
                for d in kept
            ],
            detection_count_before_suppression=len(detections),
            error=decoder.last_error,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception as e:
        raise HTTPException(500, str(e))


# === Anchoring ===

# Global pipeline and scene
_pipeline: Optional[AnchoringPipeline] = None
_scene = MeshRaycaster()


def _get_pipeline() -> AnchoringPipeline:
    """Get or create the pipeline instance."""
    global _pipeline
    if _pipeline is None:
        _pipeline = AnchoringPipeline(AnchoringConfig())
    return _pipeline


def _scene_response() -> SceneResponse:
    names = [m.name for m in _scene.meshes]
    return SceneResponse(meshes=names, mesh_count=len(names))


def _status() -> AnchorStatusResponse:
    pipeline = _get_pipeline()
    return AnchorStatusResponse(
        initialized=pipeline.decoder.initialized,
        frame_count=pipeline.frame_count,
        anchor=_state_response(pipeline.anchor_state),
        scene_meshes=[m.name for m in _scene.meshes],
        config=pipeline.config.to_dict(),
    )


@router.post("/anchor/init", response_model=AnchorStatusResponse, tags=["Anchor"])
async def initialize_anchoring(request: AnchorInitRequest):
    """(Re)create the pipeline from configuration. The anchor starts hidden."""
    global _pipeline
    try:
        _pipeline = AnchoringPipeline(AnchoringConfig.from_dict(request.config))
        logger.info("[API] Anchoring pipeline reinitialized")
        return _status()
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception as e:
        raise HTTPException(500, str(e))


@router.get("/anchor/status", response_model=AnchorStatusResponse, tags=["Anchor"])
async def get_anchor_status():
    """Get current pipeline and anchor status."""
    return _status()


@router.post("/anchor/scene/mesh", response_model=SceneResponse, tags=["Anchor"])
async def add_scene_mesh(request: MeshRequest):
    """Add (or replace) a triangle mesh in the scene."""
    try:
        _scene.add_mesh(request.name, request.vertices, request.triangles, request.layer)
        return _scene_response()
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception as e:
        raise HTTPException(500, str(e))


@router.post("/anchor/scene/plane", response_model=SceneResponse, tags=["Anchor"])
async def add_scene_plane(request: PlaneRequest):
    """Add (or replace) a rectangle in the scene."""
    try:
        _scene.add_plane(
            request.name,
            center=request.center,
            normal=request.normal,
            width=request.width,
            height=request.height,
            up_hint=request.up_hint,
            layer=request.layer,
        )
        return _scene_response()
    except ValueError as e:
        raise HTTPException(400, str(e))
    except Exception as e:
        raise HTTPException(500, str(e))


@router.delete("/anchor/scene", response_model=SceneResponse, tags=["Anchor"])
async def clear_scene():
    """Remove all scene geometry."""
    _scene.clear()
    return _scene_response()


def _camera(model: Optional[CameraModel]) -> Optional[PinholeCamera]:
    if model is None:
        return None
    return PinholeCamera(
        position=model.position,
        orientation=model.orientation,
        fov_deg=model.fov_deg,
        aspect=model.aspect,
    )


@router.post("/anchor/frame", response_model=FrameResponse, tags=["Anchor"])
async def process_frame(request: FrameRequest):
    """Run one frame against the server-held scene."""
    try:
        pipeline = _get_pipeline()
        buffer = _to_buffer(request.buffer, request.shape, request.channels_first)
        camera = _camera(request.camera)
        # An empty scene counts as no geometry
        ray_caster = _scene if len(_scene) else None

        result = pipeline.process_frame(
            buffer,
            (request.frame_width, request.frame_height),
            camera=camera,
            ray_caster=ray_caster,
        )
        return FrameResponse(
            frame_id=result.frame_id,
            anchor=_state_response(result.anchor_state),
            diagnostics=result.diagnostics.to_dict(),
            errors=result.errors,
            timings_ms=result.timings_ms,
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    except RuntimeError as e:
        raise HTTPException(409, str(e))
    except Exception as e:
        raise HTTPException(500, str(e))


@router.delete("/anchor/reset", response_model=AnchorStatusResponse, tags=["Anchor"])
async def reset_anchor():
    """Hide the anchor and restart frame numbering."""
    try:
        _get_pipeline().reset()
        return _status()
    except Exception as e:
        raise HTTPException(500, str(e))
