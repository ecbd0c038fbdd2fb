"""
Pydantic schemas for API request/response models.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from vision import __version__
from vision.anchor.geometry import DEFAULT_LAYER


# === Buffer Schemas ===

class BufferPayload(BaseModel):
    """Raw model output as a flat list of floats."""
    buffer: List[float] = Field(..., description="Flattened network output")
    shape: Optional[List[int]] = Field(None, description="Array shape, e.g. [1, 8400, 5]")
    channels_first: bool = Field(False, description="Output is (1, features, anchors)")
    frame_width: int = Field(..., gt=0, description="Source frame width in pixels")
    frame_height: int = Field(..., gt=0, description="Source frame height in pixels")


# === Decode Schemas ===

class DecodeRequest(BufferPayload):
    """Request to decode and suppress one raw buffer."""
    input_size: int = Field(640, gt=0)
    conf_threshold: float = Field(0.1, ge=0.0, le=1.0)
    iou_threshold: float = Field(0.45, ge=0.0, le=1.0)
    top_k: int = Field(100, ge=0)
    class_names: Optional[List[str]] = Field(None, description="Defaults to ['faucet']")
    multi_class_layout: str = Field("packed", description="packed, objectness_row or class_scores")
    box_format: str = Field("auto", description="auto, pixels or normalized")


class DetectionResult(BaseModel):
    """Single detection in frame pixels."""
    x1: float
    y1: float
    x2: float
    y2: float
    score: float
    class_id: int
    class_name: str


class DecodeResponse(BaseModel):
    """Decoded detections after suppression."""
    detections: List[DetectionResult]
    detection_count_before_suppression: int
    error: Optional[str] = None


# === Anchor Schemas ===

class AnchorInitRequest(BaseModel):
    """Pipeline configuration; sections mirror the YAML config file."""
    config: Dict[str, Any] = Field(default_factory=dict)


class AnchorStateResponse(BaseModel):
    """Anchor pose and visibility."""
    visible: bool
    position: List[float]  # [x, y, z]
    orientation: List[float]  # [w, x, y, z]


class AnchorStatusResponse(BaseModel):
    """Pipeline status."""
    initialized: bool
    frame_count: int
    anchor: AnchorStateResponse
    scene_meshes: List[str]
    config: Dict[str, Any]


class CameraModel(BaseModel):
    """Observer pose and projection for one frame."""
    position: List[float] = Field([0.0, 0.0, 0.0], min_length=3, max_length=3)
    orientation: List[float] = Field(
        [1.0, 0.0, 0.0, 0.0], min_length=4, max_length=4, description="Quaternion [w, x, y, z]"
    )
    fov_deg: float = Field(60.0, gt=0.0, lt=180.0, description="Vertical field of view")
    aspect: float = Field(16.0 / 9.0, gt=0.0, description="Width / height")


class FrameRequest(BufferPayload):
    """One pipeline step. Without a camera, placement is skipped."""
    camera: Optional[CameraModel] = None


class FrameResponse(BaseModel):
    """Result of one pipeline step."""
    frame_id: int
    anchor: AnchorStateResponse
    diagnostics: Dict[str, Any]
    errors: List[str] = []
    timings_ms: Dict[str, float] = {}


# === Scene Schemas ===

class MeshRequest(BaseModel):
    """Triangle mesh for the server-held scene."""
    name: str
    vertices: List[List[float]] = Field(..., description="[[x, y, z], ...]")
    triangles: List[List[int]] = Field(..., description="[[i, j, k], ...]")
    layer: str = Field(DEFAULT_LAYER)


class PlaneRequest(BaseModel):
    """Rectangle for the server-held scene."""
    name: str
    center: List[float] = Field(..., min_length=3, max_length=3)
    normal: List[float] = Field(..., min_length=3, max_length=3)
    width: float = Field(..., gt=0.0)
    height: float = Field(..., gt=0.0)
    up_hint: List[float] = Field([0.0, 1.0, 0.0], min_length=3, max_length=3)
    layer: str = Field(DEFAULT_LAYER)


class SceneResponse(BaseModel):
    """Meshes currently in the scene."""
    meshes: List[str]
    mesh_count: int


# === Health Check ===

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str = __version__
