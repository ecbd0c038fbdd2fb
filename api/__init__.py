"""
Detection Anchoring API

FastAPI routes for buffer decoding and frame-by-frame anchor placement.

Example:
    from api import router
    app = FastAPI()
    app.include_router(router)
"""

from .routes import router
from .schemas import (
    DecodeRequest,
    DecodeResponse,
    FrameRequest,
    FrameResponse,
    AnchorInitRequest,
    AnchorStatusResponse,
    MeshRequest,
    PlaneRequest,
    SceneResponse,
)

__all__ = [
    "router",
    "DecodeRequest",
    "DecodeResponse",
    "FrameRequest",
    "FrameResponse",
    "AnchorInitRequest",
    "AnchorStatusResponse",
    "MeshRequest",
    "PlaneRequest",
    "SceneResponse",
]
