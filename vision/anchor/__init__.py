"""
Anchor Module - ray-cast placement of a persistent spatial anchor.

Casts a ray from the observer through a viewport point against environment
geometry and keeps a single anchor's pose and visibility across frames.
"""

from .anchor_service import (
    AnchorState,
    PlacementResult,
    SpatialAnchorPlacer,
    face_observer_rotation,
)
from .geometry import (
    MeshRaycaster,
    PinholeCamera,
    Ray,
    RayCaster,
    RayHit,
    SceneMesh,
    look_rotation,
    quaternion_to_matrix,
    rotate_vector,
)

__all__ = [
    "AnchorState",
    "PlacementResult",
    "SpatialAnchorPlacer",
    "face_observer_rotation",
    "MeshRaycaster",
    "PinholeCamera",
    "Ray",
    "RayCaster",
    "RayHit",
    "SceneMesh",
    "look_rotation",
    "quaternion_to_matrix",
    "rotate_vector",
]
