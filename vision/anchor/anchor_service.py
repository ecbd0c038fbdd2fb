"""
Anchor Service - places a persistent spatial anchor from a viewport point.

Casts a ray from the observer through the chosen detection's center against
environment geometry. A hit moves the anchor onto the surface; frames
without a detection, collaborator or hit fall back to the absence policy.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np

from ..config import AbsencePolicy, OrientationMode, PlacementConfig, ViewportPoint
from .geometry import (
    WORLD_UP,
    PinholeCamera,
    Ray,
    RayCaster,
    RayHit,
    look_rotation,
    normalize,
)

logger = logging.getLogger(__name__)

# Outcomes reported per frame
OUTCOME_HIT = "hit"
OUTCOME_MISS = "miss"
OUTCOME_NO_DETECTION = "no_detection"
OUTCOME_MISSING_DEPENDENCY = "missing_dependency"
OUTCOME_FORCED = "forced_in_front"

MIN_HORIZONTAL_SQR = 1e-4


@dataclass(frozen=True)
class AnchorState:
    """The anchor's pose and visibility; the only state kept across frames."""
    visible: bool = False
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation: Tuple[float, float, float, float] = (1.0, 0.0, 0.0, 0.0)  # w, x, y, z

    @classmethod
    def hidden(cls) -> 'AnchorState':
        return cls()

    @classmethod
    def at(cls, position, orientation, visible: bool = True) -> 'AnchorState':
        return cls(
            visible=visible,
            position=tuple(float(c) for c in position),
            orientation=tuple(float(c) for c in orientation),
        )

    def hide(self) -> 'AnchorState':
        """Same pose, not visible."""
        return replace(self, visible=False)


@dataclass
class PlacementResult:
    """State produced for a frame plus what led to it."""
    state: AnchorState
    outcome: str
    ray: Optional[Ray] = None
    hit: Optional[RayHit] = None


def face_observer_rotation(
    anchor_position: np.ndarray,
    camera: PinholeCamera,
    reverse: bool = False,
) -> np.ndarray:
    """
    Upright rotation whose forward axis points at the camera.

    Only rotates about the vertical axis. When the camera is (nearly)
    straight above or below, the flattened camera forward is used instead.
    """
    to_anchor = anchor_position - camera.position
    look_dir = np.array([to_anchor[0], 0.0, to_anchor[2]])
    if np.dot(look_dir, look_dir) < MIN_HORIZONTAL_SQR:
        fwd = camera.forward
        look_dir = np.array([fwd[0], 0.0, fwd[2]])
    look_dir = normalize(look_dir)
    if not look_dir.any():
        look_dir = np.array([0.0, 0.0, 1.0])

    forward = look_dir if reverse else -look_dir
    return look_rotation(forward, WORLD_UP)


class SpatialAnchorPlacer:
    """
    Stateless anchor placement (apart from warn-once logging flags).

    Example:
        placer = SpatialAnchorPlacer(PlacementConfig(absence_policy="hide_on_miss"))
        state = AnchorState.hidden()
        for frame in frames:
            state = placer.place(point, scene, camera, state)
    """

    def __init__(self, config: Optional[PlacementConfig] = None):
        self.config = config or PlacementConfig()
        self._warned_no_camera = False
        self._warned_no_geometry = False

    def apply_absence(self, prior_state: AnchorState) -> AnchorState:
        if self.config.absence_policy == AbsencePolicy.HIDE_ON_MISS:
            return prior_state.hide()
        return prior_state

    @staticmethod
    def hide(state: AnchorState) -> AnchorState:
        """Explicit external reset."""
        return state.hide()

    def _warn_missing(self, camera, ray_caster) -> None:
        if camera is None and not self._warned_no_camera:
            logger.warning("[AnchorPlacer] No camera available; skipping placement")
            self._warned_no_camera = True
        if ray_caster is None and not self._warned_no_geometry:
            logger.warning("[AnchorPlacer] No geometry ray caster available; skipping placement")
            self._warned_no_geometry = True

    def _orientation(self, position: np.ndarray, hit: RayHit, camera: PinholeCamera) -> np.ndarray:
        if self.config.orientation_mode == OrientationMode.ALIGN_TO_SURFACE:
            return look_rotation(hit.normal, WORLD_UP)
        return face_observer_rotation(position, camera, reverse=self.config.reverse_facing)

    def place_detailed(
        self,
        viewport_point: Optional[ViewportPoint],
        ray_caster: Optional[RayCaster],
        camera: Optional[PinholeCamera],
        prior_state: AnchorState,
    ) -> PlacementResult:
        """Like place(), but also reports the outcome, ray and hit."""
        cfg = self.config

        if cfg.force_in_front and camera is not None:
            position = camera.position + camera.forward * cfg.in_front_distance
            orientation = look_rotation(camera.forward, WORLD_UP)
            return PlacementResult(AnchorState.at(position, orientation), OUTCOME_FORCED)

        if viewport_point is None:
            return PlacementResult(self.apply_absence(prior_state), OUTCOME_NO_DETECTION)

        if camera is None or ray_caster is None:
            self._warn_missing(camera, ray_caster)
            return PlacementResult(self.apply_absence(prior_state), OUTCOME_MISSING_DEPENDENCY)

        ray = camera.viewport_point_to_ray(viewport_point.u, viewport_point.v)
        hit = ray_caster.raycast(ray, cfg.max_distance, cfg.geometry_filter)

        if hit is None:
            logger.debug(f"[AnchorPlacer] VOID (no collision) uv=({viewport_point.u:.2f}, {viewport_point.v:.2f})")
            return PlacementResult(self.apply_absence(prior_state), OUTCOME_MISS, ray=ray)

        position = hit.point + hit.normal * cfg.surface_offset
        orientation = self._orientation(position, hit, camera)
        state = AnchorState.at(position, orientation)
        return PlacementResult(state, OUTCOME_HIT, ray=ray, hit=hit)

    def place(
        self,
        viewport_point: Optional[ViewportPoint],
        ray_caster: Optional[RayCaster],
        camera: Optional[PinholeCamera],
        prior_state: AnchorState,
    ) -> AnchorState:
        """
        Compute this frame's anchor state.

        Args:
            viewport_point: Chosen detection center, or None for no detection.
            ray_caster: Environment geometry query.
            camera: Observer pose and projection.
            prior_state: State from the previous frame.

        Returns:
            New AnchorState (prior_state itself under RETAIN_ON_MISS absence).
        """
        return self.place_detailed(viewport_point, ray_caster, camera, prior_state).state
