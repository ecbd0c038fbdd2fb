"""
Tests for ray-cast anchor placement.
"""

import unittest
from unittest.mock import patch

import numpy as np

from vision.anchor.anchor_service import (
    OUTCOME_FORCED,
    OUTCOME_HIT,
    OUTCOME_MISS,
    OUTCOME_MISSING_DEPENDENCY,
    OUTCOME_NO_DETECTION,
    AnchorState,
    SpatialAnchorPlacer,
    face_observer_rotation,
)
from vision.anchor.geometry import MeshRaycaster, PinholeCamera, rotate_vector
from vision.config import AbsencePolicy, OrientationMode, PlacementConfig, ViewportPoint

CENTER = ViewportPoint(0.5, 0.5)


def _wall_scene(distance=2.0, layer="scene_mesh"):
    scene = MeshRaycaster()
    scene.add_plane("wall", center=(0, 0, distance), normal=(0, 0, -1), width=4, height=3, layer=layer)
    return scene


def _forward(state):
    return rotate_vector(state.orientation, (0, 0, 1))


class TestAnchorState(unittest.TestCase):
    """Tests for AnchorState."""

    def test_hidden_default(self):
        state = AnchorState.hidden()
        self.assertFalse(state.visible)
        self.assertEqual(state.orientation, (1.0, 0.0, 0.0, 0.0))

    def test_hide_keeps_pose(self):
        state = AnchorState.at((1, 2, 3), (0, 0, 1, 0))
        hidden = SpatialAnchorPlacer.hide(state)
        self.assertFalse(hidden.visible)
        self.assertEqual(hidden.position, (1.0, 2.0, 3.0))
        self.assertEqual(hidden.orientation, state.orientation)


class TestPlacementOnHit(unittest.TestCase):
    """Tests for placement when the ray hits geometry."""

    def setUp(self):
        self.camera = PinholeCamera()
        self.scene = _wall_scene()

    def test_hit_offsets_along_normal(self):
        """Anchor sits surface_offset in front of the hit point."""
        placer = SpatialAnchorPlacer(PlacementConfig(surface_offset=0.02))
        result = placer.place_detailed(CENTER, self.scene, self.camera, AnchorState.hidden())

        self.assertEqual(result.outcome, OUTCOME_HIT)
        self.assertTrue(result.state.visible)
        np.testing.assert_allclose(result.state.position, (0.0, 0.0, 1.98), atol=1e-9)
        np.testing.assert_allclose(result.hit.normal, (0.0, 0.0, -1.0), atol=1e-9)
        self.assertAlmostEqual(result.hit.distance, 2.0)

    def test_face_observer(self):
        """Default orientation turns the anchor toward the camera."""
        placer = SpatialAnchorPlacer()
        state = placer.place(CENTER, self.scene, self.camera, AnchorState.hidden())
        np.testing.assert_allclose(_forward(state), (0.0, 0.0, -1.0), atol=1e-9)

    def test_face_observer_stays_upright(self):
        """An offset, tilted camera only yaws the anchor."""
        camera = PinholeCamera.look_at((1.0, 1.0, 0.0), (0.0, 0.0, 2.0))
        placer = SpatialAnchorPlacer()
        state = placer.place(CENTER, self.scene, camera, AnchorState.hidden())

        forward = _forward(state)
        self.assertAlmostEqual(forward[1], 0.0)
        to_cam = camera.position - np.asarray(state.position)
        to_cam[1] = 0.0
        to_cam /= np.linalg.norm(to_cam)
        self.assertGreater(float(np.dot(forward, to_cam)), 0.999)
        np.testing.assert_allclose(rotate_vector(state.orientation, (0, 1, 0)), (0, 1, 0), atol=1e-9)

    def test_reverse_facing(self):
        """reverse_facing points the anchor away from the camera."""
        placer = SpatialAnchorPlacer(PlacementConfig(reverse_facing=True))
        state = placer.place(CENTER, self.scene, self.camera, AnchorState.hidden())
        np.testing.assert_allclose(_forward(state), (0.0, 0.0, 1.0), atol=1e-9)

    def test_align_to_surface(self):
        """Surface mode points the anchor along the hit normal."""
        scene = MeshRaycaster()
        scene.add_plane("slope", center=(0, 0, 2), normal=(0, 1, -1), width=4, height=4)
        placer = SpatialAnchorPlacer(PlacementConfig(orientation_mode=OrientationMode.ALIGN_TO_SURFACE))
        result = placer.place_detailed(CENTER, scene, self.camera, AnchorState.hidden())

        np.testing.assert_allclose(_forward(result.state), result.hit.normal, atol=1e-9)

    def test_hit_replaces_prior_state(self):
        prior = AnchorState.at((9, 9, 9), (1, 0, 0, 0))
        state = SpatialAnchorPlacer().place(CENTER, self.scene, self.camera, prior)
        self.assertNotEqual(state.position, prior.position)


class TestAbsencePolicy(unittest.TestCase):
    """Tests for frames without a usable hit."""

    def setUp(self):
        self.camera = PinholeCamera()
        self.scene = _wall_scene()

    def _visible_then_missing(self, policy):
        placer = SpatialAnchorPlacer(PlacementConfig(absence_policy=policy))
        placed = placer.place(CENTER, self.scene, self.camera, AnchorState.hidden())
        self.assertTrue(placed.visible)
        return placed, placer.place(None, self.scene, self.camera, placed)

    def test_retain_on_miss(self):
        """Retain keeps the previous frame's state unchanged."""
        placed, after = self._visible_then_missing(AbsencePolicy.RETAIN_ON_MISS)
        self.assertEqual(after, placed)

    def test_hide_on_miss(self):
        """Hide makes the anchor invisible on the next empty frame."""
        placed, after = self._visible_then_missing(AbsencePolicy.HIDE_ON_MISS)
        self.assertFalse(after.visible)
        self.assertEqual(after.position, placed.position)

    def test_no_detection_outcome(self):
        result = SpatialAnchorPlacer().place_detailed(None, self.scene, self.camera, AnchorState.hidden())
        self.assertEqual(result.outcome, OUTCOME_NO_DETECTION)
        self.assertIsNone(result.ray)

    def test_geometry_miss(self):
        """A ray that hits nothing within max_distance applies the policy."""
        placer = SpatialAnchorPlacer(PlacementConfig(max_distance=1.0, absence_policy="hide_on_miss"))
        prior = AnchorState.at((0, 0, 1), (1, 0, 0, 0))
        result = placer.place_detailed(CENTER, self.scene, self.camera, prior)

        self.assertEqual(result.outcome, OUTCOME_MISS)
        self.assertIsNotNone(result.ray)
        self.assertFalse(result.state.visible)

    def test_geometry_filter(self):
        """Meshes outside the filtered layers are ignored."""
        scene = _wall_scene(layer="furniture")
        placer = SpatialAnchorPlacer(PlacementConfig(geometry_filter=["scene_mesh"]))
        result = placer.place_detailed(CENTER, scene, self.camera, AnchorState.hidden())
        self.assertEqual(result.outcome, OUTCOME_MISS)


class TestMissingDependencies(unittest.TestCase):
    """Tests for placement without camera or geometry."""

    def test_missing_camera_warns_once(self):
        placer = SpatialAnchorPlacer()
        prior = AnchorState.at((1, 1, 1), (1, 0, 0, 0))
        with patch("vision.anchor.anchor_service.logger") as mock_logger:
            first = placer.place_detailed(CENTER, _wall_scene(), None, prior)
            placer.place_detailed(CENTER, _wall_scene(), None, prior)

        self.assertEqual(first.outcome, OUTCOME_MISSING_DEPENDENCY)
        self.assertEqual(first.state, prior)
        self.assertEqual(mock_logger.warning.call_count, 1)

    def test_missing_geometry_hides_under_hide_policy(self):
        placer = SpatialAnchorPlacer(PlacementConfig(absence_policy="hide_on_miss"))
        prior = AnchorState.at((1, 1, 1), (1, 0, 0, 0))
        with patch("vision.anchor.anchor_service.logger"):
            state = placer.place(CENTER, None, PinholeCamera(), prior)
        self.assertFalse(state.visible)


class TestForceInFront(unittest.TestCase):
    """Tests for the pinned-in-front debug mode."""

    def test_places_in_front_of_camera(self):
        placer = SpatialAnchorPlacer(PlacementConfig(force_in_front=True, in_front_distance=0.7))
        result = placer.place_detailed(None, None, PinholeCamera(), AnchorState.hidden())

        self.assertEqual(result.outcome, OUTCOME_FORCED)
        self.assertTrue(result.state.visible)
        np.testing.assert_allclose(result.state.position, (0.0, 0.0, 0.7), atol=1e-9)


class TestFaceObserverRotation(unittest.TestCase):
    """Tests for face_observer_rotation."""

    def test_camera_directly_above(self):
        """Falls back to the camera's flattened forward."""
        camera = PinholeCamera.look_at((0.0, 3.0, -0.001), (0.0, 0.0, 0.0))
        q = face_observer_rotation(np.zeros(3), camera)
        forward = rotate_vector(q, (0, 0, 1))
        self.assertAlmostEqual(forward[1], 0.0)
        self.assertAlmostEqual(float(np.linalg.norm(forward)), 1.0)


if __name__ == '__main__':
    unittest.main()
