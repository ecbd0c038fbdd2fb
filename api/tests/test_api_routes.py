"""
Tests for API routes.
Uses FastAPI TestClient against the real pipeline and an in-memory scene.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api import routes

CENTERED = [0.5, 0.5, 0.2, 0.2, 0.8]
EMPTY = [0.5, 0.5, 0.2, 0.2, 0.01]
WALL = {"name": "wall", "center": [0, 0, 2], "normal": [0, 0, -1], "width": 4, "height": 3}


@pytest.fixture
def client():
    """Create test client with a fresh pipeline and empty scene."""
    routes._pipeline = None
    routes._scene.clear()

    app = FastAPI()
    app.include_router(routes.router)
    yield TestClient(app)

    routes._pipeline = None
    routes._scene.clear()


def _frame(buffer, camera=True):
    payload = {"buffer": buffer, "frame_width": 1280, "frame_height": 720}
    if camera:
        payload["camera"] = {}
    return payload


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_check(self, client):
        """Test health check returns ok status."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "version" in data


class TestDecodeEndpoint:
    """Tests for /detect/decode endpoint."""

    def test_decode_single_detection(self, client):
        """Test a centered normalized box decodes to the frame center."""
        response = client.post("/detect/decode", json={
            "buffer": CENTERED,
            "frame_width": 1280,
            "frame_height": 720,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["detection_count_before_suppression"] == 1
        det = data["detections"][0]
        assert det["class_name"] == "faucet"
        assert det["score"] == pytest.approx(0.8)
        assert (det["x1"] + det["x2"]) / 2 == pytest.approx(640.0)
        assert (det["y1"] + det["y2"]) / 2 == pytest.approx(360.0)
        assert data["error"] is None

    def test_decode_suppresses_overlap(self, client):
        """Test overlapping boxes are reduced by NMS."""
        buffer = [
            50.0, 50.0, 20.0, 20.0, 0.9,
            51.0, 50.0, 20.0, 20.0, 0.7,
        ]
        response = client.post("/detect/decode", json={
            "buffer": buffer, "frame_width": 640, "frame_height": 640,
        })
        data = response.json()
        assert data["detection_count_before_suppression"] == 2
        assert len(data["detections"]) == 1
        assert data["detections"][0]["score"] == pytest.approx(0.9)

    def test_decode_configuration_error_reported(self, client):
        """Test a buffer that doesn't fit the stride reports an error."""
        response = client.post("/detect/decode", json={
            "buffer": [1.0] * 7, "frame_width": 640, "frame_height": 640,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["detections"] == []
        assert "not divisible" in data["error"]

    def test_decode_shape_mismatch(self, client):
        """Test a shape that doesn't match the buffer returns 400."""
        response = client.post("/detect/decode", json={
            "buffer": CENTERED, "shape": [1, 2, 5], "frame_width": 640, "frame_height": 640,
        })
        assert response.status_code == 400

    def test_decode_bad_box_format(self, client):
        response = client.post("/detect/decode", json={
            "buffer": CENTERED, "frame_width": 640, "frame_height": 640, "box_format": "xyxy",
        })
        assert response.status_code == 400

    def test_decode_multi_class_packed(self, client):
        """Test two classes decode from 4 + 2 floats per detection."""
        response = client.post("/detect/decode", json={
            "buffer": [320, 320, 20, 20, 0.9, 0.8, 100, 100, 20, 20, 0.9, 0.8],
            "frame_width": 640,
            "frame_height": 640,
            "class_names": ["a", "b"],
        })
        data = response.json()
        assert data["error"] is None
        assert len(data["detections"]) == 2
        assert data["detections"][0]["class_name"] == "a"
        assert data["detections"][0]["score"] == pytest.approx(0.72)

    def test_decode_bad_layout(self, client):
        response = client.post("/detect/decode", json={
            "buffer": CENTERED, "frame_width": 640, "frame_height": 640,
            "class_names": ["a", "b"], "multi_class_layout": "xywh_obj",
        })
        assert response.status_code == 400

    def test_decode_missing_fields(self, client):
        """Test request without frame size returns 422."""
        response = client.post("/detect/decode", json={"buffer": CENTERED})
        assert response.status_code == 422


class TestSceneEndpoints:
    """Tests for scene geometry endpoints."""

    def test_add_plane(self, client):
        response = client.post("/anchor/scene/plane", json=WALL)
        assert response.status_code == 200
        assert response.json() == {"meshes": ["wall"], "mesh_count": 1}

    def test_add_mesh(self, client):
        response = client.post("/anchor/scene/mesh", json={
            "name": "tri",
            "vertices": [[-1, -1, 1], [1, -1, 1], [0, 1, 1]],
            "triangles": [[0, 1, 2]],
        })
        assert response.status_code == 200
        assert response.json()["meshes"] == ["tri"]

    def test_add_invalid_mesh(self, client):
        """Test out-of-range triangle indices return 400."""
        response = client.post("/anchor/scene/mesh", json={
            "name": "bad",
            "vertices": [[0, 0, 0], [1, 0, 0], [0, 1, 0]],
            "triangles": [[0, 1, 5]],
        })
        assert response.status_code == 400

    def test_clear_scene(self, client):
        client.post("/anchor/scene/plane", json=WALL)
        response = client.delete("/anchor/scene")
        assert response.json()["mesh_count"] == 0


class TestAnchorEndpoints:
    """Tests for anchoring endpoints."""

    def test_status_defaults(self, client):
        response = client.get("/anchor/status")
        assert response.status_code == 200
        data = response.json()
        assert data["initialized"] is True
        assert data["frame_count"] == 0
        assert data["anchor"]["visible"] is False
        assert data["config"]["placement"]["absence_policy"] == "retain_on_miss"

    def test_frame_places_anchor(self, client):
        client.post("/anchor/scene/plane", json=WALL)
        response = client.post("/anchor/frame", json=_frame(CENTERED))

        assert response.status_code == 200
        data = response.json()
        assert data["frame_id"] == 1
        assert data["anchor"]["visible"] is True
        assert data["anchor"]["position"] == pytest.approx([0.0, 0.0, 1.98])
        assert data["diagnostics"]["outcome"] == "hit"
        assert data["errors"] == []

    def test_frame_without_scene(self, client):
        """Test an empty scene counts as missing geometry."""
        response = client.post("/anchor/frame", json=_frame(CENTERED))
        data = response.json()
        assert data["diagnostics"]["outcome"] == "missing_dependency"
        assert data["anchor"]["visible"] is False

    def test_frame_without_camera(self, client):
        client.post("/anchor/scene/plane", json=WALL)
        response = client.post("/anchor/frame", json=_frame(CENTERED, camera=False))
        assert response.json()["diagnostics"]["outcome"] == "missing_dependency"

    def test_init_hide_on_miss(self, client):
        """Test configuring hide-on-miss hides the anchor on an empty frame."""
        response = client.post("/anchor/init", json={
            "config": {"placement": {"absence_policy": "hide_on_miss"}},
        })
        assert response.status_code == 200
        assert response.json()["config"]["placement"]["absence_policy"] == "hide_on_miss"

        client.post("/anchor/scene/plane", json=WALL)
        assert client.post("/anchor/frame", json=_frame(CENTERED)).json()["anchor"]["visible"]
        data = client.post("/anchor/frame", json=_frame(EMPTY)).json()
        assert data["anchor"]["visible"] is False
        assert data["diagnostics"]["outcome"] == "no_detection"

    def test_init_invalid_config(self, client):
        response = client.post("/anchor/init", json={
            "config": {"placement": {"absence_policy": "sometimes"}},
        })
        assert response.status_code == 400

    def test_init_unknown_section(self, client):
        response = client.post("/anchor/init", json={"config": {"tracker": {}}})
        assert response.status_code == 400

    def test_invalid_camera_orientation(self, client):
        """Test a zero quaternion returns 400."""
        payload = _frame(CENTERED)
        payload["camera"] = {"orientation": [0, 0, 0, 0]}
        response = client.post("/anchor/frame", json=payload)
        assert response.status_code == 400

    def test_reset(self, client):
        client.post("/anchor/scene/plane", json=WALL)
        client.post("/anchor/frame", json=_frame(CENTERED))

        response = client.delete("/anchor/reset")
        assert response.status_code == 200
        data = response.json()
        assert data["frame_count"] == 0
        assert data["anchor"]["visible"] is False
