"""
Tests for API Pydantic schemas.
Validates field validation, defaults, and serialization.
"""

import pytest

from api.schemas import (
    AnchorInitRequest,
    CameraModel,
    DecodeRequest,
    DetectionResult,
    FrameRequest,
    HealthResponse,
    MeshRequest,
    PlaneRequest,
)


class TestDecodeSchemas:
    """Tests for decode request/response schemas."""

    def test_decode_request_defaults(self):
        """Test DecodeRequest fills in pipeline defaults."""
        request = DecodeRequest(buffer=[0.5, 0.5, 0.2, 0.2, 0.8], frame_width=1280, frame_height=720)
        assert request.input_size == 640
        assert request.conf_threshold == 0.1
        assert request.iou_threshold == 0.45
        assert request.top_k == 100
        assert request.class_names is None
        assert request.channels_first is False
        assert request.multi_class_layout == "packed"

    def test_decode_request_requires_frame_size(self):
        """Test frame size is required."""
        with pytest.raises(ValueError):
            DecodeRequest(buffer=[0.0] * 5)

    def test_decode_request_rejects_bad_frame(self):
        """Test non-positive frame sizes are rejected."""
        with pytest.raises(ValueError):
            DecodeRequest(buffer=[], frame_width=0, frame_height=720)

    def test_decode_request_threshold_bounds(self):
        """Test thresholds are bounded to [0, 1]."""
        with pytest.raises(ValueError):
            DecodeRequest(buffer=[], frame_width=1, frame_height=1, conf_threshold=1.5)

    def test_detection_result(self):
        """Test DetectionResult creation."""
        det = DetectionResult(x1=0, y1=0, x2=10, y2=10, score=0.9, class_id=0, class_name="faucet")
        assert det.model_dump()["class_name"] == "faucet"


class TestAnchorSchemas:
    """Tests for anchoring schemas."""

    def test_camera_defaults(self):
        """Test CameraModel defaults to an identity pose."""
        camera = CameraModel()
        assert camera.position == [0.0, 0.0, 0.0]
        assert camera.orientation == [1.0, 0.0, 0.0, 0.0]
        assert camera.fov_deg == 60.0

    def test_camera_position_length(self):
        """Test position must have three components."""
        with pytest.raises(ValueError):
            CameraModel(position=[0.0, 0.0])

    def test_camera_fov_bounds(self):
        with pytest.raises(ValueError):
            CameraModel(fov_deg=180.0)

    def test_frame_request_camera_optional(self):
        request = FrameRequest(buffer=[], frame_width=1280, frame_height=720)
        assert request.camera is None

    def test_init_request_default(self):
        assert AnchorInitRequest().config == {}

    def test_plane_request_positive_size(self):
        with pytest.raises(ValueError):
            PlaneRequest(name="wall", center=[0, 0, 2], normal=[0, 0, -1], width=0, height=1)

    def test_mesh_request_default_layer(self):
        request = MeshRequest(name="m", vertices=[[0, 0, 0]], triangles=[])
        assert request.layer == "scene_mesh"


class TestHealthSchema:
    """Tests for the health response."""

    def test_defaults(self):
        response = HealthResponse()
        assert response.status == "ok"
        assert response.version == "0.1.0"
