#!/usr/bin/env python3
"""
Replay a video through the anchoring pipeline.

A static camera looks at a single wall plane; each frame's detection is cast
onto the wall and the anchor is drawn back into the image.
"""

import argparse
import logging

import cv2
import numpy as np

from frame_pipeline import AnchoringPipeline
from vision import (
    AnchoringConfig,
    CoordinateMapper,
    MeshRaycaster,
    PinholeCamera,
    ViewportPoint,
    load_class_names,
)
from vision.inference_service import OnnxForwardPass

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def draw_frame(frame: np.ndarray, result, camera: PinholeCamera) -> np.ndarray:
    """Overlay the chosen box and the projected anchor."""
    height, width = frame.shape[:2]
    diag = result.diagnostics

    det = diag.chosen_detection
    if det is not None:
        cv2.rectangle(frame, (int(det.x1), int(det.y1)), (int(det.x2), int(det.y2)), (0, 255, 0), 2)
        cv2.putText(frame, f"{diag.chosen_class_name} {det.score:.2f}", (int(det.x1), int(det.y1) - 8),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2)

    state = result.anchor_state
    if state.visible:
        u, v, depth = camera.world_to_viewport_point(state.position)
        if not np.isnan(u):
            x, y = CoordinateMapper.to_pixel(ViewportPoint(u, v), width, height)
            cv2.circle(frame, (int(x), int(y)), 8, (0, 0, 255), -1)

    cv2.putText(frame, diag.outcome, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 1, (255, 255, 0), 2)
    return frame


def replay_video(
    video_path: str,
    model_path: str,
    config_path: str = None,
    classes_path: str = None,
    wall_distance: float = 2.0,
    output_path: str = None,
    show: bool = False,
):
    """
    Run every frame of a video through detection and anchoring.

    Returns:
        dict with per-outcome frame counts
    """
    config = AnchoringConfig.from_yaml(config_path) if config_path else AnchoringConfig()
    if classes_path:
        config.decoder.class_names = load_class_names(classes_path)

    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise ValueError(f"Cannot open video: {video_path}")

    fps = cap.get(cv2.CAP_PROP_FPS)
    width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    logger.info(f"Video: {width}x{height} @ {fps:.1f} FPS")

    camera = PinholeCamera(aspect=width / float(height))
    scene = MeshRaycaster()
    scene.add_plane("wall", center=(0.0, 0.0, wall_distance), normal=(0.0, 0.0, -1.0),
                    width=20.0, height=20.0)

    forward = OnnxForwardPass(model_path, input_size=config.decoder.input_size)
    pipeline = AnchoringPipeline(config, camera=camera, ray_caster=scene)

    writer = None
    if output_path:
        fourcc = cv2.VideoWriter_fourcc(*'mp4v')
        writer = cv2.VideoWriter(output_path, fourcc, fps, (width, height))

    outcomes = {}
    while True:
        ret, frame = cap.read()
        if not ret:
            break

        result = pipeline.process_frame(forward(frame), (width, height))
        outcome = result.diagnostics.outcome
        outcomes[outcome] = outcomes.get(outcome, 0) + 1

        if writer or show:
            annotated = draw_frame(frame, result, camera)
            if writer:
                writer.write(annotated)
            if show:
                cv2.imshow("Anchoring", annotated)
                if cv2.waitKey(1) & 0xFF == ord('q'):
                    break

        if result.frame_id % 30 == 0:
            logger.info(f"Processed {result.frame_id} frames")

    cap.release()
    if writer:
        writer.release()
    if show:
        cv2.destroyAllWindows()

    logger.info(f"Outcomes: {outcomes}")
    return {"frames": pipeline.frame_count, "outcomes": outcomes}


def main():
    parser = argparse.ArgumentParser(description='Replay a video through the anchoring pipeline')
    parser.add_argument('video', type=str, help='Path to input video')
    parser.add_argument('--model', type=str, required=True, help='Path to ONNX model')
    parser.add_argument('--config', type=str, default=None, help='Anchoring YAML config')
    parser.add_argument('--classes', type=str, default=None, help='Class list file')
    parser.add_argument('--wall-distance', type=float, default=2.0,
                        help='Distance from the camera to the wall plane (m)')
    parser.add_argument('--output', type=str, default=None,
                        help='Path to save annotated video')
    parser.add_argument('--show', action='store_true',
                        help='Show video while processing')

    args = parser.parse_args()

    result = replay_video(
        video_path=args.video,
        model_path=args.model,
        config_path=args.config,
        classes_path=args.classes,
        wall_distance=args.wall_distance,
        output_path=args.output,
        show=args.show,
    )

    print(f"\nFinal Results: {result}")


if __name__ == '__main__':
    main()
