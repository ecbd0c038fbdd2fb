#!/usr/bin/env python3
"""
Decode a saved raw model output (.npy) and print the surviving detections.

Useful for checking an ONNX export's layout and class count offline.
"""

import argparse
import json
import logging

import numpy as np

from vision import (
    CandidateSelector,
    CoordinateMapper,
    RawOutputBuffer,
    SuppressionEngine,
    TensorDecoder,
    load_class_names,
)

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def decode_file(
    path: str,
    frame_width: int,
    frame_height: int,
    class_names: list = None,
    input_size: int = 640,
    conf_threshold: float = 0.1,
    iou_threshold: float = 0.45,
    top_k: int = 100,
    channels_first: bool = None,
    target_class_id: int = 0,
    min_score: float = 0.4,
    multi_class_layout: str = "packed",
):
    """
    Decode, suppress and select on one saved buffer.

    Returns:
        dict with detections, the chosen one and its viewport point
    """
    array = np.load(path)
    if channels_first is None:
        channels_first = array.ndim == 3 and array.shape[1] < array.shape[2]
    buffer = RawOutputBuffer.from_array(array, channels_first=channels_first)
    logger.info(f"Loaded {path}: shape {array.shape} -> {buffer.shape}")

    decoder = TensorDecoder(class_names=class_names, multi_class_layout=multi_class_layout)
    detections = decoder.decode(buffer, frame_width, frame_height, input_size, conf_threshold)
    if decoder.last_error:
        logger.error(f"Decode failed: {decoder.last_error}")

    kept = SuppressionEngine(iou_threshold, top_k).suppress(detections)
    chosen = CandidateSelector(target_class_id, min_score).select(kept)
    point = CoordinateMapper.to_viewport(chosen, frame_width, frame_height) if chosen else None

    logger.info(f"{len(detections)} detections, {len(kept)} after NMS")
    return {
        "detections": [
            dict(d.to_dict(), class_name=decoder.class_name(d.class_id)) for d in kept
        ],
        "chosen": chosen.to_dict() if chosen else None,
        "viewport_point": list(point.as_tuple()) if point else None,
        "error": decoder.last_error,
    }


def main():
    parser = argparse.ArgumentParser(description='Decode a raw YOLO output buffer')
    parser.add_argument('buffer', type=str, help='Path to .npy model output')
    parser.add_argument('--width', type=int, required=True, help='Source frame width')
    parser.add_argument('--height', type=int, required=True, help='Source frame height')
    parser.add_argument('--classes', type=str, default=None,
                        help='Class list file, one name per line')
    parser.add_argument('--layout', type=str, default='packed',
                        choices=['packed', 'objectness_row', 'class_scores'],
                        help='Multi-class row layout')
    parser.add_argument('--input-size', type=int, default=640,
                        help='Square model input resolution')
    parser.add_argument('--conf', type=float, default=0.1,
                        help='Confidence threshold')
    parser.add_argument('--iou', type=float, default=0.45,
                        help='NMS IoU threshold')
    parser.add_argument('--top-k', type=int, default=100,
                        help='Max detections kept after NMS')
    parser.add_argument('--target-class', type=int, default=0,
                        help='Class id to select')
    parser.add_argument('--min-score', type=float, default=0.4,
                        help='Minimum score for the selected detection')

    args = parser.parse_args()

    result = decode_file(
        args.buffer,
        args.width,
        args.height,
        class_names=load_class_names(args.classes) if args.classes else None,
        input_size=args.input_size,
        conf_threshold=args.conf,
        iou_threshold=args.iou,
        top_k=args.top_k,
        target_class_id=args.target_class,
        min_score=args.min_score,
        multi_class_layout=args.layout,
    )

    print(json.dumps(result, indent=2))


if __name__ == '__main__':
    main()
