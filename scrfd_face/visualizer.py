"""
Visualization for the SCRFD face detection pipeline.

Responsibility:
    Draw bounding boxes, confidence labels and facial landmarks onto a
    frame. This is a pure rendering module — it produces an annotated
    copy of the frame and performs no I/O.

Non-goals:
    - No file writing, window management, or display logic.
    - No detection or model logic.
"""

from typing import Sequence, Tuple

import cv2
import numpy as np

from scrfd_face.config import VisualizationConfig
from scrfd_face.detection import FaceDetection

_FONT = cv2.FONT_HERSHEY_SIMPLEX
_FONT_SCALE = 0.6
_FONT_THICKNESS = 2
_KEYPOINT_RADIUS = 2


def _label_origin(x1: int, y1: int, label: str) -> Tuple[int, int]:
    """Baseline-left point for a label sitting just above the box.

    Labels that would leave the top of the image go just inside the box.
    """
    (_, text_h), baseline = cv2.getTextSize(label, _FONT, _FONT_SCALE, _FONT_THICKNESS)
    top = y1 - text_h - baseline
    if top < 0:
        top = y1 + 1
    return x1, top + text_h


def draw_detections(
    frame: np.ndarray,
    detections: Sequence[FaceDetection],
    config: VisualizationConfig,
) -> np.ndarray:
    """Draw bounding boxes, confidence labels and landmarks onto a frame.

    Args:
        frame: Input BGR image (not modified — a copy is returned).
        detections: Detections to render, confidence-descending.
        config: Visualization parameters (colors, thickness, labels).

    Returns:
        A new BGR numpy array with detections drawn.
    """
    annotated = frame.copy()

    if config.best_only:
        detections = sorted(detections, key=lambda d: d.confidence, reverse=True)[:1]

    for det in detections:
        x1, y1 = int(round(det.box.x)), int(round(det.box.y))
        x2, y2 = int(round(det.box.x2)), int(round(det.box.y2))

        cv2.rectangle(annotated, (x1, y1), (x2, y2), config.box_color, config.thickness)

        for kp in det.keypoints:
            cv2.circle(
                annotated,
                (int(round(kp.x)), int(round(kp.y))),
                _KEYPOINT_RADIUS,
                config.keypoint_color,
                thickness=cv2.FILLED,
            )

        if config.show_confidence:
            label = f"{det.confidence:.2f}"
            cv2.putText(
                annotated,
                label,
                _label_origin(x1, y1, label),
                _FONT,
                _FONT_SCALE,
                config.label_color,
                _FONT_THICKNESS,
                cv2.LINE_AA,
            )

    return annotated
