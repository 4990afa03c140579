"""
Tests for the visualization module.
"""

import numpy as np

from scrfd_face.config import VisualizationConfig
from scrfd_face.detection import BoundingBox, FaceDetection, Keypoint
from scrfd_face.visualizer import _label_origin, draw_detections


def _face(x, confidence):
    return FaceDetection(
        confidence=confidence,
        box=BoundingBox(x, 40.0, 30.0, 30.0),
        keypoints=tuple(Keypoint(x + 15.0, 55.0) for _ in range(5)),
    )


def test_draw_does_not_modify_input():
    frame = np.zeros((120, 200, 3), dtype=np.uint8)
    annotated = draw_detections(frame, [_face(20.0, 0.9)], VisualizationConfig())

    assert not frame.any()
    assert annotated.any()
    assert annotated.shape == frame.shape


def test_draw_box_and_keypoint_colors():
    config = VisualizationConfig(box_color=(0, 0, 255), keypoint_color=(0, 255, 0), show_confidence=False)
    frame = np.zeros((120, 200, 3), dtype=np.uint8)

    annotated = draw_detections(frame, [_face(20.0, 0.9)], config)

    assert annotated[40, 35].tolist() == [0, 0, 255]  # top edge
    assert annotated[55, 35].tolist() == [0, 255, 0]  # keypoint


def test_best_only_draws_single_face():
    config = VisualizationConfig(best_only=True, show_confidence=False)
    frame = np.zeros((120, 200, 3), dtype=np.uint8)

    annotated = draw_detections(frame, [_face(20.0, 0.6), _face(120.0, 0.9)], config)

    assert not annotated[40:71, 15:55].any()
    assert annotated[40, 135].any()


def test_label_drawn_above_box_in_label_color():
    config = VisualizationConfig(box_color=(0, 0, 255), label_color=(0, 255, 255))
    frame = np.zeros((120, 200, 3), dtype=np.uint8)
    face = FaceDetection(confidence=0.87, box=BoundingBox(20.0, 60.0, 40.0, 40.0))

    annotated = draw_detections(frame, [face], config)

    above = annotated[:57]
    assert above[..., 1].any()  # green component of yellow text
    assert above[..., 0].max() == 0


def test_label_moves_inside_box_at_top_edge():
    _, baseline_y = _label_origin(20, 100, "0.90")
    assert baseline_y < 100

    _, baseline_y = _label_origin(20, 3, "0.90")
    assert baseline_y > 3
