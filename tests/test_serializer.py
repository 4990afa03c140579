"""
Tests for the serialization module.
"""

import json

import numpy as np

from scrfd_face.detection import BoundingBox, DetectionResult, FaceDetection, Keypoint
from scrfd_face.diagnostics import SHAPE_MISMATCH, DecodeEvent
from scrfd_face.serializer import Telemetry, format_summary, save_image, save_json


def _result():
    face = FaceDetection(
        confidence=0.91234,
        box=BoundingBox(10.0, 20.0, 30.0, 40.0),
        keypoints=tuple(Keypoint(float(i), float(i)) for i in range(5)),
    )
    warning = DecodeEvent(kind=SHAPE_MISMATCH, message="level skipped: bad", level=0, stride=8)
    return DetectionResult(
        detections=(face,),
        diagnostics=(warning,),
        image_size=(640, 480),
        inference_time_ms=12.5,
    )


def test_save_json(tmp_path):
    """Test the JSON telemetry document."""
    telemetry = Telemetry(image_path="a.jpg", model_path="m.onnx", confidence_threshold=0.5)
    telemetry.record_result(_result())
    telemetry.finish(20.0)
    out = tmp_path / "nested" / "result.json"

    save_json(telemetry, str(out))

    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["success"] is True
    assert payload["detected_faces"] == 1
    assert payload["image_size"] == {"width": 640, "height": 480}
    assert payload["inference_time_ms"] == 12.5
    assert payload["detections"][0]["confidence"] == 0.9123
    assert payload["detections"][0]["bounding_box"] == {
        "x": 10.0, "y": 20.0, "width": 30.0, "height": 40.0,
    }
    assert len(payload["detections"][0]["keypoints"]) == 5
    assert payload["diagnostics"][0]["kind"] == SHAPE_MISMATCH
    assert payload["end_time"] is not None


def test_failed_run_summary():
    telemetry = Telemetry(image_path="missing.jpg")
    telemetry.record_failure(FileNotFoundError("Could not read image: missing.jpg"))
    telemetry.finish(1.0)

    summary = format_summary(telemetry)

    assert "Status: FAILED" in summary
    assert "Error: Could not read image" in summary
    assert telemetry.to_dict()["image_size"] is None


def test_success_summary_lists_faces():
    telemetry = Telemetry()
    telemetry.record_result(_result())
    telemetry.finish(5.0)

    summary = format_summary(telemetry)

    assert "Status: SUCCESS" in summary
    assert "Faces detected: 1" in summary
    assert "Image size: 640x480" in summary
    assert "Face 1: Confidence=0.912, Box=(10,20,30,40), Keypoints=5" in summary
    assert "Warning: level skipped: bad" in summary


def test_save_image(tmp_path):
    out = tmp_path / "vis" / "out.png"
    save_image(np.zeros((8, 8, 3), dtype=np.uint8), str(out))
    assert out.is_file()
