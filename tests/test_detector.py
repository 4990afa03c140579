"""
Tests for the detector module.
"""

from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest

from scrfd_face.config import AppConfig, ModelConfig
from scrfd_face.detector import Detector
from scrfd_face.diagnostics import SHAPE_MISMATCH
from scrfd_face.model_loader import load_model, wrap_session

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MODEL_PATH = _PROJECT_ROOT / "models/scrfd_500m_bnkps.onnx"
_MODEL_EXISTS = _MODEL_PATH.exists()

_STRIDES = (8, 16, 32)


class FakeSession:
    """Stands in for onnxruntime.InferenceSession with canned outputs."""

    def __init__(self, outputs, input_shape=(1, 3, 640, 640), names=None):
        self._outputs = outputs
        self._input_shape = list(input_shape)
        self._names = names or (
            [f"score_{s}" for s in _STRIDES]
            + [f"bbox_{s}" for s in _STRIDES]
            + [f"kps_{s}" for s in _STRIDES]
        )
        self.last_feed = None

    def get_inputs(self):
        return [SimpleNamespace(name="input.1", shape=self._input_shape)]

    def get_outputs(self):
        return [SimpleNamespace(name=n) for n in self._names]

    def run(self, output_names, feed):
        self.last_feed = feed
        return [self._outputs[self._names.index(n)] for n in output_names]


def _scrfd_outputs(target=640, face=None):
    """Canned outputs; face = (stride, gx, gy, distance) adds one confident anchor."""
    scores, bboxes, kps = [], [], []
    for stride in _STRIDES:
        n = (target // stride) ** 2 * 2
        s = np.full((1, n, 1), -8.0, dtype=np.float32)
        b = np.zeros((1, n, 4), dtype=np.float32)
        k = np.zeros((1, n, 10), dtype=np.float32)
        if face is not None and face[0] == stride:
            _, gx, gy, dist = face
            a = 2 * (gy * (target // stride) + gx)
            s[0, a, 0] = 6.0
            b[0, a] = dist
        scores.append(s)
        bboxes.append(b)
        kps.append(k)
    return scores + bboxes + kps


def _detector(outputs, config=None, **session_kwargs):
    config = config or AppConfig()
    session = FakeSession(outputs, **session_kwargs)
    return Detector(config, model=wrap_session(session, config.model)), session


def test_detect_maps_face_to_original_image():
    """Test the full pipeline against a fake session."""
    # Stride 32 anchor (10, 7): center (336, 240) in model space.
    detector, session = _detector(_scrfd_outputs(face=(32, 10, 7, (50, 50, 50, 50))))
    frame = np.zeros((480, 640, 3), dtype=np.uint8)

    result = detector.detect(frame)

    assert session.last_feed["input.1"].shape == (1, 3, 640, 640)
    assert len(result) == 1
    det = result.best
    # offset_y = 80, scale = 1
    assert det.box.as_xyxy() == pytest.approx((286.0, 110.0, 386.0, 210.0))
    assert len(det.keypoints) == 5
    assert det.keypoints[0].x == pytest.approx(336.0)
    assert det.keypoints[0].y == pytest.approx(160.0)
    assert result.image_size == (640, 480)
    assert result.inference_time_ms is not None


def test_detect_no_faces():
    detector, _ = _detector(_scrfd_outputs())
    result = detector.detect(np.zeros((300, 300, 3), dtype=np.uint8))
    assert len(result) == 0
    assert result.diagnostics == ()


def test_detect_reports_bad_level():
    """Test that a malformed level surfaces as a diagnostic, not an error."""
    outputs = _scrfd_outputs(face=(32, 10, 7, (50, 50, 50, 50)))
    outputs[0] = np.zeros((1, 10, 1), dtype=np.float32)  # stride 8 scores
    detector, _ = _detector(outputs)

    result = detector.detect(np.zeros((480, 640, 3), dtype=np.uint8))

    assert len(result) == 1
    assert [e.kind for e in result.diagnostics] == [SHAPE_MISMATCH]
    assert result.diagnostics[0].stride == 8


def test_input_size_from_config_for_dynamic_models():
    config = AppConfig(model=ModelConfig(input_size=320))
    detector, session = _detector(
        _scrfd_outputs(target=320), config=config, input_shape=(1, 3, "h", "w")
    )

    detector.detect(np.zeros((100, 100, 3), dtype=np.uint8))

    assert detector.model.input_size == 320
    assert session.last_feed["input.1"].shape == (1, 3, 320, 320)


def test_detector_input_validation():
    """Test strict input validation."""
    detector, _ = _detector(_scrfd_outputs())

    # 1. Wrong type
    with pytest.raises(TypeError):
        detector.detect("not a frame")

    # 2. Empty frame
    with pytest.raises(ValueError):
        detector.detect(np.array([]))

    # 3. Wrong shape (grayscale)
    gray = np.zeros((100, 100), dtype=np.uint8)
    with pytest.raises(ValueError, match="3-dimensional"):
        detector.detect(gray)

    # 4. Wrong channels (BGRA)
    bgra = np.zeros((100, 100, 4), dtype=np.uint8)
    with pytest.raises(ValueError, match="3 channels"):
        detector.detect(bgra)


def test_load_model_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError, match="model not found"):
        load_model(ModelConfig(model_path=str(tmp_path / "missing.onnx")))


@pytest.mark.skipif(not _MODEL_EXISTS, reason="Model files not found")
def test_detector_integration_smoke():
    """Smoke test: detector initializes and runs on a dummy frame."""
    detector = Detector()

    frame = np.zeros((480, 640, 3), dtype=np.uint8)

    result = detector.detect(frame)
    assert len(result) == 0 or result.best.confidence > 0
