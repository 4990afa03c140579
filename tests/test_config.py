"""
Tests for the configuration module.
"""

import pytest

from scrfd_face.config import (
    AppConfig,
    DetectionConfig,
    FilterConfig,
    ModelConfig,
    _validate,
    load_config,
    with_overrides,
)


def test_load_defaults():
    """Test loading configuration without any file."""
    config = load_config(None)
    assert isinstance(config, AppConfig)
    assert config.detection.preset == "default"
    assert config.detection.confidence_threshold == 0.5
    assert config.detection.nms_threshold == 0.4
    assert config.detection.decode_strategy == "distance"
    assert config.filter.min_box_size == 10.0
    assert config.filter.min_aspect_ratio == 0.2
    assert config.filter.max_aspect_ratio == 5.0
    assert config.model.outputs == ()


def test_validation_failure():
    """Test fail-fast validation."""
    with pytest.raises(ValueError, match="confidence_threshold"):
        _validate(AppConfig(detection=DetectionConfig(confidence_threshold=1.5)))

    with pytest.raises(ValueError, match="nms_threshold"):
        _validate(AppConfig(detection=DetectionConfig(nms_threshold=1.0)))

    with pytest.raises(ValueError, match="decode_strategy"):
        _validate(AppConfig(detection=DetectionConfig(decode_strategy="naive")))

    with pytest.raises(ValueError, match="aspect ratio"):
        _validate(AppConfig(filter=FilterConfig(min_aspect_ratio=6.0)))

    with pytest.raises(ValueError, match="input_size"):
        _validate(AppConfig(model=ModelConfig(input_size=0)))


def test_env_override(monkeypatch):
    """Test environment variable overrides."""
    monkeypatch.setenv("SCRFD_DETECTION_CONFIDENCE_THRESHOLD", "0.9")
    monkeypatch.setenv("SCRFD_DETECTION_PARALLEL_LEVELS", "true")
    monkeypatch.setenv("SCRFD_MODEL_PROVIDERS", "CUDAExecutionProvider,CPUExecutionProvider")

    config = load_config(None)

    assert config.detection.confidence_threshold == 0.9
    assert config.detection.parallel_levels is True
    assert config.model.providers == ("CUDAExecutionProvider", "CPUExecutionProvider")


def test_yaml_file_with_preset(tmp_path):
    """Test YAML loading, preset seeding and explicit keys."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "detection:\n"
        "  preset: aggressive\n"
        "  confidence_threshold: 0.6\n"
        "filter:\n"
        "  min_box_size: 12\n"
        "model:\n"
        "  input_size: 320\n"
        "  outputs:\n"
        "    - {stride: 16, score: score_16, bbox: bbox_16}\n"
        "    - {stride: 8, score: 0, bbox: 3, kps: 6}\n",
        encoding="utf-8",
    )

    config = load_config(str(path))

    assert config.detection.preset == "aggressive"
    assert config.detection.nms_threshold == 0.3
    assert config.detection.confidence_threshold == 0.6
    assert config.filter.min_box_size == 12.0
    assert config.model.input_size == 320
    assert [o.stride for o in config.model.outputs] == [8, 16]
    assert config.model.outputs[0].kps == 6
    assert config.model.outputs[1].score == "score_16"


def test_explicit_nms_beats_preset(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("detection:\n  preset: aggressive\n  nms_threshold: 0.5\n", encoding="utf-8")

    assert load_config(str(path)).detection.nms_threshold == 0.5


def test_unknown_preset(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("detection:\n  preset: turbo\n", encoding="utf-8")

    with pytest.raises(ValueError, match="preset"):
        load_config(str(path))


def test_missing_config_file():
    with pytest.raises(FileNotFoundError):
        load_config("does/not/exist.yaml")


def test_with_overrides():
    """Test CLI-style overrides on a frozen config."""
    config = load_config(None)

    updated = with_overrides(
        config,
        detection={"preset": "aggressive", "confidence_threshold": None},
        model={"model_path": "models/other.onnx"},
    )

    assert updated.detection.nms_threshold == 0.3
    assert updated.detection.confidence_threshold == 0.5
    assert updated.model.model_path == "models/other.onnx"
    assert config.detection.nms_threshold == 0.4

    with pytest.raises(ValueError, match="confidence_threshold"):
        with_overrides(config, detection={"confidence_threshold": 2.0})


def test_bundled_example_config():
    """Test that the shipped example configuration loads."""
    config = load_config("config.yaml")
    assert config.detection.nms_threshold == 0.4
    assert config.model.model_path.endswith(".onnx")


def test_cli_preset_keeps_explicit_nms(tmp_path):
    """Test that a preset override does not replace a threshold set in YAML."""
    path = tmp_path / "config.yaml"
    path.write_text("detection:\n  nms_threshold: 0.5\n", encoding="utf-8")

    updated = with_overrides(load_config(str(path)), detection={"preset": "aggressive"})

    assert updated.detection.preset == "aggressive"
    assert updated.detection.nms_threshold == 0.5


def test_cli_preset_switches_back(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("detection:\n  preset: aggressive\n", encoding="utf-8")

    updated = with_overrides(load_config(str(path)), detection={"preset": "default"})

    assert updated.detection.nms_threshold == 0.4
