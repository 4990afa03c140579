"""
Tests for the CLI entrypoint.
"""

import json

import pytest

from main import _configure, main, parse_args, run
from scrfd_face.config import AppConfig
from scrfd_face.serializer import Telemetry


def test_main_requires_image():
    assert main([]) == 1


def test_unknown_download_model_rejected():
    with pytest.raises(SystemExit):
        parse_args(["--download-model", "scrfd_99g"])


def test_list_models(capsys):
    assert main(["--list-models"]) == 0
    out = capsys.readouterr().out
    assert "scrfd_500m: Lightweight model" in out
    assert "scrfd_10g" in out


def test_downloaded_model_becomes_model_path(tmp_path, monkeypatch):
    """Test that --download-model feeds model.model_path for the run."""
    model = tmp_path / "scrfd_1g_bnkps.onnx"
    model.write_bytes(b"onnx")
    monkeypatch.setattr("main.download_model", lambda name: str(model))
    captured = {}

    def fake_run(config, image_path):
        captured["model_path"] = config.model.model_path
        return Telemetry(image_path=image_path, success=True)

    monkeypatch.setattr("main.run", fake_run)

    code = main(["--download-model", "scrfd_1g", "--image", "a.jpg", "--output", str(tmp_path / "r.json")])

    assert code == 0
    assert captured["model_path"] == str(model)


def test_download_only_exits_without_image(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr("main.download_model", lambda name: str(tmp_path / "m.onnx"))

    assert main(["--download-model", "scrfd_500m"]) == 0
    assert "Model ready at:" in capsys.readouterr().out


def test_cli_overrides_config():
    args = parse_args([
        "--image", "a.jpg",
        "--preset", "aggressive",
        "--confidence", "0.7",
        "--model", "other.onnx",
    ])

    config = _configure(args)

    assert config.detection.preset == "aggressive"
    assert config.detection.nms_threshold == pytest.approx(0.3)
    assert config.detection.confidence_threshold == pytest.approx(0.7)
    assert config.model.model_path == "other.onnx"


def test_run_missing_image_records_failure(tmp_path):
    telemetry = run(AppConfig(), str(tmp_path / "missing.jpg"))

    assert telemetry.success is False
    assert "Could not read image" in telemetry.error_message
    assert telemetry.end_time is not None


def test_main_writes_failed_telemetry(tmp_path):
    out = tmp_path / "result.json"

    code = main(["--image", str(tmp_path / "missing.jpg"), "--output", str(out)])

    assert code == 1
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["success"] is False
    assert payload["detected_faces"] == 0
