"""
Tests for the model downloading module.
"""

import pytest

from scrfd_face import model_downloader
from scrfd_face.model_downloader import (
    MODEL_CATALOG,
    download_model,
    format_model_list,
    list_models,
    model_filename,
)


def test_catalog_lists_all_sizes():
    models = list_models()
    assert list(models) == ["scrfd_500m", "scrfd_1g", "scrfd_2.5g", "scrfd_10g"]
    assert models["scrfd_2.5g"]["url"].endswith("/scrfd_2.5g_bnkps.onnx")

    # A copy, not the catalog itself
    models["scrfd_1g"]["url"] = "changed"
    assert MODEL_CATALOG["scrfd_1g"]["url"] != "changed"


def test_format_model_list():
    text = format_model_list()
    assert "- scrfd_500m: Lightweight model" in text
    assert "- scrfd_10g: Highest accuracy model" in text
    assert "Usage: --download-model scrfd_500m" in text


def test_existing_model_is_not_downloaded(tmp_path, monkeypatch):
    """Test that a model already on disk is reused as-is."""
    existing = tmp_path / model_filename("scrfd_500m")
    existing.write_bytes(b"cached")

    def fail(*args, **kwargs):
        raise AssertionError("download attempted")

    monkeypatch.setattr(model_downloader.urllib.request, "urlretrieve", fail)

    path = download_model("scrfd_500m", models_dir=str(tmp_path))

    assert path == str(existing)
    assert existing.read_bytes() == b"cached"


def test_download_writes_target(tmp_path, monkeypatch):
    calls = []

    def fake_retrieve(url, filename):
        calls.append(url)
        with open(filename, "wb") as f:
            f.write(b"onnx")

    monkeypatch.setattr(model_downloader.urllib.request, "urlretrieve", fake_retrieve)

    path = download_model("scrfd_10g", models_dir=str(tmp_path / "models"))

    assert calls == [MODEL_CATALOG["scrfd_10g"]["url"]]
    assert path == str(tmp_path / "models" / "scrfd_10g_bnkps.onnx")
    assert (tmp_path / "models" / "scrfd_10g_bnkps.onnx").read_bytes() == b"onnx"
    assert not list((tmp_path / "models").glob("*.part"))


def test_failed_download_leaves_no_file(tmp_path, monkeypatch):
    def broken(url, filename):
        with open(filename, "wb") as f:
            f.write(b"half")
        raise OSError("connection reset")

    monkeypatch.setattr(model_downloader.urllib.request, "urlretrieve", broken)

    with pytest.raises(OSError, match="connection reset"):
        download_model("scrfd_1g", models_dir=str(tmp_path))

    assert list(tmp_path.iterdir()) == []


def test_unknown_model():
    with pytest.raises(ValueError, match="Available models"):
        download_model("scrfd_99g")
