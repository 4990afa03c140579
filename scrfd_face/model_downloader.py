"""
Model downloading for the SCRFD face detection pipeline.

Responsibility:
    Know where the published SCRFD ONNX exports live, list them, and
    fetch one into the models directory so that ``model.model_path`` can
    point at it.

Non-goals:
    - No checksum verification or resumable downloads.
    - No model loading (see model_loader).

Failure behavior:
    - Unknown model names raise ValueError listing the known names.
    - Network or filesystem failures propagate as OSError; a partial
      download never replaces the target file.
"""

import logging
import urllib.request
from pathlib import Path
from typing import Dict, Optional

from scrfd_face.config import get_project_root

logger = logging.getLogger(__name__)

MODEL_SOURCE = "https://github.com/cysin/scrfd_onnx"
_MEDIA_BASE = "https://media.githubusercontent.com/media/cysin/scrfd_onnx/main"

MODEL_CATALOG: Dict[str, Dict[str, str]] = {
    "scrfd_500m": {
        "url": f"{_MEDIA_BASE}/scrfd_500m_bnkps.onnx",
        "description": "Lightweight model",
    },
    "scrfd_1g": {
        "url": f"{_MEDIA_BASE}/scrfd_1g_bnkps.onnx",
        "description": "Balanced model",
    },
    "scrfd_2.5g": {
        "url": f"{_MEDIA_BASE}/scrfd_2.5g_bnkps.onnx",
        "description": "High accuracy model",
    },
    "scrfd_10g": {
        "url": f"{_MEDIA_BASE}/scrfd_10g_bnkps.onnx",
        "description": "Highest accuracy model",
    },
}

DEFAULT_MODELS_DIR = "models"


def list_models() -> Dict[str, Dict[str, str]]:
    """Return a copy of the downloadable model catalog."""
    return {name: dict(info) for name, info in MODEL_CATALOG.items()}


def format_model_list() -> str:
    """Render the catalog as the text printed by ``--list-models``."""
    lines = [f"Available SCRFD models from {MODEL_SOURCE}:"]
    for name, info in MODEL_CATALOG.items():
        lines.append(f"- {name}: {info['description']}")
    lines.append("")
    lines.append("Usage: --download-model scrfd_500m")
    return "\n".join(lines)


def model_filename(name: str) -> str:
    return f"{name}_bnkps.onnx"


def download_model(
    name: str = "scrfd_500m",
    models_dir: Optional[str] = None,
    force: bool = False,
) -> str:
    """Download a SCRFD model unless it is already present.

    Args:
        name: Catalog key (see MODEL_CATALOG).
        models_dir: Target directory. Relative paths resolve against the
                    project root; defaults to ``models/``.
        force: Download even if the file already exists.

    Returns:
        Absolute path of the model file.

    Raises:
        ValueError: If ``name`` is not in the catalog.
        OSError: If the download or the write fails.
    """
    if name not in MODEL_CATALOG:
        raise ValueError(
            f"Unknown model: '{name}'. Available models: {', '.join(MODEL_CATALOG)}."
        )

    directory = Path(models_dir or DEFAULT_MODELS_DIR)
    if not directory.is_absolute():
        directory = get_project_root() / directory
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / model_filename(name)

    if target.is_file() and not force:
        logger.info("Model already exists: %s", target)
        return str(target)

    url = MODEL_CATALOG[name]["url"]
    partial = target.with_name(target.name + ".part")
    logger.info("Downloading %s from %s", name, url)
    logger.info("Source: %s", MODEL_SOURCE)

    try:
        urllib.request.urlretrieve(url, partial)
        partial.replace(target)
    finally:
        if partial.exists():
            partial.unlink()

    logger.info("Model downloaded successfully: %s", target)
    return str(target)
