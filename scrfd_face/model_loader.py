"""
Model loading for the SCRFD face detection pipeline.

Responsibility:
    Load the SCRFD ONNX model into an ONNX Runtime session, read its input
    geometry, and resolve the output-to-level layout once so that
    per-image decoding never re-derives it.

Non-goals:
    - No preprocessing, decoding, or frame-level logic.
    - No downloading (see model_downloader).
    - No fallback to alternative models.

Failure behavior:
    - A missing model file raises FileNotFoundError with the exact
      missing path and expected location.
    - Outputs that cannot be mapped to pyramid levels raise ValueError.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Sequence, Tuple

import numpy as np
import onnxruntime as ort

from scrfd_face.config import ModelConfig, get_project_root
from scrfd_face.layout import OutputLayout, resolve_output_layout

logger = logging.getLogger(__name__)

# Used when the model declares a dynamic spatial size and none is configured.
DEFAULT_INPUT_SIZE = 640


@dataclass(frozen=True)
class LoadedModel:
    """A ready-to-run SCRFD session plus its resolved I/O metadata.

    Attributes:
        session: The inference session (anything with ``run``).
        input_name: Name of the image input.
        input_size: Side of the square network input.
        output_names: Output names in session order.
        layout: Output-to-level mapping.
        path: Model file the session was created from.
    """

    session: Any
    input_name: str
    input_size: int
    output_names: Tuple[str, ...]
    layout: OutputLayout
    path: str = ""

    def run(self, blob: np.ndarray) -> List[np.ndarray]:
        """Run inference and return every output, in session order."""
        outputs = self.session.run(list(self.output_names), {self.input_name: blob})
        return [np.asarray(o) for o in outputs]


def _input_size_from_shape(shape: Sequence[Any], configured) -> int:
    if configured is not None:
        return int(configured)

    # NCHW; dynamic axes come back as strings or None.
    if len(shape) == 4 and isinstance(shape[2], int) and shape[2] > 0:
        if isinstance(shape[3], int) and shape[3] != shape[2]:
            logger.warning(
                "Model input is not square (%dx%d); using height %d.",
                shape[3], shape[2], shape[2],
            )
        return shape[2]

    logger.warning(
        "Model input shape %s has no fixed spatial size; using %d. "
        "Set 'model.input_size' to override.",
        list(shape), DEFAULT_INPUT_SIZE,
    )
    return DEFAULT_INPUT_SIZE


def wrap_session(session: Any, config: ModelConfig, path: str = "") -> LoadedModel:
    """Read I/O metadata from an existing session and resolve its layout.

    Args:
        session: An ``onnxruntime.InferenceSession`` or an object with the
                 same ``get_inputs``/``get_outputs``/``run`` interface.
        config: ModelConfig with optional input size and output mapping.
        path: Model path, for reporting only.
    """
    model_input = session.get_inputs()[0]
    output_names = tuple(o.name for o in session.get_outputs())

    input_size = _input_size_from_shape(list(model_input.shape), config.input_size)
    layout = resolve_output_layout(output_names, config.outputs)

    logger.info(
        "Model input: %s, shape=%s, input_size=%d",
        model_input.name, list(model_input.shape), input_size,
    )
    logger.debug("Model outputs: %s", list(output_names))

    return LoadedModel(
        session=session,
        input_name=model_input.name,
        input_size=input_size,
        output_names=output_names,
        layout=layout,
        path=path,
    )


def load_model(config: ModelConfig) -> LoadedModel:
    """Load and configure the SCRFD face detection model.

    Args:
        config: ModelConfig containing the model path and provider preference.

    Returns:
        A LoadedModel ready for inference.

    Raises:
        FileNotFoundError: If the model file does not exist.
        ValueError: If the outputs cannot be mapped to pyramid levels.
    """
    model_path = Path(config.model_path)

    # Resolve relative paths against project root
    if not model_path.is_absolute():
        model_path = get_project_root() / model_path

    # Validate file existence; fail fast with actionable messages
    if not model_path.is_file():
        raise FileNotFoundError(
            f"SCRFD model not found.\n"
            f"  Expected: {model_path}\n"
            f"  Run with --download-model scrfd_500m, place an SCRFD .onnx export\n"
            f"  at the path above,\n"
            f"  or update 'model.model_path' in your config."
        )

    providers = list(config.providers) if config.providers else None
    logger.info("Loading model: %s (providers=%s)", model_path, providers or "default")

    session = ort.InferenceSession(
        str(model_path),
        sess_options=ort.SessionOptions(),
        providers=providers,
    )
    logger.info("Execution providers in use: %s", session.get_providers())

    model = wrap_session(session, config, path=str(model_path))
    logger.info("Model loaded successfully.")
    return model
