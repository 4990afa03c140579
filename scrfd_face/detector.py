"""
Detector — the high-level API for SCRFD face detection.

This module wires model loading, preprocessing, inference and the decode
pipeline together. Callers that already run the network themselves use
scrfd_face.postprocessor.postprocess directly instead.

Public contract:
    Detector.detect(frame: np.ndarray) -> DetectionResult

Constraints:
    - Input must be a BGR numpy array (as returned by OpenCV).
    - The method is stateless per call and deterministic.
    - Thread-safety follows the underlying inference session.

Non-goals:
    - No file reading, camera access, or I/O of any kind.
    - No visualization or output writing.
    - No tracking or temporal state.
"""

import logging
import time
from dataclasses import replace
from typing import Optional

import numpy as np

from scrfd_face.config import AppConfig, load_config
from scrfd_face.detection import DetectionResult
from scrfd_face.diagnostics import DiagnosticsSink
from scrfd_face.model_loader import LoadedModel, load_model
from scrfd_face.postprocessor import postprocess
from scrfd_face.preprocessor import preprocess

logger = logging.getLogger(__name__)


class Detector:
    """Face detector running an SCRFD ONNX export.

    Usage:
        detector = Detector()                      # Uses safe defaults
        detector = Detector(config=my_config)       # Custom config
        result = detector.detect(frame)             # BGR numpy array

    The constructor loads the model once. Subsequent detect() calls
    reuse the loaded session and its resolved output layout.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        model: Optional[LoadedModel] = None,
        sink: Optional[DiagnosticsSink] = None,
    ) -> None:
        """Initialize the detector and load the model.

        Args:
            config: Application configuration. If None, safe defaults
                    are used (no config file required).
            model: An already loaded model. If None, the model named by
                   ``config.model.model_path`` is loaded.
            sink: Diagnostics sink passed to every decode. None logs them.

        Raises:
            FileNotFoundError: If the model file is missing.
            ValueError: If configuration values are invalid or the model
                        outputs cannot be mapped to pyramid levels.
        """
        if config is None:
            config = load_config()

        self._config = config
        self._model = model if model is not None else load_model(config.model)
        self._sink = sink

        logger.info(
            "Detector initialized (input_size=%d, strides=%s, "
            "confidence_threshold=%.2f, nms_threshold=%.2f)",
            self._model.input_size,
            self._model.layout.strides,
            config.detection.confidence_threshold,
            config.detection.nms_threshold,
        )

    def detect(self, frame: np.ndarray) -> DetectionResult:
        """Detect faces in a single BGR frame.

        Args:
            frame: A BGR image as a numpy array with shape (H, W, 3)
                   and dtype uint8. This is the standard format returned
                   by cv2.imread().

        Returns:
            A DetectionResult sorted by confidence (descending), with the
            image size and inference time filled in. Empty when no faces
            are found.

        Raises:
            TypeError: If frame is not a numpy ndarray.
            ValueError: If frame has incorrect shape or is empty.
        """
        self._validate_frame(frame)

        # Preprocess: frame → blob
        blob, transform = preprocess(frame, self._model.input_size, self._config.model)

        # Inference
        start = time.perf_counter()
        outputs = self._model.run(blob)
        inference_ms = (time.perf_counter() - start) * 1000.0

        # Postprocess: raw outputs → DetectionResult
        h, w = frame.shape[:2]
        result = postprocess(
            self._model.layout.split(outputs),
            transform,
            (w, h),
            detection=self._config.detection,
            filt=self._config.filter,
            sink=self._sink,
        )

        logger.debug("Detected %d face(s) in %.1f ms", len(result), inference_ms)
        return replace(result, image_size=(w, h), inference_time_ms=inference_ms)

    @property
    def config(self) -> AppConfig:
        """Return the active configuration (read-only)."""
        return self._config

    @property
    def model(self) -> LoadedModel:
        return self._model

    @staticmethod
    def _validate_frame(frame: np.ndarray) -> None:
        """Validate that the input frame meets the API contract.

        Raises:
            TypeError: If frame is not a numpy ndarray.
            ValueError: If frame is empty or has wrong dimensions.
        """
        if not isinstance(frame, np.ndarray):
            raise TypeError(
                f"Expected frame to be a numpy ndarray, "
                f"got {type(frame).__name__}. "
                f"Use cv2.imread() to obtain frames."
            )

        if frame.size == 0:
            raise ValueError(
                "Frame is empty (zero size). "
                "Ensure the input image was read correctly."
            )

        if frame.ndim != 3:
            raise ValueError(
                f"Expected a 3-dimensional frame (H, W, C), "
                f"got {frame.ndim} dimensions with shape {frame.shape}. "
                f"Grayscale images must be converted to BGR first."
            )

        if frame.shape[2] != 3:
            raise ValueError(
                f"Expected 3 channels (BGR), got {frame.shape[2]} channels. "
                f"Input must be a BGR image as returned by OpenCV."
            )
