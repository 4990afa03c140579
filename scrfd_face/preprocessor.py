"""
Preprocessing for the SCRFD face detection pipeline.

Responsibility:
    Convert a raw BGR frame (numpy array) into the letterboxed, normalized
    NCHW float32 blob the SCRFD network consumes, and return the
    LetterboxTransform needed to map detections back.

Non-goals:
    - No frame acquisition or I/O.
    - No inference or coordinate mapping.

Hard-coded:
    - Padding is black, placed symmetrically around the resized image.
"""

from typing import Tuple

import cv2
import numpy as np

from scrfd_face.config import ModelConfig
from scrfd_face.letterbox import LetterboxTransform, compute_letterbox, letterbox_image


def preprocess(
    frame: np.ndarray,
    target_size: int,
    config: ModelConfig,
) -> Tuple[np.ndarray, LetterboxTransform]:
    """Convert a raw BGR frame into a network input blob.

    Args:
        frame: Input image as a BGR numpy array (H, W, 3).
        target_size: Side of the square network input.
        config: ModelConfig providing mean, std and channel order.

    Returns:
        A (blob, transform) pair. The blob has shape
        (1, 3, target_size, target_size) and dtype float32.

    Raises:
        ValueError: If the frame is empty or has unexpected dimensions.
    """
    if frame is None or frame.size == 0:
        raise ValueError(
            "Cannot preprocess an empty frame. "
            "Ensure the input source is providing valid frames."
        )

    h, w = frame.shape[:2]
    transform = compute_letterbox(w, h, target_size)
    canvas = letterbox_image(frame, transform)

    if config.swap_rb:
        canvas = cv2.cvtColor(canvas, cv2.COLOR_BGR2RGB)

    blob = (canvas.astype(np.float32) - config.mean) / config.std
    blob = np.transpose(blob, (2, 0, 1))[None, ...]

    return np.ascontiguousarray(blob, dtype=np.float32), transform
