"""
Letterbox geometry for the SCRFD input canvas.

Responsibility:
    Compute the aspect-preserving resize + centered padding that maps an
    original image into the network's square input, and invert it when
    decoded coordinates are mapped back.

    The same LetterboxTransform is produced once per image, used by the
    preprocessor to build the canvas, and consumed unchanged by every
    level decode for that image.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LetterboxTransform:
    """Scale and offset placing an image inside a square canvas.

    Attributes:
        scale: Uniform resize factor (original → model space).
        offset_x: Left padding in model pixels.
        offset_y: Top padding in model pixels.
        target_size: Side of the square network input.
    """

    scale: float
    offset_x: int
    offset_y: int
    target_size: int

    def to_model(self, x, y):
        """Map original-image coordinates into model (canvas) space."""
        return x * self.scale + self.offset_x, y * self.scale + self.offset_y

    def to_original(self, x, y):
        """Map model-space coordinates back to the original image.

        Works on scalars and NumPy arrays alike.
        """
        return (x - self.offset_x) / self.scale, (y - self.offset_y) / self.scale

    def resized_size(self, width: int, height: int) -> Tuple[int, int]:
        """Size of the image content placed on the canvas."""
        return (
            max(1, int(round(width * self.scale))),
            max(1, int(round(height * self.scale))),
        )


def _sanitize_dimension(name: str, value: int) -> int:
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}.")
    if value == 0:
        logger.warning("%s is 0; clamping to 1.", name)
        return 1
    return int(value)


def compute_letterbox(width: int, height: int, target_size: int) -> LetterboxTransform:
    """Compute the letterbox transform for an image.

    Args:
        width: Original image width in pixels.
        height: Original image height in pixels.
        target_size: Side of the square network input.

    Returns:
        The immutable LetterboxTransform for this image.

    Raises:
        ValueError: If any dimension is negative. Zero dimensions are
                    clamped to 1.
    """
    width = _sanitize_dimension("width", width)
    height = _sanitize_dimension("height", height)
    target_size = _sanitize_dimension("target_size", target_size)

    scale = min(target_size / width, target_size / height)
    new_w = max(1, int(round(width * scale)))
    new_h = max(1, int(round(height * scale)))

    return LetterboxTransform(
        scale=scale,
        offset_x=max(0, (target_size - new_w) // 2),
        offset_y=max(0, (target_size - new_h) // 2),
        target_size=target_size,
    )


def letterbox_image(
    image: np.ndarray,
    transform: LetterboxTransform,
    color: Tuple[int, int, int] = (0, 0, 0),
) -> np.ndarray:
    """Resize and pad an image onto the square canvas described by transform.

    Args:
        image: HWC image (any channel order).
        transform: Transform computed for this image's size.
        color: Padding color.

    Returns:
        A (target_size, target_size, C) array with the resized image placed
        at (offset_x, offset_y).
    """
    h, w = image.shape[:2]
    new_w, new_h = transform.resized_size(w, h)
    size = transform.target_size

    if (w, h) != (new_w, new_h):
        image = cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_LINEAR)

    # Rounding can push the content one pixel past the canvas; crop it.
    new_w = min(new_w, size - transform.offset_x)
    new_h = min(new_h, size - transform.offset_y)

    canvas = np.empty((size, size) + image.shape[2:], dtype=image.dtype)
    canvas[...] = color[: canvas.shape[2]] if canvas.ndim == 3 else color[0]
    canvas[
        transform.offset_y:transform.offset_y + new_h,
        transform.offset_x:transform.offset_x + new_w,
    ] = image[:new_h, :new_w]
    return canvas
