"""
Detection data transfer objects.

This module defines the value types returned by the decode pipeline:
Keypoint, BoundingBox, FaceDetection and DetectionResult. They are
frozen, serializable containers with no behavior beyond data access.

Non-goals:
    - No rendering logic.
    - No file I/O.
    - No coordinate transformation methods (that belongs in letterbox
      and postprocessor).
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from scrfd_face.diagnostics import DecodeEvent

# SCRFD predicts five landmarks: eyes, nose tip, mouth corners.
NUM_KEYPOINTS = 5


@dataclass(frozen=True, slots=True)
class Keypoint:
    """A single facial landmark in original-image pixel space."""

    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": round(self.x, 2), "y": round(self.y, 2)}


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned box stored as top-left corner plus size.

    Attributes:
        x: Left edge (absolute pixels).
        y: Top edge (absolute pixels).
        width: Box width in pixels.
        height: Box height in pixels.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def x2(self) -> float:
        """Right edge."""
        return self.x + self.width

    @property
    def y2(self) -> float:
        """Bottom edge."""
        return self.y + self.height

    @property
    def area(self) -> float:
        """Box area in square pixels (zero for degenerate boxes)."""
        return max(0.0, self.width) * max(0.0, self.height)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x2, self.y2

    def to_dict(self) -> dict:
        return {
            "x": round(self.x, 2),
            "y": round(self.y, 2),
            "width": round(self.width, 2),
            "height": round(self.height, 2),
        }


@dataclass(frozen=True, slots=True)
class FaceDetection:
    """A single detected face with bounding box, confidence and landmarks.

    Attributes:
        confidence: Activated detection score in (0.0, 1.0].
        box: Bounding box in original-image coordinates, clamped to the
             image bounds.
        keypoints: Either empty or exactly NUM_KEYPOINTS landmarks.
                   Landmarks are not clamped and may fall slightly outside
                   the image.
    """

    confidence: float
    box: BoundingBox
    keypoints: Tuple[Keypoint, ...] = ()

    def __post_init__(self) -> None:
        if len(self.keypoints) not in (0, NUM_KEYPOINTS):
            raise ValueError(
                f"A detection carries 0 or {NUM_KEYPOINTS} keypoints, "
                f"got {len(self.keypoints)}."
            )

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        return {
            "confidence": round(self.confidence, 4),
            "bounding_box": self.box.to_dict(),
            "keypoints": [kp.to_dict() for kp in self.keypoints],
        }


@dataclass(frozen=True)
class DetectionResult:
    """Final output of the pipeline for one image.

    Detections are ordered by confidence (descending) and pairwise
    overlap never exceeds the NMS threshold they were produced with.
    ``diagnostics`` holds the non-fatal events (e.g. skipped levels)
    reported while decoding. ``image_size`` and ``inference_time_ms`` are
    filled in by the Detector when it ran the network itself.
    """

    detections: Tuple[FaceDetection, ...] = ()
    diagnostics: Tuple[DecodeEvent, ...] = field(default=())
    image_size: Optional[Tuple[int, int]] = None
    inference_time_ms: Optional[float] = None

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self) -> Iterator[FaceDetection]:
        return iter(self.detections)

    def __getitem__(self, index: int) -> FaceDetection:
        return self.detections[index]

    @property
    def best(self) -> Optional[FaceDetection]:
        """Highest-confidence detection, or None when nothing was found."""
        return self.detections[0] if self.detections else None

    def to_dict(self) -> dict:
        return {
            "image_size": list(self.image_size) if self.image_size else None,
            "inference_time_ms": self.inference_time_ms,
            "detections": [d.to_dict() for d in self.detections],
            "diagnostics": [e.to_dict() for e in self.diagnostics],
        }
