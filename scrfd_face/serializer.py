"""
Serialization for the SCRFD face detection pipeline.

Responsibility:
    Export a detection run (results plus timing and status telemetry) to
    JSON, render the console summary, and write annotated images, for
    downstream consumption or offline analysis.

Non-goals:
    - No detection logic.
    - No streaming output — writes complete files.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import cv2
import numpy as np

from scrfd_face.detection import DetectionResult, FaceDetection
from scrfd_face.diagnostics import DecodeEvent

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Telemetry:
    """Status and timing of one detection run.

    Filled in progressively by the CLI; a failed run keeps
    ``success=False`` and carries the error message.
    """

    image_path: str = ""
    model_path: str = ""
    confidence_threshold: float = 0.0
    nms_threshold: float = 0.0
    start_time: datetime = field(default_factory=_utcnow)
    end_time: Optional[datetime] = None
    total_time_ms: float = 0.0
    inference_time_ms: float = 0.0
    success: bool = False
    error_message: Optional[str] = None
    image_size: Optional[Tuple[int, int]] = None
    detections: List[FaceDetection] = field(default_factory=list)
    diagnostics: List[DecodeEvent] = field(default_factory=list)

    @property
    def detected_faces(self) -> int:
        return len(self.detections)

    def record_result(self, result: DetectionResult) -> None:
        """Copy a successful result into the telemetry."""
        self.detections = list(result.detections)
        self.diagnostics = list(result.diagnostics)
        self.image_size = result.image_size
        self.inference_time_ms = result.inference_time_ms or 0.0
        self.success = True

    def record_failure(self, error: BaseException) -> None:
        self.success = False
        self.error_message = str(error)

    def finish(self, total_time_ms: float) -> None:
        self.end_time = _utcnow()
        self.total_time_ms = total_time_ms

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "total_time_ms": round(self.total_time_ms, 2),
            "inference_time_ms": round(self.inference_time_ms, 2),
            "success": self.success,
            "error_message": self.error_message,
            "image_path": self.image_path,
            "model_path": self.model_path,
            "confidence_threshold": self.confidence_threshold,
            "nms_threshold": self.nms_threshold,
            "detected_faces": self.detected_faces,
            "image_size": (
                {"width": self.image_size[0], "height": self.image_size[1]}
                if self.image_size else None
            ),
            "detections": [d.to_dict() for d in self.detections],
            "diagnostics": [e.to_dict() for e in self.diagnostics],
        }


def to_json(telemetry: Telemetry) -> str:
    return json.dumps(telemetry.to_dict(), indent=2)


def save_json(telemetry: Telemetry, output_path: str) -> None:
    """Export a detection run to a JSON file.

    Args:
        telemetry: The run to export.
        output_path: Path to the output JSON file.

    Raises:
        OSError: If the output path is not writable.
    """
    _ensure_parent_dir(output_path)

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(to_json(telemetry))

    logger.info(
        "JSON output saved: %s (%d detections)",
        output_path, telemetry.detected_faces,
    )


def format_summary(telemetry: Telemetry) -> str:
    """Render the human-readable run summary printed by the CLI."""
    lines = [
        "=== SUMMARY ===",
        f"Status: {'SUCCESS' if telemetry.success else 'FAILED'}",
        f"Faces detected: {telemetry.detected_faces}",
        f"Total time: {telemetry.total_time_ms:.0f}ms",
        f"Inference time: {telemetry.inference_time_ms:.0f}ms",
    ]
    if telemetry.image_size:
        lines.append(f"Image size: {telemetry.image_size[0]}x{telemetry.image_size[1]}")

    if telemetry.success and telemetry.detections:
        lines.append("")
        lines.append("Detected faces:")
        for i, face in enumerate(telemetry.detections, start=1):
            box = face.box
            lines.append(
                f"  Face {i}: Confidence={face.confidence:.3f}, "
                f"Box=({box.x:.0f},{box.y:.0f},{box.width:.0f},{box.height:.0f}), "
                f"Keypoints={len(face.keypoints)}"
            )

    for event in telemetry.diagnostics:
        lines.append(f"Warning: {event.message}")

    if not telemetry.success and telemetry.error_message:
        lines.append(f"Error: {telemetry.error_message}")

    return "\n".join(lines)


def save_image(image: np.ndarray, output_path: str) -> None:
    """Write an (annotated) image, creating parent directories.

    Raises:
        OSError: If OpenCV cannot encode or write the file.
    """
    _ensure_parent_dir(output_path)
    if not cv2.imwrite(output_path, image):
        raise OSError(f"Failed to write image: {output_path}")
    logger.info("Visualization saved to: %s", output_path)


def _ensure_parent_dir(path: str) -> None:
    """Create parent directories if they don't exist."""
    parent = Path(path).parent
    parent.mkdir(parents=True, exist_ok=True)
