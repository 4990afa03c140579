"""
SCRFD Face — decode and suppression pipeline for SCRFD face detectors.

Public API:
    - postprocess: Raw per-level tensors → DetectionResult (the core).
    - compute_letterbox / LetterboxTransform: Input geometry and its inverse.
    - non_max_suppression / iou: Greedy suppression helpers.
    - Detector: Runs an SCRFD ONNX model end to end.
    - FaceDetection, DetectionResult: Result types.

Usage:
    from scrfd_face import Detector

    detector = Detector()
    result = detector.detect(frame)

    # or, with tensors from your own inference engine:
    from scrfd_face import LevelOutputs, compute_letterbox, postprocess

    transform = compute_letterbox(width, height, 640)
    result = postprocess(levels, transform, (width, height))
"""

from scrfd_face.config import AppConfig, load_config
from scrfd_face.detection import BoundingBox, DetectionResult, FaceDetection, Keypoint
from scrfd_face.detector import Detector
from scrfd_face.diagnostics import CollectingSink, DecodeEvent, LoggingSink, ShapeMismatchError
from scrfd_face.layout import LevelOutputs, OutputLayout, resolve_output_layout
from scrfd_face.letterbox import LetterboxTransform, compute_letterbox
from scrfd_face.nms import iou, non_max_suppression
from scrfd_face.postprocessor import decode_level, postprocess

__all__ = [
    "AppConfig",
    "BoundingBox",
    "CollectingSink",
    "DecodeEvent",
    "DetectionResult",
    "Detector",
    "FaceDetection",
    "Keypoint",
    "LetterboxTransform",
    "LevelOutputs",
    "LoggingSink",
    "OutputLayout",
    "ShapeMismatchError",
    "compute_letterbox",
    "decode_level",
    "iou",
    "load_config",
    "non_max_suppression",
    "postprocess",
    "resolve_output_layout",
]
