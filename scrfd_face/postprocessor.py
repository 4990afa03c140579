"""
Postprocessing for the SCRFD face detection pipeline.

Responsibility:
    Turn the raw per-level network outputs into a DetectionResult:
    score activation, anchor-relative box/keypoint decoding, inverse
    letterboxing, clamping, shape filtering, cross-level aggregation and
    Non-Maximum Suppression.

Non-goals:
    - No drawing, saving, or display logic.
    - No model loading or inference.

Failure behavior:
    - A level whose tensors are missing or inconsistent is skipped and
      reported to the diagnostics sink; other levels are unaffected.
    - Boxes failing the shape heuristics are dropped silently.
    - Only invalid whole-call inputs (no level list, bad image size)
      raise.
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

import numpy as np

from scrfd_face.anchors import anchor_centers, expected_anchor_count, feature_map_size
from scrfd_face.config import DetectionConfig, FilterConfig, validate_thresholds
from scrfd_face.detection import (
    NUM_KEYPOINTS,
    BoundingBox,
    DetectionResult,
    FaceDetection,
    Keypoint,
)
from scrfd_face.diagnostics import (
    LEVEL_DECODED,
    SHAPE_MISMATCH,
    SUPPRESSED,
    CollectingSink,
    DecodeEvent,
    DiagnosticsSink,
    LoggingSink,
    ShapeMismatchError,
)
from scrfd_face.layout import LevelOutputs
from scrfd_face.letterbox import LetterboxTransform
from scrfd_face.nms import non_max_suppression

logger = logging.getLogger(__name__)

_KPS_VALUES = NUM_KEYPOINTS * 2


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Logistic function, 1 / (1 + e^-x)."""
    x = np.asarray(x, dtype=np.float64)
    with np.errstate(over="ignore"):
        return 1.0 / (1.0 + np.exp(-x))


# ---------------------------------------------------------------------------
# Tensor normalization
# ---------------------------------------------------------------------------

def _drop_batch_axis(array: np.ndarray, name: str) -> np.ndarray:
    if array.ndim == 3:
        if array.shape[0] != 1:
            raise ShapeMismatchError(
                f"{name} tensor has batch size {array.shape[0]}; one image at a time."
            )
        array = array[0]
    return array


def _score_rows(scores: Optional[np.ndarray]) -> np.ndarray:
    """Scores as (N, C)."""
    if scores is None:
        raise ShapeMismatchError("score tensor is missing.")
    arr = _drop_batch_axis(np.asarray(scores, dtype=np.float32), "score")
    if arr.ndim == 1:
        return arr.reshape(-1, 1)
    if arr.ndim == 2 and arr.shape[1] >= 1:
        return arr
    raise ShapeMismatchError(f"unexpected score tensor shape {np.shape(scores)}.")


def _bbox_rows(bboxes: Optional[np.ndarray]) -> np.ndarray:
    """Box tensor as (N, 4)."""
    if bboxes is None:
        raise ShapeMismatchError("bbox tensor is missing.")
    arr = _drop_batch_axis(np.asarray(bboxes, dtype=np.float32), "bbox")
    if arr.ndim == 1 and arr.size % 4 == 0:
        return arr.reshape(-1, 4)
    if arr.ndim == 2 and arr.shape[1] == 4:
        return arr
    raise ShapeMismatchError(f"unexpected bbox tensor shape {np.shape(bboxes)}.")


def _kps_flat(kps: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if kps is None:
        return None
    arr = _drop_batch_axis(np.asarray(kps, dtype=np.float32), "kps")
    return arr.reshape(-1)


# ---------------------------------------------------------------------------
# Level decoding
# ---------------------------------------------------------------------------

def _shape_mask(
    width: np.ndarray,
    height: np.ndarray,
    image_size: Tuple[int, int],
    filt: FilterConfig,
) -> np.ndarray:
    """True where a decoded box passes the shape heuristics."""
    max_side = filt.max_box_ratio * min(image_size)
    positive = (width > 0) & (height > 0)
    aspect = np.divide(width, height, out=np.zeros_like(width), where=height > 0)
    return (
        positive
        & (width >= filt.min_box_size)
        & (height >= filt.min_box_size)
        & (width <= max_side)
        & (height <= max_side)
        & (aspect >= filt.min_aspect_ratio)
        & (aspect <= filt.max_aspect_ratio)
    )


def decode_level(
    level: LevelOutputs,
    transform: LetterboxTransform,
    image_size: Tuple[int, int],
    detection: DetectionConfig = DetectionConfig(),
    filt: FilterConfig = FilterConfig(),
    sink: Optional[DiagnosticsSink] = None,
) -> List[FaceDetection]:
    """Decode one pyramid level into filtered candidates.

    Args:
        level: Raw tensors of the level.
        transform: Letterbox transform used to build the network input.
        image_size: Original (width, height).
        detection: Decode parameters (threshold, strategy, activation).
        filt: Shape heuristics.
        sink: Receives a LEVEL_DECODED trace event.

    Returns:
        Candidates in anchor order, coordinates in original-image space.

    Raises:
        ShapeMismatchError: If the level's tensors are missing or their
                            anchor counts disagree with each other or with
                            the feature map.
    """
    stride = level.stride
    scores = _score_rows(level.scores)
    bboxes = _bbox_rows(level.bboxes)
    kps = _kps_flat(level.kps)

    apc = detection.anchors_per_cell
    expected = expected_anchor_count(stride, transform.target_size, apc)
    if scores.shape[0] != bboxes.shape[0] or scores.shape[0] != expected:
        fm = feature_map_size(stride, transform.target_size)
        raise ShapeMismatchError(
            f"anchor count mismatch: scores={scores.shape[0]}, "
            f"bboxes={bboxes.shape[0]}, expected {fm}x{fm}x{apc}={expected}."
        )

    # 1-2. Activation and early reject.
    confidence = sigmoid(scores) if detection.apply_sigmoid else scores.astype(np.float64)
    confidence = confidence.max(axis=1)
    idx = np.nonzero(confidence > detection.confidence_threshold)[0]

    candidates: List[FaceDetection] = []
    rejected = 0
    if idx.size:
        # 3-4. Anchor centers and box decode in model space.
        centers = anchor_centers(stride, transform.target_size, apc)[idx].astype(np.float64)
        raw = bboxes[idx].astype(np.float64)
        if detection.decode_strategy == "distance":
            if detection.distance_scale_by_stride:
                raw = raw * stride
            x1 = centers[:, 0] - raw[:, 0]
            y1 = centers[:, 1] - raw[:, 1]
            x2 = centers[:, 0] + raw[:, 2]
            y2 = centers[:, 1] + raw[:, 3]
        else:
            x1, y1, x2, y2 = raw[:, 0], raw[:, 1], raw[:, 2], raw[:, 3]

        # 5-6. Back to the original image, clamped to its bounds.
        img_w, img_h = image_size
        x1, y1 = transform.to_original(x1, y1)
        x2, y2 = transform.to_original(x2, y2)
        x1, x2 = np.clip(x1, 0, img_w), np.clip(x2, 0, img_w)
        y1, y2 = np.clip(y1, 0, img_h), np.clip(y2, 0, img_h)

        # 7. Shape heuristics.
        width, height = x2 - x1, y2 - y1
        passed = _shape_mask(width, height, image_size, filt)
        rejected = int(idx.size - np.count_nonzero(passed))

        for j in np.nonzero(passed)[0]:
            anchor = int(idx[j])
            candidates.append(FaceDetection(
                confidence=float(confidence[anchor]),
                box=BoundingBox(
                    x=float(x1[j]),
                    y=float(y1[j]),
                    width=float(width[j]),
                    height=float(height[j]),
                ),
                # 8. Landmarks, all or nothing.
                keypoints=_decode_keypoints(kps, anchor, centers[j], stride, transform, detection),
            ))

    if sink is not None:
        sink.emit(DecodeEvent(
            kind=LEVEL_DECODED,
            message=(
                f"{expected} anchors, {idx.size} above threshold, "
                f"{rejected} rejected by shape, {len(candidates)} kept"
            ),
            level=level.level,
            stride=stride,
            details={
                "anchors": expected,
                "above_threshold": int(idx.size),
                "rejected_shape": rejected,
                "candidates": len(candidates),
                "max_confidence": float(confidence.max()) if confidence.size else 0.0,
            },
        ))

    return candidates


def _decode_keypoints(
    kps: Optional[np.ndarray],
    anchor: int,
    center: np.ndarray,
    stride: int,
    transform: LetterboxTransform,
    detection: DetectionConfig,
) -> Tuple[Keypoint, ...]:
    if kps is None:
        return ()
    start = anchor * _KPS_VALUES
    if start + _KPS_VALUES > kps.size:
        return ()

    points = kps[start:start + _KPS_VALUES].astype(np.float64).reshape(NUM_KEYPOINTS, 2)
    if detection.decode_strategy == "distance":
        if detection.distance_scale_by_stride:
            points = points * stride
        points = points + center
    xs, ys = transform.to_original(points[:, 0], points[:, 1])
    return tuple(Keypoint(x=float(x), y=float(y)) for x, y in zip(xs, ys))


# ---------------------------------------------------------------------------
# Aggregation + suppression
# ---------------------------------------------------------------------------

def _validate_image_size(image_size: Tuple[int, int]) -> Tuple[int, int]:
    if len(image_size) != 2:
        raise ValueError(f"image_size must be (width, height), got {image_size!r}.")
    width, height = int(image_size[0]), int(image_size[1])
    if width <= 0 or height <= 0:
        raise ValueError(f"image_size must be positive, got {image_size!r}.")
    return width, height


def postprocess(
    levels: Sequence[LevelOutputs],
    transform: LetterboxTransform,
    image_size: Tuple[int, int],
    detection: DetectionConfig = DetectionConfig(),
    filt: FilterConfig = FilterConfig(),
    sink: Optional[DiagnosticsSink] = None,
    executor: Optional[Executor] = None,
) -> DetectionResult:
    """Decode every pyramid level and suppress overlapping candidates.

    Args:
        levels: Per-level raw tensors. Decoded in ascending stride order.
        transform: Letterbox transform used to build the network input.
        image_size: Original (width, height).
        detection: Decode and NMS parameters.
        filt: Shape heuristics.
        sink: Receives every diagnostic and trace event. Defaults to a
              LoggingSink.
        executor: Pool used when ``detection.parallel_levels`` is set. A
                  private thread pool is created when omitted.

    Returns:
        DetectionResult sorted by confidence (descending). Its diagnostics
        hold the warnings raised while decoding (e.g. skipped levels).

    Raises:
        TypeError: If ``levels`` is None.
        ValueError: If ``image_size`` is not a positive (width, height),
                    or a threshold is out of range.
    """
    if levels is None:
        raise TypeError("levels must be a sequence of LevelOutputs, got None.")
    image_size = _validate_image_size(image_size)
    validate_thresholds(detection)

    collected = CollectingSink(forward=sink if sink is not None else LoggingSink())
    ordered = sorted(levels, key=lambda level: level.stride)

    def run(level: LevelOutputs) -> Tuple[List[FaceDetection], List[DecodeEvent]]:
        # Events are buffered per level and replayed in level order below.
        buffer = CollectingSink()
        try:
            found = decode_level(level, transform, image_size, detection, filt, buffer)
        except ShapeMismatchError as e:
            buffer.emit(DecodeEvent(
                kind=SHAPE_MISMATCH,
                message=f"level skipped: {e}",
                level=level.level,
                stride=level.stride,
            ))
            found = []
        return found, buffer.events

    if detection.parallel_levels and len(ordered) > 1:
        # map() yields in submission order, so concatenation stays deterministic.
        if executor is not None:
            per_level = list(executor.map(run, ordered))
        else:
            with ThreadPoolExecutor(max_workers=len(ordered)) as pool:
                per_level = list(pool.map(run, ordered))
    else:
        per_level = [run(level) for level in ordered]

    candidates: List[FaceDetection] = []
    for level_candidates, events in per_level:
        candidates.extend(level_candidates)
        for event in events:
            collected.emit(event)
    kept = non_max_suppression(
        candidates,
        detection.nms_threshold,
        max_detections=detection.max_detections,
    )

    collected.emit(DecodeEvent(
        kind=SUPPRESSED,
        message=f"NMS kept {len(kept)} of {len(candidates)} candidates",
        details={"candidates": len(candidates), "kept": len(kept)},
    ))

    return DetectionResult(
        detections=tuple(kept),
        diagnostics=tuple(collected.warnings),
    )
