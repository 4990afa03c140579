"""
Greedy Non-Maximum Suppression.

Candidates are ordered by confidence (descending, ties keep their input
order), the best remaining one is kept, and every remaining candidate whose
IoU with it exceeds the threshold is discarded. The result therefore never
contains two boxes overlapping by more than the threshold, and running NMS
again on its own output is a no-op.
"""

from typing import List, Optional, Sequence

import numpy as np

from scrfd_face.detection import BoundingBox, FaceDetection


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection-over-union of two boxes; 0 when they do not overlap."""
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.x2, b.x2)
    y2 = min(a.y2, b.y2)

    if x2 <= x1 or y2 <= y1:
        return 0.0

    inter = (x2 - x1) * (y2 - y1)
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def _iou_one_to_many(boxes: np.ndarray, areas: np.ndarray, i: int, rest: np.ndarray) -> np.ndarray:
    xx1 = np.maximum(boxes[i, 0], boxes[rest, 0])
    yy1 = np.maximum(boxes[i, 1], boxes[rest, 1])
    xx2 = np.minimum(boxes[i, 2], boxes[rest, 2])
    yy2 = np.minimum(boxes[i, 3], boxes[rest, 3])

    w = np.maximum(0.0, xx2 - xx1)
    h = np.maximum(0.0, yy2 - yy1)
    inter = w * h
    union = areas[i] + areas[rest] - inter
    return np.divide(inter, union, out=np.zeros_like(inter), where=union > 0)


def nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    iou_threshold: float,
    max_detections: Optional[int] = None,
) -> np.ndarray:
    """
    NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, highest score first.
    """
    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] != scores.shape[0]:
        raise ValueError(
            f"boxes and scores disagree: {boxes.shape[0]} boxes, {scores.shape[0]} scores."
        )
    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    widths = np.maximum(0.0, boxes[:, 2] - boxes[:, 0])
    heights = np.maximum(0.0, boxes[:, 3] - boxes[:, 1])
    areas = widths * heights

    # Stable sort keeps insertion order among equal scores.
    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0:
        if max_detections is not None and len(keep) >= max_detections:
            break
        i = int(order[0])
        keep.append(i)

        overlap = _iou_one_to_many(boxes, areas, i, order[1:])
        order = order[1:][overlap <= iou_threshold]

    return np.array(keep, dtype=np.int64)


def non_max_suppression(
    detections: Sequence[FaceDetection],
    iou_threshold: float,
    max_detections: Optional[int] = None,
) -> List[FaceDetection]:
    """Suppress overlapping detections.

    Args:
        detections: Candidates from every pyramid level, in level order.
        iou_threshold: Overlap above which the weaker candidate is dropped.
        max_detections: Optional cap on the number of kept detections.

    Returns:
        A new list sorted by confidence (descending).
    """
    if not detections:
        return []

    boxes = np.array([d.box.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)
    keep = nms(boxes, scores, iou_threshold, max_detections=max_detections)
    return [detections[i] for i in keep]
