"""
Anchor grid reconstruction for SCRFD pyramid levels.

Each level with stride ``s`` covers a ``target_size // s`` square feature
map. Every cell holds ``anchors_per_cell`` anchors that share the cell
center ``((gx + 0.5) * s, (gy + 0.5) * s)``; they only differ in which box
the network predicts for them. Anchors are laid out row-major with the
per-cell anchors adjacent, so anchor ``a`` lives in cell
``a // anchors_per_cell``.
"""

from typing import Iterator, Tuple

import numpy as np

from scrfd_face.diagnostics import AnchorIndexError

DEFAULT_ANCHORS_PER_CELL = 2


def level_stride(level_index: int) -> int:
    """Stride implied by a level's position in the output ordering (8, 16, 32, ...)."""
    if level_index < 0:
        raise ValueError(f"level_index must be non-negative, got {level_index}.")
    return 2 ** (level_index + 3)


def feature_map_size(stride: int, target_size: int) -> int:
    """Cells per side of the feature map for ``stride``."""
    if stride <= 0:
        raise ValueError(f"stride must be positive, got {stride}.")
    return target_size // stride


def expected_anchor_count(
    stride: int,
    target_size: int,
    anchors_per_cell: int = DEFAULT_ANCHORS_PER_CELL,
) -> int:
    fm = feature_map_size(stride, target_size)
    return fm * fm * anchors_per_cell


def anchor_cell(
    index: int,
    fm_size: int,
    anchors_per_cell: int = DEFAULT_ANCHORS_PER_CELL,
) -> Tuple[int, int]:
    """Return ``(grid_x, grid_y)`` of the cell owning anchor ``index``.

    Raises:
        AnchorIndexError: If ``index`` lies outside the feature map.
    """
    total = fm_size * fm_size * anchors_per_cell
    if not 0 <= index < total:
        raise AnchorIndexError(
            f"Anchor index {index} outside feature map of {fm_size}x{fm_size} "
            f"cells with {anchors_per_cell} anchors each ({total} anchors)."
        )
    spatial = index // anchors_per_cell
    return spatial % fm_size, spatial // fm_size


def iter_anchor_cells(
    stride: int,
    target_size: int,
    anchors_per_cell: int = DEFAULT_ANCHORS_PER_CELL,
) -> Iterator[Tuple[int, int]]:
    """Lazily yield ``(grid_x, grid_y)`` for every anchor, in tensor order."""
    fm = feature_map_size(stride, target_size)
    for gy in range(fm):
        for gx in range(fm):
            for _ in range(anchors_per_cell):
                yield gx, gy


def anchor_center(
    index: int,
    stride: int,
    target_size: int,
    anchors_per_cell: int = DEFAULT_ANCHORS_PER_CELL,
) -> Tuple[float, float]:
    """Model-space center of anchor ``index``."""
    gx, gy = anchor_cell(index, feature_map_size(stride, target_size), anchors_per_cell)
    return (gx + 0.5) * stride, (gy + 0.5) * stride


def anchor_centers(
    stride: int,
    target_size: int,
    anchors_per_cell: int = DEFAULT_ANCHORS_PER_CELL,
) -> np.ndarray:
    """All anchor centers of a level as a ``(N, 2)`` float32 array of (x, y)."""
    fm = feature_map_size(stride, target_size)
    grid_y, grid_x = np.mgrid[:fm, :fm]
    centers = np.stack((grid_x, grid_y), axis=-1).reshape(-1, 2).astype(np.float32)
    centers = (centers + 0.5) * float(stride)
    if anchors_per_cell > 1:
        centers = np.repeat(centers, anchors_per_cell, axis=0)
    return centers
