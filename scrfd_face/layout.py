"""
Mapping of model outputs to pyramid levels.

Responsibility:
    Decide, once per loaded model, which output tensor carries the scores,
    box distances and keypoint offsets of each pyramid level, and split a
    raw list of inference outputs into per-level LevelOutputs.

Resolution order:
    1. An explicit mapping from configuration (names or indices).
    2. Role keywords in the output names ("score"/"cls", "bbox"/"loc",
       "kps"/"landmark"), ordered by appearance (or by a numeric suffix
       when every name of a role carries one).
    3. The grouped-by-role ordering of stock SCRFD exports:
       [score x L, bbox x L] or [score x L, bbox x L, kps x L].

Non-goals:
    - No decoding; tensors are passed through untouched.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from scrfd_face.anchors import level_stride
from scrfd_face.config import LevelOutputConfig

logger = logging.getLogger(__name__)

_ROLE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "score": ("score", "cls"),
    "bbox": ("bbox", "loc"),
    "kps": ("kps", "landmark"),
}

# Number of levels for stock exports keyed by output count.
_GROUPED_LAYOUTS = {
    6: (3, False),
    9: (3, True),
    10: (5, False),
    15: (5, True),
}

_NUMERIC_SUFFIX = re.compile(r"(\d+)$")


@dataclass(frozen=True)
class LevelOutputs:
    """Raw tensors of one pyramid level.

    Attributes:
        stride: Level stride.
        scores: Score logits, (N,), (N, C) or with a leading batch axis.
        bboxes: Box distances, (N, 4), flat (N*4,) or with a batch axis.
        kps: Optional keypoint offsets, (N, 10) or flat.
        level: Position of the level in the pyramid (0 = finest).
    """

    stride: int
    scores: Optional[np.ndarray]
    bboxes: Optional[np.ndarray]
    kps: Optional[np.ndarray] = None
    level: int = 0


@dataclass(frozen=True)
class LevelBinding:
    """Output indices feeding one pyramid level."""

    stride: int
    score: int
    bbox: int
    kps: Optional[int] = None


@dataclass(frozen=True)
class OutputLayout:
    """Resolved output-to-level mapping for a loaded model."""

    levels: Tuple[LevelBinding, ...]

    @property
    def strides(self) -> Tuple[int, ...]:
        return tuple(level.stride for level in self.levels)

    def split(self, outputs: Sequence[np.ndarray]) -> List[LevelOutputs]:
        """Split raw inference outputs into per-level tensors.

        Indices the output list does not contain yield ``None`` tensors;
        the decoder reports those levels as shape mismatches.
        """
        def pick(index: Optional[int]) -> Optional[np.ndarray]:
            if index is None or not 0 <= index < len(outputs):
                return None
            return outputs[index]

        return [
            LevelOutputs(
                stride=binding.stride,
                scores=pick(binding.score),
                bboxes=pick(binding.bbox),
                kps=pick(binding.kps),
                level=i,
            )
            for i, binding in enumerate(self.levels)
        ]


def _resolve_ref(ref, names: Sequence[str]) -> int:
    if isinstance(ref, int):
        if not 0 <= ref < len(names):
            raise ValueError(
                f"Output index {ref} out of range; model has {len(names)} outputs."
            )
        return ref
    try:
        return list(names).index(ref)
    except ValueError:
        raise ValueError(
            f"Output '{ref}' not found. Available outputs: {list(names)}."
        ) from None


def _from_config(
    configured: Sequence[LevelOutputConfig], names: Sequence[str]
) -> OutputLayout:
    levels = []
    for entry in sorted(configured, key=lambda e: e.stride):
        levels.append(LevelBinding(
            stride=entry.stride,
            score=_resolve_ref(entry.score, names),
            bbox=_resolve_ref(entry.bbox, names),
            kps=None if entry.kps is None else _resolve_ref(entry.kps, names),
        ))
    return OutputLayout(levels=tuple(levels))


def _ordered(indices: List[int], names: Sequence[str]) -> List[int]:
    """Order indices by numeric name suffix when all of them have one."""
    suffixes = [_NUMERIC_SUFFIX.search(names[i]) for i in indices]
    if indices and all(suffixes):
        return [i for _, i in sorted(zip((int(m.group(1)) for m in suffixes), indices))]
    return indices


def _from_names(names: Sequence[str]) -> Optional[OutputLayout]:
    roles: Dict[str, List[int]] = {role: [] for role in _ROLE_KEYWORDS}
    for i, name in enumerate(names):
        lowered = name.lower()
        for role, keywords in _ROLE_KEYWORDS.items():
            if any(k in lowered for k in keywords):
                roles[role].append(i)
                break

    scores = _ordered(roles["score"], names)
    bboxes = _ordered(roles["bbox"], names)
    kps = _ordered(roles["kps"], names)
    if not scores or not bboxes:
        return None

    if len(scores) != len(bboxes):
        logger.warning(
            "Found %d score outputs but %d bbox outputs; using the first %d levels.",
            len(scores), len(bboxes), min(len(scores), len(bboxes)),
        )

    levels = tuple(
        LevelBinding(
            stride=level_stride(i),
            score=scores[i],
            bbox=bboxes[i],
            kps=kps[i] if i < len(kps) else None,
        )
        for i in range(min(len(scores), len(bboxes)))
    )
    return OutputLayout(levels=levels)


def _from_grouped_order(count: int) -> Optional[OutputLayout]:
    if count not in _GROUPED_LAYOUTS:
        return None
    num_levels, has_kps = _GROUPED_LAYOUTS[count]
    levels = tuple(
        LevelBinding(
            stride=level_stride(i),
            score=i,
            bbox=num_levels + i,
            kps=2 * num_levels + i if has_kps else None,
        )
        for i in range(num_levels)
    )
    return OutputLayout(levels=levels)


def resolve_output_layout(
    output_names: Sequence[str],
    configured: Sequence[LevelOutputConfig] = (),
) -> OutputLayout:
    """Resolve which outputs feed which pyramid level.

    Args:
        output_names: Model output names, in session order.
        configured: Explicit per-level mapping; takes precedence.

    Returns:
        The OutputLayout, levels ordered by ascending stride.

    Raises:
        ValueError: If no mapping can be established.
    """
    if configured:
        layout = _from_config(configured, output_names)
        logger.info("Using configured output layout: strides=%s", layout.strides)
        return layout

    layout = _from_names(output_names)
    if layout is not None:
        logger.info("Output layout inferred from names: strides=%s", layout.strides)
        return layout

    layout = _from_grouped_order(len(output_names))
    if layout is not None:
        logger.info(
            "Output layout inferred from output count (%d): strides=%s",
            len(output_names), layout.strides,
        )
        return layout

    raise ValueError(
        f"Could not map model outputs {list(output_names)} to pyramid levels. "
        f"Set 'model.outputs' in the configuration."
    )
