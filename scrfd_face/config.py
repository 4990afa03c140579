"""
Configuration management for the SCRFD face detection pipeline.

Provides a layered configuration system with the following precedence
(highest to lowest):

    CLI arguments > Environment variables > YAML config file > Preset > Defaults

Design constraints:
    - The pipeline MUST run with zero configuration (safe defaults only).
    - Missing or invalid values fail early and loudly.
    - No decoding logic, I/O, or model loading belongs here.

Non-goals:
    - No dynamic reloading.
    - No database-backed or remote configuration.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project root resolution
# ---------------------------------------------------------------------------
# Resolved relative to this file's location: scrfd_face/config.py → project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def get_project_root() -> Path:
    """Return the resolved project root directory."""
    return _PROJECT_ROOT


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LevelOutputConfig:
    """Explicit mapping of one pyramid level to its model outputs.

    Each role is either an output name (str) or an output index (int).

    Attributes:
        stride: Stride of the level (8, 16, 32, ...).
        score: Score/classification output.
        bbox: Box-distance output.
        kps: Optional keypoint-offset output.
    """

    stride: int
    score: Any
    bbox: Any
    kps: Any = None


@dataclass(frozen=True)
class ModelConfig:
    """Model-related configuration.

    Attributes:
        model_path: Path to the SCRFD .onnx file (relative to project root).
        providers: ONNX Runtime execution providers, in priority order.
                   None lets ONNX Runtime choose.
        input_size: Square network input size. None reads it from the
                    loaded session's input shape.
        outputs: Explicit per-level output mapping. Empty means the
                 mapping is inferred from output names when the session
                 loads.
        mean: Per-channel value subtracted before scaling.
        std: Per-channel divisor applied after mean subtraction.
        swap_rb: Convert BGR frames to RGB before inference.
    """

    model_path: str = "models/scrfd_500m_bnkps.onnx"
    providers: Optional[Tuple[str, ...]] = None
    input_size: Optional[int] = None
    outputs: Tuple[LevelOutputConfig, ...] = ()
    mean: float = 127.5
    std: float = 128.0
    swap_rb: bool = True


@dataclass(frozen=True)
class DetectionConfig:
    """Decode and suppression parameters.

    Attributes:
        preset: Name of the preset the thresholds were seeded from.
        confidence_threshold: Anchors scoring at or below this are rejected.
        nms_threshold: IoU above which the weaker of two boxes is dropped.
        decode_strategy: 'distance' (anchor + l/t/r/b distances, SCRFD) or
                         'direct' (tensor already holds x1/y1/x2/y2).
        apply_sigmoid: Treat scores as logits and apply the logistic function.
        distance_scale_by_stride: Multiply box/keypoint distances by the
                                  level stride before decoding.
        anchors_per_cell: Anchors sharing each feature-map cell.
        max_detections: Cap on the number of detections kept by NMS.
        parallel_levels: Decode pyramid levels on a thread pool.
    """

    preset: str = "default"
    confidence_threshold: float = 0.5
    nms_threshold: float = 0.4
    decode_strategy: str = "distance"
    apply_sigmoid: bool = True
    distance_scale_by_stride: bool = False
    anchors_per_cell: int = 2
    max_detections: Optional[int] = None
    parallel_levels: bool = False


@dataclass(frozen=True)
class FilterConfig:
    """Shape heuristics applied to decoded boxes.

    Attributes:
        min_box_size: Boxes narrower or shorter than this (pixels) are dropped.
        max_box_ratio: Boxes wider or taller than this fraction of the
                       image's shorter side are dropped.
        min_aspect_ratio: Lowest accepted width / height.
        max_aspect_ratio: Highest accepted width / height.
    """

    min_box_size: float = 10.0
    max_box_ratio: float = 1.0
    min_aspect_ratio: float = 0.2
    max_aspect_ratio: float = 5.0


@dataclass(frozen=True)
class OutputConfig:
    """Output behavior configuration.

    Attributes:
        save_json: Path of the JSON telemetry file. None prints to console.
        visualize: Path of the annotated output image. None disables drawing.
    """

    save_json: Optional[str] = None
    visualize: Optional[str] = None


@dataclass(frozen=True)
class VisualizationConfig:
    """Visualization rendering parameters.

    Attributes:
        box_color: BGR color tuple for bounding boxes.
        keypoint_color: BGR color tuple for landmarks.
        label_color: BGR color tuple for the confidence text.
        thickness: Line thickness in pixels.
        show_confidence: Whether to render the confidence score label.
        best_only: Draw only the highest-confidence face.
    """

    box_color: Tuple[int, int, int] = (0, 0, 255)
    keypoint_color: Tuple[int, int, int] = (0, 255, 0)
    label_color: Tuple[int, int, int] = (0, 255, 255)
    thickness: int = 2
    show_confidence: bool = True
    best_only: bool = False


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration.

    Aggregates all sub-configurations into a single, frozen object.
    """

    model: ModelConfig = field(default_factory=ModelConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------
# 'default' matches the regular decoder; 'aggressive' suppresses overlapping
# boxes more eagerly, as the debug decoder did.
DETECTION_PRESETS: Dict[str, Dict[str, Any]] = {
    "default": {"nms_threshold": 0.4},
    "aggressive": {"nms_threshold": 0.3},
}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_VALID_STRATEGIES = {"distance", "direct"}


def validate_thresholds(det: DetectionConfig) -> None:
    """Check the score and IoU thresholds. Raises ValueError when out of range."""
    if not (0.0 <= det.confidence_threshold <= 1.0):
        raise ValueError(
            f"detection.confidence_threshold must be in [0.0, 1.0], "
            f"got {det.confidence_threshold}."
        )

    if not (0.0 < det.nms_threshold < 1.0):
        raise ValueError(
            f"detection.nms_threshold must be in (0.0, 1.0), "
            f"got {det.nms_threshold}."
        )


def _validate(config: AppConfig) -> None:
    """Validate configuration values. Raises ValueError on invalid state."""

    det = config.detection
    flt = config.filter

    if det.preset not in DETECTION_PRESETS:
        raise ValueError(
            f"Invalid detection.preset: '{det.preset}'. "
            f"Must be one of {sorted(DETECTION_PRESETS)}."
        )

    if det.decode_strategy not in _VALID_STRATEGIES:
        raise ValueError(
            f"Invalid detection.decode_strategy: '{det.decode_strategy}'. "
            f"Must be one of {sorted(_VALID_STRATEGIES)}."
        )

    validate_thresholds(det)

    if det.anchors_per_cell < 1:
        raise ValueError(
            f"detection.anchors_per_cell must be positive, "
            f"got {det.anchors_per_cell}."
        )

    if det.max_detections is not None and det.max_detections <= 0:
        raise ValueError(
            f"detection.max_detections must be positive or None, "
            f"got {det.max_detections}."
        )

    if flt.min_box_size < 0:
        raise ValueError(
            f"filter.min_box_size must be non-negative, got {flt.min_box_size}."
        )

    if flt.max_box_ratio <= 0:
        raise ValueError(
            f"filter.max_box_ratio must be positive, got {flt.max_box_ratio}."
        )

    if not (0.0 < flt.min_aspect_ratio <= flt.max_aspect_ratio):
        raise ValueError(
            f"filter aspect ratio bounds must satisfy "
            f"0 < min_aspect_ratio <= max_aspect_ratio, "
            f"got [{flt.min_aspect_ratio}, {flt.max_aspect_ratio}]."
        )

    if config.model.input_size is not None and config.model.input_size <= 0:
        raise ValueError(
            f"model.input_size must be positive or None, "
            f"got {config.model.input_size}."
        )

    if config.model.std == 0:
        raise ValueError("model.std must be non-zero.")

    strides = [level.stride for level in config.model.outputs]
    if any(s <= 0 for s in strides):
        raise ValueError(f"model.outputs strides must be positive, got {strides}.")
    if len(set(strides)) != len(strides):
        raise ValueError(f"model.outputs strides must be unique, got {strides}.")


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def _parse_tuple(value, expected_len: int, cast_type=float):
    """Convert a list from YAML into a tuple of the expected type and length."""
    if isinstance(value, (list, tuple)):
        if len(value) != expected_len:
            raise ValueError(
                f"Expected {expected_len} values, got {len(value)}: {value}"
            )
        return tuple(cast_type(v) for v in value)
    return value


def _parse_bool(value) -> bool:
    """Accept YAML booleans as well as env-style strings."""
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _parse_optional_int(value) -> Optional[int]:
    if value is None or (isinstance(value, str) and value.strip().lower() in {"", "none"}):
        return None
    return int(value)


def _parse_output_ref(value):
    """An output reference is an index (int) or a name (str)."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text) if text.isdigit() else text


def _build_level_outputs(raw) -> Tuple[LevelOutputConfig, ...]:
    """Build the explicit output mapping from a YAML list of levels."""
    if not raw:
        return ()
    if not isinstance(raw, list):
        raise ValueError(f"model.outputs must be a list of levels, got {raw!r}.")

    levels = []
    for entry in raw:
        try:
            levels.append(LevelOutputConfig(
                stride=int(entry["stride"]),
                score=_parse_output_ref(entry["score"]),
                bbox=_parse_output_ref(entry["bbox"]),
                kps=_parse_output_ref(entry.get("kps")),
            ))
        except (KeyError, TypeError) as e:
            raise ValueError(
                f"Each model.outputs entry needs 'stride', 'score' and 'bbox', "
                f"got {entry!r}."
            ) from e
    return tuple(sorted(levels, key=lambda level: level.stride))


def _build_model_config(raw: dict) -> ModelConfig:
    """Build ModelConfig from a raw YAML dict."""
    kwargs = {}
    if "model_path" in raw:
        kwargs["model_path"] = str(raw["model_path"])
    if "providers" in raw:
        val = raw["providers"]
        if isinstance(val, str):
            val = [p.strip() for p in val.split(",") if p.strip()]
        kwargs["providers"] = tuple(str(p) for p in val) if val else None
    if "input_size" in raw:
        kwargs["input_size"] = _parse_optional_int(raw["input_size"])
    if "outputs" in raw:
        kwargs["outputs"] = _build_level_outputs(raw["outputs"])
    if "mean" in raw:
        kwargs["mean"] = float(raw["mean"])
    if "std" in raw:
        kwargs["std"] = float(raw["std"])
    if "swap_rb" in raw:
        kwargs["swap_rb"] = _parse_bool(raw["swap_rb"])
    return ModelConfig(**kwargs)


def _build_detection_config(raw: dict) -> DetectionConfig:
    """Build DetectionConfig from a raw YAML dict.

    The preset seeds the thresholds; explicit keys override it.
    """
    preset = str(raw.get("preset", "default")).lower()
    if preset not in DETECTION_PRESETS:
        raise ValueError(
            f"Invalid detection.preset: '{preset}'. "
            f"Must be one of {sorted(DETECTION_PRESETS)}."
        )

    kwargs: Dict[str, Any] = {"preset": preset, **DETECTION_PRESETS[preset]}
    if "confidence_threshold" in raw:
        kwargs["confidence_threshold"] = float(raw["confidence_threshold"])
    if "nms_threshold" in raw:
        kwargs["nms_threshold"] = float(raw["nms_threshold"])
    if "decode_strategy" in raw:
        kwargs["decode_strategy"] = str(raw["decode_strategy"]).lower()
    if "apply_sigmoid" in raw:
        kwargs["apply_sigmoid"] = _parse_bool(raw["apply_sigmoid"])
    if "distance_scale_by_stride" in raw:
        kwargs["distance_scale_by_stride"] = _parse_bool(raw["distance_scale_by_stride"])
    if "anchors_per_cell" in raw:
        kwargs["anchors_per_cell"] = int(raw["anchors_per_cell"])
    if "max_detections" in raw:
        kwargs["max_detections"] = _parse_optional_int(raw["max_detections"])
    if "parallel_levels" in raw:
        kwargs["parallel_levels"] = _parse_bool(raw["parallel_levels"])
    return DetectionConfig(**kwargs)


def _build_filter_config(raw: dict) -> FilterConfig:
    """Build FilterConfig from a raw YAML dict."""
    kwargs = {}
    for key in ("min_box_size", "max_box_ratio", "min_aspect_ratio", "max_aspect_ratio"):
        if key in raw:
            kwargs[key] = float(raw[key])
    return FilterConfig(**kwargs)


def _build_output_config(raw: dict) -> OutputConfig:
    """Build OutputConfig from a raw YAML dict."""
    kwargs = {}
    if "save_json" in raw:
        val = raw["save_json"]
        kwargs["save_json"] = str(val) if val else None
    if "visualize" in raw:
        val = raw["visualize"]
        kwargs["visualize"] = str(val) if val else None
    return OutputConfig(**kwargs)


def _build_visualization_config(raw: dict) -> VisualizationConfig:
    """Build VisualizationConfig from a raw YAML dict."""
    kwargs = {}
    if "box_color" in raw:
        kwargs["box_color"] = _parse_tuple(raw["box_color"], 3, int)
    if "keypoint_color" in raw:
        kwargs["keypoint_color"] = _parse_tuple(raw["keypoint_color"], 3, int)
    if "label_color" in raw:
        kwargs["label_color"] = _parse_tuple(raw["label_color"], 3, int)
    if "thickness" in raw:
        kwargs["thickness"] = int(raw["thickness"])
    if "show_confidence" in raw:
        kwargs["show_confidence"] = _parse_bool(raw["show_confidence"])
    if "best_only" in raw:
        kwargs["best_only"] = _parse_bool(raw["best_only"])
    return VisualizationConfig(**kwargs)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "SCRFD_"


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides to the raw config dict.

    Environment variables follow the pattern:
        SCRFD_MODEL_PATH=models/scrfd_10g_bnkps.onnx
        SCRFD_DETECTION_CONFIDENCE_THRESHOLD=0.7
    """
    env_map = {
        f"{_ENV_PREFIX}MODEL_PATH": ("model", "model_path"),
        f"{_ENV_PREFIX}MODEL_PROVIDERS": ("model", "providers"),
        f"{_ENV_PREFIX}MODEL_INPUT_SIZE": ("model", "input_size"),
        f"{_ENV_PREFIX}DETECTION_PRESET": ("detection", "preset"),
        f"{_ENV_PREFIX}DETECTION_CONFIDENCE_THRESHOLD": ("detection", "confidence_threshold"),
        f"{_ENV_PREFIX}DETECTION_NMS_THRESHOLD": ("detection", "nms_threshold"),
        f"{_ENV_PREFIX}DETECTION_DECODE_STRATEGY": ("detection", "decode_strategy"),
        f"{_ENV_PREFIX}DETECTION_APPLY_SIGMOID": ("detection", "apply_sigmoid"),
        f"{_ENV_PREFIX}DETECTION_PARALLEL_LEVELS": ("detection", "parallel_levels"),
        f"{_ENV_PREFIX}FILTER_MIN_BOX_SIZE": ("filter", "min_box_size"),
        f"{_ENV_PREFIX}OUTPUT_SAVE_JSON": ("output", "save_json"),
        f"{_ENV_PREFIX}OUTPUT_VISUALIZE": ("output", "visualize"),
    }

    for env_var, (section, key) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            raw.setdefault(section, {})[key] = value
            logger.debug("Config override from env: %s=%s", env_var, value)

    return raw


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration.

    Precedence (highest → lowest):
        Environment variables > YAML file > Preset > Hard-coded defaults

    Args:
        config_path: Path to a YAML configuration file. If None,
                     the pipeline runs entirely on defaults (safe for
                     programmatic usage).

    Returns:
        A validated, frozen AppConfig instance.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If any configuration value is invalid.
        yaml.YAMLError: If the YAML file is malformed.
    """
    raw: dict = {}

    # --- Layer 1: YAML file ---
    if config_path is not None:
        resolved = Path(config_path)
        if not resolved.is_absolute():
            resolved = _PROJECT_ROOT / resolved

        if not resolved.is_file():
            raise FileNotFoundError(
                f"Configuration file not found: {resolved}. "
                f"Provide a valid path or omit to use defaults."
            )

        logger.info("Loading config from: %s", resolved)
        with open(resolved, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    # --- Layer 2: Environment variable overrides ---
    raw = _apply_env_overrides(raw)

    # --- Build typed configs ---
    config = AppConfig(
        model=_build_model_config(raw.get("model") or {}),
        detection=_build_detection_config(raw.get("detection") or {}),
        filter=_build_filter_config(raw.get("filter") or {}),
        output=_build_output_config(raw.get("output") or {}),
        visualization=_build_visualization_config(raw.get("visualization") or {}),
    )

    # --- Validate ---
    _validate(config)

    logger.debug("Configuration loaded: %s", config)
    return config


def _reseed_preset(current: DetectionConfig, preset: str) -> Dict[str, Any]:
    """Preset thresholds for ``preset``, minus any the current config set explicitly.

    A threshold counts as explicit when it differs from the value the
    current preset would have given it.
    """
    previous = DETECTION_PRESETS[current.preset]
    seeded = {}
    for key, value in DETECTION_PRESETS[preset].items():
        default = previous.get(key, getattr(DetectionConfig, key))
        if getattr(current, key) == default:
            seeded[key] = value
    return seeded


def with_overrides(config: AppConfig, **sections: Dict[str, Any]) -> AppConfig:
    """Return a validated copy of ``config`` with per-section overrides.

    Used for the CLI layer, e.g.::

        with_overrides(config, detection={"confidence_threshold": 0.7})

    A ``preset`` override re-seeds the preset thresholds, except those
    set explicitly in the same call or at a lower layer (YAML, env).
    """
    updated = config
    for section, values in sections.items():
        values = {k: v for k, v in values.items() if v is not None}
        if not values:
            continue
        if not hasattr(updated, section):
            raise ValueError(f"Unknown configuration section: '{section}'.")
        if section == "detection" and "preset" in values:
            preset = str(values["preset"]).lower()
            if preset not in DETECTION_PRESETS:
                raise ValueError(
                    f"Invalid detection.preset: '{preset}'. "
                    f"Must be one of {sorted(DETECTION_PRESETS)}."
                )
            values = {**_reseed_preset(updated.detection, preset), **values, "preset": preset}
        updated = replace(updated, **{section: replace(getattr(updated, section), **values)})

    _validate(updated)
    return updated
