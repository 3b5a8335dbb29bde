"""
Configuration management for the RetinaFace post-processing package.

Provides a layered configuration system with the following precedence
(highest to lowest):

    CLI arguments > Environment variables > YAML config file > Defaults

Design constraints:
    - Everything runs with zero configuration (defaults match the
      standard RetinaFace export: 3 levels, strides 8/16/32).
    - Missing or invalid values fail early and loudly.
    - No decoding, I/O beyond reading the YAML file, or model loading.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import yaml

from retinaface_post.anchors import DEFAULT_MIN_SIZES, DEFAULT_STEPS

logger = logging.getLogger(__name__)

# Resolved relative to this file: retinaface_post/config.py -> repo root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def get_project_root() -> Path:
    """Return the resolved project root directory."""
    return _PROJECT_ROOT


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelConfig:
    """Model-related configuration.

    Attributes:
        model_path: Path to the RetinaFace .onnx export (relative to project root).
        backend: Compute backend, 'cpu' or 'cuda'.
        input_size: Network input (width, height) in pixels.
        mean_values: Per-channel mean subtraction values (BGR order).
        scale_factor: Pixel value scale factor applied during blob creation.
        keep_aspect: Resize with preserved aspect ratio and pad instead of
                     stretching the frame to input_size.
    """

    model_path: str = "models/retinaface_mobilenet0.25.onnx"
    backend: str = "cpu"
    input_size: Tuple[int, int] = (640, 640)
    mean_values: Tuple[float, float, float] = (104.0, 117.0, 123.0)
    scale_factor: float = 1.0
    keep_aspect: bool = False


@dataclass(frozen=True)
class PriorConfig:
    """Anchor grid configuration.

    Attributes:
        min_sizes: Anchor side lengths per scale level.
        steps: Stride per scale level.
        clip: Clamp generated anchors to [0, 1].
        source: 'generate' to build anchors from this config, or
                'external' when priors are always supplied by the caller.
    """

    min_sizes: Tuple[Tuple[int, ...], ...] = DEFAULT_MIN_SIZES
    steps: Tuple[int, ...] = DEFAULT_STEPS
    clip: bool = False
    source: str = "generate"


@dataclass(frozen=True)
class DetectionConfig:
    """Detection thresholds and output shaping.

    Attributes:
        confidence_threshold: Minimum face probability to keep a candidate.
        nms_threshold: IoU above which a lower-scored box is suppressed.
        min_box_size: Minimum post-clip box side in pixels.
        max_detections: Optional cap on faces returned per image.
        with_landmarks: Attach the 10 landmark floats to each output record.
        batch_workers: Threads used to decode batch items concurrently.
    """

    confidence_threshold: float = 0.5
    nms_threshold: float = 0.4
    min_box_size: float = 1.0
    max_detections: Optional[int] = None
    with_landmarks: bool = True
    batch_workers: int = 1


@dataclass(frozen=True)
class OutputConfig:
    """Output behavior configuration.

    Attributes:
        formats: Comma-separated artifact formats: 'json', 'csv', 'image'.
        save_path: Directory where output artifacts are written.
    """

    formats: str = "json"
    save_path: str = "output/"


@dataclass(frozen=True)
class VisualizationConfig:
    """Visualization rendering parameters.

    Attributes:
        box_color: BGR color tuple for bounding boxes.
        landmark_color: BGR color tuple for landmark dots.
        thickness: Line thickness in pixels.
        show_confidence: Whether to render the confidence score label.
        show_landmarks: Whether to render the 5 landmark points.
    """

    box_color: Tuple[int, int, int] = (0, 255, 0)
    landmark_color: Tuple[int, int, int] = (0, 0, 255)
    thickness: int = 2
    show_confidence: bool = True
    show_landmarks: bool = True


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    model: ModelConfig = field(default_factory=ModelConfig)
    priors: PriorConfig = field(default_factory=PriorConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

_VALID_BACKENDS = {"cpu", "cuda"}
_VALID_PRIOR_SOURCES = {"generate", "external"}
_VALID_OUTPUT_FORMATS = {"json", "csv", "image"}


def validate_config(config: AppConfig) -> None:
    """Validate configuration values. Raises ValueError on invalid state."""

    if config.model.backend not in _VALID_BACKENDS:
        raise ValueError(
            f"Invalid model.backend: '{config.model.backend}'. "
            f"Must be one of {_VALID_BACKENDS}."
        )

    if len(config.model.input_size) != 2 or any(d <= 0 for d in config.model.input_size):
        raise ValueError(
            f"model.input_size must be a positive (width, height) pair, "
            f"got {config.model.input_size}."
        )

    if config.model.scale_factor <= 0:
        raise ValueError(
            f"model.scale_factor must be positive, got {config.model.scale_factor}."
        )

    priors = config.priors
    if priors.source not in _VALID_PRIOR_SOURCES:
        raise ValueError(
            f"Invalid priors.source: '{priors.source}'. "
            f"Must be one of {_VALID_PRIOR_SOURCES}."
        )

    if len(priors.min_sizes) != len(priors.steps):
        raise ValueError(
            f"priors.min_sizes and priors.steps must pair one-to-one, "
            f"got {len(priors.min_sizes)} levels and {len(priors.steps)} steps."
        )

    if any(step <= 0 for step in priors.steps):
        raise ValueError(f"priors.steps must be positive, got {priors.steps}.")

    if any(size <= 0 for level in priors.min_sizes for size in level):
        raise ValueError(f"priors.min_sizes must be positive, got {priors.min_sizes}.")

    det = config.detection
    if not (0.0 <= det.confidence_threshold <= 1.0):
        raise ValueError(
            f"detection.confidence_threshold must be in [0.0, 1.0], "
            f"got {det.confidence_threshold}."
        )

    if not (0.0 <= det.nms_threshold <= 1.0):
        raise ValueError(
            f"detection.nms_threshold must be in [0.0, 1.0], got {det.nms_threshold}."
        )

    if det.min_box_size < 0:
        raise ValueError(
            f"detection.min_box_size must be non-negative, got {det.min_box_size}."
        )

    if det.max_detections is not None and det.max_detections <= 0:
        raise ValueError(
            f"detection.max_detections must be positive or None, "
            f"got {det.max_detections}."
        )

    if det.batch_workers < 1:
        raise ValueError(
            f"detection.batch_workers must be at least 1, got {det.batch_workers}."
        )

    formats = set(f.strip() for f in config.output.formats.split(",") if f.strip())
    invalid = formats - _VALID_OUTPUT_FORMATS
    if invalid:
        raise ValueError(
            f"Invalid output.formats: {invalid}. "
            f"Valid formats: {_VALID_OUTPUT_FORMATS}. "
            f"Use comma-separated values for multiple outputs."
        )


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
    """Accept YAML booleans as well as env-style strings ('true', '0', ...)."""
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _parse_int_list(value) -> Tuple[int, ...]:
    """Accept a YAML list or a comma-separated string of integers."""
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    return tuple(int(v) for v in value)


def _build_model_config(raw: dict) -> ModelConfig:
    """Build ModelConfig from a raw YAML dict."""
    kwargs = {}
    if "model_path" in raw:
        kwargs["model_path"] = str(raw["model_path"])
    if "backend" in raw:
        kwargs["backend"] = str(raw["backend"]).lower()
    if "input_size" in raw:
        kwargs["input_size"] = _parse_tuple(raw["input_size"], 2, int)
    if "mean_values" in raw:
        kwargs["mean_values"] = _parse_tuple(raw["mean_values"], 3, float)
    if "scale_factor" in raw:
        kwargs["scale_factor"] = float(raw["scale_factor"])
    if "keep_aspect" in raw:
        kwargs["keep_aspect"] = _parse_bool(raw["keep_aspect"])
    return ModelConfig(**kwargs)


def _build_prior_config(raw: dict) -> PriorConfig:
    """Build PriorConfig from a raw YAML dict."""
    kwargs = {}
    if "min_sizes" in raw:
        kwargs["min_sizes"] = tuple(_parse_int_list(level) for level in raw["min_sizes"])
    if "steps" in raw:
        kwargs["steps"] = _parse_int_list(raw["steps"])
    if "clip" in raw:
        kwargs["clip"] = _parse_bool(raw["clip"])
    if "source" in raw:
        kwargs["source"] = str(raw["source"]).lower()
    return PriorConfig(**kwargs)


def _build_detection_config(raw: dict) -> DetectionConfig:
    """Build DetectionConfig from a raw YAML dict."""
    kwargs = {}
    if "confidence_threshold" in raw:
        kwargs["confidence_threshold"] = float(raw["confidence_threshold"])
    if "nms_threshold" in raw:
        kwargs["nms_threshold"] = float(raw["nms_threshold"])
    if "min_box_size" in raw:
        kwargs["min_box_size"] = float(raw["min_box_size"])
    if "max_detections" in raw:
        val = raw["max_detections"]
        kwargs["max_detections"] = int(val) if val not in (None, "", "none") else None
    if "with_landmarks" in raw:
        kwargs["with_landmarks"] = _parse_bool(raw["with_landmarks"])
    if "batch_workers" in raw:
        kwargs["batch_workers"] = int(raw["batch_workers"])
    return DetectionConfig(**kwargs)


def _build_output_config(raw: dict) -> OutputConfig:
    """Build OutputConfig from a raw YAML dict."""
    kwargs = {}
    if "formats" in raw:
        kwargs["formats"] = str(raw["formats"]).lower()
    if "save_path" in raw:
        kwargs["save_path"] = str(raw["save_path"])
    return OutputConfig(**kwargs)


def _build_visualization_config(raw: dict) -> VisualizationConfig:
    """Build VisualizationConfig from a raw YAML dict."""
    kwargs = {}
    if "box_color" in raw:
        kwargs["box_color"] = _parse_tuple(raw["box_color"], 3, int)
    if "landmark_color" in raw:
        kwargs["landmark_color"] = _parse_tuple(raw["landmark_color"], 3, int)
    if "thickness" in raw:
        kwargs["thickness"] = int(raw["thickness"])
    if "show_confidence" in raw:
        kwargs["show_confidence"] = _parse_bool(raw["show_confidence"])
    if "show_landmarks" in raw:
        kwargs["show_landmarks"] = _parse_bool(raw["show_landmarks"])
    return VisualizationConfig(**kwargs)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "RETINAFACE_"


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides to the raw config dict.

    Environment variables follow the pattern:
        RETINAFACE_MODEL_BACKEND=cuda
        RETINAFACE_DETECTION_CONFIDENCE_THRESHOLD=0.7
        RETINAFACE_PRIORS_STEPS=8,16,32
    """
    env_map = {
        f"{_ENV_PREFIX}MODEL_PATH": ("model", "model_path"),
        f"{_ENV_PREFIX}MODEL_BACKEND": ("model", "backend"),
        f"{_ENV_PREFIX}MODEL_KEEP_ASPECT": ("model", "keep_aspect"),
        f"{_ENV_PREFIX}PRIORS_STEPS": ("priors", "steps"),
        f"{_ENV_PREFIX}PRIORS_CLIP": ("priors", "clip"),
        f"{_ENV_PREFIX}PRIORS_SOURCE": ("priors", "source"),
        f"{_ENV_PREFIX}DETECTION_CONFIDENCE_THRESHOLD": ("detection", "confidence_threshold"),
        f"{_ENV_PREFIX}DETECTION_NMS_THRESHOLD": ("detection", "nms_threshold"),
        f"{_ENV_PREFIX}DETECTION_MIN_BOX_SIZE": ("detection", "min_box_size"),
        f"{_ENV_PREFIX}DETECTION_MAX_DETECTIONS": ("detection", "max_detections"),
        f"{_ENV_PREFIX}DETECTION_BATCH_WORKERS": ("detection", "batch_workers"),
        f"{_ENV_PREFIX}OUTPUT_FORMATS": ("output", "formats"),
        f"{_ENV_PREFIX}OUTPUT_SAVE_PATH": ("output", "save_path"),
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

    Precedence (highest -> lowest):
        Environment variables > YAML file > Hard-coded defaults

    Args:
        config_path: Path to a YAML configuration file. If None, defaults
                     are used.

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

    config = AppConfig(
        model=_build_model_config(raw.get("model", {})),
        priors=_build_prior_config(raw.get("priors", {})),
        detection=_build_detection_config(raw.get("detection", {})),
        output=_build_output_config(raw.get("output", {})),
        visualization=_build_visualization_config(raw.get("visualization", {})),
    )

    validate_config(config)

    logger.debug("Configuration loaded: %s", config)
    return config
