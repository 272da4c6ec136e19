"""Engine configuration parsed once at init time."""

import json
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Optional

from micrline.errors import ConfigError
from micrline.logging_config import get_logger
from micrline.models import FONT_ALPHABETS, Region

logger = get_logger(__name__)

DEBUG_LEVELS = ("verbose", "info", "warn", "error", "fatal")
SEGMENTER_ACCURACIES = ("low", "medium", "high")
INTERPOLATIONS = ("nearest", "bilinear")
SCORE_TYPES = ("min", "max", "avg")
KNOWN_BACKENDS = ("template", "knn", "cmc7_bars")

DEFAULT_BACKENDS = {
    "e13b": ("template",),
    "cmc7": ("cmc7_bars",),
}


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable engine configuration.

    Defaults follow the reference recognizer configuration except
    ``gpgpu_enabled``, which is off unless requested. Every value is checked
    on construction; invalid values raise ``ConfigError``.
    """

    debug_level: str = "info"
    debug_write_input_image_enabled: bool = False
    debug_internal_data_path: str = "."
    num_threads: int = -1
    gpgpu_enabled: bool = False
    gpgpu_strict: bool = False
    segmenter_accuracy: str = "high"
    interpolation: str = "bilinear"
    roi: Optional[Region] = None
    min_score: float = 0.3
    score_type: str = "min"
    format: str = "e13b"
    backends: Optional[tuple[str, ...]] = None
    max_bands: int = 4
    assets_folder: Optional[str] = None
    license_token_file: Optional[str] = None
    license_token_data: Optional[str] = None

    def __post_init__(self):
        # Frozen: normalized values go through object.__setattr__
        def put(name, value):
            object.__setattr__(self, name, value)

        put("debug_level", _choice(self.debug_level, DEBUG_LEVELS, "debug_level"))
        put(
            "debug_write_input_image_enabled",
            _bool(self.debug_write_input_image_enabled, "debug_write_input_image_enabled"),
        )
        put(
            "debug_internal_data_path",
            _str(self.debug_internal_data_path, "debug_internal_data_path"),
        )

        num_threads = _int(self.num_threads, "num_threads")
        if num_threads == 0 or num_threads < -1:
            raise ConfigError(
                f"num_threads must be -1 (auto) or a positive integer, got {num_threads}"
            )

        put("gpgpu_enabled", _bool(self.gpgpu_enabled, "gpgpu_enabled"))
        put("gpgpu_strict", _bool(self.gpgpu_strict, "gpgpu_strict"))
        put(
            "segmenter_accuracy",
            _choice(self.segmenter_accuracy, SEGMENTER_ACCURACIES, "segmenter_accuracy"),
        )
        put("interpolation", _choice(self.interpolation, INTERPOLATIONS, "interpolation"))
        put("roi", _roi(self.roi))

        min_score = _number(self.min_score, "min_score")
        if not 0.0 <= min_score <= 1.0:
            raise ConfigError(f"min_score must be within [0, 1], got {min_score}")
        put("min_score", min_score)

        put("score_type", _choice(self.score_type, SCORE_TYPES, "score_type"))
        font = _choice(self.format, tuple(FONT_ALPHABETS), "format")
        put("format", font)
        put("backends", _backends(self.backends, font))

        max_bands = _int(self.max_bands, "max_bands")
        if max_bands < 1:
            raise ConfigError(f"max_bands must be positive, got {max_bands}")

        for key in ("assets_folder", "license_token_file", "license_token_data"):
            raw = getattr(self, key)
            put(key, None if raw in (None, "") else _str(raw, key))

    @property
    def thread_count(self) -> int:
        """Worker pool size; -1 resolves to the machine's core count."""
        if self.num_threads == -1:
            return os.cpu_count() or 1
        return self.num_threads

    @classmethod
    def from_json(cls, text: str) -> "EngineConfig":
        try:
            data = json.loads(text) if text and text.strip() else {}
        except json.JSONDecodeError as e:
            raise ConfigError(f"Malformed JSON configuration: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON object")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.debug("Ignoring unknown config key: %s", key)
            elif value is not None:
                values[key] = value
        return cls(**values)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["roi"] = [self.roi.x, self.roi.y, self.roi.w, self.roi.h] if self.roi else [0, 0, 0, 0]
        d["backends"] = list(self.backends)
        if d["license_token_data"]:
            d["license_token_data"] = "***"
        return d


def _choice(value: Any, allowed: tuple[str, ...], key: str) -> str:
    if not isinstance(value, str) or value.lower() not in allowed:
        raise ConfigError(
            f"{key} must be one of {', '.join(allowed)}, got {value!r}"
        )
    return value.lower()


def _bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be a boolean, got {value!r}")
    return value


def _int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    return value


def _number(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    return float(value)


def _str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{key} must be a string, got {value!r}")
    return value


def _roi(value: Any) -> Optional[Region]:
    """Parse [x, y, w, h] or a Region; all zeros (the default) means the whole image."""
    if value is None:
        return None
    if isinstance(value, Region):
        value = (value.x, value.y, value.w, value.h)
    if not isinstance(value, (list, tuple)) or len(value) != 4:
        raise ConfigError(f"roi must be a list of 4 integers, got {value!r}")
    for v in value:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or v < 0:
            raise ConfigError(f"roi values must be non-negative numbers, got {value!r}")
    roi = Region.from_sequence(value)
    if roi.w == 0 and roi.h == 0:
        return None
    if roi.is_empty:
        raise ConfigError(f"roi must have a positive width and height, got {value!r}")
    return roi


def _backends(value: Any, font: str) -> tuple[str, ...]:
    if value is None:
        return DEFAULT_BACKENDS[font]
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigError(f"backends must be a non-empty list, got {value!r}")
    names = []
    for name in value:
        if name not in KNOWN_BACKENDS:
            raise ConfigError(
                f"Unknown backend {name!r}; expected one of {', '.join(KNOWN_BACKENDS)}"
            )
        if name not in names:
            names.append(name)
    return tuple(names)
