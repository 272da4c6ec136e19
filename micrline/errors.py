"""Exception taxonomy and non-fatal recognition issues."""

from enum import Enum, IntEnum


class StatusCode(IntEnum):
    """Numeric status carried by every structured result."""

    OK = 0
    INVALID_STATE = 1
    INVALID_IMAGE = 2
    CONFIG_ERROR = 3
    RESOURCE_ERROR = 4
    INTERNAL_ERROR = 5


class MICRError(Exception):
    """Base class for structural failures surfaced to the caller."""

    status_code = StatusCode.INTERNAL_ERROR


class ConfigError(MICRError, ValueError):
    """Malformed or invalid engine configuration."""

    status_code = StatusCode.CONFIG_ERROR


class ResourceError(MICRError, RuntimeError):
    """A backend resource could not be allocated."""

    status_code = StatusCode.RESOURCE_ERROR


class InvalidStateError(MICRError, RuntimeError):
    """API call not allowed in the engine's current state."""

    status_code = StatusCode.INVALID_STATE


class ImageError(MICRError, ValueError):
    """Corrupt image buffer (bad dimensions, stride or storage size)."""

    status_code = StatusCode.INVALID_IMAGE


class RecognitionIssue(Enum):
    """Expected recognition outcomes, reported as warnings, never raised."""

    NO_BAND_FOUND = "no_band_found"
    LOW_CONFIDENCE_GLYPH = "low_confidence_glyph"
    UNSEGMENTED_BAND = "unsegmented_band"
