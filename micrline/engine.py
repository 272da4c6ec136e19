"""Recognition engine: lifecycle, configuration and per-image orchestration."""

import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import cv2
import numpy as np

from micrline.config import EngineConfig
from micrline.engines.classifier import GlyphClassifier, build_backend
from micrline.errors import ConfigError, ImageError, InvalidStateError, RecognitionIssue, ResourceError
from micrline.logging_config import engine_log_level, get_logger, level_for
from micrline.models import ImageBuffer
from micrline.parsing.assembler import LineAssembler
from micrline.parsing.formatter import ResultFormatter, StructuredResult
from micrline.preprocessing.band_locator import BandLocator
from micrline.segmentation.glyph_segmenter import GlyphSegmenter

logger = get_logger(__name__)


class State(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    PROCESSING = "processing"
    DEINITIALIZED = "deinitialized"


class Engine:
    """
    Main entry point for MICR line recognition.

    Usage:
        with Engine({"assets_folder": "assets"}) as engine:
            result = engine.process(image)
            for line in result.lines:
                print(line["text"], line["confidence"])

    One ``process()`` call may run at a time; glyph classification inside
    a call fans out over the engine's worker pool.
    """

    def __init__(self, config: EngineConfig | dict | str | None = None):
        self._state = State.UNINITIALIZED
        self._lock = threading.Lock()
        self._busy = threading.Lock()
        self.config: Optional[EngineConfig] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._classifier: Optional[GlyphClassifier] = None
        self._locator: Optional[BandLocator] = None
        self._segmenter: Optional[GlyphSegmenter] = None
        self._assembler: Optional[LineAssembler] = None
        self._formatter = ResultFormatter()
        self._use_opencl = False
        self._debug_counter = 0
        self._log_level: Optional[int] = None
        self._pending_config = config

    @property
    def state(self) -> State:
        return self._state

    def __enter__(self) -> "Engine":
        if self._state != State.READY:
            self.init(self._pending_config)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.deinit()

    def init(self, config: EngineConfig | dict | str | None = None) -> StructuredResult:
        """
        Validate the configuration and allocate backends and the worker pool.

        Raises:
            InvalidStateError: If the engine is already initialized.
            ConfigError: If the configuration is malformed.
            ResourceError: If assets or strict acceleration are unavailable.
        """
        with self._lock:
            if self._state in (State.READY, State.PROCESSING):
                raise InvalidStateError(f"init() not allowed in state {self._state.value}")

            cfg = _coerce_config(config)
            log_level = level_for(cfg.debug_level)
            with engine_log_level(log_level):
                self._setup(cfg)
            self._log_level = log_level
            self.config = cfg
            self._state = State.READY
            return StructuredResult()

    def _setup(self, cfg: EngineConfig):
        assets = Path(cfg.assets_folder) if cfg.assets_folder else None
        if assets is not None and not assets.is_dir():
            raise ResourceError(f"Assets folder not found: {assets}")
        if cfg.license_token_file or cfg.license_token_data:
            logger.debug("License token supplied; token validation is not performed")

        self._use_opencl = self._resolve_opencl(cfg)

        backends = []
        try:
            for name in cfg.backends:
                backends.append(build_backend(name, cfg.format, assets))
        except Exception:
            for backend in backends:
                backend.close()
            raise

        self._executor = ThreadPoolExecutor(
            max_workers=cfg.thread_count, thread_name_prefix="micrline"
        )
        self._classifier = GlyphClassifier(
            backends,
            font=cfg.format,
            score_type=cfg.score_type,
            min_score=cfg.min_score,
            executor=self._executor,
        )
        self._locator = BandLocator(
            accuracy=cfg.segmenter_accuracy,
            min_score=cfg.min_score,
            max_bands=cfg.max_bands,
            use_opencl=self._use_opencl,
        )
        self._segmenter = GlyphSegmenter(
            interpolation=cfg.interpolation,
            accuracy=cfg.segmenter_accuracy,
            font=cfg.format,
        )
        self._assembler = LineAssembler(font=cfg.format)

        logger.info(
            "Engine ready: font=%s backends=%s threads=%d opencl=%s",
            cfg.format, ",".join(cfg.backends), cfg.thread_count, self._use_opencl,
        )

    def process(self, image: ImageBuffer | np.ndarray) -> StructuredResult:
        """
        Recognize every MICR band in an image.

        Recognition uncertainty (no band, unreadable glyphs) is reported in
        the result's warnings and confidences, never raised.

        Raises:
            InvalidStateError: If the engine is not ready or already busy.
            ImageError: If the image buffer is structurally invalid.
        """
        if not self._busy.acquire(blocking=False):
            raise InvalidStateError("Engine is already processing an image")
        try:
            with self._lock:
                if self._state != State.READY:
                    raise InvalidStateError(
                        f"process() not allowed in state {self._state.value}"
                    )
                self._state = State.PROCESSING
            try:
                with engine_log_level(self._log_level):
                    return self._process(_coerce_image(image))
            finally:
                with self._lock:
                    if self._state == State.PROCESSING:
                        self._state = State.READY
        finally:
            self._busy.release()

    def _process(self, image: ImageBuffer) -> StructuredResult:
        cfg = self.config
        if cfg.debug_write_input_image_enabled:
            self._write_debug_image(image)

        warnings: list[RecognitionIssue] = []
        bands = self._locator.locate(image, cfg.roi)
        if not bands:
            logger.info("No MICR band found in %dx%d image", image.width, image.height)
            warnings.append(RecognitionIssue.NO_BAND_FOUND)

        lines = []
        for band in bands:
            glyphs = self._segmenter.segment(band, image)
            if any(g.fallback for g in glyphs) and RecognitionIssue.UNSEGMENTED_BAND not in warnings:
                warnings.append(RecognitionIssue.UNSEGMENTED_BAND)

            self._classifier.classify_all(glyphs)
            line = self._assembler.assemble(glyphs, band)
            if line.placeholder_count and RecognitionIssue.LOW_CONFIDENCE_GLYPH not in warnings:
                warnings.append(RecognitionIssue.LOW_CONFIDENCE_GLYPH)

            logger.debug(
                "Band %s -> %r (confidence %.3f)", band.to_dict(), line.text, line.confidence
            )
            lines.append(line)

        return self._formatter.format(lines, warnings)

    def deinit(self) -> StructuredResult:
        """Release the worker pool and backends. Safe to call repeatedly."""
        with self._lock:
            if self._state == State.PROCESSING:
                raise InvalidStateError("deinit() not allowed while processing")
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
            if self._classifier is not None:
                self._classifier.close()
                self._classifier = None
            self._locator = None
            self._segmenter = None
            self._assembler = None
            if self._state == State.READY:
                with engine_log_level(self._log_level):
                    logger.debug("Engine deinitialized")
                self._state = State.DEINITIALIZED
            return StructuredResult()

    def _resolve_opencl(self, cfg: EngineConfig) -> bool:
        if not cfg.gpgpu_enabled:
            return False
        if cv2.ocl.haveOpenCL():
            return True
        if cfg.gpgpu_strict:
            raise ResourceError("GPGPU acceleration requested but OpenCL is unavailable")
        logger.warning("OpenCL unavailable, falling back to the CPU path")
        return False

    def _write_debug_image(self, image: ImageBuffer):
        out_dir = Path(self.config.debug_internal_data_path)
        self._debug_counter += 1
        path = out_dir / f"micrline_input_{self._debug_counter:04d}.png"
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            written = cv2.imwrite(str(path), image.gray())
        except (OSError, cv2.error) as e:
            logger.warning("Cannot write debug image %s: %s", path, e)
            return
        if written:
            logger.debug("Wrote input image to %s", path)
        else:
            logger.warning("Cannot write debug image %s", path)


def _coerce_config(config: Any) -> EngineConfig:
    if config is None:
        return EngineConfig()
    if isinstance(config, EngineConfig):
        return config
    if isinstance(config, dict):
        return EngineConfig.from_dict(config)
    if isinstance(config, str):
        return EngineConfig.from_json(config)
    raise ConfigError(f"Unsupported configuration type: {type(config).__name__}")


def _coerce_image(image: Any) -> ImageBuffer:
    if isinstance(image, ImageBuffer):
        return image
    if isinstance(image, np.ndarray):
        return ImageBuffer.from_array(image)
    raise ImageError(f"Unsupported image type: {type(image).__name__}")
