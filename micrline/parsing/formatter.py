"""Structured, JSON-serializable recognition results."""

import json
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from micrline.errors import MICRError, RecognitionIssue, StatusCode
from micrline.models import RecognizedLine, display_char
from micrline.parsing.parser import parse_micr_line

RESULT_VERSION = "1.0"

# Alternatives reported per glyph besides the winner
TOP_CANDIDATES = 3


@dataclass
class StructuredResult:
    """
    Versioned result envelope.

    ``payload`` is ``{"lines": [...], "warnings": [...]}`` on success and
    empty on failure.
    """

    status_code: int = StatusCode.OK
    status_message: str = "OK"
    payload: dict = field(default_factory=dict)
    version: str = RESULT_VERSION

    @property
    def ok(self) -> bool:
        return self.status_code == StatusCode.OK

    @property
    def lines(self) -> list[dict]:
        return self.payload.get("lines", [])

    @property
    def warnings(self) -> list[str]:
        return self.payload.get("warnings", [])

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "status_code": int(self.status_code),
            "status_message": self.status_message,
            "payload": self.payload,
        }

    def to_json(self, indent=None) -> str:
        # repr-based float output keeps the full double precision
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


class ResultFormatter:
    """Builds StructuredResult objects from recognized lines or failures."""

    def format(
        self,
        lines: Sequence[RecognizedLine],
        warnings: Iterable[RecognitionIssue | str] = (),
    ) -> StructuredResult:
        payload = {
            "lines": [self._line_dict(line) for line in lines],
            "warnings": [
                w.value if isinstance(w, RecognitionIssue) else str(w) for w in warnings
            ],
        }
        return StructuredResult(payload=payload)

    def format_error(self, exc: BaseException) -> StructuredResult:
        code = exc.status_code if isinstance(exc, MICRError) else StatusCode.INTERNAL_ERROR
        return StructuredResult(status_code=code, status_message=str(exc) or type(exc).__name__)

    @staticmethod
    def parse(text: str) -> StructuredResult:
        """Rebuild a result from its JSON form."""
        data = json.loads(text)
        return StructuredResult(
            status_code=int(data["status_code"]),
            status_message=data.get("status_message", ""),
            payload=data.get("payload", {}),
            version=data.get("version", RESULT_VERSION),
        )

    def _line_dict(self, line: RecognizedLine) -> dict:
        d = {
            "text": line.text,
            "confidence": float(line.confidence),
            "glyph_confidences": [float(c) for c in line.glyph_confidences],
            "region": line.region.to_dict(),
            "font": line.font,
            "glyphs": [
                {
                    "index": glyph.index,
                    "symbol": symbol,
                    "display": display_char(symbol),
                    "score": float(score),
                    "region": glyph.region.to_dict(),
                    "rejected": glyph.rejected,
                    "fallback": glyph.fallback,
                    "candidates": [
                        {"symbol": c.symbol, "score": float(c.score)}
                        for c in glyph.candidates[:TOP_CANDIDATES]
                    ],
                }
                for glyph, symbol, score in zip(
                    line.glyphs, line.symbols, line.glyph_confidences
                )
            ],
        }
        if line.font == "e13b":
            d["fields"] = parse_micr_line(line.symbols).to_dict()
        return d
