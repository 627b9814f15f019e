from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import fitz  # PyMuPDF

from .types import OCRResult

LOW_CONFIDENCE = 70.0
HIGH_CONFIDENCE = 90.0


@dataclass(frozen=True)
class SearchMatch:
    text: str
    index: int  # character offset in the page text
    confidence: float | None = None
    bbox: tuple[int, int, int, int] | None = None


@dataclass
class PageMatches:
    page_number: int
    matches: list[SearchMatch] = field(default_factory=list)


def _pattern(term: str) -> re.Pattern[str]:
    # The term is literal text typed by a user, not a regex.
    return re.compile(re.escape(term), re.IGNORECASE)


def search_ocr_results(results: list[OCRResult], term: str) -> list[PageMatches]:
    """Case-insensitive search over OCR text.

    Each match carries the first word box on the page containing the term,
    with that word's confidence, or the page confidence when no word matches.
    """
    if not term.strip():
        return []
    pattern = _pattern(term)
    needle = term.lower()

    out: list[PageMatches] = []
    for r in sorted(results, key=lambda r: r.page_number):
        word = next((w for w in (r.words or []) if needle in w.text.lower()), None)
        matches = [
            SearchMatch(
                text=m.group(0),
                index=m.start(),
                confidence=word.confidence if word is not None else r.confidence,
                bbox=word.bbox if word is not None else None,
            )
            for m in pattern.finditer(r.text)
        ]
        if matches:
            out.append(PageMatches(page_number=r.page_number, matches=matches))
    return out


def extract_pdf_text(pdf_bytes: bytes) -> list[str]:
    """Text layer of each page, in page order."""
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return [page.get_text("text") for page in doc]


def search_pdf_text(pdf_bytes: bytes, term: str) -> list[PageMatches]:
    if not term.strip():
        return []
    pattern = _pattern(term)
    out: list[PageMatches] = []
    for i, text in enumerate(extract_pdf_text(pdf_bytes)):
        matches = [SearchMatch(text=m.group(0), index=m.start()) for m in pattern.finditer(text)]
        if matches:
            out.append(PageMatches(page_number=i + 1, matches=matches))
    return out


def ocr_stats(results: list[OCRResult]) -> dict[str, Any]:
    total = len(results)
    confidences = [r.confidence for r in results]
    average = round(sum(confidences) / total, 2) if total else 0.0
    return {
        "totalPages": total,
        "averageConfidence": average,
        "lowConfidencePages": sum(1 for c in confidences if c < LOW_CONFIDENCE),
        "highConfidencePages": sum(1 for c in confidences if c >= HIGH_CONFIDENCE),
        "confidenceDistribution": {
            "excellent": sum(1 for c in confidences if c >= 95),
            "good": sum(1 for c in confidences if 85 <= c < 95),
            "fair": sum(1 for c in confidences if 70 <= c < 85),
            "poor": sum(1 for c in confidences if c < 70),
        },
    }
