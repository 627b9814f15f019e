"""Annotation compositor.

Writes highlights, text notes and freehand strokes into a PDF. Draw
instructions are planned in native PDF point space (origin bottom-left) and
handed to PyMuPDF through each page's PDF-to-MuPDF transformation matrix.

Z-order is fixed: highlights first so they sit behind text, then text, then
drawings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import fitz  # PyMuPDF

from .coords import percent_to_pdf_point, rect_to_pdf
from .errors import CompositorError
from .log import get_logger
from .types import Drawing, Highlight, TextAnnotation
from .utils import hex_to_rgb

logger = get_logger(__name__)

DEFAULT_HIGHLIGHT_OPACITY = 0.3

Color = tuple[float, float, float]


@dataclass(frozen=True)
class RectOp:
    page_number: int
    x: float
    y: float  # bottom edge, PDF points
    width: float
    height: float
    color: Color
    opacity: float


@dataclass(frozen=True)
class TextOp:
    page_number: int
    x: float
    y: float  # baseline, PDF points
    text: str
    font_size: float
    font_name: str  # PyMuPDF base-14 short name
    color: Color


@dataclass(frozen=True)
class LineOp:
    page_number: int
    x0: float
    y0: float
    x1: float
    y1: float
    width: float
    color: Color


DrawOp = Union[RectOp, TextOp, LineOp]


def font_for_family(font_family: str) -> str:
    return "hebo" if "bold" in (font_family or "").lower() else "helv"


def plan_operations(
    page_sizes: Sequence[tuple[float, float]],
    *,
    highlights: Iterable[Highlight] = (),
    text_annotations: Iterable[TextAnnotation] = (),
    drawings: Iterable[Drawing] = (),
    highlight_opacity: float = DEFAULT_HIGHLIGHT_OPACITY,
) -> list[DrawOp]:
    """Turn annotations into PDF-space draw instructions.

    page_sizes[i] is (width, height) in points for page i + 1. Entities whose
    page number falls outside the document are skipped.
    """
    n_pages = len(page_sizes)

    def _size(page_number: int) -> tuple[float, float] | None:
        if 1 <= page_number <= n_pages:
            return page_sizes[page_number - 1]
        return None

    ops: list[DrawOp] = []

    for h in highlights:
        size = _size(h.page_number)
        if size is None:
            continue
        x, y, w, hh = rect_to_pdf(h.bounding_rect, *size)
        ops.append(RectOp(h.page_number, x, y, w, hh, hex_to_rgb(h.color), highlight_opacity))

    for a in text_annotations:
        size = _size(a.page_number)
        if size is None or not a.text.strip():
            continue
        x, y = percent_to_pdf_point(a.position.x, a.position.y, *size)
        ops.append(
            TextOp(a.page_number, x, y, a.text, float(a.font_size), font_for_family(a.font_family), hex_to_rgb(a.color))
        )

    for d in drawings:
        size = _size(d.page_number)
        if size is None:
            continue
        color = hex_to_rgb(d.color)
        for path in d.paths:
            # a path needs two points to draw anything
            for prev, cur in zip(path, path[1:]):
                x0, y0 = percent_to_pdf_point(prev.x, prev.y, *size)
                x1, y1 = percent_to_pdf_point(cur.x, cur.y, *size)
                ops.append(LineOp(d.page_number, x0, y0, x1, y1, float(d.stroke_width), color))

    return ops


def _apply(page: fitz.Page, op: DrawOp) -> None:
    m = page.transformation_matrix
    if isinstance(op, RectOp):
        p0 = fitz.Point(op.x, op.y) * m
        p1 = fitz.Point(op.x + op.width, op.y + op.height) * m
        rect = fitz.Rect(p0, p1)
        rect.normalize()
        page.draw_rect(rect, color=None, fill=op.color, fill_opacity=op.opacity)
    elif isinstance(op, TextOp):
        page.insert_text(
            fitz.Point(op.x, op.y) * m,
            op.text,
            fontsize=op.font_size,
            fontname=op.font_name,
            color=op.color,
        )
    else:
        page.draw_line(
            fitz.Point(op.x0, op.y0) * m,
            fitz.Point(op.x1, op.y1) * m,
            color=op.color,
            width=op.width,
        )


def page_sizes_of(doc: fitz.Document) -> list[tuple[float, float]]:
    return [(page.mediabox.width, page.mediabox.height) for page in doc]


def rewrite_pdf(
    original_bytes: bytes,
    *,
    highlights: Iterable[Highlight] = (),
    text_annotations: Iterable[TextAnnotation] = (),
    drawings: Iterable[Drawing] = (),
    highlight_opacity: float = DEFAULT_HIGHLIGHT_OPACITY,
) -> bytes:
    """Return new PDF bytes with the annotations drawn in. The input is left untouched."""
    source = bytes(original_bytes)
    try:
        doc = fitz.open(stream=source, filetype="pdf")
    except Exception as e:
        raise CompositorError(f"Failed to open PDF: {e}", code="INVALID_PDF") from e

    try:
        ops = plan_operations(
            page_sizes_of(doc),
            highlights=highlights,
            text_annotations=text_annotations,
            drawings=drawings,
            highlight_opacity=highlight_opacity,
        )
        if not ops:
            return source

        for op in ops:
            _apply(doc[op.page_number - 1], op)

        out = doc.tobytes(garbage=1, deflate=True)
    except CompositorError:
        raise
    except Exception as e:
        logger.error("pdf_rewrite_failed", error=str(e))
        raise CompositorError("Failed to modify PDF with annotations") from e
    finally:
        doc.close()

    logger.info("pdf_rewrite_complete", operations=len(ops), size=len(out))
    return out
