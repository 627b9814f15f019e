from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from .coords import percent_to_screen, screen_to_percent
from .types import Drawing, Highlight, Point, TextAnnotation


@dataclass(frozen=True)
class ScreenBox:
    """Bounding box of the rendered text layer, in screen pixels."""

    left: float
    top: float
    width: float
    height: float

    @classmethod
    def from_bounds(cls, left: float, top: float, right: float, bottom: float) -> "ScreenBox":
        return cls(left=left, top=top, width=right - left, height=bottom - top)

    def to_local(self, x: float, y: float) -> tuple[float, float]:
        return x - self.left, y - self.top


@dataclass(frozen=True)
class OverlayRect:
    id: str
    left: float
    top: float
    width: float
    height: float
    color: str


@dataclass(frozen=True)
class OverlayText:
    id: str
    left: float
    top: float
    text: str
    font_size: float
    color: str
    font_family: str


@dataclass(frozen=True)
class OverlayStroke:
    id: str
    points: list[list[tuple[float, float]]]
    color: str
    stroke_width: float


@dataclass
class PageOverlay:
    """Overlay content for one page; item coordinates are relative to `container`."""

    page_number: int
    container: ScreenBox
    highlights: list[OverlayRect] = field(default_factory=list)
    texts: list[OverlayText] = field(default_factory=list)
    strokes: list[OverlayStroke] = field(default_factory=list)


def project_page(
    page_number: int,
    container: ScreenBox,
    *,
    highlights: Iterable[Highlight] = (),
    text_annotations: Iterable[TextAnnotation] = (),
    drawings: Iterable[Drawing] = (),
    scale: float = 1.0,
) -> PageOverlay:
    """Project one page's annotations into the text layer's box.

    Re-run whenever the layout changes (zoom, resize); nothing here is cached.
    """
    w, h = container.width, container.height
    overlay = PageOverlay(page_number=page_number, container=container)

    for hl in highlights:
        if hl.page_number != page_number:
            continue
        r = hl.bounding_rect
        left, top = percent_to_screen(Point(r.x, r.y), w, h)
        overlay.highlights.append(
            OverlayRect(hl.id, left, top, (r.width / 100.0) * w, (r.height / 100.0) * h, hl.color)
        )

    for a in text_annotations:
        if a.page_number != page_number:
            continue
        left, top = percent_to_screen(a.position, w, h)
        overlay.texts.append(OverlayText(a.id, left, top, a.text, a.font_size * scale, a.color, a.font_family))

    for d in drawings:
        if d.page_number != page_number:
            continue
        points = [[percent_to_screen(p, w, h) for p in path] for path in d.paths]
        overlay.strokes.append(OverlayStroke(d.id, points, d.color, d.stroke_width))

    return overlay


def pointer_to_percent(container: ScreenBox, x: float, y: float) -> Point:
    """Absolute pointer position -> page percentages (the inverse projection)."""
    lx, ly = container.to_local(x, y)
    return screen_to_percent(lx, ly, container.width, container.height)


def _segment_distance(p: tuple[float, float], a: tuple[float, float], b: tuple[float, float]) -> float:
    ax, ay = a
    bx, by = b
    dx, dy = bx - ax, by - ay
    if dx == 0 and dy == 0:
        return math.hypot(p[0] - ax, p[1] - ay)
    t = max(0.0, min(1.0, ((p[0] - ax) * dx + (p[1] - ay) * dy) / (dx * dx + dy * dy)))
    return math.hypot(p[0] - (ax + t * dx), p[1] - (ay + t * dy))


def stroke_distance(drawing: Drawing, point: Point, container: ScreenBox) -> float:
    """Shortest on-screen distance (pixels) from `point` to any stroke of `drawing`."""
    w, h = container.width, container.height
    target = percent_to_screen(point, w, h)
    best = math.inf
    for path in drawing.paths:
        pts = [percent_to_screen(p, w, h) for p in path]
        if len(pts) == 1:
            best = min(best, math.hypot(target[0] - pts[0][0], target[1] - pts[0][1]))
        for a, b in zip(pts, pts[1:]):
            best = min(best, _segment_distance(target, a, b))
    return best


def hit_test_drawing(
    drawings: Iterable[Drawing],
    page_number: int,
    point: Point,
    container: ScreenBox,
    tolerance_px: float = 6.0,
) -> str | None:
    """Id of the nearest drawing on the page within tolerance of a click, else None."""
    best_id: str | None = None
    best = math.inf
    for d in drawings:
        if d.page_number != page_number:
            continue
        dist = stroke_distance(d, point, container)
        # wide strokes are easier to hit
        if dist <= tolerance_px + d.stroke_width / 2.0 and dist < best:
            best, best_id = dist, d.id
    return best_id
