"""Coordinate conversions for the percentage annotation model.

Annotations live in page-relative percentages (0-100) with a top-left origin.
Two projections leave that space:

- PDF points: bottom-left origin, so y is flipped here and nowhere else.
- Screen pixels: top-left origin inside the rendered text layer's box.
"""

from __future__ import annotations

from .types import BoundingRect, Point


def percent_to_pdf_point(px: float, py: float, page_width: float, page_height: float) -> tuple[float, float]:
    x = (px / 100.0) * page_width
    y = page_height - (py / 100.0) * page_height
    return x, y


def pdf_point_to_percent(x: float, y: float, page_width: float, page_height: float) -> tuple[float, float]:
    px = (x / page_width) * 100.0
    py = ((page_height - y) / page_height) * 100.0
    return px, py


def rect_to_pdf(rect: BoundingRect, page_width: float, page_height: float) -> tuple[float, float, float, float]:
    """Top-left anchored percentage rect -> (x, y, width, height) anchored bottom-left in points."""
    x = (rect.x / 100.0) * page_width
    height = (rect.height / 100.0) * page_height
    y = page_height - (rect.y / 100.0) * page_height - height
    width = (rect.width / 100.0) * page_width
    return x, y, width, height


def percent_to_screen(point: Point, box_width: float, box_height: float) -> tuple[float, float]:
    return (point.x / 100.0) * box_width, (point.y / 100.0) * box_height


def screen_to_percent(x: float, y: float, box_width: float, box_height: float) -> Point:
    if box_width <= 0 or box_height <= 0:
        raise ValueError("container box must have a positive size")
    return Point(x=(x / box_width) * 100.0, y=(y / box_height) * 100.0)
