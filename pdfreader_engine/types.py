from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from PIL import Image


@dataclass(frozen=True)
class PageImage:
    page_number: int  # 1-based
    width: int
    height: int
    image: Image.Image


@dataclass(frozen=True)
class OCRWord:
    text: str
    confidence: float  # 0-100
    bbox: tuple[int, int, int, int]  # x0, y0, x1, y1 in image pixels

    def to_dict(self) -> dict[str, Any]:
        x0, y0, x1, y1 = self.bbox
        return {
            "text": self.text,
            "confidence": self.confidence,
            "bbox": {"x0": x0, "y0": y0, "x1": x1, "y1": y1},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OCRWord":
        b = data.get("bbox") or {}
        if isinstance(b, dict):
            bbox = (int(b.get("x0", 0)), int(b.get("y0", 0)), int(b.get("x1", 0)), int(b.get("y1", 0)))
        else:
            bbox = (int(b[0]), int(b[1]), int(b[2]), int(b[3]))
        return cls(text=str(data.get("text") or ""), confidence=float(data.get("confidence", 0.0)), bbox=bbox)


@dataclass
class OCRResult:
    page_number: int
    text: str
    confidence: float  # 0-100
    words: list[OCRWord] | None = None
    error: str | None = None  # only set for failed pages under the "collect" policy

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "pageNumber": self.page_number,
            "text": self.text,
            "confidence": self.confidence,
        }
        if self.words is not None:
            out["words"] = [w.to_dict() for w in self.words]
        if self.error is not None:
            out["error"] = self.error
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OCRResult":
        words = data.get("words")
        return cls(
            page_number=int(data["pageNumber"]),
            text=str(data.get("text") or ""),
            confidence=float(data.get("confidence", 0.0)),
            words=[OCRWord.from_dict(w) for w in words] if isinstance(words, list) else None,
            error=data.get("error"),
        )


@dataclass(frozen=True)
class OCRProgress:
    status: str
    progress: float  # 0-100


@dataclass(frozen=True)
class Point:
    x: float  # percent of page width
    y: float  # percent of page height, top-left origin


@dataclass(frozen=True)
class BoundingRect:
    x: float
    y: float
    width: float
    height: float


@dataclass
class Highlight:
    id: str
    page_number: int
    text: str
    bounding_rect: BoundingRect
    color: str = "#ffff00"

    def to_dict(self) -> dict[str, Any]:
        r = self.bounding_rect
        return {
            "id": self.id,
            "pageNumber": self.page_number,
            "text": self.text,
            "boundingRect": {"x": r.x, "y": r.y, "width": r.width, "height": r.height},
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Highlight":
        r = data.get("boundingRect") or {}
        return cls(
            id=str(data.get("id") or ""),
            page_number=int(data["pageNumber"]),
            text=str(data.get("text") or ""),
            bounding_rect=BoundingRect(
                x=float(r.get("x", 0.0)),
                y=float(r.get("y", 0.0)),
                width=float(r.get("width", 0.0)),
                height=float(r.get("height", 0.0)),
            ),
            color=str(data.get("color") or "#ffff00"),
        )


@dataclass
class TextAnnotation:
    id: str
    page_number: int
    text: str
    position: Point
    font_size: float = 12.0
    color: str = "#000000"
    font_family: str = "Helvetica"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pageNumber": self.page_number,
            "text": self.text,
            "position": {"x": self.position.x, "y": self.position.y},
            "fontSize": self.font_size,
            "color": self.color,
            "fontFamily": self.font_family,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TextAnnotation":
        p = data.get("position") or {}
        return cls(
            id=str(data.get("id") or ""),
            page_number=int(data["pageNumber"]),
            text=str(data.get("text") or ""),
            position=Point(x=float(p.get("x", 0.0)), y=float(p.get("y", 0.0))),
            font_size=float(data.get("fontSize", 12.0)),
            color=str(data.get("color") or "#000000"),
            font_family=str(data.get("fontFamily") or "Helvetica"),
        )


@dataclass
class Drawing:
    id: str
    page_number: int
    color: str = "#000000"
    stroke_width: float = 2.0
    paths: list[list[Point]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pageNumber": self.page_number,
            "color": self.color,
            "strokeWidth": self.stroke_width,
            "paths": [[{"x": p.x, "y": p.y} for p in path] for path in self.paths],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Drawing":
        return cls(
            id=str(data.get("id") or ""),
            page_number=int(data["pageNumber"]),
            color=str(data.get("color") or "#000000"),
            stroke_width=float(data.get("strokeWidth", 2.0)),
            paths=[
                [Point(x=float(p["x"]), y=float(p["y"])) for p in path]
                for path in (data.get("paths") or [])
            ],
        )


@dataclass
class Bookmark:
    id: str
    page_number: int
    title: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "pageNumber": self.page_number, "title": self.title}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Bookmark":
        return cls(id=str(data.get("id") or ""), page_number=int(data["pageNumber"]), title=str(data.get("title") or ""))
