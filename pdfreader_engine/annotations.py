from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable

from .compositor import rewrite_pdf
from .errors import ValidationError
from .overlay import ScreenBox, hit_test_drawing
from .types import Bookmark, BoundingRect, Drawing, Highlight, Point, TextAnnotation
from .utils import clamp, load_json, new_annotation_id, write_json

Listener = Callable[["AnnotationStore"], None]

MAX_HISTORY = 50


def _pct(v: float) -> float:
    return clamp(float(v), 0.0, 100.0)


def _check_page(page_number: int) -> int:
    if int(page_number) < 1:
        raise ValidationError(f"page_number must be >= 1, got {page_number}", code="INVALID_PAGE")
    return int(page_number)


@dataclass
class _Snapshot:
    highlights: list[Highlight]
    text_annotations: list[TextAnnotation]


@dataclass
class AnnotationStore:
    """Annotation state for one open document.

    Action methods are the only way state changes. Every change notifies
    subscribers. Highlight and text-annotation edits are undoable.
    """

    highlights: list[Highlight] = field(default_factory=list)
    text_annotations: list[TextAnnotation] = field(default_factory=list)
    drawings: list[Drawing] = field(default_factory=list)
    bookmarks: list[Bookmark] = field(default_factory=list)
    has_unsaved_changes: bool = False
    max_history: int = MAX_HISTORY

    def __post_init__(self) -> None:
        self._listeners: list[Listener] = []
        self._history: list[_Snapshot] = [self._snapshot()]
        self._history_index = 0

    # -- subscriptions -------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _changed(self, *, unsaved: bool = True) -> None:
        if unsaved:
            self.has_unsaved_changes = True
        for listener in list(self._listeners):
            listener(self)

    # -- history -------------------------------------------------------------

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(copy.deepcopy(self.highlights), copy.deepcopy(self.text_annotations))

    def _save_to_history(self) -> None:
        history = self._history[: self._history_index + 1]
        history.append(self._snapshot())
        if len(history) > self.max_history:
            history.pop(0)
        self._history = history
        self._history_index = len(history) - 1

    def _restore(self, snap: _Snapshot) -> None:
        self.highlights = copy.deepcopy(snap.highlights)
        self.text_annotations = copy.deepcopy(snap.text_annotations)

    def can_undo(self) -> bool:
        return self._history_index > 0

    def can_redo(self) -> bool:
        return self._history_index < len(self._history) - 1

    def undo(self) -> bool:
        if not self.can_undo():
            return False
        self._history_index -= 1
        self._restore(self._history[self._history_index])
        self._changed()
        return True

    def redo(self) -> bool:
        if not self.can_redo():
            return False
        self._history_index += 1
        self._restore(self._history[self._history_index])
        self._changed()
        return True

    # -- highlights ----------------------------------------------------------

    def add_highlight(self, page_number: int, text: str, bounding_rect: BoundingRect, color: str = "#ffff00") -> Highlight:
        r = bounding_rect
        highlight = Highlight(
            id=new_annotation_id("highlight"),
            page_number=_check_page(page_number),
            text=text,
            bounding_rect=BoundingRect(_pct(r.x), _pct(r.y), _pct(r.width), _pct(r.height)),
            color=color,
        )
        self.highlights.append(highlight)
        self._save_to_history()
        self._changed()
        return highlight

    def update_highlight(self, highlight_id: str, **changes: Any) -> Highlight | None:
        if "bounding_rect" in changes:
            r = changes["bounding_rect"]
            changes["bounding_rect"] = BoundingRect(_pct(r.x), _pct(r.y), _pct(r.width), _pct(r.height))
        if "page_number" in changes:
            changes["page_number"] = _check_page(changes["page_number"])
        updated: Highlight | None = None
        out: list[Highlight] = []
        for h in self.highlights:
            if h.id == highlight_id:
                h = replace(h, **changes)
                updated = h
            out.append(h)
        if updated is None:
            return None
        self.highlights = out
        self._save_to_history()
        self._changed()
        return updated

    def remove_highlight(self, highlight_id: str) -> None:
        kept = [h for h in self.highlights if h.id != highlight_id]
        if len(kept) == len(self.highlights):
            return
        self.highlights = kept
        self._save_to_history()
        self._changed()

    def clear_highlights(self) -> None:
        self.highlights = []
        self._save_to_history()
        self._changed()

    def highlights_for_page(self, page_number: int) -> list[Highlight]:
        return [h for h in self.highlights if h.page_number == page_number]

    # -- text annotations ----------------------------------------------------

    def add_text_annotation(
        self,
        page_number: int,
        text: str,
        position: Point,
        *,
        font_size: float = 12.0,
        color: str = "#000000",
        font_family: str = "Helvetica",
    ) -> TextAnnotation:
        annotation = TextAnnotation(
            id=new_annotation_id("text_annotation"),
            page_number=_check_page(page_number),
            text=text,
            position=Point(_pct(position.x), _pct(position.y)),
            font_size=float(font_size),
            color=color,
            font_family=font_family,
        )
        self.text_annotations.append(annotation)
        self._save_to_history()
        self._changed()
        return annotation

    def update_text_annotation(self, annotation_id: str, **changes: Any) -> TextAnnotation | None:
        if "position" in changes:
            p = changes["position"]
            changes["position"] = Point(_pct(p.x), _pct(p.y))
        if "page_number" in changes:
            changes["page_number"] = _check_page(changes["page_number"])
        updated: TextAnnotation | None = None
        out: list[TextAnnotation] = []
        for a in self.text_annotations:
            if a.id == annotation_id:
                a = replace(a, **changes)
                updated = a
            out.append(a)
        if updated is None:
            return None
        self.text_annotations = out
        self._save_to_history()
        self._changed()
        return updated

    def remove_text_annotation(self, annotation_id: str) -> None:
        kept = [a for a in self.text_annotations if a.id != annotation_id]
        if len(kept) == len(self.text_annotations):
            return
        self.text_annotations = kept
        self._save_to_history()
        self._changed()

    def clear_text_annotations(self) -> None:
        self.text_annotations = []
        self._save_to_history()
        self._changed()

    def text_annotations_for_page(self, page_number: int) -> list[TextAnnotation]:
        return [a for a in self.text_annotations if a.page_number == page_number]

    # -- drawings ------------------------------------------------------------

    def start_stroke(self, page_number: int, point: Point, *, color: str = "#000000", stroke_width: float = 2.0) -> Drawing:
        drawing = Drawing(
            id=new_annotation_id("drawing"),
            page_number=_check_page(page_number),
            color=color,
            stroke_width=float(stroke_width),
            paths=[[Point(_pct(point.x), _pct(point.y))]],
        )
        self.drawings.append(drawing)
        self._changed()
        return drawing

    def extend_stroke(self, drawing_id: str, point: Point) -> None:
        for d in self.drawings:
            if d.id == drawing_id and d.paths:
                d.paths[-1].append(Point(_pct(point.x), _pct(point.y)))
                self._changed()
                return

    def finish_stroke(self, drawing_id: str) -> Drawing | None:
        """End a drag. Strokes that never moved past one point are dropped."""
        for d in self.drawings:
            if d.id != drawing_id:
                continue
            if all(len(path) < 2 for path in d.paths):
                self.drawings = [x for x in self.drawings if x.id != drawing_id]
                self._changed()
                return None
            return d
        return None

    def remove_drawing(self, drawing_id: str) -> None:
        self.drawings = [d for d in self.drawings if d.id != drawing_id]
        self._changed()

    def erase_at(self, page_number: int, point: Point, container: ScreenBox, tolerance_px: float = 6.0) -> str | None:
        drawing_id = hit_test_drawing(self.drawings, page_number, point, container, tolerance_px)
        if drawing_id is not None:
            self.remove_drawing(drawing_id)
        return drawing_id

    def clear_drawings(self) -> None:
        self.drawings = []
        self._changed()

    def drawings_for_page(self, page_number: int) -> list[Drawing]:
        return [d for d in self.drawings if d.page_number == page_number]

    # -- bookmarks -----------------------------------------------------------

    def add_bookmark(self, page_number: int, title: str | None = None) -> Bookmark:
        page_number = _check_page(page_number)
        bookmark = Bookmark(
            id=new_annotation_id("bookmark"),
            page_number=page_number,
            title=(title or "").strip() or f"Page {page_number}",
        )
        self.bookmarks.append(bookmark)
        self._changed()
        return bookmark

    def update_bookmark(self, bookmark_id: str, title: str) -> None:
        if not title.strip():
            raise ValidationError("Bookmark title cannot be empty", code="INVALID_TITLE")
        for b in self.bookmarks:
            if b.id == bookmark_id:
                b.title = title.strip()
                self._changed()
                return

    def remove_bookmark(self, bookmark_id: str) -> None:
        self.bookmarks = [b for b in self.bookmarks if b.id != bookmark_id]
        self._changed()

    def sorted_bookmarks(self) -> list[Bookmark]:
        return sorted(self.bookmarks, key=lambda b: b.page_number)

    def is_bookmarked(self, page_number: int) -> bool:
        return any(b.page_number == page_number for b in self.bookmarks)

    # -- persistence ---------------------------------------------------------

    def render_pdf(self, original_bytes: bytes, *, highlight_opacity: float = 0.3) -> bytes:
        return rewrite_pdf(
            original_bytes,
            highlights=self.highlights,
            text_annotations=self.text_annotations,
            drawings=self.drawings,
            highlight_opacity=highlight_opacity,
        )

    def mark_saved(self) -> None:
        self.has_unsaved_changes = False
        self._changed(unsaved=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "highlights": [h.to_dict() for h in self.highlights],
            "textAnnotations": [a.to_dict() for a in self.text_annotations],
            "drawings": [d.to_dict() for d in self.drawings],
            "bookmarks": [b.to_dict() for b in self.bookmarks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnnotationStore":
        return cls(
            highlights=[Highlight.from_dict(h) for h in data.get("highlights", []) or []],
            text_annotations=[TextAnnotation.from_dict(a) for a in data.get("textAnnotations", []) or []],
            drawings=[Drawing.from_dict(d) for d in data.get("drawings", []) or []],
            bookmarks=[Bookmark.from_dict(b) for b in data.get("bookmarks", []) or []],
        )

    def save(self, path: str | Path) -> None:
        write_json(path, self.to_dict())
        self.mark_saved()

    @classmethod
    def load(cls, path: str | Path) -> "AnnotationStore":
        return cls.from_dict(load_json(path))
