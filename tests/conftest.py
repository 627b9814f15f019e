from __future__ import annotations

import shutil
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Callable

import fitz  # PyMuPDF
import pytest
from PIL import Image, ImageDraw

from pdfreader_engine.errors import OCRError
from pdfreader_engine.types import OCRResult, OCRWord, PageImage


class FakeRecognizer:
    """Stands in for the OCR engine: returns canned text per page."""

    def __init__(self, fail_on: set[int] | None = None):
        self.fail_on = fail_on or set()
        self.seen: list[int] = []

    def recognize(self, page: PageImage, on_progress: Callable[[float], None] | None = None) -> OCRResult:
        self.seen.append(page.page_number)
        if on_progress:
            on_progress(0.0)
        if page.page_number in self.fail_on:
            raise OCRError(f"engine crashed on page {page.page_number}", page_number=page.page_number)
        if on_progress:
            on_progress(0.5)
            on_progress(1.0)
        word = OCRWord(text=f"page{page.page_number}", confidence=90.0, bbox=(10, 10, 60, 30))
        # page_number deliberately wrong; the pipeline must renumber by page order
        return OCRResult(page_number=0, text=f"Hello page{page.page_number}", confidence=90.0, words=[word])


@pytest.fixture
def workspace_dir() -> Path:
    """Create temporary workspace."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


def make_pdf(n_pages: int = 1, width: float = 612, height: float = 792, text: str | None = None) -> bytes:
    doc = fitz.open()
    for i in range(n_pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text((72, 72), text or f"Page {i + 1} sample text", fontsize=14)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def pdf_factory() -> Callable[..., bytes]:
    return make_pdf


@pytest.fixture
def pdf_bytes() -> bytes:
    return make_pdf(1)


@pytest.fixture
def three_page_pdf() -> bytes:
    return make_pdf(3)


@pytest.fixture
def png_bytes() -> bytes:
    img = Image.new("RGB", (200, 80), color=(255, 255, 255))
    ImageDraw.Draw(img).text((10, 30), "HELLO", fill=(0, 0, 0))
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def fake_recognizer() -> FakeRecognizer:
    return FakeRecognizer()


@pytest.fixture
def recognizer_factory() -> type[FakeRecognizer]:
    return FakeRecognizer
