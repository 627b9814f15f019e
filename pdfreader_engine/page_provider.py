from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Callable, Iterator
from urllib.parse import urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from .errors import RasterizationError, ValidationError
from .job import JobPaths
from .log import get_logger
from .types import PageImage
from .utils import ensure_dir

logger = get_logger(__name__)

IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tif", ".tiff"}

_PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_JPEG_MAGIC = b"\xff\xd8\xff"
_PDF_MAGIC = b"%PDF"

Source = str | Path | bytes


@dataclass(frozen=True)
class LoadedSource:
    data: bytes
    name: str
    is_image: bool


def _is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def _suffix_of(source: str) -> str:
    if _is_url(source):
        return Path(urlparse(source).path).suffix.lower()
    return Path(source).suffix.lower()


def sniff_is_image(data: bytes) -> bool:
    if data.startswith(_PDF_MAGIC):
        return False
    if data.startswith(_PNG_MAGIC) or data.startswith(_JPEG_MAGIC):
        return True
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
        return True
    except (UnidentifiedImageError, OSError):
        return False


def load_source(source: Source, *, timeout: float = 30.0) -> LoadedSource:
    """Resolve a path, http(s) URL or raw bytes into document bytes.

    Raises ValidationError for sources that are malformed or missing before any
    engine work starts.
    """
    if isinstance(source, (bytes, bytearray)):
        data = bytes(source)
        if not data:
            raise ValidationError("Empty document", code="EMPTY_SOURCE")
        return LoadedSource(data=data, name="document", is_image=sniff_is_image(data))

    src = str(source)
    if _is_url(src):
        parsed = urlparse(src)
        if not parsed.netloc:
            raise ValidationError(f"Invalid URL: {src}", code="INVALID_URL")
        logger.info("source_fetch_starting", url=src)
        try:
            resp = httpx.get(src, timeout=timeout, follow_redirects=True)
        except httpx.HTTPError as e:
            raise ValidationError(f"Failed to fetch document: {e}", code="FETCH_FAILED") from e
        if resp.status_code >= 400:
            raise ValidationError(f"Failed to fetch document ({resp.status_code}): {src}", code="FETCH_FAILED")
        data = resp.content
        name = Path(parsed.path).name or "document"
        content_type = resp.headers.get("content-type", "")
        is_image = _suffix_of(src) in IMAGE_EXTS or content_type.startswith("image/") or sniff_is_image(data)
        return LoadedSource(data=data, name=name, is_image=is_image)

    path = Path(src)
    if not path.exists() or not path.is_file():
        raise ValidationError(f"File not found: {path}", code="SOURCE_NOT_FOUND")
    data = path.read_bytes()
    is_image = path.suffix.lower() in IMAGE_EXTS or sniff_is_image(data)
    return LoadedSource(data=data, name=path.name, is_image=is_image)


def load_image_page(data: bytes) -> PageImage:
    try:
        img = Image.open(BytesIO(data)).convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f"Unsupported image: {e}", code="INVALID_IMAGE") from e
    return PageImage(page_number=1, width=img.width, height=img.height, image=img)


def iter_pdf_pages(pdf_bytes: bytes, scale: float = 2.0) -> Iterator[PageImage]:
    """Render each page to RGB, one page at a time, in page order."""
    try:
        import fitz  # PyMuPDF
    except Exception as e:  # pragma: no cover
        raise RuntimeError("PyMuPDF is required for PDF rendering. Install pymupdf.") from e

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        raise RasterizationError(f"Failed to open PDF: {e}") from e

    matrix = fitz.Matrix(scale, scale)
    try:
        for i in range(doc.page_count):
            p = doc.load_page(i)
            pix = p.get_pixmap(matrix=matrix, alpha=False)
            img = Image.open(BytesIO(pix.tobytes("png"))).convert("RGB")
            yield PageImage(page_number=i + 1, width=img.width, height=img.height, image=img)
    finally:
        doc.close()


def render_pdf_pages(pdf_bytes: bytes, scale: float = 2.0) -> list[PageImage]:
    """Rasterize every page before returning; any failure aborts the whole render."""
    try:
        pages = list(iter_pdf_pages(pdf_bytes, scale=scale))
    except RasterizationError:
        raise
    except Exception as e:
        raise RasterizationError(f"Failed to convert PDF to images: {e}") from e
    if not pages:
        raise RasterizationError("PDF has no pages", code="EMPTY_PDF")
    return pages


@dataclass(frozen=True)
class PageProvider:
    scale: float = 2.0
    paths: JobPaths | None = None

    def pages_for(self, loaded: LoadedSource, on_rendered: Callable[[PageImage], None] | None = None) -> list[PageImage]:
        if loaded.is_image:
            pages = [load_image_page(loaded.data)]
        else:
            pages = render_pdf_pages(loaded.data, scale=self.scale)

        for page in pages:
            if self.paths is not None:
                self._save_page(page)
            if on_rendered is not None:
                on_rendered(page)
        return pages

    def _save_page(self, page: PageImage) -> None:
        assert self.paths is not None
        ensure_dir(self.paths.pages_dir)
        abs_path = self.paths.pages_dir / f"page_{page.page_number:03d}.png"
        if not abs_path.exists():
            page.image.save(abs_path, format="PNG")
