from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from pdfreader_engine.errors import RasterizationError, ValidationError
from pdfreader_engine.job import JobPaths
from pdfreader_engine.page_provider import (
    PageProvider,
    load_source,
    render_pdf_pages,
    sniff_is_image,
)


class TestLoadSource:
    def test_bytes_pdf(self, pdf_bytes: bytes):
        loaded = load_source(pdf_bytes)
        assert loaded.is_image is False
        assert loaded.data == pdf_bytes

    def test_bytes_image(self, png_bytes: bytes):
        assert load_source(png_bytes).is_image is True

    def test_empty_bytes(self):
        with pytest.raises(ValidationError) as exc:
            load_source(b"")
        assert exc.value.code == "EMPTY_SOURCE"

    def test_path_uses_extension(self, workspace_dir: Path, png_bytes: bytes):
        p = workspace_dir / "page.jpg"
        p.write_bytes(png_bytes)
        loaded = load_source(p)
        assert loaded.is_image is True
        assert loaded.name == "page.jpg"

    def test_missing_path(self, workspace_dir: Path):
        with pytest.raises(ValidationError):
            load_source(workspace_dir / "nope.pdf")

    def test_sniff(self, pdf_bytes: bytes, png_bytes: bytes):
        assert sniff_is_image(png_bytes) is True
        assert sniff_is_image(pdf_bytes) is False
        assert sniff_is_image(b"plain text") is False

    def test_url_transport_error(self, monkeypatch):
        def refuse(url, **kwargs):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr("pdfreader_engine.page_provider.httpx.get", refuse)
        with pytest.raises(ValidationError) as exc:
            load_source("https://files.example.com/a.pdf")
        assert exc.value.code == "FETCH_FAILED"
        assert "connection refused" in exc.value.message


class TestRender:
    def test_all_pages_rendered_in_order(self, three_page_pdf: bytes):
        pages = render_pdf_pages(three_page_pdf, scale=0.5)
        assert [p.page_number for p in pages] == [1, 2, 3]
        # letter page at half scale
        assert pages[0].width == 306
        assert pages[0].height == 396

    def test_default_scale_is_double(self, pdf_bytes: bytes):
        page = render_pdf_pages(pdf_bytes)[0]
        assert (page.width, page.height) == (1224, 1584)

    def test_broken_pdf(self):
        with pytest.raises(RasterizationError):
            render_pdf_pages(b"%PDF-1.4 broken")

    def test_pages_saved_to_job(self, workspace_dir: Path, pdf_bytes: bytes):
        paths = JobPaths.for_dir(workspace_dir / "job")
        provider = PageProvider(scale=0.5, paths=paths)
        rendered: list[int] = []
        provider.pages_for(load_source(pdf_bytes), on_rendered=lambda p: rendered.append(p.page_number))
        assert rendered == [1]
        assert (paths.pages_dir / "page_001.png").exists()
