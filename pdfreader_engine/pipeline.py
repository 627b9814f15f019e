from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from .config import EngineConfig
from .errors import OCRError, RasterizationError, ValidationError
from .job import JobPaths, record_error
from .log import get_logger
from .ocr import OCRExtractor, SubProgress
from .page_provider import PageProvider, Source, load_source
from .types import OCRProgress, OCRResult, PageImage
from .utils import clamp, utc_now_iso
from .writer import JobWriter

logger = get_logger(__name__)

ProgressCallback = Callable[[OCRProgress], None]

PAGE_ERROR_POLICIES = ("raise", "collect")

# Progress bands: setup 0-10, converting at 10, OCR 10-90, done at 100.
_SETUP_DONE = 10.0
_OCR_SPAN = 80.0


class PageRecognizer(Protocol):
    def recognize(self, page: PageImage, on_progress: SubProgress | None = None) -> OCRResult: ...


@dataclass
class ProgressReporter:
    """Forwards progress to a callback, never letting the value go down."""

    callback: ProgressCallback | None = None
    last: float = 0.0
    history: list[float] = field(default_factory=list)

    def report(self, progress: float, status: str) -> None:
        value = max(self.last, clamp(float(progress), 0.0, 100.0))
        self.last = value
        self.history.append(value)
        if self.callback is not None:
            self.callback(OCRProgress(status=status, progress=value))


def page_progress(index: int, fraction: float, total: int) -> float:
    """Overall percentage for 0-based page `index` with intra-page `fraction`."""
    return _SETUP_DONE + ((index + clamp(fraction, 0.0, 1.0)) / max(1, total)) * _OCR_SPAN


def _failed_page(page_number: int, message: str) -> OCRResult:
    return OCRResult(page_number=page_number, text="", confidence=0.0, words=[], error=message)


class OCRPipeline:
    def __init__(
        self,
        cfg: EngineConfig | None = None,
        *,
        extractor: PageRecognizer | None = None,
        paths: JobPaths | None = None,
    ):
        self.cfg = cfg or EngineConfig()
        self.paths = paths
        self.extractor = extractor
        self.page_provider = PageProvider(scale=self.cfg.render_scale, paths=paths)
        self.writer = JobWriter(paths=paths) if paths is not None else None

    def _extractor_for(self, language: str) -> PageRecognizer:
        if self.extractor is not None:
            return self.extractor
        return OCRExtractor(
            lang=language,
            engine=self.cfg.ocr_engine,
            use_preprocessing=self.cfg.ocr_preprocessing,
            max_attempts=self.cfg.ocr_max_attempts,
        )

    def _record(self, page_number: int | None, stage: str, message: str) -> None:
        if self.paths is not None:
            record_error(self.paths, page_number=page_number, stage=stage, message=message)

    def run(
        self,
        source: Source,
        language: str = "eng",
        on_progress: ProgressCallback | None = None,
        *,
        on_page_error: str = "raise",
    ) -> list[OCRResult]:
        """Rasterize (PDF) or load (image), then OCR every page in order.

        All pages are rendered before OCR starts on page 1. Pages are OCR'd one
        at a time. With on_page_error="raise" a page failure raises OCRError
        carrying the pages finished so far; with "collect" the failed page is
        returned with `error` set and the run continues.
        """
        if on_page_error not in PAGE_ERROR_POLICIES:
            raise ValidationError(f"on_page_error must be one of {PAGE_ERROR_POLICIES}", code="INVALID_POLICY")
        if not language or not language.strip():
            raise ValidationError("OCR language is required", code="INVALID_LANGUAGE")

        started_at = utc_now_iso()
        reporter = ProgressReporter(on_progress)
        reporter.report(0, "Starting OCR...")

        loaded = load_source(source)
        logger.info("ocr_source_loaded", name=loaded.name, is_image=loaded.is_image, size=len(loaded.data))
        reporter.report(5, "Detecting file type...")

        if loaded.is_image:
            reporter.report(_SETUP_DONE, "Preparing image for OCR...")
        else:
            reporter.report(_SETUP_DONE, "Converting PDF to images...")

        try:
            pages = self.page_provider.pages_for(loaded)
        except RasterizationError as e:
            self._record(None, "rasterize", e.message)
            logger.error("ocr_rasterize_failed", name=loaded.name, error=e.message)
            raise RasterizationError(
                "Cannot process PDF file. Please try uploading an image file (PNG, JPG) instead, "
                f"or use a different PDF file. ({e.message})",
                code=e.code,
            ) from e

        extractor = self._extractor_for(language)
        total = len(pages)
        results: list[OCRResult] = []
        failed = 0

        for i, page in enumerate(pages):
            n = page.page_number
            reporter.report(page_progress(i, 0.0, total), f"Processing page {n} of {total}...")

            def _sub(fraction: float, *, _i: int = i, _n: int = n) -> None:
                reporter.report(page_progress(_i, fraction, total), f"OCR processing page {_n}...")

            try:
                result = extractor.recognize(page, _sub)
            except Exception as e:
                message = e.message if isinstance(e, OCRError) else str(e)
                self._record(n, "ocr", message)
                logger.error("ocr_page_failed", page=n, total=total, error=message)
                if on_page_error == "raise":
                    raise OCRError(message, page_number=n, partial_results=results) from e
                failed += 1
                results.append(_failed_page(n, message))
                continue

            # Page numbers come from the page order, not from the recognizer.
            result.page_number = n
            results.append(result)
            logger.info("ocr_page_complete", page=n, total=total, confidence=result.confidence)

        reporter.report(100, "OCR completed!")

        if self.writer is not None:
            self.writer.write_final(
                job_meta={
                    "source": loaded.name,
                    "is_image": loaded.is_image,
                    "language": language,
                    "created_at": started_at,
                },
                results=results,
                metrics=_metrics(results, failed=failed, created_at=started_at),
            )
        return results


def _metrics(results: list[OCRResult], *, failed: int, created_at: str) -> dict[str, Any]:
    ok = [r for r in results if r.error is None]
    return {
        "created_at": created_at,
        "pages_total": len(results),
        "pages_processed": len(ok),
        "pages_failed": failed,
        "ocr_empty_count": sum(1 for r in ok if not r.text.strip()),
        "average_confidence": round(sum(r.confidence for r in ok) / len(ok), 2) if ok else 0.0,
    }


def run_ocr(
    source: Source,
    language: str = "eng",
    on_progress: ProgressCallback | None = None,
    *,
    config: EngineConfig | None = None,
    extractor: PageRecognizer | None = None,
    paths: JobPaths | None = None,
    on_page_error: str = "raise",
) -> list[OCRResult]:
    return OCRPipeline(config, extractor=extractor, paths=paths).run(
        source, language, on_progress, on_page_error=on_page_error
    )
