from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import OCRResult


class ReaderError(Exception):
    """Base exception for pdfreader_engine."""

    def __init__(self, message: str, code: str = "READER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(ReaderError):
    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        super().__init__(message, code)


class RasterizationError(ReaderError):
    def __init__(self, message: str, code: str = "RASTERIZATION_FAILED"):
        super().__init__(message, code)


class OCRError(ReaderError):
    """OCR failed on a page.

    partial_results holds the pages completed before the failure, in page order.
    """

    def __init__(
        self,
        message: str,
        *,
        page_number: int | None = None,
        partial_results: list["OCRResult"] | None = None,
        code: str = "OCR_FAILED",
    ):
        super().__init__(message, code)
        self.page_number = page_number
        self.partial_results = list(partial_results or [])


class CompositorError(ReaderError):
    def __init__(self, message: str, code: str = "COMPOSITOR_FAILED"):
        super().__init__(message, code)


class StorageError(ReaderError):
    def __init__(self, message: str, code: str = "STORAGE_ERROR"):
        super().__init__(message, code)
