"""PDF reader back end: OCR, annotation compositing and storage.

This package intentionally focuses on:
- rasterizing PDFs and running OCR page by page with progress reporting
- keeping annotations in page-relative percentage coordinates
- writing annotations back into the PDF binary
- saving rewritten PDFs to object storage

UI rendering and the GraphQL layer are out of scope.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
