"""HTTP surface: save an annotated PDF back to storage, upload, OCR, health."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import get_settings, load_config
from .errors import OCRError, RasterizationError, ReaderError, ValidationError
from .log import configure_logging, get_logger
from .ocr import supported_languages
from .pipeline import OCRPipeline
from .search import ocr_stats
from .storage import StorageService, create_storage_client

logger = get_logger(__name__)


class SavePDFRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str | None = Field(default=None, alias="fileId")
    pdf_bytes: str | None = Field(default=None, alias="pdfBytes")  # base64
    filename: str | None = None
    original_url: str | None = Field(default=None, alias="originalUrl")


class OCRRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pdf_url: str | None = Field(default=None, alias="pdfUrl")
    language: str = "eng"


def get_storage_service() -> StorageService:
    settings = get_settings()
    return StorageService(create_storage_client(settings), load_config(settings.engine_config_path))


def get_ocr_pipeline() -> OCRPipeline:
    return OCRPipeline(load_config(get_settings().engine_config_path))


def _status_for(exc: ReaderError) -> int:
    if isinstance(exc, (ValidationError, RasterizationError)):
        return 400
    return 500


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def _language_labels() -> list[str]:
    return [f"{lang['name']} ({lang['code']})" for lang in supported_languages()]


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.debug)

    app = FastAPI(title=settings.app_name, docs_url="/docs" if settings.debug else None)

    @app.exception_handler(ReaderError)
    async def reader_error_handler(request: Request, exc: ReaderError) -> JSONResponse:
        status = _status_for(exc)
        logger.warning("request_failed", path=request.url.path, code=exc.code, status=status, error=exc.message)
        return _error(status, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(loc) for loc in err["loc"] if loc != "body") for err in exc.errors()]
        logger.warning("request_invalid", path=request.url.path, fields=fields)
        return _error(400, f"Invalid request: {', '.join(fields) or 'body'}")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        return _error(500, "An unexpected error occurred")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "healthy", "service": settings.app_name}

    @app.post("/api/pdf/save")
    def save_pdf(
        body: SavePDFRequest,
        storage: StorageService = Depends(get_storage_service),
    ) -> Any:
        if not body.file_id or not body.pdf_bytes or not body.filename:
            return _error(400, "Missing required fields")
        if not body.original_url:
            return _error(400, "Original URL is required")
        try:
            data = base64.b64decode(body.pdf_bytes, validate=True)
        except (binascii.Error, ValueError):
            return _error(400, "Invalid PDF data")

        logger.info("pdf_save_requested", file_id=body.file_id, filename=body.filename, size=len(data))
        return storage.save_pdf(body.original_url, data)

    @app.post("/api/upload")
    async def upload(
        file: UploadFile | None = File(default=None),
        user_id: str = Form(...),
        filename: str | None = Form(default=None),
        storage: StorageService = Depends(get_storage_service),
    ) -> Any:
        if file is None:
            return _error(400, "No file provided")
        data = await file.read()
        result = storage.upload_pdf(
            user_id=user_id,
            filename=filename or file.filename or "document.pdf",
            data=data,
            content_type=file.content_type,
        )
        return {"success": True, "data": result}

    @app.get("/api/ocr")
    async def ocr_info() -> dict[str, Any]:
        return {
            "message": "OCR API Information Endpoint",
            "description": "POST a pdfUrl (and optional language) to run OCR on every page",
            "supportedLanguages": _language_labels(),
            "methods": ["GET", "POST"],
        }

    @app.post("/api/ocr")
    def run_ocr_request(
        body: OCRRequest,
        pipeline: OCRPipeline = Depends(get_ocr_pipeline),
    ) -> Any:
        if not body.pdf_url:
            return _error(400, "PDF URL is required")
        try:
            results = pipeline.run(body.pdf_url, body.language)
        except OCRError as e:
            return JSONResponse(
                status_code=500,
                content={
                    "error": e.message,
                    "pageNumber": e.page_number,
                    "partialResults": [r.to_dict() for r in e.partial_results],
                },
            )
        return {
            "results": [r.to_dict() for r in results],
            "stats": ocr_stats(results),
            "supportedLanguages": supported_languages(),
        }

    return app