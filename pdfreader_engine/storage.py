"""Supabase storage and file metadata access.

One access layer for everything the reader needs from the backend: object
overwrite on save, PDF upload with metadata, signed URLs, trash/restore and
permanent delete, plus optional OCR result persistence.

Storage path structure:
- <bucket>/<user_id>/<file_id>.pdf
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote, urlparse

from supabase import Client, create_client

from .config import EngineConfig, Settings, get_settings
from .errors import StorageError, ValidationError
from .log import get_logger
from .types import OCRResult
from .utils import utc_now_iso

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"

_SIGNED_RE = re.compile(r"/object/sign/([^/]+)/(.+)")
_PUBLIC_RE = re.compile(r"/object/public/([^/]+)/(.+)")


@dataclass(frozen=True)
class StorageLocation:
    bucket: str
    path: str


def parse_storage_url(url: str) -> StorageLocation:
    """Extract bucket and object path from a storage object URL.

    Supports signed (/object/sign/<bucket>/<path>) and public
    (/object/public/<bucket>/<path>) URLs, then falls back to taking the
    segment two places after "object" as the bucket.
    """
    parsed = urlparse(url or "")
    if not parsed.scheme or not parsed.netloc:
        raise ValidationError(f"Invalid URL: {url}", code="INVALID_URL")
    pathname = parsed.path

    if "/object/sign/" in pathname:
        m = _SIGNED_RE.search(pathname)
        if not m:
            raise ValidationError(f"Could not parse signed URL: {url}", code="INVALID_URL")
        bucket, path = m.group(1), m.group(2)
    elif "/object/public/" in pathname:
        m = _PUBLIC_RE.search(pathname)
        if not m:
            raise ValidationError(f"Could not parse public URL: {url}", code="INVALID_URL")
        bucket, path = m.group(1), m.group(2)
    else:
        parts = [p for p in pathname.split("/") if p]
        if "object" not in parts:
            raise ValidationError(f"Could not extract bucket and path from URL: {url}", code="INVALID_URL")
        idx = parts.index("object")
        if idx + 2 >= len(parts):
            raise ValidationError(f"Could not extract bucket and path from URL: {url}", code="INVALID_URL")
        bucket, path = parts[idx + 2], "/".join(parts[idx + 3 :])

    bucket, path = unquote(bucket), unquote(path)
    if not bucket or not path:
        raise ValidationError(f"Invalid bucket ({bucket}) or file path ({path})", code="INVALID_URL")
    return StorageLocation(bucket=bucket, path=path)


def validate_pdf_upload(filename: str, content_type: str | None, size: int, max_bytes: int) -> None:
    if content_type != PDF_CONTENT_TYPE and not filename.lower().endswith(".pdf"):
        raise ValidationError(
            f"Invalid file type. Expected PDF, got: {content_type or 'unknown'}", code="INVALID_FILE_TYPE"
        )
    if size <= 0:
        raise ValidationError("No file provided", code="EMPTY_FILE")
    if size > max_bytes:
        raise ValidationError(
            f"File size must be less than {max_bytes // (1024 * 1024)}MB", code="FILE_TOO_LARGE"
        )


def clean_object_path(file_path: str, bucket: str) -> str:
    path = file_path.lstrip("/")
    for prefix in ("pdf-files/", f"{bucket}/"):
        if path.startswith(prefix):
            path = path[len(prefix):]
    return path


def create_storage_client(settings: Settings | None = None) -> Client:
    settings = settings or get_settings()
    key = settings.supabase_service_role_key or settings.supabase_key
    if not settings.supabase_url or not key:
        raise StorageError("Storage client not configured", code="STORAGE_NOT_CONFIGURED")
    client = create_client(settings.supabase_url, key)
    logger.info("storage_client_created", using_service_key=bool(settings.supabase_service_role_key))
    return client


class StorageService:
    def __init__(self, client: Client, cfg: EngineConfig | None = None):
        self.client = client
        self.cfg = cfg or EngineConfig()
        self.bucket = self.cfg.pdf_bucket
        self.table = self.cfg.files_table

    # -- objects -------------------------------------------------------------

    def update_object(self, location: StorageLocation, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> None:
        """Overwrite the object at `location` (created if missing)."""
        logger.info("storage_update_starting", bucket=location.bucket, path=location.path, size=len(data))
        try:
            self.client.storage.from_(location.bucket).update(
                path=location.path,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as e:
            logger.error("storage_update_failed", bucket=location.bucket, path=location.path, error=str(e))
            raise StorageError(f"Failed to update PDF: {e}", code="UPDATE_FAILED") from e
        logger.info("storage_update_complete", bucket=location.bucket, path=location.path)

    def save_pdf(self, original_url: str, data: bytes) -> dict[str, Any]:
        location = parse_storage_url(original_url)
        self.update_object(location, data)
        return {
            "success": True,
            "message": "PDF updated successfully",
            "filePath": location.path,
            "bucketName": location.bucket,
            "fileSize": len(data),
        }

    def create_signed_url(self, file_path: str, expires_in: int | None = None) -> str:
        path = clean_object_path(file_path, self.bucket)
        try:
            resp = self.client.storage.from_(self.bucket).create_signed_url(
                path=path,
                expires_in=expires_in or self.cfg.signed_url_expires,
            )
        except Exception as e:
            raise StorageError(f"Storage error: {e}", code="SIGNED_URL_FAILED") from e
        signed = resp.get("signedURL") or resp.get("signedUrl")
        if not signed:
            raise StorageError("No signed URL returned from storage", code="SIGNED_URL_FAILED")
        return str(signed)

    # -- files ---------------------------------------------------------------

    def upload_pdf(self, user_id: str, filename: str, data: bytes, content_type: str | None = PDF_CONTENT_TYPE) -> dict[str, Any]:
        """Store a PDF and its metadata row.

        If the metadata insert fails the uploaded object is removed again. That
        cleanup is best effort: if it fails too, the object stays.
        """
        validate_pdf_upload(filename, content_type, len(data), self.cfg.max_upload_bytes)

        file_id = str(uuid.uuid4())
        file_path = f"{user_id}/{file_id}.pdf"
        bucket = self.client.storage.from_(self.bucket)

        logger.info("storage_upload_starting", user_id=user_id, filename=filename, size=len(data))
        try:
            bucket.upload(
                path=file_path,
                file=data,
                file_options={"content-type": PDF_CONTENT_TYPE, "cache-control": "3600", "upsert": "false"},
            )
        except Exception as e:
            logger.error("storage_upload_failed", path=file_path, error=str(e))
            raise StorageError(f"Upload failed: {e}", code="UPLOAD_FAILED") from e

        metadata = {
            "id": file_id,
            "user_id": user_id,
            "filename": filename,
            "file_path": file_path,
            "file_size": len(data),
            "upload_date": utc_now_iso(),
            "public_url": bucket.get_public_url(file_path),
        }
        try:
            resp = self.client.table(self.table).insert(metadata).execute()
        except Exception as e:
            logger.error("file_metadata_insert_failed", file_id=file_id, error=str(e))
            try:
                bucket.remove([file_path])
            except Exception as cleanup_error:
                logger.error("storage_cleanup_failed", path=file_path, error=str(cleanup_error))
            raise StorageError(f"Failed to save file metadata: {e}", code="METADATA_FAILED") from e

        row = resp.data[0] if resp.data else metadata
        logger.info("storage_upload_complete", file_id=file_id, path=file_path)
        return {k: row.get(k) for k in ("id", "filename", "file_path", "file_size", "upload_date")}

    def list_files(self, user_id: str, *, trashed: bool = False) -> list[dict[str, Any]]:
        query = self.client.table(self.table).select("*").eq("user_id", user_id)
        query = query.not_.is_("deleted_at", "null") if trashed else query.is_("deleted_at", "null")
        try:
            resp = query.order("upload_date", desc=True).execute()
        except Exception as e:
            raise StorageError(f"Failed to fetch files: {e}", code="LIST_FAILED") from e
        return list(resp.data or [])

    def _set_deleted_at(self, file_id: str, user_id: str, value: str | None, action: str) -> dict[str, Any]:
        try:
            resp = (
                self.client.table(self.table)
                .update({"deleted_at": value, "updated_at": utc_now_iso()})
                .eq("id", file_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to {action} file: {e}", code=f"{action.upper()}_FAILED") from e
        if not resp.data:
            raise StorageError(f"File not found: {file_id}", code="NOT_FOUND")
        return resp.data[0]

    def soft_delete(self, file_id: str, user_id: str) -> dict[str, Any]:
        return self._set_deleted_at(file_id, user_id, utc_now_iso(), "trash")

    def restore(self, file_id: str, user_id: str) -> dict[str, Any]:
        return self._set_deleted_at(file_id, user_id, None, "restore")

    def delete_with_storage(self, file_id: str, user_id: str) -> dict[str, Any]:
        """Remove the stored object, then the metadata row."""
        try:
            resp = (
                self.client.table(self.table)
                .select("*")
                .eq("id", file_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to delete file: {e}", code="DELETE_FAILED") from e
        if not resp.data:
            raise StorageError(f"File not found: {file_id}", code="NOT_FOUND")
        row = resp.data[0]

        try:
            self.client.storage.from_(self.bucket).remove([row["file_path"]])
            self.client.table(self.table).delete().eq("id", file_id).eq("user_id", user_id).execute()
        except Exception as e:
            logger.error("file_delete_failed", file_id=file_id, error=str(e))
            raise StorageError(f"Failed to delete file: {e}", code="DELETE_FAILED") from e
        logger.info("file_deleted", file_id=file_id, path=row["file_path"])
        return row

    def save_ocr_results(self, file_id: str, user_id: str, results: list[OCRResult], language: str) -> int:
        rows = [
            {
                "file_id": file_id,
                "user_id": user_id,
                "page_number": r.page_number,
                "extracted_text": r.text,
                "confidence": r.confidence,
                "language": language,
            }
            for r in results
            if r.error is None
        ]
        if not rows:
            return 0
        try:
            self.client.table("ocr_results").insert(rows).execute()
        except Exception as e:
            raise StorageError(f"Failed to save OCR results: {e}", code="OCR_SAVE_FAILED") from e
        return len(rows)
