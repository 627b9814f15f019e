from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from pdfreader_engine.config import EngineConfig
from pdfreader_engine.errors import StorageError, ValidationError
from pdfreader_engine.storage import (
    StorageLocation,
    StorageService,
    clean_object_path,
    parse_storage_url,
)
from pdfreader_engine.types import OCRResult

BASE = "https://abc.supabase.co/storage/v1"


class TestParseStorageUrl:
    def test_signed_url(self):
        loc = parse_storage_url(f"{BASE}/object/sign/pdf/user-1/file.pdf?token=xyz")
        assert loc == StorageLocation(bucket="pdf", path="user-1/file.pdf")

    def test_public_url(self):
        loc = parse_storage_url(f"{BASE}/object/public/pdf-files/a/b/c.pdf")
        assert loc == StorageLocation(bucket="pdf-files", path="a/b/c.pdf")

    def test_path_is_unquoted(self):
        loc = parse_storage_url(f"{BASE}/object/public/pdf/u1/my%20notes.pdf")
        assert loc.path == "u1/my notes.pdf"

    def test_fallback_bucket_two_segments_after_object(self):
        loc = parse_storage_url(f"{BASE}/object/authenticated/pdf/u1/doc.pdf")
        assert loc == StorageLocation(bucket="pdf", path="u1/doc.pdf")

    @pytest.mark.parametrize(
        "url",
        [
            "not a url",
            "",
            f"{BASE}/bucket/pdf/file.pdf",
            f"{BASE}/object/sign/pdf",
            f"{BASE}/object/authenticated/pdf",
        ],
    )
    def test_unparsable_urls(self, url: str):
        with pytest.raises(ValidationError):
            parse_storage_url(url)

    def test_clean_object_path(self):
        assert clean_object_path("pdf/u1/f.pdf", "pdf") == "u1/f.pdf"
        assert clean_object_path("/pdf-files/u1/f.pdf", "pdf") == "u1/f.pdf"
        assert clean_object_path("u1/f.pdf", "pdf") == "u1/f.pdf"


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def service(client: MagicMock) -> StorageService:
    return StorageService(client, EngineConfig())


class TestSave:
    def test_save_overwrites_object(self, service: StorageService, client: MagicMock):
        out = service.save_pdf(f"{BASE}/object/sign/pdf/u1/f.pdf?token=t", b"%PDF-new")
        client.storage.from_.assert_called_with("pdf")
        kwargs = client.storage.from_.return_value.update.call_args.kwargs
        assert kwargs["path"] == "u1/f.pdf"
        assert kwargs["file"] == b"%PDF-new"
        assert kwargs["file_options"]["content-type"] == "application/pdf"
        assert out == {
            "success": True,
            "message": "PDF updated successfully",
            "filePath": "u1/f.pdf",
            "bucketName": "pdf",
            "fileSize": 8,
        }

    def test_storage_failure(self, service: StorageService, client: MagicMock):
        client.storage.from_.return_value.update.side_effect = Exception("bucket not found")
        with pytest.raises(StorageError) as exc:
            service.save_pdf(f"{BASE}/object/public/pdf/u1/f.pdf", b"%PDF")
        assert "bucket not found" in exc.value.message


class TestUpload:
    def test_upload_inserts_metadata(self, service: StorageService, client: MagicMock):
        client.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[])
        out = service.upload_pdf("u1", "book.pdf", b"%PDF-1.4")

        path = client.storage.from_.return_value.upload.call_args.kwargs["path"]
        assert path.startswith("u1/") and path.endswith(".pdf")
        row = client.table.return_value.insert.call_args.args[0]
        assert row["file_path"] == path
        assert row["file_size"] == 8
        assert row["user_id"] == "u1"
        client.table.assert_called_with("pdf_files")
        assert out["filename"] == "book.pdf"
        assert out["id"] == row["id"]

    def test_metadata_failure_removes_object(self, service: StorageService, client: MagicMock):
        client.table.return_value.insert.return_value.execute.side_effect = Exception("db down")
        with pytest.raises(StorageError) as exc:
            service.upload_pdf("u1", "book.pdf", b"%PDF-1.4")
        assert exc.value.code == "METADATA_FAILED"
        bucket = client.storage.from_.return_value
        uploaded = bucket.upload.call_args.kwargs["path"]
        bucket.remove.assert_called_once_with([uploaded])

    def test_cleanup_failure_still_reports_metadata_error(self, service: StorageService, client: MagicMock):
        client.table.return_value.insert.return_value.execute.side_effect = Exception("db down")
        client.storage.from_.return_value.remove.side_effect = Exception("also down")
        with pytest.raises(StorageError) as exc:
            service.upload_pdf("u1", "book.pdf", b"%PDF-1.4")
        assert exc.value.code == "METADATA_FAILED"

    def test_wrong_type_rejected_before_upload(self, service: StorageService, client: MagicMock):
        with pytest.raises(ValidationError) as exc:
            service.upload_pdf("u1", "notes.txt", b"hello", content_type="text/plain")
        assert exc.value.code == "INVALID_FILE_TYPE"
        client.storage.from_.return_value.upload.assert_not_called()

    def test_extension_is_enough(self, service: StorageService, client: MagicMock):
        client.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[])
        service.upload_pdf("u1", "scan.PDF", b"%PDF", content_type="application/octet-stream")
        client.storage.from_.return_value.upload.assert_called_once()

    def test_oversize_rejected(self, client: MagicMock):
        service = StorageService(client, EngineConfig(storage={"max_upload_bytes": 4}))
        with pytest.raises(ValidationError) as exc:
            service.upload_pdf("u1", "big.pdf", b"%PDF-1.4")
        assert exc.value.code == "FILE_TOO_LARGE"
        client.storage.from_.return_value.upload.assert_not_called()


class TestFiles:
    def test_signed_url(self, service: StorageService, client: MagicMock):
        client.storage.from_.return_value.create_signed_url.return_value = {"signedURL": "https://signed"}
        assert service.create_signed_url("pdf/u1/f.pdf") == "https://signed"
        kwargs = client.storage.from_.return_value.create_signed_url.call_args.kwargs
        assert kwargs == {"path": "u1/f.pdf", "expires_in": 3600}

    def test_signed_url_missing(self, service: StorageService, client: MagicMock):
        client.storage.from_.return_value.create_signed_url.return_value = {}
        with pytest.raises(StorageError):
            service.create_signed_url("u1/f.pdf")

    def test_list_files_newest_first(self, service: StorageService, client: MagicMock):
        query = client.table.return_value.select.return_value.eq.return_value.is_.return_value
        query.order.return_value.execute.return_value = MagicMock(data=[{"id": "a"}, {"id": "b"}])
        assert [f["id"] for f in service.list_files("u1")] == ["a", "b"]
        query.order.assert_called_once_with("upload_date", desc=True)

    def test_soft_delete_not_found(self, service: StorageService, client: MagicMock):
        update = client.table.return_value.update.return_value
        update.eq.return_value.eq.return_value.execute.return_value = MagicMock(data=[])
        with pytest.raises(StorageError) as exc:
            service.soft_delete("f1", "u1")
        assert exc.value.code == "NOT_FOUND"

    def test_restore_clears_deleted_at(self, service: StorageService, client: MagicMock):
        update = client.table.return_value.update
        update.return_value.eq.return_value.eq.return_value.execute.return_value = MagicMock(data=[{"id": "f1"}])
        assert service.restore("f1", "u1") == {"id": "f1"}
        assert update.call_args.args[0]["deleted_at"] is None

    def test_delete_removes_object_then_row(self, service: StorageService, client: MagicMock):
        select = client.table.return_value.select.return_value
        select.eq.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[{"id": "f1", "file_path": "u1/f1.pdf"}]
        )
        service.delete_with_storage("f1", "u1")
        client.storage.from_.return_value.remove.assert_called_once_with(["u1/f1.pdf"])
        client.table.return_value.delete.assert_called_once()

    def test_save_ocr_results_skips_failed_pages(self, service: StorageService, client: MagicMock):
        results = [
            OCRResult(page_number=1, text="a", confidence=90.0),
            OCRResult(page_number=2, text="", confidence=0.0, error="boom"),
        ]
        assert service.save_ocr_results("f1", "u1", results, "eng") == 1
        rows = client.table.return_value.insert.call_args.args[0]
        assert [r["page_number"] for r in rows] == [1]
        client.table.assert_called_with("ocr_results")
