"""HTTP API tests with the storage layer mocked at the client level."""
from __future__ import annotations

import base64
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from pdfreader_engine.config import EngineConfig
from pdfreader_engine.errors import OCRError
from pdfreader_engine.pipeline import OCRPipeline
from pdfreader_engine.server import create_app, get_ocr_pipeline, get_storage_service
from pdfreader_engine.storage import StorageService
from pdfreader_engine.types import OCRResult

SIGNED_URL = "https://abc.supabase.co/storage/v1/object/sign/pdf/u1/doc.pdf?token=t"


@pytest.fixture
def storage_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def app(storage_client: MagicMock):
    app = create_app()
    app.dependency_overrides[get_storage_service] = lambda: StorageService(storage_client, EngineConfig())
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def _save_body(**overrides):
    body = {
        "fileId": "f1",
        "pdfBytes": base64.b64encode(b"%PDF-1.4 annotated").decode("ascii"),
        "filename": "doc.pdf",
        "originalUrl": SIGNED_URL,
    }
    body.update(overrides)
    return body


class TestHealth:
    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSavePdf:
    def test_success(self, client: TestClient, storage_client: MagicMock):
        response = client.post("/api/pdf/save", json=_save_body())
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "PDF updated successfully",
            "filePath": "u1/doc.pdf",
            "bucketName": "pdf",
            "fileSize": len(b"%PDF-1.4 annotated"),
        }
        update = storage_client.storage.from_.return_value.update
        assert update.call_args.kwargs["file"] == b"%PDF-1.4 annotated"

    @pytest.mark.parametrize("missing", ["fileId", "pdfBytes", "filename"])
    def test_missing_fields(self, client: TestClient, missing: str):
        body = _save_body()
        del body[missing]
        response = client.post("/api/pdf/save", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}

    def test_missing_original_url(self, client: TestClient):
        response = client.post("/api/pdf/save", json=_save_body(originalUrl=""))
        assert response.status_code == 400
        assert response.json() == {"error": "Original URL is required"}

    def test_bad_base64(self, client: TestClient, storage_client: MagicMock):
        response = client.post("/api/pdf/save", json=_save_body(pdfBytes="***not base64***"))
        assert response.status_code == 400
        storage_client.storage.from_.return_value.update.assert_not_called()

    def test_unparsable_url(self, client: TestClient, storage_client: MagicMock):
        response = client.post(
            "/api/pdf/save", json=_save_body(originalUrl="https://abc.supabase.co/files/doc.pdf")
        )
        assert response.status_code == 400
        assert "Could not extract bucket and path" in response.json()["error"]
        storage_client.storage.from_.return_value.update.assert_not_called()

    def test_storage_failure(self, client: TestClient, storage_client: MagicMock):
        storage_client.storage.from_.return_value.update.side_effect = Exception("permission denied")
        response = client.post("/api/pdf/save", json=_save_body())
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to update PDF: permission denied"}


class TestUpload:
    def test_upload(self, client: TestClient, storage_client: MagicMock):
        storage_client.table.return_value.insert.return_value.execute.return_value = MagicMock(data=[])
        response = client.post(
            "/api/upload",
            files={"file": ("doc.pdf", b"%PDF-1.4", "application/pdf")},
            data={"user_id": "u1", "filename": "doc.pdf"},
        )
        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert payload["data"]["filename"] == "doc.pdf"
        assert payload["data"]["file_path"].startswith("u1/")

    def test_wrong_type(self, client: TestClient):
        response = client.post(
            "/api/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            data={"user_id": "u1", "filename": "notes.txt"},
        )
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid file type")


class TestOcr:
    def test_info(self, client: TestClient):
        response = client.get("/api/ocr")
        assert response.status_code == 200
        assert "English (eng)" in response.json()["supportedLanguages"]

    def test_requires_url(self, app, client: TestClient):
        app.dependency_overrides[get_ocr_pipeline] = lambda: MagicMock()
        response = client.post("/api/ocr", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "PDF URL is required"}

    def test_runs_pipeline(self, app, client: TestClient):
        pipeline = MagicMock()
        pipeline.run.return_value = [OCRResult(page_number=1, text="Hello", confidence=96.0, words=[])]
        app.dependency_overrides[get_ocr_pipeline] = lambda: pipeline

        response = client.post("/api/ocr", json={"pdfUrl": "https://example.com/a.pdf", "language": "vie"})
        assert response.status_code == 200
        payload = response.json()
        assert payload["results"][0]["pageNumber"] == 1
        assert payload["stats"]["confidenceDistribution"]["excellent"] == 1
        pipeline.run.assert_called_once_with("https://example.com/a.pdf", "vie")

    def test_page_failure_returns_partial_results(self, app, client: TestClient):
        pipeline = MagicMock()
        pipeline.run.side_effect = OCRError(
            "OCR failed on page 2: boom",
            page_number=2,
            partial_results=[OCRResult(page_number=1, text="ok", confidence=80.0)],
        )
        app.dependency_overrides[get_ocr_pipeline] = lambda: pipeline

        response = client.post("/api/ocr", json={"pdfUrl": "https://example.com/a.pdf"})
        assert response.status_code == 500
        payload = response.json()
        assert payload["pageNumber"] == 2
        assert [r["pageNumber"] for r in payload["partialResults"]] == [1]


class TestErrorResponses:
    @pytest.fixture
    def lenient_client(self, app) -> TestClient:
        return TestClient(app, raise_server_exceptions=False)

    def test_unexpected_exception_is_json(self, app, lenient_client: TestClient):
        pipeline = MagicMock()
        pipeline.run.side_effect = httpx.ConnectError("connection refused")
        app.dependency_overrides[get_ocr_pipeline] = lambda: pipeline

        response = lenient_client.post("/api/ocr", json={"pdfUrl": "https://example.com/a.pdf"})
        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"error": "An unexpected error occurred"}

    def test_fetch_failure_is_bad_request(self, app, client: TestClient, monkeypatch):
        def refuse(url, **kwargs):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr("pdfreader_engine.page_provider.httpx.get", refuse)
        app.dependency_overrides[get_ocr_pipeline] = lambda: OCRPipeline(EngineConfig())

        response = client.post("/api/ocr", json={"pdfUrl": "https://example.com/a.pdf"})
        assert response.status_code == 400
        assert "connection refused" in response.json()["error"]

    def test_wrong_field_type_is_bad_request(self, client: TestClient, storage_client: MagicMock):
        response = client.post("/api/pdf/save", json=_save_body(fileId=42))
        assert response.status_code == 400
        assert set(response.json()) == {"error"}
        assert "fileId" in response.json()["error"]
        storage_client.storage.from_.assert_not_called()

    def test_missing_form_field_is_bad_request(self, client: TestClient):
        response = client.post(
            "/api/upload",
            files={"file": ("doc.pdf", b"%PDF-1.4", "application/pdf")},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request: user_id"}
