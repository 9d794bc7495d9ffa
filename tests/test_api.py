"""
Tests for XLSForm Gateway API endpoints.

Tests cover:
- Health check
- Presigned upload and download URLs
- Form conversion, end to end with mocked collaborators
- Error body shape, validation and method handling
- CORS
"""

from unittest.mock import MagicMock
from urllib.parse import urlsplit

import pytest
import requests
from botocore.exceptions import ClientError

from xlsform_gateway.converter import FORM_ID_FALLBACK_HEADER
from xlsform_gateway.storage import StorageClient

FORM_URL = "https://example.com/forms/survey.xlsx"


class TestHealthCheck:
    """Tests for the /health endpoint."""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"status": "healthy", "bucket": "test-bucket", "region": "us-east-1"}


class TestPresignedUploadURL:
    """Tests for the /api/presigned-url endpoint."""

    def test_returns_upload_and_file_url(self, client):
        response = client.post("/api/presigned-url", json={"fileName": "survey.xlsx", "fileType": "text/plain"})
        assert response.status_code == 200

        data = response.json()
        assert set(data) == {"uploadUrl", "fileUrl"}
        assert urlsplit(data["uploadUrl"]).path.endswith("/survey.xlsx")
        assert data["fileUrl"] == "https://test-bucket.s3.amazonaws.com/survey.xlsx"

    def test_strips_directories(self, client):
        response = client.post("/api/presigned-url", json={"fileName": "../../survey.xlsx", "fileType": ""})
        assert response.status_code == 200
        assert response.json()["fileUrl"] == "https://test-bucket.s3.amazonaws.com/survey.xlsx"

    def test_missing_file_name(self, client):
        response = client.post("/api/presigned-url", json={"fileType": "text/plain"})
        assert response.status_code == 400
        assert response.json() == {"error": "fileName is required"}

    def test_null_file_name(self, client):
        response = client.post("/api/presigned-url", json={"fileName": None, "fileType": "text/plain"})
        assert response.status_code == 400
        assert response.json() == {"error": "fileName is required"}

    def test_null_file_type_is_allowed(self, client):
        response = client.post("/api/presigned-url", json={"fileName": "survey.xlsx", "fileType": None})
        assert response.status_code == 200
        assert response.json()["fileUrl"] == "https://test-bucket.s3.amazonaws.com/survey.xlsx"

    def test_unusable_file_name(self, client):
        response = client.post("/api/presigned-url", json={"fileName": "../", "fileType": ""})
        assert response.status_code == 400
        assert "error" in response.json()

    def test_invalid_body(self, client):
        response = client.post(
            "/api/presigned-url",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}

    def test_signing_failure(self, client, fake_gateway, monkeypatch):
        backend = MagicMock()
        backend.generate_presigned_url.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )
        monkeypatch.setattr(fake_gateway.storage, "_signing_client", backend)

        response = client.post("/api/presigned-url", json={"fileName": "survey.xlsx", "fileType": ""})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate presigned URL"}

    def test_get_not_allowed(self, client):
        response = client.get("/api/presigned-url")
        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}


class TestPresignedDownloadURL:
    """Tests for the /api/presigned-download-url endpoint."""

    def test_returns_download_url(self, client):
        response = client.post("/api/presigned-download-url", json={"fileName": "survey.xlsx"})
        assert response.status_code == 200

        data = response.json()
        assert set(data) == {"downloadUrl"}
        assert "X-Amz-Expires=3600" in data["downloadUrl"]

    @pytest.mark.parametrize("body", [{}, {"fileName": ""}, {"fileName": None}])
    def test_missing_file_name(self, client, body):
        response = client.post("/api/presigned-download-url", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "fileName is required"}

    def test_signing_failure(self, client, fake_gateway, monkeypatch):
        backend = MagicMock()
        backend.generate_presigned_url.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "GetObject"
        )
        monkeypatch.setattr(fake_gateway.storage, "_signing_client", backend)

        response = client.post("/api/presigned-download-url", json={"fileName": "survey.xlsx"})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate presigned download URL"}

    def test_put_not_allowed(self, client):
        response = client.put("/api/presigned-download-url", json={"fileName": "survey.xlsx"})
        assert response.status_code == 405


class TestConvert:
    """Tests for the /api/convert endpoint."""

    def test_end_to_end(self, client, fetch_session, convert_session, prod_backend, make_response, xlsx_bytes):
        fetch_session.get.return_value = make_response(200, content=xlsx_bytes)
        convert_session.post.return_value = make_response(200, payload={"result": "<h:html/>", "error": None})

        response = client.post("/api/convert", json={"formUrl": FORM_URL})

        assert response.status_code == 200
        assert response.json() == {"xformUrl": "https://test-bucket.s3.amazonaws.com/xforms/survey.xml"}

        fetch_session.get.assert_called_once()
        headers = convert_session.post.call_args.kwargs["headers"]
        assert headers[FORM_ID_FALLBACK_HEADER] == "survey"
        assert convert_session.post.call_args.kwargs["data"] == xlsx_bytes
        prod_backend.put_object.assert_called_once_with(
            Bucket="test-bucket",
            Key="xforms/survey.xml",
            Body=b"<h:html/>",
            ContentType="application/xml",
        )

    def test_trailing_slash_url_names_output_after_last_segment(
        self, client, fetch_session, convert_session, prod_backend, make_response, xlsx_bytes
    ):
        fetch_session.get.return_value = make_response(200, content=xlsx_bytes)
        convert_session.post.return_value = make_response(200, payload={"result": "<h:html/>", "error": None})

        response = client.post("/api/convert", json={"formUrl": "https://example.com/forms/"})

        assert response.status_code == 200
        assert response.json() == {"xformUrl": "https://test-bucket.s3.amazonaws.com/xforms/forms.xml"}
        assert convert_session.post.call_args.kwargs["headers"][FORM_ID_FALLBACK_HEADER] == "forms"

    def test_development_environment_uses_staging(
        self, client, fake_gateway, fetch_session, convert_session, make_response, xlsx_bytes, monkeypatch
    ):
        monkeypatch.setattr(fake_gateway.pipeline, "environment", "development")
        fetch_session.get.return_value = make_response(200, content=xlsx_bytes)
        convert_session.post.return_value = make_response(200, payload={"result": "<h:html/>", "error": None})

        response = client.post("/api/convert", json={"formUrl": FORM_URL})

        assert response.status_code == 200
        assert response.json()["xformUrl"].endswith("/xforms/staging/survey.xml")

    def test_conversion_error_propagates(
        self, client, fetch_session, convert_session, prod_backend, make_response, xlsx_bytes
    ):
        fetch_session.get.return_value = make_response(200, content=xlsx_bytes)
        convert_session.post.return_value = make_response(
            200, payload={"result": "", "error": "row 3: missing type"}
        )

        response = client.post("/api/convert", json={"formUrl": FORM_URL})

        assert response.status_code == 500
        assert "row 3: missing type" in response.json()["error"]
        assert prod_backend.put_object.call_count == 0

    def test_download_failure(self, client, fetch_session, convert_session, make_response):
        fetch_session.get.return_value = make_response(403, content=b"forbidden")

        response = client.post("/api/convert", json={"formUrl": FORM_URL})

        assert response.status_code == 500
        assert response.json()["error"].startswith("Failed to download form")
        convert_session.post.assert_not_called()

    def test_redirect_off_the_allow_list_is_refused(
        self, client, fake_gateway, fetch_session, convert_session, make_response, monkeypatch
    ):
        monkeypatch.setattr(fake_gateway.pipeline.fetcher, "allowed_hosts", frozenset({"example.com"}))
        fetch_session.get.return_value = make_response(302, headers={"Location": "http://169.254.169.254/latest"})

        response = client.post("/api/convert", json={"formUrl": FORM_URL})

        assert response.status_code == 500
        assert response.json()["error"].startswith("Failed to download form")
        fetch_session.get.assert_called_once()
        convert_session.post.assert_not_called()

    def test_converter_unreachable(self, client, fetch_session, convert_session, make_response, xlsx_bytes):
        fetch_session.get.return_value = make_response(200, content=xlsx_bytes)
        convert_session.post.side_effect = requests.exceptions.ConnectTimeout("timed out")

        response = client.post("/api/convert", json={"formUrl": FORM_URL})

        assert response.status_code == 500
        assert response.json()["error"].startswith("Conversion failed")

    def test_converter_server_error(self, client, fetch_session, convert_session, make_response, xlsx_bytes):
        fetch_session.get.return_value = make_response(200, content=xlsx_bytes)
        convert_session.post.return_value = make_response(500, text="Internal Server Error")

        response = client.post("/api/convert", json={"formUrl": FORM_URL})

        assert response.status_code == 500
        assert "status 500" in response.json()["error"]

    def test_storage_failure(
        self, client, fetch_session, convert_session, prod_backend, make_response, xlsx_bytes
    ):
        fetch_session.get.return_value = make_response(200, content=xlsx_bytes)
        convert_session.post.return_value = make_response(200, payload={"result": "<h:html/>", "error": None})
        prod_backend.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )

        response = client.post("/api/convert", json={"formUrl": FORM_URL})

        assert response.status_code == 500
        assert response.json()["error"].startswith("Failed to upload converted form")

    @pytest.mark.parametrize("body", [{}, {"formUrl": ""}, {"formUrl": None}])
    def test_missing_form_url(self, client, body, fetch_session):
        response = client.post("/api/convert", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": "formUrl is required"}
        fetch_session.get.assert_not_called()

    def test_get_not_allowed(self, client):
        response = client.get("/api/convert")
        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}


class TestGatewayWiring:
    def test_default_gateway_uses_separate_clients(self):
        from xlsform_gateway.main import gateway

        assert isinstance(gateway.storage, StorageClient)
        assert gateway.storage is not gateway.production_storage
        assert gateway.pipeline.storage is gateway.production_storage
        assert gateway.production_storage.label == "production"


class TestCORS:
    """Tests for CORS configuration."""

    def test_preflight(self, client):
        response = client.options(
            "/api/convert",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unknown_path(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert "error" in response.json()
