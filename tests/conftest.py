"""
Pytest configuration and fixtures for XLSForm Gateway tests.
"""

import json
import os
from unittest.mock import MagicMock

import boto3
from botocore.config import Config
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["S3_BUCKET_NAME"] = "test-bucket"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "test-access-key"
os.environ["AWS_SECRET_ACCESS_KEY"] = "test-secret-key"
os.environ["PROD_AWS_ACCESS_KEY_ID"] = "test-prod-access-key"
os.environ["PROD_AWS_SECRET_ACCESS_KEY"] = "test-prod-secret-key"
os.environ["ENVIRONMENT"] = "production"
os.environ["PYXFORM_URL"] = "http://pyxform.test/api/v1/convert"
for name in ("S3_ENDPOINT", "S3_EXTERNAL_ENDPOINT", "USE_PATH_STYLE", "ALLOWED_SOURCE_HOSTS"):
    os.environ.pop(name, None)

from xlsform_gateway.configuration import load_settings
from xlsform_gateway.converter import ConversionClient
from xlsform_gateway.fetcher import RemoteFetcher
from xlsform_gateway.gateway import Gateway
from xlsform_gateway.main import app, get_gateway
from xlsform_gateway.pipeline import ConversionPipeline
from xlsform_gateway.storage import StorageClient

BUCKET = "test-bucket"
CONVERTER_URL = "http://pyxform.test/api/v1/convert"


@pytest.fixture
def xlsx_bytes():
    """2 KB payload starting with the ZIP local-file-header magic."""
    return b"PK\x03\x04" + b"\x00" * 2044


@pytest.fixture
def settings():
    """Settings built from the test environment, ignoring any local .env file."""
    return load_settings(dotenv=False)


@pytest.fixture
def make_response():
    """
    Build a stand-in for ``requests.Response``.

    The body is exposed both as ``content`` and through ``raw.read1`` (one
    chunk, then EOF) for callers that stream. ``payload`` is JSON-encoded
    when no ``content`` or ``text`` is given.
    """

    def _make(status_code=200, content=b"", payload=None, text=None, headers=None):
        if not content:
            if text is not None:
                content = text.encode("utf-8")
            elif payload is not None:
                content = json.dumps(payload).encode("utf-8")
        response = MagicMock()
        response.status_code = status_code
        response.headers = dict(headers or {})
        response.content = content
        response.text = content.decode("utf-8", "replace")
        response.raw.read1.side_effect = [content, b""] if content else [b""]
        return response

    return _make


@pytest.fixture
def boto_s3():
    """A real boto3 client with dummy credentials; presigning works offline."""
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test-access-key",
        aws_secret_access_key="test-secret-key",
        config=Config(signature_version="s3v4"),
    )


@pytest.fixture
def fetch_session():
    return MagicMock()


@pytest.fixture
def convert_session():
    return MagicMock()


@pytest.fixture
def prod_backend():
    """Mock boto3 client behind the production storage client."""
    return MagicMock()


@pytest.fixture
def fake_gateway(settings, boto_s3, fetch_session, convert_session, prod_backend):
    """Gateway wired to mocked network collaborators."""
    production_storage = StorageClient(prod_backend, BUCKET, label="production")
    pipeline = ConversionPipeline(
        RemoteFetcher(session=fetch_session, timeout=5),
        ConversionClient(CONVERTER_URL, timeout=30, session=convert_session),
        production_storage,
        settings.environment,
    )
    return Gateway(
        settings=settings,
        storage=StorageClient(boto_s3, BUCKET),
        production_storage=production_storage,
        pipeline=pipeline,
    )


@pytest.fixture
def client(fake_gateway):
    """Create a test client for the FastAPI app with the fake gateway injected."""
    app.dependency_overrides[get_gateway] = lambda: fake_gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
