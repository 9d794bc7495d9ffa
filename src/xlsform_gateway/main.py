from __future__ import annotations

import logging

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .configuration import load_settings
from .errors import StorageError, ValidationError
from .gateway import Gateway, build_gateway
from .models import (
    ConvertRequest,
    ConvertResponse,
    ErrorResponse,
    HealthStatus,
    PresignedDownloadRequest,
    PresignedDownloadResponse,
    PresignedUploadRequest,
    PresignedUploadResponse,
)
from .pipeline import PipelineFailure

settings = load_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="XLSForm Gateway", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600,
)

gateway = build_gateway(settings)


def get_gateway() -> Gateway:
    return gateway


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Method not allowed" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=message).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info(f"Rejected body for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content=ErrorResponse(error="Invalid request body").model_dump())


@app.get("/health", response_model=HealthStatus)
def healthcheck(gateway: Gateway = Depends(get_gateway)) -> HealthStatus:
    return HealthStatus(
        status="healthy",
        bucket=gateway.settings.bucket_name,
        region=gateway.settings.region,
    )


@app.post("/api/presigned-url", response_model=PresignedUploadResponse)
def presigned_upload_url(
    body: PresignedUploadRequest,
    gateway: Gateway = Depends(get_gateway),
) -> PresignedUploadResponse:
    if not body.file_name:
        raise HTTPException(status_code=400, detail="fileName is required")

    try:
        presigned = gateway.storage.presign_upload(body.file_name, body.file_type or "")
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail="Failed to generate presigned URL") from exc

    return PresignedUploadResponse(upload_url=presigned.upload_url, file_url=presigned.public_url)


@app.post("/api/presigned-download-url", response_model=PresignedDownloadResponse)
def presigned_download_url(
    body: PresignedDownloadRequest,
    gateway: Gateway = Depends(get_gateway),
) -> PresignedDownloadResponse:
    if not body.file_name:
        raise HTTPException(status_code=400, detail="fileName is required")

    try:
        url = gateway.storage.presign_download(body.file_name)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StorageError as exc:
        raise HTTPException(status_code=500, detail="Failed to generate presigned download URL") from exc

    return PresignedDownloadResponse(download_url=url)


@app.post("/api/convert", response_model=ConvertResponse)
def convert_form(body: ConvertRequest, gateway: Gateway = Depends(get_gateway)) -> ConvertResponse:
    if not body.form_url:
        raise HTTPException(status_code=400, detail="formUrl is required")

    try:
        result = gateway.pipeline.run(body.form_url)
    except PipelineFailure as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc

    return ConvertResponse(xform_url=result.xform_url)


def run() -> None:
    """Serve the API with uvicorn on HOST:PORT."""
    logger.info(f"Starting server on port {settings.port}")
    logger.info(f"S3 Bucket: {settings.bucket_name}")
    logger.info(f"S3 Region: {settings.region}")
    if settings.s3_endpoint:
        logger.info(f"Local uploads: S3-compatible storage at {settings.s3_endpoint}")
        if settings.public_endpoint != settings.s3_endpoint:
            logger.info(f"S3 external endpoint: {settings.public_endpoint}")
    logger.info("Converted XML files: production AWS S3")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
