"""
XLSForm Gateway - storage broker and conversion front end for XLSForms

This package provides a FastAPI-based web service that sits between the
XLSForm editor, object storage and the pyxform conversion service. It enables:

- Presigned upload URLs so browsers PUT spreadsheets straight to S3
- Presigned download URLs for time-limited reads
- Conversion of a hosted XLSForm into an XForm stored in production S3

The gateway keeps no state between requests; payloads are buffered in
memory for the duration of a single conversion.

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - pipeline: fetch -> convert -> persist orchestration
    - fetcher: download and filename normalization of source forms
    - converter: pyxform HTTP client and response classification
    - storage: boto3-backed presigning and object writes
    - gateway: process-wide wiring of the collaborators
    - configuration: settings from the environment and .env
    - models: Pydantic models for request/response validation

Usage:
    Run the API server with:
        uvicorn xlsform_gateway.main:app --host 0.0.0.0 --port 3001

    Or use the console script:
        xlsform-gateway
"""

__version__ = "0.1.0"
