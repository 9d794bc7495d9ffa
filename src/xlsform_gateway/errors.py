"""
Exception hierarchy for the XLSForm gateway.

Each pipeline stage raises its own error type so the HTTP layer can map
failures to a status code and the orchestrator can tag them with the stage
that produced them.
"""

from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(GatewayError):
    """Raised when a request field is missing or malformed."""


class ConfigurationError(GatewayError):
    """Raised at startup when required settings are absent."""


class FetchError(GatewayError):
    """Raised when the source document cannot be downloaded."""

    def __init__(self, message: str, status: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.status = status
        self.cause = cause


class ConversionTransportError(GatewayError):
    """
    Raised when the conversion engine is unreachable, times out, answers with
    a non-2xx status, or returns a body that is not a JSON object.

    ``reason`` is one of ``timeout``, ``connection``, ``status`` or ``parse``.
    """

    def __init__(
        self,
        message: str,
        reason: str,
        status: Optional[int] = None,
        body_excerpt: Optional[str] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.status = status
        self.body_excerpt = body_excerpt


class ConversionRejected(GatewayError):
    """Raised when the engine understood the request but rejected the document."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class StorageError(GatewayError):
    """Raised when signing or writing against the object store fails."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
