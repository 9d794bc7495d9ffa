"""
Client for the pyxform conversion service.

The engine accepts the raw spreadsheet as the POST body and answers with a
JSON object ``{"result": <xml>, "error": <any>, "itemsets": <any>}``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from time import monotonic
from typing import Any, Mapping, Optional, Union

import requests
import urllib3

from .errors import ConversionTransportError
from .fetcher import FetchedDocument, new_session
from .utils import split_extension

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_CONTENT_TYPE = "application/vnd.ms-excel"
FORM_ID_FALLBACK_HEADER = "X-XlsForm-FormId-Fallback"
MIN_DOCUMENT_SIZE = 4
BODY_EXCERPT_LENGTH = 500
READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ConversionSuccess:
    xform: str


@dataclass(frozen=True)
class ConversionFailure:
    detail: str


ConversionOutcome = Union[ConversionSuccess, ConversionFailure]


def content_type_for(filename: str) -> str:
    extension = split_extension(filename)[1].lower()
    if extension == ".xls":
        return XLS_CONTENT_TYPE
    return XLSX_CONTENT_TYPE


def classify_response(payload: Mapping[str, Any]) -> ConversionOutcome:
    """
    Turn a decoded engine response into an outcome.

    A non-null ``error`` always wins, even next to a result. A missing or
    empty ``result`` without an error is still a failure.
    """
    error = payload.get("error")
    if error is not None:
        return ConversionFailure(str(error))
    result = payload.get("result")
    if not result:
        return ConversionFailure("empty result")
    return ConversionSuccess(str(result))


class ConversionClient:
    """
    POSTs documents to the engine.

    ``timeout`` bounds the whole call: connecting, waiting for headers and
    reading the body all count against one deadline.
    """

    def __init__(self, endpoint: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or new_session()

    def _timed_out(self) -> ConversionTransportError:
        logger.error(f"Converter at {self.endpoint} timed out after {self.timeout}s")
        return ConversionTransportError(f"timed out after {self.timeout:g}s", reason="timeout")

    def _read_body(self, response: requests.Response, deadline: float) -> bytes:
        chunks = []
        while True:
            if monotonic() > deadline:
                raise self._timed_out()
            try:
                chunk = response.raw.read1(READ_CHUNK_SIZE, decode_content=True)
            except urllib3.exceptions.TimeoutError as e:
                raise self._timed_out() from e
            except urllib3.exceptions.HTTPError as e:
                logger.error(f"Error reading converter response: {e}")
                raise ConversionTransportError(f"converter unreachable: {e}", reason="connection") from e
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)

    def convert(self, document: FetchedDocument) -> ConversionOutcome:
        """
        Submit ``document`` to the engine.

        Returns:
            ConversionSuccess with the XForm XML, or ConversionFailure when
            the engine (or the size check) rejects the document

        Raises:
            ConversionTransportError: On timeout, connection failure, a
                non-2xx status or a body that is not a JSON object
        """
        logger.info(f"Converting XLSForm: {document.filename} ({document.size} bytes)")

        if document.size < MIN_DOCUMENT_SIZE:
            return ConversionFailure(f"file too small: {document.size} bytes")

        headers = {
            "Content-Type": content_type_for(document.filename),
            FORM_ID_FALLBACK_HEADER: document.stem,
        }
        logger.info(f"Calling converter at {self.endpoint} with Content-Type {headers['Content-Type']}")

        deadline = monotonic() + self.timeout
        try:
            response = self.session.post(
                self.endpoint,
                data=document.content,
                headers=headers,
                timeout=self.timeout,
                stream=True,
            )
        except requests.exceptions.Timeout as e:
            raise self._timed_out() from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Converter at {self.endpoint} unreachable: {e}")
            raise ConversionTransportError(f"converter unreachable: {e}", reason="connection") from e

        with response:
            body = self._read_body(response, deadline)

        if not 200 <= response.status_code < 300:
            excerpt = body.decode("utf-8", "replace")[:BODY_EXCERPT_LENGTH]
            logger.error(f"Converter returned status {response.status_code}: {excerpt}")
            raise ConversionTransportError(
                f"conversion failed (status {response.status_code}): {excerpt}",
                reason="status",
                status=response.status_code,
                body_excerpt=excerpt,
            )

        try:
            payload = json.loads(body)
        except ValueError as e:
            logger.error(f"Converter response for {document.filename} is not JSON: {e}")
            raise ConversionTransportError(f"failed to parse converter response: {e}", reason="parse") from e
        if not isinstance(payload, dict):
            raise ConversionTransportError("failed to parse converter response: not a JSON object", reason="parse")

        outcome = classify_response(payload)
        if isinstance(outcome, ConversionFailure):
            logger.warning(f"Converter rejected {document.filename}: {outcome.detail}")
        else:
            logger.info(f"Converted {document.filename} ({len(outcome.xform)} characters of XML)")
        return outcome
