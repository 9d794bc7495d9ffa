"""
Conversion pipeline: fetch an XLSForm, convert it to an XForm, persist the XML.

Each request walks ``idle -> fetching -> converting -> persisting -> done``.
The first failing stage ends the run with a ``PipelineFailure`` naming that
stage; nothing is retried and a converted document whose upload fails is
discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .configuration import DEVELOPMENT
from .converter import ConversionClient, ConversionFailure
from .errors import ConversionRejected, GatewayError
from .fetcher import RemoteFetcher
from .storage import StorageClient
from .utils import basename, split_extension

logger = logging.getLogger(__name__)

XFORM_PREFIX = "xforms"
STAGING_PREFIX = "xforms/staging"
XML_CONTENT_TYPE = "application/xml"


class PipelineStage(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    CONVERTING = "converting"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


STAGE_MESSAGES = {
    PipelineStage.FETCHING: "Failed to download form",
    PipelineStage.CONVERTING: "Conversion failed",
    PipelineStage.PERSISTING: "Failed to upload converted form",
}


class PipelineFailure(GatewayError):
    """A pipeline run that stopped at ``stage`` because of ``cause``."""

    def __init__(self, stage: PipelineStage, cause: GatewayError):
        super().__init__(f"{STAGE_MESSAGES[stage]}: {cause}")
        self.stage = stage
        self.cause = cause


@dataclass(frozen=True)
class ConversionResult:
    xform_url: str
    key: str
    filename: str


def output_filename(filename: str) -> str:
    """``survey.xlsx`` -> ``survey.xml``."""
    return split_extension(basename(filename))[0] + ".xml"


def output_key(environment: str, name: str) -> str:
    """
    Storage key for a converted form.

    Development runs write under ``xforms/staging/``; every other
    environment writes under ``xforms/``. ``name`` may be a bare basename
    (``survey``) or a spreadsheet filename (``survey.xlsx``).
    """
    filename = output_filename(name)
    prefix = STAGING_PREFIX if environment == DEVELOPMENT else XFORM_PREFIX
    return f"{prefix}/{filename}"


class ConversionPipeline:
    """
    Sequences fetcher, converter and the production storage client.

    The collaborators are shared across requests and never mutated, so one
    pipeline instance serves every worker thread.
    """

    def __init__(
        self,
        fetcher: RemoteFetcher,
        converter: ConversionClient,
        storage: StorageClient,
        environment: str,
    ):
        self.fetcher = fetcher
        self.converter = converter
        self.storage = storage
        self.environment = environment

    def run(self, source_url: str) -> ConversionResult:
        """
        Convert the form at ``source_url`` and return where the XForm landed.

        Raises:
            PipelineFailure: Tagged with the stage that failed
        """
        stage = PipelineStage.IDLE
        try:
            stage = PipelineStage.FETCHING
            logger.info(f"[{stage.value}] {source_url}")
            document = self.fetcher.fetch(source_url)

            stage = PipelineStage.CONVERTING
            logger.info(f"[{stage.value}] {document.filename} ({document.size} bytes)")
            outcome = self.converter.convert(document)
            if isinstance(outcome, ConversionFailure):
                raise ConversionRejected(outcome.detail)

            stage = PipelineStage.PERSISTING
            key = output_key(self.environment, document.filename)
            xml = outcome.xform.encode("utf-8")
            logger.info(f"[{stage.value}] {key} ({len(xml)} bytes, {self.environment})")
            url = self.storage.put_object(key, xml, XML_CONTENT_TYPE)
        except GatewayError as e:
            failure = PipelineFailure(stage, e)
            logger.error(f"[{PipelineStage.FAILED.value}] {source_url} at {stage.value}: {e}")
            raise failure from e

        logger.info(f"[{PipelineStage.DONE.value}] {source_url} -> {url}")
        return ConversionResult(xform_url=url, key=key, filename=document.filename)
