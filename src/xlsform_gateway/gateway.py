"""
Process-wide service container.

``build_gateway`` wires every long-lived collaborator from settings once at
startup. The resulting ``Gateway`` is read-only and shared by all request
threads; the HTTP layer receives it through a FastAPI dependency so tests can
swap in fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .configuration import GatewaySettings
from .converter import ConversionClient
from .fetcher import RemoteFetcher, new_session
from .pipeline import ConversionPipeline
from .storage import StorageClient, build_general_client, build_production_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Gateway:
    settings: GatewaySettings
    storage: StorageClient
    production_storage: StorageClient
    pipeline: ConversionPipeline


def build_gateway(settings: GatewaySettings) -> Gateway:
    """
    Create both storage clients and the conversion pipeline.

    Raises:
        ConfigurationError: If the production credentials are missing
    """
    storage = build_general_client(settings)
    production_storage = build_production_client(settings)

    session = new_session()
    fetcher = RemoteFetcher(
        session=session,
        timeout=settings.fetch_timeout_seconds,
        allowed_hosts=settings.source_hosts,
    )
    converter = ConversionClient(
        settings.pyxform_url,
        timeout=settings.conversion_timeout_seconds,
        session=session,
    )
    pipeline = ConversionPipeline(fetcher, converter, production_storage, settings.environment)

    logger.info(storage.describe())
    logger.info(production_storage.describe())
    logger.info(f"Converter: {settings.pyxform_url} (environment={settings.environment})")
    if settings.source_hosts:
        logger.info(f"Form downloads restricted to: {', '.join(settings.source_hosts)}")
    else:
        logger.warning("ALLOWED_SOURCE_HOSTS is empty; formUrl may point at any host")

    return Gateway(
        settings=settings,
        storage=storage,
        production_storage=production_storage,
        pipeline=pipeline,
    )
