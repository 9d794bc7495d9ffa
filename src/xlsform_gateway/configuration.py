from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv
from omegaconf import OmegaConf

DEFAULT_PYXFORM_URL = "http://pyxform:80/api/v1/convert"
DEVELOPMENT = "development"
PRODUCTION = "production"


@dataclass
class GatewaySettings:
    """
    Process-wide settings, read once at startup and never mutated.

    Field names map one-to-one onto upper-cased environment variables
    (``bucket_name`` is read from ``S3_BUCKET_NAME`` etc., see ``ENV_KEYS``).
    """

    bucket_name: str = "xlsforms"
    region: str = "us-east-1"
    s3_endpoint: str = ""
    s3_external_endpoint: str = ""
    use_path_style: bool = False
    access_key_id: str = ""
    secret_access_key: str = ""
    prod_access_key_id: str = ""
    prod_secret_access_key: str = ""
    pyxform_url: str = DEFAULT_PYXFORM_URL
    environment: str = PRODUCTION
    allowed_origins: str = "*"
    allowed_source_hosts: str = ""
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    fetch_timeout_seconds: float = 60.0
    conversion_timeout_seconds: float = 30.0
    storage_timeout_seconds: float = 30.0

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @property
    def public_endpoint(self) -> str:
        """Endpoint browsers use to reach the general bucket; falls back to the internal one."""
        return self.s3_external_endpoint or self.s3_endpoint

    @property
    def origins(self) -> List[str]:
        return _split_csv(self.allowed_origins)

    @property
    def source_hosts(self) -> List[str]:
        return [host.lower() for host in _split_csv(self.allowed_source_hosts)]


ENV_KEYS: Dict[str, str] = {
    "bucket_name": "S3_BUCKET_NAME",
    "region": "AWS_REGION",
    "s3_endpoint": "S3_ENDPOINT",
    "s3_external_endpoint": "S3_EXTERNAL_ENDPOINT",
    "use_path_style": "USE_PATH_STYLE",
    "access_key_id": "AWS_ACCESS_KEY_ID",
    "secret_access_key": "AWS_SECRET_ACCESS_KEY",
    "prod_access_key_id": "PROD_AWS_ACCESS_KEY_ID",
    "prod_secret_access_key": "PROD_AWS_SECRET_ACCESS_KEY",
    "pyxform_url": "PYXFORM_URL",
    "environment": "ENVIRONMENT",
    "allowed_origins": "ALLOWED_ORIGINS",
    "allowed_source_hosts": "ALLOWED_SOURCE_HOSTS",
    "host": "HOST",
    "port": "PORT",
    "log_level": "LOG_LEVEL",
    "fetch_timeout_seconds": "FETCH_TIMEOUT_SECONDS",
    "conversion_timeout_seconds": "CONVERSION_TIMEOUT_SECONDS",
    "storage_timeout_seconds": "STORAGE_TIMEOUT_SECONDS",
}


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def environment_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect the non-empty environment values that correspond to settings fields."""
    overrides: Dict[str, Any] = {}
    for field in fields(GatewaySettings):
        value = environ.get(ENV_KEYS[field.name], "")
        if value == "":
            continue
        if field.type in ("bool", bool):
            # only the exact string "true" enables a flag
            overrides[field.name] = value == "true"
        else:
            overrides[field.name] = value
    return overrides


def load_settings(environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> GatewaySettings:
    """
    Build settings from defaults merged with environment values.

    ``load_dotenv`` runs first so a local ``.env`` file can supply values;
    variables already present in the process environment win over it.
    OmegaConf validates the merged values against the dataclass types, so a
    non-numeric ``PORT`` fails here rather than at bind time.
    """
    if dotenv:
        load_dotenv()
    if environ is None:
        environ = os.environ

    base = OmegaConf.structured(GatewaySettings)
    merged = OmegaConf.merge(base, OmegaConf.create(environment_overrides(environ)))
    return OmegaConf.to_object(merged)  # type: ignore[return-value]
