from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from unireg.home import PortalPaths

API_URL_ENV = "UNIREG_API_URL"


class NetworkConfig(BaseModel):
    bind_host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000, ge=1, le=65535)


class UpstreamConfig(BaseModel):
    """Where the student/account REST API lives."""

    base_url: str = Field(default="http://127.0.0.1:8081")
    timeout_seconds: float | None = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout for upstream calls; null waits indefinitely.",
    )


class SessionConfig(BaseModel):
    max_age_seconds: int = Field(
        default=60 * 60 * 24, ge=60, description="Absolute lifetime of a signed-in session."
    )
    cookie_secure: bool = Field(default=False)


class LoggingConfig(BaseModel):
    max_size_mb: int = Field(
        default=10, ge=1, description="Max size of a log file in MB before rolling."
    )
    backup_count: int = Field(default=5, ge=1, description="Number of log archives to keep.")


class UiConfig(BaseModel):
    list_cache_ttl_seconds: float = Field(
        default=30.0,
        ge=0,
        description="How long a fetched list page is reused before it is fetched again.",
    )


class PortalConfig(BaseModel):
    version: str = Field(default="1")
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    ui: UiConfig = Field(default_factory=UiConfig)


def _read_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def load_portal_config(paths: PortalPaths) -> PortalConfig:
    """Load config from ${UNIREG_HOME}/config/portal.json.

    - If missing: returns defaults.
    - Validation is performed by Pydantic.
    """

    config_path = paths.portal_config_path
    if not config_path.exists():
        return PortalConfig()

    raw = _read_json(config_path)
    return PortalConfig.model_validate(raw)


def apply_env_overrides(
    config: PortalConfig, environ: dict[str, str] | None = None
) -> PortalConfig:
    """Let the deployment environment pick the upstream API without editing portal.json."""

    env = os.environ if environ is None else environ

    base_url = (env.get(API_URL_ENV) or "").strip()
    if not base_url:
        return config

    updated_upstream = config.upstream.model_copy(update={"base_url": base_url})
    return config.model_copy(update={"upstream": updated_upstream})
