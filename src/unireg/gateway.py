from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import Request

from unireg.config import UpstreamConfig
from unireg.errors import ErrorKind, PortalError

logger = logging.getLogger(__name__)

# Distinguishes "send no body" from a JSON null body.
NO_BODY: Any = object()


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    json: Any | None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def upstream_message(body: Any) -> str | None:
    """Pull the human-readable text out of whatever error shape the upstream used."""

    if not isinstance(body, dict):
        return None
    for key in ("message", "error", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


class UpstreamGateway:
    """Forwards requests to the upstream REST API.

    No retries and no caching. A non-2xx answer is returned to the caller; only
    transport problems (and unreadable 2xx bodies) raise.
    """

    def __init__(self, client: httpx.AsyncClient, *, base_url: str) -> None:
        self._client = client
        self._base_url = base_url

    @classmethod
    def from_config(
        cls, config: UpstreamConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> UpstreamGateway:
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=transport,
        )
        return cls(client, base_url=config.base_url)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def forward(
        self,
        method: str,
        path: str,
        *,
        query: dict[str, Any] | None = None,
        body: Any = NO_BODY,
        token: str | None = None,
        expect_body: bool = True,
        failure_message: str = "Upstream request failed",
    ) -> UpstreamResponse:
        url = build_url(self._base_url, path)

        headers: dict[str, str] = {}
        content: bytes | None = None
        if body is not NO_BODY:
            headers["Content-Type"] = "application/json"
            content = json.dumps(body).encode("utf-8")
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(
                method, url, params=query, headers=headers, content=content
            )
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, url, exc)
            raise PortalError(ErrorKind.TRANSPORT_FAILURE, failure_message) from exc

        logger.info("%s %s -> %s", method, url, response.status_code)

        if 200 <= response.status_code < 300:
            if not expect_body:
                return UpstreamResponse(status_code=response.status_code, json=None)
            try:
                payload = response.json()
            except ValueError as exc:
                logger.error("%s %s returned malformed JSON", method, url)
                raise PortalError(ErrorKind.TRANSPORT_FAILURE, failure_message) from exc
            return UpstreamResponse(status_code=response.status_code, json=payload)

        try:
            error_body = response.json()
        except ValueError:
            error_body = None
        return UpstreamResponse(status_code=response.status_code, json=error_body)


def get_gateway(request: Request) -> UpstreamGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("Upstream gateway not initialized")
    return gateway
