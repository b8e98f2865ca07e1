from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from fastapi import Request
from fastapi.responses import JSONResponse

EnvelopeKey = Literal["error", "message"]


class ErrorKind(StrEnum):
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    UPSTREAM_REJECTED = "upstream_rejected"
    TRANSPORT_FAILURE = "transport_failure"
    VALIDATION_FAILURE = "validation_failure"


_DEFAULT_STATUS: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UPSTREAM_REJECTED: 502,
    ErrorKind.TRANSPORT_FAILURE: 500,
    ErrorKind.VALIDATION_FAILURE: 400,
}


class PortalError(Exception):
    """The one failure type raised by guards, the gateway and resource operations.

    ``message`` is the canonical human-readable text. ``upstream_body`` holds an
    upstream JSON error body that must be relayed verbatim instead of the message.
    ``envelope_key`` names the single field the message is rendered under.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        upstream_body: Any | None = None,
        envelope_key: EnvelopeKey = "error",
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code if status_code is not None else _DEFAULT_STATUS[kind]
        self.upstream_body = upstream_body
        self.envelope_key = envelope_key

    def to_content(self) -> Any:
        if self.upstream_body is not None:
            return self.upstream_body
        return {self.envelope_key: self.message}

    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.to_content())


def unauthorized() -> PortalError:
    return PortalError(ErrorKind.UNAUTHORIZED, "Unauthorized")


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    return exc.to_response()
