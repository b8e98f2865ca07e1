from __future__ import annotations

import logging
from typing import Any, Final

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from unireg.errors import ErrorKind, PortalError
from unireg.gateway import UpstreamGateway, get_gateway, upstream_message
from unireg.sessions import SessionUser

logger = logging.getLogger(__name__)

# The upstream seeds role 2 as "student"; self-registered accounts always get it.
DEFAULT_ROLE_ID: Final[int] = 2

REGISTER_PATH: Final[str] = "/auth/register"
LOGIN_PATH: Final[str] = "/auth/login"

MISSING_FIELDS_MESSAGE: Final[str] = "Username, email, and password are required"

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisteredAccount(BaseModel):
    message: str
    user: Any | None = None


def _text(value: Any) -> Any:
    # Empty strings count as "not provided", like missing keys.
    if isinstance(value, str) and not value.strip():
        return None
    return value


async def register_account(gateway: UpstreamGateway, payload: Any) -> RegisteredAccount:
    if not isinstance(payload, dict):
        payload = {}

    username = _text(payload.get("username"))
    email = _text(payload.get("email"))
    password = _text(payload.get("password"))
    if not username or not email or not password:
        raise PortalError(
            ErrorKind.VALIDATION_FAILURE, MISSING_FIELDS_MESSAGE, envelope_key="message"
        )

    body = {
        "username": username,
        "email": email,
        "password": password,
        "first_name": _text(payload.get("first_name")) or None,
        "last_name": _text(payload.get("last_name")) or None,
        "role_id": DEFAULT_ROLE_ID,
    }

    response = await gateway.forward(
        "POST", REGISTER_PATH, body=body, failure_message="Internal server error"
    )
    if not response.ok:
        raise PortalError(
            ErrorKind.UPSTREAM_REJECTED,
            upstream_message(response.json) or "Registration failed",
            status_code=response.status_code,
            envelope_key="message",
        )

    data = response.json if isinstance(response.json, dict) else {}
    logger.info("Registered account %s", username)
    return RegisteredAccount(message="Registration successful", user=data.get("user"))


async def sign_in(gateway: UpstreamGateway, *, email: str, password: str) -> SessionUser:
    """Exchange credentials for the upstream access token and the user it belongs to."""

    response = await gateway.forward(
        "POST",
        LOGIN_PATH,
        body={"email": email, "password": password},
        failure_message="Sign-in is unavailable right now",
    )
    if not response.ok:
        raise PortalError(
            ErrorKind.UNAUTHORIZED if response.status_code == 401 else ErrorKind.UPSTREAM_REJECTED,
            upstream_message(response.json) or "Invalid email or password",
            status_code=response.status_code,
            envelope_key="message",
        )

    data = response.json if isinstance(response.json, dict) else {}
    user = data.get("user") if isinstance(data.get("user"), dict) else {}
    token = data.get("accessToken")
    if user.get("id") is None or not token:
        raise PortalError(
            ErrorKind.TRANSPORT_FAILURE,
            "Sign-in response was incomplete",
            envelope_key="message",
        )

    first_last = " ".join(
        part for part in (user.get("first_name"), user.get("last_name")) if part
    )
    return SessionUser(
        id=str(user["id"]),
        name=first_last or user.get("username"),
        email=user.get("email"),
        role=data.get("role"),
        access_token=token,
    )


@router.post("/register", status_code=201)
async def register_route(request: Request) -> JSONResponse:
    try:
        payload = await request.json()
        account = await register_account(get_gateway(request), payload)
    except PortalError as exc:
        if exc.kind == ErrorKind.TRANSPORT_FAILURE:
            logger.error("Registration error: %s", exc)
            return JSONResponse(status_code=500, content={"message": "Internal server error"})
        return exc.to_response()
    except Exception:
        logger.exception("Registration error")
        return JSONResponse(status_code=500, content={"message": "Internal server error"})

    return JSONResponse(status_code=201, content=account.model_dump(mode="json"))
