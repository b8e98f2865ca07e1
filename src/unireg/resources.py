from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from unireg.cache import InvalidationBus
from unireg.errors import ErrorKind, PortalError
from unireg.gateway import UpstreamGateway, UpstreamResponse, get_gateway, upstream_message
from unireg.sessions import Session, require_session

logger = logging.getLogger(__name__)

PAGE_SIZE = 10


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    plural: str
    upstream_path: str
    page_size: int = PAGE_SIZE

    @property
    def title(self) -> str:
        return self.name[:1].upper() + self.name[1:]

    @property
    def not_found_message(self) -> str:
        return f"{self.title} not found"

    def failure_message(self, verb: str, *, many: bool = False) -> str:
        return f"Failed to {verb} {self.plural if many else self.name}"

    def item_path(self, resource_id: str) -> str:
        return f"{self.upstream_path.rstrip('/')}/{resource_id}"


STUDENTS = ResourceSpec(name="student", plural="students", upstream_path="/v1/students")


def parse_page(raw: str | None) -> int:
    """Page numbers are 1-based; anything unparseable means the first page."""

    try:
        page = int((raw or "").strip() or "1")
    except ValueError:
        return 1
    return max(page, 1)


def page_window(page: int, page_size: int = PAGE_SIZE) -> dict[str, int]:
    return {"limit": page_size, "offset": (page - 1) * page_size}


@contextmanager
def _degrade_to(message: str) -> Iterator[None]:
    try:
        yield
    except PortalError:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure: %s", message)
        raise PortalError(ErrorKind.TRANSPORT_FAILURE, message) from exc


def _relay(response: UpstreamResponse, fallback_message: str) -> PortalError:
    if response.json is not None:
        return PortalError(
            ErrorKind.UPSTREAM_REJECTED,
            upstream_message(response.json) or fallback_message,
            status_code=response.status_code,
            upstream_body=response.json,
        )
    return PortalError(
        ErrorKind.UPSTREAM_REJECTED, fallback_message, status_code=response.status_code
    )


class ResourceHandlers:
    """The list/get/create/update/delete operations of one upstream resource.

    Every operation takes the resolved session explicitly and either returns the
    upstream payload or raises PortalError.
    """

    def __init__(
        self,
        spec: ResourceSpec,
        gateway: UpstreamGateway,
        *,
        bus: InvalidationBus | None = None,
    ) -> None:
        self.spec = spec
        self._gateway = gateway
        self._bus = bus

    def _changed(self) -> None:
        if self._bus is not None:
            self._bus.publish(self.spec.plural)

    async def list_page(self, session: Session, page: int) -> Any:
        message = self.spec.failure_message("fetch", many=True)
        with _degrade_to(message):
            response = await self._gateway.forward(
                "GET",
                self.spec.upstream_path,
                query=page_window(page, self.spec.page_size),
                token=session.user.access_token,
                failure_message=message,
            )
            if not response.ok:
                logger.error(
                    "Listing %s failed upstream: %s", self.spec.plural, response.status_code
                )
                raise PortalError(ErrorKind.UPSTREAM_REJECTED, message, status_code=500)
            return response.json

    async def get_one(self, session: Session, resource_id: str) -> Any:
        message = self.spec.failure_message("fetch")
        with _degrade_to(message):
            response = await self._gateway.forward(
                "GET",
                self.spec.item_path(resource_id),
                token=session.user.access_token,
                failure_message=message,
            )
            if response.status_code == 404:
                raise PortalError(ErrorKind.NOT_FOUND, self.spec.not_found_message)
            if not response.ok:
                logger.error(
                    "Fetching %s %s failed upstream: %s",
                    self.spec.name,
                    resource_id,
                    response.status_code,
                )
                raise PortalError(ErrorKind.UPSTREAM_REJECTED, message, status_code=500)
            return response.json

    async def create_one(self, session: Session, body: Any) -> Any:
        message = self.spec.failure_message("create")
        with _degrade_to(message):
            response = await self._gateway.forward(
                "POST",
                self.spec.upstream_path,
                body=body,
                token=session.user.access_token,
                failure_message=message,
            )
            if not response.ok:
                raise _relay(response, message)
            self._changed()
            return response.json

    async def update_one(self, session: Session, resource_id: str, body: Any) -> Any:
        message = self.spec.failure_message("update")
        with _degrade_to(message):
            response = await self._gateway.forward(
                "PUT",
                self.spec.item_path(resource_id),
                body=body,
                token=session.user.access_token,
                failure_message=message,
            )
            if not response.ok:
                raise _relay(response, message)
            self._changed()
            return response.json

    async def delete_one(self, session: Session, resource_id: str) -> None:
        message = self.spec.failure_message("delete")
        with _degrade_to(message):
            response = await self._gateway.forward(
                "DELETE",
                self.spec.item_path(resource_id),
                token=session.user.access_token,
                expect_body=False,
                failure_message=message,
            )
            if response.status_code == 404:
                raise PortalError(ErrorKind.NOT_FOUND, self.spec.not_found_message)
            if not response.ok:
                raise _relay(response, message)
            self._changed()


def resource_handlers(request: Request, spec: ResourceSpec) -> ResourceHandlers:
    bus = getattr(request.app.state, "invalidation_bus", None)
    return ResourceHandlers(spec, get_gateway(request), bus=bus)


async def _read_json_body(request: Request, failure_message: str) -> Any:
    with _degrade_to(failure_message):
        return await request.json()


def build_resource_router(spec: ResourceSpec) -> APIRouter:
    """JSON routes for one resource, all behind the session guard."""

    router = APIRouter(prefix=f"/{spec.plural}", tags=[spec.plural])

    @router.get("")
    async def list_route(
        request: Request,
        page: str | None = Query(default=None, description="1-based page number"),
        session: Session = Depends(require_session),  # noqa: B008
    ) -> Any:
        return await resource_handlers(request, spec).list_page(session, parse_page(page))

    @router.post("", status_code=201)
    async def create_route(
        request: Request,
        session: Session = Depends(require_session),  # noqa: B008
    ) -> JSONResponse:
        body = await _read_json_body(request, spec.failure_message("create"))
        created = await resource_handlers(request, spec).create_one(session, body)
        return JSONResponse(status_code=201, content=created)

    @router.get("/{resource_id}")
    async def get_route(
        request: Request,
        resource_id: str,
        session: Session = Depends(require_session),  # noqa: B008
    ) -> Any:
        return await resource_handlers(request, spec).get_one(session, resource_id)

    @router.put("/{resource_id}")
    async def update_route(
        request: Request,
        resource_id: str,
        session: Session = Depends(require_session),  # noqa: B008
    ) -> Any:
        body = await _read_json_body(request, spec.failure_message("update"))
        return await resource_handlers(request, spec).update_one(session, resource_id, body)

    @router.delete("/{resource_id}")
    async def delete_route(
        request: Request,
        resource_id: str,
        session: Session = Depends(require_session),  # noqa: B008
    ) -> dict[str, bool]:
        await resource_handlers(request, spec).delete_one(session, resource_id)
        return {"success": True}

    return router
