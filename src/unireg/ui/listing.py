from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from unireg.cache import PageCache
from unireg.errors import PortalError
from unireg.resources import ResourceHandlers
from unireg.sessions import Session

logger = logging.getLogger(__name__)

ListStatus = Literal["loading", "error", "empty", "ready"]


def page_items(payload: Any) -> list[dict[str, Any]]:
    """Rows of a list envelope ``{"status": ..., "data": [...]}``."""

    if not isinstance(payload, dict):
        return []
    data = payload.get("data")
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]


@dataclass
class StudentListView:
    page: int = 1
    status: ListStatus = "loading"
    students: list[dict[str, Any]] = field(default_factory=list)

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        # Only "this page had rows"; the last full page still offers Next.
        return bool(self.students)

    @property
    def previous_page(self) -> int:
        return max(1, self.page - 1)

    @property
    def next_page(self) -> int:
        return self.page + 1

    async def load(
        self,
        handlers: ResourceHandlers,
        session: Session,
        *,
        cache: PageCache | None = None,
    ) -> StudentListView:
        kind = handlers.spec.plural

        payload = cache.get(session.session_id, kind, self.page) if cache is not None else None
        if payload is None:
            try:
                payload = await handlers.list_page(session, self.page)
            except PortalError as exc:
                logger.warning("Could not load %s page %s: %s", kind, self.page, exc.message)
                self.status = "error"
                self.students = []
                return self
            if cache is not None:
                cache.put(session.session_id, kind, self.page, payload)

        self.students = page_items(payload)
        self.status = "ready" if self.students else "empty"
        return self
