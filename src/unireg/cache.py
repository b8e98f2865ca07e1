from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class InvalidationBus:
    """Tells subscribers that the data of a resource kind changed upstream."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, kind: str) -> None:
        logger.debug("Invalidating cached %s", kind)
        for listener in list(self._listeners):
            listener(kind)


class PageCache:
    """List pages keyed by (session id, resource kind, page number).

    Entries live for ``ttl_seconds`` and are dropped as soon as the bus reports a
    change to their kind. Every write also sweeps out entries past their TTL.
    """

    def __init__(
        self,
        bus: InvalidationBus,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str, int], tuple[float, Any]] = {}
        self._unsubscribe = bus.subscribe(self.invalidate)

    def _expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at >= self._ttl_seconds

    def _sweep(self) -> None:
        now = self._clock()
        stale = [
            key
            for key, (stored_at, _) in self._entries.items()
            if self._expired(stored_at, now)
        ]
        for key in stale:
            del self._entries[key]

    def get(self, session_id: str, kind: str, page: int) -> Any | None:
        key = (session_id, kind, page)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._expired(stored_at, self._clock()):
            del self._entries[key]
            return None
        return value

    def put(self, session_id: str, kind: str, page: int, value: Any) -> None:
        if self._ttl_seconds <= 0:
            return
        self._sweep()
        self._entries[(session_id, kind, page)] = (self._clock(), value)

    def invalidate(self, kind: str) -> None:
        stale = [key for key in self._entries if key[1] == kind]
        for key in stale:
            del self._entries[key]

    def forget_session(self, session_id: str) -> None:
        stale = [key for key in self._entries if key[0] == session_id]
        for key in stale:
            del self._entries[key]

    def close(self) -> None:
        self._unsubscribe()
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
