from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from time import time
from typing import Callable, Dict, Optional

from fedrita.auth.context import AuthContext

logger = logging.getLogger("fedrita.api")

ContextFactory = Callable[[str], AuthContext]


@dataclass
class _Entry:
    context: AuthContext
    last_seen: float


class ContextRegistry:
    """
    In-memory map of browser session id -> started AuthContext, with idle TTL.
    Intended for single-process deployments; persisted auth entries live in the
    context's key-value store, so a dropped context is rebuilt on the next request.
    """

    def __init__(self, factory: ContextFactory, ttl_seconds: int = 86400):
        self.factory = factory
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, _Entry] = {}
        self._starting: Dict[str, asyncio.Future[AuthContext]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def peek(self, session_id: str) -> Optional[AuthContext]:
        entry = self._entries.get(session_id)
        return entry.context if entry else None

    async def get(self, session_id: str) -> AuthContext:
        self._purge()
        entry = self._entries.get(session_id)
        if entry is not None:
            entry.last_seen = time()
            return entry.context

        # one start per browser; other browsers never wait on it
        starting = self._starting.get(session_id)
        if starting is None:
            starting = asyncio.ensure_future(self._start(session_id))
            self._starting[session_id] = starting
            starting.add_done_callback(lambda _: self._starting.pop(session_id, None))
        return await asyncio.shield(starting)

    async def _start(self, session_id: str) -> AuthContext:
        context = self.factory(session_id)
        await context.start()
        self._entries[session_id] = _Entry(context=context, last_seen=time())
        logger.debug("Auth context started", extra={"session_id": session_id})
        return context

    def drop(self, session_id: str) -> None:
        entry = self._entries.pop(session_id, None)
        if entry is not None:
            entry.context.close()

    def close_all(self) -> None:
        for starting in list(self._starting.values()):
            starting.cancel()
        for session_id in list(self._entries):
            self.drop(session_id)

    def _purge(self) -> None:
        if not self.ttl_seconds:
            return
        cutoff = time() - self.ttl_seconds
        for session_id in [sid for sid, e in self._entries.items() if e.last_seen < cutoff]:
            self.drop(session_id)
