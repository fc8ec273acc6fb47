"""Per-document asyncio locks that are dropped once nobody uses them."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class DocumentLocks:
    """One FIFO :class:`asyncio.Lock` per document id.

    An entry lives only while some task holds or waits for it, so the map
    stays as small as the number of documents with work in flight.

    Usage::

        locks = DocumentLocks()
        async with locks.hold(document_id):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._locks

    @asynccontextmanager
    async def hold(self, document_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._users[document_id] = self._users.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[document_id] -= 1
            if not self._users[document_id]:
                del self._users[document_id]
                del self._locks[document_id]
