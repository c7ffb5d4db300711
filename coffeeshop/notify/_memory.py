from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Set

from . import channel


class Subscription:
    def __init__(self, queue: asyncio.Queue) -> None:
        self._queue = queue

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Dict[str, Any]:
        return await self._queue.get()


class OrderNotifier:
    """In-process fan-out; only reaches sockets held by this worker."""

    def __init__(self) -> None:
        self._subs: Dict[str, Set[asyncio.Queue]] = {}

    async def publish(self, order_id: str, message: Dict[str, Any]) -> int:
        queues = self._subs.get(channel(order_id), ())
        for q in queues:
            q.put_nowait(message)
        return len(queues)

    @asynccontextmanager
    async def subscribe(self, order_id: str) -> AsyncIterator[Subscription]:
        key = channel(order_id)
        q: asyncio.Queue = asyncio.Queue()
        self._subs.setdefault(key, set()).add(q)
        try:
            yield Subscription(q)
        finally:
            subs = self._subs.get(key)
            if subs is not None:
                subs.discard(q)
                if not subs:
                    del self._subs[key]

    async def close(self) -> None:
        self._subs.clear()
