from __future__ import annotations
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

import redis.asyncio as redis

from . import channel


class Subscription:
    def __init__(self, pubsub) -> None:
        self._pubsub = pubsub

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Dict[str, Any]:
        # skip subscribe confirmations and anything that isn't JSON
        async for msg in self._pubsub.listen():
            if msg.get("type") != "message":
                continue
            try:
                return json.loads(msg["data"])
            except (TypeError, ValueError):
                continue
        raise StopAsyncIteration


class OrderNotifier:
    """Redis pub/sub so every worker sees every update."""

    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    async def publish(self, order_id: str, message: Dict[str, Any]) -> int:
        return await self.r.publish(channel(order_id), json.dumps(message))

    @asynccontextmanager
    async def subscribe(self, order_id: str) -> AsyncIterator[Subscription]:
        pubsub = self.r.pubsub()
        await pubsub.subscribe(channel(order_id))
        try:
            yield Subscription(pubsub)
        finally:
            await pubsub.unsubscribe(channel(order_id))
            await pubsub.aclose()

    async def close(self) -> None:
        await self.r.aclose()
