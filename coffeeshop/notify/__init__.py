# notify/__init__.py
import os
from typing import Optional

import redis.asyncio as redis

BACKEND = os.getenv("NOTIFY_BACKEND", "memory").lower()  # 'memory' | 'redis'


def channel(order_id: str) -> str:
    return f"order_{order_id}"


if BACKEND == "redis":
    from ._redis import OrderNotifier as _OrderNotifier
else:
    from ._memory import OrderNotifier as _OrderNotifier


# Factory keeps server.py simple and constructor-agnostic:
def new_notifier(*, r: Optional[redis.Redis] = None):
    if BACKEND == "redis":
        if r is None:
            raise RuntimeError("OrderNotifier(redis) requires r=redis.Redis")
        return _OrderNotifier(r=r)
    return _OrderNotifier()


def order_update(order_id: str, status: str) -> dict:
    return {"event": "orderUpdate", "orderId": order_id, "status": status}


def payment_update(order_id: str, payment_status: str) -> dict:
    return {
        "event": "paymentUpdate",
        "orderId": order_id,
        "payment_status": payment_status,
    }


# Optional: also export the selected class name for typing/imports
OrderNotifier = _OrderNotifier
__all__ = [
    "OrderNotifier", "new_notifier", "channel", "order_update",
    "payment_update", "BACKEND",
]
