"""
Shared fixtures. The environment is set before the app is imported:
a throwaway SQLite file, the mock gateway and the in-process notifier.
"""
import asyncio
import os
import tempfile

import pytest

_tmp = tempfile.mkdtemp(prefix="coffeeshop-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp}/test.db"
os.environ["PAYMENT_GATEWAY"] = "mock"
os.environ["NOTIFY_BACKEND"] = "memory"
os.environ["MOCK_SECRET"] = "test-secret"
os.environ["MOCK_WEBHOOK_URL"] = "http://127.0.0.1:9/payment/notification"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin123"
os.environ["SESSION_SECRET"] = "test-session-secret"

from fastapi.testclient import TestClient  # noqa: E402

from coffeeshop import server  # noqa: E402
from coffeeshop.helpers import now_ts  # noqa: E402
from coffeeshop.model import Base, Product  # noqa: E402

# name -> (price, category, stock, is_available)
SEED = {
    "Espresso": (18_000, "Coffee", 50, True),
    "Caffe Latte": (28_000, "Coffee", 50, True),
    "Croissant": (22_000, "Food", 2, True),
    "Seasonal Special": (30_000, "Coffee", 10, False),
}


async def _reset() -> dict:
    async with server.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    now = now_ts()
    async with server.SessionAsync() as db:
        rows = {
            name: Product(
                name=name, description=f"{name} from the test menu",
                price=price, category=category, stock=stock,
                is_available=available, created_at=now, updated_at=now,
            )
            for name, (price, category, stock, available) in SEED.items()
        }
        db.add_all(rows.values())
        await db.commit()
        return {name: p.id for name, p in rows.items()}


@pytest.fixture
def products():
    """Fresh schema with the seed menu; returns {name: product id}."""
    return asyncio.run(_reset())


@pytest.fixture
def run_db():
    """Run `fn(db)` against the test database outside the app."""
    def _run(fn):
        async def _go():
            async with server.SessionAsync() as db:
                return await fn(db)
        return asyncio.run(_go())
    return _run


@pytest.fixture
def client(products):
    with TestClient(server.app) as c:
        yield c


def login(client, username="admin", password="admin123"):
    return client.post(
        "/admin/login",
        data={"username": username, "password": password,
              "next": "/admin/dashboard"},
        follow_redirects=False,
    )


@pytest.fixture
def admin_client(client):
    # same client so websocket and admin calls share one app instance
    r = login(client)
    assert r.status_code == 303
    return client


def fill_cart(client, *lines):
    """lines: (product_id, quantity[, notes])"""
    for line in lines:
        pid, qty = line[0], line[1]
        notes = line[2] if len(line) > 2 else ""
        r = client.post("/cart/add", json={
            "product_id": pid, "quantity": qty, "notes": notes,
        })
        assert r.status_code == 200, r.text


def place(client, method="cash", name="Budi", table="5"):
    return client.post("/order", json={
        "customer_name": name,
        "table_number": table,
        "payment_method": method,
    })


def notification(order_id, total, status="settlement"):
    """A gateway notification signed the way the mock gateway signs it."""
    from types import SimpleNamespace
    from coffeeshop.gateway._mock import MockSnap
    order = SimpleNamespace(id=order_id, total_amount=total)
    return MockSnap(os.environ["MOCK_SECRET"]).build_notification(order, status)
