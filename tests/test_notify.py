import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from coffeeshop.notify import channel, order_update, payment_update
from coffeeshop.notify._memory import OrderNotifier

from conftest import fill_cart, notification, place


def test_message_shapes():
    assert channel("abc") == "order_abc"
    assert order_update("abc", "ready") == {
        "event": "orderUpdate", "orderId": "abc", "status": "ready",
    }
    assert payment_update("abc", "paid") == {
        "event": "paymentUpdate", "orderId": "abc", "payment_status": "paid",
    }


async def test_memory_notifier_fans_out_per_order():
    notifier = OrderNotifier()
    async with notifier.subscribe("a") as first, \
            notifier.subscribe("a") as second, \
            notifier.subscribe("b") as other:
        assert len(notifier._subs.get(channel("a"), ())) == 2
        assert await notifier.publish("a", order_update("a", "ready")) == 2

        for updates in (first, second):
            msg = await asyncio.wait_for(updates.__anext__(), timeout=1)
            assert msg["status"] == "ready"
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(other.__anext__(), timeout=0.05)

    assert len(notifier._subs.get(channel("a"), ())) == 0
    # nobody listening is not an error
    assert await notifier.publish("a", order_update("a", "ready")) == 0


async def test_memory_notifier_close_drops_subscribers():
    notifier = OrderNotifier()
    async with notifier.subscribe("a"):
        await notifier.close()
        assert len(notifier._subs.get(channel("a"), ())) == 0


# -- websocket ------------------------------------------------------------

def test_websocket_snapshot_then_updates(admin_client, products):
    fill_cart(admin_client, (products["Espresso"], 2))
    order_id = place(admin_client, "qris").json()["orderId"]

    with admin_client.websocket_connect(f"/ws/orders/{order_id}") as ws:
        assert ws.receive_json() == {
            "event": "snapshot",
            "orderId": order_id,
            "status": "pending",
            "payment_status": "pending",
        }

        admin_client.post(f"/admin/orders/{order_id}/status",
                          json={"status": "processing"})
        assert ws.receive_json() == order_update(order_id, "processing")

        admin_client.post("/payment/notification",
                          json=notification(order_id, 36000))
        assert ws.receive_json() == payment_update(order_id, "paid")

        # a stale pending changes nothing, so nothing is pushed; the next
        # message is the status change that follows it
        admin_client.post("/payment/notification",
                          json=notification(order_id, 36000, "pending"))
        admin_client.post(f"/admin/orders/{order_id}/status",
                          json={"status": "ready"})
        assert ws.receive_json() == order_update(order_id, "ready")


def test_websocket_unknown_order_is_closed(client, products):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws/orders/nope") as ws:
            ws.receive_json()
    assert exc.value.code == 4404
