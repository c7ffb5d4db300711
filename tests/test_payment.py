import httpx
import pytest

from coffeeshop import server
from coffeeshop.gateway import payment_status_for, signature_for

from conftest import fill_cart, notification, place


@pytest.mark.parametrize("transaction_status,fraud_status,expected", [
    ("capture", "accept", "paid"),
    ("capture", None, "paid"),
    ("capture", "challenge", "challenge"),
    ("capture", "deny", "failed"),
    ("settlement", None, "paid"),
    ("settlement", "accept", "paid"),
    ("deny", None, "failed"),
    ("cancel", None, "failed"),
    ("expire", None, "failed"),
    ("failure", None, "failed"),
    ("pending", None, "pending"),
    ("refund", None, "pending"),
    (None, None, "pending"),
])
def test_payment_status_mapping(transaction_status, fraud_status, expected):
    assert payment_status_for(transaction_status, fraud_status) == expected


def test_signature_is_sha512_of_concatenation():
    import hashlib
    expected = hashlib.sha512(b"order-1200100000.00key").hexdigest()
    assert signature_for("order-1", "200", "100000.00", "key") == expected


def qris_order(client, products, qty=2):
    fill_cart(client, (products["Espresso"], qty))
    return place(client, "qris").json()["orderId"]


def status_of(client, order_id):
    return client.get(f"/payment/{order_id}/status").json()


def test_settlement_marks_order_paid(client, products):
    order_id = qris_order(client, products)
    r = client.post("/payment/notification",
                    json=notification(order_id, 36000))
    assert r.status_code == 200
    assert r.text == "OK"
    assert status_of(client, order_id) == {
        "success": True, "payment_status": "paid", "order_status": "pending",
    }


def test_late_pending_does_not_undo_paid(client, products):
    order_id = qris_order(client, products)
    client.post("/payment/notification", json=notification(order_id, 36000))
    r = client.post("/payment/notification",
                    json=notification(order_id, 36000, "pending"))
    assert r.status_code == 200
    assert status_of(client, order_id)["payment_status"] == "paid"


def test_failure_after_pending(client, products):
    order_id = qris_order(client, products)
    client.post("/payment/notification",
                json=notification(order_id, 36000, "pending"))
    assert status_of(client, order_id)["payment_status"] == "pending"
    client.post("/payment/notification",
                json=notification(order_id, 36000, "expire"))
    assert status_of(client, order_id)["payment_status"] == "failed"


def test_bad_signature_is_rejected(client, products):
    order_id = qris_order(client, products)
    note = notification(order_id, 36000)
    note["gross_amount"] = "1.00"
    r = client.post("/payment/notification", json=note)
    assert r.status_code == 400
    assert status_of(client, order_id)["payment_status"] == "pending"

    note = notification(order_id, 36000)
    del note["signature_key"]
    assert client.post("/payment/notification", json=note).status_code == 400


def test_notification_for_unknown_order(client, products):
    r = client.post("/payment/notification",
                    json=notification("no-such-order", 1000))
    assert r.status_code == 404


def test_notification_must_be_json(client, products):
    r = client.post("/payment/notification", content=b"not json",
                    headers={"content-type": "application/json"})
    assert r.status_code == 400


def test_status_for_unknown_order(client, products):
    r = client.get("/payment/nope/status")
    assert r.status_code == 404
    assert r.json()["success"] is False


def test_create_transaction_with_mock_gateway(client, products):
    order_id = qris_order(client, products)
    r = client.post(f"/payment/{order_id}/create")
    body = r.json()
    assert body["success"] is True
    assert body["token"].startswith("mock_")
    assert body["redirect_url"] == f"/mockpay/{order_id}"

    r = client.post("/payment/nope/create")
    assert r.status_code == 404


def test_create_transaction_reuses_existing_token(client, products):
    order_id = qris_order(client, products)
    first = client.post(f"/payment/{order_id}/create").json()
    again = client.post(f"/payment/{order_id}/create").json()
    assert again == first

    order = client.get(f"/api/orders/{order_id}").json()["order"]
    assert order["midtrans_order_id"] == order_id


def test_midtrans_redirect_for_existing_token():
    from coffeeshop.gateway._midtrans import MidtransSnap
    snap = MidtransSnap("server-key", "client-key")
    assert snap.redirect_url_for(None, "tok") == (
        "https://app.sandbox.midtrans.com/snap/v2/vtweb/tok"
    )


def test_create_transaction_refused_once_paid(client, products):
    order_id = qris_order(client, products)
    client.post("/payment/notification", json=notification(order_id, 36000))
    r = client.post(f"/payment/{order_id}/create")
    assert r.status_code == 400
    assert r.json()["message"] == "Order is already paid"


def test_payment_page(client, products):
    order_id = qris_order(client, products)
    r = client.get(f"/payment/{order_id}")
    assert r.status_code == 200
    assert 'id="payButton"' in r.text

    # cash orders have nothing to pay online
    fill_cart(client, (products["Espresso"], 1))
    cash_id = place(client, "cash").json()["orderId"]
    r = client.get(f"/payment/{cash_id}", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"


def test_mockpay_page_lists_outcomes(client, products):
    order_id = qris_order(client, products)
    r = client.get(f"/mockpay/{order_id}")
    assert r.status_code == 200
    assert "settlement" in r.text
    assert client.get("/mockpay/nope").status_code == 404


def test_mockpay_emit_survives_unreachable_webhook(client, products):
    order_id = qris_order(client, products)
    r = client.post(f"/mockpay/{order_id}/emit", data={"t": "settlement"},
                    follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == f"/payment/{order_id}"
    assert status_of(client, order_id)["payment_status"] == "pending"

    r = client.post(f"/mockpay/{order_id}/emit", data={"t": "refund"},
                    follow_redirects=False)
    assert r.status_code == 400


def test_mockpay_emit_delivers_to_webhook(client, products, monkeypatch):
    order_id = qris_order(client, products)
    # route the webhook call back into the app itself
    previous = client.app.state.http
    client.app.state.http = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=server.app),
        base_url="http://testserver",
    )
    monkeypatch.setattr(server.config, "MOCK_WEBHOOK_URL",
                        "http://testserver/payment/notification")
    try:
        r = client.post(f"/mockpay/{order_id}/emit", data={"t": "settlement"},
                        follow_redirects=False)
        assert r.status_code == 303
        assert status_of(client, order_id)["payment_status"] == "paid"
    finally:
        client.portal.call(client.app.state.http.aclose)
        client.app.state.http = previous
