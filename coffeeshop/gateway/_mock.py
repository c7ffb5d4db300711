import time
import uuid

import httpx

from ._base import PaymentGateway, TransactionResult, signature_for
from ..model.orm import Order

# what the mock payment page can emit, with the status code a real
# gateway would attach
MOCK_OUTCOMES = {
    "settlement": "200",
    "pending": "201",
    "deny": "202",
    "cancel": "202",
    "expire": "407",
}


# ----------------------------
# MockSnap implementation
# ----------------------------
class MockSnap(PaymentGateway):
    """
    Local stand-in for the hosted checkout. The redirect goes to our own
    /mockpay page which posts gateway-shaped notifications to the webhook.
    """
    name = "mock"

    def __init__(self, secret: str) -> None:
        self.secret = secret

    async def create_transaction(
            self, http: httpx.AsyncClient, order: Order
    ) -> TransactionResult:
        token = f"mock_{uuid.uuid4().hex}"
        return {
            "token": token,
            "redirect_url": self.redirect_url_for(order, token),
        }

    def redirect_url_for(self, order: Order, token: str) -> str:
        return f"/mockpay/{order.id}"

    def signing_key(self) -> str:
        return self.secret

    def build_notification(self, order: Order, transaction_status: str) -> dict:
        status_code = MOCK_OUTCOMES.get(transaction_status, "201")
        gross_amount = f"{order.total_amount}.00"
        return {
            "transaction_id": uuid.uuid4().hex,
            "transaction_time": time.strftime("%Y-%m-%d %H:%M:%S"),
            "transaction_status": transaction_status,
            "status_code": status_code,
            "order_id": order.id,
            "gross_amount": gross_amount,
            "payment_type": "qris",
            "fraud_status": "accept",
            "signature_key": signature_for(
                order.id, status_code, gross_amount, self.secret
            ),
        }
