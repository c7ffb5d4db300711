from abc import ABC, abstractmethod
from typing import Optional, TypedDict
import hashlib
import hmac

import httpx
from fastapi import HTTPException

from ..model.orm import Order, PAY_PENDING, PAY_PAID, PAY_FAILED, PAY_CHALLENGE


class GatewayError(RuntimeError):
    pass


# ----------------------------
# Payment Gateway Interface
# ----------------------------
class TransactionResult(TypedDict):
    token: str
    redirect_url: str


class PaymentGateway(ABC):
    name: str = ""
    client_key: str = ""
    # browser script for the embedded checkout popup, if the gateway has one
    snap_js_url: Optional[str] = None

    @abstractmethod
    async def create_transaction(
            self, http: httpx.AsyncClient, order: Order
    ) -> TransactionResult: ...

    # where to send the customer for an existing transaction
    @abstractmethod
    def redirect_url_for(self, order: Order, token: str) -> str: ...

    # the key notifications are signed with
    @abstractmethod
    def signing_key(self) -> str: ...

    def verify_notification(self, notification: dict) -> None:
        expected = signature_for(
            str(notification.get("order_id", "")),
            str(notification.get("status_code", "")),
            str(notification.get("gross_amount", "")),
            self.signing_key(),
        )
        sig = notification.get("signature_key")
        if not sig or not hmac.compare_digest(expected, str(sig)):
            raise HTTPException(status_code=400, detail="Invalid signature")


def signature_for(
    order_id: str, status_code: str, gross_amount: str, key: str
) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{key}".encode()
    return hashlib.sha512(raw).hexdigest()


def transaction_body(order: Order) -> dict:
    return {
        "transaction_details": {
            "order_id": order.id,
            "gross_amount": order.total_amount,
        },
        "credit_card": {
            "secure": True,
        },
        "customer_details": {
            "first_name": order.customer_name,
            "email": "",
            "phone": "",
        },
    }


def payment_status_for(
    transaction_status: Optional[str], fraud_status: Optional[str]
) -> str:
    """Map a gateway notification onto our payment status.

    A capture with no fraud verdict counts as paid and a capture with
    fraud_status "deny" as failed; only "challenge" waits for review.
    """
    if transaction_status == "capture":
        if fraud_status == "challenge":
            return PAY_CHALLENGE
        if fraud_status == "deny":
            return PAY_FAILED
        return PAY_PAID
    if transaction_status == "settlement":
        return PAY_PAID
    if transaction_status in ("deny", "cancel", "expire", "failure"):
        return PAY_FAILED
    return PAY_PENDING
