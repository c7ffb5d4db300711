import httpx

from ._base import (
    GatewayError, PaymentGateway, TransactionResult, transaction_body
)
from ..model.orm import Order

SANDBOX_BASE = "https://app.sandbox.midtrans.com"
PRODUCTION_BASE = "https://app.midtrans.com"


# ----------------------------
# Midtrans Snap implementation
# ----------------------------
class MidtransSnap(PaymentGateway):
    name = "midtrans"

    def __init__(self, server_key: str, client_key: str,
                 is_production: bool = False) -> None:
        self.server_key = server_key
        self.client_key = client_key
        self.base_url = PRODUCTION_BASE if is_production else SANDBOX_BASE
        self.snap_js_url = f"{self.base_url}/snap/snap.js"

    async def create_transaction(
            self, http: httpx.AsyncClient, order: Order
    ) -> TransactionResult:
        try:
            r = await http.post(
                f"{self.base_url}/snap/v1/transactions",
                json=transaction_body(order),
                auth=(self.server_key, ""),
                headers={"accept": "application/json"},
            )
            r.raise_for_status()
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GatewayError(f"snap transaction failed: {e}") from e

        token = data.get("token")
        redirect_url = data.get("redirect_url")
        if not token or not redirect_url:
            raise GatewayError(f"unexpected snap response: {data}")
        return {"token": token, "redirect_url": redirect_url}

    def redirect_url_for(self, order: Order, token: str) -> str:
        return f"{self.base_url}/snap/v2/vtweb/{token}"

    def signing_key(self) -> str:
        return self.server_key
