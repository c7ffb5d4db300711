# gateway/__init__.py
import os
from typing import Optional

from ._base import (
    GatewayError, PaymentGateway, TransactionResult, payment_status_for,
    signature_for,
)
from .. import config

BACKEND = os.getenv("PAYMENT_GATEWAY", "midtrans").lower()  # 'midtrans' | 'mock'


# Factory keeps server.py simple and constructor-agnostic:
def new_gateway() -> Optional[PaymentGateway]:
    """The configured gateway, or None when Midtrans has no keys."""
    if BACKEND == "mock":
        from ._mock import MockSnap
        return MockSnap(config.MOCK_SECRET)
    if not (config.MIDTRANS_SERVER_KEY and config.MIDTRANS_CLIENT_KEY):
        return None
    from ._midtrans import MidtransSnap
    return MidtransSnap(
        server_key=config.MIDTRANS_SERVER_KEY,
        client_key=config.MIDTRANS_CLIENT_KEY,
        is_production=config.MIDTRANS_IS_PRODUCTION,
    )


__all__ = [
    "GatewayError", "PaymentGateway", "TransactionResult",
    "payment_status_for", "signature_for", "new_gateway", "BACKEND",
]
