# model/orders.py
"""
Orders: placement, status changes, reads and the sales summaries shown on
the admin dashboard.

Order placement runs in one transaction:
- every cart line must reference an existing, available product
- demand is summed per product and checked against stock
- the total is computed from current catalog prices, never from the cart
- order + lines are inserted, then stock is decremented with a conditional
  UPDATE (stock >= qty) so a concurrent order can never drive it negative
"""

from __future__ import annotations
import uuid
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .orm import (
    Product, Order, OrderItem,
    STATUS_PENDING, STATUS_CANCELLED, ORDER_STATUSES,
    PAY_PENDING, PAY_PAID, PAYMENT_STATUSES, FINAL_PAYMENT_STATUSES,
    PAYMENT_METHODS,
)
from ..helpers import now_ts, to_iso, parse_int

log = structlog.get_logger(__name__)


class OrderError(ValueError):
    """Order cannot be placed as requested; message is customer-facing."""


def _with_items():
    return selectinload(Order.items).selectinload(OrderItem.product)


# ------------------------------------------------------------------------------
# Placement
# ------------------------------------------------------------------------------

def _demand(cart: List[Dict[str, Any]]) -> Dict[int, int]:
    demand: Dict[int, int] = {}
    for item in cart:
        pid = parse_int(item.get("product_id"))
        qty = parse_int(item.get("quantity"))
        if pid is None:
            raise OrderError("Invalid product in cart")
        if qty is None or qty <= 0:
            raise OrderError(
                f"Invalid quantity for {item.get('name') or pid}"
            )
        demand[pid] = demand.get(pid, 0) + qty
    return demand


async def place_order(
    db: AsyncSession,
    *,
    customer_name: Optional[str],
    table_number: Optional[str],
    payment_method: Optional[str],
    cart: List[Dict[str, Any]],
) -> Order:
    if not cart:
        raise OrderError("Cart is empty")
    if customer_name is not None and not isinstance(customer_name, str):
        raise OrderError("Customer name must be text")
    customer_name = (customer_name or "").strip()
    if not customer_name:
        raise OrderError("Customer name is required")
    if payment_method not in PAYMENT_METHODS:
        raise OrderError("Invalid payment method")

    demand = _demand(cart)
    now = now_ts()

    try:
        products: Dict[int, Product] = {}
        for pid, qty in demand.items():
            product = await db.get(Product, pid)
            if product is None:
                label = next(
                    (i.get("name") for i in cart
                     if parse_int(i.get("product_id")) == pid),
                    None,
                ) or pid
                raise OrderError(f"Product {label} not found")
            if not product.is_available:
                raise OrderError(f"{product.name} is not available")
            if product.stock < qty:
                raise OrderError(f"Insufficient stock for {product.name}")
            products[pid] = product

        lines = []
        total = 0
        for item in cart:
            product = products[parse_int(item["product_id"])]
            qty = parse_int(item["quantity"])
            total += product.price * qty
            lines.append(OrderItem(
                product_id=product.id,
                quantity=qty,
                price=product.price,
                notes=str(item.get("notes") or "").strip(),
            ))

        order = Order(
            id=uuid.uuid4().hex,
            customer_name=customer_name,
            table_number=str(table_number or "").strip(),
            total_amount=total,
            payment_method=payment_method,
            status=STATUS_PENDING,
            payment_status=PAY_PENDING,
            created_at=now,
            updated_at=now,
            items=lines,
        )
        db.add(order)

        for pid, qty in demand.items():
            result = await db.execute(
                update(Product)
                .where(Product.id == pid, Product.stock >= qty)
                .values(stock=Product.stock - qty, updated_at=now)
            )
            if result.rowcount != 1:
                # somebody else bought the last units in the meantime
                raise OrderError(
                    f"Insufficient stock for {products[pid].name}"
                )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    log.info(
        "order_placed",
        order_id=order.id,
        total_amount=total,
        payment_method=payment_method,
        lines=len(lines),
    )
    return order


# ------------------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------------------

async def get_order(
    db: AsyncSession, order_id: str, with_items: bool = False
) -> Optional[Order]:
    stmt = select(Order).where(Order.id == order_id)
    if with_items:
        stmt = stmt.options(_with_items())
    result = await db.execute(stmt)
    return result.scalars().first()


async def list_orders(db: AsyncSession) -> List[Order]:
    result = await db.execute(
        select(Order)
        .options(_with_items())
        .order_by(Order.created_at.desc())
    )
    return list(result.scalars().all())


async def orders_between(
    db: AsyncSession, start_ts: float, end_ts: float
) -> List[Order]:
    result = await db.execute(
        select(Order)
        .options(_with_items())
        .where(Order.created_at >= start_ts, Order.created_at < end_ts)
        .order_by(Order.created_at)
    )
    return list(result.scalars().all())


async def recent_orders(db: AsyncSession, limit: int = 5) -> List[Order]:
    result = await db.execute(
        select(Order).order_by(Order.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def sales_total_since(db: AsyncSession, since_ts: float) -> int:
    total = (await db.execute(
        select(func.coalesce(func.sum(Order.total_amount), 0))
        .where(Order.payment_status == PAY_PAID, Order.created_at >= since_ts)
    )).scalar_one()
    return int(total)


async def popular_products(
    db: AsyncSession, limit: int = 5
) -> List[Dict[str, Any]]:
    """Best sellers by quantity; cancelled orders do not count."""
    qty = func.sum(OrderItem.quantity).label("total_quantity")
    rows = (await db.execute(
        select(Product.id, Product.name, qty)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.status != STATUS_CANCELLED)
        .group_by(Product.id, Product.name)
        .order_by(qty.desc(), Product.name)
        .limit(limit)
    )).all()
    return [
        {"id": r.id, "name": r.name, "total_quantity": int(r.total_quantity)}
        for r in rows
    ]


# ------------------------------------------------------------------------------
# Status changes
# ------------------------------------------------------------------------------

async def set_order_status(
    db: AsyncSession, order_id: str, status: str
) -> Optional[Order]:
    if status not in ORDER_STATUSES:
        raise OrderError(f"Invalid order status: {status}")
    order = await db.get(Order, order_id)
    if order is None:
        return None
    order.status = status
    order.updated_at = now_ts()
    await db.commit()
    log.info("order_status_updated", order_id=order_id, status=status)
    return order


async def set_payment_status(
    db: AsyncSession, order_id: str, payment_status: str
) -> Optional[Order]:
    if payment_status not in PAYMENT_STATUSES:
        raise OrderError(f"Invalid payment status: {payment_status}")
    order = await db.get(Order, order_id)
    if order is None:
        return None
    order.payment_status = payment_status
    order.updated_at = now_ts()
    await db.commit()
    log.info(
        "payment_status_updated", order_id=order_id,
        payment_status=payment_status,
    )
    return order


async def apply_payment_notification(
    db: AsyncSession, order_id: str, payment_status: str
) -> Tuple[Optional[Order], bool]:
    """
    Webhook side of the payment state machine. Returns (order, changed).

    A late "pending" never overwrites a final status; gateways redeliver
    notifications out of order.
    """
    order = await db.get(Order, order_id)
    if order is None:
        return None, False
    if (payment_status == PAY_PENDING
            and order.payment_status in FINAL_PAYMENT_STATUSES):
        return order, False
    order.payment_status = payment_status
    order.updated_at = now_ts()
    await db.commit()
    return order, True


async def attach_gateway_token(
    db: AsyncSession, order: Order, token: str
) -> None:
    order.midtrans_token = token
    order.midtrans_order_id = order.id
    order.updated_at = now_ts()
    await db.commit()


# ------------------------------------------------------------------------------
# Serialization
# ------------------------------------------------------------------------------

def order_to_dict(order: Order, with_items: bool = True) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "id": order.id,
        "customer_name": order.customer_name,
        "table_number": order.table_number,
        "total_amount": order.total_amount,
        "payment_method": order.payment_method,
        "status": order.status,
        "payment_status": order.payment_status,
        "midtrans_order_id": order.midtrans_order_id,
        "created_at": to_iso(order.created_at),
        "updated_at": to_iso(order.updated_at),
    }
    if with_items:
        d["order_items"] = [
            {
                "quantity": item.quantity,
                "price": item.price,
                "notes": item.notes,
                "products": {
                    "name": item.product.name if item.product else None,
                    "image_url": (
                        item.product.image_url if item.product else None
                    ),
                },
            }
            for item in order.items
        ]
    return d
