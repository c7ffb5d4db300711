import csv
import io
from typing import Iterable

from .helpers import to_iso
from .model.orm import Order

CSV_HEADER = [
    "Order ID", "Customer Name", "Table Number", "Total Amount", "Status",
    "Payment Method", "Payment Status", "Date", "Items",
]


def items_summary(order: Order) -> str:
    return "; ".join(
        f"{item.product.name if item.product else item.product_id} "
        f"({item.quantity}x)"
        for item in order.items
    )


def orders_to_csv(orders: Iterable[Order]) -> str:
    """Orders (loaded with items and products) as a CSV document."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for order in orders:
        writer.writerow([
            order.id,
            order.customer_name,
            order.table_number,
            order.total_amount,
            order.status,
            order.payment_method,
            order.payment_status,
            to_iso(order.created_at),
            items_summary(order),
        ])
    return output.getvalue()
