from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    Boolean,
    ForeignKey,
    Index,
)


Base = declarative_base()


# order status
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_READY = "ready"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
ORDER_STATUSES = (
    STATUS_PENDING, STATUS_PROCESSING, STATUS_READY, STATUS_COMPLETED,
    STATUS_CANCELLED,
)

# payment status
PAY_PENDING = "pending"
PAY_PAID = "paid"
PAY_FAILED = "failed"
PAY_CHALLENGE = "challenge"
PAYMENT_STATUSES = (PAY_PENDING, PAY_PAID, PAY_FAILED, PAY_CHALLENGE)
FINAL_PAYMENT_STATUSES = (PAY_PAID, PAY_FAILED)

# payment method
METHOD_CASH = "cash"
METHOD_QRIS = "qris"
PAYMENT_METHODS = (METHOD_CASH, METHOD_QRIS)


# ----------------------------
# ORM models
# ----------------------------
class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Integer, nullable=False)  # rupiah
    category = Column(String, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)
    image_url = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class Order(Base):
    __tablename__ = "orders"
    id = Column(String, primary_key=True)
    customer_name = Column(String, nullable=False)
    table_number = Column(String, nullable=False, default="")
    total_amount = Column(Integer, nullable=False)  # rupiah
    # cash | qris
    payment_method = Column(String, nullable=False)
    # pending | processing | ready | completed | cancelled
    status = Column(String, nullable=False, default=STATUS_PENDING)
    # pending | paid | failed | challenge
    payment_status = Column(String, nullable=False, default=PAY_PENDING)

    # set once a gateway transaction exists; unused for cash
    midtrans_token = Column(String, nullable=True)
    midtrans_order_id = Column(String, nullable=True)

    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        Index("orders_created_at_idx", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    quantity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)  # unit price at order time
    notes = Column(String, nullable=False, default="")

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
