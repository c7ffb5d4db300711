from .orm import Base, Product, Order, OrderItem

__all__ = ["Base", "Product", "Order", "OrderItem"]
