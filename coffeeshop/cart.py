"""
Session cart. The cart is a plain list of dicts so it survives the signed
session cookie round trip:

    {product_id, name, price, image_url, quantity, notes}
"""
from typing import Any, Dict, List

from .model.orm import Product

Cart = List[Dict[str, Any]]


def add_item(cart: Cart, product: Product, quantity: int,
             notes: str = "") -> Cart:
    notes = str(notes or "").strip()
    for item in cart:
        # same product with different notes stays a separate line
        if item["product_id"] == product.id and item["notes"] == notes:
            item["quantity"] += quantity
            return cart
    cart.append({
        "product_id": product.id,
        "name": product.name,
        "price": product.price,
        "image_url": product.image_url,
        "quantity": quantity,
        "notes": notes,
    })
    return cart


def update_item(cart: Cart, index: int, quantity: int) -> Cart:
    if 0 <= index < len(cart):
        if quantity <= 0:
            cart.pop(index)
        else:
            cart[index]["quantity"] = quantity
    return cart


def remove_item(cart: Cart, index: int) -> Cart:
    if 0 <= index < len(cart):
        cart.pop(index)
    return cart


def cart_total(cart: Cart) -> int:
    return sum(item["price"] * item["quantity"] for item in cart)


def item_count(cart: Cart) -> int:
    return sum(item["quantity"] for item in cart)
