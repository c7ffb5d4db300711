# model/catalog.py
"""
Product catalog: menu listing for customers, CRUD for the admin.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from .orm import Product
from ..helpers import now_ts, to_iso, parse_int


async def list_menu(db: AsyncSession) -> List[Product]:
    """Products a customer can order right now."""
    result = await db.execute(
        select(Product)
        .where(Product.is_available.is_(True), Product.stock > 0)
        .order_by(Product.category, Product.name)
    )
    return list(result.scalars().all())


def group_by_category(products: List[Product]) -> Dict[str, List[Product]]:
    grouped: Dict[str, List[Product]] = {}
    for p in products:
        grouped.setdefault(p.category, []).append(p)
    return grouped


async def list_available(db: AsyncSession) -> List[Product]:
    result = await db.execute(
        select(Product)
        .where(Product.is_available.is_(True))
        .order_by(Product.name)
    )
    return list(result.scalars().all())


async def list_all(db: AsyncSession) -> List[Product]:
    result = await db.execute(
        select(Product).order_by(Product.created_at.desc(), Product.id.desc())
    )
    return list(result.scalars().all())


async def get_product(db: AsyncSession, product_id: int) -> Optional[Product]:
    return await db.get(Product, product_id)


def parse_product_form(
    *,
    name: Optional[str],
    description: Optional[str],
    price: Optional[str],
    category: Optional[str],
    stock: Optional[str],
    is_available: Optional[str],
    image_url: Optional[str] = None,
) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Validate the admin product form. Returns (data, error); error is None
    when the data can be saved.
    """
    name = (name or "").strip()
    category = (category or "").strip()
    data: Dict[str, Any] = {
        "name": name,
        "description": (description or "").strip(),
        "category": category,
        "is_available": is_available == "on",
        "image_url": (image_url or "").strip() or None,
    }
    if not name:
        return data, "Name is required."
    if not category:
        return data, "Category is required."

    # prices come in as "15000" or "15000.00"
    try:
        data["price"] = int(round(float(price)))
    except (TypeError, ValueError, OverflowError):
        return data, "Price must be a number."
    if data["price"] < 0:
        return data, "Price must not be negative."

    data["stock"] = parse_int(stock)
    if data["stock"] is None:
        return data, "Stock must be a whole number."
    if data["stock"] < 0:
        return data, "Stock must not be negative."
    return data, None


async def save_product(
    db: AsyncSession, data: Dict[str, Any], product_id: Optional[int] = None
) -> Optional[Product]:
    """
    Insert a new product, or update `product_id`. Returns None when the
    product to update does not exist.
    """
    now = now_ts()
    if product_id is None:
        product = Product(created_at=now, updated_at=now, **data)
        db.add(product)
    else:
        product = await db.get(Product, product_id)
        if product is None:
            return None
        for key, value in data.items():
            setattr(product, key, value)
        product.updated_at = now
    await db.commit()
    return product


async def delete_product(db: AsyncSession, product_id: int) -> bool:
    # IntegrityError propagates when order lines still reference the row
    try:
        result = await db.execute(
            delete(Product).where(Product.id == product_id)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return result.rowcount > 0


def product_to_dict(p: Product) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "price": p.price,
        "category": p.category,
        "stock": p.stock,
        "is_available": bool(p.is_available),
        "image_url": p.image_url,
        "created_at": to_iso(p.created_at),
        "updated_at": to_iso(p.updated_at),
    }
