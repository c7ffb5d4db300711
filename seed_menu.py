import asyncio
import os

from sqlalchemy import select, func

from coffeeshop.helpers import now_ts
from coffeeshop.infra.sql import make_async_engine
from coffeeshop.model import Base, Product

# Menu: (name, description, price in rupiah, category, stock)
MENU = [
    ("Espresso", "Single shot of our house blend", 18_000, "Coffee", 100),
    ("Americano", "Espresso topped up with hot water", 22_000, "Coffee", 100),
    ("Cappuccino", "Espresso, steamed milk and a thick foam", 28_000, "Coffee", 80),
    ("Caffe Latte", "Espresso with plenty of steamed milk", 28_000, "Coffee", 80),
    ("Kopi Susu Gula Aren", "Iced coffee with milk and palm sugar", 25_000, "Coffee", 120),
    ("Matcha Latte", "Japanese green tea with milk", 30_000, "Non-Coffee", 50),
    ("Chocolate", "Hot or iced dark chocolate", 26_000, "Non-Coffee", 50),
    ("Lemon Tea", "Black tea with fresh lemon", 18_000, "Non-Coffee", 60),
    ("Croissant", "Butter croissant, baked every morning", 22_000, "Food", 30),
    ("Banana Bread", "Slice of homemade banana bread", 20_000, "Food", 25),
    ("Nasi Goreng", "Fried rice with egg and crackers", 35_000, "Food", 20),
]


def menu_products(now: float) -> list:
    return [
        Product(
            name=name,
            description=description,
            price=price,
            category=category,
            stock=stock,
            is_available=True,
            created_at=now,
            updated_at=now,
        )
        for name, description, price, category, stock in MENU
    ]


async def create_tables(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print('✅ tables created')


async def seed_products(SessionAsync) -> int:
    async with SessionAsync() as db:
        count = (await db.execute(
            select(func.count()).select_from(Product)
        )).scalar_one()
        if count:
            print(f'menu already has {count} products, leaving it alone')
            return 0
        db.add_all(menu_products(now_ts()))
        await db.commit()
    print(f'✅ {len(MENU)} products added')
    return len(MENU)


async def main(database_url: str):
    engine, SessionAsync = make_async_engine(database_url)
    try:
        await create_tables(engine)
        await seed_products(SessionAsync)
    finally:
        await engine.dispose()


if __name__ == '__main__':
    url = os.getenv("DATABASE_URL")
    if not url:
        print("NEED DATABASE_URL! e.g. DATABASE_URL=sqlite:///./coffeeshop.db")
        raise SystemExit(1)
    asyncio.run(main(url))
