from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import translate_store_errors

from .models import Product

class ProductRepository:

    @staticmethod
    @translate_store_errors
    async def create_product(db: AsyncSession, product: Product) -> Product:
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product

    @staticmethod
    @translate_store_errors
    async def get_all_products(db: AsyncSession, category: Optional[str] = None) -> list[Product]:
        stmt = select(Product).order_by(Product.id)
        if category:
            stmt = stmt.where(Product.category == category)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    @translate_store_errors
    async def get_product_by_id(db: AsyncSession, product_id: int) -> Optional[Product]:
        result = await db.execute(select(Product).where(Product.id == product_id))
        return result.scalars().first()

    @staticmethod
    @translate_store_errors
    async def update_product(db: AsyncSession, product: Product) -> Product:
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product

    @staticmethod
    @translate_store_errors
    async def delete_product(db: AsyncSession, product: Product) -> None:
        await db.delete(product)
        await db.commit()
