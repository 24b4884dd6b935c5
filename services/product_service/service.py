from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFoundError
from shared.timeutils import utcnow

from .models import Product
from .repository import ProductRepository
from .schemas import ProductCreate, ProductUpdate

class ProductService:

    @staticmethod
    async def create_product(db: AsyncSession, data: ProductCreate) -> Product:
        now = utcnow()
        product = Product(
            name=data.name,
            price=data.price,
            category=data.category,
            image_url=data.image_url,
            created_at=now,
            updated_at=now,
        )
        return await ProductRepository.create_product(db, product)

    @staticmethod
    async def list_products(
        db: AsyncSession,
        query: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[Product]:
        products = await ProductRepository.get_all_products(db, category=category)

        # Word overlap search on the product name
        if query:
            query_words = set(query.lower().split())
            products = [p for p in products if query_words & set(p.name.lower().split())]

        return products

    @staticmethod
    async def get_product(db: AsyncSession, product_id: int) -> Product:
        product = await ProductRepository.get_product_by_id(db, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return product

    @staticmethod
    async def update_product(db: AsyncSession, product_id: int, data: ProductUpdate) -> Product:
        product = await ProductService.get_product(db, product_id)
        for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
            setattr(product, field, value)
        product.updated_at = utcnow()
        return await ProductRepository.update_product(db, product)

    @staticmethod
    async def delete_product(db: AsyncSession, product_id: int) -> None:
        product = await ProductService.get_product(db, product_id)
        await ProductRepository.delete_product(db, product)
