"""
Product Price Lookup

Read-only view of the product catalog used by order creation.
Catalog CRUD lives elsewhere; this module only resolves prices.
"""

from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from food_ordering.models import Product
from food_ordering.services.pricing import ProductPrice


class ProductCatalog:
    """Resolves product ids to their current price."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id: str) -> Optional[ProductPrice]:
        product = await self.db.get(Product, product_id)
        if product is None or not product.is_available:
            return None
        return ProductPrice(product_id=product.id, price=product.price, name=product.name)

    async def get_products(self, product_ids: Iterable[str]) -> dict[str, ProductPrice]:
        """Resolve many ids in one query; unknown and unavailable ids are absent."""
        ids = set(product_ids)
        if not ids:
            return {}

        result = await self.db.execute(
            select(Product).where(Product.id.in_(ids), Product.is_available.is_(True))
        )
        return {
            p.id: ProductPrice(product_id=p.id, price=p.price, name=p.name)
            for p in result.scalars().all()
        }
