"""Clic-Tools — ProductService: lookups against the ERP product catalog."""
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clictools.models.product import Product

MIN_SEARCH_LENGTH = 2


class ProductService:

    @staticmethod
    async def get_by_id(db: AsyncSession, product_id: str) -> Product | None:
        result = await db.execute(select(Product).where(Product.id == product_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def search(db: AsyncSession, term: str | None, limit: int = 20) -> list[Product]:
        """Case-insensitive match on code or description. Short terms return nothing."""
        term = (term or "").strip()
        if len(term) < MIN_SEARCH_LENGTH:
            return []
        pattern = f"%{term.lower()}%"
        result = await db.execute(
            select(Product)
            .where(
                Product.is_active == True,
                or_(func.lower(Product.id).like(pattern), func.lower(Product.description).like(pattern)),
            )
            .order_by(Product.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    def describe(product: Product) -> str:
        return f"[{product.id}] {product.description}"
