"""
Lookups against the marketplace profile and product tables
"""
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Profile, Product


async def get_profile(db: AsyncSession, user_id: str) -> Optional[Profile]:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def get_products(db: AsyncSession, product_ids: Sequence[str]) -> List[Product]:
    if not product_ids:
        return []
    result = await db.execute(select(Product).where(Product.id.in_(list(product_ids))))
    return list(result.scalars().all())


async def get_product(db: AsyncSession, product_id: str) -> Optional[Product]:
    result = await db.execute(select(Product).where(Product.id == product_id))
    return result.scalar_one_or_none()
