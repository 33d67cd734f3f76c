from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from db.models import ServicePackage


async def create_package(session: AsyncSession, package_data: dict) -> ServicePackage:
    new_package = ServicePackage(**package_data)
    session.add(new_package)
    await session.flush()
    return new_package


async def get_package_by_id(session: AsyncSession, package_id: int) -> Optional[ServicePackage]:
    return await session.get(ServicePackage, package_id)


async def get_all_packages(session: AsyncSession) -> List[ServicePackage]:
    stmt = select(ServicePackage).order_by(ServicePackage.price)
    result = await session.execute(stmt)
    return result.scalars().all()
