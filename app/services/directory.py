"""Read-only lookups against the building/intercom/user directory."""

from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Building, Intercom, User


async def get_intercom(db: AsyncSession, intercom_id: int) -> Intercom | None:
    return await db.get(Intercom, intercom_id)


async def get_building(db: AsyncSession, building_id: int) -> Building | None:
    return await db.get(Building, building_id)


async def get_user(db: AsyncSession, user_id: int) -> User | None:
    return await db.get(User, user_id)
