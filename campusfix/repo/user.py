from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from campusfix.models.user import User


async def get_user_by_id(db: AsyncSession, id: int) -> Optional[User]:
    """Получает пользователя по идентификатору"""
    result = await db.execute(select(User).where(User.id == id))
    return result.scalars().first()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Получает пользователя по email"""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalars().first()


async def get_users_with_filters(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 100,
    filters: Optional[Dict[str, Any]] = None,
) -> Tuple[List[User], int]:
    """Получает страницу пользователей и общее количество по фильтрам"""
    conditions = []
    if filters:
        if filters.get("role") is not None:
            conditions.append(User.role == filters["role"])
        if filters.get("search"):
            pattern = f"%{filters['search']}%"
            conditions.append(
                or_(User.first_name.ilike(pattern), User.last_name.ilike(pattern), User.email.ilike(pattern))
            )

    total = await db.scalar(select(func.count(User.id)).where(*conditions))
    result = await db.execute(
        select(User).where(*conditions).order_by(User.last_name, User.first_name, User.id).offset(skip).limit(limit)
    )
    return result.scalars().all(), total or 0


async def create_user_in_db(db: AsyncSession, user: User) -> None:
    """Создает пользователя в базе данных"""
    db.add(user)
    await db.commit()
    await db.refresh(user)


async def update_user_in_db(db: AsyncSession, user: User) -> None:
    """Обновляет пользователя в базе данных"""
    db.add(user)
    await db.commit()
    await db.refresh(user)


async def delete_user_from_db(db: AsyncSession, id: int) -> bool:
    """Удаляет пользователя из базы данных"""
    result = await db.execute(delete(User).where(User.id == id))
    await db.commit()
    return result.rowcount > 0
