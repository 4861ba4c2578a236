import logging
from typing import Optional

from fastapi import Depends, Query
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.core.config import settings
from campusfix.core.exceptions import ForbiddenError, UnauthorizedError
from campusfix.core.security import decode_access_token
from campusfix.db.session import get_db
from campusfix.models.user import User, UserRole
from campusfix.services import user as user_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)


async def get_token(
    bearer: Optional[str] = Depends(oauth2_scheme),
    token: Optional[str] = Query(None, include_in_schema=False),
) -> Optional[str]:
    """Токен из заголовка Authorization или, для ссылок на файлы, из параметра ?token="""
    return bearer or token


async def authenticate_token(db: AsyncSession, token: str) -> User:
    try:
        payload = decode_access_token(token)
        user_id = int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise UnauthorizedError("Недействительный токен")

    # Пользователь перечитывается из базы: роль могла измениться после выдачи токена
    user = await user_service.get(db, id=user_id)
    if not user or not user.is_active:
        raise UnauthorizedError("Недействительный токен")
    return user


async def get_current_user(db: AsyncSession = Depends(get_db), token: Optional[str] = Depends(get_token)) -> User:
    if not token:
        raise UnauthorizedError()
    return await authenticate_token(db, token)


def require_roles(*roles: UserRole):
    """Зависимость, пропускающая только пользователей с одной из ролей"""

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.info(f"User {current_user.id} ({current_user.role.value}) denied: requires {[r.value for r in roles]}")
            raise ForbiddenError()
        return current_user

    return checker


def pagination(
    page: int = Query(1, ge=1, description="Номер страницы, начиная с 1"),
    limit: int = Query(20, ge=1, le=100, description="Размер страницы"),
) -> dict:
    return {"page": page, "limit": limit, "skip": (page - 1) * limit}
