import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

import campusfix.repo.user as user_repo
from campusfix.core.exceptions import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from campusfix.core.security import create_access_token, get_password_hash, verify_password
from campusfix.models.user import User, UserRole
from campusfix.schemas.user import PasswordChange, UserCreate, UserRegister, UserUpdate

logger = logging.getLogger(__name__)


async def get(db: AsyncSession, id: int) -> Optional[User]:
    """Получает пользователя по идентификатору"""
    return await user_repo.get_user_by_id(db, id)


async def get_or_404(db: AsyncSession, id: int) -> User:
    user = await user_repo.get_user_by_id(db, id)
    if not user:
        raise NotFoundError("Пользователь не найден")
    return user


async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Получает пользователя по email"""
    return await user_repo.get_user_by_email(db, email)


async def get_multi(
    db: AsyncSession, *, skip: int = 0, limit: int = 100, filters: Optional[Dict[str, Any]] = None
) -> Tuple[List[User], int]:
    """Получает список пользователей с пагинацией"""
    return await user_repo.get_users_with_filters(db, skip, limit, filters)


async def create(db: AsyncSession, *, obj_in: UserCreate) -> User:
    """Создает нового пользователя с хэшированным паролем"""
    if await user_repo.get_user_by_email(db, obj_in.email):
        raise ConflictError(
            "Пользователь с таким email уже существует",
            errors=[{"field": "email", "message": "Email уже используется"}],
        )

    db_obj = User(
        email=obj_in.email,
        password_hash=get_password_hash(obj_in.password),
        role=getattr(obj_in, "role", UserRole.ENGINEER),
        first_name=obj_in.first_name,
        last_name=obj_in.last_name,
        phone=obj_in.phone,
        position=obj_in.position,
        is_active=True,
    )
    await user_repo.create_user_in_db(db, db_obj)
    logger.info(f"User {db_obj.id} created with role {db_obj.role.value}")
    return db_obj


async def register(db: AsyncSession, *, obj_in: UserRegister) -> User:
    """Самостоятельная регистрация всегда выдает роль инженера"""
    return await create(db, obj_in=obj_in)


async def update(db: AsyncSession, *, db_obj: User, obj_in: UserUpdate, current_user: User) -> User:
    """Обновляет профиль. Роль и активность меняет только администратор"""
    obj_data = obj_in.model_dump(exclude_unset=True)

    if current_user.role != UserRole.ADMIN:
        if db_obj.id != current_user.id:
            raise ForbiddenError("У вас нет прав для изменения этого пользователя")
        for field in ("role", "is_active"):
            if field in obj_data and obj_data[field] != getattr(db_obj, field):
                raise ForbiddenError("Изменять роль и статус учетной записи может только администратор")
            obj_data.pop(field, None)

    for field in ("first_name", "last_name", "role", "is_active"):
        if field in obj_data and obj_data[field] is None:
            raise ValidationError(errors=[{"field": field, "message": "Поле не может быть пустым"}])

    for field, value in obj_data.items():
        setattr(db_obj, field, value)

    await user_repo.update_user_in_db(db, db_obj)
    return db_obj


async def change_password(db: AsyncSession, *, db_obj: User, obj_in: PasswordChange) -> User:
    if not verify_password(obj_in.current_password, db_obj.password_hash):
        raise ValidationError(
            "Неверный текущий пароль",
            errors=[{"field": "current_password", "message": "Неверный текущий пароль"}],
        )
    db_obj.password_hash = get_password_hash(obj_in.new_password)
    await user_repo.update_user_in_db(db, db_obj)
    logger.info(f"User {db_obj.id} changed password")
    return db_obj


async def delete(db: AsyncSession, *, id: int, current_user: User) -> bool:
    if id == current_user.id:
        raise ConflictError("Вы не можете удалить свою учетную запись")
    await get_or_404(db, id)
    deleted = await user_repo.delete_user_from_db(db, id)
    logger.info(f"User {id} deleted by {current_user.id}")
    return deleted


async def authenticate(db: AsyncSession, *, email: str, password: str) -> Optional[User]:
    """
    Проверяет пользователя по email и паролю
    """
    user = await get_by_email(db, email=email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def issue_token(user: User) -> str:
    """Токен содержит id, email, роль и имя пользователя"""
    return create_access_token(
        user.id,
        claims={
            "email": user.email,
            "role": user.role.value,
            "first_name": user.first_name,
            "last_name": user.last_name,
        },
    )


async def login(db: AsyncSession, *, email: str, password: str) -> Tuple[User, str]:
    user = await authenticate(db, email=email, password=password)
    if not user:
        logger.info(f"Failed login attempt for {email}")
        raise UnauthorizedError("Неверный email или пароль")
    if not user.is_active:
        raise ForbiddenError("Учетная запись отключена")
    return user, issue_token(user)
