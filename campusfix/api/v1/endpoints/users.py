from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.api.deps import get_current_user, pagination, require_roles
from campusfix.core.exceptions import ForbiddenError
from campusfix.db.session import get_db
from campusfix.models.user import User, UserRole
from campusfix.schemas.common import MessageResponse, pages_count
from campusfix.schemas.user import PasswordChange, UserCreate, UserListResponse, UserResponse, UserUpdate
from campusfix.services import user as user_service

router = APIRouter()


@router.get("", response_model=UserListResponse)
async def read_users(
    db: AsyncSession = Depends(get_db),
    page: dict = Depends(pagination),
    role: Optional[UserRole] = None,
    search: Optional[str] = Query(None, max_length=100),
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
) -> Any:
    """Список пользователей (администратор, менеджер)"""
    users, total = await user_service.get_multi(
        db, skip=page["skip"], limit=page["limit"], filters={"role": role, "search": search}
    )
    return {
        "success": True,
        "users": users,
        "total": total,
        "page": page["page"],
        "limit": page["limit"],
        "pages": pages_count(total, page["limit"]),
    }


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    *,
    db: AsyncSession = Depends(get_db),
    user_in: UserCreate,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> Any:
    """Создание пользователя администратором"""
    user = await user_service.create(db, obj_in=user_in)
    return {"success": True, "message": "Пользователь успешно создан", "user": user}


@router.put("/me/password", response_model=MessageResponse)
async def change_password(
    *,
    db: AsyncSession = Depends(get_db),
    password_in: PasswordChange,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Смена собственного пароля"""
    await user_service.change_password(db, db_obj=current_user, obj_in=password_in)
    return {"success": True, "message": "Пароль успешно изменен"}


@router.get("/{user_id}", response_model=UserResponse)
async def read_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Пользователь по ID: администратор, менеджер или сам пользователь"""
    if current_user.role not in (UserRole.ADMIN, UserRole.MANAGER) and current_user.id != user_id:
        raise ForbiddenError("У вас нет прав для просмотра этой информации")
    user = await user_service.get_or_404(db, user_id)
    return {"success": True, "user": user}


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: int,
    user_in: UserUpdate,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Обновление профиля: администратор или сам пользователь"""
    if current_user.role != UserRole.ADMIN and current_user.id != user_id:
        raise ForbiddenError("У вас нет прав для изменения этого пользователя")
    user = await user_service.get_or_404(db, user_id)
    user = await user_service.update(db, db_obj=user, obj_in=user_in, current_user=current_user)
    return {"success": True, "message": "Данные пользователя успешно обновлены", "user": user}


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: int,
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> Any:
    """Удаление пользователя администратором (кроме самого себя)"""
    await user_service.delete(db, id=user_id, current_user=current_user)
    return {"success": True, "message": "Пользователь успешно удален"}
