from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.api.deps import get_current_user, pagination, require_roles
from campusfix.db.session import get_db
from campusfix.models.defect import DefectPriority, DefectStatus
from campusfix.models.user import User, UserRole
from campusfix.schemas.common import MessageResponse, pages_count
from campusfix.schemas.defect import (
    CommentCreate,
    CommentListResponse,
    CommentResponse,
    CommentUpdate,
    DefectCreate,
    DefectDetailResponse,
    DefectListResponse,
    DefectResponse,
    DefectUpdate,
    HistoryResponse,
)
from campusfix.services import comment as comment_service
from campusfix.services import defect as defect_service

router = APIRouter()


@router.get("", response_model=DefectListResponse)
async def read_defects(
    db: AsyncSession = Depends(get_db),
    page: dict = Depends(pagination),
    project_id: Optional[int] = None,
    stage_id: Optional[int] = None,
    status: Optional[DefectStatus] = None,
    priority: Optional[DefectPriority] = None,
    assigned_to: Optional[int] = None,
    reported_by: Optional[int] = None,
    search: Optional[str] = Query(None, max_length=255),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query("desc", alias="sortOrder", pattern="^(asc|desc|ASC|DESC)$"),
    current_user: User = Depends(get_current_user),
) -> Any:
    """
    Список дефектов с фильтрацией, поиском по названию и описанию, сортировкой и пагинацией.
    Неизвестное поле сортировки заменяется на created_at.
    """
    filters = {
        "project_id": project_id,
        "stage_id": stage_id,
        "status": status,
        "priority": priority,
        "assigned_to": assigned_to,
        "reported_by": reported_by,
        "search": search,
    }
    defects, total = await defect_service.get_multi(
        db, page=page["page"], limit=page["limit"], filters=filters, sort_by=sort_by, sort_order=sort_order
    )
    return {
        "success": True,
        "defects": defects,
        "total": total,
        "page": page["page"],
        "limit": page["limit"],
        "pages": pages_count(total, page["limit"]),
    }


@router.post("", response_model=DefectResponse, status_code=status.HTTP_201_CREATED)
async def create_defect(
    *,
    db: AsyncSession = Depends(get_db),
    defect_in: DefectCreate,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Создать дефект; автором становится текущий пользователь"""
    defect = await defect_service.create(db, obj_in=defect_in, current_user=current_user)
    return {"success": True, "message": "Дефект успешно создан", "defect": defect}


@router.get("/{defect_id}", response_model=DefectDetailResponse)
async def read_defect(
    defect_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Дефект с комментариями и вложениями"""
    defect = await defect_service.get_or_404(db, defect_id, with_details=True)
    return {"success": True, "defect": defect}


@router.put("/{defect_id}", response_model=DefectResponse)
async def update_defect(
    *,
    db: AsyncSession = Depends(get_db),
    defect_id: int,
    defect_in: DefectUpdate,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Частичное обновление дефекта; смена статуса проверяется по правилам переходов"""
    defect = await defect_service.get_or_404(db, defect_id)
    defect = await defect_service.update(db, db_obj=defect, obj_in=defect_in, current_user=current_user)
    return {"success": True, "message": "Дефект успешно обновлен", "defect": defect}


@router.delete("/{defect_id}", response_model=MessageResponse)
async def delete_defect(
    *,
    db: AsyncSession = Depends(get_db),
    defect_id: int,
    current_user: User = Depends(require_roles(UserRole.ADMIN, UserRole.MANAGER)),
) -> Any:
    await defect_service.delete(db, id=defect_id, current_user=current_user)
    return {"success": True, "message": "Дефект успешно удален"}


@router.get("/{defect_id}/history", response_model=HistoryResponse)
async def read_defect_history(
    defect_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Журнал изменений дефекта, новые записи первыми"""
    return {"success": True, "history": await defect_service.get_history(db, defect_id=defect_id)}


# Эндпоинты для комментариев
@router.get("/{defect_id}/comments", response_model=CommentListResponse)
async def read_defect_comments(
    defect_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    return {"success": True, "comments": await comment_service.get_by_defect(db, defect_id=defect_id)}


@router.post("/{defect_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def create_defect_comment(
    *,
    db: AsyncSession = Depends(get_db),
    defect_id: int,
    comment_in: CommentCreate,
    current_user: User = Depends(get_current_user),
) -> Any:
    comment = await comment_service.create(db, defect_id=defect_id, obj_in=comment_in, current_user=current_user)
    return {"success": True, "message": "Комментарий добавлен", "comment": comment}


@router.put("/{defect_id}/comments/{comment_id}", response_model=CommentResponse)
async def update_defect_comment(
    *,
    db: AsyncSession = Depends(get_db),
    defect_id: int,
    comment_id: int,
    comment_in: CommentUpdate,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Изменить комментарий: автор, администратор или менеджер"""
    comment = await comment_service.get_or_404(db, defect_id=defect_id, comment_id=comment_id)
    comment = await comment_service.update(db, db_obj=comment, obj_in=comment_in, current_user=current_user)
    return {"success": True, "message": "Комментарий обновлен", "comment": comment}


@router.delete("/{defect_id}/comments/{comment_id}", response_model=MessageResponse)
async def delete_defect_comment(
    *,
    db: AsyncSession = Depends(get_db),
    defect_id: int,
    comment_id: int,
    current_user: User = Depends(get_current_user),
) -> Any:
    """Удалить комментарий: автор, администратор или менеджер"""
    comment = await comment_service.get_or_404(db, defect_id=defect_id, comment_id=comment_id)
    await comment_service.delete(db, db_obj=comment, current_user=current_user)
    return {"success": True, "message": "Комментарий удален"}
