from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.api.deps import get_current_user, pagination, require_roles
from campusfix.db.session import get_db
from campusfix.models.project import ProjectPriority, ProjectStatus
from campusfix.models.user import User, UserRole
from campusfix.schemas.common import MessageResponse, pages_count
from campusfix.schemas.project import (
    ProjectCreate,
    ProjectListResponse,
    ProjectResponse,
    ProjectUpdate,
    StageCreate,
    StageListResponse,
    StageResponse,
    StageUpdate,
)
from campusfix.services import project as project_service

router = APIRouter()

PROJECT_EDITORS = (UserRole.ADMIN, UserRole.MANAGER)
STAGE_EDITORS = (UserRole.ADMIN, UserRole.MANAGER, UserRole.ENGINEER)


@router.get("", response_model=ProjectListResponse)
async def read_projects(
    db: AsyncSession = Depends(get_db),
    page: dict = Depends(pagination),
    status: Optional[ProjectStatus] = None,
    priority: Optional[ProjectPriority] = None,
    manager_id: Optional[int] = None,
    search: Optional[str] = Query(None, max_length=100),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Список проектов с фильтрацией"""
    projects, total = await project_service.get_multi(
        db,
        skip=page["skip"],
        limit=page["limit"],
        filters={"status": status, "priority": priority, "manager_id": manager_id, "search": search},
    )
    return {
        "success": True,
        "projects": projects,
        "total": total,
        "page": page["page"],
        "limit": page["limit"],
        "pages": pages_count(total, page["limit"]),
    }


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    *,
    db: AsyncSession = Depends(get_db),
    project_in: ProjectCreate,
    current_user: User = Depends(require_roles(*PROJECT_EDITORS)),
) -> Any:
    """Создать новый проект"""
    project = await project_service.create(db, obj_in=project_in)
    return {
        "success": True,
        "message": "Проект успешно создан",
        "project": await project_service.get_detail(db, project.id),
    }


@router.get("/{project_id}", response_model=ProjectResponse)
async def read_project(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Проект с этапами"""
    return {"success": True, "project": await project_service.get_detail(db, project_id)}


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    *,
    db: AsyncSession = Depends(get_db),
    project_id: int,
    project_in: ProjectUpdate,
    current_user: User = Depends(require_roles(*PROJECT_EDITORS)),
) -> Any:
    """Обновить проект"""
    project = await project_service.get_or_404(db, project_id)
    await project_service.update(db, db_obj=project, obj_in=project_in)
    return {
        "success": True,
        "message": "Проект успешно обновлен",
        "project": await project_service.get_detail(db, project_id),
    }


@router.delete("/{project_id}", response_model=MessageResponse)
async def delete_project(
    *,
    db: AsyncSession = Depends(get_db),
    project_id: int,
    current_user: User = Depends(require_roles(*PROJECT_EDITORS)),
) -> Any:
    """Удалить проект (только если к нему не привязаны дефекты)"""
    await project_service.delete(db, id=project_id)
    return {"success": True, "message": "Проект успешно удален"}


# Эндпоинты для этапов проекта
@router.get("/{project_id}/stages", response_model=StageListResponse)
async def read_stages(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    return {"success": True, "stages": await project_service.get_stages(db, project_id=project_id)}


@router.post("/{project_id}/stages", response_model=StageResponse, status_code=status.HTTP_201_CREATED)
async def create_stage(
    *,
    db: AsyncSession = Depends(get_db),
    project_id: int,
    stage_in: StageCreate,
    current_user: User = Depends(require_roles(*STAGE_EDITORS)),
) -> Any:
    stage = await project_service.create_stage(db, project_id=project_id, obj_in=stage_in)
    return {"success": True, "message": "Этап успешно создан", "stage": stage}


@router.get("/{project_id}/stages/{stage_id}", response_model=StageResponse)
async def read_stage(
    project_id: int,
    stage_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    stage = await project_service.get_stage_or_404(db, project_id=project_id, stage_id=stage_id)
    return {"success": True, "stage": stage}


@router.put("/{project_id}/stages/{stage_id}", response_model=StageResponse)
async def update_stage(
    *,
    db: AsyncSession = Depends(get_db),
    project_id: int,
    stage_id: int,
    stage_in: StageUpdate,
    current_user: User = Depends(require_roles(*STAGE_EDITORS)),
) -> Any:
    stage = await project_service.get_stage_or_404(db, project_id=project_id, stage_id=stage_id)
    stage = await project_service.update_stage(db, db_obj=stage, obj_in=stage_in)
    return {"success": True, "message": "Этап успешно обновлен", "stage": stage}


@router.delete("/{project_id}/stages/{stage_id}", response_model=MessageResponse)
async def delete_stage(
    *,
    db: AsyncSession = Depends(get_db),
    project_id: int,
    stage_id: int,
    current_user: User = Depends(require_roles(*PROJECT_EDITORS)),
) -> Any:
    """Удалить этап (только если к нему не привязаны дефекты)"""
    await project_service.delete_stage(db, project_id=project_id, stage_id=stage_id)
    return {"success": True, "message": "Этап успешно удален"}
