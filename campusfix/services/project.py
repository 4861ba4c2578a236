import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.cache import client as cache
from campusfix.core.exceptions import ConflictError, NotFoundError, ValidationError
from campusfix.models.project import Project, ProjectStage
from campusfix.models.user import UserRole
from campusfix.repo import project as project_repo
from campusfix.repo import user as user_repo
from campusfix.schemas.project import ProjectCreate, ProjectUpdate, ProjectWithStages, StageCreate, StageUpdate

logger = logging.getLogger(__name__)

PROJECT_CACHE_TTL = 1800


def project_cache_key(project_id: int) -> str:
    return f"project:{project_id}"


async def _check_manager(db: AsyncSession, manager_id: Optional[int]) -> None:
    if manager_id is None:
        return
    manager = await user_repo.get_user_by_id(db, manager_id)
    if not manager:
        raise ValidationError(errors=[{"field": "manager_id", "message": "Пользователь не найден"}])
    if manager.role not in (UserRole.ADMIN, UserRole.MANAGER):
        raise ValidationError(
            errors=[{"field": "manager_id", "message": "Руководителем проекта может быть только менеджер"}]
        )


def _check_dates(start_date, end_date) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError(
            errors=[{"field": "end_date", "message": "Дата окончания не может быть раньше даты начала"}]
        )


async def get(db: AsyncSession, id: int) -> Optional[Project]:
    return await project_repo.get_project_by_id(db, id)


async def get_or_404(db: AsyncSession, id: int) -> Project:
    project = await project_repo.get_project_by_id(db, id)
    if not project:
        raise NotFoundError("Проект не найден")
    return project


async def get_detail(db: AsyncSession, id: int) -> ProjectWithStages:
    """
    Проект с этапами. Сначала проверяем кэш, затем базу; результат кэшируется на 30 минут.
    """
    cache_key = project_cache_key(id)
    cached_project = await cache.get_cache(cache_key)
    if cached_project:
        try:
            return ProjectWithStages.model_validate(cached_project)
        except PydanticValidationError as e:
            logger.warning(f"Error deserializing cached project {id}: {e}")
            await cache.delete_cache(cache_key)

    project = await project_repo.get_project_by_id(db, id, with_stages=True)
    if not project:
        raise NotFoundError("Проект не найден")

    detail = ProjectWithStages.model_validate(project)
    await cache.set_cache(cache_key, detail.model_dump(mode="json"), expires=PROJECT_CACHE_TTL)
    return detail


async def get_multi(
    db: AsyncSession, *, skip: int = 0, limit: int = 100, filters: Optional[Dict[str, Any]] = None
) -> Tuple[List[Project], int]:
    return await project_repo.get_projects_with_filters(db, skip, limit, filters)


async def create(db: AsyncSession, *, obj_in: ProjectCreate) -> Project:
    await _check_manager(db, obj_in.manager_id)
    db_obj = Project(**obj_in.model_dump())
    await project_repo.create_project_in_db(db, db_obj)
    logger.info(f"Project {db_obj.id} created")
    return await project_repo.get_project_by_id(db, db_obj.id)


async def update(db: AsyncSession, *, db_obj: Project, obj_in: ProjectUpdate) -> Project:
    obj_data = obj_in.model_dump(exclude_unset=True)
    for field in ("name", "status", "priority"):
        if field in obj_data and obj_data[field] is None:
            raise ValidationError(errors=[{"field": field, "message": "Поле не может быть пустым"}])
    if "manager_id" in obj_data:
        await _check_manager(db, obj_data["manager_id"])
    _check_dates(obj_data.get("start_date", db_obj.start_date), obj_data.get("end_date", db_obj.end_date))

    for field, value in obj_data.items():
        setattr(db_obj, field, value)
    await project_repo.update_project_in_db(db, db_obj)

    await cache.delete_cache(project_cache_key(db_obj.id))
    return await project_repo.get_project_by_id(db, db_obj.id)


async def delete(db: AsyncSession, *, id: int) -> bool:
    """Удаляет проект; запрещено, пока на него ссылается хотя бы один дефект"""
    await get_or_404(db, id)

    defects_count = await project_repo.count_project_defects(db, id)
    if defects_count > 0:
        raise ConflictError(
            f"Невозможно удалить проект: с ним связано дефектов: {defects_count}. "
            "Сначала удалите или перенесите дефекты."
        )

    result = await project_repo.delete_project_from_db(db, id)
    await cache.delete_cache(project_cache_key(id))
    logger.info(f"Project {id} deleted")
    return result


# Функции для этапов
async def get_stages(db: AsyncSession, *, project_id: int) -> List[ProjectStage]:
    await get_or_404(db, project_id)
    return await project_repo.get_stages_by_project(db, project_id)


async def get_stage_or_404(db: AsyncSession, *, project_id: int, stage_id: int) -> ProjectStage:
    stage = await project_repo.get_stage_by_id(db, project_id, stage_id)
    if not stage:
        raise NotFoundError("Этап проекта не найден")
    return stage


async def create_stage(db: AsyncSession, *, project_id: int, obj_in: StageCreate) -> ProjectStage:
    await get_or_404(db, project_id)
    db_obj = ProjectStage(project_id=project_id, **obj_in.model_dump())
    await project_repo.create_stage_in_db(db, db_obj)
    await cache.delete_cache(project_cache_key(project_id))
    logger.info(f"Stage {db_obj.id} created in project {project_id}")
    return db_obj


async def update_stage(db: AsyncSession, *, db_obj: ProjectStage, obj_in: StageUpdate) -> ProjectStage:
    obj_data = obj_in.model_dump(exclude_unset=True)
    for field in ("name", "status"):
        if field in obj_data and obj_data[field] is None:
            raise ValidationError(errors=[{"field": field, "message": "Поле не может быть пустым"}])
    _check_dates(obj_data.get("start_date", db_obj.start_date), obj_data.get("end_date", db_obj.end_date))

    for field, value in obj_data.items():
        setattr(db_obj, field, value)
    await project_repo.update_stage_in_db(db, db_obj)
    await cache.delete_cache(project_cache_key(db_obj.project_id))
    return db_obj


async def delete_stage(db: AsyncSession, *, project_id: int, stage_id: int) -> bool:
    """Удаляет этап; запрещено, пока к нему привязаны дефекты"""
    await get_stage_or_404(db, project_id=project_id, stage_id=stage_id)

    defects_count = await project_repo.count_stage_defects(db, stage_id)
    if defects_count > 0:
        raise ConflictError(
            f"Невозможно удалить этап: к нему привязано дефектов: {defects_count}. "
            "Сначала удалите или перенесите дефекты."
        )

    result = await project_repo.delete_stage_from_db(db, stage_id)
    await cache.delete_cache(project_cache_key(project_id))
    logger.info(f"Stage {stage_id} of project {project_id} deleted")
    return result
