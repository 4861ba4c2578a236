from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

# Связи объявлены отдельно и должны быть подключены до построения selectinload
from campusfix.models import relationships  # noqa: F401
from campusfix.models.defect import Defect
from campusfix.models.project import Project, ProjectStage


async def get_project_by_id(db: AsyncSession, id: int, with_stages: bool = False) -> Optional[Project]:
    """Получает проект с руководителем и, при необходимости, с этапами"""
    options = [selectinload(Project.manager)]
    if with_stages:
        options.append(selectinload(Project.stages))
    result = await db.execute(
        select(Project).where(Project.id == id).options(*options).execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def project_exists(db: AsyncSession, id: int) -> bool:
    return await db.scalar(select(func.count(Project.id)).where(Project.id == id)) > 0


async def get_projects_with_filters(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 100,
    filters: Optional[Dict[str, Any]] = None,
) -> Tuple[List[Project], int]:
    """Получает страницу проектов и общее количество по фильтрам"""
    conditions = []
    if filters:
        if filters.get("status") is not None:
            conditions.append(Project.status == filters["status"])
        if filters.get("priority") is not None:
            conditions.append(Project.priority == filters["priority"])
        if filters.get("manager_id") is not None:
            conditions.append(Project.manager_id == filters["manager_id"])
        if filters.get("search"):
            pattern = f"%{filters['search']}%"
            conditions.append(
                or_(Project.name.ilike(pattern), Project.description.ilike(pattern), Project.address.ilike(pattern))
            )

    total = await db.scalar(select(func.count(Project.id)).where(*conditions))
    result = await db.execute(
        select(Project)
        .where(*conditions)
        .options(selectinload(Project.manager))
        .order_by(Project.created_at.desc(), Project.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all(), total or 0


async def create_project_in_db(db: AsyncSession, project: Project) -> None:
    db.add(project)
    await db.commit()
    await db.refresh(project)


async def update_project_in_db(db: AsyncSession, project: Project) -> None:
    db.add(project)
    await db.commit()
    await db.refresh(project)


async def count_project_defects(db: AsyncSession, project_id: int) -> int:
    """Количество дефектов, ссылающихся на проект"""
    return await db.scalar(select(func.count(Defect.id)).where(Defect.project_id == project_id)) or 0


async def delete_project_from_db(db: AsyncSession, id: int) -> bool:
    """Удаляет проект вместе с его этапами одной транзакцией"""
    await db.execute(delete(ProjectStage).where(ProjectStage.project_id == id))
    result = await db.execute(delete(Project).where(Project.id == id))
    await db.commit()
    return result.rowcount > 0


# Функции для работы с этапами
async def get_stage_by_id(db: AsyncSession, project_id: int, stage_id: int) -> Optional[ProjectStage]:
    """Получает этап, принадлежащий указанному проекту"""
    result = await db.execute(
        select(ProjectStage)
        .where(ProjectStage.id == stage_id, ProjectStage.project_id == project_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_stages_by_project(db: AsyncSession, project_id: int) -> List[ProjectStage]:
    result = await db.execute(
        select(ProjectStage)
        .where(ProjectStage.project_id == project_id)
        .order_by(ProjectStage.start_date, ProjectStage.id)
    )
    return result.scalars().all()


async def create_stage_in_db(db: AsyncSession, stage: ProjectStage) -> None:
    db.add(stage)
    await db.commit()
    await db.refresh(stage)


async def update_stage_in_db(db: AsyncSession, stage: ProjectStage) -> None:
    db.add(stage)
    await db.commit()
    await db.refresh(stage)


async def count_stage_defects(db: AsyncSession, stage_id: int) -> int:
    """Количество дефектов, привязанных к этапу"""
    return await db.scalar(select(func.count(Defect.id)).where(Defect.stage_id == stage_id)) or 0


async def delete_stage_from_db(db: AsyncSession, stage_id: int) -> bool:
    result = await db.execute(delete(ProjectStage).where(ProjectStage.id == stage_id))
    await db.commit()
    return result.rowcount > 0
