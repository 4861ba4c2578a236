from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

# Связи объявлены отдельно и должны быть подключены до построения selectinload
from campusfix.models import relationships  # noqa: F401
from campusfix.models.defect import Attachment, Comment, Defect, DefectHistory, DefectPriority, DefectStatus
from campusfix.models.project import Project, ProjectStage

# Порядок статусов по жизненному циклу и приоритетов по важности,
# чтобы сортировка шла не по алфавиту русских строк
STATUS_ORDER = {status: index for index, status in enumerate(DefectStatus)}
PRIORITY_ORDER = {priority: index for index, priority in enumerate(DefectPriority)}

SORT_FIELDS = {
    "id": Defect.id,
    "title": Defect.title,
    "status": case(STATUS_ORDER, value=Defect.status),
    "priority": case(PRIORITY_ORDER, value=Defect.priority),
    "created_at": Defect.created_at,
    "updated_at": Defect.updated_at,
    "due_date": Defect.due_date,
    "closed_at": Defect.closed_at,
}
DEFAULT_SORT_FIELD = "created_at"

# Связанные объекты для списка и карточки дефекта
DEFECT_OPTIONS = (
    selectinload(Defect.project),
    selectinload(Defect.stage),
    selectinload(Defect.reporter),
    selectinload(Defect.assignee),
)


def build_defect_conditions(filters: Optional[Dict[str, Any]]) -> list:
    """Преобразует словарь фильтров в список условий WHERE"""
    conditions = []
    if not filters:
        return conditions

    for key, column in (
        ("project_id", Defect.project_id),
        ("stage_id", Defect.stage_id),
        ("status", Defect.status),
        ("priority", Defect.priority),
        ("assigned_to", Defect.assigned_to),
        ("reported_by", Defect.reported_by),
    ):
        if filters.get(key) is not None:
            conditions.append(column == filters[key])

    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        conditions.append(or_(Defect.title.ilike(pattern), Defect.description.ilike(pattern)))
    return conditions


def build_order_by(sort_by: Optional[str], sort_order: Optional[str]) -> list:
    """Сортировка только по разрешенным полям; неизвестное поле заменяется на created_at"""
    column = SORT_FIELDS.get(sort_by or DEFAULT_SORT_FIELD, SORT_FIELDS[DEFAULT_SORT_FIELD])
    if (sort_order or "desc").lower() == "asc":
        return [column.asc(), Defect.id.asc()]
    return [column.desc(), Defect.id.desc()]


async def get_defect_by_id(db: AsyncSession, id: int, with_details: bool = False) -> Optional[Defect]:
    """Получает дефект со связанными объектами; with_details добавляет комментарии и вложения"""
    options = list(DEFECT_OPTIONS)
    if with_details:
        options.append(selectinload(Defect.comments).selectinload(Comment.author))
        options.append(selectinload(Defect.attachments).selectinload(Attachment.uploader))
    result = await db.execute(
        select(Defect).where(Defect.id == id).options(*options).execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_defects_with_filters(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 20,
    filters: Optional[Dict[str, Any]] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> Tuple[List[Defect], int]:
    """Получает страницу дефектов и общее количество по тем же фильтрам"""
    conditions = build_defect_conditions(filters)
    total = await db.scalar(select(func.count(Defect.id)).where(*conditions))
    result = await db.execute(
        select(Defect)
        .where(*conditions)
        .options(*DEFECT_OPTIONS)
        .order_by(*build_order_by(sort_by, sort_order))
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all(), total or 0


async def get_all_defects(
    db: AsyncSession,
    filters: Optional[Dict[str, Any]] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> List[Defect]:
    """Получает все дефекты по фильтрам без пагинации (для экспорта)"""
    result = await db.execute(
        select(Defect)
        .where(*build_defect_conditions(filters))
        .options(*DEFECT_OPTIONS)
        .order_by(*build_order_by(sort_by, sort_order))
    )
    return result.scalars().all()


async def get_overdue_defects(db: AsyncSession, today: date) -> List[Defect]:
    """Открытые дефекты с истекшим сроком устранения"""
    result = await db.execute(
        select(Defect)
        .where(
            Defect.due_date < today,
            Defect.status.notin_([DefectStatus.CLOSED, DefectStatus.REJECTED]),
        )
        .options(selectinload(Defect.assignee), selectinload(Defect.reporter))
        .order_by(Defect.due_date)
    )
    return result.scalars().all()


async def stage_belongs_to_project(db: AsyncSession, stage_id: int, project_id: int) -> bool:
    count = await db.scalar(
        select(func.count(ProjectStage.id)).where(ProjectStage.id == stage_id, ProjectStage.project_id == project_id)
    )
    return bool(count)


async def create_defect_in_db(db: AsyncSession, defect: Defect, history: Sequence[DefectHistory] = ()) -> None:
    """Создает дефект и записи журнала одной транзакцией"""
    db.add(defect)
    await db.flush()
    for entry in history:
        entry.defect_id = defect.id
    db.add_all(list(history))
    await db.commit()


async def update_defect_in_db(db: AsyncSession, defect: Defect, history: Sequence[DefectHistory] = ()) -> None:
    """Сохраняет изменения дефекта и записи журнала одной транзакцией"""
    db.add(defect)
    db.add_all(list(history))
    await db.commit()


async def delete_defect_from_db(db: AsyncSession, id: int) -> bool:
    """Удаляет дефект вместе с комментариями, вложениями и журналом"""
    await db.execute(delete(Comment).where(Comment.defect_id == id))
    await db.execute(delete(Attachment).where(Attachment.defect_id == id))
    await db.execute(delete(DefectHistory).where(DefectHistory.defect_id == id))
    result = await db.execute(delete(Defect).where(Defect.id == id))
    await db.commit()
    return result.rowcount > 0


async def get_history_by_defect_id(db: AsyncSession, defect_id: int) -> List[DefectHistory]:
    result = await db.execute(
        select(DefectHistory)
        .where(DefectHistory.defect_id == defect_id)
        .options(selectinload(DefectHistory.user))
        .order_by(DefectHistory.created_at.desc(), DefectHistory.id.desc())
    )
    return result.scalars().all()


# Функции для работы с комментариями
async def get_comment_by_id(db: AsyncSession, comment_id: int) -> Optional[Comment]:
    result = await db.execute(
        select(Comment)
        .where(Comment.id == comment_id)
        .options(selectinload(Comment.author))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_comments_by_defect_id(db: AsyncSession, defect_id: int) -> List[Comment]:
    """Получает комментарии к дефекту в порядке добавления"""
    result = await db.execute(
        select(Comment)
        .where(Comment.defect_id == defect_id)
        .options(selectinload(Comment.author))
        .order_by(Comment.created_at, Comment.id)
    )
    return result.scalars().all()


async def save_comment_in_db(db: AsyncSession, comment: Comment) -> None:
    db.add(comment)
    await db.commit()


async def delete_comment_from_db(db: AsyncSession, comment_id: int) -> bool:
    result = await db.execute(delete(Comment).where(Comment.id == comment_id))
    await db.commit()
    return result.rowcount > 0


# Статистика
async def count_defects_by_status(db: AsyncSession, filters: Optional[Dict[str, Any]] = None) -> List[Tuple]:
    result = await db.execute(
        select(Defect.status, func.count(Defect.id)).where(*build_defect_conditions(filters)).group_by(Defect.status)
    )
    return result.all()


async def count_defects_by_priority(db: AsyncSession, filters: Optional[Dict[str, Any]] = None) -> List[Tuple]:
    result = await db.execute(
        select(Defect.priority, func.count(Defect.id))
        .where(*build_defect_conditions(filters))
        .group_by(Defect.priority)
    )
    return result.all()


async def count_defects_by_project(db: AsyncSession, filters: Optional[Dict[str, Any]] = None) -> List[Tuple]:
    result = await db.execute(
        select(Project.id, Project.name, func.count(Defect.id))
        .outerjoin(Defect, and_(Defect.project_id == Project.id, *build_defect_conditions(filters)))
        .group_by(Project.id, Project.name)
        .order_by(func.count(Defect.id).desc(), Project.name)
    )
    return result.all()
