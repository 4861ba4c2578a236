import enum
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

import campusfix.repo.attachment as attachment_repo
import campusfix.repo.defect as defect_repo
from campusfix.core.exceptions import (
    ForbiddenError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from campusfix.messaging import producers
from campusfix.models.defect import Defect, DefectHistory, DefectStatus
from campusfix.models.user import User, UserRole
from campusfix.repo import project as project_repo
from campusfix.repo import user as user_repo
from campusfix.schemas.defect import DefectCreate, DefectUpdate
from campusfix.services.transitions import is_transition_allowed
from campusfix.utils import files

logger = logging.getLogger(__name__)

# Поля, которые нельзя очистить передачей null
REQUIRED_FIELDS = ("title", "project_id", "status", "priority")


def get_utc_now():
    return datetime.now(timezone.utc)


def history_value(value: Any) -> Optional[str]:
    """Значение поля в текстовом виде для журнала изменений"""
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def can_edit_fields(defect: Defect, user: User) -> bool:
    """Менять поля дефекта могут администратор, менеджер, автор и исполнитель"""
    if user.role in (UserRole.ADMIN, UserRole.MANAGER):
        return True
    return user.id in (defect.reported_by, defect.assigned_to)


def event_payload(defect: Defect) -> Dict[str, Any]:
    return {
        "id": defect.id,
        "title": defect.title,
        "status": defect.status.value,
        "priority": defect.priority.value,
        "project_id": defect.project_id,
        "assigned_to": defect.assigned_to,
        "assignee_email": defect.assignee.email if defect.assignee else None,
        "reported_by": defect.reported_by,
        "reporter_email": defect.reporter.email if defect.reporter else None,
    }


async def _check_references(
    db: AsyncSession, *, project_id: int, stage_id: Optional[int], assigned_to: Optional[int]
) -> None:
    """Проверяет ссылки на проект, этап и исполнителя; все ошибки возвращаются вместе"""
    errors = []
    if not await project_repo.project_exists(db, project_id):
        errors.append({"field": "project_id", "message": "Проект не найден"})
    elif stage_id is not None and not await defect_repo.stage_belongs_to_project(db, stage_id, project_id):
        errors.append({"field": "stage_id", "message": "Этап не найден в указанном проекте"})
    if assigned_to is not None:
        assignee = await user_repo.get_user_by_id(db, assigned_to)
        if not assignee or not assignee.is_active:
            errors.append({"field": "assigned_to", "message": "Исполнитель не найден"})
    if errors:
        raise ValidationError(errors=errors)


async def get(db: AsyncSession, id: int, with_details: bool = False) -> Optional[Defect]:
    return await defect_repo.get_defect_by_id(db, id, with_details=with_details)


async def get_or_404(db: AsyncSession, id: int, with_details: bool = False) -> Defect:
    defect = await defect_repo.get_defect_by_id(db, id, with_details=with_details)
    if not defect:
        raise NotFoundError("Дефект не найден")
    return defect


async def get_multi(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 20,
    filters: Optional[Dict[str, Any]] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> Tuple[List[Defect], int]:
    """Страница дефектов; page начинается с 1"""
    skip = (page - 1) * limit
    return await defect_repo.get_defects_with_filters(db, skip, limit, filters, sort_by, sort_order)


async def create(db: AsyncSession, *, obj_in: DefectCreate, current_user: User) -> Defect:
    await _check_references(
        db, project_id=obj_in.project_id, stage_id=obj_in.stage_id, assigned_to=obj_in.assigned_to
    )

    now = get_utc_now()
    db_obj = Defect(
        **obj_in.model_dump(),
        status=DefectStatus.NEW,
        reported_by=current_user.id,
        created_at=now,
        updated_at=now,
    )
    initial_entry = DefectHistory(
        user_id=current_user.id,
        field_name="дефект",
        old_value=None,
        new_value=f"Дефект создан: {db_obj.title}",
    )
    await defect_repo.create_defect_in_db(db, db_obj, [initial_entry])
    logger.info(f"Defect {db_obj.id} created by user {current_user.id} in project {db_obj.project_id}")

    defect = await defect_repo.get_defect_by_id(db, db_obj.id)
    await producers.send_event("defect_created", event_payload(defect))
    return defect


def collect_changes(defect: Defect, obj_data: Dict[str, Any]) -> Dict[str, Tuple[Any, Any]]:
    """Оставляет только поля, значение которых действительно отличается от сохраненного"""
    changes = {}
    for field, new_value in obj_data.items():
        old_value = getattr(defect, field)
        if old_value != new_value:
            changes[field] = (old_value, new_value)
    return changes


async def update(db: AsyncSession, *, db_obj: Defect, obj_in: DefectUpdate, current_user: User) -> Defect:
    """
    Частичное обновление дефекта.

    Записываются только присланные и изменившиеся поля, по одной записи журнала на поле.
    Смена статуса проверяется по таблице переходов для роли пользователя; переход в
    'закрыт' проставляет closed_at, выход из 'закрыт' очищает его.
    """
    obj_data = obj_in.model_dump(exclude_unset=True)
    empty = [field for field in REQUIRED_FIELDS if field in obj_data and obj_data[field] is None]
    if empty:
        raise ValidationError(errors=[{"field": field, "message": "Поле не может быть пустым"} for field in empty])

    changes = collect_changes(db_obj, obj_data)

    # Этап старого проекта не может остаться у дефекта, перенесенного в другой проект
    if "project_id" in changes and "stage_id" not in obj_data and db_obj.stage_id is not None:
        changes["stage_id"] = (db_obj.stage_id, None)

    if not changes:
        return db_obj

    field_changes = [field for field in changes if field != "status"]
    if field_changes and not can_edit_fields(db_obj, current_user):
        raise ForbiddenError("У вас нет прав на изменение этого дефекта")

    if "status" in changes:
        old_status, new_status = changes["status"]
        if not is_transition_allowed(old_status, new_status, current_user.role):
            logger.info(
                f"User {current_user.id} ({current_user.role.value}) denied transition "
                f"'{old_status.value}' -> '{new_status.value}' for defect {db_obj.id}"
            )
            raise InvalidStatusTransitionError(old_status.value, new_status.value)

    if {"project_id", "stage_id", "assigned_to"} & set(changes):
        project_id = changes.get("project_id", (None, db_obj.project_id))[1]
        stage_id = changes.get("stage_id", (None, db_obj.stage_id))[1]
        assigned_to = changes["assigned_to"][1] if "assigned_to" in changes else None
        await _check_references(db, project_id=project_id, stage_id=stage_id, assigned_to=assigned_to)

    history = [
        DefectHistory(
            defect_id=db_obj.id,
            user_id=current_user.id,
            field_name=field,
            old_value=history_value(old_value),
            new_value=history_value(new_value),
        )
        for field, (old_value, new_value) in changes.items()
    ]

    for field, (_, new_value) in changes.items():
        setattr(db_obj, field, new_value)

    if "status" in changes:
        if changes["status"][1] == DefectStatus.CLOSED:
            db_obj.closed_at = get_utc_now()
        elif changes["status"][0] == DefectStatus.CLOSED:
            db_obj.closed_at = None

    db_obj.updated_at = get_utc_now()
    await defect_repo.update_defect_in_db(db, db_obj, history)
    logger.info(f"Defect {db_obj.id} updated by user {current_user.id}: {', '.join(changes)}")

    defect = await defect_repo.get_defect_by_id(db, db_obj.id)

    payload = event_payload(defect)
    if "status" in changes:
        await producers.send_event(
            "defect_status_changed",
            {**payload, "old_status": changes["status"][0].value, "new_status": changes["status"][1].value},
        )
    if field_changes:
        await producers.send_event("defect_updated", {**payload, "changed_fields": field_changes})
    return defect


async def delete(db: AsyncSession, *, id: int, current_user: User) -> bool:
    """Удаляет дефект вместе с комментариями, журналом и файлами вложений"""
    await get_or_404(db, id)
    attachments = await attachment_repo.get_attachments_by_defect_id(db, id)

    result = await defect_repo.delete_defect_from_db(db, id)
    for attachment in attachments:
        await files.remove_file(attachment.file_path)
    logger.info(f"Defect {id} deleted by user {current_user.id}")
    return result


async def get_history(db: AsyncSession, *, defect_id: int) -> List[DefectHistory]:
    await get_or_404(db, defect_id)
    return await defect_repo.get_history_by_defect_id(db, defect_id)


async def get_overdue(db: AsyncSession, *, today: Optional[date] = None) -> List[Defect]:
    return await defect_repo.get_overdue_defects(db, today or date.today())
