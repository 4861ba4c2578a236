import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

import campusfix.repo.defect as defect_repo
from campusfix.core.exceptions import ForbiddenError, NotFoundError
from campusfix.messaging import producers
from campusfix.models.defect import Comment
from campusfix.models.user import User, UserRole
from campusfix.schemas.defect import CommentCreate, CommentUpdate
from campusfix.services import defect as defect_service

logger = logging.getLogger(__name__)


def can_modify(comment: Comment, user: User) -> bool:
    """Редактировать и удалять комментарий могут автор, администратор и менеджер"""
    return user.role in (UserRole.ADMIN, UserRole.MANAGER) or comment.user_id == user.id


async def get_by_defect(db: AsyncSession, *, defect_id: int) -> List[Comment]:
    await defect_service.get_or_404(db, defect_id)
    return await defect_repo.get_comments_by_defect_id(db, defect_id)


async def get_or_404(db: AsyncSession, *, defect_id: int, comment_id: int) -> Comment:
    comment = await defect_repo.get_comment_by_id(db, comment_id)
    if not comment or comment.defect_id != defect_id:
        raise NotFoundError("Комментарий не найден")
    return comment


async def create(db: AsyncSession, *, defect_id: int, obj_in: CommentCreate, current_user: User) -> Comment:
    defect = await defect_service.get_or_404(db, defect_id)

    db_obj = Comment(defect_id=defect_id, user_id=current_user.id, text=obj_in.text)
    await defect_repo.save_comment_in_db(db, db_obj)
    logger.info(f"Comment {db_obj.id} added to defect {defect_id} by user {current_user.id}")

    # Уведомляем автора дефекта и исполнителя, кроме автора комментария
    notify = {u.email for u in (defect.reporter, defect.assignee) if u is not None and u.id != current_user.id}
    await producers.send_event(
        "comment_added",
        {
            "id": db_obj.id,
            "defect_id": defect_id,
            "title": defect.title,
            "text": db_obj.text,
            "user_id": current_user.id,
            "notify_emails": sorted(notify),
        },
    )
    return await defect_repo.get_comment_by_id(db, db_obj.id)


async def update(db: AsyncSession, *, db_obj: Comment, obj_in: CommentUpdate, current_user: User) -> Comment:
    if not can_modify(db_obj, current_user):
        raise ForbiddenError("Вы можете изменять только свои комментарии")
    db_obj.text = obj_in.text
    await defect_repo.save_comment_in_db(db, db_obj)
    return await defect_repo.get_comment_by_id(db, db_obj.id)


async def delete(db: AsyncSession, *, db_obj: Comment, current_user: User) -> bool:
    if not can_modify(db_obj, current_user):
        raise ForbiddenError("Вы можете удалять только свои комментарии")
    result = await defect_repo.delete_comment_from_db(db, db_obj.id)
    logger.info(f"Comment {db_obj.id} deleted by user {current_user.id}")
    return result
