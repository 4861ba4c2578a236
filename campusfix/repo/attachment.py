from typing import List, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

# Связи объявлены отдельно и должны быть подключены до построения selectinload
from campusfix.models import relationships  # noqa: F401
from campusfix.models.defect import Attachment, DefectHistory


async def get_attachment_by_id(db: AsyncSession, id: int) -> Optional[Attachment]:
    result = await db.execute(
        select(Attachment)
        .where(Attachment.id == id)
        .options(selectinload(Attachment.uploader))
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def get_attachments_by_defect_id(db: AsyncSession, defect_id: int) -> List[Attachment]:
    result = await db.execute(
        select(Attachment)
        .where(Attachment.defect_id == defect_id)
        .options(selectinload(Attachment.uploader))
        .order_by(Attachment.created_at, Attachment.id)
    )
    return result.scalars().all()


async def get_all_attachments(db: AsyncSession) -> List[Attachment]:
    result = await db.execute(select(Attachment).order_by(Attachment.id))
    return result.scalars().all()


async def create_attachments_in_db(
    db: AsyncSession, attachments: Sequence[Attachment], history: Sequence[DefectHistory] = ()
) -> None:
    """Сохраняет вложения и записи журнала одной транзакцией; при ошибке откатывает все"""
    try:
        db.add_all(list(attachments))
        db.add_all(list(history))
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def delete_attachment_from_db(db: AsyncSession, id: int, history: Sequence[DefectHistory] = ()) -> bool:
    result = await db.execute(delete(Attachment).where(Attachment.id == id))
    db.add_all(list(history))
    await db.commit()
    return result.rowcount > 0
