import asyncio
import logging
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campusfix.core.config import settings
from campusfix.db.session import create_engine_from_settings
from campusfix.services import attachment as attachment_service
from campusfix.services import defect as defect_service
from campusfix.utils import notifications
from campusfix.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_with_session(func):
    """
    Выполняет корутину с отдельным движком: каждая задача Celery запускает
    свой цикл событий, пул соединений приложения здесь использовать нельзя.
    """
    engine = create_engine_from_settings(settings)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with session_factory() as session:
            return await func(session)
    finally:
        await engine.dispose()


@celery_app.task
def send_notification(user_email: str, subject: str, message: str):
    """
    Отправляет уведомление пользователю
    """
    notifications.send_notification(user_email=user_email, subject=subject, message=message)
    return {"status": "sent", "to": user_email}


async def notify_overdue(session: AsyncSession, today: date = None) -> int:
    defects = await defect_service.get_overdue(session, today=today)
    notified = 0
    for defect in defects:
        recipient = defect.assignee or defect.reporter
        if recipient is None:
            continue
        notifications.send_notification(
            user_email=recipient.email,
            subject=f"Просрочен срок устранения дефекта '{defect.title}'",
            message=f"Срок устранения дефекта '{defect.title}' истек {defect.due_date.strftime('%d.%m.%Y')}. "
            + f"Текущий статус: {defect.status.value}.",
        )
        notified += 1
    logger.info(f"Overdue defects: {len(defects)}, notifications sent: {notified}")
    return notified


@celery_app.task
def report_overdue_defects():
    """
    Находит открытые дефекты с истекшим сроком и уведомляет исполнителей
    """
    logger.info("Checking overdue defects...")
    notified = asyncio.run(_run_with_session(notify_overdue))
    return {"status": "Overdue check completed", "notified": notified}


@celery_app.task
def reconcile_attachments():
    """
    Сверяет файлы в каталоге загрузок с записями вложений
    """
    logger.info("Reconciling attachments...")
    report = asyncio.run(_run_with_session(lambda session: attachment_service.reconcile(session)))
    return {
        "status": "Reconciliation completed",
        "orphaned": len(report["orphaned_files"]),
        "removed": len(report["removed_files"]),
        "missing": report["missing_files"],
    }
