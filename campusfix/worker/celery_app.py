from celery import Celery
from celery.schedules import crontab

from campusfix.core.config import settings

celery_app = Celery(
    "campusfix",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["campusfix.worker.tasks"],
)

celery_app.conf.task_routes = {"campusfix.worker.tasks.*": {"queue": "main_queue"}}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

celery_app.conf.beat_schedule = {
    "report-overdue-defects": {
        "task": "campusfix.worker.tasks.report_overdue_defects",
        "schedule": crontab(hour="*", minute="0"),  # Каждый час
    },
    "reconcile-attachments": {
        "task": "campusfix.worker.tasks.reconcile_attachments",
        "schedule": crontab(hour="3", minute="0"),  # Каждый день в 03:00
    },
}
