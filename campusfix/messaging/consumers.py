import asyncio
import json
import logging
from typing import Any, Dict

from aiokafka import AIOKafkaConsumer

from campusfix.core.config import settings
from campusfix.messaging.producers import DEFECT_EVENTS_TOPIC
from campusfix.worker.tasks import send_notification

logger = logging.getLogger(__name__)


def handle_defect_event(event: Dict[str, Any]) -> int:
    """
    Превращает событие дефекта в задачи уведомления. Возвращает число поставленных задач.
    """
    event_type = event.get("event_type")
    data = event.get("data") or {}
    title = data.get("title", "")
    notifications = []

    if event_type == "defect_created":
        if data.get("assignee_email"):
            notifications.append(
                (
                    data["assignee_email"],
                    f"Вам назначен дефект: {title}",
                    f"Вам назначен дефект '{title}'. Приоритет: {data.get('priority')}.",
                )
            )

    elif event_type == "defect_status_changed":
        for email in {data.get("assignee_email"), data.get("reporter_email")} - {None}:
            notifications.append(
                (
                    email,
                    f"Статус дефекта изменен: {title}",
                    f"Дефект '{title}' переведен из статуса '{data.get('old_status')}' "
                    f"в статус '{data.get('new_status')}'.",
                )
            )

    elif event_type == "defect_updated":
        if data.get("assignee_email"):
            notifications.append(
                (
                    data["assignee_email"],
                    f"Дефект обновлен: {title}",
                    f"Дефект '{title}' был обновлен. Изменены поля: {', '.join(data.get('changed_fields', []))}.",
                )
            )

    elif event_type == "comment_added":
        for email in data.get("notify_emails", []):
            notifications.append(
                (
                    email,
                    f"Новый комментарий к дефекту: {title}",
                    f"К дефекту '{title}' добавлен комментарий: {data.get('text', '')}",
                )
            )

    else:
        logger.debug(f"Skipping unknown event type: {event_type}")

    for user_email, subject, message in notifications:
        send_notification.delay(user_email=user_email, subject=subject, message=message)
    return len(notifications)


async def consume_defect_events():
    """
    Потребляет события дефектов из Kafka и ставит задачи уведомления в Celery
    """
    consumer = AIOKafkaConsumer(
        DEFECT_EVENTS_TOPIC,
        bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
        group_id="campusfix_notifications",
        value_deserializer=lambda m: json.loads(m.decode("utf-8")),
    )

    await consumer.start()
    try:
        async for msg in consumer:
            logger.info(f"Received event: {msg.value.get('event_type')}")
            try:
                handle_defect_event(msg.value)
            except Exception:
                logger.exception("Failed to handle defect event")
    finally:
        await consumer.stop()


async def start_consumers():
    """
    Запускает все консьюмеры Kafka
    """
    await asyncio.gather(
        consume_defect_events(),
    )
