import logging

from campusfix.core.config import settings

logger = logging.getLogger(__name__)


def send_notification(user_email: str, subject: str, message: str) -> bool:
    """
    Отправляет уведомление пользователю.
    Почтовый транспорт не подключен, уведомление записывается в лог.
    """
    logger.info(f"Sending notification to {user_email}: {subject}")

    if settings.ENVIRONMENT == "development":
        logger.debug(f"Notification content: {message}")
        return True

    logger.info(
        "===== NOTIFICATION =====\nTO: %s\nSUBJECT: %s\nMESSAGE: %s\n=======================",
        user_email,
        subject,
        message,
    )
    return True
