"""
Доменные исключения приложения.

Каждое исключение несет HTTP-статус; обработчики в campusfix.main превращают их
в ответ вида {"success": false, "message": ..., "errors": [...]}.
"""
from typing import Any, Dict, List, Optional

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Внутренняя ошибка сервера"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Ошибка валидации данных"


class ConflictError(AppError):
    """Операция невозможна в текущем состоянии данных (например, есть связанные дефекты)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Операция невозможна"


class InvalidStatusTransitionError(ValidationError):
    def __init__(self, current_status: str, requested_status: str):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Недопустимый переход статуса: из '{current_status}' в '{requested_status}'",
            errors=[
                {
                    "field": "status",
                    "message": f"Переход из '{current_status}' в '{requested_status}' запрещен для вашей роли",
                }
            ],
        )


class UploadError(ValidationError):
    default_message = "Ошибка загрузки файла"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Доступ запрещен. Требуется авторизация."


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Недостаточно прав для выполнения операции"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Ресурс не найден"
