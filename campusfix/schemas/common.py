from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator


def strip_text(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def strip_or_none(value: Any) -> Any:
    """Обрезает пробелы; пустая строка считается отсутствующим значением."""
    if not isinstance(value, str):
        return value
    value = value.strip()
    return value or None


# Обязательная строка без ведущих/хвостовых пробелов (пустая отклоняется через min_length)
TrimmedStr = Annotated[str, BeforeValidator(strip_text)]
# Необязательный текст: пустая строка превращается в None
OptionalText = Annotated[Optional[str], BeforeValidator(strip_or_none)]


class ErrorDetail(BaseModel):
    field: str
    message: str


class MessageResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    errors: Optional[List[ErrorDetail]] = None


def pages_count(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit else 0
