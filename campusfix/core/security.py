from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import jwt

from campusfix.core.config import settings


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Поврежденный или не-bcrypt хэш
        return False


def create_access_token(
    user_id: int, claims: Optional[Dict[str, Any]] = None, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Создает JWT токен. В токен помещаются id пользователя (sub) и дополнительные
    данные: email, роль, имя и фамилия.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode: Dict[str, Any] = dict(claims or {})
    to_encode.update({"sub": str(user_id), "exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Декодирует токен; при ошибке пробрасывает jose.JWTError."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
