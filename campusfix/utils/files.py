import logging
import os
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

import aiofiles
import aiofiles.os

from campusfix.core.config import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
UNSAFE_CHARS = re.compile(r"[^\w.\-]+", re.UNICODE)


def sanitize_filename(filename: Optional[str]) -> str:
    """Оставляет только базовое имя файла, пробелы и спецсимволы заменяются на '_'"""
    name = os.path.basename((filename or "").replace("\\", "/")).strip()
    name = UNSAFE_CHARS.sub("_", name).strip("._")
    return name[:200] or "file"


def month_directory(upload_dir: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """Каталог загрузок текущего месяца: UPLOAD_DIR/YYYY-MM"""
    now = now or datetime.now(timezone.utc)
    return os.path.join(upload_dir or settings.UPLOAD_DIR, now.strftime("%Y-%m"))


def build_storage_path(original_name: Optional[str], upload_dir: Optional[str] = None) -> str:
    return os.path.join(month_directory(upload_dir), f"{uuid.uuid4()}-{sanitize_filename(original_name)}")


async def write_stream(upload, path: str, max_size: int) -> int:
    """
    Пишет загружаемый файл на диск частями. Возвращает размер в байтах
    или -1, если файл превысил max_size (частично записанный файл удаляется).
    """
    await aiofiles.os.makedirs(os.path.dirname(path), exist_ok=True)
    size = 0
    async with aiofiles.open(path, "wb") as out:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_size:
                break
            await out.write(chunk)
    if size > max_size:
        await remove_file(path)
        return -1
    return size


async def remove_file(path: str) -> bool:
    """Удаляет файл; отсутствие файла не считается ошибкой"""
    try:
        await aiofiles.os.remove(path)
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.error(f"Failed to remove file {path}: {e}")
        return False


def is_inside_upload_dir(path: str, upload_dir: Optional[str] = None) -> bool:
    root = os.path.realpath(upload_dir or settings.UPLOAD_DIR)
    return os.path.realpath(path).startswith(root + os.sep)
