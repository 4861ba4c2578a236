"""
Вложения дефектов: файлы хранятся на диске в UPLOAD_DIR/YYYY-MM, метаданные в таблице attachments.

Загрузка выполняется по принципу "все или ничего": если хотя бы один файл не прошел
проверку или запись в базу не удалась, удаляются все файлы, уже записанные этим запросом.
"""
import logging
import os
import time
from typing import Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

import campusfix.repo.attachment as attachment_repo
from campusfix.core.config import settings
from campusfix.core.exceptions import ForbiddenError, NotFoundError, UploadError
from campusfix.models.defect import Attachment, DefectHistory
from campusfix.models.user import User, UserRole
from campusfix.services import defect as defect_service
from campusfix.utils import files

logger = logging.getLogger(__name__)

HISTORY_FIELD = "вложение"


def content_type_of(upload: UploadFile) -> str:
    return (upload.content_type or "").split(";")[0].strip().lower()


def _size_message() -> str:
    return f"Размер файла не должен превышать {settings.MAX_FILE_SIZE // (1024 * 1024)} МБ"


def validate_batch(uploads: List[UploadFile]) -> None:
    """Проверки, которые можно выполнить до записи на диск: количество, тип и заявленный размер"""
    if not uploads:
        raise UploadError("Файлы не загружены", errors=[{"field": "files", "message": "Выберите хотя бы один файл"}])
    if len(uploads) > settings.MAX_FILES_PER_REQUEST:
        raise UploadError(
            f"Можно загрузить не более {settings.MAX_FILES_PER_REQUEST} файлов за один раз",
            errors=[{"field": "files", "message": f"Передано файлов: {len(uploads)}"}],
        )

    errors = []
    for upload in uploads:
        if content_type_of(upload) not in settings.ALLOWED_FILE_TYPES:
            errors.append(
                {"field": "files", "message": f"Недопустимый тип файла '{upload.filename}': {upload.content_type}"}
            )
        elif upload.size is not None and upload.size > settings.MAX_FILE_SIZE:
            errors.append({"field": "files", "message": f"{upload.filename}: {_size_message()}"})
    if errors:
        raise UploadError("Недопустимые файлы", errors=errors)


async def _store_files(uploads: List[UploadFile], written: List[str]) -> List[Dict]:
    stored = []
    for upload in uploads:
        path = files.build_storage_path(upload.filename)
        written.append(path)
        size = await files.write_stream(upload, path, settings.MAX_FILE_SIZE)
        if size < 0:
            raise UploadError(
                _size_message(), errors=[{"field": "files", "message": f"{upload.filename}: {_size_message()}"}]
            )
        stored.append(
            {
                "file_name": upload.filename or os.path.basename(path),
                "file_path": path,
                "file_type": content_type_of(upload),
                "file_size": size,
            }
        )
    return stored


async def upload(db: AsyncSession, *, defect_id: int, uploads: List[UploadFile], current_user: User) -> List[Attachment]:
    await defect_service.get_or_404(db, defect_id)
    validate_batch(uploads)

    written: List[str] = []
    try:
        stored = await _store_files(uploads, written)
        attachments = [Attachment(defect_id=defect_id, uploaded_by=current_user.id, **item) for item in stored]
        history = [
            DefectHistory(
                defect_id=defect_id,
                user_id=current_user.id,
                field_name=HISTORY_FIELD,
                new_value=f"Добавлен файл: {item['file_name']}",
            )
            for item in stored
        ]
        await attachment_repo.create_attachments_in_db(db, attachments, history)
    except Exception:
        for path in written:
            await files.remove_file(path)
        logger.warning(f"Upload to defect {defect_id} rolled back, removed {len(written)} file(s)")
        raise

    logger.info(f"User {current_user.id} uploaded {len(attachments)} file(s) to defect {defect_id}")
    return [await attachment_repo.get_attachment_by_id(db, a.id) for a in attachments]


async def get_by_defect(db: AsyncSession, *, defect_id: int) -> List[Attachment]:
    await defect_service.get_or_404(db, defect_id)
    return await attachment_repo.get_attachments_by_defect_id(db, defect_id)


async def get_or_404(db: AsyncSession, id: int) -> Attachment:
    attachment = await attachment_repo.get_attachment_by_id(db, id)
    if not attachment:
        raise NotFoundError("Вложение не найдено")
    return attachment


async def get_file(db: AsyncSession, id: int) -> Attachment:
    """Вложение, файл которого существует на диске"""
    attachment = await get_or_404(db, id)
    if not files.is_inside_upload_dir(attachment.file_path) or not os.path.isfile(attachment.file_path):
        logger.warning(f"File for attachment {id} is missing: {attachment.file_path}")
        raise NotFoundError("Файл не найден на сервере")
    return attachment


async def delete(db: AsyncSession, *, id: int, current_user: User) -> bool:
    """Удаляет вложение: право имеют администратор, менеджер и загрузивший файл"""
    attachment = await get_or_404(db, id)
    if current_user.role not in (UserRole.ADMIN, UserRole.MANAGER) and attachment.uploaded_by != current_user.id:
        raise ForbiddenError("У вас нет прав на удаление этого вложения")

    entry = DefectHistory(
        defect_id=attachment.defect_id,
        user_id=current_user.id,
        field_name=HISTORY_FIELD,
        old_value=attachment.file_name,
        new_value=f"Удален файл: {attachment.file_name}",
    )
    result = await attachment_repo.delete_attachment_from_db(db, id, [entry])
    await files.remove_file(attachment.file_path)
    logger.info(f"Attachment {id} deleted by user {current_user.id}")
    return result


async def reconcile(
    db: AsyncSession, *, upload_dir: Optional[str] = None, min_age_seconds: int = 3600, remove_orphans: bool = True
) -> Dict[str, List]:
    """
    Сверяет каталог загрузок с таблицей вложений.

    Файлы без записи в базе старше min_age_seconds удаляются (более свежие могут
    принадлежать загрузке, которая еще выполняется). Записи, файлы которых пропали,
    только попадают в отчет.
    """
    upload_dir = upload_dir or settings.UPLOAD_DIR
    attachments = await attachment_repo.get_all_attachments(db)
    known = {os.path.realpath(a.file_path) for a in attachments}

    orphaned = []
    if os.path.isdir(upload_dir):
        now = time.time()
        for root, _, names in os.walk(upload_dir):
            for name in names:
                path = os.path.join(root, name)
                if os.path.realpath(path) in known:
                    continue
                if now - os.path.getmtime(path) < min_age_seconds:
                    continue
                orphaned.append(path)

    removed = []
    if remove_orphans:
        for path in orphaned:
            if await files.remove_file(path):
                removed.append(path)

    missing = [a.id for a in attachments if not os.path.isfile(a.file_path)]
    logger.info(
        f"Attachment reconciliation: {len(orphaned)} orphaned file(s), {len(removed)} removed, "
        f"{len(missing)} row(s) without file"
    )
    return {"orphaned_files": orphaned, "removed_files": removed, "missing_files": missing}
