from typing import Any, List, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.api.deps import authenticate_token, get_current_user, get_token
from campusfix.core.config import settings
from campusfix.core.exceptions import UnauthorizedError
from campusfix.db.session import get_db
from campusfix.models.user import User
from campusfix.schemas.common import MessageResponse
from campusfix.schemas.defect import AttachmentListResponse, AttachmentResponse
from campusfix.services import attachment as attachment_service

router = APIRouter()


async def preview_access(
    db: AsyncSession = Depends(get_db), token: Optional[str] = Depends(get_token)
) -> Optional[User]:
    """Просмотр вложений открыт без токена, если включен ATTACHMENT_PREVIEW_PUBLIC"""
    if settings.ATTACHMENT_PREVIEW_PUBLIC:
        return None
    if not token:
        raise UnauthorizedError()
    return await authenticate_token(db, token)


@router.get("/defects/{defect_id}/attachments", response_model=AttachmentListResponse)
async def read_defect_attachments(
    defect_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    return {"success": True, "attachments": await attachment_service.get_by_defect(db, defect_id=defect_id)}


@router.post(
    "/defects/{defect_id}/attachments",
    response_model=AttachmentListResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_attachments(
    defect_id: int,
    files: Optional[List[UploadFile]] = File(None, description="Файлы (не более 5, до 10 МБ каждый)"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """
    Загрузка файлов к дефекту. Если хотя бы один файл не прошел проверку,
    не сохраняется ни один.
    """
    attachments = await attachment_service.upload(
        db, defect_id=defect_id, uploads=files or [], current_user=current_user
    )
    return {"success": True, "message": f"Загружено файлов: {len(attachments)}", "attachments": attachments}


@router.get("/attachments/{attachment_id}/info", response_model=AttachmentResponse)
async def read_attachment_info(
    attachment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    return {"success": True, "attachment": await attachment_service.get_or_404(db, attachment_id)}


@router.get("/attachments/{attachment_id}", response_class=FileResponse)
async def download_attachment(
    attachment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Скачивание файла вложения"""
    attachment = await attachment_service.get_file(db, attachment_id)
    return FileResponse(
        attachment.file_path,
        media_type=attachment.file_type,
        filename=attachment.file_name,
        content_disposition_type="attachment",
    )


@router.get("/attachments/{attachment_id}/preview", response_class=FileResponse)
async def preview_attachment(
    attachment_id: int,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(preview_access),
):
    """Просмотр файла в браузере (inline), доступен для встраивания с других источников"""
    attachment = await attachment_service.get_file(db, attachment_id)
    return FileResponse(
        attachment.file_path,
        media_type=attachment.file_type,
        filename=attachment.file_name,
        content_disposition_type="inline",
        headers={"Cross-Origin-Resource-Policy": "cross-origin"},
    )


@router.delete("/attachments/{attachment_id}", response_model=MessageResponse)
async def delete_attachment(
    attachment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Удаление вложения: администратор, менеджер или загрузивший файл"""
    await attachment_service.delete(db, id=attachment_id, current_user=current_user)
    return {"success": True, "message": "Вложение удалено"}
