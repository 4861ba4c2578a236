from typing import Any, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.api.deps import get_current_user
from campusfix.db.session import get_db
from campusfix.models.defect import DefectPriority, DefectStatus
from campusfix.models.user import User
from campusfix.services import report as report_service

router = APIRouter()

FORMAT_PATTERN = "^(csv|excel)$"


def file_response(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.get("/stats")
async def read_stats(
    db: AsyncSession = Depends(get_db),
    project_id: Optional[int] = Query(None, alias="projectId"),
    current_user: User = Depends(get_current_user),
) -> Any:
    """Количество дефектов по статусам, приоритетам и проектам"""
    return {"success": True, "stats": await report_service.get_stats(db, filters={"project_id": project_id})}


@router.get("/export/defects")
async def export_defects(
    db: AsyncSession = Depends(get_db),
    export_format: str = Query("excel", alias="format", pattern=FORMAT_PATTERN),
    project_id: Optional[int] = Query(None, alias="projectId"),
    status: Optional[DefectStatus] = None,
    priority: Optional[DefectPriority] = None,
    current_user: User = Depends(get_current_user),
):
    """Экспорт дефектов в CSV или Excel"""
    content, media_type, filename = await report_service.export_defects(
        db,
        export_format=export_format,
        filters={"project_id": project_id, "status": status, "priority": priority},
    )
    return file_response(content, media_type, filename)


@router.get("/export/project/{project_id}")
async def export_project(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    export_format: str = Query("excel", alias="format", pattern=FORMAT_PATTERN),
    current_user: User = Depends(get_current_user),
):
    """Отчет по проекту: сводка, этапы и дефекты"""
    content, media_type, filename = await report_service.export_project(
        db, project_id=project_id, export_format=export_format
    )
    return file_response(content, media_type, filename)
