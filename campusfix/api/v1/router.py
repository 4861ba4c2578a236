from fastapi import APIRouter

from campusfix.api.v1.endpoints import attachments, auth, defects, projects, reports, users
from campusfix.schemas.common import ErrorResponse

# Общий формат ошибок для документации OpenAPI
ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (400, 401, 403, 404, 500)
}

api_router = APIRouter(responses=ERROR_RESPONSES)
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(defects.router, prefix="/defects", tags=["defects"])
api_router.include_router(attachments.router, tags=["attachments"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
