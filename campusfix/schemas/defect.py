from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from campusfix.models.defect import DefectPriority, DefectStatus
from campusfix.schemas.common import OptionalText, TrimmedStr
from campusfix.schemas.user import UserRef


class ProjectRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class StageRef(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class DefectBase(BaseModel):
    title: TrimmedStr = Field(..., min_length=1, max_length=255)
    description: OptionalText = None
    steps_to_reproduce: OptionalText = None
    expected_result: OptionalText = None
    actual_result: OptionalText = None
    project_id: int
    stage_id: Optional[int] = None
    priority: DefectPriority = DefectPriority.MEDIUM
    assigned_to: Optional[int] = None
    due_date: Optional[date] = None


class DefectCreate(DefectBase):
    """Новый дефект всегда создается в статусе 'новый'."""


class DefectUpdate(BaseModel):
    """
    Частичное обновление. Поле, отсутствующее в запросе, не меняется;
    явный null очищает необязательное поле.
    """

    title: Optional[TrimmedStr] = Field(None, min_length=1, max_length=255)
    description: OptionalText = None
    steps_to_reproduce: OptionalText = None
    expected_result: OptionalText = None
    actual_result: OptionalText = None
    project_id: Optional[int] = None
    stage_id: Optional[int] = None
    status: Optional[DefectStatus] = None
    priority: Optional[DefectPriority] = None
    assigned_to: Optional[int] = None
    due_date: Optional[date] = None


class Defect(DefectBase):
    id: int
    status: DefectStatus
    reported_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    project: Optional[ProjectRef] = None
    stage: Optional[StageRef] = None
    reporter: Optional[UserRef] = None
    assignee: Optional[UserRef] = None

    class Config:
        from_attributes = True


class CommentCreate(BaseModel):
    text: TrimmedStr = Field(..., min_length=1, max_length=5000)


class CommentUpdate(CommentCreate):
    pass


class Comment(BaseModel):
    id: int
    defect_id: int
    user_id: Optional[int] = None
    text: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[UserRef] = None

    class Config:
        from_attributes = True


class Attachment(BaseModel):
    id: int
    defect_id: int
    file_name: str
    file_type: str
    file_size: int
    uploaded_by: Optional[int] = None
    created_at: Optional[datetime] = None
    uploader: Optional[UserRef] = None

    class Config:
        from_attributes = True


class HistoryEntry(BaseModel):
    id: int
    defect_id: int
    user_id: Optional[int] = None
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: Optional[datetime] = None
    user: Optional[UserRef] = None

    class Config:
        from_attributes = True


class DefectWithDetails(Defect):
    comments: List[Comment] = []
    attachments: List[Attachment] = []


class DefectResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    defect: Defect


class DefectDetailResponse(BaseModel):
    success: bool = True
    defect: DefectWithDetails


class DefectListResponse(BaseModel):
    success: bool = True
    defects: List[Defect]
    total: int
    page: int
    limit: int
    pages: int


class CommentResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    comment: Comment


class CommentListResponse(BaseModel):
    success: bool = True
    comments: List[Comment]


class AttachmentListResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    attachments: List[Attachment]


class HistoryResponse(BaseModel):
    success: bool = True
    history: List[HistoryEntry]


class AttachmentResponse(BaseModel):
    success: bool = True
    attachment: Attachment
