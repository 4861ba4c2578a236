from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from campusfix.models.project import ProjectPriority, ProjectStatus, StageStatus
from campusfix.schemas.common import OptionalText, TrimmedStr
from campusfix.schemas.user import UserBrief


class DateRangeMixin:
    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Дата окончания не может быть раньше даты начала")
        return self


# Базовая схема для проекта
class ProjectBase(BaseModel):
    name: TrimmedStr = Field(..., min_length=1, max_length=255)
    description: OptionalText = None
    address: OptionalText = Field(None, max_length=255)
    status: ProjectStatus = ProjectStatus.PLANNED
    priority: ProjectPriority = ProjectPriority.MEDIUM
    manager_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# Схема для создания проекта
class ProjectCreate(DateRangeMixin, ProjectBase):
    pass


# Схема для обновления проекта
class ProjectUpdate(DateRangeMixin, BaseModel):
    name: Optional[TrimmedStr] = Field(None, min_length=1, max_length=255)
    description: OptionalText = None
    address: OptionalText = Field(None, max_length=255)
    status: Optional[ProjectStatus] = None
    priority: Optional[ProjectPriority] = None
    manager_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class StageBase(BaseModel):
    name: TrimmedStr = Field(..., min_length=1, max_length=255)
    description: OptionalText = None
    status: StageStatus = StageStatus.PLANNING
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class StageCreate(DateRangeMixin, StageBase):
    pass


class StageUpdate(DateRangeMixin, BaseModel):
    name: Optional[TrimmedStr] = Field(None, min_length=1, max_length=255)
    description: OptionalText = None
    status: Optional[StageStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class Stage(StageBase):
    id: int
    project_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Схема для получения проекта из БД
class Project(ProjectBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    manager: Optional[UserBrief] = None

    class Config:
        from_attributes = True


# Проект вместе с этапами; в этой же форме хранится в кэше
class ProjectWithStages(Project):
    stages: List[Stage] = []


class ProjectResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    project: ProjectWithStages


class ProjectListResponse(BaseModel):
    success: bool = True
    projects: List[Project]
    total: int
    page: int
    limit: int
    pages: int


class StageResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    stage: Stage


class StageListResponse(BaseModel):
    success: bool = True
    stages: List[Stage]
