"""Создание тестовых данных напрямую в базе."""
import random
import string
from datetime import date
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.core.security import get_password_hash
from campusfix.models.defect import Defect, DefectPriority, DefectStatus
from campusfix.models.project import Project, ProjectStage
from campusfix.models.user import User, UserRole
from campusfix.services import user as user_service

DEFAULT_PASSWORD = "Secret1!"


def random_string(length: int = 10) -> str:
    return "".join(random.choices(string.ascii_lowercase, k=length))


def random_email() -> str:
    return f"{random_string(8)}@{random_string(6)}.com"


async def create_user(
    db: AsyncSession,
    role: UserRole = UserRole.ENGINEER,
    password: str = DEFAULT_PASSWORD,
    is_active: bool = True,
    email: Optional[str] = None,
) -> User:
    user = User(
        email=email or random_email(),
        password_hash=get_password_hash(password),
        role=role,
        first_name="Иван",
        last_name=random_string(6).capitalize(),
        is_active=is_active,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {user_service.issue_token(user)}"}


async def create_project(db: AsyncSession, manager: Optional[User] = None, **kwargs) -> Project:
    project = Project(
        name=kwargs.pop("name", f"Объект {random_string(5)}"),
        manager_id=manager.id if manager else None,
        **kwargs,
    )
    db.add(project)
    await db.commit()
    await db.refresh(project)
    return project


async def create_stage(db: AsyncSession, project: Project, **kwargs) -> ProjectStage:
    stage = ProjectStage(project_id=project.id, name=kwargs.pop("name", f"Этап {random_string(4)}"), **kwargs)
    db.add(stage)
    await db.commit()
    await db.refresh(stage)
    return stage


async def create_defect(
    db: AsyncSession,
    project: Project,
    reporter: User,
    status: DefectStatus = DefectStatus.NEW,
    priority: DefectPriority = DefectPriority.MEDIUM,
    assignee: Optional[User] = None,
    due_date: Optional[date] = None,
    **kwargs,
) -> Defect:
    defect = Defect(
        title=kwargs.pop("title", f"Дефект {random_string(5)}"),
        project_id=project.id,
        status=status,
        priority=priority,
        reported_by=reporter.id,
        assigned_to=assignee.id if assignee else None,
        due_date=due_date,
        **kwargs,
    )
    db.add(defect)
    await db.commit()
    await db.refresh(defect)
    return defect
