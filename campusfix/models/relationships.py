from sqlalchemy.orm import relationship

from campusfix.models.user import User
from campusfix.models.project import Project, ProjectStage
from campusfix.models.defect import Defect, Comment, Attachment, DefectHistory

# Связи загружаются явно через selectinload в репозиториях,
# ленивая загрузка в асинхронной сессии запрещена (lazy="raise")

# Отношения для Project
Project.manager = relationship("User", foreign_keys=[Project.manager_id], lazy="raise")
Project.stages = relationship(
    "ProjectStage", back_populates="project", order_by=ProjectStage.start_date, lazy="raise"
)

# Отношения для ProjectStage
ProjectStage.project = relationship("Project", back_populates="stages", lazy="raise")

# Отношения для Defect
Defect.project = relationship("Project", lazy="raise")
Defect.stage = relationship("ProjectStage", lazy="raise")
Defect.reporter = relationship("User", foreign_keys=[Defect.reported_by], lazy="raise")
Defect.assignee = relationship("User", foreign_keys=[Defect.assigned_to], lazy="raise")
# Удаление дефекта выполняется запросами DELETE в репозитории, ORM-каскад не используется
Defect.comments = relationship("Comment", order_by=Comment.created_at, passive_deletes=True, lazy="raise")
Defect.attachments = relationship("Attachment", order_by=Attachment.created_at, passive_deletes=True, lazy="raise")

# Отношения для Comment
Comment.author = relationship("User", lazy="raise")

# Отношения для Attachment
Attachment.uploader = relationship("User", lazy="raise")

# Отношения для DefectHistory
DefectHistory.user = relationship("User", lazy="raise")

__all__ = ["User", "Project", "ProjectStage", "Defect", "Comment", "Attachment", "DefectHistory"]
