"""核心 SQLAlchemy 模型定义。"""

from portal.models.award import Award
from portal.models.enums import ProjectState, UserRole, WindowPurpose
from portal.models.evaluation import Evaluation
from portal.models.project import Project, project_authors
from portal.models.user import User

__all__ = [
    "Award",
    "Evaluation",
    "Project",
    "ProjectState",
    "User",
    "UserRole",
    "WindowPurpose",
    "project_authors",
]
