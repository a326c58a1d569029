"""项目模型定义。"""

from datetime import datetime, timezone
from typing import List

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.db import Base
from portal.models.enums import ProjectState


# 项目-作者 多对多关联表
project_authors = Table(
    "project_authors",
    Base.metadata,
    Column("project_id", ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Project(Base):
    """参评项目。

    收到 3 份评价后 ``evaluated`` 置为 True，项目进入锁定状态；
    ``winner`` 只是排名结果的缓存，由显式刷新操作写入。
    """

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    area: Mapped[str] = mapped_column(String(150), nullable=False)  # 主题领域
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    abstract: Mapped[str] = mapped_column(Text, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    evaluated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    winner: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    principal_author_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    award_id: Mapped[int] = mapped_column(ForeignKey("awards.id"), nullable=False)

    # 评价写入时自增，用作项目行锁
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # 关系
    award: Mapped["Award"] = relationship(back_populates="projects")
    principal_author: Mapped["User"] = relationship(foreign_keys=[principal_author_id])
    authors: Mapped[List["User"]] = relationship(
        secondary=project_authors, back_populates="projects", order_by="User.id"
    )
    evaluations: Mapped[List["Evaluation"]] = relationship(
        back_populates="project", order_by="Evaluation.id"
    )

    @property
    def state(self) -> ProjectState:
        return ProjectState.LOCKED if self.evaluated else ProjectState.EDITABLE

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, title={self.title}, evaluated={self.evaluated})>"
