"""用户模型定义 - 作者/评审/管理员三种角色。"""

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import Date, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.db import Base
from portal.models.enums import UserRole


class User(Base):
    """用户模型。

    - 作者：项目的提交者，可作为多个项目的共同作者
    - 评审：对项目打分，``specialty`` 必填
    - 管理员：由启动流程初始化，不能自行注册
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    national_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)  # CPF
    birth_date: Mapped[date] = mapped_column(Date, nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)

    # 地址：国家/城市/州必填，其余可选
    country: Mapped[str] = mapped_column(String(80), nullable=False)
    city: Mapped[str] = mapped_column(String(80), nullable=False)
    state: Mapped[str] = mapped_column(String(80), nullable=False)
    street: Mapped[Optional[str]] = mapped_column(String(150))
    avenue: Mapped[Optional[str]] = mapped_column(String(150))
    lot: Mapped[Optional[str]] = mapped_column(String(30))
    number: Mapped[Optional[str]] = mapped_column(String(30))

    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False)
    specialty: Mapped[Optional[str]] = mapped_column(String(150))  # 评审专长

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # 关系
    projects: Mapped[List["Project"]] = relationship(
        secondary="project_authors", back_populates="authors"
    )
    evaluations: Mapped[List["Evaluation"]] = relationship(back_populates="evaluator")
    awards_created: Mapped[List["Award"]] = relationship(back_populates="creator")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"
