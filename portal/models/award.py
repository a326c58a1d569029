"""奖项模型定义。"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from portal.db import Base


class Award(Base):
    """奖项（评选周期）。

    ``schedule_json`` 保存创建者给定顺序的阶段列表，不要求按时间排序。
    """

    __tablename__ = "awards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # 格式: [{"start": "2025-01-10", "end": "2025-03-30", "label": "Período de inscrições"}]
    schedule_json: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)

    created_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # 关系
    creator: Mapped[Optional["User"]] = relationship(back_populates="awards_created")
    projects: Mapped[List["Project"]] = relationship(back_populates="award")

    def __repr__(self) -> str:
        return f"<Award(id={self.id}, name={self.name}, year={self.year})>"
