"""评价模型定义。"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.db import Base


class Evaluation(Base):
    """评审对项目的一次打分，分数 0-10，保留一位小数。"""

    __tablename__ = "evaluations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    score: Mapped[Decimal] = mapped_column(Numeric(4, 1), nullable=False)
    opinion: Mapped[str] = mapped_column(Text, nullable=False)  # 评审意见
    evaluated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # 关联
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id"), nullable=False, index=True
    )
    evaluator_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )

    # 关系
    project: Mapped["Project"] = relationship(back_populates="evaluations")
    evaluator: Mapped["User"] = relationship(back_populates="evaluations")

    __table_args__ = (
        UniqueConstraint("project_id", "evaluator_id", name="uq_evaluation_project_evaluator"),
    )

    def __repr__(self) -> str:
        return f"<Evaluation(id={self.id}, project_id={self.project_id}, score={self.score})>"
