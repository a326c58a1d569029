"""排名与获奖项目推导。

排名按评价分数之和降序，使用 ``Decimal`` 累加避免浮点误差；
总分相同时保持项目 id 的原始顺序（稳定排序）。``winner`` 字段只是缓存，
读取接口始终实时计算，显式刷新时才写回数据库。
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from portal.models import Project, UserRole
from portal.services.identity import Caller, ensure_role
from portal.utils.logging import get_logger

logger = get_logger(__name__)

WINNER_COUNT = 3


@dataclass
class RankedProject:
    rank: int
    project: Project
    total_score: Decimal
    evaluation_count: int


def total_score(project: Project) -> Decimal:
    return sum((Decimal(evaluation.score) for evaluation in project.evaluations), Decimal("0"))


def rank(projects: Iterable[Project]) -> List[RankedProject]:
    ordered = sorted(projects, key=lambda project: project.id)
    totals = [(project, total_score(project)) for project in ordered]
    totals.sort(key=lambda item: item[1], reverse=True)
    return [
        RankedProject(
            rank=index,
            project=project,
            total_score=score,
            evaluation_count=len(project.evaluations),
        )
        for index, (project, score) in enumerate(totals, start=1)
    ]


def _candidates(db: Session, award_id: Optional[int]) -> List[Project]:
    query = (
        select(Project)
        .where(Project.evaluations.any())
        .options(selectinload(Project.evaluations))
        .order_by(Project.id.asc())
    )
    if award_id is not None:
        query = query.where(Project.award_id == award_id)
    return list(db.scalars(query))


def list_winners(db: Session, award_id: Optional[int] = None) -> List[RankedProject]:
    """返回至少有一份评价的项目中总分前三名；``award_id`` 为空时为全局范围。"""

    return rank(_candidates(db, award_id))[:WINNER_COUNT]


def refresh_winner_flags(
    db: Session, caller: Caller, award_id: Optional[int] = None
) -> List[RankedProject]:
    """重新计算前三名并写回 ``winner`` 字段（仅管理员）。"""

    ensure_role(caller, UserRole.ADMIN, message="只有管理员可以刷新获奖结果")
    winners = list_winners(db, award_id)
    winner_ids = [item.project.id for item in winners]

    reset = update(Project).values(winner=False)
    if award_id is not None:
        reset = reset.where(Project.award_id == award_id)
    db.execute(reset.execution_options(synchronize_session=False))
    if winner_ids:
        db.execute(
            update(Project)
            .where(Project.id.in_(winner_ids))
            .values(winner=True)
            .execution_options(synchronize_session=False)
        )
    db.commit()
    for item in winners:
        db.refresh(item.project)

    logger.info("winner_flags_refreshed", award_id=award_id, winners=winner_ids)
    return winners
