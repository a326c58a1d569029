"""奖项服务与时间窗口模型。

奖项在时刻 *t* 处于开放状态，当且仅当至少一个阶段满足
``start <= t <= end``（按日历日比较，结束日当天仍算开放）。
没有阶段的奖项永远不开放。
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from portal.errors import FieldValidationError, HasAssociatedProjects, NotFound
from portal.models import Award, Project, UserRole, WindowPurpose
from portal.services.identity import Caller, ensure_role
from portal.utils.logging import get_logger
from portal.utils.text import clean_text, missing_fields

logger = get_logger(__name__)


class SchedulePhase(BaseModel):
    start: date
    end: date
    label: str


def validate_schedule(phases: Iterable[SchedulePhase]) -> List[str]:
    """逐阶段校验；允许阶段重叠或乱序。"""

    errors: List[str] = []
    for index, phase in enumerate(phases, start=1):
        if clean_text(phase.label) is None:
            errors.append(f"schedule[{index}].label: 不能为空")
        if phase.start > phase.end:
            errors.append(f"schedule[{index}]: 开始日期不能晚于结束日期")
    return errors


def phases_of(award: Award) -> List[SchedulePhase]:
    return [SchedulePhase.model_validate(item) for item in (award.schedule_json or [])]


def _as_day(instant: datetime | date) -> date:
    if isinstance(instant, datetime):
        if instant.tzinfo is not None:
            instant = instant.astimezone(timezone.utc)
        return instant.date()
    return instant


def is_open_for(
    award: Award,
    instant: datetime | date,
    purpose: WindowPurpose = WindowPurpose.SUBMISSION,
) -> bool:
    """判断奖项在给定时刻是否开放。``purpose`` 暂不区分阶段标签。"""

    day = _as_day(instant)
    return any(phase.start <= day <= phase.end for phase in phases_of(award))


class AwardService:
    """封装奖项的创建、查询、修改与删除逻辑。"""

    def _validate(
        self, name: Any, description: Any, year: Any, schedule: List[SchedulePhase]
    ) -> None:
        errors = missing_fields({"name": name, "description": description})
        if not isinstance(year, int) or year <= 0:
            errors.append("year: 必须是大于 0 的整数")
        errors.extend(validate_schedule(schedule))
        if errors:
            raise FieldValidationError(errors)

    def _count_projects(self, db: Session, award_id: int) -> int:
        return db.scalar(
            select(func.count(Project.id)).where(Project.award_id == award_id)
        ) or 0

    def create_award(
        self,
        db: Session,
        caller: Caller,
        name: str,
        description: str,
        schedule: List[SchedulePhase],
        year: int,
    ) -> Award:
        ensure_role(caller, UserRole.ADMIN, message="只有管理员可以创建奖项")
        self._validate(name, description, year, schedule)

        award = Award(
            name=clean_text(name),
            description=clean_text(description),
            year=year,
            schedule_json=[phase.model_dump(mode="json") for phase in schedule],
            created_by=caller.user_id,
        )
        db.add(award)
        db.commit()
        db.refresh(award)
        logger.info("award_created", award_id=award.id, phases=len(schedule))
        return award

    def get_award(self, db: Session, award_id: int) -> Award:
        award = db.get(Award, award_id)
        if not award:
            raise NotFound("奖项", award_id)
        return award

    def list_awards(self, db: Session) -> List[Award]:
        return list(db.scalars(select(Award).order_by(Award.id.asc())))

    def list_active_awards(
        self,
        db: Session,
        now: Optional[datetime] = None,
        purpose: WindowPurpose = WindowPurpose.SUBMISSION,
    ) -> List[Award]:
        instant = now or datetime.now(timezone.utc)
        return [award for award in self.list_awards(db) if is_open_for(award, instant, purpose)]

    def update_award(
        self, db: Session, caller: Caller, award_id: int, fields: Dict[str, Any]
    ) -> Award:
        """修改奖项。已有项目引用时奖项不可再修改。"""

        ensure_role(caller, UserRole.ADMIN, message="只有管理员可以修改奖项")
        award = self.get_award(db, award_id)
        if self._count_projects(db, award_id) > 0:
            raise HasAssociatedProjects(f"奖项 {award_id} 已有项目参评，不能修改")

        schedule = fields.get("schedule")
        if schedule is None:
            schedule = phases_of(award)
        self._validate(
            fields.get("name", award.name),
            fields.get("description", award.description),
            fields.get("year", award.year),
            schedule,
        )

        if "name" in fields:
            award.name = clean_text(fields["name"])
        if "description" in fields:
            award.description = clean_text(fields["description"])
        if "year" in fields:
            award.year = fields["year"]
        if fields.get("schedule") is not None:
            award.schedule_json = [phase.model_dump(mode="json") for phase in schedule]

        db.commit()
        db.refresh(award)
        return award

    def delete_award(self, db: Session, caller: Caller, award_id: int) -> None:
        ensure_role(caller, UserRole.ADMIN, message="只有管理员可以删除奖项")
        award = self.get_award(db, award_id)
        if self._count_projects(db, award_id) > 0:
            raise HasAssociatedProjects(f"奖项 {award_id} 已有项目参评，不能删除")
        db.delete(award)
        db.commit()
        logger.info("award_deleted", award_id=award_id)
