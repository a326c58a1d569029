"""评价准入引擎。

提交评价时依次检查：

1. 项目存在（``ProjectNotFound``）
2. 评审存在且角色为评审（``InvalidEvaluator``）
3. 评审不是项目作者（``SelfEvaluation``）
4. 同一评审未评价过该项目（``DuplicateEvaluation``）
5. 项目尚未锁定（``ProjectAlreadyEvaluated``，可通过配置关闭）
6. 分数为 [0, 10] 内的有限数（``InvalidScore``），意见非空（``InvalidOpinion``）

写入后在同一事务内重新计数，达到 3 份时把项目标记为已评审。
整个流程先对项目行加锁，同一项目上的并发提交串行执行。
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.config import Settings
from portal.errors import (
    AwardClosed,
    DuplicateEvaluation,
    FieldValidationError,
    Forbidden,
    InvalidEvaluator,
    InvalidOpinion,
    InvalidScore,
    NotFound,
    PortalError,
    ProjectAlreadyEvaluated,
    ProjectLocked,
    SelfEvaluation,
)
from portal.models import Evaluation, Project, User, UserRole, WindowPurpose, project_authors
from portal.services.awards import is_open_for
from portal.services.identity import Caller, ensure_role
from portal.services.projects import count_evaluations, lock_project
from portal.utils.logging import get_logger
from portal.utils.text import clean_text

logger = get_logger(__name__)

EVALUATION_THRESHOLD = 3
MIN_SCORE = Decimal("0")
MAX_SCORE = Decimal("10")
SCORE_STEP = Decimal("0.1")


def coerce_score(value: Any) -> Decimal:
    """校验分数并四舍五入到一位小数；先做范围检查再取整。"""

    if value is None or isinstance(value, bool):
        raise InvalidScore("分数必须是数字")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidScore("分数必须是有限数")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidScore("分数必须是数字") from None
    if not number.is_finite():
        raise InvalidScore("分数必须是有限数")
    if number < MIN_SCORE or number > MAX_SCORE:
        raise InvalidScore(f"分数必须在 {MIN_SCORE} 到 {MAX_SCORE} 之间")
    return number.quantize(SCORE_STEP, rounding=ROUND_HALF_UP)


def coerce_opinion(value: Any) -> str:
    text = clean_text(value)
    if text is None:
        raise InvalidOpinion("评审意见不能为空")
    return text


class EvaluationService:
    """评价的提交、修改、删除与查询。"""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    # --- 准入检查 ---

    def _admit(
        self,
        db: Session,
        project: Project,
        evaluator_id: int,
        exclude_id: Optional[int] = None,
    ) -> None:
        """对已加锁的项目执行检查 2-5。``exclude_id`` 用于修改时排除自身。"""

        evaluator = db.get(User, evaluator_id)
        if not evaluator or evaluator.role != UserRole.EVALUATOR:
            raise InvalidEvaluator(f"用户 {evaluator_id} 不是有效的评审")

        is_author = db.scalar(
            select(project_authors.c.user_id).where(
                project_authors.c.project_id == project.id,
                project_authors.c.user_id == evaluator_id,
            )
        )
        if is_author is not None:
            raise SelfEvaluation("评审不能评价自己参与的项目")

        duplicate = select(Evaluation.id).where(
            Evaluation.project_id == project.id, Evaluation.evaluator_id == evaluator_id
        )
        if exclude_id is not None:
            duplicate = duplicate.where(Evaluation.id != exclude_id)
        if db.scalar(duplicate) is not None:
            raise DuplicateEvaluation(f"评审 {evaluator_id} 已评价过项目 {project.id}")

        if not self.settings.allow_evaluations_after_lock:
            others = select(func.count(Evaluation.id)).where(Evaluation.project_id == project.id)
            if exclude_id is not None:
                others = others.where(Evaluation.id != exclude_id)
            if project.evaluated or (db.scalar(others) or 0) >= EVALUATION_THRESHOLD:
                raise ProjectAlreadyEvaluated(f"项目 {project.id} 已完成评审，不再接受新的评价")

    def _check_window(self, project: Project, now: Optional[datetime]) -> None:
        if not self.settings.enforce_evaluation_window:
            return
        instant = now or datetime.now(timezone.utc)
        if not is_open_for(project.award, instant, WindowPurpose.EVALUATION):
            raise AwardClosed(f"奖项 {project.award_id} 当前不在评审期内")

    def _recount_and_flip(self, db: Session, project: Project) -> bool:
        """重新计数，达到阈值时锁定项目。返回本次是否触发了锁定。"""

        count = count_evaluations(db, project.id)
        if count >= EVALUATION_THRESHOLD and not project.evaluated:
            project.evaluated = True
            return True
        return False

    def _map_integrity_error(
        self, db: Session, exc: IntegrityError, project_id: int, evaluator_id: int
    ) -> None:
        db.rollback()
        exists = db.scalar(
            select(Evaluation.id).where(
                Evaluation.project_id == project_id, Evaluation.evaluator_id == evaluator_id
            )
        )
        if exists is not None:
            raise DuplicateEvaluation(f"评审 {evaluator_id} 已评价过项目 {project_id}") from exc
        raise exc

    # --- 写操作 ---

    def submit(
        self,
        db: Session,
        caller: Caller,
        project_id: int,
        score: Any,
        opinion: Any,
        evaluator_id: Optional[int] = None,
        evaluated_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Evaluation:
        """提交评价。评审只能以自己的身份提交；管理员可代评审提交。"""

        ensure_role(caller, UserRole.EVALUATOR, UserRole.ADMIN, message="只有评审或管理员可以提交评价")
        if caller.is_admin:
            if evaluator_id is None:
                raise FieldValidationError(["evaluator_id: 不能为空"])
        elif evaluator_id is not None and evaluator_id != caller.user_id:
            raise Forbidden("评审只能以自己的身份提交评价")
        else:
            evaluator_id = caller.user_id

        locked = False
        try:
            project = lock_project(db, project_id)
            self._admit(db, project, evaluator_id)
            self._check_window(project, now)
            value = coerce_score(score)
            text = coerce_opinion(opinion)

            evaluation = Evaluation(
                project_id=project.id,
                evaluator_id=evaluator_id,
                score=value,
                opinion=text,
                evaluated_at=evaluated_at or now or datetime.now(timezone.utc),
            )
            db.add(evaluation)
            db.flush()
            locked = self._recount_and_flip(db, project)
            db.commit()
        except IntegrityError as exc:
            self._map_integrity_error(db, exc, project_id, evaluator_id)
        except PortalError as exc:
            db.rollback()
            logger.info(
                "evaluation_rejected",
                project_id=project_id,
                evaluator_id=evaluator_id,
                reason=exc.code,
            )
            raise

        db.refresh(evaluation)
        logger.info(
            "evaluation_admitted",
            evaluation_id=evaluation.id,
            project_id=project_id,
            evaluator_id=evaluator_id,
            score=str(evaluation.score),
        )
        if locked:
            logger.info("project_locked", project_id=project_id)
        return evaluation

    def update(
        self,
        db: Session,
        caller: Caller,
        evaluation_id: int,
        fields: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Evaluation:
        """修改评价。

        分数与意见重新校验；改动项目或评审时对目标重新执行准入检查。
        已锁定项目上的评价不能移走。
        """

        evaluation = self.get(db, evaluation_id)
        if not caller.is_admin and caller.user_id != evaluation.evaluator_id:
            raise Forbidden("只能修改自己的评价")

        new_evaluator = fields.get("evaluator_id") or evaluation.evaluator_id
        if new_evaluator != evaluation.evaluator_id and not caller.is_admin:
            raise Forbidden("只有管理员可以更换评审")
        new_project = fields.get("project_id") or evaluation.project_id
        current_id = evaluation.project_id
        moving = new_project != current_id

        locked = False
        try:
            # 按 id 顺序加锁，避免两个方向相反的移动互相等待
            projects = {pid: lock_project(db, pid) for pid in sorted({current_id, new_project})}
            current, target = projects[current_id], projects[new_project]
            if moving and current.evaluated:
                raise ProjectLocked(current.id)
            if moving or new_evaluator != evaluation.evaluator_id:
                self._admit(db, target, new_evaluator, exclude_id=evaluation.id)
                self._check_window(target, now)

            if "score" in fields:
                evaluation.score = coerce_score(fields["score"])
            if "opinion" in fields:
                evaluation.opinion = coerce_opinion(fields["opinion"])
            evaluation.project_id = target.id
            evaluation.evaluator_id = new_evaluator

            db.flush()
            if moving:
                locked = self._recount_and_flip(db, target)
            db.commit()
        except IntegrityError as exc:
            self._map_integrity_error(db, exc, new_project, new_evaluator)
        except Exception:
            db.rollback()
            raise

        db.refresh(evaluation)
        logger.info("evaluation_updated", evaluation_id=evaluation_id, fields=sorted(fields))
        if locked:
            logger.info("project_locked", project_id=new_project)
        return evaluation

    def delete(self, db: Session, caller: Caller, evaluation_id: int) -> None:
        """删除评价；项目已锁定时不允许删除。"""

        evaluation = self.get(db, evaluation_id)
        if not caller.is_admin and caller.user_id != evaluation.evaluator_id:
            raise Forbidden("只能删除自己的评价")
        try:
            project = lock_project(db, evaluation.project_id)
            if project.evaluated:
                raise ProjectLocked(project.id)
            db.delete(evaluation)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("evaluation_deleted", evaluation_id=evaluation_id)

    # --- 查询 ---

    def get(self, db: Session, evaluation_id: int) -> Evaluation:
        evaluation = db.get(Evaluation, evaluation_id)
        if not evaluation:
            raise NotFound("评价", evaluation_id)
        return evaluation

    def list(
        self,
        db: Session,
        project_id: Optional[int] = None,
        evaluator_id: Optional[int] = None,
    ) -> List[Evaluation]:
        query = select(Evaluation).order_by(Evaluation.id.asc())
        if project_id is not None:
            query = query.where(Evaluation.project_id == project_id)
        if evaluator_id is not None:
            query = query.where(Evaluation.evaluator_id == evaluator_id)
        return list(db.scalars(query))
