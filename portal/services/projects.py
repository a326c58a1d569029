"""项目生命周期服务。

项目只有两种状态：可编辑（``evaluated=False``）与锁定（``evaluated=True``）。
锁定只能由评价准入流程在第 3 份评价写入时触发，之后不可逆。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from portal.config import Settings
from portal.errors import (
    AwardClosed,
    FieldValidationError,
    Forbidden,
    HasEvaluations,
    InvalidAuthors,
    NotFound,
    ProjectLocked,
    ProjectNotFound,
)
from portal.models import Award, Evaluation, Project, ProjectState, User, UserRole
from portal.services.awards import is_open_for
from portal.services.identity import Caller, ensure_role
from portal.utils.logging import get_logger
from portal.utils.text import clean_text, missing_fields

logger = get_logger(__name__)

TEXT_FIELDS = ("area", "title", "abstract")


def lock_project(db: Session, project_id: int) -> Project:
    """自增 ``version`` 以获得项目行的写锁，并返回最新的项目状态。

    SQLite 在第一条写语句处开启事务并取得写锁，PostgreSQL 则锁住该行；
    同一项目上的并发写入因此串行执行。
    """

    result = db.execute(
        update(Project)
        .where(Project.id == project_id)
        .values(version=Project.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ProjectNotFound(project_id)
    return db.get(Project, project_id, populate_existing=True)


def ensure_editable(project: Project) -> None:
    if project.state == ProjectState.LOCKED:
        raise ProjectLocked(project.id)


def count_evaluations(db: Session, project_id: int) -> int:
    return db.scalar(
        select(func.count(Evaluation.id)).where(Evaluation.project_id == project_id)
    ) or 0


def ensure_deletable(db: Session, project: Project) -> None:
    """有任何评价的项目都不可删除，与是否锁定无关。"""

    count = count_evaluations(db, project.id)
    if count > 0:
        raise HasEvaluations(f"项目 {project.id} 已有 {count} 份评价，不能删除")


class ProjectService:
    """项目的创建、修改、删除与查询。"""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    # --- 校验 ---

    def _check_window(self, award: Award, now: Optional[datetime]) -> None:
        if not self.settings.enforce_submission_window:
            return
        instant = now or datetime.now(timezone.utc)
        if not is_open_for(award, instant):
            raise AwardClosed(f"奖项 {award.id} 当前不在开放期内")

    def _get_award(self, db: Session, award_id: int) -> Award:
        award = db.get(Award, award_id)
        if not award:
            raise NotFound("奖项", award_id)
        return award

    def _resolve_authors(
        self, db: Session, author_ids: Iterable[int], project_id: Optional[int] = None
    ) -> List[User]:
        """按给定顺序解析作者，任何一个不是已存在的作者都抛出 ``InvalidAuthors``。

        修改已有项目时传入 ``project_id``，已评价过该项目的用户不能加入作者名单。
        """

        ordered: List[int] = []
        for author_id in author_ids:
            if author_id not in ordered:
                ordered.append(author_id)

        users = {
            user.id: user
            for user in db.scalars(
                select(User).where(User.id.in_(ordered), User.role == UserRole.AUTHOR)
            )
        }
        invalid = [author_id for author_id in ordered if author_id not in users]
        if invalid:
            raise InvalidAuthors(
                "作者列表中包含不存在或非作者角色的用户",
                [f"author_ids: {author_id} 不是有效作者" for author_id in invalid],
            )
        if project_id is not None:
            reviewers = set(
                db.scalars(
                    select(Evaluation.evaluator_id).where(
                        Evaluation.project_id == project_id,
                        Evaluation.evaluator_id.in_(ordered),
                    )
                )
            )
            if reviewers:
                raise InvalidAuthors(
                    "作者列表中包含已评价过该项目的用户",
                    [
                        f"author_ids: {author_id} 已评价过项目 {project_id}"
                        for author_id in sorted(reviewers)
                    ],
                )
        return [users[author_id] for author_id in ordered]

    def _ensure_can_manage(self, caller: Caller, project: Project) -> None:
        if caller.is_admin:
            return
        if caller.role != UserRole.AUTHOR or caller.user_id not in {
            author.id for author in project.authors
        }:
            raise Forbidden("只有项目作者或管理员可以修改该项目")

    # --- 写操作 ---

    def create_project(
        self,
        db: Session,
        caller: Caller,
        award_id: int,
        title: str,
        area: str,
        abstract: str,
        author_ids: Optional[List[int]] = None,
        principal_author_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Project:
        """提交项目。

        作者提交时第一作者固定为调用方本人并自动加入作者列表；
        管理员代为提交时必须显式给出 ``principal_author_id``。
        """

        ensure_role(caller, UserRole.AUTHOR, UserRole.ADMIN, message="只有作者或管理员可以提交项目")

        errors = missing_fields({"area": area, "title": title, "abstract": abstract})
        if caller.is_admin and principal_author_id is None:
            errors.append("principal_author_id: 不能为空")
        if errors:
            raise FieldValidationError(errors)

        award = self._get_award(db, award_id)
        self._check_window(award, now)

        principal_id = principal_author_id if caller.is_admin else caller.user_id
        authors = self._resolve_authors(db, [principal_id, *(author_ids or [])])

        project = Project(
            area=clean_text(area),
            title=clean_text(title),
            abstract=clean_text(abstract),
            award_id=award.id,
            principal_author_id=principal_id,
            authors=authors,
        )
        db.add(project)
        db.commit()
        db.refresh(project)
        logger.info(
            "project_created",
            project_id=project.id,
            award_id=award.id,
            authors=[author.id for author in authors],
        )
        return project

    def update_project(
        self,
        db: Session,
        caller: Caller,
        project_id: int,
        fields: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Project:
        """修改项目的结构性字段；锁定的项目抛出 ``ProjectLocked``。"""

        try:
            project = lock_project(db, project_id)
            self._ensure_can_manage(caller, project)
            ensure_editable(project)

            errors = missing_fields({name: fields[name] for name in TEXT_FIELDS if name in fields})
            if errors:
                raise FieldValidationError(errors)

            award_id = fields.get("award_id")
            if award_id is not None and award_id != project.award_id:
                self._check_window(self._get_award(db, award_id), now)
                project.award_id = award_id

            for name in TEXT_FIELDS:
                if name in fields:
                    setattr(project, name, clean_text(fields[name]))

            if fields.get("author_ids") is not None:
                project.authors = self._resolve_authors(
                    db, [project.principal_author_id, *fields["author_ids"]], project_id=project.id
                )

            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(project)
        logger.info("project_updated", project_id=project_id, fields=sorted(fields))
        return project

    def delete_project(self, db: Session, caller: Caller, project_id: int) -> None:
        try:
            project = lock_project(db, project_id)
            self._ensure_can_manage(caller, project)
            ensure_deletable(db, project)
            db.delete(project)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("project_deleted", project_id=project_id)

    # --- 查询 ---

    def get_project(self, db: Session, project_id: int) -> Project:
        project = db.get(Project, project_id)
        if not project:
            raise ProjectNotFound(project_id)
        return project

    def list_projects(
        self,
        db: Session,
        evaluated: Optional[bool] = None,
        author_id: Optional[int] = None,
        award_id: Optional[int] = None,
        with_authors: bool = False,
        with_evaluations: bool = False,
    ) -> List[Project]:
        query = select(Project).order_by(Project.id.asc())
        if evaluated is not None:
            query = query.where(Project.evaluated.is_(evaluated))
        if author_id is not None:
            query = query.where(Project.authors.any(User.id == author_id))
        if award_id is not None:
            query = query.where(Project.award_id == award_id)
        if with_authors:
            query = query.options(selectinload(Project.authors))
        if with_evaluations:
            query = query.options(
                selectinload(Project.evaluations).selectinload(Evaluation.evaluator)
            )
        return list(db.scalars(query))

    def list_evaluated(self, db: Session, **projection: bool) -> List[Project]:
        return self.list_projects(db, evaluated=True, **projection)

    def list_not_evaluated(self, db: Session, **projection: bool) -> List[Project]:
        return self.list_projects(db, evaluated=False, **projection)
