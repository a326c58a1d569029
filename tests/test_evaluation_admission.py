from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from portal.errors import (
    AwardClosed,
    DuplicateEvaluation,
    FieldValidationError,
    Forbidden,
    HasAssociatedProjects,
    InvalidEvaluator,
    InvalidOpinion,
    InvalidScore,
    NotFound,
    ProjectAlreadyEvaluated,
    ProjectLocked,
    ProjectNotFound,
    SelfEvaluation,
)
from portal.models import UserRole, project_authors
from portal.services.awards import SchedulePhase
from portal.services.evaluations import EvaluationService, coerce_score
from portal.services.identity import Caller
from portal.services.projects import ProjectService, count_evaluations
from portal.services.ranking import total_score
from portal.services.users import UserService

IN_WINDOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _caller(user) -> Caller:
    return Caller(user_id=user.id, role=user.role)


@pytest.fixture
def evaluations(settings):
    return EvaluationService(settings)


@pytest.fixture
def prize(session, settings, make_award, make_user):
    """Prize A 的一个项目 P1（作者 U1）以及四位评审。"""
    award = make_award(
        name="Prize A",
        phases=[SchedulePhase(start=date(2025, 1, 1), end=date(2025, 12, 31), label="Inscrições")],
    )
    u1 = make_user(UserRole.AUTHOR, name="U1")
    p1 = ProjectService(settings).create_project(
        session,
        _caller(u1),
        award_id=award.id,
        title="P1",
        area="Tecnologia",
        abstract="Resumo",
        now=IN_WINDOW,
    )
    evaluators = [make_user(UserRole.EVALUATOR, name=f"E{i}") for i in range(1, 5)]
    return {"award": award, "author": u1, "project": p1, "evaluators": evaluators}


def _evaluate(evaluations, session, evaluator, project, score, opinion="Parecer"):
    return evaluations.submit(session, _caller(evaluator), project.id, score, opinion)


def test_third_evaluation_locks_project(session, evaluations, prize) -> None:
    e1, e2, e3, _ = prize["evaluators"]
    project = prize["project"]

    _evaluate(evaluations, session, e1, project, 8.0)
    _evaluate(evaluations, session, e2, project, 7.5)
    session.refresh(project)
    assert project.evaluated is False
    assert count_evaluations(session, project.id) == 2

    _evaluate(evaluations, session, e3, project, 9.0)
    session.refresh(project)
    assert project.evaluated is True
    assert total_score(project) == Decimal("24.5")


def test_duplicate_submission_fails_once_accepted(session, evaluations, prize) -> None:
    e1 = prize["evaluators"][0]
    project = prize["project"]

    first = _evaluate(evaluations, session, e1, project, 8.0)
    with pytest.raises(DuplicateEvaluation):
        _evaluate(evaluations, session, e1, project, 8.0)

    assert [item.id for item in evaluations.list(session, project_id=project.id)] == [first.id]


def test_duplicate_is_checked_before_score(session, evaluations, prize) -> None:
    e1 = prize["evaluators"][0]
    _evaluate(evaluations, session, e1, prize["project"], 8.0)

    with pytest.raises(DuplicateEvaluation):
        _evaluate(evaluations, session, e1, prize["project"], 11)


def test_project_author_cannot_become_evaluator(session, prize, admin) -> None:
    u1 = prize["author"]

    with pytest.raises(HasAssociatedProjects):
        UserService().update_user(
            session,
            _caller(admin),
            u1.id,
            {"role": UserRole.EVALUATOR, "specialty": "Engenharia"},
        )

    assert UserService().get_user(session, u1.id).role == UserRole.AUTHOR


def test_evaluator_in_author_set_is_self_evaluation(session, evaluations, prize) -> None:
    e1 = prize["evaluators"][0]
    project = prize["project"]
    # 历史数据：作者名单里混入了评审账号
    session.execute(project_authors.insert().values(project_id=project.id, user_id=e1.id))
    session.commit()

    with pytest.raises(SelfEvaluation):
        _evaluate(evaluations, session, e1, project, 8.0)
    assert count_evaluations(session, project.id) == 0


def test_non_evaluator_is_rejected(session, evaluations, prize, admin) -> None:
    project = prize["project"]

    with pytest.raises(Forbidden):
        _evaluate(evaluations, session, prize["author"], project, 8.0)
    with pytest.raises(InvalidEvaluator):
        evaluations.submit(
            session, _caller(admin), project.id, 8.0, "Parecer", evaluator_id=prize["author"].id
        )
    with pytest.raises(InvalidEvaluator):
        evaluations.submit(session, _caller(admin), project.id, 8.0, "Parecer", evaluator_id=999)


def test_missing_project(session, evaluations, prize) -> None:
    with pytest.raises(ProjectNotFound) as exc_info:
        evaluations.submit(session, _caller(prize["evaluators"][0]), 999, 8.0, "Parecer")

    assert isinstance(exc_info.value, NotFound)
    assert exc_info.value.code == "NotFound"


@pytest.mark.parametrize("score", [10.1, -0.1, float("nan"), float("inf"), True, None, "abc"])
def test_invalid_scores_are_rejected(session, evaluations, prize, score) -> None:
    project = prize["project"]

    with pytest.raises(InvalidScore):
        _evaluate(evaluations, session, prize["evaluators"][0], project, score)

    assert count_evaluations(session, project.id) == 0


def test_score_bounds_and_rounding() -> None:
    assert coerce_score(0) == Decimal("0.0")
    assert coerce_score(10) == Decimal("10.0")
    assert coerce_score(7.25) == Decimal("7.3")
    assert coerce_score("7.24") == Decimal("7.2")
    # 先做范围检查再取整：10.04 虽然取整后为 10.0，但仍超出范围
    with pytest.raises(InvalidScore):
        coerce_score(10.04)


def test_blank_opinion_is_rejected(session, evaluations, prize) -> None:
    with pytest.raises(InvalidOpinion):
        _evaluate(evaluations, session, prize["evaluators"][0], prize["project"], 8.0, "   ")


def test_evaluator_cannot_submit_for_someone_else(session, evaluations, prize, admin) -> None:
    e1, e2 = prize["evaluators"][:2]
    project = prize["project"]

    with pytest.raises(Forbidden):
        evaluations.submit(session, _caller(e1), project.id, 8.0, "Parecer", evaluator_id=e2.id)
    with pytest.raises(FieldValidationError):
        evaluations.submit(session, _caller(admin), project.id, 8.0, "Parecer")

    on_behalf = evaluations.submit(
        session, _caller(admin), project.id, 8.0, "Parecer", evaluator_id=e2.id
    )
    assert on_behalf.evaluator_id == e2.id


def test_strict_gate_rejects_fourth_evaluation(session, evaluations, prize) -> None:
    project = prize["project"]
    for evaluator, score in zip(prize["evaluators"][:3], (8.0, 7.5, 9.0)):
        _evaluate(evaluations, session, evaluator, project, score)

    with pytest.raises(ProjectAlreadyEvaluated):
        _evaluate(evaluations, session, prize["evaluators"][3], project, 6.0)

    assert count_evaluations(session, project.id) == 3


def test_permissive_mode_keeps_accepting(session, settings, prize) -> None:
    permissive = EvaluationService(settings.model_copy(update={"allow_evaluations_after_lock": True}))
    project = prize["project"]
    for evaluator, score in zip(prize["evaluators"], (8.0, 7.5, 9.0, 6.0)):
        permissive.submit(session, _caller(evaluator), project.id, score, "Parecer")

    session.refresh(project)
    assert project.evaluated is True
    assert count_evaluations(session, project.id) == 4
    assert total_score(project) == Decimal("30.5")


def test_evaluation_window_is_optional(session, settings, prize) -> None:
    gated = EvaluationService(settings.model_copy(update={"enforce_evaluation_window": True}))
    e1 = prize["evaluators"][0]
    project = prize["project"]

    with pytest.raises(AwardClosed):
        gated.submit(
            session, _caller(e1), project.id, 8.0, "Parecer",
            now=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )
    accepted = gated.submit(session, _caller(e1), project.id, 8.0, "Parecer", now=IN_WINDOW)
    assert accepted.evaluated_at.date() == IN_WINDOW.date()


def test_update_revalidates_shape_and_ownership(session, evaluations, prize) -> None:
    e1, e2 = prize["evaluators"][:2]
    evaluation = _evaluate(evaluations, session, e1, prize["project"], 8.0)

    updated = evaluations.update(session, _caller(e1), evaluation.id, {"score": 6.66, "opinion": " Novo "})
    assert updated.score == Decimal("6.7")
    assert updated.opinion == "Novo"

    with pytest.raises(InvalidScore):
        evaluations.update(session, _caller(e1), evaluation.id, {"score": 10.5})
    with pytest.raises(InvalidOpinion):
        evaluations.update(session, _caller(e1), evaluation.id, {"opinion": ""})
    with pytest.raises(Forbidden):
        evaluations.update(session, _caller(e2), evaluation.id, {"score": 1})
    with pytest.raises(Forbidden):
        evaluations.update(session, _caller(e1), evaluation.id, {"evaluator_id": e2.id})

    assert evaluations.get(session, evaluation.id).score == Decimal("6.7")


def test_reassignment_reruns_admission(session, settings, evaluations, prize, admin, make_user) -> None:
    e1, e2 = prize["evaluators"][:2]
    project = prize["project"]
    first = _evaluate(evaluations, session, e1, project, 8.0)
    _evaluate(evaluations, session, e2, project, 7.0)

    with pytest.raises(DuplicateEvaluation):
        evaluations.update(session, _caller(admin), first.id, {"evaluator_id": e2.id})
    with pytest.raises(InvalidEvaluator):
        evaluations.update(session, _caller(admin), first.id, {"evaluator_id": prize["author"].id})

    other_author = make_user(UserRole.AUTHOR)
    other = ProjectService(settings).create_project(
        session, _caller(other_author), award_id=prize["award"].id,
        title="P2", area="Saúde", abstract="Resumo", now=IN_WINDOW,
    )
    moved = evaluations.update(session, _caller(e1), first.id, {"project_id": other.id})
    assert moved.project_id == other.id
    assert count_evaluations(session, project.id) == 1
    assert count_evaluations(session, other.id) == 1


def test_locked_project_keeps_its_evaluations(session, evaluations, prize, admin, settings, make_user) -> None:
    project = prize["project"]
    created = [
        _evaluate(evaluations, session, evaluator, project, score)
        for evaluator, score in zip(prize["evaluators"][:3], (8.0, 7.5, 9.0))
    ]
    other = ProjectService(settings).create_project(
        session, _caller(make_user(UserRole.AUTHOR)), award_id=prize["award"].id,
        title="P2", area="Saúde", abstract="Resumo", now=IN_WINDOW,
    )

    with pytest.raises(ProjectLocked):
        evaluations.delete(session, _caller(admin), created[0].id)
    with pytest.raises(ProjectLocked):
        evaluations.update(session, _caller(admin), created[0].id, {"project_id": other.id})

    # 只修改分数不改变归属，仍然允许
    evaluations.update(session, _caller(prize["evaluators"][0]), created[0].id, {"score": 9.5})
    session.refresh(project)
    assert project.evaluated is True
    assert count_evaluations(session, project.id) == 3


def test_delete_on_editable_project(session, evaluations, prize) -> None:
    e1, e2 = prize["evaluators"][:2]
    evaluation = _evaluate(evaluations, session, e1, prize["project"], 8.0)

    with pytest.raises(Forbidden):
        evaluations.delete(session, _caller(e2), evaluation.id)

    evaluations.delete(session, _caller(e1), evaluation.id)
    with pytest.raises(NotFound):
        evaluations.get(session, evaluation.id)
    # 删除后同一评审可以重新提交
    assert _evaluate(evaluations, session, e1, prize["project"], 7.0).score == Decimal("7.0")


def test_evaluation_endpoints(client, session, prize, auth_headers) -> None:
    e1, e2, e3, e4 = prize["evaluators"]
    project = prize["project"]

    def post(evaluator, score, opinion="Parecer"):
        return client.post(
            "/api/v1/evaluations",
            json={"project_id": project.id, "score": score, "opinion": opinion},
            headers=auth_headers(evaluator),
        )

    assert post(e1, 8.0).json()["project_evaluated"] is False
    assert post(e2, 7.5).status_code == 201

    out_of_range = post(e3, 10.1)
    assert out_of_range.status_code == 400
    assert out_of_range.json()["error"] == "InvalidScore"
    blank = post(e3, 9.0, opinion="  ")
    assert blank.status_code == 400
    assert blank.json()["error"] == "InvalidOpinion"

    third = post(e3, 9.0)
    assert third.status_code == 201
    assert third.json()["project_evaluated"] is True

    duplicate = post(e1, 8.0)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "DuplicateEvaluation"

    late = post(e4, 6.0)
    assert late.status_code == 409
    assert late.json()["error"] == "ProjectAlreadyEvaluated"

    mine = client.get(
        f"/api/v1/evaluations?evaluator_id={e1.id}", headers=auth_headers(e1)
    ).json()
    assert [item["score"] for item in mine] == [8.0]
