from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from portal.errors import Forbidden
from portal.models import UserRole
from portal.services import ranking
from portal.services.awards import SchedulePhase
from portal.services.evaluations import EvaluationService
from portal.services.identity import Caller
from portal.services.projects import ProjectService

IN_WINDOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _caller(user) -> Caller:
    return Caller(user_id=user.id, role=user.role)


def _fake(project_id, *scores):
    return SimpleNamespace(
        id=project_id,
        evaluations=[SimpleNamespace(score=Decimal(str(score))) for score in scores],
    )


def test_rank_sums_with_decimal_precision() -> None:
    project = _fake(1, 0.1, 0.2, 0.3)

    assert ranking.total_score(project) == Decimal("0.6")
    assert ranking.total_score(_fake(2)) == Decimal("0")


def test_rank_is_descending_and_stable_on_id() -> None:
    projects = [_fake(4, 5.0, 5.0), _fake(2, 10.0), _fake(1, 3.0), _fake(3, 9.0, 1.0)]

    ranked = ranking.rank(projects)

    assert [item.project.id for item in ranked] == [2, 3, 4, 1]
    assert [item.rank for item in ranked] == [1, 2, 3, 4]
    assert [item.evaluation_count for item in ranked] == [1, 2, 2, 1]
    assert [item.project.id for item in ranking.rank(reversed(projects))] == [2, 3, 4, 1]


@pytest.fixture
def scored(session, settings, make_award, make_user):
    """两个奖项下的五个项目，其中一个没有评价。"""
    phases = [SchedulePhase(start=date(2025, 1, 1), end=date(2025, 12, 31), label="Inscrições")]
    award_a = make_award(name="A", phases=phases)
    award_b = make_award(name="B", phases=phases)
    evaluators = [make_user(UserRole.EVALUATOR) for _ in range(3)]
    projects = ProjectService(settings)
    evaluations = EvaluationService(settings)

    created = []
    for award, scores in (
        (award_a, (5.0, 5.0)),
        (award_a, (9.0, 9.0, 9.0)),
        (award_a, ()),
        (award_b, (8.0, 2.0)),
        (award_a, (1.0,)),
    ):
        author = make_user(UserRole.AUTHOR)
        project = projects.create_project(
            session, _caller(author), award_id=award.id,
            title=f"P{len(created) + 1}", area="Tecnologia", abstract="Resumo", now=IN_WINDOW,
        )
        for evaluator, score in zip(evaluators, scores):
            evaluations.submit(session, _caller(evaluator), project.id, score, "Parecer")
        created.append(project)
    return {"awards": (award_a, award_b), "projects": created}


def test_list_winners_global_and_per_award(session, scored) -> None:
    p1, p2, p3, p4, p5 = scored["projects"]
    award_a, award_b = scored["awards"]

    winners = ranking.list_winners(session)
    assert [item.project.id for item in winners] == [p2.id, p1.id, p4.id]
    assert [item.total_score for item in winners] == [Decimal("27.0"), Decimal("10.0"), Decimal("10.0")]

    in_a = ranking.list_winners(session, award_id=award_a.id)
    assert [item.project.id for item in in_a] == [p2.id, p1.id, p5.id]
    assert p3.id not in [item.project.id for item in in_a]
    assert [item.project.id for item in ranking.list_winners(session, award_id=award_b.id)] == [p4.id]

    assert [item.project.id for item in ranking.list_winners(session)] == [p2.id, p1.id, p4.id]


def test_refresh_winner_flags(session, scored, admin, make_user) -> None:
    p1, p2, p3, p4, p5 = scored["projects"]

    with pytest.raises(Forbidden):
        ranking.refresh_winner_flags(session, _caller(make_user(UserRole.AUTHOR)))

    ranking.refresh_winner_flags(session, _caller(admin))
    flags = {p.id: p.winner for p in (p1, p2, p3, p4, p5)}
    assert flags == {p1.id: True, p2.id: True, p3.id: False, p4.id: True, p5.id: False}

    award_b = scored["awards"][1]
    ranking.refresh_winner_flags(session, _caller(admin), award_id=award_b.id)
    session.refresh(p1)
    assert p1.winner is True


def test_winners_endpoint(client, scored) -> None:
    p2 = scored["projects"][1]

    response = client.get("/api/v1/projects/winners")

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 3
    assert body[0]["project"]["id"] == p2.id
    assert body[0]["total_score"] == 27.0
    assert body[0]["evaluation_count"] == 3
