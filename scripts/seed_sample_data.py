"""填充示例数据：管理员、作者、评审、奖项、项目与评价。

重复执行时，已存在的用户（按邮箱）与奖项（按名称）会被复用，项目每次新建。
"""
import sys
from datetime import date
from pathlib import Path

# 添加项目根目录到 path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from portal.config import get_settings
from portal.db import Base, build_engine, build_session_factory
from portal.errors import PortalError
from portal.models import Award, UserRole
from portal.services.awards import AwardService, SchedulePhase
from portal.services.bootstrap import ensure_admin
from portal.services.evaluations import EvaluationService
from portal.services.identity import Caller
from portal.services.projects import ProjectService
from portal.services.users import UserService

SAMPLE_PASSWORD = "senha123"

SAMPLE_USERS = [
    ("João Silva", "joao.silva@email.com", "111.111.111-11", date(1995, 3, 15), "São Paulo", "SP", UserRole.AUTHOR, None),
    ("Maria Oliveira", "maria.oliveira@email.com", "222.222.222-22", date(1990, 7, 22), "Rio de Janeiro", "RJ", UserRole.AUTHOR, None),
    ("João Pedro Almeida", "joao.almeida@startups.com", "333.333.333-33", date(1995, 5, 10), "Curitiba", "PR", UserRole.AUTHOR, None),
    ("Carlos Santos", "carlos.santos@email.com", "444.444.444-44", date(1985, 11, 10), "Belo Horizonte", "MG", UserRole.EVALUATOR, "Ciência da Computação"),
    ("Ana Costa", "ana.costa@email.com", "555.555.555-55", date(1988, 4, 5), "Curitiba", "PR", UserRole.EVALUATOR, "Engenharia"),
    ("Mariana Lopes Ferreira", "mariana.ferreira@sustentabilidade.org", "666.666.666-66", date(1988, 11, 30), "Belo Horizonte", "MG", UserRole.EVALUATOR, "Sustentabilidade Ambiental"),
]

SAMPLE_AWARDS = [
    (
        "Prêmio Inovação Tecnológica 2025",
        "Premiação para projetos inovadores na área de tecnologia",
        [
            SchedulePhase(start=date(2025, 1, 10), end=date(2025, 3, 30), label="Período de inscrições"),
            SchedulePhase(start=date(2025, 4, 1), end=date(2025, 5, 15), label="Avaliação preliminar"),
        ],
    ),
    (
        "Prêmio Sustentabilidade 2025",
        "Premiação para projetos com impacto ambiental positivo",
        [
            SchedulePhase(start=date(2025, 2, 10), end=date(2025, 4, 30), label="Período de inscrições"),
            SchedulePhase(start=date(2025, 5, 1), end=date(2025, 6, 30), label="Avaliação preliminar"),
        ],
    ),
]

SAMPLE_PROJECTS = [
    ("Tecnologia", "Plataforma de telemedicina rural", "Atendimento remoto para comunidades sem cobertura médica."),
    ("Tecnologia", "Sensores de baixo custo para agricultura", "Rede de sensores para irrigação de precisão."),
    ("Sustentabilidade", "Reciclagem de resíduos eletrônicos", "Recuperação de metais a partir de placas descartadas."),
]

SAMPLE_SCORES = [(8.0, 7.5, 9.0), (6.5, 7.0), (9.5,)]


def seed():
    print("=" * 50)
    print("填充示例数据")
    print("=" * 50)

    # 示例奖项的时间窗口已过，填充时关闭提交窗口检查
    settings = get_settings().model_copy(update={"enforce_submission_window": False})
    engine = build_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    factory = build_session_factory(engine)
    users = UserService()

    with factory() as db:
        print("\n[1/4] 初始化用户...")
        admin = ensure_admin(db, settings)
        if admin is None:
            print("  未配置 PORTAL_ADMIN_PASSWORD，无法继续")
            return
        admin_caller = Caller(user_id=admin.id, role=admin.role)

        created = {}
        for name, email, cpf, birth, city, state, role, specialty in SAMPLE_USERS:
            user = users.get_user_by_email(db, email)
            if user is None:
                user = users.create_user(
                    db,
                    {
                        "name": name,
                        "email": email,
                        "national_id": cpf,
                        "birth_date": birth,
                        "phone": "(11) 91234-5678",
                        "country": "Brasil",
                        "city": city,
                        "state": state,
                        "specialty": specialty,
                        "password": SAMPLE_PASSWORD,
                    },
                    role,
                )
                print(f"  创建用户 {user.name} ({role.value})")
            else:
                print(f"  用户 {user.name} 已存在")
            created.setdefault(role, []).append(user)
        authors = created[UserRole.AUTHOR]
        evaluators = created[UserRole.EVALUATOR]

        print("\n[2/4] 创建奖项...")
        awards = AwardService()
        award_ids = []
        for name, description, schedule in SAMPLE_AWARDS:
            award = db.scalar(select(Award).where(Award.name == name))
            if award is None:
                award = awards.create_award(db, admin_caller, name, description, schedule, 2025)
                print(f"  创建奖项 {award.name}")
            else:
                print(f"  奖项 {award.name} 已存在")
            award_ids.append(award.id)

        print("\n[3/4] 提交项目...")
        projects = ProjectService(settings)
        project_ids = []
        for index, (area, title, abstract) in enumerate(SAMPLE_PROJECTS):
            principal = authors[index % len(authors)]
            project = projects.create_project(
                db,
                admin_caller,
                award_id=award_ids[index % len(award_ids)],
                title=title,
                area=area,
                abstract=abstract,
                principal_author_id=principal.id,
            )
            project_ids.append(project.id)
            print(f"  项目 #{project.id} {project.title}（第一作者 {principal.name}）")

        print("\n[4/4] 提交评价...")
        evaluations = EvaluationService(settings)
        for project_id, scores in zip(project_ids, SAMPLE_SCORES):
            for evaluator, score in zip(evaluators, scores):
                try:
                    evaluations.submit(
                        db,
                        admin_caller,
                        project_id=project_id,
                        score=score,
                        opinion="Projeto consistente e bem fundamentado.",
                        evaluator_id=evaluator.id,
                    )
                    print(f"  {evaluator.name} -> 项目 #{project_id}: {score}")
                except PortalError as exc:
                    print(f"  跳过 {evaluator.name} -> 项目 #{project_id}: {exc.code}")

    print("\n" + "=" * 50)
    print("示例数据填充完成！")
    print("=" * 50)


if __name__ == "__main__":
    seed()
