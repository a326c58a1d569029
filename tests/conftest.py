import itertools
import os
import sys
from datetime import date, timedelta

import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# 配置必须在导入应用之前就绪：secret_key 没有默认值
os.environ.setdefault("PORTAL_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PORTAL_DATABASE_URL", "sqlite:///:memory:")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from portal.config import Settings
from portal.db import Base, get_db
from portal.main import app
from portal.models import UserRole
from portal.services.awards import AwardService, SchedulePhase
from portal.services.identity import Caller, TokenService
from portal.services.users import UserService

# Use in-memory SQLite for testing to ensure isolation
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def session():
    """
    Create a fresh database session for each test.
    """
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(session):
    """
    Create a TestClient that uses the override_get_db dependency.
    """
    def override_get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        secret_key="test-secret-key",
        database_url=SQLALCHEMY_DATABASE_URL,
    )


@pytest.fixture
def make_user(session):
    """直接通过服务层创建用户，返回工厂函数。"""
    counter = itertools.count(1)

    def _make(role=UserRole.AUTHOR, **overrides):
        n = next(counter)
        fields = {
            "name": f"{role.value.title()} {n}",
            "email": f"{role.value}{n}@example.com",
            "national_id": f"{n:03d}.000.000-{n % 100:02d}",
            "birth_date": date(1990, 1, 1),
            "phone": "(11) 91234-5678",
            "country": "Brasil",
            "city": "São Paulo",
            "state": "SP",
            "password": "senha123",
            "specialty": "Engenharia" if role == UserRole.EVALUATOR else None,
        }
        fields.update(overrides)
        return UserService().create_user(session, fields, role)

    return _make


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, email="admin@innovatehub.com")


@pytest.fixture
def make_award(session, admin):
    """创建奖项；默认阶段覆盖今天前后 30 天。"""

    def _make(phases=None, name="Prize A"):
        if phases is None:
            today = date.today()
            phases = [
                SchedulePhase(
                    start=today - timedelta(days=30),
                    end=today + timedelta(days=30),
                    label="Período de inscrições",
                )
            ]
        return AwardService().create_award(
            session,
            caller_of(admin),
            name=name,
            description=f"{name} description",
            schedule=phases,
            year=phases[0].start.year if phases else date.today().year,
        )

    return _make


@pytest.fixture
def auth_headers():
    """为用户签发与应用同一密钥的 Token。"""
    settings = app.state.settings
    tokens = TokenService(settings.secret_key, settings.token_expire_hours)

    def _headers(user):
        return {"Authorization": f"Bearer {tokens.create_token(user.id, user.role)}"}

    return _headers


def caller_of(user) -> Caller:
    return Caller(user_id=user.id, role=user.role)
