"""Shared test fixtures: in-memory database, seeded users and questionnaires, fakes."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.auth import create_access_token
from app.db.base import Base
from app.db.models import Questionnaire, QuestionnaireOption, QuestionnaireQuestion, User
from app.llm.fake import GatewayFake

_TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine() -> AsyncEngine:
    """Fresh in-memory SQLite database per test.

    Also installs the global session factory so route handlers calling
    get_session_factory() share the same database.
    """
    import app.db.base as db_mod
    import app.db.models  # noqa: F401

    engine = create_async_engine(
        _TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def _add_user(session_factory, name: str, role: str, company_id: str | None = "acme") -> User:
    async with session_factory() as session:
        user = User(name=name, email=f"{name.lower()}@example.com", role=role, company_id=company_id)
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
async def user(session_factory) -> User:
    return await _add_user(session_factory, "Ana", "user")


@pytest.fixture
async def other_user(session_factory) -> User:
    return await _add_user(session_factory, "Bruno", "user", company_id="globex")


@pytest.fixture
async def admin(session_factory) -> User:
    return await _add_user(session_factory, "Carla", "admin")


@pytest.fixture
async def master(session_factory) -> User:
    return await _add_user(session_factory, "Diego", "master")


@pytest.fixture
async def questionnaire(session_factory, admin) -> Questionnaire:
    """Active questionnaire: two 0-5 scales, one multiple choice, one free text."""
    async with session_factory() as session:
        q = Questionnaire(
            title="Clima Organizacional",
            description="Pesquisa trimestral de clima",
            type="Clima",
            is_active=True,
            created_by=admin.id,
            questions=[
                QuestionnaireQuestion(question="Como você avalia a comunicação?", type="scale", order=1),
                QuestionnaireQuestion(question="Como você avalia o reconhecimento?", type="scale", order=2),
                QuestionnaireQuestion(
                    question="Com que frequência recebe feedback?",
                    type="multiple_choice",
                    order=3,
                    options=[
                        QuestionnaireOption(value="nunca", label="Nunca", score=1, order=1),
                        QuestionnaireOption(value="as_vezes", label="Às vezes", score=3, order=2),
                        QuestionnaireOption(value="sempre", label="Sempre", score=5, order=3),
                    ],
                ),
                QuestionnaireQuestion(question="O que poderia melhorar?", type="text", order=4, required=False),
            ],
        )
        session.add(q)
        await session.commit()
        q_id = q.id

    # Reload so questions come back ordered with ids
    async with session_factory() as session:
        return await session.get(Questionnaire, q_id)


@pytest.fixture
def question_ids(questionnaire) -> list[str]:
    return [str(q.id) for q in questionnaire.questions]


@pytest.fixture
def answers(question_ids) -> dict[str, str]:
    """4 + 3 on the scales across four answers: basic score 35, "Crítico"."""
    scale_1, scale_2, choice, text = question_ids
    return {scale_1: "4", scale_2: "3", choice: "sempre", text: "Mais reuniões de alinhamento"}


@pytest.fixture
def gateway_fake():
    """Fresh GatewayFake with happy_path scenario (default)."""
    return GatewayFake(scenario="happy_path")


@pytest.fixture
def token_for():
    """Build a bearer header for a seeded user."""

    def _token(u: User, role: str | None = None) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(u.id, role or u.role)}"}

    return _token


@pytest.fixture
def random_id() -> uuid.UUID:
    return uuid.uuid4()
