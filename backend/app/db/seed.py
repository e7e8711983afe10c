"""Idempotent seed data: default accounts and a starter questionnaire."""

from sqlalchemy import select

from app.core.auth import hash_password
from app.db.base import get_session_factory
from app.db.models.questionnaire import Questionnaire, QuestionnaireOption, QuestionnaireQuestion
from app.db.models.user import User

SEED_USERS = [
    {
        "name": "Master WorkChoque",
        "email": "master@workchoque.com",
        "role": "master",
        "company_id": None,
        "password": "master123",
    },
    {
        "name": "Admin Empresa",
        "email": "admin@empresa.com",
        "role": "admin",
        "company_id": "empresa",
        "password": "admin123",
    },
    {
        "name": "João Silva",
        "email": "colaborador@empresa.com",
        "role": "user",
        "company_id": "empresa",
        "password": "123456",
    },
]

_FREQUENCY_OPTIONS = [
    ("nunca", "Nunca", 1),
    ("raramente", "Raramente", 2),
    ("as_vezes", "Às vezes", 3),
    ("frequentemente", "Frequentemente", 4),
    ("sempre", "Sempre", 5),
]

STARTER_QUESTIONNAIRE = {
    "title": "Diagnóstico de Bem-estar Organizacional",
    "description": "Avaliação inicial de clima, liderança e bem-estar da equipe",
    "type": "wellness",
    "questions": [
        ("De 0 a 5, como você avalia a comunicação interna da empresa?", "scale"),
        ("De 0 a 5, o quanto você se sente reconhecido pelo seu trabalho?", "scale"),
        ("De 0 a 5, como você avalia o equilíbrio entre vida pessoal e trabalho?", "scale"),
        ("De 0 a 5, qual a clareza dos objetivos da sua área?", "scale"),
        ("Com que frequência você recebe feedback da liderança?", "multiple_choice"),
        ("Você recomendaria a empresa como um bom lugar para trabalhar?", "yes_no"),
        ("O que você mudaria para melhorar o dia a dia da equipe?", "text"),
    ],
}


async def seed_users() -> dict[str, User]:
    """Insert the default accounts that don't exist yet. Returns all of them by role."""
    factory = get_session_factory()
    seeded = {}

    async with factory() as session:
        for user_data in SEED_USERS:
            result = await session.execute(select(User).where(User.email == user_data["email"]))
            user = result.scalar_one_or_none()
            if user is None:
                fields = {key: value for key, value in user_data.items() if key != "password"}
                user = User(**fields, password_hash=hash_password(user_data["password"]))
                session.add(user)
            seeded[user_data["role"]] = user

        await session.commit()

    return seeded


async def seed_starter_questionnaire(created_by=None) -> Questionnaire:
    """Insert the starter questionnaire once, active only when nothing else is."""
    factory = get_session_factory()

    async with factory() as session:
        result = await session.execute(
            select(Questionnaire).where(Questionnaire.title == STARTER_QUESTIONNAIRE["title"])
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            return existing

        any_active = await session.scalar(
            select(Questionnaire.id).where(Questionnaire.is_active.is_(True)).limit(1)
        )

        questions = []
        for order, (text, qtype) in enumerate(STARTER_QUESTIONNAIRE["questions"], start=1):
            options = []
            if qtype == "multiple_choice":
                options = [
                    QuestionnaireOption(value=value, label=label, score=score, order=score)
                    for value, label, score in _FREQUENCY_OPTIONS
                ]
            questions.append(
                QuestionnaireQuestion(
                    question=text, type=qtype, order=order, required=qtype != "text", options=options
                )
            )

        questionnaire = Questionnaire(
            title=STARTER_QUESTIONNAIRE["title"],
            description=STARTER_QUESTIONNAIRE["description"],
            type=STARTER_QUESTIONNAIRE["type"],
            is_active=any_active is None,
            created_by=created_by,
            questions=questions,
        )
        session.add(questionnaire)
        await session.commit()
        return questionnaire
