"""Seed default accounts and the starter questionnaire, then print dev tokens.

Seeded accounts can also log in through POST /api/auth/login.

Usage (from backend/):
    python -m scripts.seed_demo
"""

import asyncio

from app.core.auth import create_access_token
from app.db import close_db, init_db
from app.db.seed import seed_starter_questionnaire, seed_users


async def main() -> None:
    await init_db()
    try:
        users = await seed_users()
        questionnaire = await seed_starter_questionnaire(created_by=users["admin"].id)

        print(f"Questionnaire {questionnaire.id} | active={questionnaire.is_active} | {questionnaire.title}")
        for role, user in users.items():
            print(f"\n{role}: {user.email} ({user.id})")
            print(f"  Bearer {create_access_token(user.id, role)}")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
