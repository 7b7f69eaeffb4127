"""
Seed script - official agents and an admin account for local development.
"""

import asyncio
import os

from facility.db import init_db, async_session_maker, UserRole, Plan
from facility.services import create_user, get_user_by_email, create_access_token
from facility.services.agent_service import create_system_agent


OFFICIAL_AGENTS = [
    {
        "name": "Advogado",
        "specialty": "Law",
        "system_instruction": (
            "You are a lawyer assistant. Answer with references to the applicable "
            "legislation and point out when the user should consult a licensed attorney."
        ),
    },
    {
        "name": "Contador",
        "specialty": "Accounting",
        "system_instruction": (
            "You are an accounting assistant. Explain tax and bookkeeping rules "
            "clearly and show the calculations you use."
        ),
    },
    {
        "name": "Medico",
        "specialty": "Health",
        "system_instruction": (
            "You are a medical information assistant. Give general guidance only "
            "and always recommend seeing a physician for diagnosis."
        ),
    },
    {
        "name": "Engenheiro",
        "specialty": "Engineering",
        "system_instruction": (
            "You are an engineering assistant. Be precise with units, norms and "
            "safety requirements."
        ),
    },
]


async def seed_database():
    await init_db()

    admin_email = os.environ.get("SEED_ADMIN_EMAIL", "admin@facility.local")

    async with async_session_maker() as db:
        print("🤖 Creating official agents...")
        for spec in OFFICIAL_AGENTS:
            await create_system_agent(db, **spec)
            print(f"  ✅ {spec['name']}")

        admin = await get_user_by_email(db, admin_email)
        if admin is None:
            admin = await create_user(
                db,
                email=admin_email,
                name="Administrator",
                plan=Plan.ENTERPRISE.value,
                role=UserRole.ADMIN.value,
            )
            print(f"👤 Admin created: {admin_email}")
        else:
            print(f"👤 Admin already exists: {admin_email}")

        print("\n✅ Seeding complete!")
        print(f"   Admin token (1 day): {create_access_token(admin.id, expires_minutes=60 * 24)}")


if __name__ == "__main__":
    asyncio.run(seed_database())
