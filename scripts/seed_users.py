"""Seed demo users into the users table.

Usage: python -m scripts.seed_users [--count 10] [--create-tables]

``--create-tables`` runs ``Base.metadata.create_all`` first, which is handy
against a throwaway SQLite database; use Alembic for real deployments.
"""
import argparse
import asyncio
import random
import sys
sys.path.insert(0, ".")

from sqlalchemy import select

from kindred.database import Base, async_session_factory, engine
from kindred.models import User


FIRST_NAMES = [
    "Alex", "Sam", "Jordan", "Taylor", "Morgan", "Riley",
    "Casey", "Jamie", "Avery", "Quinn", "Rowan", "Skyler",
]
LOCATIONS = ["London", "Manchester", "Edinburgh", "Bristol", "Leeds"]
GENDERS = ["female", "male", "non-binary"]
BIOS = [
    "Coffee first, questions later.",
    "Weekend hiker, weekday spreadsheet enthusiast.",
    "Will trade book recommendations for restaurant ones.",
    "Learning to cook one disaster at a time.",
    "",
]


def demo_user(index: int) -> dict:
    name = FIRST_NAMES[index % len(FIRST_NAMES)]
    return {
        "email": f"demo{index}@kindred.test",
        "display_name": f"{name} {index}",
        "age": random.randint(21, 45),
        "gender": random.choice(GENDERS),
        "location": random.choice(LOCATIONS),
        "bio": random.choice(BIOS),
        "photos": [f"https://photos.kindred.test/{index}/1.jpg"],
    }


async def seed(count: int, create_tables: bool) -> None:
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("  Tables created.")

    async with async_session_factory() as session:
        for i in range(count):
            fields = demo_user(i)
            existing = await session.execute(
                select(User).where(User.email == fields["email"])
            )
            user = existing.scalar_one_or_none()
            if user is None:
                user = User(**fields)
                session.add(user)
                await session.flush()
                print(f"  Seeded {user.display_name}: {user.id}")
            else:
                print(f"  {fields['email']} already exists ({user.id}), skipping.")
        await session.commit()

    await engine.dispose()
    print("Done seeding users.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed Kindred demo users")
    parser.add_argument("--count", type=int, default=10)
    parser.add_argument("--create-tables", action="store_true")
    args = parser.parse_args()
    asyncio.run(seed(args.count, args.create_tables))
