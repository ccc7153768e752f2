"""Create the schema and seed a host, a guest, a property and a coupon.

Run locally:
    python -m scripts.seed_data
"""

import asyncio
import sys
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

# Add the project root to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from staybook.auth.jwt import create_user_token
from staybook.config import settings
from staybook.database import Base, create_engine_from_settings, create_session_factory, utcnow
from staybook.models import Coupon, DiscountType, Property, Role, User

USERS = [
    {"email": "host@staybook.dev", "name": "Demo Host", "role": Role.HOST},
    {"email": "guest@staybook.dev", "name": "Demo Guest", "role": Role.GUEST},
    {"email": "admin@staybook.dev", "name": "Demo Admin", "role": Role.ADMIN},
]

PROPERTY = {
    "name": "Le Ayu Villa Canggu",
    "nightly_rate": Decimal("15000.00"),
    "cleaning_fee": Decimal("2000.00"),
    "max_guests": 4,
}

COUPON = {
    "code": "WELCOME10",
    "name": "Welcome 10% off",
    "discount_type": DiscountType.PERCENTAGE,
    "discount_value": Decimal("10"),
    "max_uses": 100,
    "min_booking_value": Decimal("10000.00"),
}


async def seed() -> None:
    engine = create_engine_from_settings(settings)
    session_factory = create_session_factory(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as db:
        users: dict[Role, User] = {}
        for data in USERS:
            result = await db.execute(select(User).where(User.email == data["email"]))
            user = result.scalar_one_or_none()
            if user is None:
                user = User(**data)
                db.add(user)
                await db.flush()
                print(f"  Created user {user.email}")
            users[user.role] = user

        result = await db.execute(select(Property).where(Property.name == PROPERTY["name"]))
        prop = result.scalar_one_or_none()
        if prop is None:
            prop = Property(host_id=users[Role.HOST].id, **PROPERTY)
            db.add(prop)
            await db.flush()
            print(f"  Created property {prop.name} ({prop.id})")

        result = await db.execute(select(Coupon).where(Coupon.code == COUPON["code"]))
        if result.scalar_one_or_none() is None:
            now = utcnow()
            db.add(Coupon(valid_from=now, valid_until=now + timedelta(days=365), **COUPON))
            print(f"  Created coupon {COUPON['code']}")

        await db.commit()

        print("\nAccess tokens:")
        for role, user in users.items():
            print(f"  {role.value:<6} {create_user_token(str(user.id))}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
