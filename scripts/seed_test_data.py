"""
Seed a local database with demo users and listings.

Usage:
    python scripts/seed_test_data.py

Or with custom DATABASE_URL:
    DATABASE_URL="postgresql://..." python scripts/seed_test_data.py

This script creates (once; existing emails are skipped):
- A buyer, a seller and an admin, all with password "demo1234"
- A few active listings owned by the seller
"""

import asyncio
import os
import sys
from decimal import Decimal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from src.db import AsyncSessionLocal
from src.models import KycStatus, Listing, ListingStatus, User, UserRole
from src.utils.password import hash_password

DEMO_PASSWORD = "demo1234"

DEMO_USERS = [
    {"email": "buyer@souq.local", "name": "Demo Buyer", "roles": [UserRole.BUYER.value]},
    {
        "email": "seller@souq.local",
        "name": "Demo Seller",
        "phone": "+251911000001",
        "roles": [UserRole.BUYER.value, UserRole.SELLER.value],
        "kyc_status": KycStatus.APPROVED,
    },
    {"email": "admin@souq.local", "name": "Demo Admin", "roles": [UserRole.ADMIN.value]},
]

DEMO_LISTINGS = [
    {"title": "Used mountain bicycle", "price": Decimal("5000.00"), "payment_methods": ["cash", "m-birr"]},
    {"title": "Samsung Galaxy A54", "price": Decimal("28500.00"), "payment_methods": ["telebirr", "bank_transfer"]},
    {"title": "Wooden coffee table", "price": Decimal("3200.00"), "payment_methods": ["cash"]},
]


async def get_or_create_user(db, data: dict) -> User:
    result = await db.execute(select(User).where(User.email == data["email"]))
    user = result.scalar_one_or_none()
    if user:
        print(f"  = {user.email} already exists (id {user.id})")
        return user

    user = User(password_hash=hash_password(DEMO_PASSWORD), **data)
    db.add(user)
    await db.flush()
    print(f"  + {user.email} (id {user.id}, roles {', '.join(user.roles)})")
    return user


async def seed():
    async with AsyncSessionLocal() as db:
        print("Users:")
        users = {}
        for data in DEMO_USERS:
            users[data["email"]] = await get_or_create_user(db, data)

        seller = users["seller@souq.local"]
        existing = await db.execute(select(Listing.title).where(Listing.seller_id == seller.id))
        titles = set(existing.scalars().all())

        print("Listings:")
        for data in DEMO_LISTINGS:
            if data["title"] in titles:
                print(f"  = {data['title']} already exists")
                continue
            db.add(Listing(seller_id=seller.id, currency="ETB", status=ListingStatus.ACTIVE, **data))
            print(f"  + {data['title']} ({data['price']} ETB)")

        await db.commit()

    print(f"\nDone. Log in with any demo email and password '{DEMO_PASSWORD}'.")


if __name__ == "__main__":
    asyncio.run(seed())
