#!/usr/bin/env python3
"""
Database seeding script for the UPI payment service.

Creates the tables, a batch of Faker-generated storefront orders awaiting
payment, and a mock gateway setting so the service starts with a usable
configuration.

Usage:
    python -m scripts.seed_database
    # or
    python scripts/seed_database.py
"""

import asyncio
import random
import sys
import uuid
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path

# Add the project root to the path so we can import app modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from faker import Faker
from sqlalchemy import select

from app.config import settings
from app.database import init_db, async_session_maker, engine
from app.gateways.base import GatewayProvider
from app.models import Order, GatewaySetting
from app.schemas.gateway_setting import GatewaySettingCreate
from app.services.gateway_settings import GatewaySettingService

fake = Faker("en_IN")
Faker.seed(42)
random.seed(42)

ORDER_COUNT = 25
MIN_ORDER_AMOUNT = 99
MAX_ORDER_AMOUNT = 25000
MOCK_SETTING_NAME = "Local mock gateway"


def generate_order() -> Order:
    amount = Decimal(str(random.uniform(MIN_ORDER_AMOUNT, MAX_ORDER_AMOUNT))).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    return Order(
        id=str(uuid.uuid4()),
        user_id=fake.uuid4() if random.random() < 0.8 else None,
        total_amount=amount,
        currency=settings.DEFAULT_CURRENCY,
        status="PENDING",
    )


async def seed_database():
    """Create tables and insert demo data."""
    print("=" * 60)
    print("UPI PAYMENT SERVICE - DATABASE SEEDING")
    print("=" * 60)
    print()

    await init_db()

    async with async_session_maker() as session:
        orders = [generate_order() for _ in range(ORDER_COUNT)]
        session.add_all(orders)
        await session.commit()
        print(f"Created {len(orders)} orders awaiting payment")

        existing = await session.execute(
            select(GatewaySetting).where(GatewaySetting.name == MOCK_SETTING_NAME)
        )
        if existing.scalar_one_or_none() is None:
            service = GatewaySettingService(session)
            await service.create_setting(
                GatewaySettingCreate(
                    name=MOCK_SETTING_NAME,
                    provider=GatewayProvider.MOCK,
                    api_key=settings.UPI_API_KEY,
                    api_secret=settings.UPI_API_SECRET,
                    merchant_id=settings.UPI_MERCHANT_ID,
                    webhook_secret=settings.UPI_WEBHOOK_SECRET,
                    is_test_mode=True,
                    is_active=True,
                    description="Seeded for local development",
                )
            )
            print(f"Created active gateway setting '{MOCK_SETTING_NAME}'")
        else:
            print(f"Gateway setting '{MOCK_SETTING_NAME}' already present")

    print()
    print("Sample orders:")
    for order in orders[:5]:
        print(f"  {order.id}  {order.total_amount:>10} {order.currency}")
    print()
    print("Database seeding completed successfully!")

    # Cleanup
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_database())
