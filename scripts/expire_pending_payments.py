#!/usr/bin/env python3
"""
Resolve PENDING UPI transactions whose payment window has closed.

Each stale transaction gets one final status check against the active
gateway; a reported success is kept, anything else is marked FAILED so the
order can be paid again. Safe to run from cron.

Usage:
    python -m scripts.expire_pending_payments
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path so we can import app modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.database import async_session_maker, engine
from app.gateways.registry import resolve_gateway
from app.logging_config import configure_logging
from app.services.payments import PaymentService

logger = logging.getLogger("scripts.expire_pending_payments")


async def expire_pending_payments() -> int:
    configure_logging()

    async with async_session_maker() as session:
        gateway = await resolve_gateway(session)
        try:
            result = await PaymentService(session, gateway).expire_stale_transactions()
        finally:
            await gateway.aclose()

    await engine.dispose()

    if not result.success:
        logger.error("Expiry sweep failed: %s", result.error)
        return 1

    outcome = result.data
    logger.info(
        "Expiry sweep examined %d transaction(s): %d succeeded, %d failed",
        outcome["examined"], outcome["succeeded"], outcome["failed"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(expire_pending_payments()))
