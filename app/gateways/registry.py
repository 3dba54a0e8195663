import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.gateways.base import GatewayAdapter, GatewayConfig, GatewayProvider
from app.gateways.mock import MockGateway, build_mock_gateway
from app.gateways.razorpay import RazorpayGateway
from app.models import GatewaySetting
from app.services.credentials import AesGcmCredentialStore, CredentialStore
from app.services.errors import CredentialError

logger = logging.getLogger(__name__)

GATEWAY_CLASSES: dict[GatewayProvider, type[GatewayAdapter]] = {
    GatewayProvider.MOCK: MockGateway,
    GatewayProvider.RAZORPAY: RazorpayGateway,
}


async def get_active_setting(db: AsyncSession) -> Optional[GatewaySetting]:
    result = await db.execute(
        select(GatewaySetting)
        .where(GatewaySetting.is_active.is_(True))
        .order_by(GatewaySetting.updated_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


def build_gateway(setting: GatewaySetting, credentials: CredentialStore) -> GatewayAdapter:
    """Construct the adapter for a stored setting. Raises on anything unusable."""
    provider = GatewayProvider(setting.provider)
    if provider is GatewayProvider.MOCK:
        return build_mock_gateway(timeout_minutes=setting.timeout_minutes)

    gateway_cls = GATEWAY_CLASSES.get(provider)
    if gateway_cls is None:
        raise ValueError(f"Unsupported provider: {provider.value}")

    config = GatewayConfig(
        api_key=credentials.decrypt(setting.api_key),
        api_secret=credentials.decrypt(setting.api_secret),
        merchant_id=credentials.decrypt(setting.merchant_id),
        webhook_secret=credentials.decrypt(setting.webhook_secret),
        is_test_mode=setting.is_test_mode,
        timeout_minutes=setting.timeout_minutes,
        max_retries=setting.max_retries,
    )
    if not config.api_key or not config.api_secret:
        raise ValueError(f"{provider.value} credentials are incomplete")
    return gateway_cls(config)


async def resolve_gateway(
    db: AsyncSession,
    credentials: Optional[CredentialStore] = None,
) -> GatewayAdapter:
    """Pick the adapter for the single active setting, falling back to the mock."""
    try:
        setting = await get_active_setting(db)
    except SQLAlchemyError as e:
        logger.error("Could not load gateway settings, using mock gateway: %s", e)
        return build_mock_gateway()

    if setting is None:
        logger.info("No active gateway setting found, using mock gateway")
        return build_mock_gateway()

    try:
        gateway = build_gateway(setting, credentials or AesGcmCredentialStore())
    except (CredentialError, ValueError) as e:
        logger.warning("Failed to initialise %s gateway, falling back to mock: %s", setting.provider, e)
        return build_mock_gateway()

    logger.info(
        "Initialised %s gateway from setting '%s' (test mode: %s)",
        gateway.provider.value, setting.name, setting.is_test_mode,
    )
    return gateway
