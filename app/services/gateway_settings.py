import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import GatewaySetting
from app.schemas.gateway_setting import GatewaySettingCreate
from app.services.credentials import CredentialStore, AesGcmCredentialStore
from app.services.errors import ConflictError, NotFoundError
from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class GatewaySettingService:
    """Admin write path for gateway configuration."""

    def __init__(self, db: AsyncSession, credentials: Optional[CredentialStore] = None):
        self.db = db
        self.credentials = credentials or AesGcmCredentialStore()

    async def list_settings(self) -> list[GatewaySetting]:
        result = await self.db.execute(
            select(GatewaySetting)
            .order_by(GatewaySetting.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_setting(self, setting_id: str) -> GatewaySetting:
        setting = await self.db.get(GatewaySetting, setting_id)
        if setting is None:
            raise NotFoundError("Setting not found")
        return setting

    async def _deactivate_all(self) -> None:
        await self.db.execute(
            update(GatewaySetting)
            .where(GatewaySetting.is_active.is_(True))
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def create_setting(self, data: GatewaySettingCreate) -> GatewaySetting:
        """Store a new setting with its credentials encrypted."""
        result = await self.db.execute(
            select(GatewaySetting).where(GatewaySetting.name == data.name)
        )
        if result.scalar_one_or_none() is not None:
            raise ConflictError("A setting with this name already exists")

        # Only one setting may be active at a time
        if data.is_active:
            await self._deactivate_all()

        setting = GatewaySetting(
            name=data.name,
            provider=data.provider.value,
            api_key=self.credentials.encrypt(data.api_key),
            api_secret=self.credentials.encrypt(data.api_secret),
            merchant_id=self.credentials.encrypt(data.merchant_id),
            webhook_secret=self.credentials.encrypt(data.webhook_secret),
            is_active=data.is_active,
            is_test_mode=data.is_test_mode,
            webhook_url=str(data.webhook_url) if data.webhook_url else None,
            timeout_minutes=data.timeout_minutes,
            max_retries=data.max_retries,
            description=data.description,
        )
        self.db.add(setting)
        await self.db.commit()
        await self.db.refresh(setting)

        logger.info("Created %s gateway setting '%s' (active: %s)", setting.provider, setting.name, setting.is_active)
        return setting

    async def activate_setting(self, setting_id: str) -> GatewaySetting:
        setting = await self.get_setting(setting_id)
        await self._deactivate_all()
        await self.db.execute(
            update(GatewaySetting)
            .where(GatewaySetting.id == setting_id)
            .values(is_active=True, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(setting)

        logger.info("Activated %s gateway setting '%s'", setting.provider, setting.name)
        return setting
