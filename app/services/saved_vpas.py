import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import UserSavedVpa
from app.services.errors import ConflictError, NotFoundError, ValidationError
from app.utils.date_utils import utcnow
from app.utils.upi import validate_vpa

logger = logging.getLogger(__name__)


class SavedVpaService:
    """A user's saved UPI addresses, at most one of them the default."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_vpas(self, user_id: str) -> list[UserSavedVpa]:
        """Default first, then newest first."""
        result = await self.db.execute(
            select(UserSavedVpa)
            .where(UserSavedVpa.user_id == user_id)
            .order_by(UserSavedVpa.is_default.desc(), UserSavedVpa.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _get_owned(self, user_id: str, vpa_id: str) -> UserSavedVpa:
        result = await self.db.execute(
            select(UserSavedVpa)
            .where(UserSavedVpa.id == vpa_id, UserSavedVpa.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        saved = result.scalar_one_or_none()
        if saved is None:
            raise NotFoundError("VPA not found")
        return saved

    async def _clear_default(self, user_id: str) -> None:
        await self.db.execute(
            update(UserSavedVpa)
            .where(UserSavedVpa.user_id == user_id, UserSavedVpa.is_default.is_(True))
            .values(is_default=False, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def add_vpa(self, user_id: str, vpa: str, is_default: bool = False) -> UserSavedVpa:
        if not validate_vpa(vpa):
            raise ValidationError("Invalid UPI VPA format")

        result = await self.db.execute(
            select(UserSavedVpa).where(UserSavedVpa.user_id == user_id, UserSavedVpa.vpa == vpa)
        )
        if result.scalar_one_or_none() is not None:
            raise ConflictError("VPA already exists")

        if is_default:
            await self._clear_default(user_id)

        saved = UserSavedVpa(user_id=user_id, vpa=vpa, is_default=is_default)
        self.db.add(saved)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("VPA already exists") from e
        await self.db.refresh(saved)

        logger.info("Saved VPA %s for user %s (default: %s)", saved.id, user_id, is_default)
        return saved

    async def set_default(self, user_id: str, vpa_id: str, is_default: bool) -> UserSavedVpa:
        saved = await self._get_owned(user_id, vpa_id)
        if is_default:
            await self._clear_default(user_id)
        await self.db.execute(
            update(UserSavedVpa)
            .where(UserSavedVpa.id == saved.id)
            .values(is_default=is_default, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(saved)
        return saved

    async def delete_vpa(self, user_id: str, vpa_id: str) -> None:
        saved = await self._get_owned(user_id, vpa_id)
        await self.db.delete(saved)
        await self.db.commit()
        logger.info("Deleted saved VPA %s for user %s", vpa_id, user_id)
