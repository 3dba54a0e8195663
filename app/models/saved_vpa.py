import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.utils.date_utils import utcnow


class UserSavedVpa(Base):
    """A payer's remembered UPI address, offered again at checkout."""

    __tablename__ = "user_saved_vpas"
    __table_args__ = (UniqueConstraint("user_id", "vpa", name="uq_user_saved_vpas_user_vpa"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    vpa: Mapped[str] = mapped_column(String(50))
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
