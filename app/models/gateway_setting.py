import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.utils.date_utils import utcnow


class GatewaySetting(Base):
    __tablename__ = "gateway_settings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(100), unique=True)
    provider: Mapped[str] = mapped_column(String(20))  # razorpay | payu | phonepe | gpay | mock

    # Encrypted with the credential store, never returned by the API
    api_key: Mapped[str] = mapped_column(Text)
    api_secret: Mapped[str] = mapped_column(Text)
    merchant_id: Mapped[str] = mapped_column(Text)
    webhook_secret: Mapped[str] = mapped_column(Text)

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    is_test_mode: Mapped[bool] = mapped_column(Boolean, default=False)
    webhook_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    timeout_minutes: Mapped[int] = mapped_column(Integer, default=15)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
