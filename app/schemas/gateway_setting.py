from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, HttpUrl, ConfigDict

from app.gateways.base import GatewayProvider


class GatewaySettingCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Configuration name")
    provider: GatewayProvider
    api_key: str = Field(..., min_length=1)
    api_secret: str = Field(..., min_length=1)
    merchant_id: str = Field(..., min_length=1)
    webhook_secret: str = Field(..., min_length=1)
    is_test_mode: bool = False
    is_active: bool = True
    webhook_url: Optional[HttpUrl] = None
    timeout_minutes: int = Field(default=15, ge=1, le=30)
    max_retries: int = Field(default=3, ge=1, le=5)
    description: Optional[str] = None


class GatewaySettingResponse(BaseModel):
    """Setting as exposed to admins. Credentials are never included."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    provider: str
    is_active: bool
    is_test_mode: bool
    webhook_url: Optional[str]
    timeout_minutes: int
    max_retries: int
    description: Optional[str]
    created_at: datetime
    updated_at: datetime


class GatewaySettingListResponse(BaseModel):
    settings: list[GatewaySettingResponse]
