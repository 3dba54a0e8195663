import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.gateways.registry import resolve_gateway
from app.services.analytics import PaymentAnalyticsService
from app.services.errors import PaymentError
from app.services.gateway_settings import GatewaySettingService
from app.schemas.analytics import PaymentAnalyticsResponse
from app.schemas.gateway_setting import (
    GatewaySettingCreate,
    GatewaySettingResponse,
    GatewaySettingListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _reload_gateway(request: Request, db: AsyncSession) -> None:
    """Swap the application's adapter for the newly active setting.

    The previous adapter is retired rather than closed: requests already
    holding it finish normally and its webhooks still verify. Retired
    adapters are closed at shutdown.
    """
    state = request.app.state
    previous = getattr(state, "gateway", None)
    state.gateway = await resolve_gateway(db)
    if previous is not None and previous is not state.gateway:
        if not hasattr(state, "retired_gateways"):
            state.retired_gateways = []
        state.retired_gateways.append(previous)
        logger.info(
            "Retired %s gateway in favour of %s",
            previous.provider.value, state.gateway.provider.value,
        )


@router.get("/gateway-settings", response_model=GatewaySettingListResponse)
async def list_gateway_settings(
    db: AsyncSession = Depends(get_db),
):
    """List gateway configurations without their credentials."""
    service = GatewaySettingService(db)
    settings = await service.list_settings()
    return GatewaySettingListResponse(
        settings=[GatewaySettingResponse.model_validate(s) for s in settings]
    )


@router.post("/gateway-settings", response_model=GatewaySettingResponse, status_code=201)
async def create_gateway_setting(
    data: GatewaySettingCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    service = GatewaySettingService(db)
    try:
        setting = await service.create_setting(data)
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if setting.is_active:
        await _reload_gateway(request, db)
    return GatewaySettingResponse.model_validate(setting)


@router.post("/gateway-settings/{setting_id}/activate", response_model=GatewaySettingResponse)
async def activate_gateway_setting(
    setting_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Make a setting the single active one and re-resolve the gateway."""
    service = GatewaySettingService(db)
    try:
        setting = await service.activate_setting(setting_id)
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    await _reload_gateway(request, db)
    return GatewaySettingResponse.model_validate(setting)


@router.get("/analytics", response_model=PaymentAnalyticsResponse)
async def get_payment_analytics(
    start_date: Optional[datetime] = Query(None, description="Defaults to 30 days before end_date"),
    end_date: Optional[datetime] = Query(None, description="Defaults to now"),
    db: AsyncSession = Depends(get_db),
):
    """UPI payment counts, volumes and top VPAs for a period."""
    service = PaymentAnalyticsService(db)
    result = await service.get_summary(start_date=start_date, end_date=end_date)
    return PaymentAnalyticsResponse(**result)
