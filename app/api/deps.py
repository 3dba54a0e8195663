from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.gateways.base import GatewayAdapter
from app.services.errors import ServiceResult
from app.services.payments import PaymentService


def get_gateway(request: Request) -> GatewayAdapter:
    """The adapter resolved at startup and kept on the application state."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Payment gateway not initialised")
    return gateway


def get_webhook_gateway(provider: str, request: Request) -> GatewayAdapter:
    """Adapter for a webhook's provider.

    Payments started before an admin switched gateways still settle through
    the retired adapter that created them.
    """
    gateway = get_gateway(request)
    if gateway.provider.value == provider:
        return gateway
    for retired in reversed(getattr(request.app.state, "retired_gateways", [])):
        if retired.provider.value == provider:
            return retired
    return gateway


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    gateway: GatewayAdapter = Depends(get_gateway),
) -> PaymentService:
    return PaymentService(db, gateway)


def get_webhook_service(
    db: AsyncSession = Depends(get_db),
    gateway: GatewayAdapter = Depends(get_webhook_gateway),
) -> PaymentService:
    return PaymentService(db, gateway)


def unwrap(result: ServiceResult):
    """Return a successful result's data or raise the matching HTTP error."""
    if not result.success:
        raise HTTPException(status_code=result.status_code, detail=result.error)
    return result.data
