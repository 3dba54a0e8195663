from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from app.api.deps import get_payment_service, get_webhook_service, unwrap
from app.services.payments import PaymentService
from app.schemas.payment import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentStatusResponse,
    WebhookResponse,
    RefundRequest,
    RefundResponse,
    TransactionDetailResponse,
    TransactionListResponse,
)

router = APIRouter()


@router.post("/initiate", response_model=InitiatePaymentResponse)
async def initiate_payment(
    request: InitiatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Start a UPI payment for an order and return the QR / deep link."""
    result = await service.initiate_payment(
        order_id=request.order_id,
        vpa=request.vpa,
        amount=request.amount,
        currency=request.currency,
        user_id=request.user_id,
    )
    return InitiatePaymentResponse(**unwrap(result))


@router.post("/webhook/{provider}", response_model=WebhookResponse)
async def payment_webhook(
    provider: str,
    request: Request,
    x_webhook_signature: Optional[str] = Header(None),
    x_razorpay_signature: Optional[str] = Header(None),
    service: PaymentService = Depends(get_webhook_service),
):
    """Receive a gateway notification. The signature covers the raw body."""
    signature = x_webhook_signature or x_razorpay_signature or ""

    payload = await request.body()
    result = await service.handle_webhook(payload, signature, provider)
    return WebhookResponse(**unwrap(result))


@router.get("", response_model=TransactionListResponse)
async def list_transactions(
    user_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="Filter by status: PENDING, SUCCESS, FAILED"),
    order_id: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: PaymentService = Depends(get_payment_service),
):
    """List payment attempts, newest first."""
    result = await service.list_transactions(
        user_id=user_id,
        status=status,
        order_id=order_id,
        limit=limit,
        offset=offset,
    )
    return TransactionListResponse(**unwrap(result))


@router.get("/{transaction_id}", response_model=TransactionDetailResponse)
async def get_transaction(
    transaction_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.get_transaction(transaction_id)
    return TransactionDetailResponse(**unwrap(result))


@router.get("/{transaction_id}/status", response_model=PaymentStatusResponse)
async def get_payment_status(
    transaction_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    """Poll the payment status, reconciling with the gateway while pending."""
    result = await service.check_payment_status(transaction_id)
    return PaymentStatusResponse(**unwrap(result))


@router.post("/{transaction_id}/refund", response_model=RefundResponse)
async def refund_payment(
    transaction_id: str,
    request: Optional[RefundRequest] = None,
    service: PaymentService = Depends(get_payment_service),
):
    """Refund a successful payment, fully or partially."""
    if request is None:
        request = RefundRequest()

    result = await service.initiate_refund(
        transaction_id,
        amount=request.amount,
        reason=request.reason,
    )
    return RefundResponse(**unwrap(result))
