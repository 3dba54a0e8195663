"""Provider webhook payload shapes and status vocabulary."""
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError as SchemaError

from app.gateways.base import GatewayProvider
from app.models import UpiPaymentStatus
from app.services.errors import ValidationError
from app.utils.currency import from_minor_units, quantize_amount

SUCCESS_STATES = {"success", "completed", "captured", "paid"}
FAILURE_STATES = {"failed", "cancelled", "expired"}
RAZORPAY_ATTEMPT_FAILED = "attempt_failed"


class WebhookEvent(BaseModel):
    payment_id: str  # matched against UpiTransaction.gateway_transaction_id
    status: str
    order_id: Optional[str] = None
    amount: Optional[Decimal] = None


def map_gateway_status(status: Optional[str]) -> UpiPaymentStatus:
    """Fold a provider's status vocabulary onto PENDING / SUCCESS / FAILED."""
    normalized = (status or "").strip().lower()
    if normalized in SUCCESS_STATES:
        return UpiPaymentStatus.SUCCESS
    if normalized in FAILURE_STATES:
        return UpiPaymentStatus.FAILED
    return UpiPaymentStatus.PENDING


def _razorpay(payload: dict[str, Any]) -> WebhookEvent:
    body = payload["payload"]
    # order.paid carries both entities, payment.* events only the payment
    entity = body["payment"]["entity"]
    status = str(entity["status"])
    # One failed attempt leaves the order open; polling or expiry settles FAILED
    if status == "failed":
        status = RAZORPAY_ATTEMPT_FAILED
    return WebhookEvent(
        payment_id=str(entity["order_id"]),
        status=status,
        order_id=entity["order_id"],
        amount=from_minor_units(entity["amount"]),
    )


def _payu(payload: dict[str, Any]) -> WebhookEvent:
    return WebhookEvent(
        payment_id=str(payload["mihpayid"]),
        status=str(payload["status"]),
        order_id=payload.get("txnid"),
        amount=quantize_amount(payload["amount"]),
    )


def _phonepe(payload: dict[str, Any]) -> WebhookEvent:
    return WebhookEvent(
        payment_id=str(payload["transactionId"]),
        status="success" if payload.get("code") == "PAYMENT_SUCCESS" else "failed",
        order_id=payload.get("merchantTransactionId"),
        amount=from_minor_units(payload["amount"]),
    )


def _mock(payload: dict[str, Any]) -> WebhookEvent:
    amount = payload.get("amount")
    return WebhookEvent(
        payment_id=str(payload["paymentId"]),
        status=str(payload["status"]),
        order_id=payload.get("orderId"),
        amount=quantize_amount(amount) if amount is not None else None,
    )


WEBHOOK_EXTRACTORS: dict[GatewayProvider, Callable[[dict[str, Any]], WebhookEvent]] = {
    GatewayProvider.RAZORPAY: _razorpay,
    GatewayProvider.PAYU: _payu,
    GatewayProvider.PHONEPE: _phonepe,
    GatewayProvider.MOCK: _mock,
}


def extract_webhook_event(payload: Any, provider: GatewayProvider) -> WebhookEvent:
    extractor = WEBHOOK_EXTRACTORS.get(provider)
    if extractor is None:
        raise ValidationError(f"Webhooks from {provider.value} are not supported")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    try:
        return extractor(payload)
    except (KeyError, TypeError, ArithmeticError, SchemaError) as e:
        raise ValidationError(f"Malformed {provider.value} webhook payload: {e!r}") from e
