from datetime import datetime
from decimal import Decimal
from typing import Optional, Any
from pydantic import BaseModel, Field, field_validator


class InitiatePaymentRequest(BaseModel):
    order_id: str = Field(..., min_length=1, description="Order being paid")
    vpa: str = Field(..., min_length=1, description="Payer's UPI Virtual Payment Address")
    amount: Decimal = Field(..., gt=0, description="Amount in major currency units")
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO currency code")
    user_id: Optional[str] = Field(None, description="Paying customer, absent for guest checkout")

    @field_validator("vpa")
    @classmethod
    def strip_vpa(cls, v: str) -> str:
        return v.strip()


class InitiatePaymentResponse(BaseModel):
    transaction_id: str
    payment_id: str
    qr_code: str
    deep_link: str
    intent_url: str
    expires_at: Optional[datetime]
    amount: Decimal
    currency: str
    status: str


class PaymentStatusResponse(BaseModel):
    transaction_id: str
    status: str
    amount: Decimal
    currency: str
    vpa: str
    payment_id: str
    expires_at: Optional[datetime] = None
    gateway_data: Optional[dict[str, Any]] = None


class WebhookResponse(BaseModel):
    processed: bool
    transaction_id: Optional[str] = None
    status: Optional[str] = None


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, description="Defaults to the refundable balance")
    reason: Optional[str] = Field(None, max_length=255)


class RefundResponse(BaseModel):
    refund_id: str
    transaction_id: str
    amount: Decimal
    currency: str
    status: str
    reason: Optional[str] = None


class TransactionResponse(BaseModel):
    id: str
    order_id: str
    user_id: Optional[str]
    gateway_transaction_id: str
    vpa: str
    amount: Decimal
    currency: str
    refunded_amount: Decimal = Decimal("0.00")
    status: str
    webhook_data: Optional[dict[str, Any]] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OrderSummary(BaseModel):
    id: str
    status: str
    total_amount: Decimal
    currency: str


class RefundRecord(BaseModel):
    refund_id: str
    amount: Decimal
    currency: str
    status: str
    reason: Optional[str] = None
    created_at: datetime


class TransactionDetailResponse(TransactionResponse):
    order: Optional[OrderSummary] = None
    refunds: list[RefundRecord] = []


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    total_count: int
    has_more: bool
