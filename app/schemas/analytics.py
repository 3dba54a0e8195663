from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel


class PaymentSummary(BaseModel):
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    pending_transactions: int
    success_rate: float
    total_volume: Decimal
    successful_volume: Decimal
    refunded_volume: Decimal
    avg_transaction_value: Decimal


class VpaUsage(BaseModel):
    vpa: str
    transaction_count: int
    total_amount: Decimal


class AnalyticsPeriod(BaseModel):
    start_date: datetime
    end_date: datetime


class PaymentAnalyticsResponse(BaseModel):
    summary: PaymentSummary
    top_vpas: list[VpaUsage]
    period: AnalyticsPeriod
