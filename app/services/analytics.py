from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import UpiTransaction, UpiRefund, UpiPaymentStatus
from app.utils.currency import quantize_amount
from app.utils.date_utils import utcnow

DEFAULT_PERIOD_DAYS = 30
TOP_VPA_LIMIT = 10


class PaymentAnalyticsService:
    """Aggregate UPI payment figures for the admin dashboard."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _count(self, *conditions) -> int:
        result = await self.db.execute(
            select(func.count(UpiTransaction.id)).where(*conditions)
        )
        return result.scalar_one()

    async def _volume(self, *conditions) -> Decimal:
        result = await self.db.execute(
            select(func.coalesce(func.sum(UpiTransaction.amount), 0)).where(*conditions)
        )
        return quantize_amount(result.scalar_one())

    async def get_summary(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict:
        """Counts, volumes and top VPAs within a period (last 30 days by default)."""
        end_date = end_date or utcnow()
        start_date = start_date or end_date - timedelta(days=DEFAULT_PERIOD_DAYS)
        in_period = and_(
            UpiTransaction.created_at >= start_date,
            UpiTransaction.created_at <= end_date,
        )
        succeeded = UpiTransaction.status == UpiPaymentStatus.SUCCESS.value

        total = await self._count(in_period)
        successful = await self._count(in_period, succeeded)
        failed = await self._count(in_period, UpiTransaction.status == UpiPaymentStatus.FAILED.value)
        pending = await self._count(in_period, UpiTransaction.status == UpiPaymentStatus.PENDING.value)

        total_volume = await self._volume(in_period)
        successful_volume = await self._volume(in_period, succeeded)

        refunded = await self.db.execute(
            select(func.coalesce(func.sum(UpiRefund.amount), 0))
            .join(UpiTransaction, UpiRefund.transaction_id == UpiTransaction.id)
            .where(in_period)
        )
        refunded_volume = quantize_amount(refunded.scalar_one())

        top = await self.db.execute(
            select(
                UpiTransaction.vpa,
                func.count(UpiTransaction.id).label("transaction_count"),
                func.coalesce(func.sum(UpiTransaction.amount), 0).label("total_amount"),
            )
            .where(in_period, succeeded)
            .group_by(UpiTransaction.vpa)
            .order_by(func.count(UpiTransaction.id).desc())
            .limit(TOP_VPA_LIMIT)
        )

        success_rate = round(successful / total * 100, 2) if total else 0.0
        avg_value = quantize_amount(successful_volume / successful) if successful else Decimal("0.00")

        return {
            "summary": {
                "total_transactions": total,
                "successful_transactions": successful,
                "failed_transactions": failed,
                "pending_transactions": pending,
                "success_rate": success_rate,
                "total_volume": total_volume,
                "successful_volume": successful_volume,
                "refunded_volume": refunded_volume,
                "avg_transaction_value": avg_value,
            },
            "top_vpas": [
                {
                    "vpa": row.vpa,
                    "transaction_count": row.transaction_count,
                    "total_amount": quantize_amount(row.total_amount),
                }
                for row in top.all()
            ],
            "period": {"start_date": start_date, "end_date": end_date},
        }
