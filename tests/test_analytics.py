from datetime import timedelta
from decimal import Decimal

import pytest

from app.models import UpiTransaction, UpiRefund
from app.services.analytics import PaymentAnalyticsService
from app.utils.date_utils import utcnow

pytestmark = pytest.mark.anyio


@pytest.fixture
async def transactions(db, make_order):
    rows = [
        ("alice@okbank", "100.00", "SUCCESS"),
        ("alice@okbank", "300.00", "SUCCESS"),
        ("bob@ybl", "50.00", "FAILED"),
        ("carol@paytm", "75.00", "PENDING"),
    ]
    created = []
    for i, (vpa, amount, status) in enumerate(rows):
        order = await make_order(amount=amount)
        txn = UpiTransaction(
            order_id=order.id,
            gateway_transaction_id=f"fake_pay_{i}",
            vpa=vpa,
            amount=Decimal(amount),
            currency="INR",
            status=status,
        )
        db.add(txn)
        created.append(txn)
    await db.flush()
    db.add(UpiRefund(
        transaction_id=created[1].id,
        gateway_refund_id="fake_refund_1",
        amount=Decimal("120.00"),
        currency="INR",
        status="processed",
    ))
    await db.commit()
    return created


async def test_summary(db, transactions):
    result = await PaymentAnalyticsService(db).get_summary()

    summary = result["summary"]
    assert summary["total_transactions"] == 4
    assert summary["successful_transactions"] == 2
    assert summary["failed_transactions"] == 1
    assert summary["pending_transactions"] == 1
    assert summary["success_rate"] == 50.0
    assert summary["total_volume"] == Decimal("525.00")
    assert summary["successful_volume"] == Decimal("400.00")
    assert summary["refunded_volume"] == Decimal("120.00")
    assert summary["avg_transaction_value"] == Decimal("200.00")


async def test_top_vpas_count_successful_payments(db, transactions):
    result = await PaymentAnalyticsService(db).get_summary()

    assert result["top_vpas"] == [
        {"vpa": "alice@okbank", "transaction_count": 2, "total_amount": Decimal("400.00")},
    ]


async def test_period_outside_data_is_empty(db, transactions):
    end = utcnow() - timedelta(days=60)

    result = await PaymentAnalyticsService(db).get_summary(end_date=end)

    assert result["summary"]["total_transactions"] == 0
    assert result["summary"]["success_rate"] == 0.0
    assert result["summary"]["avg_transaction_value"] == Decimal("0.00")
    assert result["period"]["start_date"] == end - timedelta(days=30)
