"""
UPI payment orchestration.

Drives each order through NO_TRANSACTION -> PENDING -> SUCCESS | FAILED on
top of whichever gateway adapter the registry resolved. Public methods
always return a ``ServiceResult``; nothing raised by an adapter or by
validation escapes to the caller.
"""
import asyncio
import json
import logging
import weakref
from decimal import Decimal
from typing import Any, Awaitable, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.gateways.base import GatewayAdapter, GatewayProvider, GatewayResponse
from app.models import Order, ORDER_COMPLETED, UpiTransaction, UpiRefund, UpiPaymentStatus
from app.services.errors import (
    PaymentError,
    ValidationError,
    ConflictError,
    NotFoundError,
    GatewayError,
    SignatureError,
    StateError,
    ServiceResult,
)
from app.services.webhooks import extract_webhook_event, map_gateway_status
from app.utils.currency import quantize_amount
from app.utils.date_utils import utcnow, is_expired
from app.utils.upi import validate_vpa

logger = logging.getLogger(__name__)

DEFAULT_REFUND_REASON = "Customer requested refund"

# Serialises initiation per order and refunds per transaction within this
# process; conditional writes in the database cover concurrent workers.
_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _keyed_lock(key: str) -> asyncio.Lock:
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    return lock


def serialize_transaction(txn: UpiTransaction) -> dict:
    return {
        "id": txn.id,
        "order_id": txn.order_id,
        "user_id": txn.user_id,
        "gateway_transaction_id": txn.gateway_transaction_id,
        "vpa": txn.vpa,
        "amount": txn.amount,
        "currency": txn.currency,
        "refunded_amount": txn.refunded_amount,
        "status": txn.status,
        "webhook_data": txn.webhook_data,
        "expires_at": txn.expires_at,
        "created_at": txn.created_at,
        "updated_at": txn.updated_at,
    }


class PaymentService:
    """Initiates, reconciles and refunds UPI payments."""

    def __init__(self, db: AsyncSession, gateway: GatewayAdapter, timeout: Optional[float] = None):
        self.db = db
        self.gateway = gateway
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS

    @staticmethod
    def validate_vpa(vpa: str) -> bool:
        return validate_vpa(vpa)

    # === PUBLIC OPERATIONS ===

    async def initiate_payment(
        self,
        order_id: str,
        vpa: str,
        amount: Decimal,
        currency: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ServiceResult:
        """Start a payment attempt for an order."""
        return await self._run(
            "payment initiation",
            self._initiate_payment(order_id, vpa, amount, currency, user_id),
        )

    async def check_payment_status(self, transaction_id: str) -> ServiceResult:
        """Reconcile a transaction against the gateway by polling."""
        return await self._run("status check", self._check_payment_status(transaction_id))

    async def handle_webhook(self, payload: bytes, signature: str, provider: str = "mock") -> ServiceResult:
        """Apply a gateway notification. Replays of the same delivery are harmless."""
        return await self._run("webhook processing", self._handle_webhook(payload, signature, provider))

    async def initiate_refund(
        self,
        transaction_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> ServiceResult:
        """Refund all or part of a successful transaction."""
        return await self._run("refund", self._initiate_refund(transaction_id, amount, reason))

    async def get_transaction(self, transaction_id: str) -> ServiceResult:
        return await self._run("transaction lookup", self._get_transaction_details(transaction_id))

    async def list_transactions(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> ServiceResult:
        return await self._run(
            "transaction listing",
            self._list_transactions(user_id, status, order_id, limit, offset),
        )

    async def expire_stale_transactions(self) -> ServiceResult:
        """Resolve every PENDING transaction whose payment window has closed."""
        return await self._run("expiry sweep", self._expire_stale_transactions())

    # === IMPLEMENTATION ===

    async def _run(self, operation: str, work: Awaitable[Any]) -> ServiceResult:
        try:
            return ServiceResult.ok(await work)
        except PaymentError as e:
            await self.db.rollback()
            if isinstance(e, GatewayError):
                logger.error("%s failed: %s", operation.capitalize(), e.message)
            else:
                logger.info("%s rejected (%s): %s", operation.capitalize(), e.kind, e.message)
            return ServiceResult.fail(e)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("%s failed with a database error", operation.capitalize())
            return ServiceResult.fail(PaymentError(f"Database error during {operation}: {e.__class__.__name__}"))

    async def _call_gateway(self, operation: str, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise GatewayError(f"Gateway timed out during {operation}") from e
        except Exception as e:
            logger.exception("%s gateway raised during %s", self.gateway.provider.value, operation)
            raise GatewayError(f"Gateway error during {operation}: {e}") from e

    async def _load_transaction(self, transaction_id: str) -> UpiTransaction:
        txn = await self.db.get(UpiTransaction, transaction_id, populate_existing=True)
        if txn is None:
            raise NotFoundError("Transaction not found")
        return txn

    async def _pending_for_order(self, order_id: str) -> Optional[UpiTransaction]:
        result = await self.db.execute(
            select(UpiTransaction).where(
                UpiTransaction.order_id == order_id,
                UpiTransaction.status == UpiPaymentStatus.PENDING.value,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _transition(self, txn: UpiTransaction, status: UpiPaymentStatus, raw: Optional[dict]) -> bool:
        """Move a PENDING transaction to ``status``. Terminal rows are left alone."""
        result = await self.db.execute(
            update(UpiTransaction)
            .where(
                UpiTransaction.id == txn.id,
                UpiTransaction.status == UpiPaymentStatus.PENDING.value,
            )
            .values(status=status.value, webhook_data=raw, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(txn)
        transitioned = result.rowcount == 1
        if transitioned:
            logger.info("Transaction %s moved PENDING -> %s", txn.id, status.value)
        return transitioned

    async def _store_payload(self, txn: UpiTransaction, raw: dict) -> None:
        await self.db.execute(
            update(UpiTransaction)
            .where(UpiTransaction.id == txn.id)
            .values(webhook_data=raw, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(txn)

    async def _complete_order(self, order_id: str) -> None:
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status != ORDER_COMPLETED)
            .values(status=ORDER_COMPLETED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount:
            logger.info("Order %s marked %s", order_id, ORDER_COMPLETED)

    async def _expire(self, txn: UpiTransaction) -> None:
        """Settle a PENDING transaction whose window closed, asking the gateway one last time."""
        final: Optional[GatewayResponse] = None
        try:
            final = await self._call_gateway(
                "expiry check",
                self.gateway.check_payment_status(txn.gateway_transaction_id),
            )
        except GatewayError as e:
            logger.warning("Final status check for expired transaction %s failed: %s", txn.id, e.message)

        if final is not None and final.success and map_gateway_status(final.status) is UpiPaymentStatus.SUCCESS:
            target = UpiPaymentStatus.SUCCESS
        else:
            target = UpiPaymentStatus.FAILED

        raw = {
            "reason": "payment window expired",
            "expired_at": txn.expires_at.isoformat() if txn.expires_at else None,
            "gateway": final.data if final is not None and final.success else None,
        }
        if await self._transition(txn, target, raw):
            logger.info("Expired transaction %s resolved as %s", txn.id, target.value)
            if target is UpiPaymentStatus.SUCCESS:
                await self._complete_order(txn.order_id)

    async def _initiate_payment(
        self,
        order_id: str,
        vpa: str,
        amount: Decimal,
        currency: Optional[str],
        user_id: Optional[str],
    ) -> dict:
        if not validate_vpa(vpa):
            raise ValidationError("Invalid VPA format")
        try:
            amount = quantize_amount(amount)
        except ArithmeticError as e:
            raise ValidationError("Amount must be a number") from e
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        currency = (currency or settings.DEFAULT_CURRENCY).upper()

        order = await self.db.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFoundError("Order not found")
        if order.status == ORDER_COMPLETED:
            raise ConflictError("Order has already been paid")

        async with _keyed_lock(f"order:{order_id}"):
            existing = await self._pending_for_order(order_id)
            if existing is not None and is_expired(existing.expires_at):
                await self._expire(existing)
                if existing.status == UpiPaymentStatus.SUCCESS.value:
                    raise ConflictError("Order has already been paid")
            if existing is not None and existing.status == UpiPaymentStatus.PENDING.value:
                raise ConflictError("Payment already in progress for this order")

            response: GatewayResponse = await self._call_gateway(
                "payment initiation",
                self.gateway.initiate_payment(amount, currency, vpa, order_id),
            )
            if not response.success:
                raise GatewayError(response.error or "Failed to initiate payment with gateway")
            intent = response.data
            if not intent.get("payment_id"):
                raise GatewayError("Gateway returned no payment id")

            txn = UpiTransaction(
                order_id=order_id,
                user_id=user_id,
                gateway_transaction_id=intent["payment_id"],
                vpa=vpa,
                amount=amount,
                currency=currency,
                status=UpiPaymentStatus.PENDING.value,
                expires_at=intent.get("expires_at"),
            )
            self.db.add(txn)
            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise ConflictError("Payment already in progress for this order") from e

        logger.info(
            "Initiated %s payment %s for order %s (%s %s)",
            self.gateway.provider.value, txn.id, order_id, amount, currency,
        )
        qr_code = intent.get("qr_code")
        return {
            "transaction_id": txn.id,
            "payment_id": intent["payment_id"],
            "qr_code": qr_code,
            "deep_link": intent.get("deep_link") or qr_code,
            "intent_url": intent.get("intent_url") or qr_code,
            "expires_at": intent.get("expires_at"),
            "amount": amount,
            "currency": currency,
            "status": txn.status,
        }

    def _status_payload(self, txn: UpiTransaction, gateway_data: Optional[dict] = None) -> dict:
        return {
            "transaction_id": txn.id,
            "status": txn.status,
            "amount": txn.amount,
            "currency": txn.currency,
            "vpa": txn.vpa,
            "payment_id": txn.gateway_transaction_id,
            "expires_at": txn.expires_at,
            "gateway_data": gateway_data,
        }

    async def _check_payment_status(self, transaction_id: str) -> dict:
        txn = await self._load_transaction(transaction_id)

        if UpiPaymentStatus(txn.status).is_terminal:
            return self._status_payload(txn)

        if is_expired(txn.expires_at):
            await self._expire(txn)
            return self._status_payload(txn)

        response: GatewayResponse = await self._call_gateway(
            "status check",
            self.gateway.check_payment_status(txn.gateway_transaction_id),
        )
        if not response.success:
            raise GatewayError(response.error or "Failed to check payment status with gateway")

        mapped = map_gateway_status(response.status)
        if mapped.value != txn.status:
            if await self._transition(txn, mapped, response.data) and mapped is UpiPaymentStatus.SUCCESS:
                await self._complete_order(txn.order_id)

        return self._status_payload(txn, gateway_data=response.data)

    async def _handle_webhook(self, payload: bytes, signature: str, provider: str) -> dict:
        try:
            provider_tag = GatewayProvider(provider)
        except ValueError as e:
            raise ValidationError(f"Unknown payment provider: {provider}") from e
        if provider_tag is not self.gateway.provider:
            raise ValidationError(
                f"Webhook from {provider_tag.value} does not match the active {self.gateway.provider.value} gateway"
            )

        is_valid = await self._call_gateway(
            "webhook validation",
            self.gateway.validate_webhook(payload, signature),
        )
        if not is_valid:
            logger.warning("Security event: rejected %s webhook with an invalid signature", provider_tag.value)
            raise SignatureError("Invalid webhook signature")

        try:
            body = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise ValidationError("Webhook payload is not valid JSON") from e

        event = extract_webhook_event(body, provider_tag)

        result = await self.db.execute(
            select(UpiTransaction)
            .where(UpiTransaction.gateway_transaction_id == event.payment_id)
            .execution_options(populate_existing=True)
        )
        txn = result.scalar_one_or_none()
        if txn is None:
            raise NotFoundError("Transaction not found for webhook")

        if event.amount is not None and event.amount != txn.amount:
            logger.warning(
                "Webhook amount %s differs from transaction %s amount %s",
                event.amount, txn.id, txn.amount,
            )

        mapped = map_gateway_status(event.status)
        transitioned = False
        if mapped is not UpiPaymentStatus.PENDING:
            transitioned = await self._transition(txn, mapped, body)
        if not transitioned:
            # Terminal status stays put; keep the latest payload for audit
            await self._store_payload(txn, body)

        if mapped is UpiPaymentStatus.SUCCESS and txn.status == UpiPaymentStatus.SUCCESS.value:
            await self._complete_order(txn.order_id)

        return {
            "transaction_id": txn.id,
            "status": txn.status,
            "processed": True,
        }

    async def _reserve_refund(self, txn: UpiTransaction, amount: Decimal) -> bool:
        """Add ``amount`` to the refunded total unless that would exceed the payment."""
        result = await self.db.execute(
            update(UpiTransaction)
            .where(
                UpiTransaction.id == txn.id,
                UpiTransaction.status == UpiPaymentStatus.SUCCESS.value,
                UpiTransaction.refunded_amount + amount <= UpiTransaction.amount,
            )
            .values(refunded_amount=UpiTransaction.refunded_amount + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(txn)
        return result.rowcount == 1

    async def _release_refund(self, txn: UpiTransaction, amount: Decimal) -> None:
        await self.db.execute(
            update(UpiTransaction)
            .where(UpiTransaction.id == txn.id)
            .values(refunded_amount=UpiTransaction.refunded_amount - amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(txn)

    async def _initiate_refund(
        self,
        transaction_id: str,
        amount: Optional[Decimal],
        reason: Optional[str],
    ) -> dict:
        async with _keyed_lock(f"refund:{transaction_id}"):
            txn = await self._load_transaction(transaction_id)
            if txn.status != UpiPaymentStatus.SUCCESS.value:
                raise StateError("Can only refund successful transactions")

            refundable = quantize_amount(txn.amount) - quantize_amount(txn.refunded_amount or 0)
            refund_amount = quantize_amount(amount) if amount is not None else refundable
            if refund_amount <= 0:
                raise ValidationError("Refund amount must be positive")
            if refund_amount > refundable or not await self._reserve_refund(txn, refund_amount):
                raise ValidationError(f"Refund amount exceeds refundable balance of {refundable}")

            reason = reason or DEFAULT_REFUND_REASON
            try:
                response: GatewayResponse = await self._call_gateway(
                    "refund",
                    self.gateway.initiate_refund(txn.gateway_transaction_id, refund_amount, reason),
                )
                if not response.success:
                    raise GatewayError(response.error or "Failed to initiate refund with gateway")
                refund_id = response.data.get("refund_id")
                if not refund_id:
                    raise GatewayError("Gateway returned no refund id")
            except GatewayError:
                await self._release_refund(txn, refund_amount)
                raise

            refund = UpiRefund(
                transaction_id=txn.id,
                gateway_refund_id=refund_id,
                amount=refund_amount,
                currency=txn.currency,
                status=str(response.data.get("status", "pending")),
                reason=reason,
            )
            self.db.add(refund)
            await self.db.commit()

        logger.info("Refund %s of %s %s initiated for transaction %s", refund_id, refund_amount, txn.currency, txn.id)
        return {
            "refund_id": refund_id,
            "transaction_id": txn.id,
            "amount": refund_amount,
            "currency": txn.currency,
            "status": refund.status,
            "reason": reason,
        }

    async def _get_transaction_details(self, transaction_id: str) -> dict:
        result = await self.db.execute(
            select(UpiTransaction)
            .options(selectinload(UpiTransaction.order), selectinload(UpiTransaction.refunds))
            .where(UpiTransaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        txn = result.scalar_one_or_none()
        if txn is None:
            raise NotFoundError("Transaction not found")

        data = serialize_transaction(txn)
        data["order"] = {
            "id": txn.order.id,
            "status": txn.order.status,
            "total_amount": txn.order.total_amount,
            "currency": txn.order.currency,
        } if txn.order else None
        data["refunds"] = [
            {
                "refund_id": r.gateway_refund_id,
                "amount": r.amount,
                "currency": r.currency,
                "status": r.status,
                "reason": r.reason,
                "created_at": r.created_at,
            }
            for r in txn.refunds
        ]
        return data

    async def _list_transactions(
        self,
        user_id: Optional[str],
        status: Optional[str],
        order_id: Optional[str],
        limit: int,
        offset: int,
    ) -> dict:
        filters = []
        if user_id:
            filters.append(UpiTransaction.user_id == user_id)
        if status:
            try:
                filters.append(UpiTransaction.status == UpiPaymentStatus(status.upper()).value)
            except ValueError as e:
                raise ValidationError(f"Unknown status: {status}") from e
        if order_id:
            filters.append(UpiTransaction.order_id == order_id)

        result = await self.db.execute(
            select(UpiTransaction)
            .where(*filters)
            .order_by(UpiTransaction.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        transactions = result.scalars().all()

        total_count = (
            await self.db.execute(select(func.count(UpiTransaction.id)).where(*filters))
        ).scalar_one()

        return {
            "transactions": [serialize_transaction(t) for t in transactions],
            "total_count": total_count,
            "has_more": offset + limit < total_count,
        }

    async def _expire_stale_transactions(self) -> dict:
        result = await self.db.execute(
            select(UpiTransaction).where(
                UpiTransaction.status == UpiPaymentStatus.PENDING.value,
                UpiTransaction.expires_at.is_not(None),
                UpiTransaction.expires_at <= utcnow(),
            ).execution_options(populate_existing=True)
        )
        stale = result.scalars().all()

        outcome = {"examined": len(stale), "succeeded": 0, "failed": 0}
        for txn in stale:
            await self._expire(txn)
            if txn.status == UpiPaymentStatus.SUCCESS.value:
                outcome["succeeded"] += 1
            elif txn.status == UpiPaymentStatus.FAILED.value:
                outcome["failed"] += 1
        return outcome
