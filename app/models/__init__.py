from app.models.order import Order, ORDER_COMPLETED
from app.models.upi_transaction import UpiTransaction, UpiRefund, UpiPaymentStatus
from app.models.gateway_setting import GatewaySetting
from app.models.saved_vpa import UserSavedVpa

__all__ = [
    "Order", "ORDER_COMPLETED", "UpiTransaction", "UpiRefund", "UpiPaymentStatus",
    "GatewaySetting", "UserSavedVpa",
]
