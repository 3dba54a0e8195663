from app.schemas.payment import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentStatusResponse,
    WebhookResponse,
    RefundRequest,
    RefundResponse,
    TransactionResponse,
    TransactionDetailResponse,
    TransactionListResponse,
)
from app.schemas.gateway_setting import (
    GatewaySettingCreate,
    GatewaySettingResponse,
    GatewaySettingListResponse,
)
from app.schemas.analytics import PaymentAnalyticsResponse
from app.schemas.saved_vpa import (
    SavedVpaCreate,
    SavedVpaUpdate,
    SavedVpaResponse,
    SavedVpaListResponse,
)

__all__ = [
    "InitiatePaymentRequest", "InitiatePaymentResponse", "PaymentStatusResponse",
    "WebhookResponse", "RefundRequest", "RefundResponse",
    "TransactionResponse", "TransactionDetailResponse", "TransactionListResponse",
    "GatewaySettingCreate", "GatewaySettingResponse", "GatewaySettingListResponse",
    "PaymentAnalyticsResponse",
    "SavedVpaCreate", "SavedVpaUpdate", "SavedVpaResponse", "SavedVpaListResponse",
]
